from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app

from app.pms.audit import record_event
from app.pms.errors import NotFound, ServiceError
from app.pms.modules.documents.models import Document
from app.pms.modules.documents.service import discard_stored_file, owned_documents, store_document
from app.pms.modules.lease_documents.builder import (
    build_lease_document_data,
    format_lease_document_data,
    select_addendum_types,
)
from app.pms.modules.lease_documents.docx_merger import merge_docx_documents
from app.pms.modules.lease_documents.pdf_converter import convert_docx_to_pdf, pdf_page_count
from app.pms.modules.lease_templates.docx_processor import render_docx_template
from app.pms.modules.lease_templates.models import ADDENDUM_TYPES
from app.pms.modules.lease_templates.service import template_for_type
from app.pms.modules.leases.service import get_lease_for_user
from app.pms.storage import Storage

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User
    from app.pms.modules.leases.models import Lease


MAIN_TEMPLATE_MISSING = "Main lease template not found. Please create a default lease template first."
DOCUMENT_MISSING = "Lease document not found. Please generate the document first."


def lease_document_path(lease: "Lease") -> str:
    return f"/api/leases/{lease.id}/document"


def _check_addendum_types(addendum_types: Any) -> list[str]:
    if addendum_types is None:
        return []
    if not isinstance(addendum_types, list):
        raise ServiceError("addendum_types must be a list.")
    unknown = [t for t in addendum_types if t not in ADDENDUM_TYPES]
    if unknown:
        raise ServiceError(f"Unknown addendum types: {', '.join(map(str, unknown))}")
    return addendum_types


def generate_lease_pdf(
    s: "Session",
    user: "User",
    lease_id: int,
    *,
    storage: Storage,
    addendum_types: list[str] | None = None,
    include_addenda: bool = True,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Render the main lease template (plus addenda), merge, convert to PDF and store
    it as a LEASE document linked to the lease.
    """
    lease = get_lease_for_user(s, user, lease_id)
    requested = _check_addendum_types(addendum_types)

    main = template_for_type(s, "MAIN_LEASE")
    if main is None:
        raise ServiceError(MAIN_TEMPLATE_MISSING, 422)
    if not main.template_file_path:
        raise ServiceError("Template file path is missing", 422)

    unit = lease.unit
    prop = unit.property
    tenant = lease.tenant

    addenda = []
    for addendum_type in select_addendum_types(lease, prop, requested, include_addenda):
        tpl = template_for_type(s, addendum_type)
        if tpl is None or not tpl.template_file_path:
            current_app.logger.info("No %s template with a file; skipping addendum for lease %s", addendum_type, lease.id)
            continue
        addenda.append(tpl)

    data = format_lease_document_data(build_lease_document_data(lease, tenant, unit, prop))
    rendered = [render_docx_template(storage.read_bytes(main.template_file_path), data)]
    for tpl in addenda:
        rendered.append(render_docx_template(storage.read_bytes(tpl.template_file_path), data))

    merged = merge_docx_documents(rendered)
    pdf_bytes = convert_docx_to_pdf(merged)
    page_count = pdf_page_count(pdf_bytes)

    now = now or datetime.utcnow()
    file_name = f"lease-{lease.lease_number}-{now:%Y-%m-%d-%H%M%S}.pdf"
    storage_key = f"{user.id}/leases/{lease.id}/{file_name}"
    doc = store_document(
        s,
        user,
        storage,
        storage_key=storage_key,
        file_bytes=pdf_bytes,
        file_name=file_name,
        mime_type="application/pdf",
        values={
            "type": "LEASE",
            "status": "ACTIVE",
            "title": f"Lease Agreement - {lease.lease_number}",
            "description": f"Generated lease document for {tenant.first_name} {tenant.last_name}",
            "property_id": prop.id,
            "tenant_id": tenant.id,
            "lease_id": lease.id,
        },
        action="document.generate",
    )

    addendum_used = [tpl.type for tpl in addenda]
    try:
        lease.lease_document_url = lease_document_path(lease)
        lease.updated_at = now
        record_event(
            s,
            actor=user,
            action="lease.generate_document",
            entity_type="Lease",
            entity_id=str(lease.id),
            metadata={
                "document_id": doc.id,
                "main_template_id": main.id,
                "addenda": addendum_used,
                "page_count": page_count,
            },
        )
    except Exception:
        discard_stored_file(storage, doc.storage_path)
        raise
    current_app.logger.info(
        "Generated lease document lease=%s document=%s pages=%s addenda=%s", lease.id, doc.id, page_count, addendum_used
    )
    return {
        "document_id": doc.id,
        "lease_id": lease.id,
        "document_url": lease.lease_document_url,
        "storage_path": storage_key,
        "file_name": file_name,
        "file_size": doc.file_size,
        "page_count": page_count,
        "addenda": addendum_used,
        "generated_at": now.isoformat(),
    }


def regenerate_lease_pdf(s: "Session", user: "User", lease_id: int, **kwargs: Any) -> dict[str, Any]:
    return generate_lease_pdf(s, user, lease_id, **kwargs)


def latest_lease_document(s: "Session", user: "User", lease_id: int) -> Document:
    lease = get_lease_for_user(s, user, lease_id)
    live = owned_documents(s, user).filter(Document.status != "DELETED")
    doc = (
        live.filter(Document.lease_id == lease.id, Document.type == "LEASE")
        .order_by(Document.created_at.desc(), Document.id.desc())
        .first()
    )
    if doc is None:
        doc = (
            live.filter(Document.file_name.like(f"lease-{lease.lease_number}%"))
            .order_by(Document.created_at.desc(), Document.id.desc())
            .first()
        )
    if doc is None:
        raise NotFound(DOCUMENT_MISSING)
    return doc

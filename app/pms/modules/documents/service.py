from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy import func, or_

from app.pms.audit import record_event
from app.pms.errors import NotFound, ServiceError
from app.pms.modules.documents.models import DOCUMENT_STATUSES, DOCUMENT_TYPES, Document
from app.pms.modules.leases.service import get_lease_for_user
from app.pms.modules.properties.service import get_property_for_user
from app.pms.modules.tenants.service import get_tenant_for_user
from app.pms.storage import Storage, StorageError
from app.pms.utils import (
    apply_updates,
    enum_errors,
    field_errors,
    model_to_dict,
    parse_fields,
    sanitize_upload_filename,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


DOCUMENT_FIELDS = {
    "type": "str",
    "status": "str",
    "title": "str",
    "description": "str",
    "tags": "list",
    "expires_at": "datetime",
    "property_id": "int",
    "tenant_id": "int",
    "lease_id": "int",
}


def validate_document_payload(payload: dict) -> list[str]:
    errors = field_errors(payload, DOCUMENT_FIELDS)
    errors.extend(enum_errors(payload, {"type": DOCUMENT_TYPES, "status": DOCUMENT_STATUSES}))
    if payload.get("status") == "DELETED":
        errors.append("Use DELETE to remove a document.")
    return errors


def serialize_document(d: Document) -> dict:
    out = model_to_dict(d, exclude=("storage_path",))
    out["download_url"] = f"/api/documents/{d.id}/download"
    return out


def owned_documents(s: "Session", user: "User") -> "Query":
    return s.query(Document).filter(Document.uploaded_by_id == user.id)


def get_document_for_user(s: "Session", user: "User", document_id: int) -> Document:
    doc = (
        owned_documents(s, user)
        .filter(Document.id == document_id, Document.status != "DELETED")
        .one_or_none()
    )
    if not doc:
        raise NotFound("Document not found.")
    return doc


def list_documents(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_documents(s, user)
    status = (args.get("status") or "").strip()
    q = q.filter(Document.status == status) if status else q.filter(Document.status != "DELETED")
    doc_type = (args.get("type") or "").strip()
    if doc_type:
        q = q.filter(Document.type == doc_type)
    for key, col in (
        ("property_id", Document.property_id),
        ("tenant_id", Document.tenant_id),
        ("lease_id", Document.lease_id),
    ):
        raw = args.get(key)
        if raw:
            try:
                q = q.filter(col == int(raw))
            except (TypeError, ValueError):
                raise ServiceError(f"{key} must be an integer.") from None
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Document.title.ilike(like), Document.file_name.ilike(like), Document.description.ilike(like)))
    return q.order_by(Document.created_at.desc(), Document.id.desc())


def _check_relations(s: "Session", user: "User", values: dict) -> None:
    if values.get("property_id"):
        get_property_for_user(s, user, values["property_id"])
    if values.get("tenant_id"):
        get_tenant_for_user(s, user, values["tenant_id"])
    if values.get("lease_id"):
        get_lease_for_user(s, user, values["lease_id"])


def discard_stored_file(storage: Storage, key: str) -> None:
    try:
        storage.delete(key)
    except StorageError:
        current_app.logger.warning("Could not delete orphaned stored file %s", key)


def store_document(
    s: "Session",
    user: "User",
    storage: Storage,
    *,
    storage_key: str,
    file_bytes: bytes,
    file_name: str,
    mime_type: str,
    values: dict,
    action: str = "document.upload",
) -> Document:
    """
    Write bytes to storage and record the Document row pointing at them.

    The stored object is removed again if the row cannot be written.
    """
    stored = storage.save(storage_key, file_bytes, content_type=mime_type)
    now = datetime.utcnow()
    try:
        doc = Document(
            **values,
            file_name=file_name,
            file_size=stored.size,
            mime_type=stored.content_type,
            storage_path=stored.key,
            sha256=stored.sha256,
            uploaded_by_id=user.id,
            created_at=now,
            updated_at=now,
        )
        s.add(doc)
        s.flush()
        record_event(
            s,
            actor=user,
            action=action,
            entity_type="Document",
            entity_id=str(doc.id),
            metadata={"storage_path": stored.key, "sha256": stored.sha256, "file_size": stored.size, "type": doc.type},
        )
    except Exception:
        discard_stored_file(storage, stored.key)
        raise
    return doc


def upload_document(
    s: "Session",
    user: "User",
    storage: Storage,
    payload: dict,
    *,
    file_bytes: bytes,
    filename: str | None,
    content_type: str | None,
) -> Document:
    if not file_bytes:
        raise ServiceError("File is required.")
    values = parse_fields(payload, DOCUMENT_FIELDS, drop_none=True)
    _check_relations(s, user, values)
    safe_name = sanitize_upload_filename(filename)
    values.setdefault("title", safe_name)
    values.setdefault("status", "ACTIVE")
    key = f"documents/{user.id}/{uuid.uuid4().hex}/{safe_name}"
    return store_document(
        s,
        user,
        storage,
        storage_key=key,
        file_bytes=file_bytes,
        file_name=safe_name,
        mime_type=(content_type or "application/octet-stream").strip(),
        values=values,
    )


def update_document(s: "Session", doc: Document, payload: dict, user: "User") -> Document:
    values = parse_fields(payload, DOCUMENT_FIELDS)
    _check_relations(s, user, values)
    changes = apply_updates(doc, values)
    doc.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="document.edit",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"changes": changes},
    )
    return doc


def delete_document(s: "Session", doc: Document, user: "User", storage: Storage) -> None:
    """Soft delete: keep the row as DELETED, drop the stored bytes."""
    try:
        storage.delete(doc.storage_path)
    except StorageError:
        current_app.logger.warning("Stored object already missing for document %s: %s", doc.id, doc.storage_path)
    doc.status = "DELETED"
    doc.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="document.delete",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"storage_path": doc.storage_path},
    )


def document_counts(s: "Session", user: "User") -> dict:
    rows = (
        owned_documents(s, user)
        .filter(Document.status != "DELETED")
        .with_entities(Document.type, func.count(Document.id))
        .group_by(Document.type)
        .all()
    )
    by_type = {t: c for t, c in rows}
    return {"total": sum(by_type.values()), "by_type": by_type}

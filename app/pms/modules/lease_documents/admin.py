from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.documents.service import discard_stored_file
from app.pms.modules.lease_documents.service import generate_lease_pdf, latest_lease_document, regenerate_lease_pdf
from app.pms.rbac import require_permission
from app.pms.storage import storage_from_config
from app.pms.utils import parse_bool

bp = Blueprint("lease_documents", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _generate(lease_id: int, fn):
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    try:
        include = parse_bool(payload.get("include_addenda"))
    except ValueError:
        return jsonify({"errors": ["include_addenda must be true or false."]}), 400
    storage = storage_from_config(current_app.config)
    result = fn(
        s,
        u,
        lease_id,
        storage=storage,
        addendum_types=payload.get("addendum_types"),
        include_addenda=True if include is None else include,
    )
    try:
        s.commit()
    except Exception:
        discard_stored_file(storage, result["storage_path"])
        raise
    return jsonify(result), 201


@bp.post("/<int:lease_id>/generate-document")
@require_permission("leases.generate")
def lease_generate_document(lease_id: int):
    return _generate(lease_id, generate_lease_pdf)


@bp.post("/<int:lease_id>/regenerate-document")
@require_permission("leases.generate")
def lease_regenerate_document(lease_id: int):
    return _generate(lease_id, regenerate_lease_pdf)


@bp.get("/<int:lease_id>/document")
@require_permission("leases.view")
def lease_document_download(lease_id: int):
    s = db_session()
    doc = latest_lease_document(s, _current_user(), lease_id)
    fobj = storage_from_config(current_app.config).open(doc.storage_path)
    return send_file(fobj, mimetype=doc.mime_type, as_attachment=True, download_name=doc.file_name, max_age=0)

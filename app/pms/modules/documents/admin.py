from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.documents.service import (
    delete_document,
    document_counts,
    get_document_for_user,
    list_documents,
    serialize_document,
    update_document,
    upload_document,
    validate_document_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission
from app.pms.storage import storage_from_config

bp = Blueprint("documents", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("documents.view")
def document_list():
    s = db_session()
    q = list_documents(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_document))


@bp.get("/counts")
@require_permission("documents.view")
def document_counts_view():
    s = db_session()
    return jsonify(document_counts(s, _current_user()))


@bp.post("")
@require_permission("documents.edit")
def document_upload():
    s = db_session()
    u = _current_user()
    payload = request.form.to_dict()
    if "tags" in request.form:
        payload["tags"] = request.form.getlist("tags")
        if len(payload["tags"]) == 1:
            payload["tags"] = payload["tags"][0]
    errors = validate_document_payload(payload)
    f = request.files.get("file")
    if not f or not f.filename:
        errors.append("File is required.")
    if errors:
        return jsonify({"errors": errors}), 400
    doc = upload_document(
        s,
        u,
        storage_from_config(current_app.config),
        payload,
        file_bytes=f.read(),
        filename=f.filename,
        content_type=f.mimetype,
    )
    s.commit()
    return jsonify(serialize_document(doc)), 201


@bp.get("/<int:document_id>")
@require_permission("documents.view")
def document_detail(document_id: int):
    s = db_session()
    return jsonify(serialize_document(get_document_for_user(s, _current_user(), document_id)))


@bp.route("/<int:document_id>", methods=["PUT", "PATCH"])
@require_permission("documents.edit")
def document_update(document_id: int):
    s = db_session()
    u = _current_user()
    doc = get_document_for_user(s, u, document_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_document_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    update_document(s, doc, payload, u)
    s.commit()
    return jsonify(serialize_document(doc))


@bp.delete("/<int:document_id>")
@require_permission("documents.edit")
def document_delete(document_id: int):
    s = db_session()
    u = _current_user()
    doc = get_document_for_user(s, u, document_id)
    delete_document(s, doc, u, storage_from_config(current_app.config))
    s.commit()
    return jsonify({"ok": True})


@bp.get("/<int:document_id>/download")
@require_permission("documents.view")
def document_download(document_id: int):
    s = db_session()
    doc = get_document_for_user(s, _current_user(), document_id)
    fobj = storage_from_config(current_app.config).open(doc.storage_path)
    return send_file(fobj, mimetype=doc.mime_type, as_attachment=True, download_name=doc.file_name, max_age=0)

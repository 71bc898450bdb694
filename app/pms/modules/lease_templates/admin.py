from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.pms.db import db_session
from app.pms.errors import NotFound
from app.pms.models import User
from app.pms.modules.lease_templates.docx_processor import TemplateError
from app.pms.modules.lease_templates.service import (
    DOCX_MIMETYPE,
    archive_template,
    confirm_template,
    create_template,
    delete_template,
    duplicate_template,
    get_template,
    list_templates,
    preview_template,
    serialize_template,
    set_default_template,
    update_template,
    validate_template_payload,
)
from app.pms.modules.lease_templates.template_variables import build_variable_schema
from app.pms.pagination import paginate
from app.pms.rbac import require_permission
from app.pms.storage import storage_from_config
from app.pms.utils import parse_bool

bp = Blueprint("lease_templates", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("templates.view")
def template_list():
    s = db_session()
    return jsonify(paginate(list_templates(s, request.args), request.args, serialize_template))


@bp.get("/variables")
@require_permission("templates.view")
def template_variables():
    return jsonify(build_variable_schema())


@bp.post("")
@require_permission("templates.edit")
def template_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) if request.is_json else request.form.to_dict()
    payload = payload or {}
    errors = validate_template_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    f = request.files.get("file")
    tpl = create_template(
        s,
        payload,
        u,
        storage=storage_from_config(current_app.config),
        file_bytes=f.read() if f and f.filename else None,
        filename=f.filename if f else None,
    )
    s.commit()
    return jsonify(serialize_template(tpl)), 201


@bp.get("/<int:template_id>")
@require_permission("templates.view")
def template_detail(template_id: int):
    s = db_session()
    return jsonify(serialize_template(get_template(s, template_id)))


@bp.post("/<int:template_id>/confirm")
@require_permission("templates.edit")
def template_confirm(template_id: int):
    s = db_session()
    u = _current_user()
    tpl = get_template(s, template_id)
    try:
        result = confirm_template(s, tpl, u, storage_from_config(current_app.config))
    except TemplateError:
        # the rejected upload and its record are already removed
        s.commit()
        raise
    s.commit()
    return jsonify(
        {
            "template": serialize_template(result["template"]),
            "validation": result["validation"],
            "warnings": result["warnings"],
        }
    )


@bp.route("/<int:template_id>", methods=["PUT", "PATCH"])
@require_permission("templates.edit")
def template_update(template_id: int):
    s = db_session()
    u = _current_user()
    tpl = get_template(s, template_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_template_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_template(s, tpl, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_template(tpl))


@bp.post("/<int:template_id>/set-default")
@require_permission("templates.edit")
def template_set_default(template_id: int):
    s = db_session()
    u = _current_user()
    tpl = set_default_template(s, get_template(s, template_id), u)
    s.commit()
    return jsonify(serialize_template(tpl))


@bp.post("/<int:template_id>/archive")
@require_permission("templates.edit")
def template_archive(template_id: int):
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    archive = parse_bool(payload.get("archive"))
    tpl = archive_template(s, get_template(s, template_id), u, archive=True if archive is None else archive)
    s.commit()
    return jsonify(serialize_template(tpl))


@bp.post("/<int:template_id>/unarchive")
@require_permission("templates.edit")
def template_unarchive(template_id: int):
    s = db_session()
    u = _current_user()
    tpl = archive_template(s, get_template(s, template_id), u, archive=False)
    s.commit()
    return jsonify(serialize_template(tpl))


@bp.post("/<int:template_id>/duplicate")
@require_permission("templates.edit")
def template_duplicate(template_id: int):
    s = db_session()
    u = _current_user()
    copy = duplicate_template(s, get_template(s, template_id), request.get_json(silent=True) or {}, u)
    s.commit()
    return jsonify(serialize_template(copy)), 201


@bp.delete("/<int:template_id>")
@require_permission("templates.edit")
def template_delete(template_id: int):
    s = db_session()
    u = _current_user()
    delete_template(s, get_template(s, template_id), u)
    s.commit()
    return jsonify({"ok": True})


@bp.post("/<int:template_id>/preview")
@require_permission("templates.view")
def template_preview(template_id: int):
    s = db_session()
    payload = request.get_json(silent=True) or {}
    data = payload.get("sample_data")
    if data is not None and not isinstance(data, dict):
        return jsonify({"errors": ["sample_data must be an object."]}), 400
    return jsonify(preview_template(get_template(s, template_id), data))


@bp.get("/<int:template_id>/file")
@require_permission("templates.view")
def template_file(template_id: int):
    s = db_session()
    tpl = get_template(s, template_id)
    if not tpl.template_file_path:
        raise NotFound("Template file not found.")
    fobj = storage_from_config(current_app.config).open(tpl.template_file_path)
    return send_file(
        fobj,
        mimetype=DOCX_MIMETYPE,
        as_attachment=True,
        download_name=tpl.template_file_name or f"template-{tpl.id}.docx",
        max_age=0,
    )

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.inspections.service import (
    add_item,
    apply_room_template,
    cancel_inspection,
    complete_inspection,
    create_inspection,
    delete_item,
    get_inspection_for_user,
    get_item,
    list_inspections,
    room_templates,
    serialize_inspection,
    serialize_item,
    start_inspection,
    update_inspection,
    update_item,
    validate_inspection_payload,
    validate_item_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission

bp = Blueprint("inspections", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("inspections.view")
def inspection_list():
    s = db_session()
    q = list_inspections(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_inspection))


@bp.get("/room-templates")
@require_permission("inspections.view")
def inspection_room_templates():
    return jsonify(room_templates())


@bp.post("")
@require_permission("inspections.edit")
def inspection_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_inspection_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    inspection = create_inspection(s, payload, u)
    s.commit()
    return jsonify(serialize_inspection(inspection, with_items=True)), 201


@bp.get("/<int:inspection_id>")
@require_permission("inspections.view")
def inspection_detail(inspection_id: int):
    s = db_session()
    inspection = get_inspection_for_user(s, _current_user(), inspection_id)
    return jsonify(serialize_inspection(inspection, with_items=True))


@bp.route("/<int:inspection_id>", methods=["PUT", "PATCH"])
@require_permission("inspections.edit")
def inspection_update(inspection_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_inspection_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_inspection(s, inspection, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_inspection(inspection, with_items=True))


@bp.post("/<int:inspection_id>/start")
@require_permission("inspections.edit")
def inspection_start(inspection_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    start_inspection(s, inspection, u)
    s.commit()
    return jsonify(serialize_inspection(inspection, with_items=True))


@bp.post("/<int:inspection_id>/complete")
@require_permission("inspections.edit")
def inspection_complete(inspection_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    complete_inspection(s, inspection, request.get_json(silent=True) or {}, u)
    s.commit()
    return jsonify(serialize_inspection(inspection, with_items=True))


@bp.post("/<int:inspection_id>/cancel")
@require_permission("inspections.edit")
def inspection_cancel(inspection_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    cancel_inspection(s, inspection, request.get_json(silent=True) or {}, u)
    s.commit()
    return jsonify(serialize_inspection(inspection, with_items=True))


@bp.post("/<int:inspection_id>/items")
@require_permission("inspections.edit")
def inspection_item_add(inspection_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_item_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    item = add_item(s, inspection, payload, u)
    s.commit()
    return jsonify(serialize_item(item)), 201


@bp.post("/<int:inspection_id>/apply-template")
@require_permission("inspections.edit")
def inspection_apply_template(inspection_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    payload = request.get_json(silent=True) or {}
    items = apply_room_template(s, inspection, (payload.get("room") or "").strip(), u, label=payload.get("room_name"))
    s.commit()
    return jsonify({"data": [serialize_item(i) for i in items]}), 201


@bp.route("/<int:inspection_id>/items/<int:item_id>", methods=["PUT", "PATCH"])
@require_permission("inspections.edit")
def inspection_item_update(inspection_id: int, item_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    item = get_item(inspection, item_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_item_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_item(s, inspection, item, payload, u)
    s.commit()
    return jsonify(serialize_item(item))


@bp.delete("/<int:inspection_id>/items/<int:item_id>")
@require_permission("inspections.edit")
def inspection_item_delete(inspection_id: int, item_id: int):
    s = db_session()
    u = _current_user()
    inspection = get_inspection_for_user(s, u, inspection_id)
    delete_item(s, inspection, get_item(inspection, item_id), u)
    s.commit()
    return jsonify({"ok": True})

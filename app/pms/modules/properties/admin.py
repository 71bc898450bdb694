from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.properties.service import (
    create_property,
    delete_property,
    get_property_for_user,
    list_properties,
    property_stats,
    serialize_property,
    serialize_unit,
    update_property,
    validate_property_payload,
)
from app.pms.modules.properties.units import (
    bulk_create_units,
    bulk_delete_units,
    create_unit,
    delete_unit,
    get_unit_for_user,
    list_units,
    update_unit,
    validate_unit_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission

bp = Blueprint("properties", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Properties ----------
@bp.get("/properties")
@require_permission("properties.view")
def property_list():
    s = db_session()
    q = list_properties(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_property))


@bp.post("/properties")
@require_permission("properties.edit")
def property_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_property_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    prop = create_property(s, payload, u)
    s.commit()
    return jsonify(serialize_property(prop, with_units=True)), 201


@bp.get("/properties/stats")
@require_permission("properties.view")
def property_stats_get():
    s = db_session()
    return jsonify(property_stats(s, _current_user()))


@bp.get("/properties/<int:property_id>")
@require_permission("properties.view")
def property_detail(property_id: int):
    s = db_session()
    prop = get_property_for_user(s, _current_user(), property_id)
    return jsonify(serialize_property(prop, with_units=True))


@bp.route("/properties/<int:property_id>", methods=["PUT", "PATCH"])
@require_permission("properties.edit")
def property_update(property_id: int):
    s = db_session()
    u = _current_user()
    prop = get_property_for_user(s, u, property_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_property_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_property(s, prop, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_property(prop, with_units=True))


@bp.delete("/properties/<int:property_id>")
@require_permission("properties.edit")
def property_delete(property_id: int):
    s = db_session()
    u = _current_user()
    prop = get_property_for_user(s, u, property_id)
    delete_property(s, prop, u)
    s.commit()
    return jsonify({"ok": True})


# ---------- Units ----------
@bp.get("/properties/<int:property_id>/units")
@require_permission("properties.view")
def property_units(property_id: int):
    s = db_session()
    u = _current_user()
    get_property_for_user(s, u, property_id)
    args = dict(request.args)
    args["property_id"] = property_id
    return jsonify(paginate(list_units(s, u, args), args, serialize_unit))


@bp.post("/properties/<int:property_id>/units")
@require_permission("properties.edit")
def unit_create(property_id: int):
    s = db_session()
    u = _current_user()
    prop = get_property_for_user(s, u, property_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_unit_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    unit = create_unit(s, prop, payload, u)
    s.commit()
    return jsonify(serialize_unit(unit)), 201


@bp.post("/properties/<int:property_id>/units/bulk")
@require_permission("properties.edit")
def unit_bulk_create(property_id: int):
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    units = bulk_create_units(s, u, property_id, payload.get("units"))
    s.commit()
    return jsonify({"data": [serialize_unit(x) for x in units], "count": len(units)}), 201


@bp.get("/units")
@require_permission("properties.view")
def unit_list():
    s = db_session()
    return jsonify(paginate(list_units(s, _current_user(), request.args), request.args, serialize_unit))


@bp.get("/units/<int:unit_id>")
@require_permission("properties.view")
def unit_detail(unit_id: int):
    s = db_session()
    return jsonify(serialize_unit(get_unit_for_user(s, _current_user(), unit_id)))


@bp.route("/units/<int:unit_id>", methods=["PUT", "PATCH"])
@require_permission("properties.edit")
def unit_update(unit_id: int):
    s = db_session()
    u = _current_user()
    unit = get_unit_for_user(s, u, unit_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_unit_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_unit(s, unit, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_unit(unit))


@bp.delete("/units/<int:unit_id>")
@require_permission("properties.edit")
def unit_delete(unit_id: int):
    s = db_session()
    u = _current_user()
    unit = get_unit_for_user(s, u, unit_id)
    delete_unit(s, unit, u)
    s.commit()
    return jsonify({"ok": True})


@bp.post("/units/bulk-delete")
@require_permission("properties.edit")
def unit_bulk_delete():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    deleted = bulk_delete_units(s, u, payload.get("ids"))
    s.commit()
    return jsonify({"deleted": deleted})

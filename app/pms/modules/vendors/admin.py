from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.vendors.service import (
    create_vendor,
    delete_vendor,
    get_vendor_for_user,
    list_vendors,
    serialize_vendor,
    update_vendor,
    validate_vendor_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission

bp = Blueprint("vendors", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("vendors.view")
def vendor_list():
    s = db_session()
    q = list_vendors(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_vendor))


@bp.post("")
@require_permission("vendors.edit")
def vendor_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_vendor_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    vendor = create_vendor(s, payload, u)
    s.commit()
    return jsonify(serialize_vendor(vendor)), 201


@bp.get("/<int:vendor_id>")
@require_permission("vendors.view")
def vendor_detail(vendor_id: int):
    s = db_session()
    vendor = get_vendor_for_user(s, _current_user(), vendor_id)
    return jsonify(serialize_vendor(vendor))


@bp.route("/<int:vendor_id>", methods=["PUT", "PATCH"])
@require_permission("vendors.edit")
def vendor_update(vendor_id: int):
    s = db_session()
    u = _current_user()
    vendor = get_vendor_for_user(s, u, vendor_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_vendor_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_vendor(s, vendor, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_vendor(vendor))


@bp.delete("/<int:vendor_id>")
@require_permission("vendors.edit")
def vendor_delete(vendor_id: int):
    s = db_session()
    u = _current_user()
    vendor = get_vendor_for_user(s, u, vendor_id)
    delete_vendor(s, vendor, u)
    s.commit()
    return jsonify({"ok": True})

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.tenants.service import (
    create_tenant,
    delete_tenant,
    get_tenant_for_user,
    list_tenants,
    serialize_tenant,
    update_tenant,
    validate_tenant_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission

bp = Blueprint("tenants", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("tenants.view")
def tenant_list():
    s = db_session()
    q = list_tenants(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_tenant))


@bp.post("")
@require_permission("tenants.edit")
def tenant_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_tenant_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    tenant = create_tenant(s, payload, u)
    s.commit()
    return jsonify(serialize_tenant(tenant)), 201


@bp.get("/<int:tenant_id>")
@require_permission("tenants.view")
def tenant_detail(tenant_id: int):
    s = db_session()
    tenant = get_tenant_for_user(s, _current_user(), tenant_id)
    return jsonify(serialize_tenant(tenant, with_leases=True))


@bp.route("/<int:tenant_id>", methods=["PUT", "PATCH"])
@require_permission("tenants.edit")
def tenant_update(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_tenant_for_user(s, u, tenant_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_tenant_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_tenant(s, tenant, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_tenant(tenant))


@bp.delete("/<int:tenant_id>")
@require_permission("tenants.edit")
def tenant_delete(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_tenant_for_user(s, u, tenant_id)
    delete_tenant(s, tenant, u)
    s.commit()
    return jsonify({"ok": True})

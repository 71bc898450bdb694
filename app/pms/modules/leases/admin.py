from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.leases.renewals import renew_lease, renewal_history, validate_renewal_payload
from app.pms.modules.leases.service import (
    add_addendum,
    add_co_tenant,
    create_lease,
    delete_addendum,
    delete_lease,
    expiring_leases,
    get_lease_for_user,
    list_leases,
    remove_co_tenant,
    serialize_co_tenant,
    serialize_lease,
    update_lease,
    validate_addendum_payload,
    validate_lease_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission
from app.pms.utils import model_to_dict

bp = Blueprint("leases", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("leases.view")
def lease_list():
    s = db_session()
    q = list_leases(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_lease))


@bp.post("")
@require_permission("leases.edit")
def lease_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_lease_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    lease = create_lease(s, payload, u)
    s.commit()
    return jsonify(serialize_lease(lease, detail=True)), 201


@bp.get("/expiring")
@require_permission("leases.view")
def lease_expiring():
    s = db_session()
    return jsonify(expiring_leases(s, _current_user()))


@bp.get("/<int:lease_id>")
@require_permission("leases.view")
def lease_detail(lease_id: int):
    s = db_session()
    lease = get_lease_for_user(s, _current_user(), lease_id)
    return jsonify(serialize_lease(lease, detail=True))


@bp.route("/<int:lease_id>", methods=["PUT", "PATCH"])
@require_permission("leases.edit")
def lease_update(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_lease_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_lease(s, lease, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_lease(lease, detail=True))


@bp.delete("/<int:lease_id>")
@require_permission("leases.edit")
def lease_delete(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    delete_lease(s, lease, u)
    s.commit()
    return jsonify({"ok": True})


# ---------- Renewals ----------
@bp.post("/<int:lease_id>/renew")
@require_permission("leases.edit")
def lease_renew(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_renewal_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    renewal = renew_lease(s, u, lease, payload)
    s.commit()
    return jsonify(serialize_lease(renewal, detail=True)), 201


@bp.get("/<int:lease_id>/renewals")
@require_permission("leases.view")
def lease_renewal_history(lease_id: int):
    s = db_session()
    u = _current_user()
    return jsonify(renewal_history(s, u, get_lease_for_user(s, u, lease_id)))


# ---------- Co-tenants ----------
@bp.post("/<int:lease_id>/tenants")
@require_permission("leases.edit")
def lease_co_tenant_add(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    ct = add_co_tenant(s, u, lease, request.get_json(silent=True) or {})
    s.commit()
    return jsonify(serialize_co_tenant(ct)), 201


@bp.delete("/<int:lease_id>/tenants/<int:tenant_id>")
@require_permission("leases.edit")
def lease_co_tenant_remove(lease_id: int, tenant_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    remove_co_tenant(s, u, lease, tenant_id)
    s.commit()
    return jsonify({"ok": True})


# ---------- Addenda ----------
@bp.get("/<int:lease_id>/addenda")
@require_permission("leases.view")
def lease_addenda_list(lease_id: int):
    s = db_session()
    lease = get_lease_for_user(s, _current_user(), lease_id)
    return jsonify({"data": [model_to_dict(a) for a in lease.addenda]})


@bp.post("/<int:lease_id>/addenda")
@require_permission("leases.edit")
def lease_addendum_add(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_addendum_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    addendum = add_addendum(s, u, lease, payload)
    s.commit()
    return jsonify(model_to_dict(addendum)), 201


@bp.delete("/<int:lease_id>/addenda/<int:addendum_id>")
@require_permission("leases.edit")
def lease_addendum_delete(lease_id: int, addendum_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    delete_addendum(s, u, lease, addendum_id)
    s.commit()
    return jsonify({"ok": True})

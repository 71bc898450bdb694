from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.deposits.service import (
    create_disposition,
    deposit_detail,
    deposit_stats,
    list_deposits,
    process_refund,
    record_interest_payment,
    serialize_disposition,
    validate_disposition_payload,
    validate_interest_payload,
    validate_refund_payload,
)
from app.pms.modules.leases.service import get_lease_for_user
from app.pms.modules.payments.service import serialize_payment
from app.pms.rbac import require_permission

bp = Blueprint("deposits", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("deposits.view")
def deposit_list():
    s = db_session()
    return jsonify(list_deposits(s, _current_user(), request.args))


@bp.get("/stats")
@require_permission("deposits.view")
def deposit_stats_view():
    s = db_session()
    return jsonify(deposit_stats(s, _current_user()))


@bp.get("/<int:lease_id>")
@require_permission("deposits.view")
def deposit_detail_view(lease_id: int):
    s = db_session()
    return jsonify(deposit_detail(s, get_lease_for_user(s, _current_user(), lease_id)))


@bp.post("/<int:lease_id>/interest-payments")
@require_permission("deposits.edit")
def deposit_interest_pay(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_interest_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    payment = record_interest_payment(s, u, lease, payload)
    s.commit()
    return jsonify(serialize_payment(payment)), 201


@bp.post("/<int:lease_id>/disposition")
@require_permission("deposits.edit")
def deposit_disposition_create(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_disposition_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    disposition = create_disposition(s, u, lease, payload)
    s.commit()
    return jsonify(serialize_disposition(disposition)), 201


@bp.post("/<int:lease_id>/refund")
@require_permission("deposits.edit")
def deposit_refund(lease_id: int):
    s = db_session()
    u = _current_user()
    lease = get_lease_for_user(s, u, lease_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_refund_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    payment = process_refund(s, u, lease, payload)
    s.commit()
    return jsonify(serialize_payment(payment)), 201

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.pms.db import db_session
from app.pms.errors import ServiceError
from app.pms.models import User
from app.pms.modules.leases.service import get_lease_for_user
from app.pms.modules.payments.late_fees import (
    apply_late_fee,
    calculate_late_fee,
    check_and_apply_late_fees,
    late_fee_stats,
    list_late_fees,
    validate_apply_payload,
    validate_waive_payload,
    waive_late_fee,
)
from app.pms.modules.payments.service import (
    create_payment,
    delete_payment,
    get_payment_for_user,
    list_payments,
    payment_stats,
    rent_roll,
    serialize_payment,
    update_payment,
    validate_payment_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission
from app.pms.utils import parse_bool, parse_date, parse_int

bp = Blueprint("payments", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("payments.view")
def payment_list():
    s = db_session()
    q = list_payments(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_payment))


@bp.get("/stats")
@require_permission("payments.view")
def payment_stats_view():
    s = db_session()
    return jsonify(payment_stats(s, _current_user()))


@bp.get("/rent-roll")
@require_permission("payments.view")
def payment_rent_roll():
    s = db_session()
    return jsonify(rent_roll(s, _current_user()))


@bp.post("")
@require_permission("payments.edit")
def payment_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_payment_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    payment = create_payment(s, payload, u)
    s.commit()
    return jsonify(serialize_payment(payment)), 201


@bp.get("/<int:payment_id>")
@require_permission("payments.view")
def payment_detail(payment_id: int):
    s = db_session()
    return jsonify(serialize_payment(get_payment_for_user(s, _current_user(), payment_id)))


@bp.route("/<int:payment_id>", methods=["PUT", "PATCH"])
@require_permission("payments.edit")
def payment_update(payment_id: int):
    s = db_session()
    u = _current_user()
    payment = get_payment_for_user(s, u, payment_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_payment_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_payment(s, payment, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_payment(payment))


@bp.delete("/<int:payment_id>")
@require_permission("payments.edit")
def payment_delete(payment_id: int):
    s = db_session()
    u = _current_user()
    delete_payment(s, get_payment_for_user(s, u, payment_id), u)
    s.commit()
    return jsonify({"ok": True})


# ---------- Late fees ----------
@bp.get("/late-fees")
@require_permission("payments.view")
def late_fee_list():
    s = db_session()
    q = list_late_fees(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_payment))


@bp.get("/late-fees/stats")
@require_permission("payments.view")
def late_fee_stats_view():
    s = db_session()
    return jsonify(late_fee_stats(s, _current_user()))


@bp.get("/late-fees/calculate")
@require_permission("payments.view")
def late_fee_calculate():
    s = db_session()
    u = _current_user()
    try:
        lease_id = parse_int(request.args.get("lease_id"))
        for_month = parse_date(request.args.get("for_month"))
    except ValueError:
        raise ServiceError("lease_id must be an integer and for_month a YYYY-MM-DD date.") from None
    if lease_id is None:
        raise ServiceError("lease_id is required.")
    return jsonify(calculate_late_fee(s, get_lease_for_user(s, u, lease_id), for_month))


@bp.post("/late-fees")
@require_permission("payments.edit")
def late_fee_apply():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_apply_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    lease = get_lease_for_user(s, u, parse_int(payload["lease_id"]))
    payment = apply_late_fee(s, u, lease, payload, current_app.config)
    s.commit()
    return jsonify(serialize_payment(payment)), 201


@bp.post("/late-fees/check")
@require_permission("payments.edit")
def late_fee_check():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    try:
        property_id = parse_int(payload.get("property_id"))
        dry_run = bool(parse_bool(payload.get("dry_run")))
    except ValueError:
        return jsonify({"errors": ["property_id must be an integer and dry_run true or false."]}), 400
    result = check_and_apply_late_fees(s, current_app.config, user=u, property_id=property_id, dry_run=dry_run)
    s.commit()
    return jsonify(result)


@bp.post("/<int:payment_id>/waive")
@require_permission("payments.edit")
def late_fee_waive(payment_id: int):
    s = db_session()
    u = _current_user()
    payment = get_payment_for_user(s, u, payment_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_waive_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    waive_late_fee(s, u, payment, payload)
    s.commit()
    return jsonify(serialize_payment(payment))

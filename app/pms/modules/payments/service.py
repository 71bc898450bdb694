from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.pms.audit import record_event
from app.pms.errors import NotFound, ServiceError
from app.pms.modules.leases.models import Lease
from app.pms.modules.leases.service import get_lease_for_user, owned_leases
from app.pms.modules.payments.models import PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_TYPES, Payment
from app.pms.modules.tenants.models import Tenant
from app.pms.modules.tenants.service import get_tenant_for_user
from app.pms.utils import (
    apply_updates,
    enum_errors,
    field_errors,
    generate_number,
    model_to_dict,
    parse_date,
    parse_fields,
    pct,
    required_errors,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


PAYMENT_FIELDS = {
    "type": "str",
    "method": "str",
    "status": "str",
    "amount": "decimal",
    "applied_amount": "decimal",
    "processing_fee": "decimal",
    "payment_date": "date",
    "due_date": "date",
    "received_date": "date",
    "reference_number": "str",
    "memo": "str",
    "period_start": "date",
    "period_end": "date",
    "notes": "str",
    "lease_id": "int",
}

ZERO = Decimal("0.00")


def month_bounds(today: date) -> tuple[date, date]:
    """First day of this month and first day of next month."""
    start = today.replace(day=1)
    nxt = date(start.year + (start.month == 12), start.month % 12 + 1, 1)
    return start, nxt


def validate_payment_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"tenant_id": "Tenant", "amount": "Amount"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload and k != "tenant_id"}
    errors.extend(required_errors(payload, required))
    type_errors = field_errors(payload, {**PAYMENT_FIELDS, "tenant_id": "int"})
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"type": PAYMENT_TYPES, "method": PAYMENT_METHODS, "status": PAYMENT_STATUSES}))
    if type_errors:
        return errors
    v = parse_fields(payload, PAYMENT_FIELDS)
    if "amount" in payload and (v.get("amount") is None or v["amount"] <= 0):
        errors.append("Amount must be greater than 0.")
    for key in ("applied_amount", "processing_fee"):
        if v.get(key) is not None and v[key] < 0:
            errors.append(f"{key} must not be negative.")
    if v.get("period_start") and v.get("period_end") and v["period_end"] < v["period_start"]:
        errors.append("Period end must not be before period start.")
    return errors


def serialize_payment(p: Payment) -> dict:
    d = model_to_dict(p)
    d["tenant_name"] = p.tenant.full_name if p.tenant else None
    d["lease_number"] = p.lease.lease_number if p.lease else None
    return d


def owned_payments(s: "Session", user: "User") -> "Query":
    return s.query(Payment).join(Tenant, Tenant.id == Payment.tenant_id).filter(Tenant.manager_id == user.id)


def get_payment_for_user(s: "Session", user: "User", payment_id: int) -> Payment:
    payment = owned_payments(s, user).filter(Payment.id == payment_id).one_or_none()
    if not payment:
        raise NotFound("Payment not found.")
    return payment


def list_payments(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_payments(s, user)
    for key, col in (("tenant_id", Payment.tenant_id), ("lease_id", Payment.lease_id)):
        raw = args.get(key)
        if raw:
            try:
                q = q.filter(col == int(raw))
            except (TypeError, ValueError):
                raise ServiceError(f"{key} must be an integer.") from None
    for key, col in (("type", Payment.type), ("status", Payment.status)):
        raw = (args.get(key) or "").strip()
        if raw:
            q = q.filter(col == raw)
    try:
        start = parse_date(args.get("start_date") or args.get("date_from"))
        end = parse_date(args.get("end_date") or args.get("date_to"))
    except ValueError:
        raise ServiceError("Date filters must be YYYY-MM-DD.") from None
    if start:
        q = q.filter(Payment.payment_date >= start)
    if end:
        q = q.filter(Payment.payment_date <= end)
    return q.order_by(Payment.payment_date.desc(), Payment.id.desc())


def create_payment(s: "Session", payload: dict, user: "User") -> Payment:
    tenant = get_tenant_for_user(s, user, int(payload["tenant_id"]))
    values = parse_fields(payload, PAYMENT_FIELDS, drop_none=True)
    if values.get("lease_id"):
        get_lease_for_user(s, user, values["lease_id"])
    values.setdefault("payment_date", date.today())

    now = datetime.utcnow()
    payment = Payment(
        **values,
        payment_number=generate_number("PAY", now),
        tenant_id=tenant.id,
        recorded_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    if payment.status == "COMPLETED":
        payment.processed_at = now
    payment.tenant = tenant
    s.add(payment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="payment.create",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={
            "payment_number": payment.payment_number,
            "tenant_id": tenant.id,
            "amount": str(payment.amount),
            "type": payment.type,
            "status": payment.status,
        },
    )
    return payment


def update_payment(s: "Session", payment: Payment, payload: dict, user: "User", reason: str | None = None) -> Payment:
    values = parse_fields(payload, PAYMENT_FIELDS)
    if values.get("lease_id"):
        get_lease_for_user(s, user, values["lease_id"])
    old_status = payment.status
    changes = apply_updates(payment, values)
    now = datetime.utcnow()
    if payment.status == "COMPLETED" and old_status != "COMPLETED" and payment.processed_at is None:
        payment.processed_at = now
    payment.updated_at = now
    record_event(
        s,
        actor=user,
        action="payment.edit",
        entity_type="Payment",
        entity_id=str(payment.id),
        reason=reason,
        metadata={"payment_number": payment.payment_number, "changes": changes},
    )
    return payment


def delete_payment(s: "Session", payment: Payment, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="payment.delete",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"payment_number": payment.payment_number, "amount": str(payment.amount)},
    )
    s.delete(payment)


def _rent_paid_by_lease(s: "Session", user: "User", today: date) -> dict[int, Decimal]:
    start, nxt = month_bounds(today)
    rows = (
        owned_payments(s, user)
        .with_entities(Payment.lease_id, func.sum(Payment.amount))
        .filter(
            Payment.type == "RENT",
            Payment.status == "COMPLETED",
            Payment.payment_date >= start,
            Payment.payment_date < nxt,
        )
        .group_by(Payment.lease_id)
        .all()
    )
    return {lease_id: Decimal(total or 0) for lease_id, total in rows}


def payment_stats(s: "Session", user: "User", today: date | None = None) -> dict:
    today = today or date.today()
    expected = sum(
        (rent for (rent,) in owned_leases(s, user).filter(Lease.status == "ACTIVE").with_entities(Lease.monthly_rent)),
        ZERO,
    )
    collected = sum(_rent_paid_by_lease(s, user, today).values(), ZERO)
    pending = owned_payments(s, user).filter(Payment.status == "PENDING")
    pending_amount = pending.with_entities(func.coalesce(func.sum(Payment.amount), 0)).scalar()
    late = owned_payments(s, user).filter(
        Payment.status.in_(("PENDING", "PARTIAL")),
        Payment.due_date.isnot(None),
        Payment.due_date < today,
    )
    return {
        "expected_rent": float(expected),
        "collected_this_month": float(collected),
        "collection_rate": pct(float(collected), float(expected)),
        "pending_amount": float(pending_amount or 0),
        "pending_count": pending.count(),
        "late_payments": late.count(),
    }


def rent_roll(s: "Session", user: "User", today: date | None = None) -> dict:
    today = today or date.today()
    paid = _rent_paid_by_lease(s, user, today)
    leases = owned_leases(s, user).filter(Lease.status == "ACTIVE").order_by(Lease.unit_id.asc()).all()
    rows = []
    for lease in leases:
        rent = lease.monthly_rent or ZERO
        paid_amount = paid.get(lease.id, ZERO)
        if paid_amount >= rent:
            status = "PAID"
        elif paid_amount > 0:
            status = "PARTIAL"
        else:
            status = "UNPAID"
        rows.append(
            {
                "lease_id": lease.id,
                "lease_number": lease.lease_number,
                "tenant_id": lease.tenant_id,
                "tenant_name": lease.tenant.full_name if lease.tenant else None,
                "unit_id": lease.unit_id,
                "unit_number": lease.unit.unit_number if lease.unit else None,
                "property_name": lease.unit.property.name if lease.unit and lease.unit.property else None,
                "monthly_rent": float(rent),
                "paid_amount": float(paid_amount),
                "balance": float(max(rent - paid_amount, ZERO)),
                "status": status,
            }
        )
    start, _nxt = month_bounds(today)
    return {
        "month": start.strftime("%Y-%m"),
        "data": rows,
        "totals": {
            "monthly_rent": sum(r["monthly_rent"] for r in rows),
            "paid_amount": sum(r["paid_amount"] for r in rows),
            "balance": sum(r["balance"] for r in rows),
        },
    }

"""
Security deposit tracking.

Minnesota (504B.178) requires simple interest on a held deposit, currently 1% a
year, and an itemized disposition within 21 days of move-out. A deposit is
ACTIVE while the lease runs, PENDING_DISPOSITION once the tenant has moved out
or the lease has ended, DISPOSED once the statement exists and REFUNDED once the
refund payment is recorded. Interest and refund payouts are Payment rows of type
DEPOSIT_INTEREST and DEPOSIT_REFUND.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.pms.audit import record_event
from app.pms.errors import Conflict, ServiceError
from app.pms.modules.deposits.models import DEDUCTION_CATEGORIES, DepositDisposition
from app.pms.modules.leases.models import Lease
from app.pms.modules.leases.service import owned_leases
from app.pms.modules.payments.models import Payment
from app.pms.modules.payments.service import serialize_payment
from app.pms.utils import (
    enum_errors,
    field_errors,
    generate_number,
    model_to_dict,
    parse_decimal,
    parse_fields,
    parse_int,
    required_errors,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DISPOSITION_DAYS = 21
DUE_SOON_DAYS = 30
ENDED_LEASE_STATUSES = ("TERMINATED", "EXPIRED")
DEPOSIT_STATUSES = ("ACTIVE", "PENDING_DISPOSITION", "DISPOSED", "REFUNDED")
INTEREST_METHODS = ("CHECK", "ACH", "CASH", "OTHER")
REFUND_METHODS = ("CHECK", "ACH", "OTHER")
DEPOSIT_PAYMENT_TYPES = ("SECURITY_DEPOSIT", "DEPOSIT_INTEREST", "DEPOSIT_REFUND")

INTEREST_FIELDS = {"amount": "decimal", "payment_date": "date", "payment_method": "str", "notes": "str"}
DISPOSITION_FIELDS = {"sent_date": "date", "notes": "str"}
REFUND_FIELDS = {"refund_amount": "decimal", "payment_method": "str", "reference_number": "str", "notes": "str"}


def deposit_interest(amount: Decimal, rate: Decimal, since: date, until: date) -> Decimal:
    """Simple interest on `amount` for the days between the two dates."""
    days = max(0, (until - since).days)
    return (amount * rate * days / 365).quantize(CENT)


def deposit_held_since(lease: Lease) -> date:
    return lease.security_deposit_paid_date or lease.move_in_date or lease.start_date


def deposit_ended_on(lease: Lease) -> date | None:
    """Move-out date, or the lease end for a lease that ended without one."""
    if lease.move_out_date:
        return lease.move_out_date
    if lease.status in ENDED_LEASE_STATUSES:
        return lease.end_date
    return None


def disposition_deadline(lease: Lease) -> date | None:
    ended = deposit_ended_on(lease)
    return ended + timedelta(days=DISPOSITION_DAYS) if ended else None


def _paid_out(s: "Session", lease: Lease, payment_type: str) -> Decimal:
    total = (
        s.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.lease_id == lease.id, Payment.type == payment_type, Payment.status == "COMPLETED")
        .scalar()
    )
    return Decimal(total or 0).quantize(CENT)


def _has_refund(s: "Session", lease: Lease) -> bool:
    return (
        s.query(Payment.id)
        .filter(Payment.lease_id == lease.id, Payment.type == "DEPOSIT_REFUND", Payment.status == "COMPLETED")
        .first()
        is not None
    )


def disposition_for(s: "Session", lease: Lease) -> DepositDisposition | None:
    return s.query(DepositDisposition).filter(DepositDisposition.lease_id == lease.id).one_or_none()


def deposit_status(lease: Lease, disposition: DepositDisposition | None, refunded: bool) -> str:
    if refunded:
        return "REFUNDED"
    if disposition is not None:
        return "DISPOSED"
    if deposit_ended_on(lease) is None:
        return "ACTIVE"
    return "PENDING_DISPOSITION"


def deposit_summary(s: "Session", lease: Lease, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    amount = lease.security_deposit or ZERO
    since = deposit_held_since(lease)
    ended = deposit_ended_on(lease)
    until = min(today, ended) if ended else today
    rate = Decimal(str(lease.security_deposit_interest_rate))
    accrued = deposit_interest(amount, rate, since, until)
    interest_paid = _paid_out(s, lease, "DEPOSIT_INTEREST")
    disposition = disposition_for(s, lease)
    status = deposit_status(lease, disposition, _has_refund(s, lease))
    days_held = max(0, (until - since).days)
    deadline = disposition_deadline(lease)
    tenant, unit = lease.tenant, lease.unit
    return {
        "lease_id": lease.id,
        "lease_number": lease.lease_number,
        "lease_status": lease.status,
        "tenant_id": lease.tenant_id,
        "tenant_name": tenant.full_name if tenant else None,
        "unit_number": unit.unit_number if unit else None,
        "property_name": unit.property.name if unit and unit.property else None,
        "deposit_amount": float(amount),
        "interest_rate": float(rate),
        "held_since": since.isoformat(),
        "days_held": days_held,
        "interest_accrued": float(accrued),
        "interest_paid": float(interest_paid),
        "interest_owed": float(max(ZERO, accrued - interest_paid)),
        "move_out_date": lease.move_out_date.isoformat() if lease.move_out_date else None,
        "disposition_deadline": deadline.isoformat() if deadline else None,
        "days_until_deadline": (deadline - today).days if deadline else None,
        "status": status,
    }


def _interest_due_soon(summary: dict) -> bool:
    days = summary["days_held"]
    return summary["status"] == "ACTIVE" and days > 0 and 365 - days % 365 <= DUE_SOON_DAYS


def _disposition_due_soon(summary: dict) -> bool:
    left = summary["days_until_deadline"]
    return summary["status"] == "PENDING_DISPOSITION" and left is not None and left <= DUE_SOON_DAYS


def _deposit_leases(s: "Session", user: "User") -> list[Lease]:
    return (
        owned_leases(s, user)
        .filter(Lease.security_deposit > 0)
        .order_by(Lease.start_date.desc(), Lease.id.desc())
        .all()
    )


def list_deposits(s: "Session", user: "User", args: dict, today: date | None = None) -> dict:
    status = (args.get("status") or "").strip().upper()
    if status and status not in DEPOSIT_STATUSES:
        raise ServiceError(f"Invalid status. Must be one of: {', '.join(DEPOSIT_STATUSES)}")
    try:
        property_id = parse_int(args.get("property_id"))
    except ValueError:
        raise ServiceError("property_id must be an integer.") from None
    flag = (args.get("due") or "").strip().lower()
    if flag and flag not in ("interest", "disposition"):
        raise ServiceError("due must be 'interest' or 'disposition'.")

    leases = _deposit_leases(s, user)
    if property_id is not None:
        leases = [lease for lease in leases if lease.unit.property_id == property_id]
    rows = [deposit_summary(s, lease, today) for lease in leases]
    if status:
        rows = [r for r in rows if r["status"] == status]
    if flag == "interest":
        rows = [r for r in rows if _interest_due_soon(r)]
    elif flag == "disposition":
        rows = [r for r in rows if _disposition_due_soon(r)]
    return {"data": rows, "total": len(rows)}


def deposit_stats(s: "Session", user: "User", today: date | None = None) -> dict:
    rows = [deposit_summary(s, lease, today) for lease in _deposit_leases(s, user)]
    active = [r for r in rows if r["status"] == "ACTIVE"]
    rates = [r["interest_rate"] for r in active]
    return {
        "total_deposits_held": round(sum(r["deposit_amount"] for r in active), 2),
        "active_deposits": len(active),
        "total_interest_owed": round(sum(r["interest_owed"] for r in rows if r["status"] != "REFUNDED"), 2),
        "pending_dispositions": sum(1 for r in rows if r["status"] == "PENDING_DISPOSITION"),
        "dispositions_due_soon": sum(1 for r in rows if _disposition_due_soon(r)),
        "interest_due_soon": sum(1 for r in active if _interest_due_soon(r)),
        "average_interest_rate": round(sum(rates) / len(rates), 4) if rates else 0.0,
    }


def serialize_disposition(d: DepositDisposition) -> dict:
    out = model_to_dict(d)
    out["sent_on_time"] = d.sent_date <= d.deadline if d.sent_date and d.deadline else None
    return out


def deposit_detail(s: "Session", lease: Lease, today: date | None = None) -> dict:
    disposition = disposition_for(s, lease)
    payments = (
        s.query(Payment)
        .filter(Payment.lease_id == lease.id, Payment.type.in_(DEPOSIT_PAYMENT_TYPES))
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )
    out = deposit_summary(s, lease, today)
    out["deposit"] = {
        "amount": float(lease.security_deposit or ZERO),
        "paid_date": lease.security_deposit_paid_date.isoformat() if lease.security_deposit_paid_date else None,
        "interest_rate": float(lease.security_deposit_interest_rate),
        "bank_name": lease.security_deposit_bank_name,
        "account_last4": lease.security_deposit_account_last4,
    }
    out["disposition"] = serialize_disposition(disposition) if disposition else None
    out["payments"] = [serialize_payment(p) for p in payments]
    return out


def _require_deposit(lease: Lease) -> Decimal:
    if not lease.security_deposit or lease.security_deposit <= 0:
        raise Conflict("Lease has no security deposit.")
    return lease.security_deposit


def _payout(
    s: "Session",
    user: "User",
    lease: Lease,
    *,
    payment_type: str,
    amount: Decimal,
    method: str,
    paid_on: date,
    memo: str,
    reference_number: str | None = None,
    notes: str | None = None,
) -> Payment:
    now = datetime.utcnow()
    payment = Payment(
        payment_number=generate_number("PAY", now),
        type=payment_type,
        method=method,
        status="COMPLETED",
        amount=amount,
        payment_date=paid_on,
        processed_at=now,
        reference_number=reference_number,
        memo=memo[:255],
        notes=notes,
        tenant_id=lease.tenant_id,
        lease_id=lease.id,
        recorded_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    payment.tenant = lease.tenant
    payment.lease = lease
    s.add(payment)
    s.flush()
    return payment


def validate_interest_payload(payload: dict) -> list[str]:
    errors = required_errors(payload, {"amount": "Amount", "payment_method": "Payment method"})
    errors.extend(field_errors(payload, INTEREST_FIELDS))
    errors.extend(enum_errors(payload, {"payment_method": INTEREST_METHODS}))
    if not errors and parse_decimal(payload.get("amount")) <= 0:
        errors.append("Amount must be greater than 0.")
    return errors


def record_interest_payment(
    s: "Session", user: "User", lease: Lease, payload: dict, today: date | None = None
) -> Payment:
    _require_deposit(lease)
    values = parse_fields(payload, INTEREST_FIELDS)
    owed = Decimal(str(deposit_summary(s, lease, today)["interest_owed"])).quantize(CENT)
    amount = values["amount"].quantize(CENT)
    if amount > owed:
        raise ServiceError(f"Interest payment (${amount:,.2f}) exceeds the interest owed (${owed:,.2f}).")
    notes = values.get("notes")
    payment = _payout(
        s,
        user,
        lease,
        payment_type="DEPOSIT_INTEREST",
        amount=amount,
        method=values["payment_method"],
        paid_on=values.get("payment_date") or today or date.today(),
        memo=f"Security deposit interest - {notes}" if notes else "Security deposit interest (MN Statute 504B.178)",
        notes=notes,
    )
    record_event(
        s,
        actor=user,
        action="deposit.interest_paid",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"payment_number": payment.payment_number, "amount": str(amount), "interest_owed": str(owed)},
    )
    return payment


def deduction_errors(deductions: Any) -> list[str]:
    if deductions is None:
        return []
    if not isinstance(deductions, list):
        return ["deductions must be a list."]
    errors = []
    for i, item in enumerate(deductions, start=1):
        if not isinstance(item, dict):
            errors.append(f"Deduction {i} must be an object.")
            continue
        if not str(item.get("description") or "").strip():
            errors.append(f"Deduction {i}: description is required.")
        try:
            amount = parse_decimal(item.get("amount"))
        except ValueError:
            amount = None
        if amount is None or amount < 0:
            errors.append(f"Deduction {i}: amount must be a number of at least 0.")
        if item.get("category") not in DEDUCTION_CATEGORIES:
            errors.append(f"Deduction {i}: category must be one of: {', '.join(DEDUCTION_CATEGORIES)}")
    return errors


def validate_disposition_payload(payload: dict) -> list[str]:
    errors = field_errors(payload, DISPOSITION_FIELDS)
    errors.extend(deduction_errors(payload.get("deductions")))
    return errors


def create_disposition(
    s: "Session", user: "User", lease: Lease, payload: dict, today: date | None = None
) -> DepositDisposition:
    """Itemize deductions against the deposit plus unpaid interest."""
    deposit = _require_deposit(lease)
    summary = deposit_summary(s, lease, today)
    if summary["status"] == "ACTIVE":
        raise Conflict("A disposition can only be created after move-out or once the lease has ended.")
    if summary["status"] != "PENDING_DISPOSITION":
        raise Conflict("A disposition already exists for this lease.")

    values = parse_fields(payload, DISPOSITION_FIELDS)
    deductions = [
        {
            "description": str(item["description"]).strip(),
            "amount": float(parse_decimal(item["amount"]).quantize(CENT)),
            "category": item["category"],
        }
        for item in payload.get("deductions") or []
    ]
    total = sum((Decimal(str(d["amount"])) for d in deductions), ZERO)
    interest = Decimal(str(summary["interest_owed"])).quantize(CENT)
    available = deposit + interest
    now = datetime.utcnow()
    disposition = DepositDisposition(
        lease_id=lease.id,
        deposit_amount=deposit,
        interest_earned=interest,
        deductions=deductions,
        total_deductions=total,
        refund_amount=max(ZERO, available - total),
        balance_due=max(ZERO, total - available),
        deadline=disposition_deadline(lease),
        sent_date=values.get("sent_date"),
        notes=values.get("notes"),
        created_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(disposition)
    s.flush()
    record_event(
        s,
        actor=user,
        action="deposit.disposition",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={
            "disposition_id": disposition.id,
            "total_deductions": str(total),
            "refund_amount": str(disposition.refund_amount),
            "balance_due": str(disposition.balance_due),
        },
    )
    return disposition


def validate_refund_payload(payload: dict) -> list[str]:
    errors = required_errors(payload, {"refund_amount": "Refund amount", "payment_method": "Payment method"})
    errors.extend(field_errors(payload, REFUND_FIELDS))
    errors.extend(enum_errors(payload, {"payment_method": REFUND_METHODS}))
    if not errors and parse_decimal(payload.get("refund_amount")) < 0:
        errors.append("Refund amount must not be negative.")
    return errors


def process_refund(s: "Session", user: "User", lease: Lease, payload: dict, today: date | None = None) -> Payment:
    today = today or date.today()
    deposit = _require_deposit(lease)
    summary = deposit_summary(s, lease, today)
    if summary["status"] == "ACTIVE":
        raise Conflict("Cannot refund the deposit of a lease that has not ended.")
    if summary["status"] == "REFUNDED":
        raise Conflict("Deposit has already been refunded.")

    values = parse_fields(payload, REFUND_FIELDS)
    amount = values["refund_amount"].quantize(CENT)
    disposition = disposition_for(s, lease)
    if disposition is not None:
        limit = disposition.refund_amount
    else:
        limit = deposit + Decimal(str(summary["interest_owed"])).quantize(CENT)
    if amount > limit:
        raise ServiceError(f"Refund (${amount:,.2f}) exceeds the refundable balance (${limit:,.2f}).")

    payment = _payout(
        s,
        user,
        lease,
        payment_type="DEPOSIT_REFUND",
        amount=amount,
        method=values["payment_method"],
        paid_on=today,
        memo="Security deposit refund",
        reference_number=values.get("reference_number"),
        notes=values.get("notes"),
    )
    if disposition is not None:
        disposition.refund_paid_date = today
        disposition.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="deposit.refund",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"payment_number": payment.payment_number, "amount": str(amount), "method": payment.method},
    )
    return payment

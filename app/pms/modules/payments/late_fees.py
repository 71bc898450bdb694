"""
Late fees on rent.

Rent is late once the grace period after the lease's due day has passed and the
month's rent is not fully paid. A late fee is a PENDING LATE_FEE payment for the
rent month (period_start is the first of the month); a month gets at most one.
Minnesota caps the fee at the greater of $50 or 8% of the monthly rent.

scripts/apply_late_fees.py runs check_and_apply_late_fees over every lease.
"""
from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.pms.audit import record_event
from app.pms.constants import LATE_FEE_CAP
from app.pms.errors import Conflict, NotFound, ServiceError
from app.pms.mailer import EmailError, send_email
from app.pms.modules.leases.models import Lease
from app.pms.modules.leases.service import owned_leases
from app.pms.modules.payments.models import Payment
from app.pms.modules.payments.service import month_bounds, owned_payments
from app.pms.modules.properties.models import Unit
from app.pms.utils import enum_errors, field_errors, generate_number, parse_date, parse_fields, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User

logger = logging.getLogger(__name__)

STATUTORY_RENT_SHARE = Decimal("0.08")
CENT = Decimal("0.01")
LATE_FEE_LEASE_STATUSES = ("ACTIVE", "MONTH_TO_MONTH")

WAIVER_REASONS = (
    "FIRST_TIME_OFFENSE",
    "PAYMENT_PROCESSING_DELAY",
    "HARDSHIP",
    "PROPERTY_ISSUE",
    "ADMINISTRATIVE_ERROR",
    "COURTESY",
    "OTHER",
)
# list filter -> payment statuses
STATUS_FILTERS = {
    "PENDING": ("PENDING",),
    "APPLIED": ("PENDING", "PARTIAL", "COMPLETED"),
    "PAID": ("COMPLETED",),
    "WAIVED": ("CANCELLED",),
}

APPLY_FIELDS = {"lease_id": "int", "amount": "decimal", "for_month": "date", "reason": "str"}
WAIVE_FIELDS = {"reason": "str", "notes": "str"}


def max_late_fee(monthly_rent: Decimal) -> Decimal:
    """The greater of the flat cap and 8% of the monthly rent."""
    return max(Decimal(LATE_FEE_CAP).quantize(CENT), (monthly_rent * STATUTORY_RENT_SHARE).quantize(CENT))


def rent_due_date(year: int, month: int, due_day: int) -> date:
    """The due day of that month, moved back to the last day for short months."""
    return date(year, month, min(due_day, calendar.monthrange(year, month)[1]))


def _period(month: date) -> tuple[date, date, date]:
    start, nxt = month_bounds(month)
    return start, nxt - timedelta(days=1), nxt


def _rent_paid(s: "Session", lease: Lease, start: date, nxt: date) -> Decimal:
    total = (
        s.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(
            Payment.lease_id == lease.id,
            Payment.type == "RENT",
            Payment.status == "COMPLETED",
            Payment.payment_date >= start,
            Payment.payment_date < nxt,
        )
        .scalar()
    )
    return Decimal(total or 0).quantize(CENT)


def existing_late_fee(s: "Session", lease: Lease, period_start: date) -> Payment | None:
    return (
        s.query(Payment)
        .filter(Payment.lease_id == lease.id, Payment.type == "LATE_FEE", Payment.period_start == period_start)
        .first()
    )


def calculate_late_fee(s: "Session", lease: Lease, for_month: date | None = None, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    start, end, nxt = _period(for_month or today)
    due = rent_due_date(start.year, start.month, lease.rent_due_day)
    grace_end = due + timedelta(days=lease.late_fee_grace_days)
    is_late = today > grace_end

    monthly_rent = lease.monthly_rent
    paid = _rent_paid(s, lease, start, nxt)
    balance = monthly_rent - paid
    has_fee = existing_late_fee(s, lease, start) is not None
    cap = max_late_fee(monthly_rent)
    applicable = is_late and balance > 0 and not has_fee
    tenant, unit = lease.tenant, lease.unit
    return {
        "lease_id": lease.id,
        "lease_number": lease.lease_number,
        "tenant_name": tenant.full_name if tenant else None,
        "unit_number": unit.unit_number if unit else None,
        "property_name": unit.property.name if unit and unit.property else None,
        "monthly_rent": float(monthly_rent),
        "rent_due_day": lease.rent_due_day,
        "grace_period_days": lease.late_fee_grace_days,
        "late_fee_amount": float(lease.late_fee_amount),
        "for_month": start.strftime("%Y-%m"),
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "due_date": due.isoformat(),
        "grace_period_end_date": grace_end.isoformat(),
        "days_past_due": max(0, (today - grace_end).days),
        "is_late": is_late,
        "fee_applicable": applicable,
        "max_fee": float(cap),
        "applied_fee": float(min(lease.late_fee_amount, cap)) if applicable else 0.0,
        "rent_paid_amount": float(paid),
        "rent_balance": float(balance),
        "has_existing_late_fee": has_fee,
    }


def build_late_fee_email(lease: Lease, payment: Payment, rent_balance: Decimal, app_url: str) -> tuple[str, str]:
    tenant = lease.tenant
    lines = [
        f"Hi {tenant.full_name},",
        "",
        f"A late fee has been applied to your account for {payment.period_start:%B %Y} rent.",
        "",
        f"Rent: ${lease.monthly_rent:,.2f}",
        f"Late fee: ${payment.amount:,.2f}",
        f"Total due: ${rent_balance + payment.amount:,.2f}",
        f"Due by: {payment.due_date:%B} {payment.due_date.day}, {payment.due_date.year}",
        "",
        f"Pay your balance: {app_url.rstrip('/')}/payments",
        "",
        "To avoid additional fees or notices, please submit payment before the due date. If you",
        "believe this was applied in error, reply to this email so we can review your account.",
    ]
    return "Late fee notice", "\n".join(lines)


def _notify_tenant(lease: Lease, payment: Payment, rent_balance: Decimal, config: dict) -> bool:
    """Email the tenant about a new late fee. Failures are logged and never raised."""
    tenant = lease.tenant
    if not tenant or not tenant.email:
        logger.warning("No tenant email for lease %s; late fee notice not sent", lease.lease_number)
        return False
    subject, text = build_late_fee_email(lease, payment, rent_balance, config.get("APP_URL") or "")
    try:
        send_email(config, to=tenant.email, subject=subject, text=text, tags={"type": "late_fee_notice"})
    except EmailError as e:
        logger.error("Late fee notice failed for %s: %s", payment.payment_number, e)
        return False
    return True


def _create_late_fee(
    s: "Session",
    lease: Lease,
    amount: Decimal,
    period_start: date,
    memo: str,
    *,
    actor: "User | None",
    config: dict,
    today: date,
) -> Payment:
    start, end, nxt = _period(period_start)
    now = datetime.utcnow()
    payment = Payment(
        payment_number=generate_number("PAY", now),
        type="LATE_FEE",
        method="OTHER",
        status="PENDING",
        amount=amount,
        payment_date=today,
        due_date=today,
        period_start=start,
        period_end=end,
        memo=memo[:255],
        tenant_id=lease.tenant_id,
        lease_id=lease.id,
        recorded_by_id=actor.id if actor else None,
        created_at=now,
        updated_at=now,
    )
    payment.tenant = lease.tenant
    payment.lease = lease
    s.add(payment)
    s.flush()
    sent = _notify_tenant(lease, payment, lease.monthly_rent - _rent_paid(s, lease, start, nxt), config)
    record_event(
        s,
        actor=actor,
        action="payment.late_fee_apply",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={
            "payment_number": payment.payment_number,
            "lease_number": lease.lease_number,
            "amount": str(amount),
            "period_start": start.isoformat(),
            "email_sent": sent,
        },
    )
    return payment


def validate_apply_payload(payload: dict) -> list[str]:
    errors = required_errors(payload, {"lease_id": "Lease"})
    errors.extend(field_errors(payload, APPLY_FIELDS))
    if errors:
        return errors
    amount = parse_fields(payload, APPLY_FIELDS).get("amount")
    if amount is not None and amount <= 0:
        errors.append("Amount must be greater than 0.")
    return errors


def apply_late_fee(
    s: "Session", user: "User", lease: Lease, payload: dict, config: dict, today: date | None = None
) -> Payment:
    today = today or date.today()
    values = parse_fields(payload, APPLY_FIELDS)
    start, _end, _nxt = _period(values.get("for_month") or today)
    cap = max_late_fee(lease.monthly_rent)
    amount = values.get("amount") or min(lease.late_fee_amount, cap)
    if amount > cap:
        raise ServiceError(
            f"Late fee amount (${amount:,.2f}) exceeds the maximum (${cap:,.2f}). "
            "Late fees cannot exceed the greater of $50 or 8% of monthly rent."
        )
    if existing_late_fee(s, lease, start) is not None:
        raise Conflict("A late fee has already been applied for this period.")
    memo = values.get("reason") or f"Late fee for {start:%B %Y}"
    return _create_late_fee(s, lease, amount, start, memo, actor=user, config=config, today=today)


def validate_waive_payload(payload: dict) -> list[str]:
    errors = required_errors(payload, {"reason": "Waiver reason"})
    errors.extend(field_errors(payload, WAIVE_FIELDS))
    errors.extend(enum_errors(payload, {"reason": WAIVER_REASONS}))
    return errors


def waive_late_fee(s: "Session", user: "User", payment: Payment, payload: dict) -> Payment:
    if payment.type != "LATE_FEE":
        raise NotFound("Late fee not found.")
    if payment.status == "COMPLETED":
        raise Conflict("Cannot waive a late fee that has already been paid.")
    if payment.status == "CANCELLED":
        raise Conflict("Late fee has already been waived.")
    values = parse_fields(payload, WAIVE_FIELDS)
    reason, notes = values["reason"], values.get("notes")
    original = payment.amount
    payment.status = "CANCELLED"
    payment.memo = (f"WAIVED: {reason}" + (f" - {notes}" if notes else ""))[:255]
    payment.notes = f"Waiver reason: {reason}\nOriginal amount: ${original:,.2f}\n{notes or ''}".rstrip()
    payment.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="payment.late_fee_waive",
        entity_type="Payment",
        entity_id=str(payment.id),
        reason=reason,
        metadata={"payment_number": payment.payment_number, "amount": str(original), "notes": notes},
    )
    return payment


def list_late_fees(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_payments(s, user).filter(Payment.type == "LATE_FEE")
    for key, col in (("tenant_id", Payment.tenant_id), ("lease_id", Payment.lease_id), ("property_id", None)):
        raw = args.get(key)
        if not raw:
            continue
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ServiceError(f"{key} must be an integer.") from None
        if col is None:
            q = q.filter(Payment.lease.has(Lease.unit.has(Unit.property_id == value)))
        else:
            q = q.filter(col == value)
    status = (args.get("status") or "").strip().upper()
    if status:
        if status not in STATUS_FILTERS:
            raise ServiceError(f"Invalid status. Must be one of: {', '.join(STATUS_FILTERS)}")
        q = q.filter(Payment.status.in_(STATUS_FILTERS[status]))
    try:
        start = parse_date(args.get("start_date"))
        end = parse_date(args.get("end_date"))
    except ValueError:
        raise ServiceError("Date filters must be YYYY-MM-DD.") from None
    if start:
        q = q.filter(Payment.payment_date >= start)
    if end:
        q = q.filter(Payment.payment_date <= end)
    return q.order_by(Payment.payment_date.desc(), Payment.id.desc())


def _sum_and_count(q: "Query") -> tuple[float, int]:
    total, count = q.with_entities(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id)).one()
    return float(total or 0), int(count or 0)


def late_fee_stats(s: "Session", user: "User", today: date | None = None) -> dict:
    today = today or date.today()
    start, nxt = month_bounds(today)
    fees = owned_payments(s, user).filter(Payment.type == "LATE_FEE")
    this_month = fees.filter(Payment.payment_date >= start, Payment.payment_date < nxt)
    applied, applied_count = _sum_and_count(this_month.filter(Payment.status != "CANCELLED"))
    collected, collected_count = _sum_and_count(this_month.filter(Payment.status == "COMPLETED"))
    waived, waived_count = _sum_and_count(this_month.filter(Payment.status == "CANCELLED"))
    outstanding, outstanding_count = _sum_and_count(fees.filter(Payment.status == "PENDING"))
    ytd, _ = _sum_and_count(
        fees.filter(
            Payment.status == "COMPLETED",
            Payment.payment_date >= date(today.year, 1, 1),
            Payment.payment_date <= today,
        )
    )
    return {
        "monthly_applied": applied,
        "monthly_applied_count": applied_count,
        "monthly_collected": collected,
        "monthly_collected_count": collected_count,
        "monthly_waived": waived,
        "monthly_waived_count": waived_count,
        "outstanding": outstanding,
        "outstanding_count": outstanding_count,
        "year_to_date_collected": ytd,
    }


def check_and_apply_late_fees(
    s: "Session",
    config: dict,
    *,
    user: "User | None" = None,
    property_id: int | None = None,
    dry_run: bool = False,
    today: date | None = None,
) -> dict:
    """
    One pass over active leases for the current rent month.

    Scoped to the user's properties when a user is given, otherwise every lease.
    With dry_run nothing is written and results show what would be applied.
    """
    today = today or date.today()
    q = owned_leases(s, user) if user is not None else s.query(Lease).join(Unit, Unit.id == Lease.unit_id)
    q = q.filter(Lease.status.in_(LATE_FEE_LEASE_STATUSES))
    if property_id is not None:
        q = q.filter(Unit.property_id == property_id)
    leases = q.order_by(Lease.id.asc()).all()

    results = []
    for lease in leases:
        calc = calculate_late_fee(s, lease, today=today)
        row = {
            "lease_id": lease.id,
            "lease_number": lease.lease_number,
            "tenant_name": calc["tenant_name"],
            "unit_number": calc["unit_number"],
            "fee_applicable": calc["fee_applicable"],
            "fee_amount": calc["applied_fee"],
            "applied": False,
        }
        if not calc["is_late"]:
            row["reason"] = "Not past grace period"
        elif calc["rent_balance"] <= 0:
            row["reason"] = "Rent fully paid"
        elif calc["has_existing_late_fee"]:
            row["reason"] = "Late fee already applied"
        elif calc["applied_fee"] <= 0:
            row["reason"] = "No late fee configured"
        elif dry_run:
            row["reason"] = "Dry run - fee not applied"
        else:
            start = date.fromisoformat(calc["period_start"])
            _create_late_fee(
                s,
                lease,
                Decimal(str(calc["applied_fee"])).quantize(CENT),
                start,
                f"Auto-applied late fee for {start:%B %Y}",
                actor=user,
                config=config,
                today=today,
            )
            row["applied"] = True
            row["reason"] = "Late fee applied"
        results.append(row)

    applied = sum(1 for r in results if r["applied"])
    logger.info("late fee pass: checked=%s applied=%s dry_run=%s", len(leases), applied, dry_run)
    return {"checked_count": len(leases), "applied_count": applied, "dry_run": dry_run, "results": results}

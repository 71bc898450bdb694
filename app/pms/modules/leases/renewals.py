"""
Lease renewals.

A renewal is a new DRAFT lease for the same unit and tenant that carries the
current lease's terms forward and points back at it through renewed_from_lease_id.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from app.pms.audit import record_event
from app.pms.errors import Conflict, ServiceError
from app.pms.modules.leases.models import Lease
from app.pms.modules.leases.service import owned_leases
from app.pms.utils import field_errors, generate_number, parse_fields

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User


RENEWAL_FIELDS = {
    "start_date": "date",
    "end_date": "date",
    "monthly_rent": "decimal",
    "rent_increase_percent": "float",
    "security_deposit": "decimal",
    "pet_rent": "decimal",
    "notes": "str",
}
RENEWABLE_STATUSES = ("ACTIVE", "MONTH_TO_MONTH")

# terms copied unchanged from the lease being renewed
CARRIED_FIELDS = (
    "lease_type",
    "unit_id",
    "tenant_id",
    "rent_due_day",
    "late_fee_amount",
    "late_fee_grace_days",
    "security_deposit",
    "security_deposit_interest_rate",
    "security_deposit_bank_name",
    "security_deposit_account_last4",
    "pets_allowed",
    "pet_deposit",
    "pet_rent",
    "utilities_tenant_pays",
    "utilities_owner_pays",
    "parking_included",
    "parking_fee",
    "storage_included",
    "storage_fee",
    "auto_renew",
    "renewal_notice_days",
    "renewal_rent_increase",
)


def validate_renewal_payload(payload: dict) -> list[str]:
    errors = field_errors(payload, RENEWAL_FIELDS)
    if errors:
        return errors
    v = parse_fields(payload, RENEWAL_FIELDS)
    if not v.get("end_date"):
        errors.append("End date is required.")
    if v.get("start_date") and v.get("end_date") and v["end_date"] <= v["start_date"]:
        errors.append("End date must be after start date.")
    if v.get("monthly_rent") is not None and v["monthly_rent"] <= 0:
        errors.append("Monthly rent must be greater than 0.")
    pct = v.get("rent_increase_percent")
    if pct is not None and not 0 <= pct <= 100:
        errors.append("Rent increase percent must be between 0 and 100.")
    for key in ("security_deposit", "pet_rent"):
        if v.get(key) is not None and v[key] < 0:
            errors.append(f"{key} must not be negative.")
    return errors


def renewal_rent(lease: Lease, values: dict) -> Decimal:
    """An explicit rent wins, then a percent increase, then the lease's own renewal increase."""
    if values.get("monthly_rent") is not None:
        return values["monthly_rent"]
    current = lease.monthly_rent
    pct = values.get("rent_increase_percent")
    if pct is not None:
        return (current * (1 + Decimal(str(pct)) / 100)).quantize(Decimal("0.01"))
    return current + (lease.renewal_rent_increase or Decimal("0"))


def renewal_of(s: "Session", lease: Lease) -> Lease | None:
    return s.query(Lease).filter(Lease.renewed_from_lease_id == lease.id).order_by(Lease.id.desc()).first()


def renew_lease(s: "Session", user: "User", lease: Lease, payload: dict) -> Lease:
    if lease.status not in RENEWABLE_STATUSES:
        raise Conflict("Only active leases can be renewed.")
    existing = renewal_of(s, lease)
    if existing is not None:
        raise Conflict(f"Lease {lease.lease_number} has already been renewed as {existing.lease_number}.")

    values = parse_fields(payload, RENEWAL_FIELDS)
    start = values.get("start_date") or lease.end_date + timedelta(days=1)
    if values["end_date"] <= start:
        raise ServiceError("End date must be after start date.")

    now = datetime.utcnow()
    renewal = Lease(
        **{name: getattr(lease, name) for name in CARRIED_FIELDS},
        lease_number=generate_number("LS", now),
        status="DRAFT",
        start_date=start,
        end_date=values["end_date"],
        monthly_rent=renewal_rent(lease, values),
        renewed_from_lease_id=lease.id,
        notes=values.get("notes") or f"Renewal of lease {lease.lease_number}",
        created_at=now,
        updated_at=now,
    )
    for key in ("security_deposit", "pet_rent"):
        if values.get(key) is not None:
            setattr(renewal, key, values[key])
    renewal.unit = lease.unit
    renewal.tenant = lease.tenant
    s.add(renewal)
    s.flush()
    record_event(
        s,
        actor=user,
        action="lease.renew",
        entity_type="Lease",
        entity_id=str(renewal.id),
        metadata={
            "lease_number": renewal.lease_number,
            "renewed_from": lease.lease_number,
            "old_rent": str(lease.monthly_rent),
            "new_rent": str(renewal.monthly_rent),
        },
    )
    return renewal


def _summary(lease: Lease | None) -> dict | None:
    if lease is None:
        return None
    return {
        "id": lease.id,
        "lease_number": lease.lease_number,
        "start_date": lease.start_date.isoformat(),
        "end_date": lease.end_date.isoformat(),
        "monthly_rent": float(lease.monthly_rent),
        "status": lease.status,
    }


def renewal_history(s: "Session", user: "User", lease: Lease) -> dict:
    """The lease with the one it renewed and the one that renews it."""
    previous = None
    if lease.renewed_from_lease_id:
        previous = owned_leases(s, user).filter(Lease.id == lease.renewed_from_lease_id).one_or_none()
    return {
        "current": _summary(lease),
        "renewed_from": _summary(previous),
        "renewed_to": _summary(renewal_of(s, lease)),
    }

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import or_
from sqlalchemy.orm import object_session

from app.pms.audit import record_event
from app.pms.constants import LATE_FEE_CAP
from app.pms.errors import Conflict, NotFound, ServiceError
from app.pms.modules.leases.models import BLOCKING_STATUSES, LEASE_STATUSES, LEASE_TYPES, Lease, LeaseAddendum, LeaseTenant
from app.pms.modules.properties.models import Unit
from app.pms.modules.properties.service import owned_property_ids, serialize_unit
from app.pms.modules.properties.units import get_unit_for_user
from app.pms.modules.tenants.models import Tenant
from app.pms.modules.tenants.service import get_tenant_for_user
from app.pms.utils import (
    apply_updates,
    enum_errors,
    field_errors,
    generate_number,
    model_to_dict,
    parse_fields,
    required_errors,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


LEASE_FIELDS = {
    "status": "str",
    "lease_type": "str",
    "start_date": "date",
    "end_date": "date",
    "move_in_date": "date",
    "move_out_date": "date",
    "signed_date": "date",
    "monthly_rent": "decimal",
    "rent_due_day": "int",
    "late_fee_amount": "decimal",
    "late_fee_grace_days": "int",
    "security_deposit": "decimal",
    "security_deposit_paid_date": "date",
    "security_deposit_interest_rate": "float",
    "security_deposit_bank_name": "str",
    "security_deposit_account_last4": "str",
    "pets_allowed": "bool",
    "pet_deposit": "decimal",
    "pet_rent": "decimal",
    "utilities_tenant_pays": "list",
    "utilities_owner_pays": "list",
    "parking_included": "bool",
    "parking_fee": "decimal",
    "storage_included": "bool",
    "storage_fee": "decimal",
    "auto_renew": "bool",
    "renewal_notice_days": "int",
    "renewal_rent_increase": "decimal",
    "lease_document_url": "str",
    "signed_document_url": "str",
    "notes": "str",
}
CREATE_ONLY_FIELDS = {"unit_id": "int", "tenant_id": "int"}
ADDENDUM_FIELDS = {"title": "str", "content": "str", "effective_date": "date", "signed_date": "date"}

MAX_INTEREST_RATE = 0.1


def validate_lease_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate lease creation/update payload. Returns list of errors."""
    errors = []
    required = {
        "unit_id": "Unit",
        "tenant_id": "Tenant",
        "start_date": "Start date",
        "end_date": "End date",
        "monthly_rent": "Monthly rent",
    }
    if partial:
        required = {k: v for k, v in required.items() if k in payload}
    errors.extend(required_errors(payload, required))
    type_errors = field_errors(payload, {**LEASE_FIELDS, **CREATE_ONLY_FIELDS})
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"status": LEASE_STATUSES, "lease_type": LEASE_TYPES}))
    co_ids = payload.get("co_tenant_ids")
    if co_ids is not None and (
        not isinstance(co_ids, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in co_ids)
    ):
        errors.append("co_tenant_ids must be a list of tenant ids.")
    if type_errors:
        return errors

    v = parse_fields(payload, LEASE_FIELDS)
    if v.get("start_date") and v.get("end_date") and v["end_date"] <= v["start_date"]:
        errors.append("End date must be after start date.")
    if v.get("monthly_rent") is not None and v["monthly_rent"] <= 0:
        errors.append("Monthly rent must be greater than 0.")
    if v.get("rent_due_day") is not None and not 1 <= v["rent_due_day"] <= 31:
        errors.append("Rent due day must be between 1 and 31.")
    if v.get("late_fee_amount") is not None and not 0 <= v["late_fee_amount"] <= LATE_FEE_CAP:
        errors.append(f"Late fee must be between $0 and ${LATE_FEE_CAP}.")
    if v.get("late_fee_grace_days") is not None and v["late_fee_grace_days"] < 0:
        errors.append("Late fee grace days must not be negative.")
    rate = v.get("security_deposit_interest_rate")
    if rate is not None and not 0 <= rate <= MAX_INTEREST_RATE:
        errors.append("Security deposit interest rate must be between 0 and 0.1.")
    last4 = v.get("security_deposit_account_last4")
    if last4 and (len(last4) != 4 or not last4.isdigit()):
        errors.append("Deposit account last 4 must be 4 digits.")
    for key in ("security_deposit", "pet_deposit", "pet_rent", "parking_fee", "storage_fee"):
        if v.get(key) is not None and v[key] < 0:
            errors.append(f"{key} must not be negative.")
    return errors


def _coerce(values: dict) -> dict:
    rate = values.get("security_deposit_interest_rate")
    if rate is not None:
        values["security_deposit_interest_rate"] = Decimal(str(rate))
    return values


def serialize_lease(lease: Lease, *, detail: bool = False) -> dict:
    d = model_to_dict(lease)
    tenant = lease.tenant
    d["tenant_name"] = tenant.full_name if tenant else None
    d["unit_number"] = lease.unit.unit_number if lease.unit else None
    d["property_id"] = lease.unit.property_id if lease.unit else None
    d["property_name"] = lease.unit.property.name if lease.unit and lease.unit.property else None
    if detail:
        from app.pms.modules.tenants.service import serialize_tenant

        d["unit"] = serialize_unit(lease.unit) if lease.unit else None
        d["tenant"] = serialize_tenant(tenant) if tenant else None
        d["co_tenants"] = [serialize_co_tenant(ct) for ct in lease.co_tenants]
        d["addenda"] = [model_to_dict(a) for a in lease.addenda]
    return d


def serialize_co_tenant(ct: LeaseTenant) -> dict:
    return {
        "id": ct.id,
        "lease_id": ct.lease_id,
        "tenant_id": ct.tenant_id,
        "is_primary": ct.is_primary,
        "tenant_name": ct.tenant.full_name if ct.tenant else None,
        "email": ct.tenant.email if ct.tenant else None,
        "created_at": ct.created_at.isoformat() if ct.created_at else None,
    }


def owned_leases(s: "Session", user: "User") -> "Query":
    return s.query(Lease).join(Unit, Unit.id == Lease.unit_id).filter(Unit.property_id.in_(owned_property_ids(user)))


def get_lease_for_user(s: "Session", user: "User", lease_id: int) -> Lease:
    lease = owned_leases(s, user).filter(Lease.id == lease_id).one_or_none()
    if not lease:
        raise NotFound("Lease not found.")
    return lease


def leases_for_tenant(tenant: Tenant) -> list[Lease]:
    s = object_session(tenant)
    co_lease_ids = s.query(LeaseTenant.lease_id).filter(LeaseTenant.tenant_id == tenant.id)
    return (
        s.query(Lease)
        .filter(or_(Lease.tenant_id == tenant.id, Lease.id.in_(co_lease_ids)))
        .order_by(Lease.start_date.desc())
        .all()
    )


def list_leases(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_leases(s, user).join(Tenant, Tenant.id == Lease.tenant_id)
    status = (args.get("status") or "").strip()
    if status:
        q = q.filter(Lease.status == status)
    for key, col in (("unit_id", Lease.unit_id), ("tenant_id", Lease.tenant_id), ("property_id", Unit.property_id)):
        raw = args.get(key)
        if raw:
            try:
                q = q.filter(col == int(raw))
            except (TypeError, ValueError):
                raise ServiceError(f"{key} must be an integer.") from None
    search = (args.get("search") or args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Lease.lease_number.ilike(like),
                Tenant.first_name.ilike(like),
                Tenant.last_name.ilike(like),
                (Tenant.first_name + " " + Tenant.last_name).ilike(like),
            )
        )
    return q.order_by(Lease.start_date.desc(), Lease.id.desc())


def _check_overlap(s: "Session", unit_id: int, start: date, end: date, exclude_id: int | None = None) -> None:
    q = s.query(Lease).filter(
        Lease.unit_id == unit_id,
        Lease.status.in_(BLOCKING_STATUSES),
        Lease.start_date <= end,
        Lease.end_date >= start,
    )
    if exclude_id is not None:
        q = q.filter(Lease.id != exclude_id)
    other = q.first()
    if other:
        raise Conflict(f"Unit already has an active or pending lease ({other.lease_number}) overlapping these dates.")


def _occupy(lease: Lease) -> None:
    lease.unit.status = "OCCUPIED"
    lease.unit.current_rent = lease.monthly_rent
    lease.unit.updated_at = datetime.utcnow()
    if lease.tenant.status != "ACTIVE":
        lease.tenant.status = "ACTIVE"
        lease.tenant.updated_at = datetime.utcnow()


def _vacate(lease: Lease) -> None:
    lease.unit.status = "VACANT"
    lease.unit.updated_at = datetime.utcnow()


def create_lease(s: "Session", payload: dict, user: "User") -> Lease:
    unit = get_unit_for_user(s, user, int(payload["unit_id"]))
    tenant = get_tenant_for_user(s, user, int(payload["tenant_id"]))
    values = _coerce(parse_fields(payload, LEASE_FIELDS, drop_none=True))
    _check_overlap(s, unit.id, values["start_date"], values["end_date"])

    now = datetime.utcnow()
    lease = Lease(
        **values,
        lease_number=generate_number("LS", now),
        unit_id=unit.id,
        tenant_id=tenant.id,
        created_at=now,
        updated_at=now,
    )
    lease.unit = unit
    lease.tenant = tenant
    s.add(lease)
    s.flush()

    if lease.status == "ACTIVE":
        _occupy(lease)

    record_event(
        s,
        actor=user,
        action="lease.create",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={
            "lease_number": lease.lease_number,
            "unit_id": unit.id,
            "tenant_id": tenant.id,
            "status": lease.status,
            "monthly_rent": str(lease.monthly_rent),
        },
    )

    for co_id in payload.get("co_tenant_ids") or ():
        add_co_tenant(s, user, lease, {"tenant_id": co_id})
    return lease


def update_lease(s: "Session", lease: Lease, payload: dict, user: "User", reason: str | None = None) -> Lease:
    values = _coerce(parse_fields(payload, LEASE_FIELDS))
    new_start = values.get("start_date") or lease.start_date
    new_end = values.get("end_date") or lease.end_date
    if new_end <= new_start:
        raise ServiceError("End date must be after start date.")
    old_status = lease.status
    new_status = values.get("status") or old_status
    dates_changed = new_start != lease.start_date or new_end != lease.end_date
    if new_status in BLOCKING_STATUSES and (dates_changed or new_status != old_status):
        _check_overlap(s, lease.unit_id, new_start, new_end, exclude_id=lease.id)

    changes = apply_updates(lease, values)
    lease.updated_at = datetime.utcnow()

    if new_status != old_status:
        if new_status == "ACTIVE":
            _occupy(lease)
        elif new_status in ("TERMINATED", "EXPIRED"):
            _vacate(lease)
    elif new_status == "ACTIVE" and "monthly_rent" in changes:
        lease.unit.current_rent = lease.monthly_rent
        lease.unit.updated_at = lease.updated_at

    record_event(
        s,
        actor=user,
        action="lease.edit",
        entity_type="Lease",
        entity_id=str(lease.id),
        reason=reason,
        metadata={"lease_number": lease.lease_number, "changes": changes},
    )
    return lease


def delete_lease(s: "Session", lease: Lease, user: "User") -> None:
    if lease.status != "DRAFT":
        raise Conflict("Only draft leases can be deleted.")
    record_event(
        s,
        actor=user,
        action="lease.delete",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"lease_number": lease.lease_number},
    )
    s.delete(lease)


def expiring_leases(s: "Session", user: "User", today: date | None = None, days: int = 90) -> dict:
    """ACTIVE leases ending in the next `days` days, bucketed by 30/60/90."""
    today = today or date.today()
    horizon = today + timedelta(days=days)
    leases = (
        owned_leases(s, user)
        .filter(Lease.status == "ACTIVE", Lease.end_date >= today, Lease.end_date <= horizon)
        .order_by(Lease.end_date.asc())
        .all()
    )
    buckets: dict[str, list[dict]] = {"within_30_days": [], "within_60_days": [], "within_90_days": []}
    for lease in leases:
        remaining = (lease.end_date - today).days
        row = serialize_lease(lease)
        row["days_until_expiry"] = remaining
        if remaining <= 30:
            buckets["within_30_days"].append(row)
        elif remaining <= 60:
            buckets["within_60_days"].append(row)
        else:
            buckets["within_90_days"].append(row)
    return {**buckets, "total": len(leases)}


# ---------- Co-tenants ----------
def add_co_tenant(s: "Session", user: "User", lease: Lease, payload: dict) -> LeaseTenant:
    try:
        tenant_id = int(payload.get("tenant_id"))
    except (TypeError, ValueError):
        raise ServiceError("tenant_id is required.") from None
    tenant = get_tenant_for_user(s, user, tenant_id)
    if tenant.id == lease.tenant_id:
        raise Conflict("Tenant is already the primary tenant on this lease.")
    if any(ct.tenant_id == tenant.id for ct in lease.co_tenants):
        raise Conflict("Tenant is already on this lease.")
    is_primary = bool(payload.get("is_primary"))
    if is_primary:
        for ct in lease.co_tenants:
            ct.is_primary = False
    ct = LeaseTenant(lease_id=lease.id, tenant_id=tenant.id, is_primary=is_primary, created_at=datetime.utcnow())
    ct.tenant = tenant
    lease.co_tenants.append(ct)
    s.flush()
    record_event(
        s,
        actor=user,
        action="lease.co_tenant_add",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"tenant_id": tenant.id, "is_primary": is_primary},
    )
    return ct


def remove_co_tenant(s: "Session", user: "User", lease: Lease, tenant_id: int) -> None:
    ct = next((c for c in lease.co_tenants if c.tenant_id == tenant_id), None)
    if not ct:
        raise NotFound("Co-tenant not found on this lease.")
    lease.co_tenants.remove(ct)
    record_event(
        s,
        actor=user,
        action="lease.co_tenant_remove",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"tenant_id": tenant_id},
    )


# ---------- Addenda ----------
def validate_addendum_payload(payload: dict) -> list[str]:
    errors = required_errors(payload, {"title": "Title"})
    errors.extend(field_errors(payload, ADDENDUM_FIELDS))
    return errors


def add_addendum(s: "Session", user: "User", lease: Lease, payload: dict) -> LeaseAddendum:
    values = parse_fields(payload, ADDENDUM_FIELDS, drop_none=True)
    addendum = LeaseAddendum(**values, lease_id=lease.id, created_at=datetime.utcnow())
    lease.addenda.append(addendum)
    s.flush()
    record_event(
        s,
        actor=user,
        action="lease.addendum_add",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"addendum_id": addendum.id, "title": addendum.title},
    )
    return addendum


def delete_addendum(s: "Session", user: "User", lease: Lease, addendum_id: int) -> None:
    addendum = next((a for a in lease.addenda if a.id == addendum_id), None)
    if not addendum:
        raise NotFound("Addendum not found.")
    lease.addenda.remove(addendum)
    record_event(
        s,
        actor=user,
        action="lease.addendum_delete",
        entity_type="Lease",
        entity_id=str(lease.id),
        metadata={"addendum_id": addendum_id, "title": addendum.title},
    )
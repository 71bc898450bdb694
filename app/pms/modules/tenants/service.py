from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.pms.audit import record_event
from app.pms.errors import Conflict, NotFound
from app.pms.modules.tenants.models import CONTACT_METHODS, TENANT_STATUSES, Tenant
from app.pms.utils import apply_updates, enum_errors, field_errors, model_to_dict, parse_fields, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


TENANT_FIELDS = {
    "status": "str",
    "first_name": "str",
    "last_name": "str",
    "email": "str",
    "phone": "str",
    "alt_phone": "str",
    "date_of_birth": "date",
    "ssn": "str",
    "drivers_license": "str",
    "emergency_contact_name": "str",
    "emergency_contact_phone": "str",
    "emergency_contact_relation": "str",
    "employer": "str",
    "employer_phone": "str",
    "job_title": "str",
    "monthly_income": "decimal",
    "previous_address": "str",
    "previous_landlord": "str",
    "previous_landlord_phone": "str",
    "reason_for_leaving": "str",
    "vehicle_make": "str",
    "vehicle_model": "str",
    "vehicle_year": "int",
    "vehicle_color": "str",
    "vehicle_license_plate": "str",
    "preferred_contact_method": "str",
    "notes": "str",
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_tenant_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"first_name": "First name", "last_name": "Last name", "email": "Email"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload}
    errors.extend(required_errors(payload, required))
    errors.extend(field_errors(payload, TENANT_FIELDS))
    errors.extend(enum_errors(payload, {"status": TENANT_STATUSES, "preferred_contact_method": CONTACT_METHODS}))
    email = (payload.get("email") or "").strip()
    if email and not _EMAIL_RE.match(email):
        errors.append("Email address is invalid.")
    ssn = (payload.get("ssn") or "").strip()
    if ssn and len("".join(ch for ch in ssn if ch.isdigit())) != 9:
        errors.append("SSN must contain 9 digits.")
    return errors


def serialize_tenant(t: Tenant, *, with_leases: bool = False) -> dict:
    d = model_to_dict(t, exclude=("ssn",))
    d["ssn_last4"] = t.ssn_last4
    d["full_name"] = t.full_name
    if with_leases:
        from app.pms.modules.leases.service import leases_for_tenant, serialize_lease

        d["leases"] = [serialize_lease(lease) for lease in leases_for_tenant(t)]
    return d


def get_tenant_for_user(s: "Session", user: "User", tenant_id: int) -> Tenant:
    tenant = s.query(Tenant).filter(Tenant.id == tenant_id, Tenant.manager_id == user.id).one_or_none()
    if not tenant:
        raise NotFound("Tenant not found.")
    return tenant


def list_tenants(s: "Session", user: "User", args: dict) -> "Query":
    q = s.query(Tenant).filter(Tenant.manager_id == user.id)
    search = (args.get("search") or args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Tenant.first_name.ilike(like),
                Tenant.last_name.ilike(like),
                Tenant.email.ilike(like),
                (Tenant.first_name + " " + Tenant.last_name).ilike(like),
            )
        )
    status = (args.get("status") or "").strip()
    if status:
        q = q.filter(Tenant.status == status)
    return q.order_by(Tenant.last_name.asc(), Tenant.first_name.asc())


def _email_taken(s: "Session", user: "User", email: str, exclude_id: int | None = None) -> bool:
    q = s.query(Tenant.id).filter(Tenant.manager_id == user.id, func.lower(Tenant.email) == email.lower())
    if exclude_id is not None:
        q = q.filter(Tenant.id != exclude_id)
    return q.first() is not None


def create_tenant(s: "Session", payload: dict, user: "User") -> Tenant:
    values = parse_fields(payload, TENANT_FIELDS, drop_none=True)
    values["email"] = values["email"].lower()
    if _email_taken(s, user, values["email"]):
        raise Conflict("A tenant with this email already exists.")
    now = datetime.utcnow()
    tenant = Tenant(**values, manager_id=user.id, created_at=now, updated_at=now)
    s.add(tenant)
    s.flush()
    record_event(
        s,
        actor=user,
        action="tenant.create",
        entity_type="Tenant",
        entity_id=str(tenant.id),
        metadata={"name": tenant.full_name, "email": tenant.email},
    )
    return tenant


def update_tenant(s: "Session", tenant: Tenant, payload: dict, user: "User", reason: str | None = None) -> Tenant:
    values = parse_fields(payload, TENANT_FIELDS)
    if values.get("email"):
        values["email"] = values["email"].lower()
        if values["email"] != tenant.email and _email_taken(s, user, values["email"], tenant.id):
            raise Conflict("A tenant with this email already exists.")
    changes = apply_updates(tenant, values)
    if "ssn" in changes:
        # never write the full number into the audit trail
        changes["ssn"] = {"old": "***", "new": "***"}
    tenant.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="tenant.edit",
        entity_type="Tenant",
        entity_id=str(tenant.id),
        reason=reason,
        metadata={"name": tenant.full_name, "changes": changes},
    )
    return tenant


def delete_tenant(s: "Session", tenant: Tenant, user: "User") -> None:
    from app.pms.modules.leases.models import Lease, LeaseTenant

    has_leases = (
        s.query(Lease.id).filter(Lease.tenant_id == tenant.id).first() is not None
        or s.query(LeaseTenant.id).filter(LeaseTenant.tenant_id == tenant.id).first() is not None
    )
    if has_leases:
        raise Conflict("Cannot delete a tenant that has leases.")
    record_event(
        s,
        actor=user,
        action="tenant.delete",
        entity_type="Tenant",
        entity_id=str(tenant.id),
        metadata={"name": tenant.full_name, "email": tenant.email},
    )
    s.delete(tenant)

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, cast, or_

from app.pms.audit import record_event
from app.pms.errors import NotFound
from app.pms.modules.maintenance.models import MAINTENANCE_CATEGORIES
from app.pms.modules.vendors.models import VENDOR_STATUSES, Vendor
from app.pms.utils import apply_updates, enum_errors, field_errors, model_to_dict, parse_fields, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


VENDOR_FIELDS = {
    "company_name": "str",
    "contact_name": "str",
    "email": "str",
    "phone": "str",
    "address": "str",
    "status": "str",
    "categories": "list",
    "hourly_rate": "decimal",
    "insurance_provider": "str",
    "insurance_policy_number": "str",
    "insurance_expiry": "date",
    "license_number": "str",
    "license_expiry": "date",
    "payment_terms": "int",
    "rating": "decimal",
    "total_jobs": "int",
    "notes": "str",
}


def validate_vendor_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "company_name" in payload:
        errors.extend(required_errors(payload, {"company_name": "Company name"}))
    type_errors = field_errors(payload, VENDOR_FIELDS)
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"status": VENDOR_STATUSES}))
    if type_errors:
        return errors
    values = parse_fields(payload, VENDOR_FIELDS)
    bad = [c for c in values.get("categories") or [] if c not in MAINTENANCE_CATEGORIES]
    if bad:
        errors.append(f"Invalid categories: {', '.join(bad)}")
    rating = values.get("rating")
    if rating is not None and not 0 <= rating <= 5:
        errors.append("Rating must be between 0 and 5.")
    if values.get("hourly_rate") is not None and values["hourly_rate"] < 0:
        errors.append("Hourly rate must not be negative.")
    if values.get("payment_terms") is not None and values["payment_terms"] < 0:
        errors.append("Payment terms must not be negative.")
    return errors


def serialize_vendor(v: Vendor) -> dict:
    return model_to_dict(v)


def get_vendor_for_user(s: "Session", user: "User", vendor_id: int) -> Vendor:
    vendor = s.query(Vendor).filter(Vendor.id == vendor_id, Vendor.manager_id == user.id).one_or_none()
    if not vendor:
        raise NotFound("Vendor not found.")
    return vendor


def list_vendors(s: "Session", user: "User", args: dict) -> "Query":
    q = s.query(Vendor).filter(Vendor.manager_id == user.id)
    search = (args.get("search") or args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Vendor.company_name.ilike(like), Vendor.contact_name.ilike(like), Vendor.email.ilike(like)))
    status = (args.get("status") or "").strip()
    if status:
        q = q.filter(Vendor.status == status)
    category = (args.get("category") or "").strip()
    if category:
        q = q.filter(cast(Vendor.categories, String).ilike(f'%"{category}"%'))
    return q.order_by(Vendor.company_name.asc())


def create_vendor(s: "Session", payload: dict, user: "User") -> Vendor:
    now = datetime.utcnow()
    vendor = Vendor(**parse_fields(payload, VENDOR_FIELDS, drop_none=True), manager_id=user.id, created_at=now, updated_at=now)
    s.add(vendor)
    s.flush()
    record_event(
        s,
        actor=user,
        action="vendor.create",
        entity_type="Vendor",
        entity_id=str(vendor.id),
        metadata={"company_name": vendor.company_name},
    )
    return vendor


def update_vendor(s: "Session", vendor: Vendor, payload: dict, user: "User", reason: str | None = None) -> Vendor:
    changes = apply_updates(vendor, parse_fields(payload, VENDOR_FIELDS))
    vendor.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="vendor.edit",
        entity_type="Vendor",
        entity_id=str(vendor.id),
        reason=reason,
        metadata={"company_name": vendor.company_name, "changes": changes},
    )
    return vendor


def delete_vendor(s: "Session", vendor: Vendor, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="vendor.delete",
        entity_type="Vendor",
        entity_id=str(vendor.id),
        metadata={"company_name": vendor.company_name},
    )
    s.delete(vendor)

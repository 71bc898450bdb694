from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from app.pms.audit import record_event
from app.pms.constants import DEFAULT_COUNTRY, DEFAULT_STATE
from app.pms.errors import Conflict, NotFound
from app.pms.modules.properties.models import PROPERTY_STATUSES, PROPERTY_TYPES, Property, Unit
from app.pms.utils import apply_updates, enum_errors, field_errors, model_to_dict, parse_fields, pct, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


PROPERTY_FIELDS = {
    "name": "str",
    "type": "str",
    "status": "str",
    "address_line1": "str",
    "address_line2": "str",
    "city": "str",
    "state": "str",
    "zip_code": "str",
    "country": "str",
    "year_built": "int",
    "total_units": "int",
    "total_sq_ft": "int",
    "parking_spaces": "int",
    "amenities": "list",
    "rental_license_number": "str",
    "rental_license_expiry": "date",
    "lead_paint_disclosure": "bool",
    "built_before_1978": "bool",
    "purchase_price": "decimal",
    "purchase_date": "date",
    "current_value": "decimal",
    "mortgage_balance": "decimal",
    "notes": "str",
}

_STATE_RE = re.compile(r"^[A-Za-z]{2}$")
_ZIP_RE = re.compile(r"^\d{5}(-?\d{4})?$")


def validate_property_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate property creation/update payload. Returns list of errors."""
    errors = []
    required = {"name": "Name", "address_line1": "Address", "city": "City", "zip_code": "ZIP code"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload}
    errors.extend(required_errors(payload, required))
    errors.extend(field_errors(payload, PROPERTY_FIELDS))
    errors.extend(enum_errors(payload, {"type": PROPERTY_TYPES, "status": PROPERTY_STATUSES}))
    state = (payload.get("state") or "").strip()
    if state and not _STATE_RE.match(state):
        errors.append("State must be a 2-letter code.")
    zip_code = (payload.get("zip_code") or "").strip()
    if zip_code and not _ZIP_RE.match(zip_code):
        errors.append("ZIP code must be 5 or 9 digits.")
    year_built = payload.get("year_built")
    if isinstance(year_built, int) and not 1600 <= year_built <= datetime.utcnow().year + 5:
        errors.append("Year built is out of range.")
    return errors


def _normalize(values: dict) -> dict:
    if values.get("state"):
        values["state"] = values["state"].upper()
    if values.get("country"):
        values["country"] = values["country"].upper()
    return values


def serialize_property(p: Property, *, with_units: bool = False) -> dict:
    d = model_to_dict(p)
    if with_units:
        d["units"] = [serialize_unit(u) for u in p.units]
    return d


def serialize_unit(u: Unit) -> dict:
    d = model_to_dict(u)
    d["property_name"] = u.property.name if u.property else None
    return d


def owned_properties(s: "Session", user: "User") -> "Query":
    return s.query(Property).filter(Property.manager_id == user.id)


def owned_property_ids(user: "User"):
    """Subquery of property ids the user manages (for scoping child records)."""
    return select(Property.id).where(Property.manager_id == user.id)


def get_property_for_user(s: "Session", user: "User", property_id: int) -> Property:
    prop = owned_properties(s, user).filter(Property.id == property_id).one_or_none()
    if not prop:
        raise NotFound("Property not found.")
    return prop


def list_properties(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_properties(s, user)
    search = (args.get("search") or args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Property.name.ilike(like), Property.address_line1.ilike(like), Property.city.ilike(like)))
    status = (args.get("status") or "").strip()
    if status:
        q = q.filter(Property.status == status)
    ptype = (args.get("type") or "").strip()
    if ptype:
        q = q.filter(Property.type == ptype)
    return q.order_by(Property.name.asc())


def create_property(s: "Session", payload: dict, user: "User") -> Property:
    """Create a property owned by the acting manager."""
    values = _normalize(parse_fields(payload, PROPERTY_FIELDS, drop_none=True))
    values.setdefault("state", DEFAULT_STATE)
    values.setdefault("country", DEFAULT_COUNTRY)
    now = datetime.utcnow()
    prop = Property(**values, manager_id=user.id, created_at=now, updated_at=now)
    s.add(prop)
    s.flush()

    record_event(
        s,
        actor=user,
        action="property.create",
        entity_type="Property",
        entity_id=str(prop.id),
        metadata={"name": prop.name, "city": prop.city},
    )
    return prop


def update_property(s: "Session", prop: Property, payload: dict, user: "User", reason: str | None = None) -> Property:
    changes = apply_updates(prop, _normalize(parse_fields(payload, PROPERTY_FIELDS)))
    prop.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="property.edit",
        entity_type="Property",
        entity_id=str(prop.id),
        reason=reason,
        metadata={"name": prop.name, "changes": changes},
    )
    return prop


def delete_property(s: "Session", prop: Property, user: "User") -> None:
    from app.pms.modules.leases.models import Lease

    lease_count = (
        s.query(func.count(Lease.id)).join(Unit, Unit.id == Lease.unit_id).filter(Unit.property_id == prop.id).scalar()
    )
    if lease_count:
        raise Conflict("Cannot delete a property whose units have leases.")
    record_event(
        s,
        actor=user,
        action="property.delete",
        entity_type="Property",
        entity_id=str(prop.id),
        metadata={"name": prop.name, "unit_count": len(prop.units)},
    )
    s.delete(prop)


def property_stats(s: "Session", user: "User") -> dict:
    total_properties = owned_properties(s, user).count()
    units = s.query(Unit).filter(Unit.property_id.in_(owned_property_ids(user))).all()
    occupied = [u for u in units if u.status == "OCCUPIED"]
    vacant = [u for u in units if u.status == "VACANT"]
    rent = sum(((u.current_rent or u.market_rent or Decimal("0")) for u in occupied), Decimal("0"))
    return {
        "total_properties": total_properties,
        "total_units": len(units),
        "occupied_units": len(occupied),
        "vacant_units": len(vacant),
        "occupancy_rate": pct(len(occupied), len(units)),
        "total_monthly_rent": float(rent),
    }

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.pms.audit import record_event
from app.pms.errors import Conflict, NotFound, ServiceError
from app.pms.modules.properties.models import UNIT_STATUSES, Property, Unit
from app.pms.modules.properties.service import get_property_for_user, owned_property_ids
from app.pms.utils import apply_updates, enum_errors, field_errors, parse_fields, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


UNIT_FIELDS = {
    "unit_number": "str",
    "status": "str",
    "floor_plan": "str",
    "bedrooms": "int",
    "bathrooms": "decimal",
    "sq_ft": "int",
    "floor": "int",
    "market_rent": "decimal",
    "current_rent": "decimal",
    "deposit_amount": "decimal",
    "pet_friendly": "bool",
    "pet_deposit": "decimal",
    "pet_rent": "decimal",
    "features": "list",
    "appliances": "list",
    "utilities_included": "list",
    "notes": "str",
}

MAX_BULK_UNITS = 100


def validate_unit_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"unit_number": "Unit number", "market_rent": "Market rent"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload}
    errors.extend(required_errors(payload, required))
    type_errors = field_errors(payload, UNIT_FIELDS)
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"status": UNIT_STATUSES}))
    if not type_errors:
        values = parse_fields(payload, UNIT_FIELDS)
        for key in ("market_rent", "current_rent", "deposit_amount", "pet_deposit", "pet_rent"):
            if values.get(key) is not None and values[key] < 0:
                errors.append(f"{key} must not be negative.")
        if values.get("bedrooms") is not None and values["bedrooms"] < 0:
            errors.append("bedrooms must not be negative.")
        if values.get("bathrooms") is not None and values["bathrooms"] < 0:
            errors.append("bathrooms must not be negative.")
    return errors


def get_unit_for_user(s: "Session", user: "User", unit_id: int) -> Unit:
    unit = (
        s.query(Unit)
        .filter(Unit.id == unit_id, Unit.property_id.in_(owned_property_ids(user)))
        .one_or_none()
    )
    if not unit:
        raise NotFound("Unit not found.")
    return unit


def list_units(s: "Session", user: "User", args: dict) -> "Query":
    q = s.query(Unit).filter(Unit.property_id.in_(owned_property_ids(user)))
    property_id = args.get("property_id")
    if property_id:
        q = q.filter(Unit.property_id == int(property_id))
    status = (args.get("status") or "").strip()
    if status:
        q = q.filter(Unit.status == status)
    return q.order_by(Unit.property_id.asc(), Unit.unit_number.asc())


def _unit_number_taken(s: "Session", property_id: int, unit_number: str, exclude_id: int | None = None) -> bool:
    q = s.query(Unit.id).filter(Unit.property_id == property_id, Unit.unit_number == unit_number)
    if exclude_id is not None:
        q = q.filter(Unit.id != exclude_id)
    return q.first() is not None


def _new_unit(prop: Property, payload: dict) -> Unit:
    now = datetime.utcnow()
    values = parse_fields(payload, UNIT_FIELDS, drop_none=True)
    return Unit(**values, property_id=prop.id, created_at=now, updated_at=now)


def create_unit(s: "Session", prop: Property, payload: dict, user: "User") -> Unit:
    unit_number = (payload.get("unit_number") or "").strip()
    if _unit_number_taken(s, prop.id, unit_number):
        raise Conflict(f"Unit {unit_number} already exists for this property.")
    unit = _new_unit(prop, payload)
    s.add(unit)
    s.flush()
    record_event(
        s,
        actor=user,
        action="unit.create",
        entity_type="Unit",
        entity_id=str(unit.id),
        metadata={"property_id": prop.id, "unit_number": unit.unit_number},
    )
    return unit


def bulk_create_units(s: "Session", user: "User", property_id: int, items: list[dict]) -> list[Unit]:
    """Create up to 100 units for one property; any duplicate number rejects the whole batch."""
    prop = get_property_for_user(s, user, property_id)
    if not isinstance(items, list) or not items:
        raise ServiceError("At least one unit is required.")
    if len(items) > MAX_BULK_UNITS:
        raise ServiceError(f"At most {MAX_BULK_UNITS} units can be created at once.")

    errors: list[str] = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            errors.append(f"Unit {idx}: must be an object.")
            continue
        errors.extend(f"Unit {idx}: {e}" for e in validate_unit_payload(item))
    if errors:
        raise ServiceError("; ".join(errors))

    numbers = [(item.get("unit_number") or "").strip() for item in items]
    repeated = {n for n, c in Counter(numbers).items() if c > 1}
    existing = {
        n for (n,) in s.query(Unit.unit_number).filter(Unit.property_id == prop.id, Unit.unit_number.in_(numbers)).all()
    }
    dupes = sorted(repeated | existing)
    if dupes:
        raise Conflict(f"Duplicate unit numbers: {', '.join(dupes)}")

    units = [_new_unit(prop, item) for item in items]
    s.add_all(units)
    s.flush()
    record_event(
        s,
        actor=user,
        action="unit.bulk_create",
        entity_type="Property",
        entity_id=str(prop.id),
        metadata={"count": len(units), "unit_numbers": numbers},
    )
    return units


def update_unit(s: "Session", unit: Unit, payload: dict, user: "User", reason: str | None = None) -> Unit:
    new_number = (payload.get("unit_number") or "").strip()
    if new_number and new_number != unit.unit_number and _unit_number_taken(s, unit.property_id, new_number, unit.id):
        raise Conflict(f"Unit {new_number} already exists for this property.")
    changes = apply_updates(unit, parse_fields(payload, UNIT_FIELDS))
    unit.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="unit.edit",
        entity_type="Unit",
        entity_id=str(unit.id),
        reason=reason,
        metadata={"unit_number": unit.unit_number, "changes": changes},
    )
    return unit


def _lease_counts(s: "Session", unit_ids: list[int]) -> dict[int, int]:
    from app.pms.modules.leases.models import Lease

    rows = s.query(Lease.unit_id, func.count(Lease.id)).filter(Lease.unit_id.in_(unit_ids)).group_by(Lease.unit_id).all()
    return {unit_id: count for unit_id, count in rows}


def delete_unit(s: "Session", unit: Unit, user: "User") -> None:
    if _lease_counts(s, [unit.id]):
        raise Conflict("Cannot delete a unit that has leases.")
    record_event(
        s,
        actor=user,
        action="unit.delete",
        entity_type="Unit",
        entity_id=str(unit.id),
        metadata={"property_id": unit.property_id, "unit_number": unit.unit_number},
    )
    s.delete(unit)


def bulk_delete_units(s: "Session", user: "User", unit_ids: list) -> int:
    if not isinstance(unit_ids, list) or not unit_ids:
        raise ServiceError("ids must be a non-empty list.")
    try:
        ids = sorted({int(i) for i in unit_ids})
    except (TypeError, ValueError):
        raise ServiceError("ids must be integers.") from None
    units = [get_unit_for_user(s, user, i) for i in ids]
    with_leases = _lease_counts(s, ids)
    if with_leases:
        blocked = ", ".join(u.unit_number for u in units if u.id in with_leases)
        raise Conflict(f"Cannot delete units that have leases: {blocked}")
    for unit in units:
        record_event(
            s,
            actor=user,
            action="unit.delete",
            entity_type="Unit",
            entity_id=str(unit.id),
            reason="bulk delete",
            metadata={"property_id": unit.property_id, "unit_number": unit.unit_number},
        )
        s.delete(unit)
    return len(units)

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.pms.audit import record_event
from app.pms.errors import Conflict, NotFound, ServiceError
from app.pms.modules.inspections.models import (
    CONDITIONS,
    INSPECTION_STATUSES,
    INSPECTION_TYPE_LABELS,
    INSPECTION_TYPES,
    ROOM_TEMPLATES,
    Inspection,
    InspectionItem,
)
from app.pms.modules.leases.service import get_lease_for_user
from app.pms.modules.properties.service import get_property_for_user, owned_property_ids
from app.pms.utils import (
    apply_updates,
    enum_errors,
    field_errors,
    model_to_dict,
    parse_date,
    parse_fields,
    required_errors,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


INSPECTION_FIELDS = {
    "type": "str",
    "status": "str",
    "scheduled_date": "date",
    "overall_condition": "str",
    "notes": "str",
    "lease_id": "int",
}
ITEM_FIELDS = {
    "room": "str",
    "item": "str",
    "condition": "str",
    "notes": "str",
    "photo_urls": "list",
    "has_damage": "bool",
    "damage_description": "str",
    "estimated_repair_cost": "decimal",
    "tenant_responsible": "bool",
}
LOCKED_STATUSES = ("COMPLETED", "CANCELLED")


def validate_inspection_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"property_id": "Property", "type": "Type", "scheduled_date": "Scheduled date"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload and k != "property_id"}
    errors.extend(required_errors(payload, required))
    errors.extend(field_errors(payload, {**INSPECTION_FIELDS, "property_id": "int"}))
    errors.extend(enum_errors(payload, {"type": INSPECTION_TYPES, "status": INSPECTION_STATUSES}))
    return errors


def validate_item_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"room": "Room", "item": "Item", "condition": "Condition"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload}
    errors.extend(required_errors(payload, required))
    type_errors = field_errors(payload, ITEM_FIELDS)
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"condition": CONDITIONS}))
    if not type_errors:
        cost = parse_fields(payload, ITEM_FIELDS).get("estimated_repair_cost")
        if cost is not None and cost < 0:
            errors.append("estimated_repair_cost must not be negative.")
    return errors


def serialize_item(i: InspectionItem) -> dict:
    return model_to_dict(i)


def serialize_inspection(i: Inspection, *, with_items: bool = False) -> dict:
    d = model_to_dict(i)
    d["type_label"] = INSPECTION_TYPE_LABELS.get(i.type, i.type)
    d["property_name"] = i.property.name if i.property else None
    d["lease_number"] = i.lease.lease_number if i.lease else None
    if with_items:
        d["items"] = [serialize_item(x) for x in i.items]
        d["damage_count"] = sum(1 for x in i.items if x.has_damage)
    return d


def owned_inspections(s: "Session", user: "User") -> "Query":
    return s.query(Inspection).filter(Inspection.property_id.in_(owned_property_ids(user)))


def get_inspection_for_user(s: "Session", user: "User", inspection_id: int) -> Inspection:
    inspection = owned_inspections(s, user).filter(Inspection.id == inspection_id).one_or_none()
    if not inspection:
        raise NotFound("Inspection not found.")
    return inspection


def list_inspections(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_inspections(s, user)
    for key, col in (("property_id", Inspection.property_id), ("lease_id", Inspection.lease_id)):
        raw = args.get(key)
        if raw:
            try:
                q = q.filter(col == int(raw))
            except (TypeError, ValueError):
                raise ServiceError(f"{key} must be an integer.") from None
    for key, col in (("type", Inspection.type), ("status", Inspection.status)):
        raw = (args.get(key) or "").strip()
        if raw:
            q = q.filter(col == raw)
    try:
        start = parse_date(args.get("from_date") or args.get("start_date"))
        end = parse_date(args.get("to_date") or args.get("end_date"))
    except ValueError:
        raise ServiceError("Date filters must be YYYY-MM-DD.") from None
    if start:
        q = q.filter(Inspection.scheduled_date >= start)
    if end:
        q = q.filter(Inspection.scheduled_date <= end)
    return q.order_by(Inspection.scheduled_date.desc(), Inspection.id.desc())


def _check_lease(s: "Session", user: "User", property_id: int, lease_id: int | None) -> None:
    if not lease_id:
        return
    lease = get_lease_for_user(s, user, lease_id)
    if lease.unit.property_id != property_id:
        raise ServiceError("Lease does not belong to this property.")


def create_inspection(s: "Session", payload: dict, user: "User") -> Inspection:
    prop = get_property_for_user(s, user, int(payload["property_id"]))
    values = parse_fields(payload, INSPECTION_FIELDS, drop_none=True)
    _check_lease(s, user, prop.id, values.get("lease_id"))
    values["status"] = "SCHEDULED"
    now = datetime.utcnow()
    inspection = Inspection(**values, property_id=prop.id, inspector_id=user.id, created_at=now, updated_at=now)
    inspection.property = prop
    s.add(inspection)
    s.flush()
    record_event(
        s,
        actor=user,
        action="inspection.create",
        entity_type="Inspection",
        entity_id=str(inspection.id),
        metadata={"property_id": prop.id, "type": inspection.type, "scheduled_date": inspection.scheduled_date.isoformat()},
    )
    return inspection


def update_inspection(s: "Session", inspection: Inspection, payload: dict, user: "User", reason: str | None = None) -> Inspection:
    values = parse_fields(payload, INSPECTION_FIELDS)
    if "lease_id" in values:
        _check_lease(s, user, inspection.property_id, values["lease_id"])
    changes = apply_updates(inspection, values)
    inspection.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="inspection.edit",
        entity_type="Inspection",
        entity_id=str(inspection.id),
        reason=reason,
        metadata={"changes": changes},
    )
    return inspection


def _transition(s: "Session", inspection: Inspection, user: "User", status: str, action: str, metadata: dict | None = None) -> None:
    old = inspection.status
    inspection.status = status
    inspection.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action=action,
        entity_type="Inspection",
        entity_id=str(inspection.id),
        metadata={"from": old, "to": status, **(metadata or {})},
    )


def start_inspection(s: "Session", inspection: Inspection, user: "User") -> Inspection:
    if inspection.status != "SCHEDULED":
        raise Conflict("Inspection must be scheduled to start.")
    _transition(s, inspection, user, "IN_PROGRESS", "inspection.start")
    return inspection


def complete_inspection(s: "Session", inspection: Inspection, payload: dict, user: "User") -> Inspection:
    if inspection.status == "COMPLETED":
        raise Conflict("Inspection is already completed.")
    if inspection.status == "CANCELLED":
        raise Conflict("Cannot complete a cancelled inspection.")
    overall = (payload.get("overall_condition") or "").strip()
    if not overall:
        raise ServiceError("Overall condition is required.")
    now = datetime.utcnow()
    notes = (payload.get("notes") or "").strip()
    if payload.get("signature_data"):
        notes = f"{notes}\n\n[Signature captured at {now.isoformat()}Z]".strip()
    inspection.overall_condition = overall[:50]
    inspection.completed_date = now
    if notes:
        inspection.notes = notes
    _transition(s, inspection, user, "COMPLETED", "inspection.complete", {"overall_condition": inspection.overall_condition})
    return inspection


def cancel_inspection(s: "Session", inspection: Inspection, payload: dict, user: "User") -> Inspection:
    if inspection.status == "COMPLETED":
        raise Conflict("Cannot cancel a completed inspection.")
    reason = (payload.get("reason") or "").strip()
    if reason:
        inspection.notes = f"{inspection.notes or ''}\n\nCancellation reason: {reason}".strip()
    _transition(s, inspection, user, "CANCELLED", "inspection.cancel", {"reason": reason or None})
    return inspection


def _ensure_editable(inspection: Inspection, verb: str) -> None:
    if inspection.status in LOCKED_STATUSES:
        raise Conflict(f"Cannot {verb} a completed or cancelled inspection.")


def get_item(inspection: Inspection, item_id: int) -> InspectionItem:
    for item in inspection.items:
        if item.id == item_id:
            return item
    raise NotFound("Inspection item not found.")


def add_item(s: "Session", inspection: Inspection, payload: dict, user: "User") -> InspectionItem:
    _ensure_editable(inspection, "add items to")
    now = datetime.utcnow()
    item = InspectionItem(**parse_fields(payload, ITEM_FIELDS, drop_none=True), created_at=now, updated_at=now)
    inspection.items.append(item)
    s.flush()
    record_event(
        s,
        actor=user,
        action="inspection.item_add",
        entity_type="Inspection",
        entity_id=str(inspection.id),
        metadata={"item_id": item.id, "room": item.room, "item": item.item, "condition": item.condition},
    )
    return item


def update_item(s: "Session", inspection: Inspection, item: InspectionItem, payload: dict, user: "User") -> InspectionItem:
    _ensure_editable(inspection, "update items on")
    changes = apply_updates(item, parse_fields(payload, ITEM_FIELDS))
    item.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="inspection.item_edit",
        entity_type="Inspection",
        entity_id=str(inspection.id),
        metadata={"item_id": item.id, "changes": changes},
    )
    return item


def delete_item(s: "Session", inspection: Inspection, item: InspectionItem, user: "User") -> None:
    _ensure_editable(inspection, "delete items from")
    record_event(
        s,
        actor=user,
        action="inspection.item_delete",
        entity_type="Inspection",
        entity_id=str(inspection.id),
        metadata={"item_id": item.id, "room": item.room, "item": item.item},
    )
    inspection.items.remove(item)


def apply_room_template(s: "Session", inspection: Inspection, room: str, user: "User", label: str | None = None) -> list[InspectionItem]:
    """Add every standard item for a room type; `label` names the room (e.g. "Bedroom 2")."""
    _ensure_editable(inspection, "add items to")
    if room not in ROOM_TEMPLATES:
        raise ServiceError(f"Unknown room template. Must be one of: {', '.join(ROOM_TEMPLATES)}")
    room_name = (label or "").strip() or room
    now = datetime.utcnow()
    items = [
        InspectionItem(room=room_name, item=name, condition="GOOD", created_at=now, updated_at=now)
        for name in ROOM_TEMPLATES[room]
    ]
    inspection.items.extend(items)
    s.flush()
    record_event(
        s,
        actor=user,
        action="inspection.apply_template",
        entity_type="Inspection",
        entity_id=str(inspection.id),
        metadata={"room": room_name, "template": room, "count": len(items)},
    )
    return items


def room_templates() -> dict:
    return {"room_templates": ROOM_TEMPLATES, "rooms": list(ROOM_TEMPLATES)}

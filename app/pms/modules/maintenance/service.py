from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy import func, or_

from app.pms.audit import record_event
from app.pms.errors import NotFound, ServiceError
from app.pms.models import User
from app.pms.modules.maintenance.models import (
    AUTHOR_TYPES,
    CATEGORY_LABELS,
    MAINTENANCE_CATEGORIES,
    MAINTENANCE_STATUSES,
    PRIORITIES,
    MaintenanceComment,
    MaintenanceRequest,
)
from app.pms.modules.properties.models import Unit
from app.pms.modules.properties.service import owned_property_ids
from app.pms.modules.properties.units import get_unit_for_user
from app.pms.modules.tenants.service import get_tenant_for_user
from app.pms.modules.vendors.service import get_vendor_for_user
from app.pms.utils import apply_updates, enum_errors, field_errors, generate_number, model_to_dict, parse_fields, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session


REQUEST_FIELDS = {
    "status": "str",
    "priority": "str",
    "category": "str",
    "title": "str",
    "description": "str",
    "location": "str",
    "permission_to_enter": "bool",
    "preferred_times": "str",
    "scheduled_date": "date",
    "scheduled_time": "str",
    "estimated_duration": "int",
    "completion_notes": "str",
    "estimated_cost": "decimal",
    "tenant_id": "int",
    "vendor_id": "int",
    "assigned_to_id": "int",
}

OPEN_STATUSES = ("SUBMITTED", "ACKNOWLEDGED")
IN_PROGRESS_STATUSES = ("SCHEDULED", "IN_PROGRESS", "PENDING_PARTS")
CLOSED_STATUSES = ("COMPLETED", "CANCELLED")


def validate_request_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"unit_id": "Unit", "title": "Title", "description": "Description"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload and k != "unit_id"}
    errors.extend(required_errors(payload, required))
    errors.extend(field_errors(payload, {**REQUEST_FIELDS, "unit_id": "int"}))
    errors.extend(
        enum_errors(
            payload,
            {"status": MAINTENANCE_STATUSES, "priority": PRIORITIES, "category": MAINTENANCE_CATEGORIES},
        )
    )
    if not errors:
        v = parse_fields(payload, REQUEST_FIELDS)
        if v.get("estimated_cost") is not None and v["estimated_cost"] < 0:
            errors.append("Estimated cost must not be negative.")
        if v.get("estimated_duration") is not None and v["estimated_duration"] < 0:
            errors.append("Estimated duration must not be negative.")
    return errors


def serialize_request(r: MaintenanceRequest, *, detail: bool = False) -> dict:
    from app.pms.modules.maintenance.costs import serialize_cost_item
    from app.pms.modules.maintenance.invoices import serialize_invoice

    d = model_to_dict(r)
    d["category_label"] = CATEGORY_LABELS.get(r.category, r.category)
    d["unit_number"] = r.unit.unit_number if r.unit else None
    d["property_id"] = r.unit.property_id if r.unit else None
    d["property_name"] = r.unit.property.name if r.unit and r.unit.property else None
    d["tenant_name"] = r.tenant.full_name if r.tenant else None
    d["vendor_name"] = r.vendor.company_name if r.vendor else None
    if detail:
        d["comments"] = [model_to_dict(c) for c in r.comments]
        d["cost_items"] = [serialize_cost_item(c) for c in r.cost_items]
        d["invoices"] = [serialize_invoice(i) for i in r.invoices]
    return d


def owned_requests(s: "Session", user: "User") -> "Query":
    return (
        s.query(MaintenanceRequest)
        .join(Unit, Unit.id == MaintenanceRequest.unit_id)
        .filter(Unit.property_id.in_(owned_property_ids(user)))
    )


def get_request_for_user(s: "Session", user: "User", request_id: int) -> MaintenanceRequest:
    req = owned_requests(s, user).filter(MaintenanceRequest.id == request_id).one_or_none()
    if not req:
        raise NotFound("Maintenance request not found.")
    return req


def list_requests(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_requests(s, user)
    for key, col in (
        ("status", MaintenanceRequest.status),
        ("priority", MaintenanceRequest.priority),
        ("category", MaintenanceRequest.category),
    ):
        raw = (args.get(key) or "").strip()
        if raw:
            q = q.filter(col == raw)
    for key, col in (("property_id", Unit.property_id), ("unit_id", MaintenanceRequest.unit_id)):
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
                MaintenanceRequest.request_number.ilike(like),
                MaintenanceRequest.title.ilike(like),
                MaintenanceRequest.description.ilike(like),
            )
        )
    return q.order_by(MaintenanceRequest.created_at.desc(), MaintenanceRequest.id.desc())


def _check_links(s: "Session", user: "User", values: dict) -> None:
    if values.get("tenant_id"):
        get_tenant_for_user(s, user, values["tenant_id"])
    if values.get("vendor_id"):
        get_vendor_for_user(s, user, values["vendor_id"])
    if values.get("assigned_to_id") and not s.get(User, values["assigned_to_id"]):
        raise NotFound("Assigned user not found.")


def create_request(s: "Session", payload: dict, user: "User") -> MaintenanceRequest:
    """Create a work order. EMERGENCY work orders alert the property manager right away."""
    unit = get_unit_for_user(s, user, int(payload["unit_id"]))
    values = parse_fields(payload, REQUEST_FIELDS, drop_none=True)
    _check_links(s, user, values)
    values.pop("status", None)

    now = datetime.utcnow()
    req = MaintenanceRequest(
        **values,
        request_number=generate_number("WO", now),
        status="SUBMITTED",
        unit_id=unit.id,
        created_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    req.unit = unit
    s.add(req)
    s.flush()

    record_event(
        s,
        actor=user,
        action="maintenance.create",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={
            "request_number": req.request_number,
            "priority": req.priority,
            "category": req.category,
            "unit_id": unit.id,
        },
    )

    if req.priority == "EMERGENCY":
        from app.pms.modules.maintenance.escalation import send_initial_emergency_alert

        send_initial_emergency_alert(s, req, current_app.config, now=now)
    return req


def update_request(s: "Session", req: MaintenanceRequest, payload: dict, user: "User", reason: str | None = None) -> MaintenanceRequest:
    values = parse_fields(payload, REQUEST_FIELDS)
    _check_links(s, user, values)
    old_status = req.status
    changes = apply_updates(req, values)
    now = datetime.utcnow()
    if req.status == "COMPLETED" and old_status != "COMPLETED" and req.completed_at is None:
        req.completed_at = now
        changes["completed_at"] = {"old": None, "new": now.isoformat()}
    req.updated_at = now
    record_event(
        s,
        actor=user,
        action="maintenance.edit",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        reason=reason,
        metadata={"request_number": req.request_number, "changes": changes},
    )
    return req


def add_comment(s: "Session", req: MaintenanceRequest, payload: dict, user: "User") -> MaintenanceComment:
    content = (payload.get("content") or "").strip()
    if not content:
        raise ServiceError("Comment content is required.")
    author_type = (payload.get("author_type") or "staff").strip()
    if author_type not in AUTHOR_TYPES:
        raise ServiceError(f"Invalid author_type. Must be one of: {', '.join(AUTHOR_TYPES)}")
    comment = MaintenanceComment(
        request_id=req.id,
        content=content,
        is_internal=bool(payload.get("is_internal")),
        author_name=(payload.get("author_name") or "").strip() or user.display_name,
        author_type=author_type,
        author_user_id=user.id,
        created_at=datetime.utcnow(),
    )
    req.comments.append(comment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="maintenance.comment",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"comment_id": comment.id, "is_internal": comment.is_internal},
    )
    return comment


def maintenance_stats(s: "Session", user: "User", now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    rows = (
        owned_requests(s, user)
        .with_entities(MaintenanceRequest.status, MaintenanceRequest.priority, func.count(MaintenanceRequest.id))
        .group_by(MaintenanceRequest.status, MaintenanceRequest.priority)
        .all()
    )
    open_count = sum(c for st, _p, c in rows if st in OPEN_STATUSES)
    in_progress = sum(c for st, _p, c in rows if st in IN_PROGRESS_STATUSES)
    emergency_open = sum(c for st, p, c in rows if p == "EMERGENCY" and st not in CLOSED_STATUSES)
    completed_recent = (
        owned_requests(s, user)
        .filter(
            MaintenanceRequest.status == "COMPLETED",
            MaintenanceRequest.completed_at >= now - timedelta(days=30),
        )
        .count()
    )
    return {
        "open": open_count,
        "in_progress": in_progress,
        "completed_last_30_days": completed_recent,
        "emergency_open": emergency_open,
        "total": sum(c for _s, _p, c in rows),
    }

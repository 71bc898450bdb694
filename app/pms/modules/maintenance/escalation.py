"""
Emergency work-order escalation.

Unacknowledged EMERGENCY work orders are escalated by age: level 1 right away,
level 2 after 30 minutes, level 3 after 60 minutes. Each new level emails the
property manager. Run one pass via scripts/process_escalations.py (cron or --interval
loop) or POST /api/maintenance/escalations/run.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.pms.audit import record_event
from app.pms.errors import ServiceError
from app.pms.mailer import EmailError, send_email
from app.pms.models import User
from app.pms.modules.maintenance.models import CATEGORY_LABELS, MaintenanceRequest

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# level -> minutes since the work order was created
ESCALATION_THRESHOLDS = {1: 0, 2: 30, 3: 60}
MAX_LEVEL = 3
ESCALATABLE_STATUSES = ("SUBMITTED", "ACKNOWLEDGED")


def next_escalation_level(minutes_elapsed: float, current_level: int) -> int | None:
    """Return the level to escalate to, or None when the work order stays put."""
    if minutes_elapsed >= ESCALATION_THRESHOLDS[3] and current_level < 3:
        return 3
    if minutes_elapsed >= ESCALATION_THRESHOLDS[2] and current_level < 2:
        return 2
    if current_level == 0:
        return 1
    return None


def format_elapsed(minutes: float) -> str:
    total = int(minutes)
    if total < 60:
        return f"{total} minute{'s' if total != 1 else ''}"
    hours, mins = divmod(total, 60)
    out = f"{hours} hour{'s' if hours != 1 else ''}"
    if mins:
        out += f" {mins} minute{'s' if mins != 1 else ''}"
    return out


def build_escalation_email(req: MaintenanceRequest, manager: User, level: int, minutes: float, app_url: str) -> tuple[str, str]:
    category = CATEGORY_LABELS.get(req.category, req.category)
    subject = f"EMERGENCY: {req.request_number} - {category} Issue"
    unit = req.unit
    prop = unit.property if unit else None
    lines = [
        f"Hello {manager.display_name},",
        "",
        f"An emergency maintenance request needs your attention (escalation level {level} of {MAX_LEVEL}).",
        "",
        f"Work order: {req.request_number}",
        f"Title: {req.title}",
        f"Description: {req.description}",
        f"Property: {prop.name if prop else 'Unknown'}",
        f"Unit: {unit.unit_number if unit else 'Unknown'}",
        f"Category: {category}",
        f"Escalation level: {level}",
        f"Time since submitted: {format_elapsed(minutes)}",
    ]
    if req.tenant:
        lines.append(f"Tenant: {req.tenant.full_name}")
        if req.tenant.phone:
            lines.append(f"Tenant phone: {req.tenant.phone}")
    lines += [
        "",
        f"View work order: {app_url.rstrip('/')}/maintenance/{req.id}",
        "",
        "Acknowledge the escalation to stop further alerts.",
    ]
    return subject, "\n".join(lines)


def _manager_for(s: "Session", req: MaintenanceRequest) -> User | None:
    if not req.unit or not req.unit.property:
        return None
    return s.get(User, req.unit.property.manager_id)


def _notify(s: "Session", req: MaintenanceRequest, level: int, minutes: float, config: dict) -> bool:
    """Email the property manager. Failures are logged and never raised."""
    manager = _manager_for(s, req)
    if not manager or not manager.email:
        logger.warning("No manager email for emergency work order %s; escalation level %s not sent", req.request_number, level)
        return False
    subject, text = build_escalation_email(req, manager, level, minutes, config.get("APP_URL") or "")
    try:
        send_email(
            config,
            to=manager.email,
            subject=subject,
            text=text,
            tags={"type": "emergency_escalation", "level": str(level)},
        )
    except EmailError as e:
        logger.error("Escalation email failed for %s (level %s): %s", req.request_number, level, e)
        return False
    return True


def _escalate(s: "Session", req: MaintenanceRequest, level: int, minutes: float, config: dict, now: datetime) -> None:
    old_level = req.escalation_level
    req.escalation_level = level
    req.last_escalated_at = now
    sent = _notify(s, req, level, minutes, config)
    record_event(
        s,
        actor=None,
        action="maintenance.escalate",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"request_number": req.request_number, "from_level": old_level, "to_level": level, "email_sent": sent},
    )


def send_initial_emergency_alert(s: "Session", req: MaintenanceRequest, config: dict, now: datetime | None = None) -> bool:
    if req.priority != "EMERGENCY":
        return False
    now = now or datetime.utcnow()
    _escalate(s, req, 1, 0, config, now)
    logger.info("Initial emergency alert for %s", req.request_number)
    return True


def process_emergency_escalations(s: "Session", config: dict, now: datetime | None = None) -> dict:
    """One polling pass over every unacknowledged emergency work order."""
    now = now or datetime.utcnow()
    pending = (
        s.query(MaintenanceRequest)
        .filter(
            MaintenanceRequest.priority == "EMERGENCY",
            MaintenanceRequest.status.in_(ESCALATABLE_STATUSES),
            MaintenanceRequest.escalation_acknowledged_at.is_(None),
        )
        .order_by(MaintenanceRequest.created_at.asc())
        .all()
    )
    escalated = 0
    for req in pending:
        minutes = (now - req.created_at).total_seconds() / 60
        level = next_escalation_level(minutes, req.escalation_level or 0)
        if level is None:
            continue
        _escalate(s, req, level, minutes, config, now)
        escalated += 1
    logger.info("Emergency escalation pass: processed=%s escalated=%s", len(pending), escalated)
    return {"processed": len(pending), "escalated": escalated}


def acknowledge_escalation(s: "Session", req: MaintenanceRequest, user: User) -> MaintenanceRequest:
    if req.priority != "EMERGENCY":
        raise ServiceError("Only emergency work orders can be acknowledged.")
    if req.escalation_acknowledged_at is not None:
        return req
    now = datetime.utcnow()
    req.escalation_acknowledged_at = now
    req.escalation_acknowledged_by_id = user.id
    req.updated_at = now
    record_event(
        s,
        actor=user,
        action="maintenance.escalation_ack",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"request_number": req.request_number, "level": req.escalation_level},
    )
    return req


def emergency_stats(s: "Session", user: User) -> dict:
    from app.pms.modules.maintenance.service import CLOSED_STATUSES, owned_requests

    active = owned_requests(s, user).filter(
        MaintenanceRequest.priority == "EMERGENCY",
        MaintenanceRequest.status.notin_(CLOSED_STATUSES),
    )
    unacknowledged = active.filter(
        MaintenanceRequest.escalation_level > 0,
        MaintenanceRequest.escalation_acknowledged_at.is_(None),
    )
    return {"active_emergencies": active.count(), "unacknowledged_count": unacknowledged.count()}

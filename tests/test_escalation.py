from datetime import timedelta

import pytest

from app.pms.db import session_scope
from app.pms.modules.maintenance import escalation
from app.pms.modules.maintenance.escalation import format_elapsed, next_escalation_level, process_emergency_escalations
from app.pms.modules.maintenance.models import MaintenanceRequest


@pytest.fixture()
def sent(monkeypatch):
    outbox = []

    def fake_send_email(config, *, to, subject, text, tags=None, **kwargs):
        outbox.append({"to": to, "subject": subject, "text": text, "tags": tags})

    monkeypatch.setattr(escalation, "send_email", fake_send_email)
    return outbox


def _emergency(api, rental, **overrides):
    payload = {
        "unit_id": rental["unit"]["id"],
        "tenant_id": rental["tenant"]["id"],
        "title": "Burst pipe",
        "description": "Water pouring from ceiling",
        "category": "PLUMBING",
        "priority": "EMERGENCY",
    }
    payload.update(overrides)
    r = api.post("/api/maintenance", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def _run_pass(app, request_id, minutes):
    with app.app_context():
        with session_scope(app) as s:
            created = s.get(MaintenanceRequest, request_id).created_at
            return process_emergency_escalations(s, app.config, now=created + timedelta(minutes=minutes))


@pytest.mark.parametrize(
    "minutes,current,expected",
    [
        (0, 0, 1),
        (10, 1, None),
        (30, 1, 2),
        (45, 2, None),
        (60, 1, 3),
        (61, 2, 3),
        (500, 3, None),
    ],
)
def test_next_escalation_level(minutes, current, expected):
    assert next_escalation_level(minutes, current) == expected


def test_format_elapsed():
    assert format_elapsed(1) == "1 minute"
    assert format_elapsed(35.7) == "35 minutes"
    assert format_elapsed(60) == "1 hour"
    assert format_elapsed(125) == "2 hours 5 minutes"


def test_emergency_create_sends_initial_alert(api, rental, sent):
    wo = _emergency(api, rental)
    assert wo["escalation_level"] == 1
    assert wo["last_escalated_at"] is not None
    assert len(sent) == 1
    mail = sent[0]
    assert mail["to"] == "manager@example.com"
    assert mail["subject"] == f"EMERGENCY: {wo['request_number']} - Plumbing Issue"
    assert "escalation level 1 of 3" in mail["text"]
    assert "Tenant: Jane Renter" in mail["text"]
    assert f"http://pms.test/maintenance/{wo['id']}" in mail["text"]
    assert mail["tags"] == {"type": "emergency_escalation", "level": "1"}


def test_non_emergency_sends_nothing(api, rental, sent):
    wo = _emergency(api, rental, priority="HIGH")
    assert wo["escalation_level"] == 0
    assert sent == []


def test_escalation_pass_levels_up_by_age(app, api, rental, sent):
    wo = _emergency(api, rental)
    sent.clear()

    assert _run_pass(app, wo["id"], 10) == {"processed": 1, "escalated": 0}
    assert _run_pass(app, wo["id"], 35) == {"processed": 1, "escalated": 1}
    assert api.get(f"/api/maintenance/{wo['id']}").get_json()["escalation_level"] == 2
    assert "Time since submitted: 35 minutes" in sent[-1]["text"]

    assert _run_pass(app, wo["id"], 65) == {"processed": 1, "escalated": 1}
    assert api.get(f"/api/maintenance/{wo['id']}").get_json()["escalation_level"] == 3
    assert "Time since submitted: 1 hour 5 minutes" in sent[-1]["text"]

    # level 3 is the ceiling
    assert _run_pass(app, wo["id"], 300) == {"processed": 1, "escalated": 0}
    assert len(sent) == 2


def test_acknowledged_work_orders_stop_escalating(app, api, rental, sent):
    wo = _emergency(api, rental)
    r = api.post(f"/api/maintenance/{wo['id']}/acknowledge")
    assert r.status_code == 200
    acked_at = r.get_json()["escalation_acknowledged_at"]
    assert acked_at is not None
    # acknowledging twice keeps the first acknowledgement
    again = api.post(f"/api/maintenance/{wo['id']}/acknowledge").get_json()
    assert again["escalation_acknowledged_at"] == acked_at

    assert _run_pass(app, wo["id"], 45) == {"processed": 0, "escalated": 0}


def test_closed_work_orders_are_not_escalated(app, api, rental, sent):
    wo = _emergency(api, rental)
    api.patch(f"/api/maintenance/{wo['id']}", json={"status": "IN_PROGRESS"})
    assert _run_pass(app, wo["id"], 45) == {"processed": 0, "escalated": 0}


def test_only_emergencies_can_be_acknowledged(api, rental, sent):
    wo = _emergency(api, rental, priority="LOW")
    r = api.post(f"/api/maintenance/{wo['id']}/acknowledge")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Only emergency work orders can be acknowledged."


def test_emergency_stats(api, rental, sent):
    first = _emergency(api, rental)
    _emergency(api, rental, title="Gas smell")
    _emergency(api, rental, priority="HIGH")
    api.post(f"/api/maintenance/{first['id']}/acknowledge")
    assert api.get("/api/maintenance/emergency-stats").get_json() == {"active_emergencies": 2, "unacknowledged_count": 1}


def test_run_endpoint(admin_api, api, rental, sent):
    _emergency(api, rental)
    r = admin_api.post("/api/maintenance/escalations/run")
    assert r.status_code == 200
    # just created, already at level 1
    assert r.get_json() == {"processed": 1, "escalated": 0}


def test_email_failure_does_not_block_escalation(app, api, rental, monkeypatch):
    def boom(*args, **kwargs):
        raise escalation.EmailError("smtp down")

    monkeypatch.setattr(escalation, "send_email", boom)
    wo = _emergency(api, rental)
    assert wo["escalation_level"] == 1
    assert _run_pass(app, wo["id"], 31)["escalated"] == 1

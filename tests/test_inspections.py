from conftest import make_property


def _inspection(api, property_id, **overrides):
    payload = {"property_id": property_id, "type": "MOVE_IN", "scheduled_date": "2026-04-01"}
    payload.update(overrides)
    r = api.post("/api/inspections", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def test_create_inspection_is_scheduled(api, rental):
    i = _inspection(api, rental["property"]["id"], lease_id=rental["lease"]["id"], status="COMPLETED")
    assert i["status"] == "SCHEDULED"
    assert i["type_label"] == "Move-In Inspection"
    assert i["lease_number"] == rental["lease"]["lease_number"]
    assert i["items"] == []
    assert i["damage_count"] == 0


def test_inspection_validation(api):
    r = api.post("/api/inspections", json={"type": "WALKTHROUGH"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Property is required." in errors
    assert "Scheduled date is required." in errors
    assert any(e.startswith("Invalid type.") for e in errors)


def test_lease_must_belong_to_property(api, rental):
    elsewhere = make_property(api, name="Oak Row")
    r = api.post(
        "/api/inspections",
        json={"property_id": elsewhere["id"], "type": "ROUTINE", "scheduled_date": "2026-04-01", "lease_id": rental["lease"]["id"]},
    )
    assert r.status_code == 400
    assert r.get_json()["error"] == "Lease does not belong to this property."


def test_state_machine(api):
    prop = make_property(api)
    i = _inspection(api, prop["id"])
    base = f"/api/inspections/{i['id']}"
    assert api.post(f"{base}/start").get_json()["status"] == "IN_PROGRESS"
    assert api.post(f"{base}/start").status_code == 409
    assert api.post(f"{base}/complete", json={}).status_code == 400
    r = api.post(f"{base}/complete", json={"overall_condition": "Good", "notes": "All fine", "signature_data": "data:image/png;base64,AAAA"})
    body = r.get_json()
    assert body["status"] == "COMPLETED"
    assert body["overall_condition"] == "Good"
    assert body["completed_date"] is not None
    assert body["notes"].startswith("All fine")
    assert "[Signature captured at" in body["notes"]
    assert api.post(f"{base}/complete", json={"overall_condition": "Good"}).status_code == 409
    assert api.post(f"{base}/cancel", json={}).status_code == 409


def test_cancel_records_reason(api):
    prop = make_property(api)
    i = _inspection(api, prop["id"])
    r = api.post(f"/api/inspections/{i['id']}/cancel", json={"reason": "Tenant unavailable"})
    body = r.get_json()
    assert body["status"] == "CANCELLED"
    assert "Cancellation reason: Tenant unavailable" in body["notes"]
    assert api.post(f"/api/inspections/{i['id']}/complete", json={"overall_condition": "Fair"}).status_code == 409


def test_items(api):
    prop = make_property(api)
    i = _inspection(api, prop["id"])
    base = f"/api/inspections/{i['id']}/items"
    r = api.post(base, json={"room": "Kitchen", "item": "Sink", "condition": "BROKEN"})
    assert r.status_code == 400
    r = api.post(
        base,
        json={
            "room": "Kitchen",
            "item": "Sink",
            "condition": "DAMAGED",
            "has_damage": True,
            "damage_description": "Chipped basin",
            "estimated_repair_cost": 180,
            "photo_urls": ["https://img.example.com/1.jpg"],
        },
    )
    assert r.status_code == 201
    item = r.get_json()
    assert item["photo_urls"] == ["https://img.example.com/1.jpg"]
    assert item["estimated_repair_cost"] == 180.0

    detail = api.get(f"/api/inspections/{i['id']}").get_json()
    assert detail["damage_count"] == 1

    r = api.patch(f"{base}/{item['id']}", json={"condition": "POOR", "tenant_responsible": True})
    assert r.get_json()["condition"] == "POOR"
    assert r.get_json()["tenant_responsible"] is True
    assert api.delete(f"{base}/{item['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/inspections/{i['id']}").get_json()["items"] == []


def test_items_locked_after_completion(api):
    prop = make_property(api)
    i = _inspection(api, prop["id"])
    api.post(f"/api/inspections/{i['id']}/complete", json={"overall_condition": "Good"})
    r = api.post(f"/api/inspections/{i['id']}/items", json={"room": "Kitchen", "item": "Sink", "condition": "GOOD"})
    assert r.status_code == 409


def test_room_templates(api):
    body = api.get("/api/inspections/room-templates").get_json()
    assert "Kitchen" in body["rooms"]
    assert "Smoke Detector" in body["room_templates"]["Hallway"]

    prop = make_property(api)
    i = _inspection(api, prop["id"])
    r = api.post(f"/api/inspections/{i['id']}/apply-template", json={"room": "Bedroom", "room_name": "Bedroom 2"})
    assert r.status_code == 201
    items = r.get_json()["data"]
    assert len(items) == len(body["room_templates"]["Bedroom"])
    assert {x["room"] for x in items} == {"Bedroom 2"}
    assert {x["condition"] for x in items} == {"GOOD"}

    r = api.post(f"/api/inspections/{i['id']}/apply-template", json={"room": "Dungeon"})
    assert r.status_code == 400


def test_list_and_scoping(api, other_api):
    prop = make_property(api)
    _inspection(api, prop["id"], scheduled_date="2026-04-01")
    _inspection(api, prop["id"], type="ANNUAL", scheduled_date="2026-09-01")
    body = api.get("/api/inspections?type=ANNUAL").get_json()
    assert [x["scheduled_date"] for x in body["data"]] == ["2026-09-01"]
    body = api.get("/api/inspections?from_date=2026-03-01&to_date=2026-05-01").get_json()
    assert [x["type"] for x in body["data"]] == ["MOVE_IN"]
    assert other_api.get("/api/inspections").get_json()["pagination"]["total"] == 0

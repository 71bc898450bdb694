import io

from conftest import make_vendor


def _work_order(api, unit_id, **overrides):
    payload = {
        "unit_id": unit_id,
        "title": "Leaking faucet",
        "description": "Kitchen faucet drips constantly",
        "category": "PLUMBING",
        "priority": "MEDIUM",
    }
    payload.update(overrides)
    r = api.post("/api/maintenance", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def test_create_work_order(api, rental):
    wo = _work_order(api, rental["unit"]["id"], tenant_id=rental["tenant"]["id"], status="COMPLETED")
    assert wo["request_number"].startswith("WO-")
    # status is always SUBMITTED on create
    assert wo["status"] == "SUBMITTED"
    assert wo["category_label"] == "Plumbing"
    assert wo["property_name"] == "Maple Court"
    assert wo["tenant_name"] == "Jane Renter"
    assert wo["escalation_level"] == 0
    assert wo["comments"] == [] and wo["cost_items"] == [] and wo["invoices"] == []


def test_work_order_validation(api, rental):
    r = api.post("/api/maintenance", json={"unit_id": rental["unit"]["id"], "priority": "URGENT"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Title is required." in errors
    assert "Description is required." in errors
    assert any(e.startswith("Invalid priority.") for e in errors)


def test_work_order_for_foreign_unit_is_404(api, other_api, rental):
    r = other_api.post(
        "/api/maintenance",
        json={"unit_id": rental["unit"]["id"], "title": "x", "description": "y"},
    )
    assert r.status_code == 404


def test_completing_sets_completed_at_and_stats(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    _work_order(api, rental["unit"]["id"], title="Broken heater", category="HVAC")
    r = api.patch(f"/api/maintenance/{wo['id']}", json={"status": "COMPLETED", "completion_notes": "Replaced washer"})
    assert r.status_code == 200
    assert r.get_json()["completed_at"] is not None
    stats = api.get("/api/maintenance/stats").get_json()
    assert stats == {"open": 1, "in_progress": 0, "completed_last_30_days": 1, "emergency_open": 0, "total": 2}


def test_list_filters_and_search(api, rental):
    _work_order(api, rental["unit"]["id"])
    _work_order(
        api,
        rental["unit"]["id"],
        title="Broken heater",
        description="No heat in the bedroom",
        category="HVAC",
        priority="HIGH",
    )
    body = api.get("/api/maintenance?category=HVAC").get_json()
    assert [w["title"] for w in body["data"]] == ["Broken heater"]
    body = api.get("/api/maintenance?search=faucet").get_json()
    assert [w["title"] for w in body["data"]] == ["Leaking faucet"]
    body = api.get(f"/api/maintenance?property_id={rental['property']['id']}").get_json()
    assert body["pagination"]["total"] == 2


def test_comments(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    assert api.post(f"/api/maintenance/{wo['id']}/comments", json={"content": " "}).status_code == 400
    r = api.post(f"/api/maintenance/{wo['id']}/comments", json={"content": "Vendor on the way", "is_internal": True})
    assert r.status_code == 201
    comment = r.get_json()
    assert comment["author_name"] == "Mona Tester"
    assert comment["author_type"] == "staff"
    detail = api.get(f"/api/maintenance/{wo['id']}").get_json()
    assert [c["content"] for c in detail["comments"]] == ["Vendor on the way"]


def test_cost_items_roll_up_to_work_order(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    base = f"/api/maintenance/{wo['id']}/costs"
    r = api.post(base, json={"type": "LABOR", "description": "Plumber", "quantity": 2, "unit_cost": 75, "labor_hours": 2})
    assert r.status_code == 201
    labor = r.get_json()
    assert labor["total_cost"] == 150.0
    assert labor["type_label"] == "Labor"
    r = api.post(base, json={"type": "PARTS", "description": "Washer kit", "unit_cost": 12.5, "charge_to_tenant": True})
    parts = r.get_json()
    assert parts["quantity"] == 1.0
    assert parts["tenant_charge_amount"] == 12.5

    detail = api.get(f"/api/maintenance/{wo['id']}").get_json()
    assert detail["actual_cost"] == 162.5
    assert detail["tenant_charge"] == 12.5

    summary = api.get(f"{base}/summary").get_json()
    assert summary["total_cost"] == 162.5
    assert summary["labor_cost"] == 150.0
    assert summary["parts_cost"] == 12.5
    assert summary["tenant_charges"] == 12.5
    assert summary["net_cost"] == 150.0
    assert [row["type"] for row in summary["by_type"]] == ["LABOR", "PARTS"]

    r = api.patch(f"{base}/{labor['id']}", json={"quantity": 3})
    assert r.get_json()["total_cost"] == 225.0
    assert api.get(f"/api/maintenance/{wo['id']}").get_json()["actual_cost"] == 237.5

    assert api.delete(f"{base}/{parts['id']}").get_json() == {"ok": True}
    detail = api.get(f"/api/maintenance/{wo['id']}").get_json()
    assert detail["actual_cost"] == 225.0
    assert detail["tenant_charge"] is None


def test_cost_item_validation(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    r = api.post(f"/api/maintenance/{wo['id']}/costs", json={"description": "x", "unit_cost": 5, "quantity": 0})
    assert r.status_code == 400
    assert "Quantity must be greater than 0." in r.get_json()["errors"]


def test_bulk_cost_items(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    base = f"/api/maintenance/{wo['id']}/costs"
    r = api.post(f"{base}/bulk", json={"items": [{"description": "a", "unit_cost": 10}, {"description": "b", "unit_cost": -1}]})
    assert r.status_code == 400
    assert "Item 2" in r.get_json()["error"]
    r = api.post(f"{base}/bulk", json={"items": [{"description": "a", "unit_cost": 10}, {"description": "b", "unit_cost": 20}]})
    assert r.status_code == 201
    ids = [c["id"] for c in r.get_json()["data"]]
    assert api.post(f"{base}/bulk-delete", json={"ids": ids}).get_json() == {"deleted": 2}
    assert api.get(f"/api/maintenance/{wo['id']}").get_json()["actual_cost"] == 0.0


def test_invoice_workflow_with_cost_item(api, rental):
    vendor = make_vendor(api)
    wo = _work_order(api, rental["unit"]["id"], vendor_id=vendor["id"])
    r = api.post(f"/api/maintenance/{wo['id']}/invoices", json={"subtotal": 200, "tax_amount": 15.5, "invoice_date": "2026-03-01"})
    assert r.status_code == 201
    inv = r.get_json()
    assert inv["status"] == "DRAFT"
    assert inv["total_amount"] == 215.5
    assert inv["vendor_name"] == "Ace Plumbing"
    assert inv["has_file"] is False

    iid = inv["id"]
    assert api.post(f"/api/maintenance/invoices/{iid}/approve", json={}).status_code == 409
    assert api.post(f"/api/maintenance/invoices/{iid}/submit").get_json()["status"] == "SUBMITTED"
    assert api.patch(f"/api/maintenance/invoices/{iid}", json={"subtotal": 1}).status_code == 409
    assert api.post(f"/api/maintenance/invoices/{iid}/start-review").get_json()["status"] == "UNDER_REVIEW"
    r = api.post(
        f"/api/maintenance/invoices/{iid}/approve",
        json={"create_cost_item": True, "cost_type": "SUBCONTRACTOR", "review_notes": "OK"},
    )
    assert r.get_json()["status"] == "APPROVED"
    detail = api.get(f"/api/maintenance/{wo['id']}").get_json()
    assert detail["actual_cost"] == 215.5
    assert detail["cost_items"][0]["invoice_id"] == iid
    assert detail["cost_items"][0]["type"] == "SUBCONTRACTOR"

    assert api.post(f"/api/maintenance/invoices/{iid}/mark-paid", json={"payment_method": "BITCOIN"}).status_code == 400
    r = api.post(f"/api/maintenance/invoices/{iid}/mark-paid", json={"payment_method": "ACH", "payment_reference": "T-1"})
    body = r.get_json()
    assert body["status"] == "PAID"
    assert body["payment_method"] == "ACH"
    assert api.post(f"/api/maintenance/invoices/{iid}/cancel", json={}).status_code == 409
    assert api.delete(f"/api/maintenance/invoices/{iid}").status_code == 409


def test_approve_without_cost_item_by_default(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    iid = api.post(f"/api/maintenance/{wo['id']}/invoices", json={"subtotal": 80}).get_json()["id"]
    api.post(f"/api/maintenance/invoices/{iid}/submit")
    api.post(f"/api/maintenance/invoices/{iid}/approve", json={})
    assert api.get(f"/api/maintenance/{wo['id']}").get_json()["cost_items"] == []


def test_reject_requires_reason(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    iid = api.post(f"/api/maintenance/{wo['id']}/invoices", json={"subtotal": 80}).get_json()["id"]
    api.post(f"/api/maintenance/invoices/{iid}/submit")
    assert api.post(f"/api/maintenance/invoices/{iid}/reject", json={}).status_code == 400
    r = api.post(f"/api/maintenance/invoices/{iid}/reject", json={"rejection_reason": "Duplicate"})
    assert r.get_json()["status"] == "REJECTED"
    assert r.get_json()["rejection_reason"] == "Duplicate"


def test_invoice_file_upload_and_download(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    r = api.post(
        f"/api/maintenance/{wo['id']}/invoices",
        data={"subtotal": "99.99", "file": (io.BytesIO(b"%PDF-1.4 fake"), "bill.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    inv = r.get_json()
    assert inv["has_file"] is True
    assert inv["file_name"] == "bill.pdf"
    r = api.get(f"/api/maintenance/invoices/{inv['id']}/file")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 fake"
    # draft invoices can be deleted, file and all
    assert api.delete(f"/api/maintenance/invoices/{inv['id']}").get_json() == {"ok": True}


def test_invoice_validation_and_summary(api, rental):
    wo = _work_order(api, rental["unit"]["id"])
    r = api.post(f"/api/maintenance/{wo['id']}/invoices", json={"invoice_date": "2026-03-10", "due_date": "2026-03-01"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Subtotal is required." in errors
    assert "Due date must not be before the invoice date." in errors

    a = api.post(f"/api/maintenance/{wo['id']}/invoices", json={"subtotal": 100}).get_json()
    api.post(f"/api/maintenance/{wo['id']}/invoices", json={"subtotal": 50})
    api.post(f"/api/maintenance/invoices/{a['id']}/submit")
    summary = api.get("/api/maintenance/invoices/summary").get_json()
    assert summary["total_invoices"] == 2
    assert summary["total_amount"] == 150.0
    assert summary["pending_approval"] == {"count": 1, "amount": 100.0}
    assert summary["pending_payment"] == {"count": 0, "amount": 0.0}
    assert {row["status"] for row in summary["by_status"]} == {"DRAFT", "SUBMITTED"}

    listed = api.get("/api/maintenance/invoices?status=SUBMITTED").get_json()
    assert [i["id"] for i in listed["data"]] == [a["id"]]

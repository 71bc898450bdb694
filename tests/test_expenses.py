import io
from datetime import date, timedelta

import openpyxl

from conftest import make_property, make_vendor


def _expense(api, property_id, **overrides):
    payload = {"property_id": property_id, "amount": 100, "description": "Supplies run"}
    payload.update(overrides)
    r = api.post("/api/expenses", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def test_create_expense(api):
    prop = make_property(api)
    vendor = make_vendor(api)
    e = _expense(api, prop["id"], vendor_id=vendor["id"], category="REPAIRS")
    assert e["expense_number"].startswith("EXP-")
    assert e["status"] == "PENDING"
    assert e["tax_deductible"] is True
    assert e["expense_date"] == date.today().isoformat()
    assert e["property_name"] == "Maple Court"
    assert e["vendor_name"] == "Ace Plumbing"


def test_expense_validation(api):
    r = api.post("/api/expenses", json={"amount": 0, "category": "YACHT"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Property is required." in errors
    assert "Description is required." in errors
    assert "Amount must be greater than 0." in errors
    assert any(e.startswith("Invalid category.") for e in errors)


def test_expense_on_foreign_property_is_404(api, other_api):
    prop = make_property(api)
    r = other_api.post("/api/expenses", json={"property_id": prop["id"], "amount": 5, "description": "x"})
    assert r.status_code == 404


def test_mark_paid(api):
    prop = make_property(api)
    e = _expense(api, prop["id"])
    r = api.post(f"/api/expenses/{e['id']}/mark-paid", json={"paid_date": "2026-03-15", "reference_number": "CHK-9"})
    body = r.get_json()
    assert body["status"] == "PAID"
    assert body["paid_date"] == "2026-03-15"
    assert body["reference_number"] == "CHK-9"

    rejected = _expense(api, prop["id"], status="REJECTED")
    r = api.post(f"/api/expenses/{rejected['id']}/mark-paid", json={})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot pay a rejected expense."


def test_summary_counts_approved_and_paid_only(api):
    prop = make_property(api)
    _expense(api, prop["id"], amount=300, category="MAINTENANCE", status="APPROVED")
    _expense(api, prop["id"], amount=200, category="UTILITIES", status="PAID", tax_deductible=False)
    _expense(api, prop["id"], amount=50, category="UTILITIES")
    summary = api.get("/api/expenses/summary").get_json()
    assert summary["total_amount"] == 500.0
    assert summary["count"] == 2
    assert summary["tax_deductible_amount"] == 300.0
    assert summary["by_category"] == [
        {"category": "MAINTENANCE", "amount": 300.0, "count": 1, "percent": 60.0},
        {"category": "UTILITIES", "amount": 200.0, "count": 1, "percent": 40.0},
    ]


def test_stats_month_over_month(api):
    prop = make_property(api)
    last_month = date.today().replace(day=1) - timedelta(days=1)
    _expense(api, prop["id"], amount=400, status="PAID", expense_date=last_month.isoformat())
    _expense(api, prop["id"], amount=500, status="APPROVED")
    _expense(api, prop["id"], amount=80)
    stats = api.get("/api/expenses/stats").get_json()
    assert stats == {
        "current_month_total": 500.0,
        "last_month_total": 400.0,
        "month_over_month_change": 25.0,
        "pending_amount": 80.0,
        "pending_count": 1,
    }


def test_stats_without_last_month(api):
    prop = make_property(api)
    _expense(api, prop["id"], amount=500, status="APPROVED")
    assert api.get("/api/expenses/stats").get_json()["month_over_month_change"] == 100.0


def test_list_filters(api):
    prop = make_property(api)
    other = make_property(api, name="Oak Row")
    _expense(api, prop["id"], expense_date="2026-01-10")
    _expense(api, other["id"], expense_date="2026-02-10", category="LEGAL")
    body = api.get(f"/api/expenses?property_id={other['id']}").get_json()
    assert [e["category"] for e in body["data"]] == ["LEGAL"]
    body = api.get("/api/expenses?date_from=2026-01-01&date_to=2026-01-31").get_json()
    assert [e["expense_date"] for e in body["data"]] == ["2026-01-10"]


def test_export_xlsx(api):
    prop = make_property(api)
    _expense(api, prop["id"], amount=42.5, description="Light bulbs", category="SUPPLIES")
    _expense(api, prop["id"], amount=99, description="Gutter cleaning", category="CLEANING")
    r = api.get("/api/expenses/export")
    assert r.status_code == 200
    assert r.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    wb = openpyxl.load_workbook(io.BytesIO(r.data))
    ws = wb["Expenses"]
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][:3] == ("Expense #", "Date", "Property")
    assert len(rows) == 3
    assert {row[4] for row in rows[1:]} == {"Light bulbs", "Gutter cleaning"}
    assert {row[6] for row in rows[1:]} == {42.5, 99}


def test_delete_expense(api):
    prop = make_property(api)
    e = _expense(api, prop["id"])
    assert api.delete(f"/api/expenses/{e['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/expenses/{e['id']}").status_code == 404

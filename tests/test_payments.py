from datetime import date, timedelta

from conftest import make_tenant


def _payment(api, tenant_id, **overrides):
    payload = {"tenant_id": tenant_id, "amount": 100}
    payload.update(overrides)
    r = api.post("/api/payments", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def test_create_payment_defaults(api, rental):
    p = _payment(api, rental["tenant"]["id"], lease_id=rental["lease"]["id"])
    assert p["payment_number"].startswith("PAY-")
    assert p["type"] == "RENT"
    assert p["method"] == "CHECK"
    assert p["status"] == "PENDING"
    assert p["payment_date"] == date.today().isoformat()
    assert p["processed_at"] is None
    assert p["tenant_name"] == "Jane Renter"
    assert p["lease_number"] == rental["lease"]["lease_number"]


def test_payment_validation(api, rental):
    r = api.post(
        "/api/payments",
        json={"amount": -5, "method": "BARTER", "period_start": "2026-02-01", "period_end": "2026-01-01"},
    )
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Tenant is required." in errors
    assert "Amount must be greater than 0." in errors
    assert "Period end must not be before period start." in errors
    assert any(e.startswith("Invalid method.") for e in errors)


def test_completing_payment_sets_processed_at(api, rental):
    p = _payment(api, rental["tenant"]["id"])
    r = api.patch(f"/api/payments/{p['id']}", json={"status": "COMPLETED"})
    assert r.status_code == 200
    assert r.get_json()["processed_at"] is not None


def test_payment_for_foreign_tenant_is_404(other_api, rental):
    r = other_api.post("/api/payments", json={"tenant_id": rental["tenant"]["id"], "amount": 10})
    assert r.status_code == 404


def test_list_payments_filters(api, rental):
    tid = rental["tenant"]["id"]
    _payment(api, tid, payment_date="2026-01-05", status="COMPLETED")
    _payment(api, tid, payment_date="2026-02-05", type="LATE_FEE")
    body = api.get("/api/payments?type=LATE_FEE").get_json()
    assert [p["payment_date"] for p in body["data"]] == ["2026-02-05"]
    body = api.get("/api/payments?start_date=2026-01-01&end_date=2026-01-31").get_json()
    assert [p["payment_date"] for p in body["data"]] == ["2026-01-05"]
    assert api.get("/api/payments?start_date=yesterday").status_code == 400


def test_payment_stats(api, rental):
    tid, lid = rental["tenant"]["id"], rental["lease"]["id"]
    _payment(api, tid, lease_id=lid, amount=1000, status="COMPLETED")
    _payment(api, tid, amount=200, due_date=(date.today() - timedelta(days=3)).isoformat())
    _payment(api, tid, amount=75, type="LATE_FEE", status="COMPLETED")
    stats = api.get("/api/payments/stats").get_json()
    assert stats == {
        "expected_rent": 1250.0,
        "collected_this_month": 1000.0,
        "collection_rate": 80.0,
        "pending_amount": 200.0,
        "pending_count": 1,
        "late_payments": 1,
    }


def test_rent_roll(api, rental):
    _payment(api, rental["tenant"]["id"], lease_id=rental["lease"]["id"], amount=1000, status="COMPLETED")
    roll = api.get("/api/payments/rent-roll").get_json()
    assert roll["month"] == date.today().strftime("%Y-%m")
    [row] = roll["data"]
    assert row["status"] == "PARTIAL"
    assert row["paid_amount"] == 1000.0
    assert row["balance"] == 250.0
    assert row["unit_number"] == "101"
    assert roll["totals"] == {"monthly_rent": 1250.0, "paid_amount": 1000.0, "balance": 250.0}


def test_delete_payment_and_scoping(api, other_api, rental):
    p = _payment(api, rental["tenant"]["id"])
    assert other_api.get(f"/api/payments/{p['id']}").status_code == 404
    assert api.delete(f"/api/payments/{p['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/payments/{p['id']}").status_code == 404


def test_payments_of_other_tenants_do_not_leak(api, other_api):
    mine = make_tenant(other_api, email="mine@example.com")
    _payment(other_api, mine["id"])
    assert api.get("/api/payments").get_json()["pagination"]["total"] == 0

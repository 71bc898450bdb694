from datetime import date
from decimal import Decimal

from conftest import make_lease, make_unit

from app.pms.modules.deposits.service import deposit_interest


def _ended_lease(api, rental):
    """A 2025 lease on a second unit, terminated at move-out on its last day."""
    unit = make_unit(api, rental["property"]["id"], unit_number="102")
    lease = make_lease(
        api,
        unit["id"],
        rental["tenant"]["id"],
        start_date="2025-01-01",
        end_date="2025-12-31",
        status="ACTIVE",
    )
    r = api.patch(f"/api/leases/{lease['id']}", json={"status": "TERMINATED", "move_out_date": "2025-12-31"})
    assert r.status_code == 200, r.get_json()
    return lease


def test_deposit_interest_is_simple_daily_interest():
    assert deposit_interest(Decimal("1250"), Decimal("0.01"), date(2025, 1, 1), date(2026, 1, 1)) == Decimal("12.50")
    assert deposit_interest(Decimal("1250"), Decimal("0.01"), date(2025, 1, 1), date(2025, 12, 31)) == Decimal("12.47")
    assert deposit_interest(Decimal("1250"), Decimal("0.01"), date(2025, 6, 1), date(2025, 1, 1)) == Decimal("0.00")


def test_active_deposit_detail(api, rental):
    r = api.get(f"/api/deposits/{rental['lease']['id']}")
    assert r.status_code == 200
    body = r.get_json()
    assert body["status"] == "ACTIVE"
    assert body["deposit"]["amount"] == 1250.0
    assert body["interest_rate"] == 0.01
    assert body["disposition_deadline"] is None
    assert body["disposition"] is None
    assert body["payments"] == []


def test_active_deposit_cannot_be_disposed_or_refunded(api, rental):
    lease_id = rental["lease"]["id"]
    r = api.post(f"/api/deposits/{lease_id}/disposition", json={"deductions": []})
    assert r.status_code == 409
    r = api.post(f"/api/deposits/{lease_id}/refund", json={"refund_amount": 100, "payment_method": "CHECK"})
    assert r.status_code == 409
    assert r.get_json()["error"] == "Cannot refund the deposit of a lease that has not ended."


def test_interest_disposition_and_refund(api, rental):
    lease = _ended_lease(api, rental)
    base = f"/api/deposits/{lease['id']}"

    detail = api.get(base).get_json()
    assert detail["status"] == "PENDING_DISPOSITION"
    assert detail["days_held"] == 364
    assert detail["interest_accrued"] == 12.47
    assert detail["disposition_deadline"] == "2026-01-21"

    r = api.post(f"{base}/interest-payments", json={"amount": 20, "payment_method": "CHECK"})
    assert r.status_code == 400
    assert "exceeds the interest owed ($12.47)" in r.get_json()["error"]
    r = api.post(f"{base}/interest-payments", json={"amount": 2.47, "payment_method": "CHECK", "payment_date": "2026-01-05"})
    assert r.status_code == 201
    assert r.get_json()["type"] == "DEPOSIT_INTEREST"
    assert r.get_json()["status"] == "COMPLETED"
    assert api.get(base).get_json()["interest_owed"] == 10.0

    r = api.post(
        f"{base}/disposition",
        json={
            "deductions": [
                {"description": "Carpet cleaning", "amount": 150, "category": "CLEANING"},
                {"description": "Patch drywall", "amount": "100.50", "category": "REPAIRS"},
            ],
            "sent_date": "2026-01-10",
        },
    )
    assert r.status_code == 201, r.get_json()
    disposition = r.get_json()
    assert disposition["total_deductions"] == 250.5
    assert disposition["interest_earned"] == 10.0
    assert disposition["refund_amount"] == 1009.5
    assert disposition["balance_due"] == 0.0
    assert disposition["deadline"] == "2026-01-21"
    assert disposition["sent_on_time"] is True
    assert api.get(base).get_json()["status"] == "DISPOSED"
    assert api.post(f"{base}/disposition", json={"deductions": []}).status_code == 409

    r = api.post(f"{base}/refund", json={"refund_amount": 2000, "payment_method": "CHECK"})
    assert r.status_code == 400
    r = api.post(f"{base}/refund", json={"refund_amount": 1009.5, "payment_method": "CHECK", "reference_number": "1042"})
    assert r.status_code == 201
    assert r.get_json()["type"] == "DEPOSIT_REFUND"

    detail = api.get(base).get_json()
    assert detail["status"] == "REFUNDED"
    assert detail["disposition"]["refund_paid_date"] is not None
    assert sorted(p["type"] for p in detail["payments"]) == ["DEPOSIT_INTEREST", "DEPOSIT_REFUND"]
    r = api.post(f"{base}/refund", json={"refund_amount": 1, "payment_method": "CHECK"})
    assert r.status_code == 409
    assert r.get_json()["error"] == "Deposit has already been refunded."


def test_deductions_over_deposit_leave_balance_due(api, rental):
    lease = _ended_lease(api, rental)
    r = api.post(
        f"/api/deposits/{lease['id']}/disposition",
        json={"deductions": [{"description": "Unpaid December rent", "amount": 1500, "category": "UNPAID_RENT"}]},
    )
    assert r.status_code == 201
    assert r.get_json()["refund_amount"] == 0.0
    assert r.get_json()["balance_due"] == 237.53


def test_disposition_and_refund_validation(api, rental):
    lease = _ended_lease(api, rental)
    r = api.post(
        f"/api/deposits/{lease['id']}/disposition",
        json={"deductions": [{"description": "", "amount": -5, "category": "PAINTING"}]},
    )
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Deduction 1: description is required." in errors
    assert "Deduction 1: amount must be a number of at least 0." in errors
    assert any(e.startswith("Deduction 1: category must be one of") for e in errors)

    r = api.post(f"/api/deposits/{lease['id']}/disposition", json={"deductions": "cleaning"})
    assert r.get_json()["errors"] == ["deductions must be a list."]

    r = api.post(f"/api/deposits/{lease['id']}/refund", json={"refund_amount": 10, "payment_method": "CASH"})
    assert r.status_code == 400
    r = api.post(f"/api/deposits/{lease['id']}/refund", json={"payment_method": "ACH"})
    assert "Refund amount is required." in r.get_json()["errors"]


def test_list_and_stats(api, rental):
    ended = _ended_lease(api, rental)
    listing = api.get("/api/deposits").get_json()
    assert listing["total"] == 2

    active = api.get("/api/deposits?status=active").get_json()
    assert [row["lease_id"] for row in active["data"]] == [rental["lease"]["id"]]
    pending = api.get("/api/deposits?status=PENDING_DISPOSITION").get_json()
    assert [row["lease_id"] for row in pending["data"]] == [ended["id"]]
    assert api.get("/api/deposits?status=LOST").status_code == 400
    assert api.get("/api/deposits?due=rent").status_code == 400

    stats = api.get("/api/deposits/stats").get_json()
    assert stats["active_deposits"] == 1
    assert stats["total_deposits_held"] == 1250.0
    assert stats["pending_dispositions"] == 1
    assert stats["average_interest_rate"] == 0.01


def test_deposits_are_scoped_to_the_manager(api, other_api, rental):
    assert other_api.get(f"/api/deposits/{rental['lease']['id']}").status_code == 404
    assert other_api.get("/api/deposits").get_json()["total"] == 0

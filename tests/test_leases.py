from datetime import date, timedelta

from conftest import make_lease, make_property, make_tenant, make_unit


def _setup(api):
    prop = make_property(api)
    unit = make_unit(api, prop["id"])
    tenant = make_tenant(api)
    return prop, unit, tenant


def test_create_draft_lease(api):
    _, unit, tenant = _setup(api)
    lease = make_lease(api, unit["id"], tenant["id"])
    assert lease["status"] == "DRAFT"
    assert lease["lease_type"] == "FIXED_TERM"
    assert lease["lease_number"].startswith("LS-")
    assert lease["late_fee_amount"] == 50.0
    assert lease["tenant_name"] == "Jane Renter"
    assert lease["unit"]["status"] == "VACANT"
    assert lease["co_tenants"] == []


def test_active_lease_occupies_unit_and_activates_tenant(api):
    _, unit, tenant = _setup(api)
    make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    unit_after = api.get(f"/api/units/{unit['id']}").get_json()
    assert unit_after["status"] == "OCCUPIED"
    assert unit_after["current_rent"] == 1250.0
    assert api.get(f"/api/tenants/{tenant['id']}").get_json()["status"] == "ACTIVE"


def test_lease_validation(api):
    _, unit, tenant = _setup(api)
    r = api.post(
        "/api/leases",
        json={
            "unit_id": unit["id"],
            "tenant_id": tenant["id"],
            "start_date": "2026-06-01",
            "end_date": "2026-05-01",
            "monthly_rent": 0,
            "late_fee_amount": 75,
            "rent_due_day": 40,
        },
    )
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "End date must be after start date." in errors
    assert "Monthly rent must be greater than 0." in errors
    assert "Late fee must be between $0 and $50." in errors
    assert "Rent due day must be between 1 and 31." in errors


def test_co_tenant_ids_must_be_a_list_of_ids(api):
    _, unit, tenant = _setup(api)
    base = {
        "unit_id": unit["id"],
        "tenant_id": tenant["id"],
        "start_date": "2026-01-01",
        "end_date": "2026-12-31",
        "monthly_rent": 1250,
    }
    for bad in (5, "12", [1, "x"], [True]):
        r = api.post("/api/leases", json={**base, "co_tenant_ids": bad})
        assert r.status_code == 400, bad
        assert "co_tenant_ids must be a list of tenant ids." in r.get_json()["errors"]

    roommate = make_tenant(api, first_name="Sam", email="sam@example.com")
    lease = make_lease(api, unit["id"], tenant["id"], co_tenant_ids=[roommate["id"]])
    assert [ct["tenant_id"] for ct in lease["co_tenants"]] == [roommate["id"]]


def test_rent_change_on_active_lease_updates_unit_rent(api):
    _, unit, tenant = _setup(api)
    lease = make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    r = api.patch(f"/api/leases/{lease['id']}", json={"monthly_rent": 1400})
    assert r.status_code == 200
    assert api.get(f"/api/units/{unit['id']}").get_json()["current_rent"] == 1400.0
    assert api.get("/api/properties/stats").get_json()["total_monthly_rent"] == 1400.0


def test_draft_lease_does_not_block_unit(api):
    _, unit, tenant = _setup(api)
    make_lease(api, unit["id"], tenant["id"])
    other = make_tenant(api, email="other@example.com")
    lease = make_lease(api, unit["id"], other["id"], status="ACTIVE")
    assert lease["status"] == "ACTIVE"


def test_overlapping_active_lease_conflicts(api):
    _, unit, tenant = _setup(api)
    make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    other = make_tenant(api, email="other@example.com")
    r = api.post(
        "/api/leases",
        json={
            "unit_id": unit["id"],
            "tenant_id": other["id"],
            "start_date": "2026-06-01",
            "end_date": "2027-05-31",
            "monthly_rent": 1300,
            "status": "PENDING_SIGNATURE",
        },
    )
    assert r.status_code == 409
    # periods that do not overlap are fine
    make_lease(api, unit["id"], other["id"], start_date="2027-01-01", end_date="2027-12-31")


def test_terminating_lease_vacates_unit(api):
    _, unit, tenant = _setup(api)
    lease = make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    r = api.patch(f"/api/leases/{lease['id']}", json={"status": "TERMINATED", "reason": "Early move-out"})
    assert r.status_code == 200
    assert r.get_json()["status"] == "TERMINATED"
    assert api.get(f"/api/units/{unit['id']}").get_json()["status"] == "VACANT"


def test_only_draft_leases_can_be_deleted(api):
    _, unit, tenant = _setup(api)
    lease = make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    assert api.delete(f"/api/leases/{lease['id']}").status_code == 409
    api.patch(f"/api/leases/{lease['id']}", json={"status": "TERMINATED"})
    draft = make_lease(api, unit["id"], tenant["id"], start_date="2027-01-01", end_date="2027-12-31")
    assert api.delete(f"/api/leases/{draft['id']}").get_json() == {"ok": True}


def test_co_tenants(api):
    _, unit, tenant = _setup(api)
    roommate = make_tenant(api, first_name="Sam", email="sam@example.com")
    lease = make_lease(api, unit["id"], tenant["id"])
    r = api.post(f"/api/leases/{lease['id']}/tenants", json={"tenant_id": roommate["id"]})
    assert r.status_code == 201
    assert r.get_json()["tenant_name"] == "Sam Renter"
    assert api.post(f"/api/leases/{lease['id']}/tenants", json={"tenant_id": roommate["id"]}).status_code == 409
    assert api.post(f"/api/leases/{lease['id']}/tenants", json={"tenant_id": tenant["id"]}).status_code == 409

    sam = api.get(f"/api/tenants/{roommate['id']}").get_json()
    assert [x["id"] for x in sam["leases"]] == [lease["id"]]

    assert api.delete(f"/api/leases/{lease['id']}/tenants/{roommate['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/leases/{lease['id']}").get_json()["co_tenants"] == []


def test_addenda(api):
    _, unit, tenant = _setup(api)
    lease = make_lease(api, unit["id"], tenant["id"])
    assert api.post(f"/api/leases/{lease['id']}/addenda", json={}).status_code == 400
    r = api.post(f"/api/leases/{lease['id']}/addenda", json={"title": "Pet addendum", "effective_date": "2026-02-01"})
    assert r.status_code == 201
    addendum = r.get_json()
    listed = api.get(f"/api/leases/{lease['id']}/addenda").get_json()["data"]
    assert [a["title"] for a in listed] == ["Pet addendum"]
    assert api.delete(f"/api/leases/{lease['id']}/addenda/{addendum['id']}").status_code == 200
    assert api.get(f"/api/leases/{lease['id']}/addenda").get_json()["data"] == []


def test_list_leases_filters(api):
    _, unit, tenant = _setup(api)
    lease = make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    assert api.get("/api/leases?status=DRAFT").get_json()["data"] == []
    body = api.get("/api/leases?search=renter").get_json()
    assert [x["id"] for x in body["data"]] == [lease["id"]]
    assert api.get("/api/leases?unit_id=abc").status_code == 400


def test_expiring_leases_buckets(api):
    prop, unit, tenant = _setup(api)
    today = date.today()
    unit2 = make_unit(api, prop["id"], unit_number="102")
    unit3 = make_unit(api, prop["id"], unit_number="103")
    for u, days in ((unit, 10), (unit2, 45), (unit3, 80)):
        make_lease(
            api,
            u["id"],
            tenant["id"],
            status="ACTIVE",
            start_date=(today - timedelta(days=200)).isoformat(),
            end_date=(today + timedelta(days=days)).isoformat(),
        )
    body = api.get("/api/leases/expiring").get_json()
    assert body["total"] == 3
    assert [x["days_until_expiry"] for x in body["within_30_days"]] == [10]
    assert [x["days_until_expiry"] for x in body["within_60_days"]] == [45]
    assert [x["days_until_expiry"] for x in body["within_90_days"]] == [80]


def test_leases_scoped_to_manager(api, other_api, rental):
    assert other_api.get(f"/api/leases/{rental['lease']['id']}").status_code == 404
    other_prop = make_property(other_api)
    other_unit = make_unit(other_api, other_prop["id"])
    r = other_api.post(
        "/api/leases",
        json={
            "unit_id": other_unit["id"],
            "tenant_id": rental["tenant"]["id"],
            "start_date": "2026-01-01",
            "end_date": "2026-12-31",
            "monthly_rent": 1000,
        },
    )
    assert r.status_code == 404


def test_renew_active_lease(api, rental):
    lease = rental["lease"]
    r = api.post(f"/api/leases/{lease['id']}/renew", json={"end_date": "2027-12-31", "rent_increase_percent": 4})
    assert r.status_code == 201, r.get_json()
    renewal = r.get_json()
    assert renewal["status"] == "DRAFT"
    assert renewal["start_date"] == "2027-01-01"
    assert renewal["end_date"] == "2027-12-31"
    assert renewal["monthly_rent"] == 1300.0
    assert renewal["security_deposit"] == 1250.0
    assert renewal["late_fee_amount"] == 50.0
    assert renewal["renewed_from_lease_id"] == lease["id"]
    assert renewal["tenant_name"] == "Jane Renter"
    assert renewal["notes"] == f"Renewal of lease {lease['lease_number']}"
    assert api.get(f"/api/leases/{lease['id']}").get_json()["status"] == "ACTIVE"

    history = api.get(f"/api/leases/{lease['id']}/renewals").get_json()
    assert history["renewed_from"] is None
    assert history["renewed_to"]["id"] == renewal["id"]
    history = api.get(f"/api/leases/{renewal['id']}/renewals").get_json()
    assert history["renewed_from"]["id"] == lease["id"]
    assert history["renewed_to"] is None


def test_renewal_rules(api, rental):
    lease_id = rental["lease"]["id"]
    r = api.post(f"/api/leases/{lease_id}/renew", json={"rent_increase_percent": 150})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "End date is required." in errors
    assert "Rent increase percent must be between 0 and 100." in errors

    r = api.post(f"/api/leases/{lease_id}/renew", json={"start_date": "2027-02-01", "end_date": "2027-01-31"})
    assert r.status_code == 400

    r = api.post(f"/api/leases/{lease_id}/renew", json={"end_date": "2027-12-31", "monthly_rent": 1275})
    assert r.status_code == 201
    renewal = r.get_json()
    assert renewal["monthly_rent"] == 1275.0

    r = api.post(f"/api/leases/{lease_id}/renew", json={"end_date": "2028-12-31"})
    assert r.status_code == 409
    assert renewal["lease_number"] in r.get_json()["error"]

    r = api.post(f"/api/leases/{renewal['id']}/renew", json={"end_date": "2028-12-31"})
    assert r.status_code == 409
    assert r.get_json()["error"] == "Only active leases can be renewed."

from conftest import make_lease, make_property, make_tenant, make_unit


def test_create_property_normalizes_state_and_defaults_country(api):
    prop = make_property(api)
    assert prop["state"] == "MN"
    assert prop["country"] == "US"
    assert prop["status"] == "ACTIVE"
    assert prop["units"] == []


def test_create_property_validation_errors(api):
    r = api.post("/api/properties", json={"name": "", "state": "Minnesota", "zip_code": "5540", "type": "CASTLE"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Name is required." in errors
    assert "Address is required." in errors
    assert "State must be a 2-letter code." in errors
    assert "ZIP code must be 5 or 9 digits." in errors
    assert any(e.startswith("Invalid type.") for e in errors)


def test_properties_are_scoped_to_their_manager(api, other_api):
    prop = make_property(api)
    assert other_api.get(f"/api/properties/{prop['id']}").status_code == 404
    assert other_api.get("/api/properties").get_json()["pagination"]["total"] == 0
    assert api.get("/api/properties").get_json()["pagination"]["total"] == 1


def test_list_properties_search_and_pagination(api):
    for name in ("Alder House", "Birch Flats", "Cedar Lofts"):
        make_property(api, name=name)
    body = api.get("/api/properties?limit=2").get_json()
    assert [p["name"] for p in body["data"]] == ["Alder House", "Birch Flats"]
    assert body["pagination"] == {
        "total": 3,
        "limit": 2,
        "offset": 0,
        "has_more": True,
        "total_pages": 2,
        "current_page": 1,
    }
    body = api.get("/api/properties?search=cedar").get_json()
    assert [p["name"] for p in body["data"]] == ["Cedar Lofts"]


def test_pagination_limit_out_of_range(api):
    r = api.get("/api/properties?limit=500")
    assert r.status_code == 400
    assert r.get_json()["error"] == "limit must be between 1 and 100."


def test_update_property_partial(api):
    prop = make_property(api)
    r = api.patch(f"/api/properties/{prop['id']}", json={"status": "FOR_SALE", "notes": "Listing soon"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["status"] == "FOR_SALE"
    assert body["name"] == "Maple Court"


def test_unit_crud_and_duplicate_number(api):
    prop = make_property(api)
    unit = make_unit(api, prop["id"])
    assert unit["status"] == "VACANT"
    assert unit["property_name"] == "Maple Court"
    r = api.post(f"/api/properties/{prop['id']}/units", json={"unit_number": "101", "market_rent": 900})
    assert r.status_code == 409

    r = api.put(f"/api/units/{unit['id']}", json={"market_rent": 1300})
    assert r.status_code == 200
    assert r.get_json()["market_rent"] == 1300.0

    assert api.delete(f"/api/units/{unit['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/units/{unit['id']}").status_code == 404


def test_unit_validation(api):
    prop = make_property(api)
    r = api.post(f"/api/properties/{prop['id']}/units", json={"unit_number": "1", "market_rent": -5})
    assert r.status_code == 400
    assert "market_rent must not be negative." in r.get_json()["errors"]


def test_bulk_create_units(api):
    prop = make_property(api)
    r = api.post(
        f"/api/properties/{prop['id']}/units/bulk",
        json={"units": [{"unit_number": "1A", "market_rent": 1000}, {"unit_number": "1B", "market_rent": 1100}]},
    )
    assert r.status_code == 201
    assert r.get_json()["count"] == 2
    units = api.get(f"/api/properties/{prop['id']}/units").get_json()["data"]
    assert [u["unit_number"] for u in units] == ["1A", "1B"]


def test_bulk_create_rejects_whole_batch_on_duplicates(api):
    prop = make_property(api)
    make_unit(api, prop["id"], unit_number="1A")
    r = api.post(
        f"/api/properties/{prop['id']}/units/bulk",
        json={"units": [{"unit_number": "1A", "market_rent": 1000}, {"unit_number": "2A", "market_rent": 1000}]},
    )
    assert r.status_code == 409
    assert "1A" in r.get_json()["error"]
    assert api.get(f"/api/properties/{prop['id']}/units").get_json()["pagination"]["total"] == 1


def test_bulk_create_limit(api):
    prop = make_property(api)
    units = [{"unit_number": str(i), "market_rent": 500} for i in range(101)]
    r = api.post(f"/api/properties/{prop['id']}/units/bulk", json={"units": units})
    assert r.status_code == 400


def test_bulk_delete_units_blocked_by_lease(api):
    prop = make_property(api)
    u1 = make_unit(api, prop["id"], unit_number="1")
    u2 = make_unit(api, prop["id"], unit_number="2")
    tenant = make_tenant(api)
    make_lease(api, u1["id"], tenant["id"])
    r = api.post("/api/units/bulk-delete", json={"ids": [u1["id"], u2["id"]]})
    assert r.status_code == 409
    r = api.post("/api/units/bulk-delete", json={"ids": [u2["id"]]})
    assert r.get_json() == {"deleted": 1}


def test_delete_property_with_leases_conflicts(api, rental):
    r = api.delete(f"/api/properties/{rental['property']['id']}")
    assert r.status_code == 409


def test_delete_property_cascades_units(api):
    prop = make_property(api)
    unit = make_unit(api, prop["id"])
    assert api.delete(f"/api/properties/{prop['id']}").status_code == 200
    assert api.get(f"/api/units/{unit['id']}").status_code == 404


def test_property_stats(api, rental):
    make_unit(api, rental["property"]["id"], unit_number="102", market_rent=900)
    stats = api.get("/api/properties/stats").get_json()
    assert stats == {
        "total_properties": 1,
        "total_units": 2,
        "occupied_units": 1,
        "vacant_units": 1,
        "occupancy_rate": 50.0,
        "total_monthly_rent": 1250.0,
    }

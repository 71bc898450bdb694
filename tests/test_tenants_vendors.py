from conftest import make_tenant, make_vendor


def test_tenant_ssn_is_masked(api):
    tenant = make_tenant(api, ssn="123-45-6789", status="APPROVED")
    assert "ssn" not in tenant
    assert tenant["ssn_last4"] == "6789"
    assert tenant["full_name"] == "Jane Renter"
    detail = api.get(f"/api/tenants/{tenant['id']}").get_json()
    assert detail["leases"] == []
    assert "ssn" not in detail


def test_tenant_email_lowercased_and_unique_per_manager(api, other_api):
    make_tenant(api, email="Jane@Example.com")
    r = api.post("/api/tenants", json={"first_name": "J", "last_name": "R", "email": "jane@example.com"})
    assert r.status_code == 409
    # another manager may have a tenant with the same email
    make_tenant(other_api, email="jane@example.com")


def test_tenant_validation(api):
    r = api.post("/api/tenants", json={"first_name": "A", "email": "not-an-email", "ssn": "123"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Last name is required." in errors
    assert "Email address is invalid." in errors
    assert "SSN must contain 9 digits." in errors


def test_tenant_search_and_update(api):
    make_tenant(api)
    make_tenant(api, first_name="Bob", last_name="Lessee", email="bob@example.com")
    body = api.get("/api/tenants?search=jane renter").get_json()
    assert [t["email"] for t in body["data"]] == ["jane@example.com"]
    bob = api.get("/api/tenants?search=bob").get_json()["data"][0]
    r = api.patch(f"/api/tenants/{bob['id']}", json={"status": "APPROVED"})
    assert r.get_json()["status"] == "APPROVED"


def test_tenant_with_lease_cannot_be_deleted(api, rental):
    r = api.delete(f"/api/tenants/{rental['tenant']['id']}")
    assert r.status_code == 409
    tenant = make_tenant(api, email="free@example.com")
    assert api.delete(f"/api/tenants/{tenant['id']}").get_json() == {"ok": True}


def test_tenant_scoped_to_manager(api, other_api):
    tenant = make_tenant(api)
    assert other_api.get(f"/api/tenants/{tenant['id']}").status_code == 404
    assert other_api.delete(f"/api/tenants/{tenant['id']}").status_code == 404


def test_vendor_crud(api):
    vendor = make_vendor(api, rating=4.5, hourly_rate=85)
    assert vendor["status"] == "ACTIVE"
    assert vendor["categories"] == ["PLUMBING"]
    assert vendor["payment_terms"] == 30
    r = api.put(f"/api/vendors/{vendor['id']}", json={"status": "SUSPENDED"})
    assert r.get_json()["status"] == "SUSPENDED"
    assert api.delete(f"/api/vendors/{vendor['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/vendors/{vendor['id']}").status_code == 404


def test_vendor_validation(api):
    r = api.post("/api/vendors", json={"company_name": "X", "rating": 7, "categories": ["MAGIC"]})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Rating must be between 0 and 5." in errors
    assert "Invalid categories: MAGIC" in errors


def test_vendor_category_filter(api):
    make_vendor(api)
    make_vendor(api, company_name="Bright Electric", categories=["ELECTRICAL", "HVAC"])
    body = api.get("/api/vendors?category=HVAC").get_json()
    assert [v["company_name"] for v in body["data"]] == ["Bright Electric"]

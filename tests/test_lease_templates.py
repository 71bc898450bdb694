import io

from conftest import docx_bytes


def _text_template(admin_api, name="Standard Lease", type="MAIN_LEASE", content="Tenant {{tenant_name}} owes {{monthly_rent}}"):
    r = admin_api.post("/api/lease-templates", json={"name": name, "type": type, "template_content": content})
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def _upload(admin_api, data, name="Uploaded Lease", type="MAIN_LEASE", filename="lease.docx"):
    r = admin_api.post(
        "/api/lease-templates",
        data={"name": name, "type": type, "file": (io.BytesIO(data), filename)},
        content_type="multipart/form-data",
    )
    return r


def test_variables_catalogue(api):
    body = api.get("/api/lease-templates/variables").get_json()
    names = [v["name"] for v in body["variables"]]
    assert "tenant_name" in names
    assert [v["name"] for v in body["categories"]["parking"]] == ["parking_included", "parking_fee", "parking_space_number"]


def test_create_text_template(admin_api):
    tpl = _text_template(admin_api)
    assert tpl["is_active"] is True
    assert tpl["has_file"] is False
    assert tpl["version"] == 1
    assert tpl["variables"] == ["monthly_rent", "tenant_name"]
    assert tpl["type_label"] == "Main Lease Agreement"


def test_create_validation(admin_api):
    r = admin_api.post("/api/lease-templates", json={"type": "ADDENDUM_MOAT"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Template name is required." in errors
    assert any(e.startswith("Invalid type.") for e in errors)


def test_type_cannot_change(admin_api):
    tpl = _text_template(admin_api)
    r = admin_api.patch(f"/api/lease-templates/{tpl['id']}", json={"type": "ADDENDUM_PET"})
    assert r.status_code == 400
    r = admin_api.patch(f"/api/lease-templates/{tpl['id']}", json={"template_content": "Hi {{unit_number}}"})
    assert r.get_json()["variables"] == ["unit_number"]


def test_upload_and_confirm_docx(admin_api):
    r = _upload(admin_api, docx_bytes("Lease for {{tenant_name}}", "Rent {{monthly_rent}}", "{{mystery_field}}"))
    assert r.status_code == 201
    tpl = r.get_json()
    assert tpl["is_active"] is False
    assert tpl["has_file"] is True
    assert tpl["template_file_name"] == "lease.docx"

    r = admin_api.post(f"/api/lease-templates/{tpl['id']}/confirm")
    assert r.status_code == 200
    body = r.get_json()
    assert body["template"]["is_active"] is True
    assert body["template"]["variables"] == ["monthly_rent", "mystery_field", "tenant_name"]
    assert "Lease for {{tenant_name}}" in body["template"]["template_content"]
    assert body["validation"]["unknown_variables"] == ["mystery_field"]
    assert body["warnings"] == []

    r = admin_api.get(f"/api/lease-templates/{tpl['id']}/file")
    assert r.status_code == 200
    assert r.data[:2] == b"PK"


def test_upload_requires_docx_extension(admin_api):
    r = _upload(admin_api, docx_bytes("{{tenant_name}}"), filename="lease.doc")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Template file must have a .docx extension"


def test_confirm_rejects_invalid_file_and_removes_record(admin_api):
    r = _upload(admin_api, b"this is not a word document")
    assert r.status_code == 201
    tpl_id = r.get_json()["id"]
    r = admin_api.post(f"/api/lease-templates/{tpl_id}/confirm")
    assert r.status_code == 422
    assert r.get_json()["error"].startswith("Invalid DOCX file")
    assert admin_api.get(f"/api/lease-templates/{tpl_id}").status_code == 404


def test_confirm_text_template_is_an_error(admin_api):
    tpl = _text_template(admin_api)
    r = admin_api.post(f"/api/lease-templates/{tpl['id']}/confirm")
    assert r.status_code == 400


def test_single_default_per_type(admin_api):
    a = _text_template(admin_api, name="A")
    b = _text_template(admin_api, name="B")
    pet = _text_template(admin_api, name="Pets", type="ADDENDUM_PET")
    admin_api.post(f"/api/lease-templates/{pet['id']}/set-default")
    admin_api.post(f"/api/lease-templates/{b['id']}/set-default")
    admin_api.post(f"/api/lease-templates/{a['id']}/set-default")
    assert admin_api.get(f"/api/lease-templates/{a['id']}").get_json()["is_default"] is True
    assert admin_api.get(f"/api/lease-templates/{b['id']}").get_json()["is_default"] is False
    assert admin_api.get(f"/api/lease-templates/{pet['id']}").get_json()["is_default"] is True


def test_archive_and_unarchive(admin_api):
    tpl = _text_template(admin_api)
    admin_api.post(f"/api/lease-templates/{tpl['id']}/set-default")
    r = admin_api.post(f"/api/lease-templates/{tpl['id']}/archive")
    assert r.get_json()["is_archived"] is True
    assert r.get_json()["is_default"] is False
    assert admin_api.post(f"/api/lease-templates/{tpl['id']}/set-default").status_code == 409
    r = admin_api.post(f"/api/lease-templates/{tpl['id']}/unarchive")
    assert r.get_json()["is_archived"] is False


def test_duplicate_as_version_or_new_template(admin_api):
    tpl = _text_template(admin_api)
    r = admin_api.post(f"/api/lease-templates/{tpl['id']}/duplicate", json={"create_new_version": True, "change_notes": "2027 rules"})
    assert r.status_code == 201
    v2 = r.get_json()
    assert v2["name"] == "Standard Lease"
    assert v2["version"] == 2
    assert v2["parent_template_id"] == tpl["id"]
    assert v2["change_notes"] == "2027 rules"

    assert admin_api.post(f"/api/lease-templates/{tpl['id']}/duplicate", json={"name": "Standard Lease"}).status_code == 409
    assert admin_api.post(f"/api/lease-templates/{tpl['id']}/duplicate", json={}).status_code == 400
    r = admin_api.post(f"/api/lease-templates/{tpl['id']}/duplicate", json={"name": "Student Lease"})
    assert r.get_json()["version"] == 1
    assert r.get_json()["parent_template_id"] is None


def test_delete_deactivates(admin_api):
    tpl = _text_template(admin_api)
    assert admin_api.delete(f"/api/lease-templates/{tpl['id']}").get_json() == {"ok": True}
    body = admin_api.get(f"/api/lease-templates/{tpl['id']}").get_json()
    assert body["is_active"] is False
    listed = admin_api.get("/api/lease-templates?is_active=false").get_json()["data"]
    assert [t["id"] for t in listed] == [tpl["id"]]


def test_list_filters(admin_api):
    _text_template(admin_api, name="Main")
    _text_template(admin_api, name="Pets", type="ADDENDUM_PET")
    body = admin_api.get("/api/lease-templates?type=ADDENDUM_PET").get_json()
    assert [t["name"] for t in body["data"]] == ["Pets"]
    body = admin_api.get("/api/lease-templates?search=mai").get_json()
    assert [t["name"] for t in body["data"]] == ["Main"]
    assert admin_api.get("/api/lease-templates?is_active=maybe").status_code == 400


def test_preview(admin_api, api):
    tpl = _text_template(admin_api)
    body = api.post(f"/api/lease-templates/{tpl['id']}/preview", json={}).get_json()
    assert body["content"] == "Tenant John Smith owes 1250.0"
    assert body["missing_variables"] == []

    body = api.post(f"/api/lease-templates/{tpl['id']}/preview", json={"sample_data": {"tenant_name": "Jane"}}).get_json()
    assert body["content"] == "Tenant Jane owes [monthly_rent]"
    assert body["used_variables"] == ["tenant_name"]
    assert body["missing_variables"] == ["monthly_rent"]

    assert api.post(f"/api/lease-templates/{tpl['id']}/preview", json={"sample_data": [1]}).status_code == 400


def test_duplicate_name_conflicts_without_storing_file(admin_api, tmp_path):
    _text_template(admin_api)
    r = admin_api.post("/api/lease-templates", json={"name": "Standard Lease", "type": "MAIN_LEASE"})
    assert r.status_code == 409

    r = _upload(admin_api, docx_bytes("{{tenant_name}}"), name="Standard Lease")
    assert r.status_code == 409
    stored = tmp_path / "storage" / "templates"
    assert not stored.exists() or not any(p.is_file() for p in stored.rglob("*"))

    other = _text_template(admin_api, name="Month to Month")
    r = admin_api.patch(f"/api/lease-templates/{other['id']}", json={"name": "Standard Lease"})
    assert r.status_code == 409
    # renaming to its own name is a no-op
    assert admin_api.patch(f"/api/lease-templates/{other['id']}", json={"name": "Month to Month"}).status_code == 200

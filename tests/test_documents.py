import io

from conftest import make_property


def _upload(api, content=b"hello world", filename="notes.txt", **fields):
    data = {"file": (io.BytesIO(content), filename, "text/plain")}
    data.update(fields)
    r = api.post("/api/documents", data=data, content_type="multipart/form-data")
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def test_upload_and_download(api):
    prop = make_property(api)
    doc = _upload(api, property_id=str(prop["id"]), type="INSURANCE", tags="policy, 2026")
    assert doc["title"] == "notes.txt"
    assert doc["status"] == "ACTIVE"
    assert doc["type"] == "INSURANCE"
    assert doc["tags"] == ["policy", "2026"]
    assert doc["file_size"] == 11
    assert len(doc["sha256"]) == 64
    assert "storage_path" not in doc
    assert doc["download_url"] == f"/api/documents/{doc['id']}/download"

    r = api.get(doc["download_url"])
    assert r.status_code == 200
    assert r.data == b"hello world"
    assert "notes.txt" in r.headers["Content-Disposition"]


def test_upload_requires_file(api):
    r = api.post("/api/documents", data={"title": "Nothing", "type": "SPAM"}, content_type="multipart/form-data")
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "File is required." in errors
    assert any(e.startswith("Invalid type.") for e in errors)


def test_upload_sanitizes_filename(api):
    doc = _upload(api, filename="../../etc/passwd")
    assert doc["file_name"] == "etc_passwd"


def test_upload_linked_to_foreign_property_is_404(api, other_api):
    prop = make_property(api)
    r = other_api.post(
        "/api/documents",
        data={"file": (io.BytesIO(b"x"), "x.txt"), "property_id": str(prop["id"])},
        content_type="multipart/form-data",
    )
    assert r.status_code == 404


def test_update_metadata(api):
    doc = _upload(api)
    r = api.patch(f"/api/documents/{doc['id']}", json={"title": "Renamed", "status": "ARCHIVED"})
    assert r.get_json()["title"] == "Renamed"
    assert r.get_json()["status"] == "ARCHIVED"
    r = api.patch(f"/api/documents/{doc['id']}", json={"status": "DELETED"})
    assert r.status_code == 400


def test_soft_delete(api):
    doc = _upload(api)
    assert api.delete(f"/api/documents/{doc['id']}").get_json() == {"ok": True}
    assert api.get(f"/api/documents/{doc['id']}").status_code == 404
    assert api.get("/api/documents").get_json()["pagination"]["total"] == 0
    deleted = api.get("/api/documents?status=DELETED").get_json()["data"]
    assert [d["id"] for d in deleted] == [doc["id"]]


def test_list_search_and_counts(api, other_api):
    _upload(api, filename="lease.pdf", type="LEASE")
    _upload(api, filename="receipt.pdf", type="RECEIPT", title="Hardware receipt")
    _upload(api, filename="other.pdf", type="RECEIPT")
    body = api.get("/api/documents?search=hardware").get_json()
    assert [d["title"] for d in body["data"]] == ["Hardware receipt"]
    body = api.get("/api/documents?type=LEASE").get_json()
    assert [d["file_name"] for d in body["data"]] == ["lease.pdf"]
    assert api.get("/api/documents/counts").get_json() == {"total": 3, "by_type": {"LEASE": 1, "RECEIPT": 2}}
    assert other_api.get("/api/documents/counts").get_json() == {"total": 0, "by_type": {}}

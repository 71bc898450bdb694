"""Shared fixtures: a fresh sqlite app per test, seeded roles/users, and logged-in API clients."""
from __future__ import annotations

import io

import pytest
from werkzeug.security import generate_password_hash

from app.pms import create_app
from app.pms.auth import reset_login_attempts
from app.pms.constants import ADMIN_ROLE_KEY, MANAGER_PERMISSIONS, MANAGER_ROLE_KEY, PERMISSIONS
from app.pms.db import session_scope
from app.pms.models import Base, Permission, Role, User

PASSWORD = "pw"


def _seed(s) -> None:
    perms = {key: Permission(key=key, name=name) for key, name in PERMISSIONS}
    s.add_all(perms.values())
    admin = Role(key=ADMIN_ROLE_KEY, name="Administrator")
    manager = Role(key=MANAGER_ROLE_KEY, name="Property Manager")
    admin.permissions.extend(perms.values())
    manager.permissions.extend(p for key, p in perms.items() if key in MANAGER_PERMISSIONS)
    s.add_all([admin, manager])

    def user(email: str, role: Role | None, first: str) -> None:
        u = User(email=email, password_hash=generate_password_hash(PASSWORD), first_name=first, last_name="Tester", is_active=True)
        if role is not None:
            u.roles.append(role)
        s.add(u)

    user("admin@example.com", admin, "Ada")
    user("manager@example.com", manager, "Mona")
    user("other@example.com", manager, "Otto")
    user("norole@example.com", None, "Nora")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("EMAIL_BACKEND", "log")
    monkeypatch.setenv("APP_URL", "http://pms.test")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "RESEND_API_KEY"):
        monkeypatch.delenv(k, raising=False)

    reset_login_attempts()
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        _seed(s)
    yield app
    reset_login_attempts()


class ApiClient:
    """Test client that sends the session CSRF token on every mutating request."""

    def __init__(self, client, csrf_token: str | None = None):
        self.client = client
        self.csrf_token = csrf_token

    def _headers(self, kwargs: dict) -> dict:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.csrf_token:
            headers.setdefault("X-CSRF-Token", self.csrf_token)
        return headers

    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url, **kwargs):
        return self.client.post(url, headers=self._headers(kwargs), **kwargs)

    def put(self, url, **kwargs):
        return self.client.put(url, headers=self._headers(kwargs), **kwargs)

    def patch(self, url, **kwargs):
        return self.client.patch(url, headers=self._headers(kwargs), **kwargs)

    def delete(self, url, **kwargs):
        return self.client.delete(url, headers=self._headers(kwargs), **kwargs)


def login(app, email: str, password: str = PASSWORD) -> ApiClient:
    client = app.test_client()
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return ApiClient(client, r.get_json()["csrf_token"])


@pytest.fixture()
def api(app) -> ApiClient:
    return login(app, "manager@example.com")


@pytest.fixture()
def other_api(app) -> ApiClient:
    return login(app, "other@example.com")


@pytest.fixture()
def admin_api(app) -> ApiClient:
    return login(app, "admin@example.com")


# ---------- record builders ----------
def make_property(api: ApiClient, **overrides) -> dict:
    payload = {
        "name": "Maple Court",
        "type": "APARTMENT",
        "address_line1": "100 Maple St",
        "city": "Minneapolis",
        "state": "mn",
        "zip_code": "55401",
        "year_built": 1965,
    }
    payload.update(overrides)
    r = api.post("/api/properties", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def make_unit(api: ApiClient, property_id: int, **overrides) -> dict:
    payload = {"unit_number": "101", "market_rent": 1200, "bedrooms": 2, "bathrooms": 1.5}
    payload.update(overrides)
    r = api.post(f"/api/properties/{property_id}/units", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def make_tenant(api: ApiClient, **overrides) -> dict:
    payload = {"first_name": "Jane", "last_name": "Renter", "email": "jane@example.com", "phone": "612-555-0100"}
    payload.update(overrides)
    r = api.post("/api/tenants", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def make_vendor(api: ApiClient, **overrides) -> dict:
    payload = {"company_name": "Ace Plumbing", "email": "ace@example.com", "categories": ["PLUMBING"]}
    payload.update(overrides)
    r = api.post("/api/vendors", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def make_lease(api: ApiClient, unit_id: int, tenant_id: int, **overrides) -> dict:
    payload = {
        "unit_id": unit_id,
        "tenant_id": tenant_id,
        "start_date": "2026-01-01",
        "end_date": "2026-12-31",
        "monthly_rent": 1250,
        "security_deposit": 1250,
    }
    payload.update(overrides)
    r = api.post("/api/leases", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


@pytest.fixture()
def rental(api):
    """A property with one unit, a tenant and an ACTIVE lease on the unit."""
    prop = make_property(api)
    unit = make_unit(api, prop["id"])
    tenant = make_tenant(api)
    lease = make_lease(api, unit["id"], tenant["id"], status="ACTIVE")
    return {"property": prop, "unit": unit, "tenant": tenant, "lease": lease}


# ---------- docx fixtures ----------
def docx_bytes(*paragraphs: str, table: list[list[str]] | None = None) -> bytes:
    from docx import Document

    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table:
        t = doc.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, text in enumerate(row):
                t.cell(r, c).text = text
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def docx_text(data: bytes) -> str:
    from docx import Document

    doc = Document(io.BytesIO(data))
    parts = [p.text for p in doc.paragraphs]
    for t in doc.tables:
        for row in t.rows:
            parts.extend(cell.text for cell in row.cells)
    return "\n".join(parts)

import io
from datetime import date
from types import SimpleNamespace

import pytest
from docx import Document
from docx.oxml.ns import qn

from conftest import docx_bytes, docx_text, make_lease, make_property, make_tenant, make_unit

from app.pms.modules.lease_documents.builder import (
    format_lease_document_data,
    full_address,
    lease_term_months,
    select_addendum_types,
    ssn_last4,
)
from app.pms.modules.lease_documents.docx_merger import DocumentMergeError, add_page_break, merge_docx_documents
from app.pms.modules.lease_documents.pdf_converter import (
    PAGE_BREAK,
    convert_docx_to_html,
    convert_docx_to_pdf,
    pdf_page_count,
    to_latin1,
)
from app.pms.modules.lease_documents.service import DOCUMENT_MISSING, MAIN_TEMPLATE_MISSING


# ---------- builder ----------
def test_lease_term_months():
    assert lease_term_months(date(2026, 1, 1), date(2027, 1, 1)) == 12
    assert lease_term_months(date(2026, 3, 1), date(2026, 3, 20)) == 1


def test_full_address_and_ssn():
    prop = SimpleNamespace(address_line1="1 Main St", address_line2="Apt 2", city="Minneapolis", state="MN", zip_code="55401")
    assert full_address(prop) == "1 Main St, Apt 2, Minneapolis, MN 55401"
    prop.address_line2 = None
    assert full_address(prop) == "1 Main St, Minneapolis, MN 55401"
    assert ssn_last4("123-45-6789") == "6789"
    assert ssn_last4(None) == ""


def test_format_lease_document_data_blanks_optional_values():
    formatted = format_lease_document_data(
        {"monthly_rent": 1250.0, "pet_deposit": None, "move_in_date": None, "pets_allowed": False, "lease_start_date": date(2026, 1, 1)}
    )
    assert formatted == {
        "monthly_rent": "$1,250.00",
        "pet_deposit": "",
        "move_in_date": "",
        "pets_allowed": "No",
        "lease_start_date": "January 1, 2026",
    }


def test_select_addendum_types():
    lease = SimpleNamespace(pets_allowed=True, parking_included=False)
    old = SimpleNamespace(year_built=1965, built_before_1978=False)
    new = SimpleNamespace(year_built=2010, built_before_1978=False)
    assert select_addendum_types(lease, new, None) == ["ADDENDUM_PET"]
    assert select_addendum_types(lease, old, ["ADDENDUM_PET", "ADDENDUM_GUEST"]) == [
        "ADDENDUM_PET",
        "ADDENDUM_GUEST",
        "ADDENDUM_LEAD_PAINT",
    ]
    assert select_addendum_types(lease, old, ["ADDENDUM_GUEST"], include_addenda=False) == []


def test_lead_paint_addendum_from_flag_without_year():
    lease = SimpleNamespace(pets_allowed=False, parking_included=False)
    flagged = SimpleNamespace(year_built=None, built_before_1978=True)
    unknown = SimpleNamespace(year_built=None, built_before_1978=False)
    assert select_addendum_types(lease, flagged, None) == ["ADDENDUM_LEAD_PAINT"]
    assert select_addendum_types(lease, unknown, None) == []


# ---------- merger ----------
def test_merge_docx_documents():
    merged = merge_docx_documents([docx_bytes("Main lease"), docx_bytes("Pet addendum", table=[["Pet", "Dog"]])])
    text = docx_text(merged)
    assert "Main lease" in text
    assert "Pet addendum" in text
    assert "Dog" in text
    doc = Document(io.BytesIO(merged))
    breaks = [br for br in doc.element.body.iter() if br.tag.endswith("}br")]
    assert len(breaks) == 1


def test_merge_single_and_empty():
    one = docx_bytes("Only")
    assert merge_docx_documents([one]) == one
    with pytest.raises(DocumentMergeError):
        merge_docx_documents([])
    with pytest.raises(DocumentMergeError):
        merge_docx_documents([one, b"broken"])


def test_add_page_break():
    data = add_page_break(docx_bytes("Cover page"))
    assert "Cover page" in docx_text(data)
    doc = Document(io.BytesIO(data))
    breaks = [br for br in doc.element.body.iter() if br.tag.endswith("}br")]
    assert len(breaks) == 1
    assert breaks[0].get(qn("w:type")) == "page"
    with pytest.raises(DocumentMergeError):
        add_page_break(b"broken")


# ---------- pdf ----------
def _styled_docx() -> bytes:
    doc = Document()
    doc.add_heading("Residential Lease", level=1)
    p = doc.add_paragraph("Rent is ")
    p.add_run("due monthly").bold = True
    doc.add_paragraph("First rule", style="List Bullet")
    doc.add_paragraph("Second rule", style="List Bullet")
    doc.add_paragraph("Fish & chips <ok>")
    t = doc.add_table(rows=1, cols=2)
    t.cell(0, 0).text = "Rent"
    t.cell(0, 1).text = "$1,250.00"
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def test_convert_docx_to_html():
    body = convert_docx_to_html(_styled_docx())
    assert "<h1>Residential Lease</h1>" in body
    assert "<p>Rent is <b>due monthly</b></p>" in body
    assert "<ul>\n<li>First rule</li>\n<li>Second rule</li>\n</ul>" in body
    assert "Fish &amp; chips &lt;ok&gt;" in body
    assert "<td>Rent</td><td>$1,250.00</td>" in body


def test_page_breaks_become_pages():
    merged = merge_docx_documents([docx_bytes("Page one"), docx_bytes("Page two")])
    assert PAGE_BREAK in convert_docx_to_html(merged)
    pdf = convert_docx_to_pdf(merged)
    assert pdf.startswith(b"%PDF")
    assert pdf_page_count(pdf) == 2


def test_to_latin1():
    assert to_latin1("“Hi” — it’s") == '"Hi" -- it\'s'
    assert to_latin1("中") == "?"


# ---------- end to end ----------
MAIN_TEMPLATE = (
    "RESIDENTIAL LEASE",
    "Tenant: {{tenant_name}}",
    "Premises: {{property_full_address}}, Unit {{unit_number}}",
    "Term: {{lease_start_date}} to {{lease_end_date}}",
    "Monthly rent: {{monthly_rent}}",
    "{{#pets_allowed}}",
    "Pets are allowed under the attached addendum.",
    "{{/pets_allowed}}",
)


def _install_template(admin_api, name, tpl_type, paragraphs):
    r = admin_api.post(
        "/api/lease-templates",
        data={"name": name, "type": tpl_type, "file": (io.BytesIO(docx_bytes(*paragraphs)), f"{name}.docx")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.get_json()
    tpl_id = r.get_json()["id"]
    assert admin_api.post(f"/api/lease-templates/{tpl_id}/confirm").status_code == 200
    assert admin_api.post(f"/api/lease-templates/{tpl_id}/set-default").status_code == 200
    return tpl_id


@pytest.fixture()
def pet_lease(api):
    prop = make_property(api, year_built=1995)
    unit = make_unit(api, prop["id"])
    tenant = make_tenant(api)
    return make_lease(api, unit["id"], tenant["id"], pets_allowed=True, pet_deposit=250)


def test_generate_requires_main_template(api, pet_lease):
    r = api.post(f"/api/leases/{pet_lease['id']}/generate-document", json={})
    assert r.status_code == 422
    assert r.get_json()["error"] == MAIN_TEMPLATE_MISSING


def test_download_before_generation_is_404(api, pet_lease):
    r = api.get(f"/api/leases/{pet_lease['id']}/document")
    assert r.status_code == 404
    assert r.get_json()["error"] == DOCUMENT_MISSING


def test_unknown_addendum_type(admin_api, api, pet_lease):
    _install_template(admin_api, "main", "MAIN_LEASE", MAIN_TEMPLATE)
    r = api.post(f"/api/leases/{pet_lease['id']}/generate-document", json={"addendum_types": ["ADDENDUM_DRAGON"]})
    assert r.status_code == 400


def test_generate_lease_document_end_to_end(admin_api, api, pet_lease):
    _install_template(admin_api, "main", "MAIN_LEASE", MAIN_TEMPLATE)
    _install_template(admin_api, "pets", "ADDENDUM_PET", ("PET ADDENDUM", "Pet deposit: {{pet_deposit}}"))

    r = api.post(f"/api/leases/{pet_lease['id']}/generate-document", json={})
    assert r.status_code == 201, r.get_json()
    result = r.get_json()
    assert result["addenda"] == ["ADDENDUM_PET"]
    assert result["page_count"] == 2
    assert result["document_url"] == f"/api/leases/{pet_lease['id']}/document"
    assert result["file_name"].startswith(f"lease-{pet_lease['lease_number']}-")
    assert result["file_name"].endswith(".pdf")

    lease = api.get(f"/api/leases/{pet_lease['id']}").get_json()
    assert lease["lease_document_url"] == result["document_url"]

    r = api.get(result["document_url"])
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")

    docs = api.get(f"/api/documents?lease_id={pet_lease['id']}").get_json()["data"]
    assert [d["id"] for d in docs] == [result["document_id"]]
    assert docs[0]["type"] == "LEASE"
    assert docs[0]["title"] == f"Lease Agreement - {pet_lease['lease_number']}"


def test_regenerate_without_addenda(admin_api, api, pet_lease):
    _install_template(admin_api, "main", "MAIN_LEASE", MAIN_TEMPLATE)
    _install_template(admin_api, "pets", "ADDENDUM_PET", ("PET ADDENDUM",))
    r = api.post(f"/api/leases/{pet_lease['id']}/regenerate-document", json={"include_addenda": False})
    assert r.status_code == 201
    assert r.get_json()["addenda"] == []
    assert r.get_json()["page_count"] == 1
    assert api.post(f"/api/leases/{pet_lease['id']}/regenerate-document", json={"include_addenda": "perhaps"}).status_code == 400


def test_failed_generation_removes_stored_pdf(admin_api, api, pet_lease, monkeypatch, tmp_path):
    from app.pms.errors import ServiceError
    from app.pms.modules.lease_documents import service as lease_document_service

    _install_template(admin_api, "main", "MAIN_LEASE", MAIN_TEMPLATE)

    def failing_record_event(s, **kwargs):
        if kwargs.get("action") == "lease.generate_document":
            raise ServiceError("Audit trail unavailable.", 503)

    monkeypatch.setattr(lease_document_service, "record_event", failing_record_event)
    r = api.post(f"/api/leases/{pet_lease['id']}/generate-document", json={})
    assert r.status_code == 503
    assert list((tmp_path / "storage").rglob("*.pdf")) == []
    assert api.get(f"/api/documents?lease_id={pet_lease['id']}").get_json()["data"] == []
    assert api.get(f"/api/leases/{pet_lease['id']}").get_json()["lease_document_url"] is None


def test_generation_is_scoped_to_manager(admin_api, other_api, pet_lease):
    _install_template(admin_api, "main", "MAIN_LEASE", MAIN_TEMPLATE)
    assert other_api.post(f"/api/leases/{pet_lease['id']}/generate-document", json={}).status_code == 404

import io
import zipfile

import pytest

from conftest import docx_bytes, docx_text

from app.pms.modules.lease_templates.docx_processor import (
    NO_VARIABLES_WARNING,
    TemplateError,
    extract_variables,
    is_falsy,
    parse_docx_template,
    preview_template_content,
    render_docx_template,
    render_text,
    validate_template_format,
)


def test_extract_variables():
    text = "Hi {{tenant_name}}, rent {{monthly_rent}}. {{#pets_allowed}}Pet: {{pet_name}}{{/pets_allowed}} {{tenant.email}} {{tenant_name}}"
    assert extract_variables(text) == ["monthly_rent", "pet_name", "pets_allowed", "tenant.email", "tenant_name"]
    assert extract_variables("") == []


def test_render_text_placeholders_and_dotted_paths():
    data = {"tenant_name": "Jane", "unit": {"number": "4B"}}
    assert render_text("{{tenant_name}} lives in {{unit.number}}", data) == "Jane lives in 4B"
    assert render_text("Rent: {{monthly_rent}}", data) == "Rent: [monthly_rent]"


def test_render_text_inline_sections():
    text = "Lease.{{#pets_allowed}} Pets welcome.{{/pets_allowed}}{{#if parking_included}} Spot {{parking_space_number}}.{{/if}}"
    assert render_text(text, {"pets_allowed": "Yes", "parking_included": True, "parking_space_number": "P-1"}) == (
        "Lease. Pets welcome. Spot P-1."
    )
    assert render_text(text, {"pets_allowed": "No", "parking_included": 0}) == "Lease."


def test_render_text_nested_sections():
    text = "{{#if a}}A{{#if b}}B{{/if}}Z{{/if}}"
    assert render_text(text, {"a": "Yes", "b": "No"}) == "AZ"
    assert render_text(text, {"a": "Yes", "b": "Yes"}) == "ABZ"
    assert render_text(text, {"a": "No", "b": "Yes"}) == ""
    mixed = "{{#pets_allowed}}Pets{{#if pet_rent}} at {{pet_rent}}{{/if}}.{{/pets_allowed}}"
    assert render_text(mixed, {"pets_allowed": True, "pet_rent": ""}) == "Pets."
    assert render_text(mixed, {"pets_allowed": True, "pet_rent": "$25.00"}) == "Pets at $25.00."


@pytest.mark.parametrize("value", [None, False, "", 0, "No", "false", "0", "  "])
def test_is_falsy(value):
    assert is_falsy(value)


@pytest.mark.parametrize("value", [True, "Yes", 1, "Dog", [1]])
def test_is_truthy(value):
    assert not is_falsy(value)


def test_parse_docx_template():
    data = docx_bytes("Tenant: {{tenant_name}}", "Rent: {{monthly_rent}}", table=[["Unit", "{{unit_number}}"]])
    parsed = parse_docx_template(data)
    assert parsed["variables"] == ["monthly_rent", "tenant_name", "unit_number"]
    assert "Tenant: {{tenant_name}}" in parsed["content"]
    assert parsed["raw_text"] == parsed["content"]


def test_validate_template_format():
    ok = validate_template_format(docx_bytes("Dear {{tenant_name}}"))
    assert ok == {"valid": True, "error": None, "warnings": []}

    plain = validate_template_format(docx_bytes("No placeholders here"))
    assert plain["valid"] is True
    assert plain["warnings"] == [NO_VARIABLES_WARNING]

    unbalanced = validate_template_format(docx_bytes("{{#pets_allowed}}", "Pets {{pet_name}}"))
    assert "Unbalanced conditional blocks: 1 opening, 0 closing." in unbalanced["warnings"]

    assert validate_template_format(b"not a zip")["valid"] is False

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("hello.txt", "hi")
    bad = validate_template_format(buf.getvalue())
    assert bad["valid"] is False
    assert bad["error"] == "Invalid DOCX file: missing word/document.xml"


def test_render_docx_replaces_placeholders_in_body_and_tables():
    data = docx_bytes("Tenant: {{tenant_name}}", table=[["Rent", "{{monthly_rent}}"]])
    out = render_docx_template(data, {"tenant_name": "Jane Renter", "monthly_rent": "$1,250.00"})
    text = docx_text(out)
    assert "Tenant: Jane Renter" in text
    assert "$1,250.00" in text
    assert "{{" not in text


def test_render_docx_block_sections():
    data = docx_bytes(
        "Intro",
        "{{#pets_allowed}}",
        "Pet deposit: {{pet_deposit}}",
        "{{/pets_allowed}}",
        "{{#if parking_included}}",
        "Parking space {{parking_space_number}}",
        "{{/if}}",
        "Outro",
    )
    shown = docx_text(render_docx_template(data, {"pets_allowed": True, "pet_deposit": "$250.00", "parking_included": "No"}))
    assert shown.split("\n") == ["Intro", "Pet deposit: $250.00", "Outro"]

    hidden = docx_text(render_docx_template(data, {"pets_allowed": False, "parking_included": True, "parking_space_number": "P-9"}))
    assert hidden.split("\n") == ["Intro", "Parking space P-9", "Outro"]


def test_render_docx_rejects_garbage():
    with pytest.raises(TemplateError):
        render_docx_template(b"garbage", {})


def test_preview_template_content():
    assert preview_template_content("Hello {{tenant_name}}", {"tenant_name": "Jane"}) == "Hello Jane"
    assert preview_template_content(None, {}) == ""

from datetime import date

from app.pms.modules.lease_templates.template_variables import (
    STANDARD_VARIABLES,
    VARIABLE_CATEGORIES,
    available_variable_names,
    build_variable_schema,
    format_variable_value,
    get_variable_definition,
    required_variable_names,
    sample_data,
    validate_variables,
)


def test_schema_groups_every_variable_by_category():
    schema = build_variable_schema()
    assert len(schema["variables"]) == len(STANDARD_VARIABLES)
    assert set(schema["categories"]) == set(VARIABLE_CATEGORIES)
    assert sum(len(v) for v in schema["categories"].values()) == len(STANDARD_VARIABLES)
    rent = next(v for v in schema["categories"]["financial"] if v["name"] == "monthly_rent")
    assert rent["type"] == "currency"
    assert rent["required"] is True
    # unset optional attributes are left out
    assert "format" not in next(v for v in schema["variables"] if v["name"] == "tenant_name")


def test_names_are_unique():
    names = available_variable_names()
    assert len(names) == len(set(names))
    assert set(required_variable_names()) <= set(names)
    assert "tenant_name" in required_variable_names()
    assert "pet_name" not in required_variable_names()


def test_validate_variables_only_warns():
    result = validate_variables(["tenant_name", "favourite_colour"])
    assert result["valid"] is True
    assert result["errors"] == []
    assert result["unknown_variables"] == ["favourite_colour"]
    assert "Unknown variable: {{favourite_colour}}" in result["warnings"]
    assert "monthly_rent" in result["missing_required"]
    assert any(w.startswith("Missing recommended variables:") for w in result["warnings"])


def test_validate_variables_complete_set():
    result = validate_variables(required_variable_names())
    assert result["warnings"] == []
    assert result["missing_required"] == []


def test_format_currency():
    assert format_variable_value(1250, "monthly_rent") == "$1,250.00"
    assert format_variable_value("99.5", "pet_rent") == "$99.50"
    assert format_variable_value(-5, "late_fee_amount") == "-$5.00"
    assert format_variable_value("n/a", "monthly_rent") == "n/a"


def test_format_date_boolean_and_number():
    assert format_variable_value(date(2026, 1, 1), "lease_start_date") == "January 1, 2026"
    assert format_variable_value("2026-01-01", "lease_start_date") == "2026-01-01"
    assert format_variable_value(True, "pets_allowed") == "Yes"
    assert format_variable_value(False, "parking_included") == "No"
    assert format_variable_value(1200, "unit_sqft") == "1,200"
    assert format_variable_value(1.5, "unit_bathrooms") == "1.5"


def test_format_unknown_and_missing_values():
    assert format_variable_value(None, "monthly_rent") == ""
    assert format_variable_value(42, "not_a_variable") == "42"


def test_definitions_and_sample_data():
    definition = get_variable_definition("late_fee_cap")
    assert definition.category == "compliance"
    assert get_variable_definition("nope") is None
    data = sample_data()
    assert data["tenant_name"] == "John Smith"
    assert data["pets_allowed"] is True

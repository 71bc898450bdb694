"""
Standard variables available to lease templates, plus their formatting rules.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

VARIABLE_CATEGORIES = ("tenant", "property", "unit", "lease", "financial", "compliance", "pet", "parking", "utilities")
VARIABLE_TYPES = ("string", "number", "date", "boolean", "currency")


@dataclass(frozen=True)
class VariableDefinition:
    name: str
    description: str
    type: str
    category: str
    example: Any = None
    required: bool = False
    format: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


_V = VariableDefinition
_DATE = "MMMM D, YYYY"
_MONEY = "$0,0.00"

STANDARD_VARIABLES: tuple[VariableDefinition, ...] = (
    # tenant
    _V("tenant_name", "Full name of the primary tenant", "string", "tenant", "John Smith", required=True),
    _V("tenant_first_name", "First name of the primary tenant", "string", "tenant", "John"),
    _V("tenant_last_name", "Last name of the primary tenant", "string", "tenant", "Smith"),
    _V("tenant_email", "Email address of the primary tenant", "string", "tenant", "john.smith@email.com", required=True),
    _V("tenant_phone", "Phone number of the primary tenant", "string", "tenant", "(612) 555-1234"),
    _V("tenant_ssn_last4", "Last 4 digits of tenant SSN (for identification)", "string", "tenant", "1234"),
    _V("tenant_emergency_contact_name", "Name of tenant emergency contact", "string", "tenant", "Jane Smith"),
    _V("tenant_emergency_contact_phone", "Phone of tenant emergency contact", "string", "tenant", "(612) 555-5678"),
    # property
    _V("property_name", "Name of the property", "string", "property", "Humboldt Court Community", required=True),
    _V("property_address", "Full street address of the property", "string", "property", "123 Main Street", required=True),
    _V("property_address_line2", "Second line of property address (if applicable)", "string", "property", "Suite 100"),
    _V("property_city", "City where the property is located", "string", "property", "Brooklyn Center", required=True),
    _V("property_state", "State where the property is located", "string", "property", "MN", required=True),
    _V("property_zip", "ZIP code of the property", "string", "property", "55430", required=True),
    _V("property_full_address", "Complete formatted address", "string", "property", "123 Main Street, Brooklyn Center, MN 55430"),
    _V("property_year_built", "Year the property was built", "number", "property", 1975),
    # unit
    _V("unit_number", "Unit number or identifier", "string", "unit", "101", required=True),
    _V("unit_bedrooms", "Number of bedrooms", "number", "unit", 2),
    _V("unit_bathrooms", "Number of bathrooms", "number", "unit", 1),
    _V("unit_sqft", "Square footage of the unit", "number", "unit", 850),
    _V("unit_floor", "Floor number of the unit", "number", "unit", 1),
    # lease terms
    _V("lease_start_date", "Start date of the lease", "date", "lease", "January 1, 2026", required=True, format=_DATE),
    _V("lease_end_date", "End date of the lease", "date", "lease", "December 31, 2026", required=True, format=_DATE),
    _V("lease_term_months", "Length of lease in months", "number", "lease", 12),
    _V("move_in_date", "Move-in date", "date", "lease", "January 1, 2026", format=_DATE),
    _V("signed_date", "Date the lease was signed", "date", "lease", "December 15, 2025", format=_DATE),
    # financial
    _V("monthly_rent", "Monthly rent amount", "currency", "financial", 1250.0, required=True, format=_MONEY),
    _V("security_deposit", "Security deposit amount", "currency", "financial", 1250.0, required=True, format=_MONEY),
    _V("late_fee_amount", "Late fee amount (MN cap: $50)", "currency", "financial", 50.0, format=_MONEY),
    _V("grace_period_days", "Grace period before late fee applies (days)", "number", "financial", 5),
    _V("rent_due_day", "Day of month rent is due", "number", "financial", 1),
    # Minnesota compliance
    _V("security_deposit_interest_rate", "Security deposit interest rate (MN: 1%)", "number", "compliance", 1, format="0.00%"),
    _V("late_fee_cap", "Maximum late fee per MN statute ($50)", "currency", "compliance", 50.0, format=_MONEY),
    _V("deposit_bank_name", "Bank where security deposit is held", "string", "compliance", "First National Bank"),
    # pets
    _V("pets_allowed", "Whether pets are allowed", "boolean", "pet", True),
    _V("pet_deposit", "Pet deposit amount", "currency", "pet", 250.0, format=_MONEY),
    _V("pet_rent", "Monthly pet rent", "currency", "pet", 25.0, format=_MONEY),
    _V("pet_name", "Name of the pet", "string", "pet", "Buddy"),
    _V("pet_type", "Type of pet (dog, cat, etc.)", "string", "pet", "Dog"),
    _V("pet_breed", "Breed of the pet", "string", "pet", "Golden Retriever"),
    _V("pet_weight", "Weight of the pet in pounds", "number", "pet", 65),
    # parking
    _V("parking_included", "Whether parking is included", "boolean", "parking", True),
    _V("parking_fee", "Monthly parking fee", "currency", "parking", 50.0, format=_MONEY),
    _V("parking_space_number", "Assigned parking space number", "string", "parking", "P-12"),
    # utilities
    _V("utilities_tenant_pays", "Utilities paid by tenant", "string", "utilities", "Electric, Gas"),
    _V("utilities_owner_pays", "Utilities paid by owner", "string", "utilities", "Water, Sewer, Trash"),
)

_BY_NAME = {v.name: v for v in STANDARD_VARIABLES}


def build_variable_schema() -> dict[str, Any]:
    """All variables, plus the same definitions grouped by category."""
    categories: dict[str, list[dict]] = {c: [] for c in VARIABLE_CATEGORIES}
    for v in STANDARD_VARIABLES:
        categories[v.category].append(v.to_dict())
    return {"variables": [v.to_dict() for v in STANDARD_VARIABLES], "categories": categories}


def available_variable_names() -> list[str]:
    return [v.name for v in STANDARD_VARIABLES]


def required_variable_names() -> list[str]:
    return [v.name for v in STANDARD_VARIABLES if v.required]


def validate_variables(template_variables: list[str]) -> dict[str, Any]:
    """
    Compare a template's variables against the standard set.

    Unknown names and missing required names are warnings only; a template
    is valid whenever there are no errors.
    """
    errors: list[str] = []
    warnings: list[str] = []
    unknown = [name for name in template_variables if name not in _BY_NAME]
    warnings.extend(f"Unknown variable: {{{{{name}}}}}" for name in unknown)
    missing = [name for name in required_variable_names() if name not in template_variables]
    if missing:
        warnings.append("Missing recommended variables: " + ", ".join(f"{{{{{name}}}}}" for name in missing))
    return {
        "valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "unknown_variables": unknown,
        "missing_required": missing,
    }


def get_variable_definition(name: str) -> VariableDefinition | None:
    return _BY_NAME.get(name)


def sample_data() -> dict[str, Any]:
    return {v.name: v.example for v in STANDARD_VARIABLES if v.example is not None}


def _as_decimal(value: Any) -> Decimal | None:
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def _format_number(d: Decimal) -> str:
    if d == d.to_integral_value():
        return f"{int(d):,}"
    return f"{float(d):,.3f}".rstrip("0").rstrip(".")


def format_variable_value(value: Any, variable_name: str) -> str:
    """Render a raw value the way it should appear in a generated lease."""
    if value is None:
        return ""
    definition = _BY_NAME.get(variable_name)
    if definition is None:
        return str(value)

    kind = definition.type
    if kind == "currency":
        d = _as_decimal(value)
        if d is None:
            return str(value)
        sign = "-" if d < 0 else ""
        return f"{sign}${abs(d):,.2f}"
    if kind == "date":
        if isinstance(value, (date, datetime)):
            return f"{value:%B} {value.day}, {value.year}"
        return str(value)
    if kind == "boolean":
        return "Yes" if value else "No"
    if kind == "number":
        d = _as_decimal(value)
        return _format_number(d) if d is not None else str(value)
    return str(value)

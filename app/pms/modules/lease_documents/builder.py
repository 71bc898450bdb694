"""
Maps a lease and its tenant, unit and property onto the standard template variables.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from app.pms.constants import LATE_FEE_CAP
from app.pms.modules.lease_templates.template_variables import format_variable_value

if TYPE_CHECKING:
    from app.pms.modules.leases.models import Lease
    from app.pms.modules.properties.models import Property, Unit
    from app.pms.modules.tenants.models import Tenant

LEAD_PAINT_CUTOFF_YEAR = 1978

# these stay blank rather than rendering "$0.00" or an empty date
_OPTIONAL_VALUES = ("move_in_date", "signed_date", "pet_deposit", "pet_rent", "parking_fee")


def _number(value: Any, default: float = 0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _number_or_none(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def lease_term_months(start: date, end: date) -> int:
    return max(1, (end.year - start.year) * 12 + (end.month - start.month))


def full_address(prop: "Property") -> str:
    parts = [prop.address_line1]
    if prop.address_line2:
        parts.append(prop.address_line2)
    parts.append(f"{prop.city}, {prop.state} {prop.zip_code}")
    return ", ".join(parts)


def ssn_last4(ssn: str | None) -> str:
    return re.sub(r"\D", "", ssn or "")[-4:]


def build_lease_document_data(lease: "Lease", tenant: "Tenant", unit: "Unit", prop: "Property") -> dict[str, Any]:
    rate = lease.security_deposit_interest_rate
    return {
        "tenant_name": f"{tenant.first_name} {tenant.last_name}",
        "tenant_first_name": tenant.first_name,
        "tenant_last_name": tenant.last_name,
        "tenant_email": tenant.email,
        "tenant_phone": tenant.phone or "",
        "tenant_ssn_last4": ssn_last4(tenant.ssn),
        "tenant_emergency_contact_name": tenant.emergency_contact_name or "",
        "tenant_emergency_contact_phone": tenant.emergency_contact_phone or "",
        "property_name": prop.name,
        "property_address": prop.address_line1,
        "property_address_line2": prop.address_line2 or "",
        "property_city": prop.city,
        "property_state": prop.state,
        "property_zip": prop.zip_code,
        "property_full_address": full_address(prop),
        "property_year_built": prop.year_built or 0,
        "unit_number": unit.unit_number,
        "unit_bedrooms": unit.bedrooms or 0,
        "unit_bathrooms": _number(unit.bathrooms, 1) or 1,
        "unit_sqft": unit.sq_ft or 0,
        "unit_floor": unit.floor or 0,
        "lease_start_date": lease.start_date,
        "lease_end_date": lease.end_date,
        "lease_term_months": lease_term_months(lease.start_date, lease.end_date),
        "move_in_date": lease.move_in_date,
        "signed_date": lease.signed_date,
        "monthly_rent": _number(lease.monthly_rent),
        "security_deposit": _number(lease.security_deposit),
        "late_fee_amount": _number(lease.late_fee_amount),
        "grace_period_days": lease.late_fee_grace_days,
        "rent_due_day": lease.rent_due_day,
        "security_deposit_interest_rate": float(Decimal(str(rate if rate is not None else 0)) * 100),
        "deposit_bank_name": lease.security_deposit_bank_name or "",
        "late_fee_cap": LATE_FEE_CAP,
        "pets_allowed": bool(lease.pets_allowed),
        "pet_deposit": _number_or_none(lease.pet_deposit),
        "pet_rent": _number_or_none(lease.pet_rent),
        "parking_included": bool(lease.parking_included),
        "parking_fee": _number_or_none(lease.parking_fee),
        "utilities_tenant_pays": ", ".join(lease.utilities_tenant_pays or []),
        "utilities_owner_pays": ", ".join(lease.utilities_owner_pays or []),
    }


def format_lease_document_data(data: dict[str, Any]) -> dict[str, str]:
    formatted = {}
    for name, value in data.items():
        if name in _OPTIONAL_VALUES and not value:
            formatted[name] = ""
        else:
            formatted[name] = format_variable_value(value, name)
    return formatted


def select_addendum_types(lease: "Lease", prop: "Property", requested: list[str] | None, include_addenda: bool = True) -> list[str]:
    """Requested addenda plus the ones the lease terms call for, in order, without repeats."""
    if not include_addenda:
        return []
    types = list(requested or [])
    if lease.pets_allowed:
        types.append("ADDENDUM_PET")
    if lease.parking_included:
        types.append("ADDENDUM_PARKING")
    if prop.built_before_1978 or (prop.year_built and prop.year_built < LEAD_PAINT_CUTOFF_YEAR):
        types.append("ADDENDUM_LEAD_PAINT")
    return list(dict.fromkeys(types))

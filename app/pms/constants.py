"""
Central constants for the property management application.
"""
from __future__ import annotations

# Minnesota statute caps the late fee on residential leases.
LATE_FEE_CAP = 50

DEFAULT_STATE = "MN"
DEFAULT_COUNTRY = "US"

# (key, display name) pairs seeded by scripts/init_db.py; the admin role gets all of them.
PERMISSIONS: list[tuple[str, str]] = [
    ("properties.view", "Properties: view"),
    ("properties.edit", "Properties: create/edit/delete"),
    ("tenants.view", "Tenants: view"),
    ("tenants.edit", "Tenants: create/edit/delete"),
    ("vendors.view", "Vendors: view"),
    ("vendors.edit", "Vendors: create/edit/delete"),
    ("leases.view", "Leases: view"),
    ("leases.edit", "Leases: create/edit/delete"),
    ("leases.generate", "Leases: generate lease documents"),
    ("maintenance.view", "Maintenance: view work orders"),
    ("maintenance.edit", "Maintenance: create/edit work orders, costs, invoices"),
    ("maintenance.approve", "Maintenance: review/approve/pay invoices"),
    ("maintenance.escalate", "Maintenance: run/acknowledge emergency escalations"),
    ("payments.view", "Payments: view"),
    ("payments.edit", "Payments: record/edit/delete"),
    ("expenses.view", "Expenses: view/export"),
    ("expenses.edit", "Expenses: create/edit/pay/delete"),
    ("inspections.view", "Inspections: view"),
    ("inspections.edit", "Inspections: create/run/complete"),
    ("documents.view", "Documents: view/download"),
    ("documents.edit", "Documents: upload/edit/delete"),
    ("templates.view", "Lease templates: view/preview"),
    ("templates.edit", "Lease templates: create/edit/archive"),
    ("deposits.view", "Security deposits: view"),
    ("deposits.edit", "Security deposits: record interest, dispositions and refunds"),
]

MANAGER_ROLE_KEY = "manager"
ADMIN_ROLE_KEY = "admin"

# Permissions given to the property manager role (everything except template administration).
MANAGER_PERMISSIONS = frozenset(k for k, _ in PERMISSIONS if k != "templates.edit")

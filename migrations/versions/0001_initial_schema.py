"""Initial property management schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-01-05
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # --- auth / rbac / audit ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("role_id", "permission_id"),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )
    op.create_index("idx_audit_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("idx_audit_created", "audit_events", ["created_at"])

    # --- properties / units ---
    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="MULTI_FAMILY"),
        sa.Column("status", sa.String(32), nullable=False, server_default="ACTIVE"),
        sa.Column("address_line1", sa.String(255), nullable=False),
        sa.Column("address_line2", sa.String(255), nullable=True),
        sa.Column("city", sa.String(128), nullable=False),
        sa.Column("state", sa.String(2), nullable=False, server_default="MN"),
        sa.Column("zip_code", sa.String(10), nullable=False),
        sa.Column("country", sa.String(2), nullable=False, server_default="US"),
        sa.Column("year_built", sa.Integer(), nullable=True),
        sa.Column("total_units", sa.Integer(), nullable=True),
        sa.Column("total_sq_ft", sa.Integer(), nullable=True),
        sa.Column("parking_spaces", sa.Integer(), nullable=True),
        sa.Column("amenities", sa.JSON(), nullable=True),
        sa.Column("rental_license_number", sa.String(128), nullable=True),
        sa.Column("rental_license_expiry", sa.Date(), nullable=True),
        sa.Column("lead_paint_disclosure", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("built_before_1978", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("purchase_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("current_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("mortgage_balance", sa.Numeric(12, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_properties_manager", "properties", ["manager_id"])
    op.create_index("idx_properties_status", "properties", ["status"])
    op.create_index("idx_properties_name", "properties", ["name"])

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("unit_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="VACANT"),
        sa.Column("floor_plan", sa.String(64), nullable=True),
        sa.Column("bedrooms", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("bathrooms", sa.Numeric(3, 1), nullable=False, server_default="1"),
        sa.Column("sq_ft", sa.Integer(), nullable=True),
        sa.Column("floor", sa.Integer(), nullable=True),
        sa.Column("market_rent", sa.Numeric(10, 2), nullable=False),
        sa.Column("current_rent", sa.Numeric(10, 2), nullable=True),
        sa.Column("deposit_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("pet_friendly", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("pet_deposit", sa.Numeric(10, 2), nullable=True),
        sa.Column("pet_rent", sa.Numeric(10, 2), nullable=True),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("appliances", sa.JSON(), nullable=True),
        sa.Column("utilities_included", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("property_id", "unit_number", name="uq_units_property_number"),
    )
    op.create_index("idx_units_property", "units", ["property_id"])
    op.create_index("idx_units_status", "units", ["status"])

    # --- tenants / vendors ---
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="APPLICANT"),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("alt_phone", sa.String(64), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("ssn", sa.String(16), nullable=True),
        sa.Column("drivers_license", sa.String(64), nullable=True),
        sa.Column("emergency_contact_name", sa.String(255), nullable=True),
        sa.Column("emergency_contact_phone", sa.String(64), nullable=True),
        sa.Column("emergency_contact_relation", sa.String(64), nullable=True),
        sa.Column("employer", sa.String(255), nullable=True),
        sa.Column("employer_phone", sa.String(64), nullable=True),
        sa.Column("job_title", sa.String(128), nullable=True),
        sa.Column("monthly_income", sa.Numeric(10, 2), nullable=True),
        sa.Column("previous_address", sa.String(512), nullable=True),
        sa.Column("previous_landlord", sa.String(255), nullable=True),
        sa.Column("previous_landlord_phone", sa.String(64), nullable=True),
        sa.Column("reason_for_leaving", sa.Text(), nullable=True),
        sa.Column("vehicle_make", sa.String(64), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("vehicle_year", sa.Integer(), nullable=True),
        sa.Column("vehicle_color", sa.String(32), nullable=True),
        sa.Column("vehicle_license_plate", sa.String(32), nullable=True),
        sa.Column("preferred_contact_method", sa.String(16), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("manager_id", "email", name="uq_tenants_manager_email"),
    )
    op.create_index("idx_tenants_manager", "tenants", ["manager_id"])
    op.create_index("idx_tenants_status", "tenants", ["status"])
    op.create_index("idx_tenants_last_name", "tenants", ["last_name"])

    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="ACTIVE"),
        sa.Column("categories", sa.JSON(), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("insurance_provider", sa.String(255), nullable=True),
        sa.Column("insurance_policy_number", sa.String(128), nullable=True),
        sa.Column("insurance_expiry", sa.Date(), nullable=True),
        sa.Column("license_number", sa.String(128), nullable=True),
        sa.Column("license_expiry", sa.Date(), nullable=True),
        sa.Column("payment_terms", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("rating", sa.Numeric(2, 1), nullable=True),
        sa.Column("total_jobs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_vendors_manager", "vendors", ["manager_id"])
    op.create_index("idx_vendors_status", "vendors", ["status"])
    op.create_index("idx_vendors_company", "vendors", ["company_name"])

    # --- leases ---
    op.create_table(
        "leases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="DRAFT"),
        sa.Column("lease_type", sa.String(32), nullable=False, server_default="FIXED_TERM"),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("move_in_date", sa.Date(), nullable=True),
        sa.Column("move_out_date", sa.Date(), nullable=True),
        sa.Column("signed_date", sa.Date(), nullable=True),
        sa.Column("monthly_rent", sa.Numeric(10, 2), nullable=False),
        sa.Column("rent_due_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("late_fee_amount", sa.Numeric(10, 2), nullable=False, server_default="50"),
        sa.Column("late_fee_grace_days", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("security_deposit", sa.Numeric(10, 2), nullable=True),
        sa.Column("security_deposit_paid_date", sa.Date(), nullable=True),
        sa.Column("security_deposit_interest_rate", sa.Numeric(6, 4), nullable=False, server_default="0.01"),
        sa.Column("security_deposit_bank_name", sa.String(255), nullable=True),
        sa.Column("security_deposit_account_last4", sa.String(4), nullable=True),
        sa.Column("pets_allowed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("pet_deposit", sa.Numeric(10, 2), nullable=True),
        sa.Column("pet_rent", sa.Numeric(10, 2), nullable=True),
        sa.Column("utilities_tenant_pays", sa.JSON(), nullable=True),
        sa.Column("utilities_owner_pays", sa.JSON(), nullable=True),
        sa.Column("parking_included", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("parking_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("storage_included", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("storage_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("renewal_notice_days", sa.Integer(), nullable=True),
        sa.Column("renewal_rent_increase", sa.Numeric(10, 2), nullable=True),
        sa.Column("renewed_from_lease_id", sa.Integer(), nullable=True),
        sa.Column("lease_document_url", sa.String(1024), nullable=True),
        sa.Column("signed_document_url", sa.String(1024), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["renewed_from_lease_id"], ["leases.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("lease_number"),
    )
    op.create_index("idx_leases_unit", "leases", ["unit_id"])
    op.create_index("idx_leases_tenant", "leases", ["tenant_id"])
    op.create_index("idx_leases_status", "leases", ["status"])
    op.create_index("idx_leases_end_date", "leases", ["end_date"])
    op.create_index("idx_leases_renewed_from", "leases", ["renewed_from_lease_id"])

    op.create_table(
        "lease_tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("lease_id", "tenant_id", name="uq_lease_tenants_lease_tenant"),
    )
    op.create_index("idx_lease_tenants_tenant", "lease_tenants", ["tenant_id"])

    op.create_table(
        "lease_addenda",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("signed_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_lease_addenda_lease", "lease_addenda", ["lease_id"])

    # --- maintenance ---
    op.create_table(
        "maintenance_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="SUBMITTED"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="MEDIUM"),
        sa.Column("category", sa.String(32), nullable=False, server_default="OTHER"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("permission_to_enter", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("preferred_times", sa.String(255), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_time", sa.String(32), nullable=True),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("tenant_charge", sa.Numeric(10, 2), nullable=True),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("assigned_to_id", sa.Integer(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("escalation_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_escalated_at", sa.DateTime(), nullable=True),
        sa.Column("escalation_acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("escalation_acknowledged_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["escalation_acknowledged_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("request_number"),
    )
    op.create_index("idx_maintenance_unit", "maintenance_requests", ["unit_id"])
    op.create_index("idx_maintenance_status", "maintenance_requests", ["status"])
    op.create_index("idx_maintenance_priority", "maintenance_requests", ["priority"])
    op.create_index("idx_maintenance_created", "maintenance_requests", ["created_at"])

    op.create_table(
        "maintenance_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_internal", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("author_name", sa.String(255), nullable=False),
        sa.Column("author_type", sa.String(16), nullable=False, server_default="staff"),
        sa.Column("author_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["maintenance_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_maintenance_comments_request", "maintenance_comments", ["request_id"])

    op.create_table(
        "maintenance_invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("vendor_invoice_number", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="DRAFT"),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("file_key", sa.String(1024), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_mime_type", sa.String(128), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("submitted_by_id", sa.Integer(), nullable=True),
        sa.Column("review_started_at", sa.DateTime(), nullable=True),
        sa.Column("review_started_by_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by_id", sa.Integer(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("paid_by_id", sa.Integer(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("payment_reference", sa.String(128), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["request_id"], ["maintenance_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["submitted_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["review_started_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reviewed_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["paid_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("invoice_number"),
    )
    op.create_index("idx_invoices_request", "maintenance_invoices", ["request_id"])
    op.create_index("idx_invoices_status", "maintenance_invoices", ["status"])
    op.create_index("idx_invoices_vendor", "maintenance_invoices", ["vendor_id"])

    op.create_table(
        "cost_line_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="OTHER"),
        sa.Column("description", sa.String(512), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False, server_default="1"),
        sa.Column("unit_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("part_number", sa.String(128), nullable=True),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("warranty", sa.String(255), nullable=True),
        sa.Column("warranty_expiry", sa.Date(), nullable=True),
        sa.Column("labor_hours", sa.Numeric(6, 2), nullable=True),
        sa.Column("labor_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("worker_id", sa.Integer(), nullable=True),
        sa.Column("charge_to_tenant", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("tenant_charge_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("invoice_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["request_id"], ["maintenance_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["worker_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["invoice_id"], ["maintenance_invoices.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_cost_items_request", "cost_line_items", ["request_id"])
    op.create_index("idx_cost_items_invoice", "cost_line_items", ["invoice_id"])

    # --- payments / expenses ---
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payment_number", sa.String(32), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="RENT"),
        sa.Column("method", sa.String(32), nullable=False, server_default="CHECK"),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("applied_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("processing_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("received_date", sa.Date(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("memo", sa.String(255), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("lease_id", sa.Integer(), nullable=True),
        sa.Column("recorded_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["recorded_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("payment_number"),
    )
    op.create_index("idx_payments_tenant", "payments", ["tenant_id"])
    op.create_index("idx_payments_lease", "payments", ["lease_id"])
    op.create_index("idx_payments_status", "payments", ["status"])
    op.create_index("idx_payments_date", "payments", ["payment_date"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("expense_number", sa.String(32), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="OTHER"),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_deductible", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("description", sa.String(512), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("invoice_number", sa.String(128), nullable=True),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("maintenance_request_id", sa.Integer(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["maintenance_request_id"], ["maintenance_requests.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("expense_number"),
    )
    op.create_index("idx_expenses_property", "expenses", ["property_id"])
    op.create_index("idx_expenses_date", "expenses", ["expense_date"])
    op.create_index("idx_expenses_category", "expenses", ["category"])
    op.create_index("idx_expenses_status", "expenses", ["status"])

    # --- inspections ---
    op.create_table(
        "inspections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="SCHEDULED"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("completed_date", sa.DateTime(), nullable=True),
        sa.Column("overall_condition", sa.String(50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("lease_id", sa.Integer(), nullable=True),
        sa.Column("inspector_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["inspector_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_inspections_property", "inspections", ["property_id"])
    op.create_index("idx_inspections_status", "inspections", ["status"])
    op.create_index("idx_inspections_scheduled", "inspections", ["scheduled_date"])

    op.create_table(
        "inspection_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inspection_id", sa.Integer(), nullable=False),
        sa.Column("room", sa.String(100), nullable=False),
        sa.Column("item", sa.String(100), nullable=False),
        sa.Column("condition", sa.String(16), nullable=False, server_default="GOOD"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("photo_urls", sa.JSON(), nullable=False),
        sa.Column("has_damage", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("damage_description", sa.String(500), nullable=True),
        sa.Column("estimated_repair_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("tenant_responsible", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_inspection_items_inspection", "inspection_items", ["inspection_id"])

    # --- documents / lease templates ---
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(32), nullable=False, server_default="OTHER"),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(128), nullable=False, server_default="application/octet-stream"),
        sa.Column("storage_path", sa.Text(), nullable=False),
        sa.Column("sha256", sa.String(64), nullable=True),
        sa.Column("property_id", sa.Integer(), nullable=True),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("lease_id", sa.Integer(), nullable=True),
        sa.Column("uploaded_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["uploaded_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_documents_uploaded_by", "documents", ["uploaded_by_id"])
    op.create_index("idx_documents_type", "documents", ["type"])
    op.create_index("idx_documents_lease", "documents", ["lease_id"])
    op.create_index("idx_documents_tenant", "documents", ["tenant_id"])
    op.create_index("idx_documents_property", "documents", ["property_id"])

    op.create_table(
        "lease_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("template_file_path", sa.Text(), nullable=True),
        sa.Column("template_file_name", sa.String(255), nullable=True),
        sa.Column("template_content", sa.Text(), nullable=True),
        sa.Column("variables", sa.JSON(), nullable=False),
        sa.Column("variable_schema", sa.JSON(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("parent_template_id", sa.Integer(), nullable=True),
        sa.Column("change_notes", sa.String(500), nullable=True),
        sa.Column("minnesota_compliant", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("compliance_notes", sa.String(500), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["parent_template_id"], ["lease_templates.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("name", "version", name="uq_lease_templates_name_version"),
    )
    op.create_index("idx_lease_templates_type", "lease_templates", ["type"])
    op.create_index("idx_lease_templates_active", "lease_templates", ["is_active", "is_archived"])

    op.create_table(
        "deposit_dispositions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("interest_earned", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("deductions", sa.JSON(), nullable=False),
        sa.Column("total_deductions", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("balance_due", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("sent_date", sa.Date(), nullable=True),
        sa.Column("refund_paid_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_deposit_dispositions_lease", "deposit_dispositions", ["lease_id"], unique=True)


def downgrade() -> None:
    for table in (
        "deposit_dispositions",
        "lease_templates",
        "documents",
        "inspection_items",
        "inspections",
        "expenses",
        "payments",
        "cost_line_items",
        "maintenance_invoices",
        "maintenance_comments",
        "maintenance_requests",
        "lease_addenda",
        "lease_tenants",
        "leases",
        "vendors",
        "tenants",
        "units",
        "properties",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)

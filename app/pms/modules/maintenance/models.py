from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.models import User
    from app.pms.modules.properties.models import Unit
    from app.pms.modules.tenants.models import Tenant
    from app.pms.modules.vendors.models import Vendor

MAINTENANCE_STATUSES = (
    "SUBMITTED",
    "ACKNOWLEDGED",
    "SCHEDULED",
    "IN_PROGRESS",
    "PENDING_PARTS",
    "COMPLETED",
    "CANCELLED",
    "ON_HOLD",
)
PRIORITIES = ("EMERGENCY", "HIGH", "MEDIUM", "LOW")
CATEGORY_LABELS = {
    "PLUMBING": "Plumbing",
    "ELECTRICAL": "Electrical",
    "HVAC": "HVAC",
    "APPLIANCE": "Appliance",
    "STRUCTURAL": "Structural",
    "PEST_CONTROL": "Pest Control",
    "LANDSCAPING": "Landscaping",
    "CLEANING": "Cleaning",
    "PAINTING": "Painting",
    "FLOORING": "Flooring",
    "WINDOWS_DOORS": "Windows/Doors",
    "ROOF": "Roof",
    "SAFETY": "Safety",
    "OTHER": "Other",
}
MAINTENANCE_CATEGORIES = tuple(CATEGORY_LABELS)
AUTHOR_TYPES = ("staff", "tenant", "vendor")

COST_TYPE_LABELS = {
    "LABOR": "Labor",
    "PARTS": "Parts",
    "MATERIALS": "Materials",
    "PERMITS": "Permits",
    "TRAVEL": "Travel",
    "EMERGENCY_FEE": "Emergency Fee",
    "DISPOSAL": "Disposal",
    "SUBCONTRACTOR": "Subcontractor",
    "OTHER": "Other",
}
COST_TYPES = tuple(COST_TYPE_LABELS)

INVOICE_STATUS_LABELS = {
    "DRAFT": "Draft",
    "SUBMITTED": "Submitted",
    "UNDER_REVIEW": "Under Review",
    "APPROVED": "Approved",
    "REJECTED": "Rejected",
    "PAID": "Paid",
    "CANCELLED": "Cancelled",
}
INVOICE_STATUSES = tuple(INVOICE_STATUS_LABELS)
INVOICE_PAYMENT_METHODS = ("CHECK", "ACH", "CREDIT_CARD", "CASH", "OTHER")


class MaintenanceRequest(Base):
    """A work order."""

    __tablename__ = "maintenance_requests"
    __table_args__ = (
        Index("idx_maintenance_unit", "unit_id"),
        Index("idx_maintenance_status", "status"),
        Index("idx_maintenance_priority", "priority"),
        Index("idx_maintenance_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # WO-YYYYMMDD-xxxxxxxx
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="SUBMITTED")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="OTHER")

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)  # e.g. "Kitchen sink"
    permission_to_enter: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    preferred_times: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Scheduling
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    scheduled_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Costs (actual_cost / tenant_charge are synced from cost line items)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    actual_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    tenant_charge: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[int | None] = mapped_column(ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)
    vendor_id: Mapped[int | None] = mapped_column(ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Emergency escalation
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-3
    last_escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    escalation_acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    escalation_acknowledged_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    unit: Mapped["Unit"] = relationship("Unit", lazy="joined")
    tenant: Mapped["Tenant"] = relationship("Tenant", lazy="joined")
    vendor: Mapped["Vendor"] = relationship("Vendor", lazy="joined")
    assigned_to: Mapped["User"] = relationship("User", foreign_keys=[assigned_to_id])
    comments: Mapped[list["MaintenanceComment"]] = relationship(
        "MaintenanceComment",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="MaintenanceComment.created_at",
    )
    cost_items: Mapped[list["CostLineItem"]] = relationship(
        "CostLineItem",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="CostLineItem.id",
    )
    invoices: Mapped[list["MaintenanceInvoice"]] = relationship(
        "MaintenanceInvoice",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="MaintenanceInvoice.id",
    )


class MaintenanceComment(Base):
    __tablename__ = "maintenance_comments"
    __table_args__ = (Index("idx_maintenance_comments_request", "request_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    author_type: Mapped[str] = mapped_column(String(16), nullable=False, default="staff")  # staff, tenant, vendor
    author_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    request: Mapped[MaintenanceRequest] = relationship("MaintenanceRequest", back_populates="comments")


class CostLineItem(Base):
    __tablename__ = "cost_line_items"
    __table_args__ = (
        Index("idx_cost_items_request", "request_id"),
        Index("idx_cost_items_invoice", "invoice_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="OTHER")
    description: Mapped[str] = mapped_column(String(512), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=1)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)  # quantity * unit_cost

    # Parts
    part_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    warranty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    warranty_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Labor
    labor_hours: Mapped[Decimal | None] = mapped_column(Numeric(6, 2), nullable=True)
    labor_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    worker_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Tenant billing
    charge_to_tenant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tenant_charge_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    invoice_id: Mapped[int | None] = mapped_column(ForeignKey("maintenance_invoices.id", ondelete="SET NULL"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    request: Mapped[MaintenanceRequest] = relationship("MaintenanceRequest", back_populates="cost_items")


class MaintenanceInvoice(Base):
    __tablename__ = "maintenance_invoices"
    __table_args__ = (
        Index("idx_invoices_request", "request_id"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_vendor", "vendor_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False)
    vendor_id: Mapped[int | None] = mapped_column(ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # INV-YYYYMMDD-xxxxxxxx
    vendor_invoice_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)

    # Attached vendor invoice file
    file_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_mime_type: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Workflow
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    submitted_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    review_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    review_started_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    paid_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    request: Mapped[MaintenanceRequest] = relationship("MaintenanceRequest", back_populates="invoices")
    vendor: Mapped["Vendor"] = relationship("Vendor", lazy="joined")

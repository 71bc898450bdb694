from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.modules.maintenance.models import MaintenanceRequest
    from app.pms.modules.properties.models import Property
    from app.pms.modules.vendors.models import Vendor

EXPENSE_CATEGORIES = (
    "MAINTENANCE",
    "REPAIRS",
    "UTILITIES",
    "INSURANCE",
    "PROPERTY_TAX",
    "MORTGAGE",
    "HOA_FEES",
    "MANAGEMENT_FEE",
    "LEGAL",
    "ADVERTISING",
    "SUPPLIES",
    "LANDSCAPING",
    "CLEANING",
    "PEST_CONTROL",
    "CAPITAL_IMPROVEMENT",
    "OTHER",
)
EXPENSE_STATUSES = ("PENDING", "APPROVED", "PAID", "REJECTED", "CANCELLED")
# statuses that count as money actually spent
COUNTED_STATUSES = ("APPROVED", "PAID")


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        Index("idx_expenses_property", "property_id"),
        Index("idx_expenses_date", "expense_date"),
        Index("idx_expenses_category", "category"),
        Index("idx_expenses_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expense_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="OTHER")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_deductible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str] = mapped_column(String(512), nullable=False)

    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    invoice_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    vendor_id: Mapped[int | None] = mapped_column(ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    maintenance_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("maintenance_requests.id", ondelete="SET NULL"), nullable=True
    )
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship("Property", lazy="joined")
    vendor: Mapped["Vendor"] = relationship("Vendor")
    maintenance_request: Mapped["MaintenanceRequest"] = relationship("MaintenanceRequest")

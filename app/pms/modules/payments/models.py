from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.modules.leases.models import Lease
    from app.pms.modules.tenants.models import Tenant

PAYMENT_TYPES = (
    "RENT",
    "SECURITY_DEPOSIT",
    "PET_DEPOSIT",
    "PET_RENT",
    "LATE_FEE",
    "PARKING",
    "STORAGE",
    "UTILITY",
    "MOVE_IN_FEE",
    "APPLICATION_FEE",
    "DEPOSIT_INTEREST",
    "DEPOSIT_REFUND",
    "OTHER",
)
PAYMENT_METHODS = ("CHECK", "CASH", "ACH", "CREDIT_CARD", "DEBIT_CARD", "MONEY_ORDER", "ONLINE_PORTAL", "OTHER")
PAYMENT_STATUSES = ("PENDING", "COMPLETED", "FAILED", "REFUNDED", "PARTIAL", "CANCELLED")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_tenant", "tenant_id"),
        Index("idx_payments_lease", "lease_id"),
        Index("idx_payments_status", "status"),
        Index("idx_payments_date", "payment_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # PAY-YYYYMMDD-xxxxxxxx
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="RENT")
    method: Mapped[str] = mapped_column(String(32), nullable=False, default="CHECK")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    applied_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    processing_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    reference_number: Mapped[str | None] = mapped_column(String(128), nullable=True)  # check number, ACH trace
    memo: Mapped[str | None] = mapped_column(String(255), nullable=True)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    lease_id: Mapped[int | None] = mapped_column(ForeignKey("leases.id", ondelete="SET NULL"), nullable=True)
    recorded_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    tenant: Mapped["Tenant"] = relationship("Tenant", lazy="joined")
    lease: Mapped["Lease"] = relationship("Lease")

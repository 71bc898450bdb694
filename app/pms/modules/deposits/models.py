from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.modules.leases.models import Lease

DEDUCTION_CATEGORIES = ("CLEANING", "REPAIRS", "UNPAID_RENT", "LATE_FEES", "UTILITIES", "OTHER")


class DepositDisposition(Base):
    """Itemized statement of what happens to a security deposit after move-out. One per lease."""

    __tablename__ = "deposit_dispositions"
    __table_args__ = (Index("idx_deposit_dispositions_lease", "lease_id", unique=True),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False)

    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    interest_earned: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    deductions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # [{description, amount, category}]
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    balance_due: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)  # owed by the tenant

    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    sent_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    refund_paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    lease: Mapped["Lease"] = relationship("Lease")

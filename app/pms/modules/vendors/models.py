from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base

VENDOR_STATUSES = ("ACTIVE", "INACTIVE", "PENDING_APPROVAL", "SUSPENDED")


class Vendor(Base):
    __tablename__ = "vendors"
    __table_args__ = (
        Index("idx_vendors_manager", "manager_id"),
        Index("idx_vendors_status", "status"),
        Index("idx_vendors_company", "company_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")

    # Services (maintenance categories the vendor covers)
    categories: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Insurance / licensing
    insurance_provider: Mapped[str | None] = mapped_column(String(255), nullable=True)
    insurance_policy_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    insurance_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    license_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    license_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_terms: Mapped[int] = mapped_column(Integer, nullable=False, default=30)  # net days
    rating: Mapped[Decimal | None] = mapped_column(Numeric(2, 1), nullable=True)  # 0-5
    total_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

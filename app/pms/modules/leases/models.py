from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.modules.properties.models import Unit
    from app.pms.modules.tenants.models import Tenant

LEASE_STATUSES = ("DRAFT", "PENDING_SIGNATURE", "ACTIVE", "EXPIRED", "RENEWED", "TERMINATED", "MONTH_TO_MONTH")
LEASE_TYPES = ("FIXED_TERM", "MONTH_TO_MONTH", "WEEK_TO_WEEK")
# Statuses that hold a unit for their period
BLOCKING_STATUSES = ("ACTIVE", "PENDING_SIGNATURE")


class Lease(Base):
    __tablename__ = "leases"
    __table_args__ = (
        Index("idx_leases_unit", "unit_id"),
        Index("idx_leases_tenant", "tenant_id"),
        Index("idx_leases_status", "status"),
        Index("idx_leases_end_date", "end_date"),
        Index("idx_leases_renewed_from", "renewed_from_lease_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # LS-YYYYMMDD-xxxxxxxx
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    lease_type: Mapped[str] = mapped_column(String(32), nullable=False, default="FIXED_TERM")

    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)  # primary tenant

    # Dates
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    move_in_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    signed_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Rent
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rent_due_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    late_fee_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=50)
    late_fee_grace_days: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    # Security deposit
    security_deposit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    security_deposit_paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    security_deposit_interest_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0.01"))
    security_deposit_bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    security_deposit_account_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)

    # Pets
    pets_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pet_deposit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    pet_rent: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Utilities
    utilities_tenant_pays: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    utilities_owner_pays: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)

    # Parking / storage
    parking_included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parking_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    storage_included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    storage_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Renewal
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    renewal_notice_days: Mapped[int | None] = mapped_column(Integer, nullable=True, default=60)
    renewal_rent_increase: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    # the lease this one renews
    renewed_from_lease_id: Mapped[int | None] = mapped_column(ForeignKey("leases.id", ondelete="SET NULL"), nullable=True)

    # Documents
    lease_document_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    signed_document_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    unit: Mapped["Unit"] = relationship("Unit", lazy="joined")
    tenant: Mapped["Tenant"] = relationship("Tenant", lazy="joined")
    co_tenants: Mapped[list["LeaseTenant"]] = relationship(
        "LeaseTenant",
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    addenda: Mapped[list["LeaseAddendum"]] = relationship(
        "LeaseAddendum",
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LeaseAddendum.id",
    )


class LeaseTenant(Base):
    """Additional (co-)tenant on a lease."""

    __tablename__ = "lease_tenants"
    __table_args__ = (
        UniqueConstraint("lease_id", "tenant_id", name="uq_lease_tenants_lease_tenant"),
        Index("idx_lease_tenants_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    lease: Mapped[Lease] = relationship("Lease", back_populates="co_tenants")
    tenant: Mapped["Tenant"] = relationship("Tenant", lazy="joined")


class LeaseAddendum(Base):
    __tablename__ = "lease_addenda"
    __table_args__ = (Index("idx_lease_addenda_lease", "lease_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    signed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    lease: Mapped[Lease] = relationship("Lease", back_populates="addenda")

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base

TENANT_STATUSES = ("APPLICANT", "APPROVED", "ACTIVE", "PAST", "EVICTED", "DENIED")
CONTACT_METHODS = ("EMAIL", "PHONE", "TEXT", "MAIL")


class Tenant(Base):
    __tablename__ = "tenants"
    __table_args__ = (
        UniqueConstraint("manager_id", "email", name="uq_tenants_manager_email"),
        Index("idx_tenants_manager", "manager_id"),
        Index("idx_tenants_status", "status"),
        Index("idx_tenants_last_name", "last_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="APPLICANT")

    # Personal
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    alt_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Identification (API responses expose ssn_last4 only)
    ssn: Mapped[str | None] = mapped_column(String(16), nullable=True)
    drivers_license: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Emergency contact
    emergency_contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    emergency_contact_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    emergency_contact_relation: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Employment
    employer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    employer_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(128), nullable=True)
    monthly_income: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Previous rental
    previous_address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    previous_landlord: Mapped[str | None] = mapped_column(String(255), nullable=True)
    previous_landlord_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason_for_leaving: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Vehicle
    vehicle_make: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vehicle_color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    vehicle_license_plate: Mapped[str | None] = mapped_column(String(32), nullable=True)

    preferred_contact_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def ssn_last4(self) -> str | None:
        digits = "".join(ch for ch in (self.ssn or "") if ch.isdigit())
        return digits[-4:] if digits else None

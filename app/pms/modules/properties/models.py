from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

PROPERTY_TYPES = ("SINGLE_FAMILY", "MULTI_FAMILY", "APARTMENT", "CONDO", "TOWNHOUSE", "COMMERCIAL", "MIXED_USE")
PROPERTY_STATUSES = ("ACTIVE", "INACTIVE", "UNDER_RENOVATION", "FOR_SALE")
UNIT_STATUSES = ("VACANT", "OCCUPIED", "NOTICE_GIVEN", "UNDER_RENOVATION", "OFF_MARKET")


class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        Index("idx_properties_manager", "manager_id"),
        Index("idx_properties_status", "status"),
        Index("idx_properties_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="MULTI_FAMILY")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")

    # Address
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False, default="MN")
    zip_code: Mapped[str] = mapped_column(String(10), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="US")

    # Building details
    year_built: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_units: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_sq_ft: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parking_spaces: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amenities: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)

    # Compliance
    rental_license_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rental_license_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    lead_paint_disclosure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    built_before_1978: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Financial
    purchase_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    current_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    mortgage_balance: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    units: Mapped[list["Unit"]] = relationship(
        "Unit",
        back_populates="property",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Unit.unit_number",
    )


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("property_id", "unit_number", name="uq_units_property_number"),
        Index("idx_units_property", "property_id"),
        Index("idx_units_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    unit_number: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="VACANT")

    # Layout
    floor_plan: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    bathrooms: Mapped[Decimal] = mapped_column(Numeric(3, 1), nullable=False, default=1)
    sq_ft: Mapped[int | None] = mapped_column(Integer, nullable=True)
    floor: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Rent
    market_rent: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    current_rent: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Pets
    pet_friendly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pet_deposit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    pet_rent: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    features: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    appliances: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    utilities_included: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    property: Mapped[Property] = relationship("Property", back_populates="units", lazy="joined")

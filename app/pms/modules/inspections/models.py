from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.modules.leases.models import Lease
    from app.pms.modules.properties.models import Property

INSPECTION_TYPE_LABELS = {
    "MOVE_IN": "Move-In Inspection",
    "MOVE_OUT": "Move-Out Inspection",
    "ROUTINE": "Routine Inspection",
    "MAINTENANCE": "Maintenance Inspection",
    "SAFETY": "Safety Inspection",
    "ANNUAL": "Annual Inspection",
}
INSPECTION_TYPES = tuple(INSPECTION_TYPE_LABELS)
INSPECTION_STATUSES = ("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED")
CONDITIONS = ("NEW", "GOOD", "FAIR", "POOR", "DAMAGED")

ROOM_TEMPLATES = {
    "Living Room": ["Walls", "Ceiling", "Flooring", "Windows", "Doors", "Outlets", "Light Fixtures", "Blinds/Curtains"],
    "Kitchen": [
        "Walls",
        "Ceiling",
        "Flooring",
        "Cabinets",
        "Countertops",
        "Sink",
        "Faucet",
        "Stove/Range",
        "Oven",
        "Refrigerator",
        "Dishwasher",
        "Microwave",
        "Garbage Disposal",
        "Outlets",
    ],
    "Bathroom": [
        "Walls",
        "Ceiling",
        "Flooring",
        "Toilet",
        "Sink",
        "Faucet",
        "Bathtub/Shower",
        "Mirror",
        "Vanity",
        "Exhaust Fan",
        "Towel Bars",
    ],
    "Bedroom": ["Walls", "Ceiling", "Flooring", "Windows", "Doors", "Closet", "Outlets", "Light Fixtures", "Blinds/Curtains"],
    "Hallway": ["Walls", "Ceiling", "Flooring", "Light Fixtures", "Smoke Detector"],
    "Laundry": ["Walls", "Flooring", "Washer Hookups", "Dryer Hookups", "Outlets"],
    "Exterior": ["Front Door", "Back Door", "Windows", "Patio/Balcony", "Parking Area"],
    "General": ["HVAC System", "Water Heater", "Smoke Detectors", "Carbon Monoxide Detector", "Keys/Locks"],
}


class Inspection(Base):
    __tablename__ = "inspections"
    __table_args__ = (
        Index("idx_inspections_property", "property_id"),
        Index("idx_inspections_status", "status"),
        Index("idx_inspections_scheduled", "scheduled_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="SCHEDULED")
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    overall_condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    lease_id: Mapped[int | None] = mapped_column(ForeignKey("leases.id", ondelete="SET NULL"), nullable=True)
    inspector_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship("Property", lazy="joined")
    lease: Mapped["Lease"] = relationship("Lease")
    items: Mapped[list["InspectionItem"]] = relationship(
        back_populates="inspection",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InspectionItem.id",
    )


class InspectionItem(Base):
    __tablename__ = "inspection_items"
    __table_args__ = (Index("idx_inspection_items_inspection", "inspection_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[int] = mapped_column(ForeignKey("inspections.id", ondelete="CASCADE"), nullable=False)
    room: Mapped[str] = mapped_column(String(100), nullable=False)
    item: Mapped[str] = mapped_column(String(100), nullable=False)
    condition: Mapped[str] = mapped_column(String(16), nullable=False, default="GOOD")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    has_damage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    damage_description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    estimated_repair_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    tenant_responsible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    inspection: Mapped[Inspection] = relationship(back_populates="items")

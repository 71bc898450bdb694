from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base

TEMPLATE_TYPE_LABELS = {
    "MAIN_LEASE": "Main Lease Agreement",
    "ADDENDUM_PET": "Pet Addendum",
    "ADDENDUM_PARKING": "Parking Addendum",
    "ADDENDUM_CRIME_FREE": "Crime-Free Housing Addendum",
    "ADDENDUM_LEAD_PAINT": "Lead Paint Disclosure",
    "ADDENDUM_SECURITY_DEPOSIT": "Security Deposit Addendum",
    "ADDENDUM_UTILITIES": "Utilities Addendum",
    "ADDENDUM_SMOKING": "Smoking Policy Addendum",
    "ADDENDUM_GUEST": "Guest Policy Addendum",
    "ADDENDUM_CUSTOM": "Custom Addendum",
}
TEMPLATE_TYPES = tuple(TEMPLATE_TYPE_LABELS)
ADDENDUM_TYPES = tuple(t for t in TEMPLATE_TYPES if t.startswith("ADDENDUM_"))


class LeaseTemplate(Base):
    __tablename__ = "lease_templates"
    __table_args__ = (
        UniqueConstraint("name", "version", name="uq_lease_templates_name_version"),
        Index("idx_lease_templates_type", "type"),
        Index("idx_lease_templates_active", "is_active", "is_archived"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # DOCX bytes live in storage under template_file_path
    template_file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    template_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    template_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    variables: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    variable_schema: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {"extracted", "validation"}
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    parent_template_id: Mapped[int | None] = mapped_column(
        ForeignKey("lease_templates.id", ondelete="SET NULL"), nullable=True
    )
    change_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    minnesota_compliant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    compliance_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

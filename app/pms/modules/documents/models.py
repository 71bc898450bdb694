from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base

if TYPE_CHECKING:
    from app.pms.modules.leases.models import Lease
    from app.pms.modules.properties.models import Property
    from app.pms.modules.tenants.models import Tenant

DOCUMENT_TYPES = (
    "LEASE",
    "ADDENDUM",
    "APPLICATION",
    "ID_DOCUMENT",
    "INCOME_VERIFICATION",
    "INSPECTION_REPORT",
    "PHOTO",
    "INVOICE",
    "RECEIPT",
    "NOTICE",
    "CORRESPONDENCE",
    "INSURANCE",
    "LICENSE",
    "OTHER",
)
DOCUMENT_STATUSES = ("DRAFT", "ACTIVE", "ARCHIVED", "DELETED")


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_uploaded_by", "uploaded_by_id"),
        Index("idx_documents_type", "type"),
        Index("idx_documents_lease", "lease_id"),
        Index("idx_documents_tenant", "tenant_id"),
        Index("idx_documents_property", "property_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="OTHER")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # File (bytes live in storage)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False, default="application/octet-stream")
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)

    property_id: Mapped[int | None] = mapped_column(ForeignKey("properties.id", ondelete="SET NULL"), nullable=True)
    tenant_id: Mapped[int | None] = mapped_column(ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)
    lease_id: Mapped[int | None] = mapped_column(ForeignKey("leases.id", ondelete="SET NULL"), nullable=True)
    uploaded_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship("Property")
    tenant: Mapped["Tenant"] = relationship("Tenant")
    lease: Mapped["Lease"] = relationship("Lease")

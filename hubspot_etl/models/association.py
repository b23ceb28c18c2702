"""Association edges between mirrored CRM objects."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, ExtractedMixin


def is_primary_label(label: str | None) -> bool:
    return bool(label) and "primary" in label.lower()


class ContactCompanyAssociation(UUIDMixin, ExtractedMixin, Base):
    __tablename__ = "contact_company_association"
    __table_args__ = (
        UniqueConstraint("contact_hubspot_id", "company_hubspot_id", name="uq_contact_company"),
    )

    contact_hubspot_id: Mapped[str] = mapped_column(String(64), index=True)
    company_hubspot_id: Mapped[str] = mapped_column(String(64), index=True)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contact.id", ondelete="SET NULL"), default=None
    )
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("company.id", ondelete="SET NULL"), default=None
    )
    association_type: Mapped[str | None] = mapped_column(String(200), default=None)
    labels_json: Mapped[str | None] = mapped_column(Text, default=None)
    association_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    association_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    association_source: Mapped[str | None] = mapped_column(String(100), default=None)
    association_source_id: Mapped[str | None] = mapped_column(String(100), default=None)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<ContactCompanyAssociation {self.contact_hubspot_id} -> {self.company_hubspot_id}>"


class ObjectAssociation(UUIDMixin, ExtractedMixin, Base):
    __tablename__ = "object_association"
    __table_args__ = (
        UniqueConstraint(
            "source_object_type",
            "source_object_id",
            "target_object_type",
            "target_object_id",
            name="uq_object_association_key",
        ),
    )

    source_object_type: Mapped[str] = mapped_column(String(50), index=True)
    source_object_id: Mapped[str] = mapped_column(String(64), index=True)
    target_object_type: Mapped[str] = mapped_column(String(50), index=True)
    target_object_id: Mapped[str] = mapped_column(String(64), index=True)
    label: Mapped[str | None] = mapped_column(String(200), default=None)
    labels_json: Mapped[str | None] = mapped_column(Text, default=None)
    type_id: Mapped[int | None] = mapped_column(Integer, default=None)
    category: Mapped[str | None] = mapped_column(String(50), default=None)
    association_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    association_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    association_source: Mapped[str | None] = mapped_column(String(100), default=None)
    association_source_id: Mapped[str | None] = mapped_column(String(100), default=None)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return (
            f"<ObjectAssociation {self.source_object_type}:{self.source_object_id} -> "
            f"{self.target_object_type}:{self.target_object_id}>"
        )

"""Contact model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, HubSpotSyncMixin


class Contact(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "contact"

    full_name: Mapped[str | None] = mapped_column(String(255), default=None)
    email: Mapped[str | None] = mapped_column(String(255), default=None, index=True)
    phone: Mapped[str | None] = mapped_column(String(50), default=None)
    owner: Mapped[str | None] = mapped_column(String(200), default=None)
    company_name: Mapped[str | None] = mapped_column(String(255), default=None)
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    lead_status: Mapped[str | None] = mapped_column(String(100), default=None)
    lifecycle_stage: Mapped[str | None] = mapped_column(String(100), default=None)
    postal_code: Mapped[str | None] = mapped_column(String(20), default=None)
    contact_type: Mapped[str | None] = mapped_column(String(100), default=None)
    inverter_brand: Mapped[str | None] = mapped_column(String(100), default=None)
    last_contacted: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    analytics_source: Mapped[str | None] = mapped_column(String(100), default=None)
    analytics_source_data_1: Mapped[str | None] = mapped_column(String(255), default=None)
    analytics_source_data_2: Mapped[str | None] = mapped_column(String(255), default=None)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.hubspot_id

    def __repr__(self) -> str:
        return f"<Contact {self.hubspot_id} {self.full_name!r}>"

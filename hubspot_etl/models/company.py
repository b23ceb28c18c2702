"""Company model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, HubSpotSyncMixin


class Company(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "company"

    name: Mapped[str | None] = mapped_column(String(255), default=None)
    owner: Mapped[str | None] = mapped_column(String(200), default=None)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    phone: Mapped[str | None] = mapped_column(String(50), default=None)
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    city: Mapped[str | None] = mapped_column(String(100), default=None)
    country: Mapped[str | None] = mapped_column(String(100), default=None)
    cvr: Mapped[str | None] = mapped_column(String(50), default=None)
    postal_code: Mapped[str | None] = mapped_column(String(20), default=None)
    company_type: Mapped[str | None] = mapped_column(String(100), default=None)

    def __repr__(self) -> str:
        return f"<Company {self.hubspot_id} {self.name!r}>"

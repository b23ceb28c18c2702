"""Ticket model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, HubSpotSyncMixin


class Ticket(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "ticket"

    name: Mapped[str | None] = mapped_column(String(255), default=None)
    pipeline: Mapped[str | None] = mapped_column(String(200), default=None)
    status: Mapped[str | None] = mapped_column(String(200), default=None)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    priority: Mapped[str | None] = mapped_column(String(50), default=None)
    owner: Mapped[str | None] = mapped_column(String(200), default=None)
    source: Mapped[str | None] = mapped_column(String(100), default=None)
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<Ticket {self.hubspot_id} {self.name!r}>"

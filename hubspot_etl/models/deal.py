"""Deal model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, HubSpotSyncMixin


class Deal(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "deal"

    name: Mapped[str | None] = mapped_column(String(255), default=None)
    stage: Mapped[str | None] = mapped_column(String(100), default=None)
    pipeline: Mapped[str | None] = mapped_column(String(100), default=None)
    close_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    owner: Mapped[str | None] = mapped_column(String(200), default=None)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), default=None)
    deal_type: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<Deal {self.hubspot_id} {self.name!r}>"

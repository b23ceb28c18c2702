"""Base model classes and mixins for HubSpot mirror models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UUIDMixin:
    """Adds a UUID primary key."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class ExtractedMixin:
    """Adds the extracted_at stamp touched on every upsert."""

    extracted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, index=True
    )


class HubSpotSyncMixin(ExtractedMixin):
    """Adds the HubSpot object id used as the reconciliation key."""

    hubspot_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    record_id: Mapped[str | None] = mapped_column(String(64), default=None, index=True)

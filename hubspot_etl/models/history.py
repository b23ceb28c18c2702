"""Property change history and the derived contact timeline."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, ExtractedMixin


class PropertyHistory(UUIDMixin, ExtractedMixin, Base):
    """One recorded change of a tracked property.

    Rows keep the orientation produced by the history fold: ``new_value``
    holds the predecessor in the fetched list and ``old_value`` holds the
    entry's own value. HubSpot returns history newest-first, so for
    chronological lists the names read inverted.
    """

    __tablename__ = "property_history"
    __table_args__ = (
        UniqueConstraint(
            "object_type", "object_id", "property_name", "change_date", name="uq_property_history_key"
        ),
        Index("ix_property_history_object_date", "object_type", "object_id", "change_date"),
    )

    object_type: Mapped[str] = mapped_column(String(50))
    object_id: Mapped[str] = mapped_column(String(64))
    property_name: Mapped[str] = mapped_column(String(100))
    old_value: Mapped[str | None] = mapped_column(Text, default=None)
    new_value: Mapped[str | None] = mapped_column(Text, default=None)
    change_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    source: Mapped[str | None] = mapped_column(String(100), default=None)
    source_id: Mapped[str | None] = mapped_column(String(255), default=None)

    def __repr__(self) -> str:
        return f"<PropertyHistory {self.object_type}:{self.object_id} {self.property_name}>"


class ContactActivityTimeline(UUIDMixin, ExtractedMixin, Base):
    __tablename__ = "contact_activity_timeline"
    __table_args__ = (
        UniqueConstraint(
            "contact_hubspot_id",
            "event_type",
            "event_date",
            "related_object_id",
            name="uq_timeline_event_key",
        ),
        Index("ix_timeline_contact_date", "contact_hubspot_id", "event_date"),
    )

    contact_hubspot_id: Mapped[str] = mapped_column(String(64))
    event_type: Mapped[str] = mapped_column(String(50), index=True)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    related_object_type: Mapped[str | None] = mapped_column(String(50), default=None)
    related_object_id: Mapped[str | None] = mapped_column(String(64), default=None)
    related_object_name: Mapped[str | None] = mapped_column(String(500), default=None)
    actor_id: Mapped[str | None] = mapped_column(String(100), default=None)
    actor_name: Mapped[str | None] = mapped_column(String(200), default=None)
    metadata_json: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<ContactActivityTimeline {self.contact_hubspot_id} {self.event_type}>"

"""Flat engagement mirrors: communications, emails, notes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, HubSpotSyncMixin


class Communication(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "communication"

    channel_type: Mapped[str | None] = mapped_column(String(50), default=None)
    body: Mapped[str | None] = mapped_column(Text, default=None)
    associated_contact_id: Mapped[str | None] = mapped_column(String(64), default=None, index=True)
    associated_contact_name: Mapped[str | None] = mapped_column(String(255), default=None)
    associated_contact_email: Mapped[str | None] = mapped_column(String(255), default=None)
    assigned_to: Mapped[str | None] = mapped_column(String(200), default=None)
    activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<Communication {self.hubspot_id} {self.channel_type!r}>"


class Email(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "email"

    subject: Mapped[str | None] = mapped_column(String(500), default=None)
    activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    associated_contact_id: Mapped[str | None] = mapped_column(String(64), default=None, index=True)
    associated_contact_name: Mapped[str | None] = mapped_column(String(255), default=None)
    associated_contact_email: Mapped[str | None] = mapped_column(String(255), default=None)
    assigned_to: Mapped[str | None] = mapped_column(String(200), default=None)
    body: Mapped[str | None] = mapped_column(Text, default=None)
    send_status: Mapped[str | None] = mapped_column(String(50), default=None)

    def __repr__(self) -> str:
        return f"<Email {self.hubspot_id} {self.subject!r}>"


class Note(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "note"

    body_preview: Mapped[str | None] = mapped_column(Text, default=None)
    assigned_to: Mapped[str | None] = mapped_column(String(200), default=None)
    activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<Note {self.hubspot_id}>"

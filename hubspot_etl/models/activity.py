"""Activity model and its per-type detail tables.

An Activity carries exactly one optional detail row whose table matches
``activity_type``. The pairing is enforced in :meth:`Activity.attach_detail`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import ClassVar

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, ExtractedMixin, HubSpotSyncMixin

ACTIVITY_TYPES = ("CALL", "EMAIL", "MEETING", "TASK", "NOTE", "SMS")


class Activity(UUIDMixin, HubSpotSyncMixin, Base):
    __tablename__ = "activity"

    activity_type: Mapped[str] = mapped_column(String(20), index=True)
    subject: Mapped[str | None] = mapped_column(String(500), default=None)
    body: Mapped[str | None] = mapped_column(Text, default=None)
    owner: Mapped[str | None] = mapped_column(String(200), default=None)
    source_object_type: Mapped[str | None] = mapped_column(String(50), default=None)
    source_object_id: Mapped[str | None] = mapped_column(String(64), default=None, index=True)
    source_object_name: Mapped[str | None] = mapped_column(String(255), default=None)
    source_object_email: Mapped[str | None] = mapped_column(String(255), default=None)
    activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    status: Mapped[str | None] = mapped_column(String(20), default=None)

    call_detail: Mapped["CallDetail | None"] = relationship(
        back_populates="activity", uselist=False, cascade="all, delete-orphan"
    )
    email_detail: Mapped["EmailDetail | None"] = relationship(
        back_populates="activity", uselist=False, cascade="all, delete-orphan"
    )
    meeting_detail: Mapped["MeetingDetail | None"] = relationship(
        back_populates="activity", uselist=False, cascade="all, delete-orphan"
    )
    task_detail: Mapped["TaskDetail | None"] = relationship(
        back_populates="activity", uselist=False, cascade="all, delete-orphan"
    )
    note_detail: Mapped["NoteDetail | None"] = relationship(
        back_populates="activity", uselist=False, cascade="all, delete-orphan"
    )
    sms_detail: Mapped["SmsDetail | None"] = relationship(
        back_populates="activity", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def detail(self) -> "ActivityDetail | None":
        """The populated detail variant, if any."""
        for attr in DETAIL_ATTRS.values():
            value = getattr(self, attr)
            if value is not None:
                return value
        return None

    def attach_detail(self, detail: "ActivityDetail") -> None:
        """Attach ``detail`` as this activity's single variant.

        Raises ValueError when the variant does not match ``activity_type``
        or a different variant is already populated.
        """
        attr = DETAIL_ATTRS.get(detail.activity_type)
        if attr is None or detail.activity_type != self.activity_type:
            raise ValueError(
                f"{type(detail).__name__} cannot be attached to a {self.activity_type} activity"
            )
        current = self.detail
        if current is not None and current is not detail:
            raise ValueError(f"Activity {self.hubspot_id} already has a {type(current).__name__}")
        setattr(self, attr, detail)

    def __repr__(self) -> str:
        return f"<Activity {self.activity_type} {self.hubspot_id}>"


class ActivityDetail(UUIDMixin, ExtractedMixin):
    """Columns shared by every activity detail table."""

    activity_type: ClassVar[str] = ""

    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), unique=True
    )
    raw_properties_json: Mapped[str] = mapped_column(Text, default="{}")


class CallDetail(ActivityDetail, Base):
    __tablename__ = "call_detail"
    activity_type = "CALL"

    direction: Mapped[str | None] = mapped_column(String(20), default=None)
    status: Mapped[str | None] = mapped_column(String(50), default=None)
    call_title: Mapped[str | None] = mapped_column(String(500), default=None)
    call_direction: Mapped[str | None] = mapped_column(String(20), default=None)
    created_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    last_modified_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    activity: Mapped["Activity"] = relationship(back_populates="call_detail")


class EmailDetail(ActivityDetail, Base):
    __tablename__ = "email_detail"
    activity_type = "EMAIL"

    status: Mapped[str | None] = mapped_column(String(50), default=None)
    text_body: Mapped[str | None] = mapped_column(Text, default=None)
    html_body: Mapped[str | None] = mapped_column(Text, default=None)
    created_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    click_rate: Mapped[str | None] = mapped_column(String(20), default=None)
    direction: Mapped[str | None] = mapped_column(String(30), default=None)
    open_rate: Mapped[str | None] = mapped_column(String(20), default=None)
    reply_rate: Mapped[str | None] = mapped_column(String(20), default=None)
    last_modified_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    num_clicks: Mapped[int | None] = mapped_column(Integer, default=None)
    num_opens: Mapped[int | None] = mapped_column(Integer, default=None)
    updated_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)

    activity: Mapped["Activity"] = relationship(back_populates="email_detail")


class MeetingDetail(ActivityDetail, Base):
    __tablename__ = "meeting_detail"
    activity_type = "MEETING"

    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    contact_first_outreach_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    team_id: Mapped[str | None] = mapped_column(String(64), default=None)
    attendee_owner_ids: Mapped[str | None] = mapped_column(String(500), default=None)
    last_modified_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    location_type: Mapped[str | None] = mapped_column(String(50), default=None)
    location: Mapped[str | None] = mapped_column(String(500), default=None)
    meeting_name: Mapped[str | None] = mapped_column(String(500), default=None)
    meeting_source: Mapped[str | None] = mapped_column(String(100), default=None)
    time_to_book_from_first_contact: Mapped[str | None] = mapped_column(String(50), default=None)

    activity: Mapped["Activity"] = relationship(back_populates="meeting_detail")


class TaskDetail(ActivityDetail, Base):
    __tablename__ = "task_detail"
    activity_type = "TASK"

    priority: Mapped[str | None] = mapped_column(String(20), default=None)
    status: Mapped[str | None] = mapped_column(String(50), default=None)
    body: Mapped[str | None] = mapped_column(Text, default=None)
    created_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    is_overdue: Mapped[bool | None] = mapped_column(Boolean, default=None)
    last_modified_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    task_type: Mapped[str | None] = mapped_column(String(50), default=None)
    updated_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)

    activity: Mapped["Activity"] = relationship(back_populates="task_detail")


class NoteDetail(ActivityDetail, Base):
    __tablename__ = "note_detail"
    activity_type = "NOTE"

    created_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    last_modified_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    activity: Mapped["Activity"] = relationship(back_populates="note_detail")


class SmsDetail(ActivityDetail, Base):
    __tablename__ = "sms_detail"
    activity_type = "SMS"

    direction: Mapped[str | None] = mapped_column(String(30), default=None)
    status: Mapped[str | None] = mapped_column(String(50), default=None)
    channel_account_name: Mapped[str | None] = mapped_column(String(200), default=None)
    channel_name: Mapped[str | None] = mapped_column(String(200), default=None)
    message_body: Mapped[str | None] = mapped_column(Text, default=None)
    activity_assigned_to: Mapped[str | None] = mapped_column(String(200), default=None)
    activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    channel_type: Mapped[str | None] = mapped_column(String(50), default=None)
    communication_body: Mapped[str | None] = mapped_column(Text, default=None)
    conversation_first_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    team_id: Mapped[str | None] = mapped_column(String(64), default=None)
    logged_from: Mapped[str | None] = mapped_column(String(100), default=None)
    object_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    object_last_modified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    owner_assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    record_source: Mapped[str | None] = mapped_column(String(100), default=None)
    record_source_detail_1: Mapped[str | None] = mapped_column(String(255), default=None)
    updated_by_user_id: Mapped[str | None] = mapped_column(String(64), default=None)

    activity: Mapped["Activity"] = relationship(back_populates="sms_detail")


DETAIL_ATTRS: dict[str, str] = {
    "CALL": "call_detail",
    "EMAIL": "email_detail",
    "MEETING": "meeting_detail",
    "TASK": "task_detail",
    "NOTE": "note_detail",
    "SMS": "sms_detail",
}


class ActivityAssociation(UUIDMixin, ExtractedMixin, Base):
    __tablename__ = "activity_association"
    __table_args__ = (
        UniqueConstraint(
            "activity_hubspot_id",
            "associated_object_type",
            "associated_object_id",
            name="uq_activity_association_key",
        ),
    )

    activity_hubspot_id: Mapped[str] = mapped_column(String(64), index=True)
    activity_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), default=None, index=True
    )
    associated_object_type: Mapped[str] = mapped_column(String(50))
    associated_object_id: Mapped[str] = mapped_column(String(64), index=True)
    label: Mapped[str | None] = mapped_column(String(200), default=None)
    type_id: Mapped[int | None] = mapped_column(Integer, default=None)
    category: Mapped[str | None] = mapped_column(String(50), default=None)

    def __repr__(self) -> str:
        return (
            f"<ActivityAssociation {self.activity_hubspot_id} -> "
            f"{self.associated_object_type}:{self.associated_object_id}>"
        )

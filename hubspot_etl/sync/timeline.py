"""Per-contact activity timeline derived from stored activities, tickets and history."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import Activity, ActivityAssociation
from ..models.association import ObjectAssociation
from ..models.history import ContactActivityTimeline, PropertyHistory
from ..models.ticket import Ticket
from ..schemas.sync import SyncResult
from .context import RunContext
from .properties import as_utc, utcnow
from .upsert import ACTIVITY_DETAIL_LOADS, UpsertSpec, sparse_patch, upsert_entities

logger = logging.getLogger(__name__)

_RECEIVED_DIRECTIONS = {"INCOMING", "RECEIVED", "INBOUND", "IN"}
_NOTE_PREVIEW_CHARS = 100

NO_TIMELINE_EVENTS = """\
No timeline events were extracted. This might indicate:
  - Activities table is empty
  - ActivityAssociations table is empty or has no contact associations
  - No contacts exist in the database
  - PropertyHistory table is empty (for lifecycle/lead status changes)"""


def _metadata(values: dict[str, Any]) -> str | None:
    cleaned = {k: v for k, v in values.items() if v is not None and v != ""}
    return json.dumps(cleaned, ensure_ascii=False, default=str) if cleaned else None


def _event(
    contact_id: str,
    event_type: str,
    event_date: datetime,
    description: str,
    related_type: str | None,
    related_id: str | None,
    related_name: str | None = None,
    actor_id: str | None = None,
    actor_name: str | None = None,
    metadata: str | None = None,
    *,
    dated_by_run: bool = False,
) -> ContactActivityTimeline:
    row = ContactActivityTimeline(
        contact_hubspot_id=contact_id,
        event_type=event_type,
        event_date=as_utc(event_date),
        description=description,
        related_object_type=related_type,
        related_object_id=related_id,
        related_object_name=related_name,
        actor_id=actor_id,
        actor_name=actor_name,
        metadata_json=metadata,
    )
    # Set when no source date exists and the run time stands in for it
    row.dated_by_run = dated_by_run
    return row


def _dated_by_run(row: ContactActivityTimeline) -> bool:
    return getattr(row, "dated_by_run", False)


async def _find_event(db: AsyncSession, row: ContactActivityTimeline) -> ContactActivityTimeline | None:
    related = (
        ContactActivityTimeline.related_object_id.is_(None)
        if row.related_object_id is None
        else ContactActivityTimeline.related_object_id == row.related_object_id
    )
    stmt = select(ContactActivityTimeline).where(
        ContactActivityTimeline.contact_hubspot_id == row.contact_hubspot_id,
        ContactActivityTimeline.event_type == row.event_type,
        ContactActivityTimeline.event_date == row.event_date,
        related,
    )
    found = (await db.execute(stmt)).scalar_one_or_none()
    if found is not None or not _dated_by_run(row):
        return found

    # A run-dated event matches its earlier copy whatever date that copy got
    stmt = (
        select(ContactActivityTimeline)
        .where(
            ContactActivityTimeline.contact_hubspot_id == row.contact_hubspot_id,
            ContactActivityTimeline.event_type == row.event_type,
            related,
        )
        .order_by(ContactActivityTimeline.event_date)
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


def _merge_event(existing: ContactActivityTimeline, incoming: ContactActivityTimeline) -> None:
    sparse_patch(existing, incoming, skip=("event_date",) if _dated_by_run(incoming) else ())


TIMELINE_SPEC: UpsertSpec[ContactActivityTimeline] = UpsertSpec(
    "Contact timeline",
    lambda r: (r.contact_hubspot_id, r.event_type, r.event_date, r.related_object_id),
    _find_event,
    _merge_event,
)


class TimelineBuilder:
    """Synthesizes timeline events; each ``*_events`` method covers one event source."""

    def __init__(self, db: AsyncSession, ctx: RunContext | None = None, now: datetime | None = None):
        self.db = db
        self.ctx = ctx or RunContext()
        self.now = now or utcnow()

    def _actor(self, owner: str | None) -> tuple[str | None, str | None]:
        return owner, self.ctx.resolve_owner(owner)

    def _event_date(self, activity: Activity) -> tuple[datetime, bool]:
        """The activity date, else the detail creation date, else the run time (flagged)."""
        detail = activity.detail
        stable = activity.activity_date or (
            getattr(detail, "created_date", None) or getattr(detail, "object_created_at", None)
        )
        if stable is not None:
            return stable, False
        return self.now, True

    async def _activities(self, *, email: bool) -> list[Activity]:
        kind = Activity.activity_type == "EMAIL" if email else Activity.activity_type != "EMAIL"
        stmt = select(Activity).where(kind).options(*ACTIVITY_DETAIL_LOADS)
        return list((await self.db.execute(stmt)).scalars().all())

    async def _contacts_by_activity(self, activities: list[Activity]) -> dict[str, list[str]]:
        ids = [a.hubspot_id for a in activities]
        contacts: dict[str, list[str]] = defaultdict(list)
        if ids:
            stmt = select(ActivityAssociation).where(
                ActivityAssociation.activity_hubspot_id.in_(ids),
                ActivityAssociation.associated_object_type == "contact",
            )
            for assoc in (await self.db.execute(stmt)).scalars().all():
                if assoc.associated_object_id not in contacts[assoc.activity_hubspot_id]:
                    contacts[assoc.activity_hubspot_id].append(assoc.associated_object_id)

        for activity in activities:
            if (
                not contacts.get(activity.hubspot_id)
                and activity.source_object_id
                and (activity.source_object_type or "").lower() == "contact"
            ):
                contacts[activity.hubspot_id] = [activity.source_object_id]
        return contacts

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------

    async def email_events(self) -> list[ContactActivityTimeline]:
        activities = await self._activities(email=True)
        contacts = await self._contacts_by_activity(activities)
        logger.info("Found %d email activities", len(activities))

        events: list[ContactActivityTimeline] = []
        for activity in activities:
            contact_ids = contacts.get(activity.hubspot_id)
            if not contact_ids:
                logger.debug("Email activity %s has no contact associations, skipping", activity.hubspot_id)
                continue
            for contact_id in contact_ids:
                events.extend(self._email_events_for(contact_id, activity))
        return events

    def _email_events_for(self, contact_id: str, activity: Activity) -> list[ContactActivityTimeline]:
        detail = activity.email_detail
        event_date, dated_by_run = self._event_date(activity)
        subject = activity.subject
        direction = detail.direction if detail else None
        received = (direction or "").upper() in _RECEIVED_DIRECTIONS

        description = "Email received from contact" if received else "Email sent to contact"
        if subject:
            description += f": {subject}"
        if activity.owner:
            description += f" by {activity.owner}"

        actor_id, actor_name = self._actor(activity.owner)
        events = [
            _event(
                contact_id,
                "email_received" if received else "email_sent",
                event_date,
                description,
                "email",
                activity.hubspot_id,
                subject,
                actor_id,
                actor_name,
                _metadata({"direction": direction, "status": detail.status if detail else None}),
                dated_by_run=dated_by_run,
            )
        ]
        if detail is None:
            return events

        if detail.num_opens and detail.num_opens > 0:
            text = f"Email opened {detail.num_opens} time(s)"
            if subject:
                text += f": {subject}"
            if detail.open_rate:
                text += f" (Open rate: {detail.open_rate})"
            events.append(
                _event(
                    contact_id, "email_opened", event_date, text, "email", activity.hubspot_id, subject,
                    metadata=json.dumps({"openCount": detail.num_opens, "openRate": detail.open_rate}),
                    dated_by_run=dated_by_run,
                )
            )

        if detail.num_clicks and detail.num_clicks > 0:
            text = f"Email clicked {detail.num_clicks} time(s)"
            if subject:
                text += f": {subject}"
            if detail.click_rate:
                text += f" (Click rate: {detail.click_rate})"
            events.append(
                _event(
                    contact_id, "email_clicked", event_date, text, "email", activity.hubspot_id, subject,
                    metadata=json.dumps({"clickCount": detail.num_clicks, "clickRate": detail.click_rate}),
                    dated_by_run=dated_by_run,
                )
            )
        return events

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    async def _contacts_by_ticket(self) -> dict[str, list[str]]:
        by_ticket: dict[str, list[str]] = defaultdict(list)
        stmt = select(ObjectAssociation).where(
            ObjectAssociation.source_object_type.in_(("ticket", "contact")),
            ObjectAssociation.target_object_type.in_(("ticket", "contact")),
        )
        for assoc in (await self.db.execute(stmt)).scalars().all():
            if assoc.source_object_type == "ticket" and assoc.target_object_type == "contact":
                ticket_id, contact_id = assoc.source_object_id, assoc.target_object_id
            elif assoc.source_object_type == "contact" and assoc.target_object_type == "ticket":
                ticket_id, contact_id = assoc.target_object_id, assoc.source_object_id
            else:
                continue
            if contact_id not in by_ticket[ticket_id]:
                by_ticket[ticket_id].append(contact_id)
        return by_ticket

    async def ticket_events(self) -> list[ContactActivityTimeline]:
        by_ticket = await self._contacts_by_ticket()
        if not by_ticket:
            return []

        tickets = (await self.db.execute(select(Ticket).where(Ticket.hubspot_id.in_(list(by_ticket))))).scalars().all()
        history_stmt = (
            select(PropertyHistory)
            .where(
                PropertyHistory.object_type == "ticket",
                PropertyHistory.property_name == "hs_pipeline_stage",
                PropertyHistory.object_id.in_(list(by_ticket)),
            )
            .order_by(PropertyHistory.change_date)
        )
        changes: dict[str, list[PropertyHistory]] = defaultdict(list)
        for change in (await self.db.execute(history_stmt)).scalars().all():
            changes[change.object_id].append(change)

        events: list[ContactActivityTimeline] = []
        for ticket in tickets:
            for contact_id in by_ticket.get(ticket.hubspot_id, []):
                description = "Ticket created"
                if ticket.name:
                    description += f": {ticket.name}"
                if ticket.status:
                    description += f" (Status: {ticket.status})"
                if ticket.owner:
                    description += f" - Assigned to {ticket.owner}"
                actor_id, actor_name = self._actor(ticket.owner)
                events.append(
                    _event(
                        contact_id,
                        "ticket_created",
                        ticket.created_at or self.now,
                        description,
                        "ticket",
                        ticket.hubspot_id,
                        ticket.name,
                        actor_id,
                        actor_name,
                        dated_by_run=ticket.created_at is None,
                    )
                )

                for change in changes.get(ticket.hubspot_id, []):
                    text = "Ticket status changed"
                    if change.old_value:
                        text += f" from {change.old_value}"
                    if change.new_value:
                        text += f" to {change.new_value}"
                    if ticket.name:
                        text += f": {ticket.name}"
                    events.append(
                        _event(
                            contact_id,
                            "ticket_status_changed",
                            change.change_date,
                            text,
                            "ticket",
                            ticket.hubspot_id,
                            ticket.name,
                            metadata=json.dumps({"oldStatus": change.old_value, "newStatus": change.new_value}),
                        )
                    )
        return events

    # ------------------------------------------------------------------
    # Contact property changes
    # ------------------------------------------------------------------

    async def contact_change_events(self, property_name: str, event_type: str, label: str) -> list[ContactActivityTimeline]:
        stmt = select(PropertyHistory).where(
            PropertyHistory.object_type == "contact",
            PropertyHistory.property_name == property_name,
        )
        events: list[ContactActivityTimeline] = []
        for change in (await self.db.execute(stmt)).scalars().all():
            description = f"{label} changed"
            if change.old_value:
                description += f" from {change.old_value}"
            if change.new_value:
                description += f" to {change.new_value}"
            events.append(
                _event(
                    change.object_id,
                    event_type,
                    change.change_date,
                    description,
                    "contact",
                    change.object_id,
                    actor_id=change.source,
                    metadata=json.dumps({"oldValue": change.old_value, "newValue": change.new_value}),
                )
            )
        return events

    # ------------------------------------------------------------------
    # Calls, meetings, tasks, notes, SMS
    # ------------------------------------------------------------------

    async def activity_events(self) -> list[ContactActivityTimeline]:
        activities = await self._activities(email=False)
        contacts = await self._contacts_by_activity(activities)

        events: list[ContactActivityTimeline] = []
        for activity in activities:
            for contact_id in contacts.get(activity.hubspot_id, []):
                events.append(self._activity_event(contact_id, activity))
        return events

    def _activity_event(self, contact_id: str, activity: Activity) -> ContactActivityTimeline:
        kind = (activity.activity_type or "").upper()
        event_date, dated_by_run = self._event_date(activity)
        owner_suffix = f" by {activity.owner}" if activity.owner else ""
        actor_id, actor_name = self._actor(activity.owner)

        if kind == "CALL":
            detail = activity.call_detail
            title = (detail.call_title if detail else None) or activity.subject
            description = "Call" + (f": {title}" if title else "")
            if detail and detail.call_direction:
                description += f" ({detail.call_direction})"
            if detail and detail.status:
                description += f" - Status: {detail.status}"
            metadata = _metadata(
                {
                    "direction": detail.direction if detail else None,
                    "status": detail.status if detail else None,
                    "callDirection": detail.call_direction if detail else None,
                }
            )
            return _event(
                contact_id, "call_created", event_date, description + owner_suffix, "call",
                activity.hubspot_id, activity.subject or (detail.call_title if detail else None),
                actor_id, actor_name, metadata, dated_by_run=dated_by_run,
            )

        if kind == "MEETING":
            detail = activity.meeting_detail
            name = (detail.meeting_name if detail else None) or activity.subject
            description = "Meeting" + (f": {name}" if name else "")
            if activity.status:
                description += f" - Status: {activity.status}"
            start = as_utc(detail.start_time) if detail else None
            if start:
                description += f" (Start: {start:%Y-%m-%d %H:%M})"
            if detail and detail.location:
                description += f" - Location: {detail.location}"
            metadata = _metadata(
                {
                    "startTime": start.isoformat() if start else None,
                    "endTime": as_utc(detail.end_time).isoformat() if detail and detail.end_time else None,
                    "locationType": detail.location_type if detail else None,
                    "location": detail.location if detail else None,
                    "status": activity.status,
                }
            )
            return _event(
                contact_id, "meeting_created", event_date, description + owner_suffix, "meeting",
                activity.hubspot_id, activity.subject or (detail.meeting_name if detail else None),
                actor_id, actor_name, metadata, dated_by_run=dated_by_run,
            )

        if kind == "TASK":
            detail = activity.task_detail
            description = "Task" + (f": {activity.subject}" if activity.subject else "")
            if detail and detail.task_type:
                description += f" (Type: {detail.task_type})"
            if detail and detail.status:
                description += f" - Status: {detail.status}"
            if detail and detail.priority:
                description += f" - Priority: {detail.priority}"
            metadata = _metadata(
                {
                    "taskType": detail.task_type if detail else None,
                    "status": detail.status if detail else None,
                    "priority": detail.priority if detail else None,
                    "activityStatus": activity.status,
                }
            )
            return _event(
                contact_id, "task_created", event_date, description + owner_suffix, "task",
                activity.hubspot_id, activity.subject, actor_id, actor_name, metadata,
                dated_by_run=dated_by_run,
            )

        if kind == "NOTE":
            description = "Note"
            if activity.subject:
                description += f": {activity.subject}"
            elif activity.body:
                preview = activity.body
                if len(preview) > _NOTE_PREVIEW_CHARS:
                    preview = preview[:_NOTE_PREVIEW_CHARS] + "..."
                description += f": {preview}"
            return _event(
                contact_id, "note_created", event_date, description + owner_suffix, "note",
                activity.hubspot_id, activity.subject, actor_id, actor_name,
                _metadata({"status": activity.status}), dated_by_run=dated_by_run,
            )

        related_type = kind.lower() or "activity"
        description = f"{kind} activity" + (f": {activity.subject}" if activity.subject else "")
        return _event(
            contact_id, f"{related_type}_created", event_date, description + owner_suffix, related_type,
            activity.hubspot_id, activity.subject, actor_id, actor_name,
            _metadata({"status": activity.status}), dated_by_run=dated_by_run,
        )


async def derive_contact_timeline(
    db: AsyncSession,
    ctx: RunContext | None = None,
    *,
    batch_size: int = 500,
    now: datetime | None = None,
) -> SyncResult:
    """Rebuild timeline events from stored data and upsert them.

    Each event source is processed independently; a failing source is logged
    and the others still contribute.
    """
    builder = TimelineBuilder(db, ctx, now)
    result = SyncResult()
    events: list[ContactActivityTimeline] = []

    sources = (
        ("email activities", builder.email_events),
        ("ticket activities", builder.ticket_events),
        ("lifecycle changes", lambda: builder.contact_change_events("lifecyclestage", "lifecycle_changed", "Lifecycle stage")),
        ("lead status changes", lambda: builder.contact_change_events("hs_lead_status", "lead_status_changed", "Lead status")),
        ("other activities", builder.activity_events),
    )
    for name, produce in sources:
        logger.info("Processing %s for contacts...", name)
        try:
            events.extend(await produce())
        except Exception as e:
            logger.error("Error processing %s: %s", name, e, exc_info=True)
            result.errors.append(f"timeline {name} error: {e}")

    logger.info("Total timeline events extracted: %d", len(events))
    if not events:
        logger.warning(NO_TIMELINE_EVENTS)
        return result

    return result.merge(await upsert_entities(db, events, TIMELINE_SPEC, batch_size=batch_size, now=now))

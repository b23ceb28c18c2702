"""Map raw engagement records (calls, emails, meetings, ...) to Activity rows."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..api.objects import singular
from ..models.activity import (
    ACTIVITY_TYPES,
    DETAIL_ATTRS,
    Activity,
    ActivityAssociation,
    ActivityDetail,
    CallDetail,
    EmailDetail,
    MeetingDetail,
    NoteDetail,
    SmsDetail,
    TaskDetail,
)
from .context import RunContext
from .field_mapper import MalformedPayload, UnsupportedSubtype, record_id_of, require_id
from .properties import (
    first_str,
    get_bool,
    get_datetime,
    get_int,
    get_properties,
    get_str,
    strip_html,
    to_str,
)
from .status import determine_activity_status

# Object type (as used by the objects API) for each activity type.
ACTIVITY_OBJECT_TYPES: dict[str, str] = {
    "CALL": "calls",
    "EMAIL": "emails",
    "MEETING": "meetings",
    "TASK": "tasks",
    "NOTE": "notes",
    "SMS": "sms",
}

_PREFERRED_SOURCES = ("contacts", "deals", "tickets", "companies")


@dataclass
class AssociationRef:
    object_type: str
    object_id: str
    label: str | None = None
    type_id: int | None = None
    category: str | None = None


def _label_from_entries(entries: list[Any]) -> tuple[str | None, int | None, str | None]:
    label = type_id = category = None
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        value = entry.get("label")
        label = value if isinstance(value, str) else None
        raw_type_id = entry.get("associationTypeId", entry.get("typeId"))
        if isinstance(raw_type_id, int) and not isinstance(raw_type_id, bool):
            type_id = raw_type_id
        if isinstance(entry.get("category"), str):
            category = entry["category"]
        if label and label.strip():
            break
    return (label if label and label.strip() else None), type_id, category


def extract_all_associations(record: Any) -> list[AssociationRef]:
    """Every related object embedded under ``associations``, with singular type names."""
    refs: list[AssociationRef] = []
    associations = record.get("associations") if isinstance(record, dict) else None
    if not isinstance(associations, dict):
        return refs

    for group, block in associations.items():
        if not isinstance(block, dict):
            continue
        results = block.get("results")
        if not isinstance(results, list):
            continue
        object_type = singular(group)
        for result in results:
            if not isinstance(result, dict):
                continue
            object_id = to_str(result.get("id"))
            if not object_id:
                continue

            label = type_id = category = None
            if isinstance(result.get("associationTypes"), list):
                label, type_id, category = _label_from_entries(result["associationTypes"])
            elif isinstance(result.get("types"), list):
                label, type_id, category = _label_from_entries(result["types"])
            elif isinstance(result.get("type"), str):
                label = result["type"] or None

            refs.append(AssociationRef(object_type, object_id, label, type_id, category))
    return refs


def _first_result_id(block: Any) -> str | None:
    if not isinstance(block, dict):
        return None
    results = block.get("results")
    if not isinstance(results, list) or not results:
        return None
    first = results[0]
    return to_str(first.get("id")) if isinstance(first, dict) else None


def determine_association(record: Any) -> tuple[str | None, str | None]:
    """Pick the primary related object: contacts, then deals, tickets, companies, then any."""
    associations = record.get("associations") if isinstance(record, dict) else None
    if not isinstance(associations, dict):
        return None, None

    for group in _PREFERRED_SOURCES:
        related = _first_result_id(associations.get(group))
        if related:
            return singular(group), related

    for group, block in associations.items():
        related = _first_result_id(block)
        if related:
            return singular(group), related
    return None, None


def activity_associations(activity: Activity, refs: list[AssociationRef]) -> list[ActivityAssociation]:
    return [
        ActivityAssociation(
            activity_hubspot_id=activity.hubspot_id,
            associated_object_type=ref.object_type,
            associated_object_id=ref.object_id,
            label=ref.label,
            type_id=ref.type_id,
            category=ref.category,
        )
        for ref in refs
    ]


def _core_fields(kind: str, props: dict[str, Any]) -> tuple[str | None, str | None, datetime | None]:
    if kind == "CALL":
        return (
            get_str(props, "hs_call_title"),
            strip_html(get_str(props, "hs_call_body")),
            get_datetime(props, "hs_timestamp"),
        )
    if kind == "EMAIL":
        return (
            get_str(props, "hs_email_subject"),
            strip_html(first_str(props, "hs_email_text", "hs_email_html")),
            get_datetime(props, "hs_timestamp"),
        )
    if kind == "MEETING":
        return (
            get_str(props, "hs_meeting_title"),
            strip_html(get_str(props, "hs_meeting_body")),
            get_datetime(props, "hs_meeting_start_time", "hs_timestamp"),
        )
    if kind == "TASK":
        return (
            get_str(props, "hs_task_subject"),
            strip_html(get_str(props, "hs_task_body")),
            get_datetime(props, "hs_timestamp"),
        )
    if kind == "NOTE":
        return None, strip_html(get_str(props, "hs_note_body")), get_datetime(props, "hs_timestamp")
    # SMS
    return (
        get_str(props, "hs_sms_title"),
        strip_html(first_str(props, "hs_sms_body", "hs_sms_text")),
        get_datetime(props, "hs_timestamp"),
    )


def build_detail(kind: str, props: dict[str, Any], subject: str | None, ctx: RunContext) -> ActivityDetail:
    """Build the per-type detail row for ``kind``."""
    raw = json.dumps(props, separators=(",", ":"), ensure_ascii=False, default=str)

    if kind == "CALL":
        direction = get_str(props, "hs_call_direction")
        return CallDetail(
            direction=direction,
            status=get_str(props, "hs_call_status"),
            call_title=get_str(props, "hs_call_title"),
            call_direction=direction,
            created_date=get_datetime(props, "hs_createdate"),
            created_by_user_id=get_str(props, "hs_created_by_user_id"),
            last_modified_date=get_datetime(props, "hs_lastmodifieddate"),
            raw_properties_json=raw,
        )
    if kind == "EMAIL":
        return EmailDetail(
            status=get_str(props, "hs_email_status"),
            text_body=get_str(props, "hs_email_text"),
            html_body=get_str(props, "hs_email_html"),
            created_date=get_datetime(props, "hs_createdate"),
            created_by_user_id=get_str(props, "hs_created_by_user_id"),
            click_rate=get_str(props, "hs_email_click_rate"),
            direction=get_str(props, "hs_email_direction"),
            open_rate=get_str(props, "hs_email_open_rate"),
            reply_rate=get_str(props, "hs_email_reply_rate"),
            last_modified_date=get_datetime(props, "hs_lastmodifieddate"),
            num_clicks=get_int(props, "hs_num_email_clicks"),
            num_opens=get_int(props, "hs_num_email_opens"),
            updated_by_user_id=get_str(props, "hs_updated_by_user_id"),
            raw_properties_json=raw,
        )
    if kind == "MEETING":
        return MeetingDetail(
            start_time=get_datetime(props, "hs_meeting_start_time"),
            end_time=get_datetime(props, "hs_meeting_end_time"),
            contact_first_outreach_date=get_datetime(props, "hs_contact_first_outreach_date"),
            created_date=get_datetime(props, "hs_createdate"),
            created_by_user_id=get_str(props, "hs_created_by_user_id"),
            team_id=get_str(props, "hubspot_team_id"),
            attendee_owner_ids=get_str(props, "hs_attendee_owner_ids"),
            last_modified_date=get_datetime(props, "hs_lastmodifieddate"),
            location_type=get_str(props, "hs_meeting_location_type"),
            location=get_str(props, "hs_meeting_location"),
            meeting_name=subject,
            meeting_source=get_str(props, "hs_meeting_source"),
            time_to_book_from_first_contact=get_str(props, "hs_time_to_book_meeting_from_first_contact"),
            raw_properties_json=raw,
        )
    if kind == "TASK":
        return TaskDetail(
            priority=get_str(props, "hs_task_priority"),
            status=get_str(props, "hs_task_status"),
            body=get_str(props, "hs_task_body"),
            created_date=get_datetime(props, "hs_createdate"),
            is_overdue=get_bool(props, "hs_task_is_overdue"),
            last_modified_date=get_datetime(props, "hs_lastmodifieddate"),
            task_type=get_str(props, "hs_task_type"),
            updated_by_user_id=get_str(props, "hs_updated_by_user_id"),
            raw_properties_json=raw,
        )
    if kind == "NOTE":
        return NoteDetail(
            created_date=get_datetime(props, "hs_createdate"),
            created_by_user_id=get_str(props, "hs_created_by_user_id"),
            last_modified_date=get_datetime(props, "hs_lastmodifieddate"),
            raw_properties_json=raw,
        )
    return SmsDetail(
        direction=first_str(props, "hs_sms_direction", "hs_sms_message_direction"),
        status=first_str(props, "hs_sms_status", "hs_sms_message_status"),
        channel_account_name=get_str(props, "hs_sms_channel_account_name"),
        channel_name=get_str(props, "hs_sms_channel_name"),
        message_body=first_str(props, "hs_sms_message_body", "hs_sms_body", "hs_sms_text"),
        activity_assigned_to=ctx.resolve_owner_override(get_str(props, "hs_activity_assigned_to")),
        activity_date=get_datetime(props, "hs_activity_date"),
        channel_type=get_str(props, "hs_sms_channel_type"),
        communication_body=get_str(props, "hs_sms_message_body"),
        conversation_first_message_at=get_datetime(props, "hs_sms_conversation_first_message_timestamp"),
        created_by_user_id=get_str(props, "hs_created_by_user_id"),
        team_id=get_str(props, "hubspot_team_id"),
        logged_from=get_str(props, "hs_logged_from"),
        object_created_at=get_datetime(props, "hs_object_create_date"),
        object_last_modified_at=get_datetime(props, "hs_object_last_modified_date"),
        owner_assigned_at=get_datetime(props, "hs_owner_assigneddate"),
        record_source=get_str(props, "hs_record_source"),
        record_source_detail_1=get_str(props, "hs_record_source_detail_1"),
        updated_by_user_id=get_str(props, "hs_updated_by_user_id"),
        raw_properties_json=raw,
    )


def map_activity(record: Any, activity_type: str, ctx: RunContext, now: datetime) -> Activity:
    """Map one engagement record of ``activity_type`` to an Activity with its detail attached."""
    kind = (activity_type or "").upper()
    if kind not in ACTIVITY_TYPES:
        raise UnsupportedSubtype(f"Unsupported activity type: {activity_type}")
    hubspot_id = require_id(record)
    if not isinstance(record.get("properties"), dict):
        raise MalformedPayload("Activity record has no properties object", hubspot_id)

    props = get_properties(record)
    subject, body, activity_date = _core_fields(kind, props)
    source_type, source_id = determine_association(record)

    activity = Activity(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        activity_type=kind,
        subject=subject,
        body=body,
        owner=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        source_object_type=source_type,
        source_object_id=source_id,
        activity_date=activity_date,
        status=determine_activity_status(kind, props, activity_date, now),
    )
    if source_type == "contact":
        info = ctx.lookup_contact(source_id)
        if info is not None:
            activity.source_object_name = info.name
            activity.source_object_email = info.email

    for attr in DETAIL_ATTRS.values():
        setattr(activity, attr, None)
    activity.attach_detail(build_detail(kind, props, subject, ctx))
    return activity

"""Catalog of HubSpot object types fetched by the ETL."""

from __future__ import annotations

from dataclasses import dataclass

_ENGAGEMENT_ASSOCIATIONS = ("contacts", "companies", "deals", "tickets")


@dataclass(frozen=True)
class ObjectType:
    name: str
    plural: str
    properties: tuple[str, ...]
    associations: tuple[str, ...] = ()


CONTACT_PROPERTIES = (
    "firstname", "lastname", "email", "phone", "hubspot_owner_id",
    "company", "notes_last_activity_date", "notes_last_updated", "notes_last_contacted",
    "hs_lead_status", "hs_marketing_contact_status", "lifecyclestage", "zip",
    "contact_type", "contact-type", "inverter_brand", "createdate", "hs_object_id",
    "hs_analytics_source", "hs_analytics_source_data_1", "hs_analytics_source_data_2",
)

COMPANY_PROPERTIES = (
    "name", "hubspot_owner_id", "createdate", "phone",
    "hs_last_activity_date", "notes_last_updated", "city", "country", "hs_object_id",
    "cvr", "company_registration_number", "zip", "postal_code",
    "type", "company_type", "hs_company_type",
)

DEAL_PROPERTIES = (
    "dealname", "dealstage", "pipeline", "closedate", "hubspot_owner_id",
    "amount", "dealtype", "hs_object_id", "createdate",
)

TICKET_PROPERTIES = (
    "subject", "hs_ticket_subject", "hs_pipeline", "hs_pipeline_stage", "hs_ticket_status",
    "createdate", "hs_ticket_priority", "hubspot_owner_id", "source_type",
    "created_by_source", "hs_ticket_source", "hs_lastactivitydate", "hs_object_id",
)

COMMUNICATION_PROPERTIES = (
    "hs_communication_body", "hs_body_preview", "hs_communication_channel_type",
    "hs_channel_type", "hubspot_owner_id", "hs_timestamp", "hs_createdate", "hs_object_id",
)

EMAIL_PROPERTIES = (
    "hs_email_subject", "hs_email_text", "hs_email_html", "hs_email_status",
    "hs_timestamp", "hubspot_owner_id", "hs_object_id",
    "hs_activity_assigned_to", "hs_activity_date", "hs_createdate", "hs_created_by_user_id",
    "hs_email_click_rate", "hs_email_direction", "hs_email_open_rate", "hs_email_reply_rate",
    "hubspot_team_id", "hs_lastmodifieddate", "hs_num_email_clicks", "hs_num_email_opens",
    "hs_updated_by_user_id",
)

NOTE_PROPERTIES = (
    "hs_note_body", "hs_timestamp", "hs_createdate", "hubspot_owner_id", "hs_object_id",
    "hs_activity_assigned_to", "hs_activity_date", "hs_created_by_user_id",
    "hubspot_team_id", "hs_lastmodifieddate",
)

CALL_PROPERTIES = (
    "hs_call_title", "hs_call_body", "hs_call_direction", "hs_call_status",
    "hs_timestamp", "hubspot_owner_id", "hs_object_id", "hs_activity_date",
    "hs_call_duration", "hs_call_outcome", "hs_createdate", "hs_created_by_user_id",
    "hubspot_team_id", "hs_lastmodifieddate",
)

MEETING_PROPERTIES = (
    "hs_meeting_title", "hs_meeting_body", "hs_meeting_start_time", "hs_meeting_end_time",
    "hubspot_owner_id", "hs_timestamp", "hs_object_id", "hs_activity_date",
    "hs_meeting_outcome", "hs_contact_first_outreach_date", "hs_createdate",
    "hs_created_by_user_id", "hubspot_team_id", "hs_attendee_owner_ids",
    "hs_lastmodifieddate", "hs_meeting_location_type", "hs_meeting_location",
    "hs_meeting_source", "hs_time_to_book_meeting_from_first_contact",
)

TASK_PROPERTIES = (
    "hs_task_subject", "hs_task_body", "hs_task_priority", "hs_task_status",
    "hs_timestamp", "hubspot_owner_id", "hs_object_id", "hs_activity_date",
    "hs_createdate", "hs_task_completion_timestamp", "hs_task_due_date",
    "hs_task_is_overdue", "hs_task_start_date", "hs_lastmodifieddate",
    "hs_task_type", "hs_updated_by_user_id",
)

SMS_PROPERTIES = (
    "hs_sms_title", "hs_sms_body", "hs_sms_text", "hs_sms_message_body",
    "hs_sms_direction", "hs_sms_message_direction", "hs_sms_status", "hs_sms_message_status",
    "hs_sms_channel_account_name", "hs_sms_channel_name",
    "hs_timestamp", "hubspot_owner_id", "hs_object_id",
    "hs_activity_assigned_to", "hs_activity_date", "hs_sms_channel_type",
    "hs_communication_body", "hs_sms_conversation_first_message_timestamp",
    "hs_created_by_user_id", "hubspot_team_id", "hs_logged_from",
    "hs_object_create_date", "hs_object_last_modified_date", "hs_owner_assigneddate",
    "hs_record_source", "hs_record_source_detail_1", "hs_updated_by_user_id",
)

OBJECT_TYPES: dict[str, ObjectType] = {
    t.name: t
    for t in (
        ObjectType("contact", "contacts", CONTACT_PROPERTIES, ("companies",)),
        ObjectType("company", "companies", COMPANY_PROPERTIES),
        ObjectType("deal", "deals", DEAL_PROPERTIES),
        ObjectType("ticket", "tickets", TICKET_PROPERTIES),
        ObjectType("communication", "communications", COMMUNICATION_PROPERTIES, ("contacts", "companies", "deals")),
        ObjectType("email", "emails", EMAIL_PROPERTIES, _ENGAGEMENT_ASSOCIATIONS),
        ObjectType("note", "notes", NOTE_PROPERTIES, _ENGAGEMENT_ASSOCIATIONS),
        ObjectType("call", "calls", CALL_PROPERTIES, _ENGAGEMENT_ASSOCIATIONS),
        ObjectType("meeting", "meetings", MEETING_PROPERTIES, _ENGAGEMENT_ASSOCIATIONS),
        ObjectType("task", "tasks", TASK_PROPERTIES, _ENGAGEMENT_ASSOCIATIONS),
        ObjectType("sms", "sms", SMS_PROPERTIES, _ENGAGEMENT_ASSOCIATIONS),
    )
}

_PLURAL_TO_SINGULAR = {t.plural: t.name for t in OBJECT_TYPES.values()}


def singular(object_type: str) -> str:
    """Normalize an object type name: "companies" -> "company", "deals" -> "deal"."""
    key = (object_type or "").strip().lower()
    if key in OBJECT_TYPES:
        return key
    if key in _PLURAL_TO_SINGULAR:
        return _PLURAL_TO_SINGULAR[key]
    if key.endswith("ies") and len(key) > 3:
        return key[:-3] + "y"
    if key.endswith("s") and len(key) > 1:
        return key[:-1]
    return key


def plural(object_type: str) -> str:
    """Normalize an object type name to the v3 collection path segment."""
    name = singular(object_type)
    known = OBJECT_TYPES.get(name)
    if known:
        return known.plural
    if name.endswith("y"):
        return name[:-1] + "ies"
    return name + "s"


def get_object_type(object_type: str) -> ObjectType:
    name = singular(object_type)
    try:
        return OBJECT_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown HubSpot object type: {object_type}") from None

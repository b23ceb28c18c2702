"""Map raw HubSpot records to local mirror entities.

Mappers are pure: they read the record (and the run context for owner and
label lookups) and return a transient ORM instance, or raise a
:class:`MappingError` subclass for records that cannot be mapped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from ..models.company import Company
from ..models.contact import Contact
from ..models.deal import Deal
from ..models.engagement import Communication, Email, Note
from ..models.ticket import Ticket
from .context import RunContext
from .properties import (
    first_str,
    get_datetime,
    get_decimal,
    get_hubspot_id,
    get_properties,
    get_str,
    strip_html,
    to_str,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")


class MappingError(Exception):
    """A record could not be turned into an entity."""

    def __init__(self, message: str, record_id: str | None = None):
        self.message = message
        self.record_id = record_id
        super().__init__(self.message)


class MissingIdentifier(MappingError):
    pass


class UnsupportedSubtype(MappingError):
    pass


class MalformedPayload(MappingError):
    pass


def require_id(record: Any) -> str:
    if not isinstance(record, dict):
        raise MalformedPayload(f"Expected an object, got {type(record).__name__}")
    hubspot_id = get_hubspot_id(record)
    if hubspot_id is None:
        raise MissingIdentifier("Record has no id")
    return hubspot_id


def record_id_of(record: dict[str, Any], props: dict[str, Any]) -> str | None:
    return get_str(props, "hs_object_id") or get_hubspot_id(record)


def association_results(record: dict[str, Any], group: str) -> list[Any]:
    """The ``associations.<group>.results`` list, or empty for any other shape."""
    associations = record.get("associations") if isinstance(record, dict) else None
    if not isinstance(associations, dict):
        return []
    block = associations.get(group)
    if not isinstance(block, dict):
        return []
    results = block.get("results")
    return results if isinstance(results, list) else []


def first_associated_id(record: dict[str, Any], group: str) -> str | None:
    """Return the first related id under ``associations.<group>.results``."""
    for item in association_results(record, group):
        if isinstance(item, dict):
            related = to_str(item.get("id"))
            if related:
                return related
    return None


def associated_ids(record: dict[str, Any], group: str) -> list[str]:
    ids: list[str] = []
    for item in association_results(record, group):
        if isinstance(item, dict):
            related = to_str(item.get("id"))
            if related and related not in ids:
                ids.append(related)
    return ids


def map_contact(record: Any, ctx: RunContext) -> Contact:
    hubspot_id = require_id(record)
    props = get_properties(record)

    name = " ".join(
        p for p in (get_str(props, "firstname"), get_str(props, "lastname")) if p
    ).strip()

    return Contact(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        full_name=name or None,
        email=get_str(props, "email"),
        phone=get_str(props, "phone"),
        owner=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        company_name=get_str(props, "company"),
        last_activity_date=get_datetime(props, "notes_last_activity_date", "notes_last_updated"),
        lead_status=get_str(props, "hs_lead_status"),
        lifecycle_stage=get_str(props, "lifecyclestage"),
        postal_code=get_str(props, "zip"),
        contact_type=first_str(props, "contact_type", "contact-type"),
        inverter_brand=get_str(props, "inverter_brand"),
        last_contacted=get_datetime(props, "notes_last_contacted"),
        created_at=get_datetime(props, "createdate"),
        analytics_source=get_str(props, "hs_analytics_source"),
        analytics_source_data_1=get_str(props, "hs_analytics_source_data_1"),
        analytics_source_data_2=get_str(props, "hs_analytics_source_data_2"),
    )


def map_company(record: Any, ctx: RunContext) -> Company:
    hubspot_id = require_id(record)
    props = get_properties(record)
    return Company(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        name=get_str(props, "name"),
        owner=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        created_at=get_datetime(props, "createdate"),
        phone=get_str(props, "phone"),
        last_activity_date=get_datetime(props, "hs_last_activity_date", "notes_last_updated"),
        city=get_str(props, "city"),
        country=get_str(props, "country"),
        cvr=first_str(props, "cvr", "company_registration_number"),
        postal_code=first_str(props, "zip", "postal_code"),
        company_type=first_str(props, "type", "company_type", "hs_company_type"),
    )


def map_deal(record: Any, ctx: RunContext) -> Deal:
    hubspot_id = require_id(record)
    props = get_properties(record)
    return Deal(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        name=get_str(props, "dealname"),
        stage=get_str(props, "dealstage"),
        pipeline=get_str(props, "pipeline"),
        close_date=get_datetime(props, "closedate"),
        owner=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        amount=get_decimal(props, "amount"),
        deal_type=get_str(props, "dealtype"),
        created_at=get_datetime(props, "createdate"),
    )


def map_ticket(record: Any, ctx: RunContext) -> Ticket:
    hubspot_id = require_id(record)
    props = get_properties(record)
    return Ticket(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        name=first_str(props, "subject", "hs_ticket_subject"),
        pipeline=ctx.resolve_pipeline(get_str(props, "hs_pipeline")),
        status=ctx.resolve_stage(first_str(props, "hs_pipeline_stage", "hs_ticket_status")),
        created_at=get_datetime(props, "createdate"),
        priority=get_str(props, "hs_ticket_priority"),
        owner=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        source=first_str(props, "source_type", "created_by_source", "hs_ticket_source"),
        last_activity_date=get_datetime(props, "hs_lastactivitydate"),
    )


def map_communication(record: Any, ctx: RunContext) -> Communication:
    hubspot_id = require_id(record)
    props = get_properties(record)
    return Communication(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        channel_type=first_str(props, "hs_communication_channel_type", "hs_channel_type"),
        body=strip_html(first_str(props, "hs_communication_body", "hs_body_preview")),
        associated_contact_id=first_associated_id(record, "contacts"),
        assigned_to=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        activity_date=get_datetime(props, "hs_timestamp", "hs_createdate"),
    )


def map_email(record: Any, ctx: RunContext) -> Email:
    hubspot_id = require_id(record)
    props = get_properties(record)
    return Email(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        subject=get_str(props, "hs_email_subject"),
        activity_date=get_datetime(props, "hs_timestamp", "hs_createdate"),
        associated_contact_id=first_associated_id(record, "contacts"),
        assigned_to=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        body=strip_html(first_str(props, "hs_email_html", "hs_email_text")),
        send_status=get_str(props, "hs_email_status"),
    )


def map_note(record: Any, ctx: RunContext) -> Note:
    hubspot_id = require_id(record)
    props = get_properties(record)
    return Note(
        hubspot_id=hubspot_id,
        record_id=record_id_of(record, props),
        body_preview=strip_html(get_str(props, "hs_note_body")),
        assigned_to=ctx.resolve_owner(get_str(props, "hubspot_owner_id")),
        activity_date=get_datetime(props, "hs_timestamp", "hs_createdate"),
    )


def map_records(
    records: Iterable[Any],
    mapper: Callable[[Any, RunContext], E],
    ctx: RunContext,
    *,
    name: str = "record",
) -> tuple[list[E], int]:
    """Map ``records``, dropping the ones that fail. Returns (entities, dropped)."""
    entities: list[E] = []
    dropped = 0
    for record in records:
        try:
            entities.append(mapper(record, ctx))
        except MappingError as e:
            dropped += 1
            logger.warning("Skipping %s %s: %s", name, e.record_id or "?", e.message)
    return entities, dropped

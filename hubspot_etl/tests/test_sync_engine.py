"""Test the sync orchestrator."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hubspot_etl.api.results import AssociationDetails, GatewayResult, Page
from hubspot_etl.models.activity import Activity, ActivityAssociation
from hubspot_etl.models.association import ContactCompanyAssociation, ObjectAssociation
from hubspot_etl.models.company import Company
from hubspot_etl.models.contact import Contact
from hubspot_etl.models.deal import Deal
from hubspot_etl.models.engagement import Communication, Email, Note
from hubspot_etl.models.history import ContactActivityTimeline, PropertyHistory
from hubspot_etl.models.ticket import Ticket
from hubspot_etl.sync.sync_engine import SyncStepError, fetch_all, run_full_sync

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


def _load_account(gateway) -> None:
    gateway.owners = {"7": "Olive Owner"}
    gateway.options[("tickets", "hs_pipeline_stage")] = {"1": "New"}
    gateway.add_records(
        "contacts",
        [
            {
                "id": "c1",
                "properties": {"firstname": "Alice", "email": "alice@test.com", "hubspot_owner_id": "7"},
                "associations": {"companies": {"results": [{"id": "co1"}]}},
            },
            {"id": "c2", "properties": {"email": "bob@test.com"}},
        ],
    )
    gateway.add_records("companies", [{"id": "co1", "properties": {"name": "Acme"}}])
    gateway.add_records("deals", [{"id": "d1", "properties": {"dealname": "Solar", "amount": "100"}}])
    gateway.add_records("tickets", [{"id": "t1", "properties": {"subject": "Broken", "hs_pipeline_stage": "1"}}])
    gateway.add_records(
        "communications",
        [
            {"id": "m1", "properties": {"hs_communication_body": "hi"},
             "associations": {"contacts": {"results": [{"id": "c1"}]}}},
            {"id": "m2", "properties": {"hs_communication_body": "yo"},
             "associations": {"contacts": {"results": [{"id": "c3"}]}}},
        ],
    )
    gateway.contacts["c3"] = {"id": "c3", "properties": {"firstname": "Carl", "email": "carl@test.com"}}
    gateway.add_records("emails", [{"id": "e1", "properties": {"hs_email_subject": "Offer"},
                                    "associations": {"contacts": {"results": [{"id": "c2"}]}}}])
    gateway.add_records("notes", [{"id": "n1", "properties": {"hs_note_body": "<p>note</p>"}}])
    gateway.add_records(
        "calls",
        [{"id": "call1", "properties": {"hs_call_title": "Intro", "hs_timestamp": "2024-05-01T10:00:00Z"},
          "associations": {"contacts": {"results": [{"id": "c1"}]}, "deals": {"results": [{"id": "d1"}]}}}],
    )
    gateway.associations[("contact", "deal")] = {"c1": [AssociationDetails(to_object_id="d1", label="Primary")]}
    gateway.history[("contact", "c1", "lifecyclestage")] = [
        {"value": "customer", "timestamp": "2024-04-01T00:00:00Z"},
        {"value": "lead", "timestamp": "2024-01-01T00:00:00Z"},
    ]


@pytest.mark.asyncio
async def test_full_run(db: AsyncSession, gateway, settings):
    _load_account(gateway)

    result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is True
    assert [s.name for s in result.steps] == [
        "contacts", "companies", "contact_company_associations", "deals", "tickets",
        "communications", "emails", "notes", "object_associations",
        "activities", "property_history", "timeline",
    ]
    assert all(step.ok for step in result.steps)
    assert await _count(db, Contact) == 2
    assert await _count(db, Company) == 1
    assert await _count(db, Deal) == 1
    assert await _count(db, Note) == 1
    assert await _count(db, ContactCompanyAssociation) == 1
    assert await _count(db, ObjectAssociation) == 1
    assert await _count(db, Activity) == 3
    assert await _count(db, ActivityAssociation) == 3
    assert await _count(db, PropertyHistory) == 2
    assert await _count(db, ContactActivityTimeline) > 0

    contact = (await db.execute(select(Contact).where(Contact.hubspot_id == "c1"))).scalar_one()
    assert contact.owner == "Olive Owner"
    ticket = (await db.execute(select(Ticket))).scalar_one()
    assert ticket.status == "New"

    comms = {c.hubspot_id: c for c in (await db.execute(select(Communication))).scalars().all()}
    assert comms["m1"].associated_contact_name == "Alice"
    assert comms["m2"].associated_contact_name == "Carl"
    assert comms["m2"].associated_contact_email == "carl@test.com"
    email = (await db.execute(select(Email))).scalar_one()
    assert email.associated_contact_name == "bob@test.com"


@pytest.mark.asyncio
async def test_run_twice_is_idempotent(db: AsyncSession, gateway, settings):
    _load_account(gateway)
    await run_full_sync(db, gateway, settings, now=NOW)
    second = await run_full_sync(db, gateway, settings, now=NOW)

    assert second.success is True
    assert second.step("contacts").inserted == 0
    assert second.step("contacts").updated == 2
    assert await _count(db, Contact) == 2
    assert await _count(db, ActivityAssociation) == 3


@pytest.mark.asyncio
async def test_critical_failure_rolls_back(db: AsyncSession, gateway, settings):
    _load_account(gateway)
    gateway.failing_fetches.add("deals")

    result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is False
    assert result.step("deals").ok is False
    assert result.step("tickets") is None
    assert result.step("activities") is None
    assert await _count(db, Contact) == 0
    assert await _count(db, Company) == 0


@pytest.mark.asyncio
async def test_tolerated_failure_continues(db: AsyncSession, gateway, settings):
    _load_account(gateway)
    gateway.failing_fetches.add("communications")

    result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is True
    assert result.step("communications").ok is False
    assert any("communications" in e for e in result.errors)
    assert await _count(db, Contact) == 2
    assert await _count(db, Communication) == 0
    assert await _count(db, Email) == 1


@pytest.mark.asyncio
async def test_tolerated_flush_failure_keeps_earlier_rows(db: AsyncSession, gateway, settings):
    _load_account(gateway)

    def clashing_note(record, ctx):
        return Contact(hubspot_id="c1")

    with patch("hubspot_etl.sync.sync_engine.map_note", clashing_note):
        result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is True
    assert result.step("notes").ok is False
    assert result.step("object_associations").ok is True
    assert not any("object_associations" in e or "associations error" in e for e in result.errors)
    assert await _count(db, Contact) == 2
    assert await _count(db, Communication) == 2
    assert await _count(db, Note) == 0
    assert await _count(db, ObjectAssociation) == 1
    assert await _count(db, Activity) == 3


@pytest.mark.asyncio
async def test_wrong_shaped_embedded_associations_do_not_fail_contacts(db: AsyncSession, gateway, settings):
    _load_account(gateway)
    gateway.pages["contacts"][0][1]["associations"] = {"companies": {"results": 7}}
    gateway.pages["calls"][0][0]["associations"]["deals"] = {"results": True}

    result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is True
    assert result.step("contacts").ok is True
    assert await _count(db, Contact) == 2
    assert await _count(db, ContactCompanyAssociation) == 1
    assert await _count(db, ActivityAssociation) == 2


@pytest.mark.asyncio
async def test_post_commit_failure_keeps_core_data(db: AsyncSession, gateway, settings):
    _load_account(gateway)
    boom = AsyncMock(side_effect=RuntimeError("history down"))

    with patch("hubspot_etl.sync.sync_engine.derive_property_history", boom):
        result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is True
    assert result.step("property_history").ok is False
    assert result.step("timeline").ok is True
    assert await _count(db, Contact) == 2
    assert await _count(db, Activity) == 3


@pytest.mark.asyncio
async def test_activity_type_failure_skips_type(db: AsyncSession, gateway, settings):
    _load_account(gateway)
    gateway.failing_fetches.add("meetings")

    result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.step("activities").ok is True
    assert any("meetings" in e for e in result.errors)
    assert await _count(db, Activity) == 3


@pytest.mark.asyncio
async def test_commit_failure_reports_failure(db: AsyncSession, gateway, settings):
    _load_account(gateway)

    with patch.object(db, "commit", AsyncMock(side_effect=RuntimeError("disk full"))):
        result = await run_full_sync(db, gateway, settings, now=NOW)

    assert result.success is False
    assert any("commit failed" in e for e in result.errors)
    assert result.step("activities") is None


@pytest.mark.asyncio
async def test_fetch_all_follows_cursor(gateway):
    gateway.add_records("contacts", [{"id": str(i)} for i in range(250)], page_size=100)

    records = await fetch_all(gateway, "contacts", page_size=100)

    assert len(records) == 250
    cursors = [call[2] for call in gateway.calls if call[0] == "fetch_page"]
    assert cursors == [None, "1", "2"]


@pytest.mark.asyncio
async def test_fetch_all_stops_on_repeated_page():
    gateway = AsyncMock()
    gateway.fetch_page.return_value = GatewayResult.success(Page(records=[{"id": "1"}], after="next"))

    records = await fetch_all(gateway, "contacts")

    assert records == [{"id": "1"}]
    assert gateway.fetch_page.await_count == 2


@pytest.mark.asyncio
async def test_fetch_all_raises_on_failed_page():
    gateway = AsyncMock()
    gateway.fetch_page.return_value = GatewayResult.fail("HubSpot request failed: 401 - expired")

    with pytest.raises(SyncStepError):
        await fetch_all(gateway, "deals")

"""Sync orchestrator - runs one full HubSpot -> database pass."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.objects import get_object_type
from ..models.activity import ActivityAssociation
from ..models.contact import Contact
from ..schemas.sync import RunResult, StepOutcome, SyncResult
from .activity_mapper import ACTIVITY_OBJECT_TYPES, activity_associations, extract_all_associations, map_activity
from .associations import (
    reconcile_association_matrix,
    reconcile_contact_company_associations,
    upsert_activity_associations,
)
from .context import ContactInfo, RunContext
from .field_mapper import (
    MappingError,
    associated_ids,
    map_communication,
    map_company,
    map_contact,
    map_deal,
    map_email,
    map_note,
    map_records,
    map_ticket,
)
from .history import derive_property_history
from .properties import get_hubspot_id, get_properties, get_str, utcnow
from .timeline import derive_contact_timeline
from .upsert import (
    ACTIVITY_SPEC,
    COMMUNICATION_SPEC,
    COMPANY_SPEC,
    CONTACT_SPEC,
    DEAL_SPEC,
    EMAIL_SPEC,
    NOTE_SPEC,
    TICKET_SPEC,
    UpsertSpec,
    upsert_entities,
)

logger = logging.getLogger(__name__)

ACTIVITY_FETCH_ORDER = ("CALL", "EMAIL", "MEETING", "TASK", "NOTE", "SMS")


class SyncStepError(RuntimeError):
    """A step could not read its source data."""


@dataclass
class SyncRun:
    """Everything a step needs for the current run."""

    db: AsyncSession
    gateway: Any
    settings: Any
    ctx: RunContext
    now: datetime

    @property
    def batch_size(self) -> int:
        return self.settings.save_batch_size

    @property
    def chunk_size(self) -> int:
        return self.settings.association_batch_size


StepFn = Callable[[SyncRun], Awaitable[SyncResult]]


@dataclass(frozen=True)
class SyncStep:
    name: str
    critical: bool
    fn: StepFn


# ----------------------------------------------------------------------
# Pagination
# ----------------------------------------------------------------------


async def fetch_all(
    gateway,
    object_type: str,
    *,
    page_size: int = 100,
    max_pages: int = 10000,
) -> list[dict]:
    """Follow ``after`` cursors until exhausted. A failed page raises SyncStepError."""
    all_items: list[dict] = []
    seen_ids: set[str] = set()
    after: str | None = None

    for page_number in range(1, max_pages + 1):
        result = await gateway.fetch_page(object_type, after, page_size)
        if not result.ok:
            raise SyncStepError(f"Failed to fetch {object_type} page {page_number}: {result.error}")
        page = result.value
        if not page.records:
            break

        new_count = 0
        for item in page.records:
            item_id = get_hubspot_id(item)
            if item_id:
                if item_id in seen_ids:
                    continue
                seen_ids.add(item_id)
            all_items.append(item)
            new_count += 1

        if new_count == 0:
            break
        if not page.after or page.after == after:
            break
        after = page.after
        logger.debug("Fetched %d %s so far", len(all_items), object_type)

    logger.info("Fetched %d %s", len(all_items), object_type)
    return all_items


async def _fetch(run: SyncRun, object_type: str) -> list[dict]:
    return await fetch_all(
        run.gateway,
        object_type,
        page_size=run.settings.page_size,
        max_pages=run.settings.max_pages,
    )


async def _sync_mirror(run: SyncRun, object_type: str, mapper, spec: UpsertSpec) -> SyncResult:
    records = await _fetch(run, object_type)
    entities, dropped = map_records(records, mapper, run.ctx, name=get_object_type(object_type).name)
    result = await upsert_entities(run.db, entities, spec, batch_size=run.batch_size, now=run.now)
    result.skipped += dropped
    return result


# ----------------------------------------------------------------------
# Reference data
# ----------------------------------------------------------------------


async def load_reference_data(gateway, ctx: RunContext) -> None:
    """Fill owner and ticket label lookups. Failed lookups leave the maps empty."""
    owners = await gateway.get_owners()
    if owners.ok:
        ctx.owners = dict(owners.value or {})
        logger.info("Loaded %d owners", len(ctx.owners))
    else:
        logger.warning("Could not load owners: %s", owners.error)

    pipelines = await gateway.get_property_options("tickets", "hs_pipeline")
    if pipelines.ok:
        ctx.pipeline_labels = dict(pipelines.value or {})
    else:
        logger.warning("Could not load ticket pipelines: %s", pipelines.error)

    stages = await gateway.get_property_options("tickets", "hs_pipeline_stage")
    if stages.ok:
        ctx.stage_labels = dict(stages.value or {})
    else:
        logger.warning("Could not load ticket stages: %s", stages.error)


# ----------------------------------------------------------------------
# Contacts and contact lookups
# ----------------------------------------------------------------------


async def sync_contacts(run: SyncRun) -> SyncResult:
    records = await _fetch(run, "contacts")
    contacts, dropped = map_records(records, map_contact, run.ctx, name="contact")

    for record in records:
        contact_id = get_hubspot_id(record)
        if not contact_id:
            continue
        for company_id in associated_ids(record, "companies"):
            run.ctx.remember_contact_company(contact_id, company_id)
    for contact in contacts:
        run.ctx.remember_contact(
            contact.hubspot_id,
            contact.record_id,
            name=contact.display_name,
            email=contact.email,
        )

    result = await upsert_entities(run.db, contacts, CONTACT_SPEC, batch_size=run.batch_size, now=run.now)
    result.skipped += dropped
    return result


async def resolve_contact(run: SyncRun, contact_id: str | None) -> ContactInfo | None:
    """Contact name and email from the run cache, the stored contacts, then HubSpot."""
    if not contact_id:
        return None
    cached = run.ctx.lookup_contact(contact_id)
    if cached is not None:
        return cached

    stmt = select(Contact).where(or_(Contact.hubspot_id == contact_id, Contact.record_id == contact_id))
    stored = (await run.db.execute(stmt)).scalars().first()
    if stored is not None:
        info = ContactInfo(stored.display_name, stored.email)
    else:
        fetched = await run.gateway.get_contact(contact_id)
        if not fetched.ok or not isinstance(fetched.value, dict):
            logger.debug("Contact %s not found: %s", contact_id, fetched.error)
            return None
        props = get_properties(fetched.value)
        name = " ".join(p for p in (get_str(props, "firstname"), get_str(props, "lastname")) if p).strip()
        email = get_str(props, "email")
        info = ContactInfo(name or email or contact_id, email)

    run.ctx.remember_contact(contact_id, name=info.name, email=info.email)
    return info


async def _fill_contacts(run: SyncRun, entities: list) -> None:
    for entity in entities:
        info = await resolve_contact(run, entity.associated_contact_id)
        if info is not None:
            entity.associated_contact_name = info.name
            entity.associated_contact_email = info.email


# ----------------------------------------------------------------------
# Transaction steps
# ----------------------------------------------------------------------


async def sync_companies(run: SyncRun) -> SyncResult:
    return await _sync_mirror(run, "companies", map_company, COMPANY_SPEC)


async def sync_contact_company_associations(run: SyncRun) -> SyncResult:
    return await reconcile_contact_company_associations(
        run.db, run.gateway, run.ctx, chunk_size=run.chunk_size, now=run.now
    )


async def sync_deals(run: SyncRun) -> SyncResult:
    return await _sync_mirror(run, "deals", map_deal, DEAL_SPEC)


async def sync_tickets(run: SyncRun) -> SyncResult:
    return await _sync_mirror(run, "tickets", map_ticket, TICKET_SPEC)


async def _sync_with_contacts(run: SyncRun, object_type: str, mapper, spec: UpsertSpec) -> SyncResult:
    records = await _fetch(run, object_type)
    entities, dropped = map_records(records, mapper, run.ctx, name=get_object_type(object_type).name)
    await _fill_contacts(run, entities)
    result = await upsert_entities(run.db, entities, spec, batch_size=run.batch_size, now=run.now)
    result.skipped += dropped
    return result


async def sync_communications(run: SyncRun) -> SyncResult:
    return await _sync_with_contacts(run, "communications", map_communication, COMMUNICATION_SPEC)


async def sync_emails(run: SyncRun) -> SyncResult:
    return await _sync_with_contacts(run, "emails", map_email, EMAIL_SPEC)


async def sync_notes(run: SyncRun) -> SyncResult:
    return await _sync_mirror(run, "notes", map_note, NOTE_SPEC)


async def sync_object_associations(run: SyncRun) -> SyncResult:
    return await reconcile_association_matrix(run.db, run.gateway, chunk_size=run.chunk_size, now=run.now)


TRANSACTION_STEPS: tuple[SyncStep, ...] = (
    SyncStep("contacts", True, sync_contacts),
    SyncStep("companies", True, sync_companies),
    SyncStep("contact_company_associations", False, sync_contact_company_associations),
    SyncStep("deals", True, sync_deals),
    SyncStep("tickets", True, sync_tickets),
    SyncStep("communications", False, sync_communications),
    SyncStep("emails", False, sync_emails),
    SyncStep("notes", False, sync_notes),
    SyncStep("object_associations", False, sync_object_associations),
)


# ----------------------------------------------------------------------
# Post-commit steps
# ----------------------------------------------------------------------


async def sync_activities(run: SyncRun) -> SyncResult:
    """Fetch every activity type, upsert the activities, then their associations."""
    result = SyncResult()
    activities = []
    links: list[ActivityAssociation] = []

    for kind in ACTIVITY_FETCH_ORDER:
        object_type = ACTIVITY_OBJECT_TYPES[kind]
        try:
            records = await _fetch(run, object_type)
        except SyncStepError as e:
            logger.warning("Skipping %s activities: %s", kind, e)
            result.errors.append(str(e))
            continue

        for record in records:
            try:
                activity = map_activity(record, kind, run.ctx, run.now)
            except MappingError as e:
                result.skipped += 1
                logger.warning("Skipping %s activity %s: %s", kind, e.record_id or "?", e.message)
                continue
            activities.append(activity)
            links.extend(activity_associations(activity, extract_all_associations(record)))

    logger.info("Mapped %d activities with %d associations", len(activities), len(links))
    result.merge(await upsert_entities(run.db, activities, ACTIVITY_SPEC, batch_size=run.batch_size, now=run.now))
    linked = await upsert_activity_associations(run.db, links, now=run.now)
    logger.info("Activity associations: %d inserted, %d updated", linked.inserted, linked.updated)
    result.errors.extend(linked.errors)
    return result


async def sync_property_history(run: SyncRun) -> SyncResult:
    return await derive_property_history(
        run.db,
        run.gateway,
        tracked=run.settings.tracked_history_properties,
        batch_size=run.batch_size,
        now=run.now,
    )


async def sync_timeline(run: SyncRun) -> SyncResult:
    return await derive_contact_timeline(run.db, run.ctx, batch_size=run.batch_size, now=run.now)


POST_COMMIT_STEPS: tuple[SyncStep, ...] = (
    SyncStep("activities", False, sync_activities),
    SyncStep("property_history", False, sync_property_history),
    SyncStep("timeline", False, sync_timeline),
)


# ----------------------------------------------------------------------
# Run
# ----------------------------------------------------------------------


def _outcome(step: SyncStep, result: SyncResult | None = None, error: str | None = None) -> StepOutcome:
    result = result or SyncResult()
    return StepOutcome(
        name=step.name,
        critical=step.critical,
        ok=error is None,
        inserted=result.inserted,
        updated=result.updated,
        skipped=result.skipped,
        error=error,
    )


async def _rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except Exception as e:
        logger.error("Rollback failed: %s", e)


async def run_full_sync(
    db: AsyncSession,
    gateway,
    settings=None,
    now: datetime | None = None,
) -> RunResult:
    """Run reference data, the transactional steps, the commit, then the post-commit steps.

    A critical step failure rolls the transaction back and ends the run.
    Tolerated steps run in savepoints; their failures and post-commit
    failures are recorded and the run continues.
    """
    if settings is None:
        from ..config import settings
    run = SyncRun(db, gateway, settings, RunContext.from_settings(settings), now or utcnow())
    outcome = RunResult(started_at=utcnow())
    logger.info("Starting HubSpot sync")

    await load_reference_data(gateway, run.ctx)

    for step in TRANSACTION_STEPS:
        logger.info("Running step %s", step.name)
        try:
            if step.critical:
                result = await step.fn(run)
            else:
                # A tolerated failure only rolls back its own savepoint
                async with db.begin_nested():
                    result = await step.fn(run)
        except Exception as e:
            message = f"{step.name} failed: {e}"
            outcome.steps.append(_outcome(step, error=str(e)))
            outcome.errors.append(message)
            if step.critical:
                logger.exception("Critical step %s", message)
                await _rollback(db)
                outcome.success = False
                outcome.finished_at = utcnow()
                return outcome
            logger.warning("Step %s (continuing)", message, exc_info=True)
            continue
        outcome.steps.append(_outcome(step, result))
        outcome.errors.extend(result.errors)

    try:
        await db.commit()
        logger.info("Committed core sync data")
    except Exception as e:
        logger.exception("Commit failed: %s", e)
        await _rollback(db)
        outcome.errors.append(f"commit failed: {e}")
        outcome.success = False
        outcome.finished_at = utcnow()
        return outcome

    for step in POST_COMMIT_STEPS:
        logger.info("Running step %s", step.name)
        try:
            result = await step.fn(run)
            await db.commit()
        except Exception as e:
            logger.error("Step %s failed: %s", step.name, e, exc_info=True)
            await _rollback(db)
            outcome.steps.append(_outcome(step, error=str(e)))
            outcome.errors.append(f"{step.name} failed: {e}")
            continue
        outcome.steps.append(_outcome(step, result))
        outcome.errors.extend(result.errors)

    outcome.finished_at = utcnow()
    logger.info("HubSpot sync finished with %d error(s)", len(outcome.errors))
    return outcome

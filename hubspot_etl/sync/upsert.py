"""Generic insert-or-update loop keyed on the HubSpot object id.

Each mirrored type gets an :class:`UpsertSpec` describing how to find an
existing row and how to fold an incoming entity into it. The loop itself
is shared by every step.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.activity import DETAIL_ATTRS, Activity
from ..models.company import Company
from ..models.contact import Contact
from ..models.deal import Deal
from ..models.engagement import Communication, Email, Note
from ..models.ticket import Ticket
from ..schemas.sync import SyncResult
from .properties import utcnow

logger = logging.getLogger(__name__)

E = TypeVar("E")

_NEVER_PATCHED = frozenset({"id", "extracted_at"})


def sparse_patch(
    existing: Any,
    incoming: Any,
    *,
    immutable: Iterable[str] = (),
    skip: Iterable[str] = (),
) -> None:
    """Copy every non-empty column value from ``incoming`` onto ``existing``.

    ``None`` and empty strings never overwrite stored values. Columns in
    ``immutable`` are only written while the stored value is still empty.
    """
    frozen = set(immutable)
    skipped = _NEVER_PATCHED | set(skip)
    for attr in sa_inspect(type(existing)).column_attrs:
        key = attr.key
        if key in skipped:
            continue
        value = getattr(incoming, key, None)
        if value is None or value == "":
            continue
        if key in frozen and getattr(existing, key) is not None:
            continue
        setattr(existing, key, value)


def touch(entity: Any, stamp: datetime) -> None:
    entity.extracted_at = stamp


@dataclass(frozen=True)
class UpsertSpec(Generic[E]):
    """How one entity type is looked up and merged."""

    name: str
    key: Callable[[E], tuple]
    find_existing: Callable[[AsyncSession, E], Awaitable[E | None]]
    merge: Callable[[E, E], None]
    touch: Callable[[E, datetime], None] = field(default=touch)


async def upsert_entities(
    db: AsyncSession,
    entities: Iterable[E],
    spec: UpsertSpec[E],
    *,
    batch_size: int = 500,
    now: datetime | None = None,
) -> SyncResult:
    """Insert new entities and merge known ones, flushing every ``batch_size``.

    Lookups run without autoflush, so pending rows are only written at batch
    boundaries. Repeated keys within the call merge into the first entity.
    No commit is performed here; the orchestrator owns the transaction.
    A flush error propagates to the caller.
    """
    result = SyncResult()
    stamp = now or utcnow()
    pending = 0
    seen: dict[tuple, E] = {}

    for entity in entities:
        key = spec.key(entity)
        existing = seen.get(key)
        if existing is None:
            with db.no_autoflush:
                existing = await spec.find_existing(db, entity)

        if existing is None:
            spec.touch(entity, stamp)
            db.add(entity)
            seen[key] = entity
            result.inserted += 1
        elif existing is not entity:
            spec.merge(existing, entity)
            spec.touch(existing, stamp)
            seen[key] = existing
            result.updated += 1

        pending += 1
        if pending >= batch_size:
            await db.flush()
            logger.info(
                "%s: flushed batch (%d inserted, %d updated so far)",
                spec.name, result.inserted, result.updated,
            )
            pending = 0

    if pending:
        await db.flush()

    logger.info("%s: %d inserted, %d updated", spec.name, result.inserted, result.updated)
    return result


# ----------------------------------------------------------------------
# Entity specs
# ----------------------------------------------------------------------


def _find_by_hubspot_id(model, *options) -> Callable[[AsyncSession, Any], Awaitable[Any]]:
    async def find(db: AsyncSession, entity: Any) -> Any:
        stmt = select(model).where(model.hubspot_id == entity.hubspot_id)
        if options:
            stmt = stmt.options(*options)
        return (await db.execute(stmt)).scalar_one_or_none()

    return find


def _hubspot_key(entity: Any) -> tuple:
    return (entity.hubspot_id,)


def _merge_keep_created(existing: Any, incoming: Any) -> None:
    sparse_patch(existing, incoming, immutable=("created_at",))


def _merge_plain(existing: Any, incoming: Any) -> None:
    sparse_patch(existing, incoming)


def _merge_activity(existing: Activity, incoming: Activity) -> None:
    sparse_patch(existing, incoming, skip=("activity_type",))

    detail = incoming.detail
    if detail is None:
        return
    current = existing.detail
    if current is None:
        setattr(incoming, DETAIL_ATTRS[detail.activity_type], None)
        existing.attach_detail(detail)
        return
    sparse_patch(current, detail, skip=("activity_id", "raw_properties_json"))
    current.raw_properties_json = detail.raw_properties_json


def _touch_activity(activity: Activity, stamp: datetime) -> None:
    activity.extracted_at = stamp
    detail = activity.detail
    if detail is not None:
        detail.extracted_at = stamp


ACTIVITY_DETAIL_LOADS = tuple(selectinload(getattr(Activity, attr)) for attr in DETAIL_ATTRS.values())

CONTACT_SPEC: UpsertSpec[Contact] = UpsertSpec(
    "Contacts", _hubspot_key, _find_by_hubspot_id(Contact), _merge_keep_created
)
COMPANY_SPEC: UpsertSpec[Company] = UpsertSpec(
    "Companies", _hubspot_key, _find_by_hubspot_id(Company), _merge_keep_created
)
DEAL_SPEC: UpsertSpec[Deal] = UpsertSpec(
    "Deals", _hubspot_key, _find_by_hubspot_id(Deal), _merge_keep_created
)
TICKET_SPEC: UpsertSpec[Ticket] = UpsertSpec(
    "Tickets", _hubspot_key, _find_by_hubspot_id(Ticket), _merge_keep_created
)
COMMUNICATION_SPEC: UpsertSpec[Communication] = UpsertSpec(
    "Communications", _hubspot_key, _find_by_hubspot_id(Communication), _merge_plain
)
EMAIL_SPEC: UpsertSpec[Email] = UpsertSpec(
    "Emails", _hubspot_key, _find_by_hubspot_id(Email), _merge_plain
)
NOTE_SPEC: UpsertSpec[Note] = UpsertSpec(
    "Notes", _hubspot_key, _find_by_hubspot_id(Note), _merge_plain
)
ACTIVITY_SPEC: UpsertSpec[Activity] = UpsertSpec(
    "Activities",
    _hubspot_key,
    _find_by_hubspot_id(Activity, *ACTIVITY_DETAIL_LOADS),
    _merge_activity,
    touch=_touch_activity,
)

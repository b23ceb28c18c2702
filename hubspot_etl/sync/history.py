"""Property change history for tracked properties."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.history import PropertyHistory
from ..schemas.sync import SyncResult
from .associations import load_source_ids
from .properties import parse_datetime, to_str
from .upsert import UpsertSpec, sparse_patch, upsert_entities

logger = logging.getLogger(__name__)

DEFAULT_TRACKED_PROPERTIES: dict[str, list[str]] = {
    "contact": ["hs_lead_status", "lifecyclestage"],
    "deal": ["dealstage"],
    "ticket": ["hs_pipeline_stage"],
    "company": ["meeting_invite"],
}


def fold_history(
    object_type: str,
    object_id: str,
    property_name: str,
    entries: Any,
) -> list[PropertyHistory]:
    """Turn a ``propertiesWithHistory`` list into change rows.

    Only entries with a parseable timestamp and a non-empty value count.
    Each row pairs an entry with the previously counted one: the
    predecessor's value goes to ``new_value`` and the entry's own value to
    ``old_value``. The first counted entry has no predecessor.
    """
    rows: list[PropertyHistory] = []
    if not isinstance(entries, list):
        return rows

    previous: str | None = None
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        value = to_str(entry.get("value"))
        changed_at = parse_datetime(entry.get("timestamp"))
        if changed_at is None or value is None:
            continue
        rows.append(
            PropertyHistory(
                object_type=object_type,
                object_id=object_id,
                property_name=property_name,
                new_value=previous,
                old_value=value,
                change_date=changed_at,
                source=to_str(entry.get("source")),
                source_id=to_str(entry.get("sourceId")),
            )
        )
        previous = value
    return rows


async def _find_history(db: AsyncSession, row: PropertyHistory) -> PropertyHistory | None:
    stmt = select(PropertyHistory).where(
        PropertyHistory.object_type == row.object_type,
        PropertyHistory.object_id == row.object_id,
        PropertyHistory.property_name == row.property_name,
        PropertyHistory.change_date == row.change_date,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


PROPERTY_HISTORY_SPEC: UpsertSpec[PropertyHistory] = UpsertSpec(
    "Property history",
    lambda r: (r.object_type, r.object_id, r.property_name, r.change_date),
    _find_history,
    lambda existing, incoming: sparse_patch(existing, incoming),
)


async def fetch_object_history(
    gateway,
    object_type: str,
    object_id: str,
    property_name: str,
) -> list[PropertyHistory]:
    """Fetch and fold the history of one property. Raises RuntimeError on a gateway failure."""
    result = await gateway.get_property_history(object_type, object_id, property_name)
    if not result.ok:
        raise RuntimeError(result.error or "property history request failed")
    payload = result.value if isinstance(result.value, dict) else {}
    with_history = payload.get("propertiesWithHistory")
    if not isinstance(with_history, dict):
        return []
    return fold_history(object_type, object_id, property_name, with_history.get(property_name))


async def derive_property_history(
    db: AsyncSession,
    gateway,
    *,
    tracked: dict[str, list[str]] | None = None,
    batch_size: int = 500,
    now: datetime | None = None,
) -> SyncResult:
    """Fetch history for every stored object of each tracked type and upsert the changes."""
    tracked = tracked if tracked is not None else DEFAULT_TRACKED_PROPERTIES
    result = SyncResult()
    rows: list[PropertyHistory] = []
    processed = 0

    for object_type, property_names in tracked.items():
        object_ids = await load_source_ids(db, object_type)
        logger.info(
            "Extracting property history for %d %s objects (%s)",
            len(object_ids), object_type, ", ".join(property_names),
        )
        for object_id in object_ids:
            for property_name in property_names:
                try:
                    rows.extend(await fetch_object_history(gateway, object_type, object_id, property_name))
                    processed += 1
                except Exception as e:
                    result.skipped += 1
                    logger.warning(
                        "Failed to fetch %s history for %s %s: %s",
                        property_name, object_type, object_id, e,
                    )

    logger.info(
        "Property history: %d records from %d objects, %d errors",
        len(rows), processed, result.skipped,
    )
    return result.merge(await upsert_entities(db, rows, PROPERTY_HISTORY_SPEC, batch_size=batch_size, now=now))

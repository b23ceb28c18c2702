"""Parsing of v4 batch association responses."""

from __future__ import annotations

import logging
from typing import Any

from ..sync.properties import parse_datetime, to_str
from .results import AssociationDetails

logger = logging.getLogger(__name__)


def _type_entries(item: dict[str, Any]) -> list[dict[str, Any]]:
    for key in ("associationTypes", "types"):
        entries = item.get(key)
        if isinstance(entries, list):
            return [e for e in entries if isinstance(e, dict)]
    return []


def parse_association_item(item: dict[str, Any], result: dict[str, Any]) -> AssociationDetails | None:
    """Build one edge from a ``to[]`` entry; timestamps fall back to the result level."""
    target_id = to_str(item.get("toObjectId"))
    if target_id is None:
        target_id = to_str(item.get("id"))
    if target_id is None:
        return None

    details = AssociationDetails(to_object_id=target_id)
    for entry in _type_entries(item):
        label = entry.get("label")
        if isinstance(label, str) and label.strip():
            details.labels.append(label)
            if details.label is None:
                details.label = label
        if details.type_id is None:
            type_id = entry.get("associationTypeId", entry.get("typeId"))
            if isinstance(type_id, int) and not isinstance(type_id, bool):
                details.type_id = type_id
        if details.category is None and isinstance(entry.get("category"), str):
            details.category = entry["category"]

    details.source = to_str(item.get("source"))
    details.source_id = to_str(item.get("sourceId"))
    details.created_at = parse_datetime(item.get("createdAt")) or parse_datetime(result.get("createdAt"))
    details.updated_at = parse_datetime(item.get("updatedAt")) or parse_datetime(result.get("updatedAt"))
    return details


def parse_batch_results(
    payload: Any,
    into: dict[str, list[AssociationDetails]] | None = None,
) -> dict[str, list[AssociationDetails]]:
    """Group the ``results`` of a batch read by source object id."""
    associations = into if into is not None else {}
    if not isinstance(payload, dict):
        return associations

    results = payload.get("results")
    if not isinstance(results, list):
        logger.warning("Unexpected association response shape, keys: %s", ", ".join(payload.keys()))
        return associations

    for result in results:
        if not isinstance(result, dict):
            continue
        from_obj = result.get("from")
        source_id = to_str(from_obj.get("id")) if isinstance(from_obj, dict) else None
        if source_id is None:
            logger.debug("Skipping association result without a source id")
            continue

        to_items = result.get("to")
        if not isinstance(to_items, list):
            continue
        for item in to_items:
            if not isinstance(item, dict):
                continue
            details = parse_association_item(item, result)
            if details is not None:
                associations.setdefault(source_id, []).append(details)

    return associations


def next_after(payload: Any) -> str | None:
    """Return the ``paging.next.after`` cursor, if any."""
    if not isinstance(payload, dict):
        return None
    paging = payload.get("paging")
    if not isinstance(paging, dict):
        return None
    nxt = paging.get("next")
    if not isinstance(nxt, dict):
        return None
    return to_str(nxt.get("after"))

"""Association reconciliation: batch reads, fallbacks and composite-key upserts."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.objects import singular
from ..api.results import AssociationDetails
from ..models.activity import Activity, ActivityAssociation
from ..models.association import ContactCompanyAssociation, ObjectAssociation, is_primary_label
from ..models.company import Company
from ..models.contact import Contact
from ..models.deal import Deal
from ..models.engagement import Email
from ..models.ticket import Ticket
from ..schemas.sync import SyncResult
from .context import RunContext
from .upsert import UpsertSpec, sparse_patch, upsert_entities

logger = logging.getLogger(__name__)

# (source, target) pairs reconciled into ObjectAssociation, in run order.
ASSOCIATION_MATRIX: tuple[tuple[str, str], ...] = (
    ("contact", "deal"),
    ("contact", "ticket"),
    ("company", "deal"),
    ("company", "ticket"),
    ("deal", "ticket"),
    ("ticket", "call"),
    ("ticket", "email"),
    ("ticket", "note"),
    ("ticket", "task"),
    ("ticket", "meeting"),
    ("email", "deal"),
    ("email", "company"),
    ("email", "ticket"),
    ("meeting", "deal"),
    ("meeting", "company"),
    ("meeting", "ticket"),
    ("task", "deal"),
    ("task", "company"),
    ("task", "ticket"),
)

_MIRROR_MODELS = {"contact": Contact, "company": Company, "deal": Deal, "ticket": Ticket, "email": Email}
_ACTIVITY_SOURCES = {"call": "CALL", "meeting": "MEETING", "task": "TASK", "note": "NOTE", "sms": "SMS"}

NO_CONTACT_COMPANY_ASSOCIATIONS = """\
No contact-company associations were found.
Possible causes:
  1. No contact-company relationships exist in HubSpot
  2. The private app is missing scopes: crm.objects.contacts.read, crm.objects.companies.read,
     crm.objects.contacts.associations.read, crm.objects.companies.associations.read
  3. Stored contact ids do not match HubSpot internal ids (RecordId used instead of id)
  4. Associations use a custom association type that the batch read does not return"""


def labels_json(primary: str | None, labels: Iterable[str | None]) -> str | None:
    """Serialize the primary label followed by the other labels, deduplicated case-insensitively."""
    ordered: list[str] = []
    seen: set[str] = set()
    for label in (primary, *labels):
        if not label or not label.strip():
            continue
        folded = label.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        ordered.append(label)
    return json.dumps(ordered, ensure_ascii=False) if ordered else None


def chunked(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), max(size, 1)):
        yield items[start:start + size]


# ----------------------------------------------------------------------
# Upsert specs
# ----------------------------------------------------------------------


def _merge_labelled(existing: Any, incoming: Any, label_attr: str) -> None:
    sparse_patch(existing, incoming, skip=("is_primary",))
    existing.is_primary = is_primary_label(getattr(existing, label_attr))


async def _find_object_association(db: AsyncSession, row: ObjectAssociation) -> ObjectAssociation | None:
    stmt = select(ObjectAssociation).where(
        ObjectAssociation.source_object_type == row.source_object_type,
        ObjectAssociation.source_object_id == row.source_object_id,
        ObjectAssociation.target_object_type == row.target_object_type,
        ObjectAssociation.target_object_id == row.target_object_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_contact_company(
    db: AsyncSession, row: ContactCompanyAssociation
) -> ContactCompanyAssociation | None:
    stmt = select(ContactCompanyAssociation).where(
        ContactCompanyAssociation.contact_hubspot_id == row.contact_hubspot_id,
        ContactCompanyAssociation.company_hubspot_id == row.company_hubspot_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_activity_association(db: AsyncSession, row: ActivityAssociation) -> ActivityAssociation | None:
    stmt = select(ActivityAssociation).where(
        ActivityAssociation.activity_hubspot_id == row.activity_hubspot_id,
        ActivityAssociation.associated_object_type == row.associated_object_type,
        ActivityAssociation.associated_object_id == row.associated_object_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


OBJECT_ASSOCIATION_SPEC: UpsertSpec[ObjectAssociation] = UpsertSpec(
    "Object associations",
    lambda r: (r.source_object_type, r.source_object_id, r.target_object_type, r.target_object_id),
    _find_object_association,
    lambda existing, incoming: _merge_labelled(existing, incoming, "label"),
)

CONTACT_COMPANY_SPEC: UpsertSpec[ContactCompanyAssociation] = UpsertSpec(
    "Contact-company associations",
    lambda r: (r.contact_hubspot_id, r.company_hubspot_id),
    _find_contact_company,
    lambda existing, incoming: _merge_labelled(existing, incoming, "association_type"),
)

ACTIVITY_ASSOCIATION_SPEC: UpsertSpec[ActivityAssociation] = UpsertSpec(
    "Activity associations",
    lambda r: (r.activity_hubspot_id, r.associated_object_type, r.associated_object_id),
    _find_activity_association,
    lambda existing, incoming: sparse_patch(existing, incoming),
)


# ----------------------------------------------------------------------
# Source ids
# ----------------------------------------------------------------------


async def load_source_ids(db: AsyncSession, object_type: str) -> list[str]:
    """Stored HubSpot ids for ``object_type`` (mirror table or Activity rows of that type)."""
    name = singular(object_type)
    model = _MIRROR_MODELS.get(name)
    if model is not None:
        stmt = select(model.hubspot_id)
    elif name in _ACTIVITY_SOURCES:
        stmt = select(Activity.hubspot_id).where(Activity.activity_type == _ACTIVITY_SOURCES[name])
    else:
        raise ValueError(f"No stored ids for object type {object_type!r}")
    return [row for row in (await db.execute(stmt)).scalars().all() if row]


async def _id_map(db: AsyncSession, model) -> dict[str, Any]:
    rows = await db.execute(select(model.hubspot_id, model.id))
    return {hubspot_id: pk for hubspot_id, pk in rows.all()}


# ----------------------------------------------------------------------
# Batch reads
# ----------------------------------------------------------------------


async def read_association_chunks(
    gateway,
    source_type: str,
    target_type: str,
    source_ids: list[str],
    *,
    chunk_size: int = 1000,
    errors: list[str] | None = None,
) -> dict[str, list[AssociationDetails]]:
    """Batch-read associations chunk by chunk. Failed chunks are logged and skipped."""
    collected: dict[str, list[AssociationDetails]] = {}
    for number, chunk in enumerate(chunked(source_ids, chunk_size), start=1):
        result = await gateway.read_associations(source_type, target_type, chunk)
        if not result.ok:
            message = f"{source_type}->{target_type} chunk {number} failed: {result.error}"
            logger.warning("Skipping association %s", message)
            if errors is not None:
                errors.append(message)
            continue
        for source_id, edges in (result.value or {}).items():
            collected.setdefault(source_id, []).extend(edges)
    return collected


def _edge_count(associations: dict[str, list[AssociationDetails]]) -> int:
    return sum(len(edges) for edges in associations.values())


async def reconcile_object_associations(
    db: AsyncSession,
    gateway,
    source_type: str,
    target_type: str,
    source_ids: list[str],
    *,
    chunk_size: int = 1000,
    now: datetime | None = None,
) -> SyncResult:
    """Fetch and upsert every ``source_type`` -> ``target_type`` edge for ``source_ids``."""
    source = singular(source_type)
    target = singular(target_type)
    result = SyncResult()
    if not source_ids:
        logger.info("No stored %s ids; skipping %s->%s associations", source, source, target)
        return result

    collected = await read_association_chunks(
        gateway, source, target, source_ids, chunk_size=chunk_size, errors=result.errors
    )
    if not collected:
        logger.info(
            "No %s->%s associations returned for %d %s ids (none exist, or the token lacks association scopes)",
            source, target, len(source_ids), source,
        )
        return result

    rows: list[ObjectAssociation] = []
    for source_id, edges in collected.items():
        for edge in edges:
            rows.append(
                ObjectAssociation(
                    source_object_type=source,
                    source_object_id=source_id,
                    target_object_type=target,
                    target_object_id=edge.to_object_id,
                    label=edge.label,
                    labels_json=labels_json(edge.label, edge.labels),
                    type_id=edge.type_id,
                    category=edge.category,
                    association_created_at=edge.created_at,
                    association_updated_at=edge.updated_at,
                    association_source=edge.source,
                    association_source_id=edge.source_id,
                    is_primary=is_primary_label(edge.label),
                )
            )

    return result.merge(await upsert_entities(db, rows, OBJECT_ASSOCIATION_SPEC, now=now))


async def reconcile_association_matrix(
    db: AsyncSession,
    gateway,
    *,
    pairs: Iterable[tuple[str, str]] = ASSOCIATION_MATRIX,
    chunk_size: int = 1000,
    now: datetime | None = None,
) -> SyncResult:
    """Reconcile every pair in ``pairs``, each in its own savepoint.

    A failing pair is rolled back and logged; the rest continue.
    """
    total = SyncResult()
    for source, target in pairs:
        try:
            async with db.begin_nested():
                source_ids = await load_source_ids(db, source)
                pair_result = await reconcile_object_associations(
                    db, gateway, source, target, source_ids, chunk_size=chunk_size, now=now
                )
            total.merge(pair_result)
        except Exception as e:
            logger.warning("Association pair %s->%s failed: %s", source, target, e, exc_info=True)
            total.errors.append(f"{source}->{target} associations error: {e}")
    return total


# ----------------------------------------------------------------------
# Contact <-> company
# ----------------------------------------------------------------------


def _merge_edges(
    into: dict[str, list[AssociationDetails]],
    source_id: str,
    edges: Iterable[AssociationDetails],
) -> int:
    existing = {e.to_object_id for e in into.get(source_id, [])}
    added = 0
    for edge in edges:
        if edge.to_object_id in existing:
            continue
        into.setdefault(source_id, []).append(edge)
        existing.add(edge.to_object_id)
        added += 1
    return added


async def collect_contact_company_edges(
    gateway,
    ctx: RunContext,
    contact_ids: list[str],
    company_ids: list[str],
    *,
    chunk_size: int = 1000,
    errors: list[str] | None = None,
) -> dict[str, list[AssociationDetails]]:
    """Contact id -> company edges, from batch reads, embedded listings, then the reverse lookup."""
    edges = await read_association_chunks(
        gateway, "contact", "company", contact_ids, chunk_size=chunk_size, errors=errors
    )
    logger.info("Batch read returned %d contact-company associations", _edge_count(edges))

    embedded = 0
    for contact_id, companies in ctx.contact_companies.items():
        embedded += _merge_edges(edges, contact_id, (AssociationDetails(to_object_id=c) for c in sorted(companies)))
    if embedded:
        logger.info("Merged %d contact-company associations from the contact listing", embedded)

    if not edges and company_ids:
        logger.info("Trying reverse lookup from %d companies", len(company_ids))
        reverse = await read_association_chunks(
            gateway, "company", "contact", company_ids, chunk_size=chunk_size, errors=errors
        )
        for company_id, contacts in reverse.items():
            for edge in contacts:
                flipped = AssociationDetails(
                    to_object_id=company_id,
                    label=edge.label,
                    labels=list(edge.labels),
                    type_id=edge.type_id,
                    category=edge.category,
                    source=edge.source,
                    source_id=edge.source_id,
                    created_at=edge.created_at,
                    updated_at=edge.updated_at,
                )
                _merge_edges(edges, edge.to_object_id, [flipped])
        logger.info("Reverse lookup produced %d contact-company associations", _edge_count(edges))

    return edges


async def reconcile_contact_company_associations(
    db: AsyncSession,
    gateway,
    ctx: RunContext,
    *,
    chunk_size: int = 1000,
    now: datetime | None = None,
) -> SyncResult:
    """Reconcile contact-company edges. Zero edges is a success with an empty result."""
    result = SyncResult()

    contact_ids = await load_source_ids(db, "contact")
    if not contact_ids:
        logger.warning("No stored contacts; skipping contact-company associations")
        return result
    company_ids = await load_source_ids(db, "company")

    edges = await collect_contact_company_edges(
        gateway, ctx, contact_ids, company_ids, chunk_size=chunk_size, errors=result.errors
    )
    if not edges:
        logger.warning(NO_CONTACT_COMPANY_ASSOCIATIONS)
        return result

    contacts = await _id_map(db, Contact)
    companies = await _id_map(db, Company)

    rows: list[ContactCompanyAssociation] = []
    for contact_id, company_edges in edges.items():
        for edge in company_edges:
            try:
                rows.append(
                    ContactCompanyAssociation(
                        contact_hubspot_id=contact_id,
                        company_hubspot_id=edge.to_object_id,
                        contact_id=contacts.get(contact_id),
                        company_id=companies.get(edge.to_object_id),
                        association_type=edge.label,
                        labels_json=labels_json(edge.label, edge.labels),
                        association_created_at=edge.created_at,
                        association_updated_at=edge.updated_at,
                        association_source=edge.source,
                        association_source_id=edge.source_id,
                        is_primary=is_primary_label(edge.label),
                    )
                )
            except (TypeError, ValueError) as e:
                result.skipped += 1
                logger.warning("Skipping contact-company association %s->%s: %s", contact_id, edge.to_object_id, e)

    return result.merge(await upsert_entities(db, rows, CONTACT_COMPANY_SPEC, now=now))


async def upsert_activity_associations(
    db: AsyncSession,
    rows: list[ActivityAssociation],
    *,
    now: datetime | None = None,
) -> SyncResult:
    """Upsert activity association rows, linking each to its stored Activity."""
    if not rows:
        return SyncResult()
    activity_ids = await _id_map(db, Activity)
    for row in rows:
        row.activity_id = activity_ids.get(row.activity_hubspot_id)
    return await upsert_entities(db, rows, ACTIVITY_ASSOCIATION_SPEC, now=now)

"""Test association reconciliation."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hubspot_etl.api.results import AssociationDetails
from hubspot_etl.models.association import ContactCompanyAssociation, ObjectAssociation
from hubspot_etl.models.company import Company
from hubspot_etl.models.contact import Contact
from hubspot_etl.models.deal import Deal
from hubspot_etl.models.ticket import Ticket
from hubspot_etl.sync.associations import (
    ASSOCIATION_MATRIX,
    labels_json,
    load_source_ids,
    reconcile_association_matrix,
    reconcile_contact_company_associations,
    reconcile_object_associations,
)
from hubspot_etl.sync.context import RunContext

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


async def _seed(db: AsyncSession, *entities) -> None:
    db.add_all(entities)
    await db.commit()


def test_matrix_has_every_pair_once():
    assert len(ASSOCIATION_MATRIX) == 19
    assert len(set(ASSOCIATION_MATRIX)) == 19
    assert ("contact", "deal") in ASSOCIATION_MATRIX
    assert ("task", "ticket") in ASSOCIATION_MATRIX


def test_labels_json_dedupes_case_insensitively():
    assert json.loads(labels_json("Primary", ["primary", "Billing", "", None])) == ["Primary", "Billing"]
    assert labels_json(None, []) is None


@pytest.mark.asyncio
async def test_object_associations_upsert_on_composite_key(db: AsyncSession, gateway):
    await _seed(db, Deal(hubspot_id="d1"), Ticket(hubspot_id="t1"))
    gateway.associations[("deal", "ticket")] = {
        "d1": [AssociationDetails(to_object_id="t1", label="Primary", labels=["Primary", "Escalation"], type_id=27)]
    }

    first = await reconcile_object_associations(db, gateway, "deals", "tickets", ["d1"], now=NOW)
    await db.commit()
    second = await reconcile_object_associations(db, gateway, "deal", "ticket", ["d1"], now=NOW)
    await db.commit()

    assert first.inserted == 1
    assert second.inserted == 0
    assert second.updated == 1
    rows = (await db.execute(select(ObjectAssociation))).scalars().all()
    assert len(rows) == 1
    row = rows[0]
    assert (row.source_object_type, row.target_object_type) == ("deal", "ticket")
    assert row.is_primary is True
    assert json.loads(row.labels_json) == ["Primary", "Escalation"]


@pytest.mark.asyncio
async def test_latest_non_empty_label_wins(db: AsyncSession, gateway):
    await _seed(db, Deal(hubspot_id="d1"), Ticket(hubspot_id="t1"))
    gateway.associations[("deal", "ticket")] = {"d1": [AssociationDetails(to_object_id="t1", label="Primary")]}
    await reconcile_object_associations(db, gateway, "deal", "ticket", ["d1"], now=NOW)
    await db.commit()

    gateway.associations[("deal", "ticket")] = {"d1": [AssociationDetails(to_object_id="t1", label="Escalation")]}
    await reconcile_object_associations(db, gateway, "deal", "ticket", ["d1"], now=NOW)
    await db.commit()

    row = (await db.execute(select(ObjectAssociation))).scalar_one()
    assert row.label == "Escalation"
    assert row.is_primary is False


@pytest.mark.asyncio
async def test_empty_label_keeps_stored_label(db: AsyncSession, gateway):
    await _seed(db, Deal(hubspot_id="d1"), Ticket(hubspot_id="t1"))
    gateway.associations[("deal", "ticket")] = {"d1": [AssociationDetails(to_object_id="t1", label="Primary", type_id=27)]}
    await reconcile_object_associations(db, gateway, "deal", "ticket", ["d1"], now=NOW)
    await db.commit()

    gateway.associations[("deal", "ticket")] = {"d1": [AssociationDetails(to_object_id="t1")]}
    second = await reconcile_object_associations(db, gateway, "deal", "ticket", ["d1"], now=NOW)
    await db.commit()

    assert second.updated == 1
    row = (await db.execute(select(ObjectAssociation))).scalar_one()
    assert row.label == "Primary"
    assert row.type_id == 27
    assert row.is_primary is True


@pytest.mark.asyncio
async def test_failed_chunk_is_skipped(db: AsyncSession, gateway):
    gateway.failing_associations.add(("contact", "deal"))
    result = await reconcile_object_associations(db, gateway, "contact", "deal", ["1", "2"], now=NOW)
    assert result.inserted == 0
    assert len(result.errors) == 1
    assert "contact->deal" in result.errors[0]


@pytest.mark.asyncio
async def test_reads_are_chunked(db: AsyncSession, gateway):
    ids = [str(i) for i in range(5)]
    await reconcile_object_associations(db, gateway, "contact", "deal", ids, chunk_size=2, now=NOW)
    reads = [call for call in gateway.calls if call[0] == "read_associations"]
    assert [len(call[3]) for call in reads] == [2, 2, 1]


@pytest.mark.asyncio
async def test_matrix_failure_of_one_pair_does_not_stop_others(db: AsyncSession, gateway):
    await _seed(db, Contact(hubspot_id="c1"), Deal(hubspot_id="d1"), Ticket(hubspot_id="t1"))
    gateway.failing_associations.add(("contact", "deal"))
    gateway.associations[("contact", "ticket")] = {"c1": [AssociationDetails(to_object_id="t1")]}

    result = await reconcile_association_matrix(
        db, gateway, pairs=[("contact", "deal"), ("contact", "ticket")], now=NOW
    )
    await db.commit()

    assert result.inserted == 1
    assert len(result.errors) == 1
    row = (await db.execute(select(ObjectAssociation))).scalar_one()
    assert row.is_primary is False


@pytest.mark.asyncio
async def test_load_source_ids_rejects_unknown_type(db: AsyncSession):
    with pytest.raises(ValueError):
        await load_source_ids(db, "invoices")


@pytest.mark.asyncio
async def test_contact_company_from_batch_read(db: AsyncSession, gateway):
    await _seed(db, Contact(hubspot_id="c1"), Company(hubspot_id="co1"), Company(hubspot_id="co2"))
    gateway.associations[("contact", "company")] = {
        "c1": [
            AssociationDetails(to_object_id="co1", label="Primary"),
            AssociationDetails(to_object_id="co2", label="Employer"),
        ]
    }

    result = await reconcile_contact_company_associations(db, gateway, RunContext(), now=NOW)
    await db.commit()

    assert result.inserted == 2
    rows = (await db.execute(select(ContactCompanyAssociation).order_by(ContactCompanyAssociation.company_hubspot_id))).scalars().all()
    assert [(r.company_hubspot_id, r.is_primary) for r in rows] == [("co1", True), ("co2", False)]
    assert rows[0].contact_id is not None
    assert rows[0].company_id is not None


@pytest.mark.asyncio
async def test_contact_company_merges_embedded_listing(db: AsyncSession, gateway):
    await _seed(db, Contact(hubspot_id="c1"), Contact(hubspot_id="c2"), Company(hubspot_id="co1"))
    gateway.associations[("contact", "company")] = {"c1": [AssociationDetails(to_object_id="co1")]}
    ctx = RunContext()
    ctx.remember_contact_company("c1", "co1")
    ctx.remember_contact_company("c2", "co1")

    result = await reconcile_contact_company_associations(db, gateway, ctx, now=NOW)
    await db.commit()

    assert result.inserted == 2
    count = (await db.execute(select(func.count()).select_from(ContactCompanyAssociation))).scalar_one()
    assert count == 2


@pytest.mark.asyncio
async def test_contact_company_reverse_lookup(db: AsyncSession, gateway):
    await _seed(db, Contact(hubspot_id="c1"), Company(hubspot_id="co1"))
    gateway.associations[("company", "contact")] = {"co1": [AssociationDetails(to_object_id="c1", label="Primary")]}

    result = await reconcile_contact_company_associations(db, gateway, RunContext(), now=NOW)
    await db.commit()

    assert result.inserted == 1
    row = (await db.execute(select(ContactCompanyAssociation))).scalar_one()
    assert (row.contact_hubspot_id, row.company_hubspot_id) == ("c1", "co1")
    assert row.is_primary is True


@pytest.mark.asyncio
async def test_zero_contact_company_associations_is_success(db: AsyncSession, gateway):
    await _seed(db, Contact(hubspot_id="c1"), Company(hubspot_id="co1"))

    result = await reconcile_contact_company_associations(db, gateway, RunContext(), now=NOW)

    assert result.inserted == 0
    assert result.errors == []


@pytest.mark.asyncio
async def test_matrix_pair_flush_failure_rolls_back_only_that_pair(db: AsyncSession, gateway):
    await _seed(db, Contact(hubspot_id="c1"), Deal(hubspot_id="d1"), Ticket(hubspot_id="t1"))
    db.add(Deal(hubspot_id="d2"))
    await db.flush()
    gateway.associations[("deal", "ticket")] = {"d1": [AssociationDetails(to_object_id="t1")]}

    real_load = load_source_ids

    async def load_with_bad_row(session, object_type):
        if object_type == "contact":
            session.add(Contact(hubspot_id="c1"))
            await session.flush()
        return await real_load(session, object_type)

    with patch("hubspot_etl.sync.associations.load_source_ids", load_with_bad_row):
        result = await reconcile_association_matrix(
            db, gateway, pairs=[("contact", "deal"), ("deal", "ticket")], now=NOW
        )
    await db.commit()

    assert len(result.errors) == 1
    assert "contact->deal" in result.errors[0]
    assert result.inserted == 1
    assert (await db.execute(select(func.count()).select_from(Deal))).scalar_one() == 2
    assert (await db.execute(select(func.count()).select_from(Contact))).scalar_one() == 1
    row = (await db.execute(select(ObjectAssociation))).scalar_one()
    assert (row.source_object_id, row.target_object_id) == ("d1", "t1")

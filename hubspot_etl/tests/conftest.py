"""Async test fixtures for the HubSpot ETL using SQLite."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hubspot_etl.api.objects import plural, singular
from hubspot_etl.api.results import AssociationDetails, GatewayResult, Page
from hubspot_etl.database import enable_sqlite_savepoints
from hubspot_etl.models.base import Base
from hubspot_etl.sync.context import RunContext

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_savepoints(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def ctx() -> RunContext:
    return RunContext()


@pytest.fixture
def now() -> datetime:
    return NOW


class FakeGateway:
    """In-memory stand-in for HubSpotClient.

    ``pages`` maps a collection name ("contacts", "calls", ...) to a list of
    pages; the ``after`` cursor is the index of the next page.
    ``associations`` maps (source, target) to {source_id: [AssociationDetails]}.
    """

    def __init__(self):
        self.pages: dict[str, list[list[dict]]] = {}
        self.failing_fetches: set[str] = set()
        self.associations: dict[tuple[str, str], dict[str, list[AssociationDetails]]] = {}
        self.failing_associations: set[tuple[str, str]] = set()
        self.owners: dict[str, str] = {}
        self.options: dict[tuple[str, str], dict[str, str]] = {}
        self.contacts: dict[str, dict] = {}
        self.history: dict[tuple[str, str, str], list[dict]] = {}
        self.failing_history: set[tuple[str, str, str]] = set()
        self.calls: list[tuple] = []

    def add_records(self, collection: str, records: list[dict], page_size: int = 100) -> None:
        pages = [records[i:i + page_size] for i in range(0, len(records), page_size)]
        self.pages[plural(collection)] = pages or [[]]

    async def fetch_page(self, object_type, after=None, limit=None):
        key = plural(object_type)
        self.calls.append(("fetch_page", key, after))
        if key in self.failing_fetches:
            return GatewayResult.fail(f"{key} unavailable")
        pages = self.pages.get(key, [[]])
        index = int(after or 0)
        records = pages[index] if index < len(pages) else []
        next_after = str(index + 1) if index + 1 < len(pages) else None
        return GatewayResult.success(Page(records=list(records), after=next_after))

    async def get_contact(self, contact_id):
        self.calls.append(("get_contact", contact_id))
        record = self.contacts.get(contact_id)
        if record is None:
            return GatewayResult.fail("HubSpot request failed: 404 - not found")
        return GatewayResult.success(record)

    async def get_property_history(self, object_type, object_id, property_name):
        key = (singular(object_type), object_id, property_name)
        self.calls.append(("get_property_history", *key))
        if key in self.failing_history:
            return GatewayResult.fail("HubSpot request failed: 500 - boom")
        entries = self.history.get(key, [])
        return GatewayResult.success({"id": object_id, "propertiesWithHistory": {property_name: entries}})

    async def get_owners(self):
        return GatewayResult.success(dict(self.owners))

    async def get_property_options(self, object_type, property_name):
        return GatewayResult.success(dict(self.options.get((plural(object_type), property_name), {})))

    async def read_associations(self, source_type, target_type, ids):
        key = (singular(source_type), singular(target_type))
        self.calls.append(("read_associations", *key, tuple(ids)))
        if key in self.failing_associations:
            return GatewayResult.fail("HubSpot request failed: 403 - missing scopes")
        edges = self.associations.get(key, {})
        return GatewayResult.success({i: list(edges[i]) for i in ids if i in edges})


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings():
    """Settings stand-in with the values the orchestrator reads."""
    return SimpleNamespace(
        page_size=100,
        max_pages=100,
        save_batch_size=500,
        association_batch_size=1000,
        owner_overrides={},
        ticket_stage_overrides={"4": "Lukket (Support Pipeline)"},
        ticket_pipeline_overrides={"0": "Support Pipeline"},
        tracked_history_properties={
            "contact": ["hs_lead_status", "lifecyclestage"],
            "ticket": ["hs_pipeline_stage"],
        },
    )

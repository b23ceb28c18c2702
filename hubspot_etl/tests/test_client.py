"""Test the HubSpot API client against a mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from hubspot_etl.api.client import HubSpotClient, HubSpotConfig


def _client(handler, token: str | None = "pat-test") -> HubSpotClient:
    return HubSpotClient(HubSpotConfig(token=token, base_url="https://api.test"), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_page_sends_properties_and_reads_cursor():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={"results": [{"id": "1", "properties": {}}], "paging": {"next": {"after": "abc"}}},
        )

    async with _client(handler) as hubspot:
        result = await hubspot.fetch_page("contacts", after="xyz", limit=50)

    assert result.ok
    assert result.value.after == "abc"
    assert [r["id"] for r in result.value.records] == ["1"]
    assert seen["path"] == "/crm/v3/objects/contacts"
    assert seen["params"]["after"] == "xyz"
    assert seen["params"]["limit"] == "50"
    assert seen["params"]["associations"] == "companies"
    assert "email" in seen["params"]["properties"].split(",")
    assert seen["auth"] == "Bearer pat-test"


@pytest.mark.asyncio
async def test_http_error_becomes_failed_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="expired token")

    async with _client(handler) as hubspot:
        result = await hubspot.fetch_page("deals")

    assert not result.ok
    assert "401" in result.error


@pytest.mark.asyncio
async def test_missing_token_fails_without_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler, token=None) as hubspot:
        result = await hubspot.fetch_page("deals")

    assert not result.ok
    assert "token" in result.error


@pytest.mark.asyncio
async def test_client_requires_context():
    hubspot = _client(lambda request: httpx.Response(200, json={}))
    with pytest.raises(RuntimeError):
        await hubspot._get("/crm/v3/owners/")


@pytest.mark.asyncio
async def test_read_associations_pages_and_accepts_207():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        after = request.url.params.get("after")
        if after is None:
            return httpx.Response(
                207,
                json={
                    "results": [
                        {
                            "from": {"id": "101"},
                            "to": [
                                {
                                    "toObjectId": 5001,
                                    "associationTypes": [
                                        {"category": "HUBSPOT_DEFINED", "typeId": 1, "label": None},
                                        {"category": "USER_DEFINED", "typeId": 7, "label": "Primary"},
                                    ],
                                }
                            ],
                        }
                    ],
                    "paging": {"next": {"after": "p2"}},
                },
            )
        return httpx.Response(
            200,
            json={"results": [{"from": {"id": "102"}, "to": [{"toObjectId": "5002", "types": [{"label": "Billing"}]}]}]},
        )

    async with _client(handler) as hubspot:
        result = await hubspot.read_associations("contacts", "companies", ["101", "102"])

    assert result.ok
    assert bodies[0] == {"inputs": [{"id": 101}, {"id": 102}]}
    edge = result.value["101"][0]
    assert edge.to_object_id == "5001"
    assert edge.label == "Primary"
    assert edge.type_id == 1
    assert edge.category == "HUBSPOT_DEFINED"
    assert result.value["102"][0].label == "Billing"


@pytest.mark.asyncio
async def test_get_owners_builds_names():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": "1", "firstName": "Olive", "lastName": "Owner"},
                    {"id": 2, "email": "sam@test.com"},
                ]
            },
        )

    async with _client(handler) as hubspot:
        result = await hubspot.get_owners()

    assert result.value == {"1": "Olive Owner", "2": "sam@test.com"}


@pytest.mark.asyncio
async def test_property_history_requests_single_property():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"id": "9", "propertiesWithHistory": {"dealstage": []}})

    async with _client(handler) as hubspot:
        result = await hubspot.get_property_history("deal", "9", "dealstage")

    assert result.ok
    assert seen["path"] == "/crm/v3/objects/deals/9"
    assert seen["params"] == {"propertiesWithHistory": "dealstage"}

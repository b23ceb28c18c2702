"""HubSpot CRM API client.

Thin async wrapper over the v3 objects and v4 associations endpoints.
Every public operation returns a :class:`GatewayResult`; HTTP and decoding
failures are reported through ``result.error`` rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .associations import next_after, parse_batch_results
from .objects import get_object_type, plural, singular
from .results import AssociationDetails, GatewayResult, Page

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 500


class HubSpotError(Exception):
    """Base exception for HubSpot API errors."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(self.message)


@dataclass
class HubSpotConfig:
    """HubSpot API configuration."""

    token: str | None
    base_url: str = "https://api.hubapi.com"
    timeout: float = 30.0
    page_size: int = 100
    max_pages: int = 10000

    @classmethod
    def from_settings(cls, settings=None) -> "HubSpotConfig":
        if settings is None:
            from ..config import settings
        return cls(
            token=settings.hubspot_access_token,
            base_url=settings.hubspot_base_url,
            timeout=settings.request_timeout_seconds,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
        )


class HubSpotClient:
    """HubSpot API client.

    Usage:
        async with HubSpotClient(HubSpotConfig.from_settings()) as hubspot:
            page = await hubspot.fetch_page("contacts")
    """

    BASE_URL = "https://api.hubapi.com"

    def __init__(self, config: HubSpotConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HubSpotClient":
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        self._client = httpx.AsyncClient(
            base_url=(self.config.base_url or self.BASE_URL).rstrip("/"),
            timeout=self.config.timeout,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._client

    @staticmethod
    def _check(resp: httpx.Response, *, allow: tuple[int, ...] = ()) -> Any:
        if resp.is_success or resp.status_code in allow:
            return resp.json()
        body = resp.text[:_ERROR_BODY_LIMIT]
        raise HubSpotError(
            f"HubSpot request failed: {resp.status_code} - {body}",
            status_code=resp.status_code,
            body=body,
        )

    async def _get(self, endpoint: str, **params) -> Any:
        """Make GET request."""
        resp = await self._require_client().get(endpoint, params=params or None)
        return self._check(resp)

    async def _post(self, endpoint: str, data: dict | None = None, **params) -> Any:
        """Make POST request. 207 Multi-Status counts as success for batch reads."""
        resp = await self._require_client().post(endpoint, json=data, params=params or None)
        return self._check(resp, allow=(207,))

    async def _call(self, what: str, coro) -> GatewayResult:
        if not self.config.token:
            coro.close()
            return GatewayResult.fail("HubSpot access token is not configured")
        try:
            return GatewayResult.success(await coro)
        except HubSpotError as e:
            logger.warning("%s failed: %s", what, e.message)
            return GatewayResult.fail(e.message)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("%s failed: %s", what, e)
            return GatewayResult.fail(f"{what} failed: {e}")

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def fetch_page(
        self,
        object_type: str,
        after: str | None = None,
        limit: int | None = None,
    ) -> GatewayResult[Page]:
        """Fetch one page of ``object_type`` records with their embedded associations."""
        return await self._call(f"Fetch {object_type}", self._fetch_page(object_type, after, limit))

    async def _fetch_page(self, object_type: str, after: str | None, limit: int | None) -> Page:
        spec = get_object_type(object_type)
        params: dict[str, Any] = {
            "properties": ",".join(spec.properties),
            "archived": "false",
            "limit": limit or self.config.page_size,
        }
        if spec.associations:
            params["associations"] = ",".join(spec.associations)
        if after:
            params["after"] = after

        data = await self._get(f"/crm/v3/objects/{spec.plural}", **params)
        records = data.get("results", []) if isinstance(data, dict) else []
        return Page(
            records=[r for r in records if isinstance(r, dict)],
            after=next_after(data),
        )

    async def get_contact(self, contact_id: str) -> GatewayResult[dict]:
        """Fetch one contact by id."""
        if not contact_id:
            return GatewayResult.fail("Contact id is required")
        spec = get_object_type("contact")
        return await self._call(
            f"Fetch contact {contact_id}",
            self._get(
                f"/crm/v3/objects/contacts/{contact_id}",
                properties=",".join(spec.properties),
                archived="false",
            ),
        )

    async def get_property_history(
        self, object_type: str, object_id: str, property_name: str
    ) -> GatewayResult[dict]:
        """Fetch one object with ``propertiesWithHistory`` for a single property."""
        if not object_type or not object_id or not property_name:
            return GatewayResult.fail("Object type, object id and property name are required")
        return await self._call(
            f"Property history {object_type}/{object_id}/{property_name}",
            self._get(
                f"/crm/v3/objects/{plural(object_type)}/{object_id}",
                propertiesWithHistory=property_name,
            ),
        )

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def get_owners(self) -> GatewayResult[dict[str, str]]:
        """Map owner id -> display name ("first last", else email, else id)."""
        return await self._call("Fetch owners", self._get_owners())

    async def _get_owners(self) -> dict[str, str]:
        owners: dict[str, str] = {}
        after: str | None = None
        for _ in range(self.config.max_pages):
            params: dict[str, Any] = {"archived": "false", "limit": 100}
            if after:
                params["after"] = after
            data = await self._get("/crm/v3/owners/", **params)
            for owner in data.get("results", []) if isinstance(data, dict) else []:
                if not isinstance(owner, dict):
                    continue
                owner_id = owner.get("id")
                if owner_id is None:
                    continue
                owner_id = str(owner_id)
                name = " ".join(
                    p for p in (owner.get("firstName"), owner.get("lastName")) if isinstance(p, str) and p
                ).strip()
                owners[owner_id] = name or owner.get("email") or owner_id

            nxt = next_after(data)
            if not nxt or nxt == after:
                break
            after = nxt
        return owners

    async def get_property_options(self, object_type: str, property_name: str) -> GatewayResult[dict[str, str]]:
        """Map option value -> label for a picklist property."""
        return await self._call(
            f"Property options {object_type}.{property_name}",
            self._get_property_options(object_type, property_name),
        )

    async def _get_property_options(self, object_type: str, property_name: str) -> dict[str, str]:
        data = await self._get(f"/crm/v3/properties/{plural(object_type)}/{property_name}")
        options: dict[str, str] = {}
        for option in data.get("options", []) if isinstance(data, dict) else []:
            if not isinstance(option, dict):
                continue
            value = option.get("value")
            if value is None or value == "":
                continue
            label = option.get("label")
            options[str(value)] = label if isinstance(label, str) and label else str(value)
        return options

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    async def read_associations(
        self,
        source_type: str,
        target_type: str,
        ids: list[str],
    ) -> GatewayResult[dict[str, list[AssociationDetails]]]:
        """Batch-read associations for up to one chunk of source ids, following ``after`` pages."""
        if not ids:
            return GatewayResult.success({})
        return await self._call(
            f"Associations {source_type}->{target_type}",
            self._read_associations(singular(source_type), singular(target_type), ids),
        )

    async def _read_associations(
        self, source_type: str, target_type: str, ids: list[str]
    ) -> dict[str, list[AssociationDetails]]:
        body = {"inputs": [{"id": int(i) if str(i).isdigit() else str(i)} for i in ids]}
        endpoint = f"/crm/v4/associations/{source_type}/{target_type}/batch/read"
        associations: dict[str, list[AssociationDetails]] = {}
        after: str | None = None

        for page_number in range(1, self.config.max_pages + 1):
            params = {"after": after} if after else {}
            data = await self._post(endpoint, body, **params)
            parse_batch_results(data, into=associations)
            logger.debug(
                "Association page %d for %s->%s: %d sources so far",
                page_number, source_type, target_type, len(associations),
            )
            nxt = next_after(data)
            if not nxt or nxt == after:
                break
            after = nxt

        return associations

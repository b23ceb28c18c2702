"""HubSpot ETL configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


def _default_ticket_stage_overrides() -> dict[str, str]:
    return {
        "1": "Ny ticket (Support Pipeline)",
        "2": "Venter på kunde (Support Pipeline)",
        "3": "Venter på os (Support Pipeline)",
        "4": "Lukket (Support Pipeline)",
        "861927400": "Venter på montage (Support Pipeline)",
    }


def _default_tracked_history() -> dict[str, list[str]]:
    return {
        "contact": ["hs_lead_status", "lifecyclestage"],
        "deal": ["dealstage"],
        "ticket": ["hs_pipeline_stage"],
        "company": ["meeting_invite"],
    }


class ETLSettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///hubspot_etl.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # HubSpot private app credentials
    hubspot_base_url: str = "https://api.hubapi.com"
    hubspot_access_token: str | None = None
    request_timeout_seconds: float = 30.0

    page_size: int = 100
    max_pages: int = 10000
    save_batch_size: int = 500
    association_batch_size: int = 1000
    # The run is sequential; kept for parity with deployments that tune it.
    max_concurrency: int = 1

    # Owner id -> display name, applied when the owners lookup has no entry.
    owner_overrides: dict[str, str] = {}
    ticket_stage_overrides: dict[str, str] = _default_ticket_stage_overrides()
    ticket_pipeline_overrides: dict[str, str] = {"0": "Support Pipeline"}
    tracked_history_properties: dict[str, list[str]] = _default_tracked_history()

    model_config = {"env_prefix": "HUBSPOT_ETL_", "env_file": ".env", "extra": "ignore"}

    @property
    def hubspot_configured(self) -> bool:
        return bool(self.hubspot_access_token)


settings = ETLSettings()

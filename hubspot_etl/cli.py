"""HubSpot ETL CLI - main entry point."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="hubspot-etl",
    help="Incremental HubSpot CRM -> database sync",
    no_args_is_help=True,
)
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("init-db")
def init_db_command():
    """Create all tables in the configured database."""
    from .config import settings
    from .database import engine, init_db

    _configure_logging(settings.log_level)

    async def _init():
        try:
            await init_db()
        finally:
            await engine.dispose()

    try:
        asyncio.run(_init())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Tables created in {settings.database_url}[/green]")


@app.command("run")
def run_command(
    create_tables: bool = typer.Option(True, "--create-tables/--no-create-tables", help="Create missing tables first"),
):
    """Run one full sync against the configured HubSpot account."""
    from .api.client import HubSpotClient, HubSpotConfig
    from .config import settings
    from .database import async_session_factory, engine, init_db
    from .sync.sync_engine import run_full_sync

    _configure_logging(settings.log_level)
    if not settings.hubspot_configured:
        console.print("[red]HUBSPOT_ETL_HUBSPOT_ACCESS_TOKEN is not set[/red]")
        raise typer.Exit(1)

    async def _run():
        try:
            if create_tables:
                await init_db()
            async with HubSpotClient(HubSpotConfig.from_settings(settings)) as hubspot:
                async with async_session_factory() as db:
                    return await run_full_sync(db, hubspot, settings)
        finally:
            await engine.dispose()

    try:
        result = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync cancelled[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Sync Steps")
    table.add_column("Step", style="cyan")
    table.add_column("Critical", width=8)
    table.add_column("Inserted", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Status")
    for step in result.steps:
        status = "[green]ok[/green]" if step.ok else f"[red]{step.error}[/red]"
        table.add_row(
            step.name,
            "yes" if step.critical else "",
            str(step.inserted),
            str(step.updated),
            str(step.skipped),
            status,
        )
    console.print(table)

    for error in result.errors:
        console.print(f"[yellow]- {error}[/yellow]")

    if not result.success:
        console.print("[red]Sync failed[/red]")
        raise typer.Exit(1)
    console.print("[bold green]Sync complete[/bold green]")


if __name__ == "__main__":
    app()

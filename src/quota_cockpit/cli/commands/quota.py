"""Quota display command."""

from typing import Annotated

import typer
from rich.console import Console

from quota_cockpit.cli.display_helpers import display_quota_table, display_trigger_result
from quota_cockpit.cli.helpers import resolve_settings, run
from quota_cockpit.quota import QuotaSnapshot
from quota_cockpit.services import open_services
from quota_cockpit.trigger.models import TriggerRecord


console = Console()


def quota(
    ctx: typer.Context,
    trigger_on_reset: Annotated[
        bool,
        typer.Option(
            "--trigger-on-reset",
            help="Wake up models whose quota has just reset",
        ),
    ] = False,
    model: Annotated[
        list[str] | None,
        typer.Option(
            "--model", "-m", help="Limit reset detection to this model (repeatable)"
        ),
    ] = None,
) -> None:
    """Show remaining quota per model for the active account."""
    settings = resolve_settings(ctx)

    async def _quota() -> tuple[QuotaSnapshot, list[TriggerRecord]]:
        async with open_services(settings) as services:
            await services.importer.ensure_imported()
            snapshot = await services.quota_service.fetch_snapshot()
            records: list[TriggerRecord] = []
            if trigger_on_reset and snapshot.is_connected:
                records = await services.trigger_service.check_quota_resets(
                    snapshot, model
                )
            return snapshot, records

    snapshot, records = run(console, _quota())
    display_quota_table(console, snapshot)
    for record in records:
        display_trigger_result(console, record)

    if not snapshot.is_connected:
        raise typer.Exit(1)

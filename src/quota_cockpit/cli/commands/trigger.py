"""Wake-up trigger commands."""

from typing import Annotated

import typer
from rich.console import Console

from quota_cockpit.cli.display_helpers import (
    display_history_table,
    display_models_table,
    display_trigger_result,
)
from quota_cockpit.cli.helpers import resolve_settings, run
from quota_cockpit.services import build_services, open_services
from quota_cockpit.trigger.models import (
    ModelInfo,
    TriggerRecord,
    TriggerSource,
    TriggerType,
)


app = typer.Typer(name="trigger", help="Send wake-up requests and inspect their history")

console = Console()


@app.command(name="run")
def run_trigger(
    ctx: typer.Context,
    model: Annotated[
        list[str] | None,
        typer.Option("--model", "-m", help="Model id to wake up (repeatable)"),
    ] = None,
    prompt: Annotated[
        str | None, typer.Option("--prompt", "-p", help="Prompt sent to each model")
    ] = None,
    source: Annotated[
        TriggerSource,
        typer.Option("--source", help="Source recorded in the history"),
    ] = TriggerSource.MANUAL,
) -> None:
    """Wake up one or more models.

    Without --model the configured default models are used. Scheduled runs
    (cron, systemd timers) should pass --source crontab or --source scheduled.
    """
    settings = resolve_settings(ctx)
    trigger_type = TriggerType.MANUAL if source is TriggerSource.MANUAL else TriggerType.AUTO

    async def _trigger() -> TriggerRecord:
        async with open_services(settings) as services:
            return await services.trigger_service.trigger(
                model, trigger_type, prompt, source
            )

    record = run(console, _trigger())
    display_trigger_result(console, record)
    if not record.success:
        raise typer.Exit(1)


@app.command(name="history")
def history(
    ctx: typer.Context,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Show at most this many runs")
    ] = None,
) -> None:
    """Show recent wake-up runs, newest first."""
    services = build_services(resolve_settings(ctx))
    records = services.trigger_service.get_recent_triggers()
    if limit is not None:
        records = records[:limit]

    if not records:
        console.print("[yellow]No trigger history.[/yellow]")
        return

    display_history_table(console, records)


@app.command(name="clear")
def clear(
    ctx: typer.Context,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")
    ] = False,
) -> None:
    """Delete the trigger history."""
    if not yes and not typer.confirm("Clear the trigger history?"):
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(0)

    build_services(resolve_settings(ctx)).trigger_service.clear_history()
    console.print("[green]Trigger history cleared.[/green]")


@app.command(name="models")
def models(
    ctx: typer.Context,
    constant: Annotated[
        list[str] | None,
        typer.Option("--constant", "-c", help="Only show models with this constant"),
    ] = None,
) -> None:
    """List the models available to the active account."""
    settings = resolve_settings(ctx)

    async def _models() -> list[ModelInfo]:
        async with open_services(settings) as services:
            return await services.trigger_service.fetch_available_models(constant)

    available = run(console, _models())
    if not available:
        console.print("[yellow]No models available. Are you signed in?[/yellow]")
        raise typer.Exit(1)

    display_models_table(console, available)

"""Display helpers for the cockpit commands.

Formatting lives here so the command modules only orchestrate services.
"""

from datetime import timedelta

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from quota_cockpit.auth.models import AuthorizationStatus
from quota_cockpit.quota import QuotaSnapshot
from quota_cockpit.trigger.models import ModelInfo, TriggerRecord


def format_time_remaining(remaining: timedelta | None) -> str:
    """Format time remaining until a quota reset.

    Args:
        remaining: Time left, or None when the server reported no reset time

    Returns:
        Formatted string, "Now" once the reset has passed, "-" when unknown
    """
    if remaining is None:
        return "[dim]-[/dim]"

    total_seconds = int(remaining.total_seconds())
    if total_seconds <= 0:
        return "[green]Now[/green]"

    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_percentage(percentage: float) -> str:
    if percentage <= 0:
        return f"[red]{percentage:.0f}%[/red]"
    if percentage < 20:
        return f"[yellow]{percentage:.0f}%[/yellow]"
    return f"[green]{percentage:.0f}%[/green]"


def display_accounts_table(console: Console, status: AuthorizationStatus) -> None:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Accounts",
        title_style="bold white",
    )
    table.add_column("Email", style="white")
    table.add_column("Active", justify="center")
    table.add_column("Status", justify="center")

    for account in status.accounts:
        active = "[green]*[/green]" if account.email == status.active_account else ""
        state = "[red]Invalid[/red]" if account.is_invalid else "[green]OK[/green]"
        table.add_row(escape(account.email), active, state)

    console.print(table)


def display_quota_table(console: Console, snapshot: QuotaSnapshot) -> None:
    """Print one row per model with remaining quota and time to reset."""
    if not snapshot.is_connected:
        reason = escape(snapshot.error_message or "unknown error")
        console.print(f"[red]Quota unavailable:[/red] {reason}")
        return

    if not snapshot.models:
        console.print("[yellow]No models report quota for this account.[/yellow]")
        return

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Model Quota",
        title_style="bold white",
    )
    table.add_column("Model", style="white")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets In", justify="right")

    for quota in snapshot.models:
        table.add_row(
            escape(quota.label),
            format_percentage(quota.remaining_percentage),
            format_time_remaining(quota.time_until_reset),
        )

    console.print(table)


def display_history_table(console: Console, records: list[TriggerRecord]) -> None:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Trigger History",
        title_style="bold white",
    )
    table.add_column("Time", style="dim")
    table.add_column("Type")
    table.add_column("Result", justify="center")
    table.add_column("Prompt")
    table.add_column("Duration", justify="right")

    for record in records:
        kind = str(record.trigger_type)
        if record.trigger_source:
            kind = f"{kind}/{record.trigger_source}"
        table.add_row(
            record.timestamp_datetime.strftime("%Y-%m-%d %H:%M:%S"),
            kind,
            "[green]OK[/green]" if record.success else "[red]FAILED[/red]",
            escape(record.prompt),
            f"{record.duration_ms}ms",
        )

    console.print(table)


def display_trigger_result(console: Console, record: TriggerRecord) -> None:
    if record.success:
        console.print(f"[green]Trigger succeeded[/green] in {record.duration_ms}ms")
    else:
        console.print(f"[red]Trigger failed[/red] after {record.duration_ms}ms")
    for line in record.message.splitlines():
        console.print(f"  L {escape(line)}")


def display_models_table(console: Console, models: list[ModelInfo]) -> None:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Available Models",
        title_style="bold white",
    )
    table.add_column("ID", style="white")
    table.add_column("Name")
    table.add_column("Constant", style="dim")

    for model in models:
        table.add_row(
            escape(model.id), escape(model.display_name), model.model_constant or "-"
        )

    console.print(table)

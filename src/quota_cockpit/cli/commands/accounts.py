"""Account management commands."""

from typing import Annotated

import typer
from rich.console import Console

from quota_cockpit.cli.display_helpers import display_accounts_table
from quota_cockpit.cli.helpers import fail, resolve_settings
from quota_cockpit.exceptions import AccountNotFoundError
from quota_cockpit.services import build_services


app = typer.Typer(name="accounts", help="Manage stored Google accounts")

console = Console()


@app.command(name="list")
def list_accounts(ctx: typer.Context) -> None:
    """List stored accounts and mark the active one."""
    store = build_services(resolve_settings(ctx)).store
    status = store.get_authorization_status()

    if not status.accounts:
        console.print("[yellow]No accounts stored.[/yellow]")
        console.print("Run [cyan]quota-cockpit auth login[/cyan] to add one.")
        return

    display_accounts_table(console, status)
    console.print(f"[dim]State file: {store.get_location()}[/dim]")


@app.command(name="use")
def use_account(
    ctx: typer.Context,
    email: Annotated[str, typer.Argument(help="Email of the account to activate")],
) -> None:
    """Switch the active account."""
    store = build_services(resolve_settings(ctx)).store
    stored_email = store.find_account(email)
    if stored_email is None:
        fail(console, AccountNotFoundError(email))

    store.set_active_account(stored_email)
    console.print(f"[green]Active account:[/green] {stored_email}")


@app.command(name="remove")
def remove_account(
    ctx: typer.Context,
    email: Annotated[str, typer.Argument(help="Email of the account to remove")],
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")
    ] = False,
) -> None:
    """Delete a stored account."""
    store = build_services(resolve_settings(ctx)).store
    stored_email = store.find_account(email)
    if stored_email is None:
        fail(console, AccountNotFoundError(email))

    if not yes and not typer.confirm(f"Remove account {stored_email}?"):
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(0)

    store.delete_credential(stored_email)
    console.print(f"[green]Removed account:[/green] {stored_email}")

    active = store.get_active_account()
    if active is None and store.get_all_credentials():
        console.print(
            "[dim]No active account. Run 'quota-cockpit accounts use <email>'.[/dim]"
        )

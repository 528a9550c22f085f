"""Authentication commands: browser sign-in, IDE import and status."""

from typing import Annotated

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from structlog import get_logger

from quota_cockpit.auth.models import Credential, TokenStatus
from quota_cockpit.cli.helpers import resolve_settings, run
from quota_cockpit.config.settings import Settings
from quota_cockpit.exceptions import AccountExistsError
from quota_cockpit.services import open_services


app = typer.Typer(name="auth", help="Authentication and credential management")

console = Console()
logger = get_logger(__name__)


@app.command(name="login")
def login(
    ctx: typer.Context,
    no_browser: Annotated[
        bool,
        typer.Option("--no-browser", help="Print the sign-in URL instead of opening it"),
    ] = False,
) -> None:
    """Sign in with Google in the browser and store the account."""
    settings = resolve_settings(ctx)

    async def _login() -> Credential:
        async with open_services(settings) as services:
            return await services.token_service.login(open_browser=not no_browser)

    console.print(
        f"Waiting for the sign-in callback on port {settings.oauth.callback_port}..."
    )
    credential = run(console, _login())
    console.print(f"[green]Signed in as[/green] {credential.email}")


async def _import_local(settings: Settings, overwrite: bool, assume_yes: bool) -> str:
    async with open_services(settings) as services:
        importer = services.importer
        preview = await importer.preview()
        if preview.exists and not overwrite:
            if assume_yes or typer.confirm(
                f"Account {preview.email} already exists. Overwrite it?"
            ):
                overwrite = True
            else:
                raise AccountExistsError(preview.email)

        result = await importer.commit(overwrite=overwrite)
        return result.email


@app.command(name="import-local")
def import_local(
    ctx: typer.Context,
    overwrite: Annotated[
        bool,
        typer.Option("--overwrite", help="Replace an existing account with the same email"),
    ] = False,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Answer yes to the overwrite prompt")
    ] = False,
) -> None:
    """Import the sign-in cached by the Antigravity IDE."""
    settings = resolve_settings(ctx)
    email = run(console, _import_local(settings, overwrite, yes))
    console.print(f"[green]Imported account[/green] {email}")


@app.command(name="status")
def status(ctx: typer.Context) -> None:
    """Show the active account and whether its token is usable."""
    settings = resolve_settings(ctx)

    async def _status() -> tuple[Credential | None, TokenStatus]:
        async with open_services(settings) as services:
            credential = services.store.get_credential()
            return credential, await services.token_service.get_access_token_status()

    credential, token_status = run(console, _status())
    if credential is None:
        console.print("[yellow]Not signed in.[/yellow]")
        console.print("Run [cyan]quota-cockpit auth login[/cyan] to sign in.")
        raise typer.Exit(1)

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Authorization Status",
        title_style="bold white",
    )
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Account", escape(credential.email))
    table.add_row("Project", credential.project_id or "[dim]Not resolved[/dim]")
    table.add_row(
        "Token",
        "[green]Valid[/green]"
        if token_status.is_ok
        else f"[red]{escape(token_status.describe())}[/red]",
    )
    console.print(table)

    if not token_status.is_ok:
        logger.debug("auth_status_not_ok", state=str(token_status.state))
        raise typer.Exit(1)

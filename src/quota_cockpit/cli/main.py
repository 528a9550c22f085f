"""Root typer application for quota-cockpit."""

from pathlib import Path
from typing import Annotated

import typer
from structlog import get_logger

from quota_cockpit._version import __version__
from quota_cockpit.cli.commands import accounts, auth, quota, trigger
from quota_cockpit.cli.helpers import load_settings
from quota_cockpit.core.logging import configure_logging


app = typer.Typer(
    name="quota-cockpit",
    help="Monitor Antigravity model quota and wake models up when it resets.",
    no_args_is_help=True,
)
app.add_typer(auth.app)
app.add_typer(accounts.app)
app.add_typer(trigger.app)
app.command(name="quota")(quota.quota)

logger = get_logger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"quota-cockpit {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level"),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    if log_level and log_level.upper() not in LOG_LEVELS:
        raise typer.BadParameter(
            f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level"
        )

    settings = load_settings(config)
    configure_logging(
        (log_level or settings.logging.level).upper(), settings.logging.json_logs
    )
    ctx.obj = settings
    logger.debug("settings_loaded", state_file=str(settings.storage.state_file))


def main() -> None:
    app()


if __name__ == "__main__":
    main()

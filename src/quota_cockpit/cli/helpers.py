"""Shared plumbing for CLI commands."""

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import typer
from rich.console import Console
from rich.markup import escape

from quota_cockpit.config.settings import Settings, get_settings
from quota_cockpit.exceptions import CockpitError, describe_error


T = TypeVar("T")


def load_settings(config_path: Path | None = None) -> Settings:
    try:
        return get_settings(config_path)
    except CockpitError as e:
        Console(stderr=True).print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(1) from e


def resolve_settings(ctx: typer.Context) -> Settings:
    """Settings loaded by the root callback, or freshly loaded when run standalone."""
    root = ctx.find_root()
    if isinstance(root.obj, Settings):
        return root.obj
    settings = load_settings()
    root.obj = settings
    return settings


def fail(console: Console, error: CockpitError) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(describe_error(error))}")
    raise typer.Exit(1) from error


def run(console: Console, coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion, turning cockpit errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except CockpitError as e:
        fail(console, e)

"""Helpers shared by the CLI commands: settings, logging, exit codes."""

from __future__ import annotations

import logging
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from reprodocs.config import PipelineSettings
from reprodocs.errors import ExitCode, PipelineError

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route the root logger through Rich, once per invocation."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def load_settings(**overrides: Any) -> PipelineSettings:
    """Read settings from the environment, applying CLI overrides that were given.

    Invalid settings end the process with the configuration exit code.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        settings = PipelineSettings(**values)
    except ValidationError as exc:
        err_console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        raise typer.Exit(code=int(ExitCode.CONFIGURATION_ERROR)) from exc
    configure_logging(settings.log_level)
    return settings


def fail(exc: PipelineError) -> typer.Exit:
    """Print a pipeline error and build the matching ``typer.Exit``."""
    err_console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
    return typer.Exit(code=int(exc.exit_code))

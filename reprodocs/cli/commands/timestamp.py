"""``reprodocs timestamp REVISION`` — print the canonical commit timestamp."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from reprodocs.cli.common import err_console, load_settings
from reprodocs.core.timestamp import GitCommitMetadataProvider, TimestampResolver


def timestamp_cmd(
    revision: str = typer.Argument(..., help="Commit identifier."),
    source_dir: Optional[Path] = typer.Option(
        None, "--source-dir", "-s", help="Git working tree to read the commit from."
    ),
) -> None:
    """Print the revision's commit time as 'YYYY-MM-DD HH:MM:SS' UTC."""
    settings = load_settings(source_dir=source_dir)
    resolver = TimestampResolver(GitCommitMetadataProvider(settings.source_dir))
    timestamp, used_fallback = resolver.resolve_with_status(revision)
    if used_fallback:
        err_console.print(
            f"[yellow]No commit metadata for {revision}; using fallback timestamp.[/yellow]"
        )
    typer.echo(timestamp)

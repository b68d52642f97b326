"""``reprodocs fetch-notes REVISION`` — fetch release notes through the cache."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from reprodocs.cli.common import err_console, fail, load_settings
from reprodocs.core.cache_store import FileCacheStore
from reprodocs.core.fetcher import ReleaseNotesFetcher
from reprodocs.errors import CacheStoreError


def fetch_notes_cmd(
    revision: str = typer.Argument(..., help="Commit identifier."),
    refresh: bool = typer.Option(
        False, "--refresh", help="Go to the network even if a cached snapshot exists."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the notes here instead of stdout."
    ),
    cache_dir: Optional[Path] = typer.Option(
        None, "--cache-dir", help="Persistent release-notes cache directory."
    ),
    notes_url: Optional[str] = typer.Option(
        None, "--notes-url", help="Release notes endpoint ({revision} is substituted)."
    ),
) -> None:
    """Fetch release notes for a revision; never fails because of the network."""
    settings = load_settings(cache_dir=cache_dir, notes_url=notes_url)
    try:
        store = FileCacheStore(settings.cache_dir)
    except CacheStoreError as exc:
        raise fail(exc) from exc

    fetcher = ReleaseNotesFetcher(
        store,
        settings.notes_url,
        timeout=settings.fetch_timeout_seconds,
        max_age_seconds=settings.cache_max_age_seconds,
    )
    result = fetcher.fetch(revision, refresh=refresh)

    style = "yellow" if result.degraded else "green"
    err_console.print(
        f"[{style}]{result.status.value}[/{style}] {len(result.content)} bytes"
        + (" (cached)" if result.from_cache else "")
        + (f" - {result.error}" if result.error else "")
    )
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(result.content)
    else:
        typer.echo(result.content.decode("utf-8", errors="replace"), nl=False)

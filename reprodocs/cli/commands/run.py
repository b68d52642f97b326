"""``reprodocs run`` — execute the full documentation pipeline.

Resolves the commit timestamp, fetches release notes, generates the API
docs, assembles the archive and re-derives it to prove reproducibility.
The process exit code is the run's exit code.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from reprodocs.cli.common import console, err_console, fail, load_settings
from reprodocs.errors import ExitCode, PipelineError
from reprodocs.monitor.renderer import ReportRenderer, archive_digest
from reprodocs.pipeline import build_default_pipeline, build_scheduler


def run_cmd(
    revision: str = typer.Option(
        ...,
        "--revision",
        "-r",
        envvar=["REPRODOCS_REVISION", "BUILD_VCS_NUMBER"],
        help="Commit identifier to build.",
    ),
    expected_sha256: Optional[str] = typer.Option(
        None,
        "--expect-sha256",
        help="Fail unless the archive has this digest (from another build).",
    ),
    refresh_notes: bool = typer.Option(
        False,
        "--refresh-notes",
        help="Try the notes endpoint even when a cached snapshot exists.",
    ),
    run_docs: bool = typer.Option(
        True,
        "--run-docs/--collect-docs",
        help="Run the docs command, or only collect an existing output directory.",
    ),
    source_dir: Optional[Path] = typer.Option(
        None, "--source-dir", "-s", help="Checked-out source tree."
    ),
    archive_path: Optional[Path] = typer.Option(
        None, "--archive", "-o", help="Where to write the archive."
    ),
    cache_dir: Optional[Path] = typer.Option(
        None, "--cache-dir", help="Persistent release-notes cache directory."
    ),
    notes_url: Optional[str] = typer.Option(
        None, "--notes-url", help="Release notes endpoint ({revision} is substituted)."
    ),
    run_timeout: Optional[float] = typer.Option(
        None, "--run-timeout", help="Seconds before the whole run is cancelled."
    ),
) -> None:
    """Run the reproducible documentation pipeline for one revision."""
    settings = load_settings(
        source_dir=source_dir,
        archive_path=archive_path,
        cache_dir=cache_dir,
        notes_url=notes_url,
        run_timeout_seconds=run_timeout,
    )

    try:
        stages = build_default_pipeline(
            settings,
            expected_sha256=expected_sha256,
            refresh_notes=refresh_notes,
            run_docs_command=run_docs,
        )
        scheduler = build_scheduler(stages, settings)
    except PipelineError as exc:
        raise fail(exc) from exc
    except ValueError as exc:
        err_console.print(f"[bold red]Invalid pipeline configuration:[/bold red] {exc}")
        raise typer.Exit(code=int(ExitCode.CONFIGURATION_ERROR)) from exc

    report = scheduler.run(revision)

    console.print()
    ReportRenderer(console=console).print_run(report)

    digest = archive_digest(report)
    if report.succeeded and digest:
        # sha256sum format, for scripting
        console.print(f"{digest}  {settings.archive_path}", highlight=False)

    raise typer.Exit(code=int(report.exit_code))

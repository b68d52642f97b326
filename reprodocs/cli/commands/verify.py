"""``reprodocs verify ARCHIVE`` — assert an archive is reproducible.

Compares against a second, independently built archive (``--against``) or
a digest recorded by an earlier build (``--sha256``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from reprodocs.cli.common import console, err_console, load_settings
from reprodocs.core.verifier import ReproducibilityVerifier
from reprodocs.errors import ExitCode, ReproducibilityError
from reprodocs.monitor.renderer import ReportRenderer


def verify_cmd(
    archive: Path = typer.Argument(..., exists=True, dir_okay=False, help="Archive to check."),
    against: Optional[Path] = typer.Option(
        None,
        "--against",
        "-a",
        exists=True,
        dir_okay=False,
        help="Second archive of the same revision.",
    ),
    sha256: Optional[str] = typer.Option(
        None, "--sha256", help="Recorded digest ('sha256:<hex>' or bare hex)."
    ),
) -> None:
    """Compare an archive with another build or a recorded hash."""
    load_settings()
    if (against is None) == (sha256 is None):
        err_console.print("[bold red]Give exactly one of --against or --sha256.[/bold red]")
        raise typer.Exit(code=int(ExitCode.CONFIGURATION_ERROR))

    verifier = ReproducibilityVerifier()
    if against is not None:
        report = verifier.compare(archive.read_bytes(), against.read_bytes())
    else:
        report = verifier.check_hash(archive.read_bytes(), sha256)

    ReportRenderer(console=console).print_verification(report)
    if not report.passed:
        raise typer.Exit(code=int(ReproducibilityError.exit_code))

"""Rich terminal renderer for pipeline run reports.

Turns ``RunReport`` into a stage table inside a panel, with color-coded
stage states, degradation warnings and the archive digest.

Color scheme
------------
- green     : SUCCEEDED
- red       : FAILED
- yellow    : RUNNING / READY
- dim       : PENDING
- magenta   : SKIPPED_UPSTREAM_FAILURE
- bold red  : CANCELLED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from reprodocs.errors import ExitCode
from reprodocs.models.reports import RunReport, VerificationReport
from reprodocs.models.stages import StageState

# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[StageState, str] = {
    StageState.SUCCEEDED: "bold green",
    StageState.FAILED: "bold red",
    StageState.RUNNING: "bold yellow",
    StageState.READY: "yellow",
    StageState.PENDING: "dim",
    StageState.SKIPPED_UPSTREAM_FAILURE: "bold magenta",
    StageState.CANCELLED: "bold red",
}

_STATE_LABELS: dict[StageState, str] = {
    StageState.SUCCEEDED: "[green]SUCCEEDED[/green]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.RUNNING: "[yellow]RUNNING[/yellow]",
    StageState.READY: "[yellow]READY[/yellow]",
    StageState.PENDING: "[dim]PENDING[/dim]",
    StageState.SKIPPED_UPSTREAM_FAILURE: "[magenta]SKIPPED[/magenta]",
    StageState.CANCELLED: "[bold red]CANCELLED[/bold red]",
}


class ReportRenderer:
    """Renders run and verification reports as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Run report
    # ------------------------------------------------------------------

    def render_run(self, report: RunReport) -> Panel:
        """Render a RunReport as a Panel containing the stage table."""
        table = self._build_stage_table(report)

        summary_parts: list[str] = [
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Revision:[/bold] {report.revision}",
            f"[bold]Exit:[/bold] {int(report.exit_code)} ({exit_label(report.exit_code)})",
        ]
        digest = archive_digest(report)
        if digest:
            summary_parts.append(f"[bold]sha256:[/bold] {digest}")
        summary = "  |  ".join(summary_parts)

        lines: list[Text] = [Text.from_markup(summary)]
        for warning in report.warnings:
            lines.append(Text.from_markup(f"[yellow]warning:[/yellow] {warning}"))
        if not report.succeeded:
            where = f" in {report.failed_stage}" if report.failed_stage else ""
            lines.append(
                Text.from_markup(f"[bold red]failed{where}:[/bold red] ")
                + Text(report.failure_reason or "")
            )

        if report.succeeded:
            border = "yellow" if report.warnings else "green"
        else:
            border = "red"
        return Panel(
            Group(table, Text(""), *lines),
            title="[bold]reprodocs run[/bold]",
            border_style=border,
            padding=(1, 2),
        )

    def _build_stage_table(self, report: RunReport) -> Table:
        """Build a Rich Table of stage outcomes."""
        table = Table(
            show_header=True,
            header_style="bold cyan",
            expand=True,
            show_lines=False,
            pad_edge=True,
        )

        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=22)
        table.add_column("State", min_width=12, justify="center")
        table.add_column("Details", min_width=20)
        table.add_column("Time", justify="right", width=8)
        table.add_column("Artifacts", justify="right", width=10)

        for i, outcome in enumerate(report.outcomes):
            name_style = _STATE_STYLES.get(outcome.state, "")
            state_display = _STATE_LABELS.get(outcome.state, outcome.state.value)

            details_parts: list[str] = []
            if outcome.error:
                details_parts.append(f"[red]{outcome.error}[/red]")
            if outcome.note:
                details_parts.append(f"[yellow]{outcome.note}[/yellow]")
            details = " | ".join(details_parts) if details_parts else "[dim]-[/dim]"

            artifact_count = (
                str(len(outcome.artifacts)) if outcome.artifacts else "[dim]0[/dim]"
            )
            table.add_row(
                str(i),
                f"[{name_style}]{outcome.display_name}[/{name_style}]",
                state_display,
                details,
                f"{outcome.duration_seconds:.2f}s",
                artifact_count,
            )

        return table

    def print_run(self, report: RunReport) -> None:
        """Print a run report to the console."""
        self.console.print(self.render_run(report))

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def print_verification(self, report: VerificationReport) -> None:
        """Print a verification result."""
        if report.passed:
            self.console.print(
                f"[green]Reproducible:[/green] sha256 {report.actual_sha256}"
            )
            return
        self.console.print("[bold red]NOT reproducible[/bold red]")
        self.console.print(f"  actual:   {report.actual_sha256}")
        self.console.print(f"  expected: {report.expected_sha256}")
        if report.first_difference:
            self.console.print(f"  first differing entry: [bold]{report.first_difference}[/bold]")
        if report.detail:
            self.console.print(f"  [dim]{report.detail}[/dim]")


def archive_digest(report: RunReport) -> str | None:
    """SHA-256 hex of the archive a run published, if it got that far."""
    archives = report.artifacts.get("archive")
    return archives[0].sha256 if archives else None


def exit_label(code: ExitCode) -> str:
    """Human label for an exit code, e.g. ``run timeout``."""
    return code.name.lower().replace("_", " ")

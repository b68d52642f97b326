"""Main Typer application — imports and registers all CLI commands.

Entry point: ``reprodocs`` (configured via pyproject.toml console scripts).

Commands: run, fetch-notes, timestamp, assemble, verify, hash.
"""

from __future__ import annotations

import typer

from reprodocs.cli.commands.assemble import assemble_cmd
from reprodocs.cli.commands.hash_cmd import hash_cmd
from reprodocs.cli.commands.notes import fetch_notes_cmd
from reprodocs.cli.commands.run import run_cmd
from reprodocs.cli.commands.timestamp import timestamp_cmd
from reprodocs.cli.commands.verify import verify_cmd

app = typer.Typer(
    name="reprodocs",
    help="reprodocs: reproducible documentation build pipeline.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="run", help="Run the full pipeline for a revision.")(run_cmd)
app.command(name="fetch-notes", help="Fetch release notes through the cache.")(fetch_notes_cmd)
app.command(name="timestamp", help="Print the canonical commit timestamp.")(timestamp_cmd)
app.command(name="assemble", help="Package a docs directory into a reproducible archive.")(
    assemble_cmd
)
app.command(name="verify", help="Compare an archive with another build or a hash.")(verify_cmd)
app.command(name="hash", help="Print SHA-256 digests of files.")(hash_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

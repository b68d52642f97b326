"""``reprodocs assemble`` — package a docs directory and notes file.

Produces the same archive the pipeline's archive stage would, from inputs
already on disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from reprodocs.cli.common import console, err_console, fail, load_settings
from reprodocs.core.archive import ArchiveAssembler
from reprodocs.core.docs_generator import DocumentationError, collect_directory
from reprodocs.core.hasher import sha256_hex
from reprodocs.core.timestamp import (
    GitCommitMetadataProvider,
    TimestampResolver,
    normalize_timestamp,
)
from reprodocs.errors import ExitCode, PipelineError
from reprodocs.models.artifacts import Artifact


def assemble_cmd(
    revision: str = typer.Option(..., "--revision", "-r", help="Commit identifier."),
    docs_dir: Path = typer.Option(
        ..., "--docs-dir", "-d", help="Directory of generated documentation."
    ),
    notes: Optional[Path] = typer.Option(
        None, "--notes", "-n", help="Release notes file (empty notes if omitted)."
    ),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="Commit timestamp; resolved from git in --source-dir when omitted.",
    ),
    source_dir: Optional[Path] = typer.Option(
        None, "--source-dir", "-s", help="Git working tree used to resolve the timestamp."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Where to write the archive."
    ),
) -> None:
    """Assemble a byte-reproducible archive from files on disk."""
    settings = load_settings(source_dir=source_dir, archive_path=output)

    if timestamp is None:
        resolver = TimestampResolver(GitCommitMetadataProvider(settings.source_dir))
        canonical = resolver.resolve(revision)
    else:
        canonical = normalize_timestamp(timestamp)
        if canonical is None:
            err_console.print(f"[bold red]Unparseable timestamp:[/bold red] {timestamp!r}")
            raise typer.Exit(code=int(ExitCode.CONFIGURATION_ERROR))

    try:
        files = collect_directory(docs_dir)
    except DocumentationError as exc:
        err_console.print(f"[bold red]Cannot read documentation:[/bold red] {exc}")
        raise typer.Exit(code=int(ExitCode.CONFIGURATION_ERROR)) from exc

    prefix = settings.docs_archive_prefix.strip("/")
    artifacts = [
        Artifact(path=f"{prefix}/{name}" if prefix else name, content=data)
        for name, data in files.items()
    ]
    notes_content = notes.read_bytes() if notes is not None else b""
    artifacts.append(Artifact(path=settings.notes_archive_path, content=notes_content))

    assembler = ArchiveAssembler(include_build_info=settings.include_build_info)
    try:
        archive = assembler.assemble(revision, canonical, artifacts)
    except PipelineError as exc:
        raise fail(exc) from exc

    path = ArchiveAssembler.write(settings.archive_path, archive)
    console.print(f"{sha256_hex(archive)}  {path}", highlight=False)

"""``reprodocs hash FILE...`` — print SHA-256 digests in ``sha256sum`` format."""

from __future__ import annotations

import hashlib
from pathlib import Path

import typer


def hash_cmd(
    files: list[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Files to hash."),
) -> None:
    """Print '<sha256>  <path>' for each file."""
    for path in files:
        digest = hashlib.sha256()
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(1 << 16), b""):
                digest.update(chunk)
        typer.echo(f"{digest.hexdigest()}  {path}")

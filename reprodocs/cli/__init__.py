"""reprodocs CLI — Typer-based command-line interface.

Provides the ``reprodocs`` command with subcommands for running the full
pipeline, fetching release notes, resolving commit timestamps, assembling
and verifying archives.

All output uses Rich for formatted terminal display.
"""

"""Tests for documentation collaborators — directory collection and commands."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from reprodocs.core.docs_generator import (
    CommandDocumentationGenerator,
    DirectoryDocumentationGenerator,
    DocumentationError,
    DocumentationGenerator,
    collect_directory,
)

DOCS = Path("target/reports/apidocs")


class TestCollectDirectory:
    def test_relative_posix_keys(self, source_dir: Path):
        files = collect_directory(source_dir / DOCS)
        assert sorted(files) == ["com/example/Widget.html", "index.html", "package-list"]
        assert files["index.html"] == b"<html>index</html>\n"

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(DocumentationError, match="does not exist"):
            collect_directory(tmp_path / "nothing")

    def test_empty_directory(self, tmp_path: Path):
        (tmp_path / "empty").mkdir()
        with pytest.raises(DocumentationError, match="empty"):
            collect_directory(tmp_path / "empty")

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinks_skipped(self, source_dir: Path, tmp_path: Path):
        outside = tmp_path / "outside.txt"
        outside.write_text("host specific")
        (source_dir / DOCS / "link.txt").symlink_to(outside)
        assert "link.txt" not in collect_directory(source_dir / DOCS)


class TestDirectoryGenerator:
    def test_reads_relative_to_source(self, source_dir: Path):
        generator = DirectoryDocumentationGenerator(DOCS)
        assert isinstance(generator, DocumentationGenerator)
        assert "index.html" in generator.generate(source_dir)


class TestCommandGenerator:
    def test_runs_command_then_collects(self, tmp_path: Path):
        script = "import pathlib; p = pathlib.Path('out'); p.mkdir(); (p / 'a.html').write_text('hi')"
        generator = CommandDocumentationGenerator(
            f'"{sys.executable}" -c "{script}"', Path("out"), timeout=30
        )
        assert generator.generate(tmp_path) == {"a.html": b"hi"}

    def test_nonzero_exit(self, tmp_path: Path):
        generator = CommandDocumentationGenerator(
            f'"{sys.executable}" -c "import sys; sys.exit(3)"', Path("out")
        )
        with pytest.raises(DocumentationError, match="exited with 3"):
            generator.generate(tmp_path)

    def test_missing_executable(self, tmp_path: Path):
        generator = CommandDocumentationGenerator("definitely-not-a-real-tool --flag", Path("out"))
        with pytest.raises(DocumentationError, match="Cannot run"):
            generator.generate(tmp_path)

    def test_timeout(self, tmp_path: Path):
        generator = CommandDocumentationGenerator(
            f'"{sys.executable}" -c "import time; time.sleep(5)"', Path("out"), timeout=0.2
        )
        with pytest.raises(DocumentationError, match="timed out"):
            generator.generate(tmp_path)

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            CommandDocumentationGenerator("   ", Path("out"))

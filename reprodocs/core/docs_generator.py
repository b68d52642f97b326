"""Documentation generator collaborators.

The core never knows how documentation is produced; it only consumes the
files a generator leaves in its output directory, mapped to logical paths
under an archive prefix.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class DocumentationError(RuntimeError):
    """Raised when documentation could not be generated or collected."""


@runtime_checkable
class DocumentationGenerator(Protocol):
    """Protocol for documentation backends.

    ``generate`` returns a mapping of paths relative to the generator's
    output directory to file contents.
    """

    def generate(self, source_dir: Path) -> dict[str, bytes]:
        ...


def collect_directory(root: Path) -> dict[str, bytes]:
    """Read every regular file under *root*, keyed by relative POSIX path.

    Symlinks are skipped: their targets are host-specific.
    """
    root = Path(root)
    if not root.is_dir():
        raise DocumentationError(f"Documentation output directory {root} does not exist")
    files: dict[str, bytes] = {}
    for path in sorted(root.rglob("*")):
        if path.is_symlink():
            logger.warning("Skipping symlink in documentation output: %s", path)
            continue
        if path.is_file():
            files[path.relative_to(root).as_posix()] = path.read_bytes()
    if not files:
        raise DocumentationError(f"Documentation output directory {root} is empty")
    return files


class DirectoryDocumentationGenerator:
    """Collects documentation that was generated before the pipeline ran.

    Parameters
    ----------
    output_dir:
        Directory holding the generated files, relative to the source tree
        unless absolute.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def generate(self, source_dir: Path) -> dict[str, bytes]:
        return collect_directory(Path(source_dir) / self.output_dir)


class CommandDocumentationGenerator:
    """Runs a documentation command in the source tree, then collects its output.

    The command is split with :func:`shlex.split` and run without a shell.

    Parameters
    ----------
    command:
        E.g. ``"mvn -B -q javadoc:javadoc"``.
    output_dir:
        Where the command writes its files, relative to the source tree.
    timeout:
        Seconds before the command is killed.
    """

    def __init__(self, command: str, output_dir: Path, timeout: float | None = None) -> None:
        self.argv = shlex.split(command)
        if not self.argv:
            raise ValueError("Documentation command must not be empty")
        self.output_dir = Path(output_dir)
        self.timeout = timeout

    def generate(self, source_dir: Path) -> dict[str, bytes]:
        logger.info("Generating documentation: %s", shlex.join(self.argv))
        try:
            result = subprocess.run(
                self.argv,
                cwd=source_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise DocumentationError(
                f"{self.argv[0]} timed out after {exc.timeout}s"
            ) from exc
        except OSError as exc:
            raise DocumentationError(f"Cannot run {self.argv[0]}: {exc}") from exc

        if result.returncode != 0:
            tail = (result.stderr or result.stdout).strip().splitlines()[-5:]
            raise DocumentationError(
                f"{self.argv[0]} exited with {result.returncode}: " + " | ".join(tail)
            )
        return collect_directory(Path(source_dir) / self.output_dir)

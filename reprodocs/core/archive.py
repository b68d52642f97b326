"""Deterministic archive assembly.

``ArchiveAssembler.assemble`` is a pure function of the revision, its
canonical timestamp and the artifact contents.  Every degree of freedom a
plain "tar these files" would leave to the host is pinned:

- entry order: byte-wise sort of the logical paths
- mtime: the revision timestamp on every entry
- mode: 0644 files, 0755 directories; uid/gid 0, owner names "root"
- gzip header: no file name, mtime 0, level 9 (Python writes OS byte 255)

Output is a gzip-compressed PAX tar.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import tarfile
import tempfile
from collections.abc import Iterable
from pathlib import Path

from reprodocs.core.hasher import canonical_json_bytes, sha256_hex
from reprodocs.core.timestamp import normalize_timestamp, timestamp_to_epoch
from reprodocs.errors import PackagingDeterminismViolation
from reprodocs.models.artifacts import Artifact

logger = logging.getLogger(__name__)

FILE_MODE = 0o644
DIR_MODE = 0o755
OWNER_ID = 0
OWNER_NAME = "root"
GZIP_LEVEL = 9
GZIP_MTIME = 0
BUILD_INFO_NAME = "BUILD-INFO.json"


def normalize_path(path: str) -> str:
    """Normalize a logical path to relative POSIX form.

    Raises PackagingDeterminismViolation for paths that cannot be placed
    unambiguously in the archive.
    """
    if "\x00" in path:
        raise PackagingDeterminismViolation(f"NUL byte in artifact path {path!r}")
    if path.startswith("/"):
        raise PackagingDeterminismViolation(f"Absolute artifact path {path!r}")
    parts = [seg for seg in path.split("/") if seg not in ("", ".")]
    if not parts:
        raise PackagingDeterminismViolation(f"Empty artifact path {path!r}")
    if ".." in parts:
        raise PackagingDeterminismViolation(f"Artifact path escapes archive root: {path!r}")
    return "/".join(parts)


def _byte_order(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


class ArchiveAssembler:
    """Packages artifacts into one byte-reproducible ``.tar.gz``.

    Parameters
    ----------
    include_build_info:
        Add a ``BUILD-INFO.json`` entry recording the revision, timestamp
        and per-file digests.
    """

    def __init__(self, *, include_build_info: bool = True) -> None:
        self.include_build_info = include_build_info

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(
        self,
        revision: str,
        timestamp: str,
        artifacts: Iterable[Artifact | tuple[str, bytes]],
    ) -> bytes:
        """Return the archive bytes for *artifacts* at *timestamp*.

        *artifacts* may arrive in any order; they are sorted here.
        """
        if normalize_timestamp(timestamp) != timestamp:
            raise PackagingDeterminismViolation(
                f"Timestamp must be canonical 'YYYY-MM-DD HH:MM:SS', got {timestamp!r}"
            )
        mtime = timestamp_to_epoch(timestamp)

        files = self._collect(artifacts)
        if self.include_build_info:
            if BUILD_INFO_NAME in files:
                raise PackagingDeterminismViolation(
                    f"Artifact path collides with generated {BUILD_INFO_NAME}"
                )
            files[BUILD_INFO_NAME] = self.build_info(revision, timestamp, files)

        directories = self._directories(files)

        entries: list[tuple[str, bytes | None]] = [(name, data) for name, data in files.items()]
        entries.extend((name, None) for name in directories)
        entries.sort(key=lambda item: _byte_order(item[0] + ("/" if item[1] is None else "")))

        tar_buffer = io.BytesIO()
        with tarfile.open(fileobj=tar_buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for name, data in entries:
                info = self._tarinfo(name, data, mtime)
                tar.addfile(info, io.BytesIO(data) if data is not None else None)

        out = io.BytesIO()
        with gzip.GzipFile(
            filename="",
            mode="wb",
            fileobj=out,
            compresslevel=GZIP_LEVEL,
            mtime=GZIP_MTIME,
        ) as gz:
            gz.write(tar_buffer.getvalue())

        archive = out.getvalue()
        logger.info(
            "Assembled archive for %s: %d files, %d bytes, sha256=%s",
            revision,
            len(files),
            len(archive),
            sha256_hex(archive),
        )
        return archive

    def build_info(self, revision: str, timestamp: str, files: dict[str, bytes]) -> bytes:
        """Canonical JSON manifest of the archive contents."""
        manifest = {
            "revision": revision,
            "timestamp": timestamp,
            "files": [
                {"path": name, "sha256": sha256_hex(files[name]), "size": len(files[name])}
                for name in sorted(files, key=_byte_order)
            ],
        }
        return canonical_json_bytes(manifest) + b"\n"

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @staticmethod
    def write(path: Path, archive: bytes) -> Path:
        """Atomically write *archive* to *path* (temp file, then rename)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(archive)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        return path

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _collect(artifacts: Iterable[Artifact | tuple[str, bytes]]) -> dict[str, bytes]:
        files: dict[str, bytes] = {}
        for item in artifacts:
            if isinstance(item, Artifact):
                raw_path, content = item.path, item.content
            else:
                raw_path, content = item
            name = normalize_path(raw_path)
            if name in files:
                raise PackagingDeterminismViolation(
                    f"Artifact path collision after normalization: {name!r}"
                )
            files[name] = bytes(content)
        return files

    @staticmethod
    def _directories(files: dict[str, bytes]) -> set[str]:
        directories: set[str] = set()
        for name in files:
            parts = name.split("/")
            for depth in range(1, len(parts)):
                directories.add("/".join(parts[:depth]))
        clash = sorted(directories & files.keys())
        if clash:
            raise PackagingDeterminismViolation(
                f"Artifact paths used as both file and directory: {clash}"
            )
        return directories

    @staticmethod
    def _tarinfo(name: str, data: bytes | None, mtime: int) -> tarfile.TarInfo:
        info = tarfile.TarInfo(name)
        info.mtime = mtime
        info.uid = OWNER_ID
        info.gid = OWNER_ID
        info.uname = OWNER_NAME
        info.gname = OWNER_NAME
        if data is None:
            info.type = tarfile.DIRTYPE
            info.mode = DIR_MODE
            info.size = 0
        else:
            info.type = tarfile.REGTYPE
            info.mode = FILE_MODE
            info.size = len(data)
        return info

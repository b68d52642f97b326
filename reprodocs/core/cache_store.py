"""Persistent, revision-keyed release-notes cache store.

Storage layout: {base_path}/{key[0:2]}/{key}.json
Writes go to a temp file in the same directory and are renamed into place,
so a reader sees either the previous entry or the complete new one, never a
torn write.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from reprodocs.core.hasher import revision_key, sha256_hex
from reprodocs.errors import CacheStoreCorruption, CacheStoreError
from reprodocs.models.cache import CacheEntry

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1


@runtime_checkable
class CacheStore(Protocol):
    """Key-value store of release-notes snapshots, keyed by revision.

    ``get`` returns ``None`` for an absent key and raises
    ``CacheStoreCorruption`` for an entry that fails integrity checks.
    ``put`` must be atomic per revision.
    """

    def get(self, revision: str) -> CacheEntry | None:
        ...

    def put(self, entry: CacheEntry) -> None:
        ...


def seal(entry: CacheEntry) -> CacheEntry:
    """Return *entry* with ``content_sha256`` filled in."""
    return entry.model_copy(update={"content_sha256": sha256_hex(entry.content)})


def check_integrity(entry: CacheEntry, revision: str) -> CacheEntry:
    """Raise CacheStoreCorruption unless *entry* is sealed and belongs to *revision*."""
    if entry.revision != revision:
        raise CacheStoreCorruption(
            f"Cache entry for {revision!r} is labelled {entry.revision!r}"
        )
    if sha256_hex(entry.content) != entry.content_sha256:
        raise CacheStoreCorruption(
            f"Cache entry for {revision!r} failed integrity check"
        )
    if entry.fetched_at.utcoffset() is None:
        raise CacheStoreCorruption(
            f"Cache entry for {revision!r} has a fetched_at without timezone"
        )
    return entry


class FileCacheStore:
    """Directory-backed cache store with atomic per-revision writes.

    Parameters
    ----------
    base_path:
        Root directory, typically outside any run's workspace so it
        survives clean checkouts.

    Raises
    ------
    CacheStoreError
        If the directory cannot be created.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        try:
            self._base.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheStoreError(
                f"Cannot create cache directory {self._base}: {exc}"
            ) from exc
        if not os.access(self._base, os.W_OK):
            raise CacheStoreError(f"Cache directory {self._base} is not writable")

    @property
    def base_path(self) -> Path:
        return self._base

    def entry_path(self, revision: str) -> Path:
        """Compute the storage path for a revision.

        Layout: {base}/{key[0:2]}/{key}.json
        """
        key = revision_key(revision)
        return self._base / key[:2] / f"{key}.json"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, revision: str) -> CacheEntry | None:
        path = self.entry_path(revision)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheStoreCorruption(f"Cannot read {path}: {exc}") from exc

        try:
            record = json.loads(raw)
            if record.get("schema_version") != _SCHEMA_VERSION:
                raise CacheStoreCorruption(
                    f"Unsupported cache schema in {path}: {record.get('schema_version')!r}"
                )
            entry = CacheEntry(
                revision=record["revision"],
                content=base64.b64decode(record["content_b64"], validate=True),
                fetched_at=record["fetched_at"],
                source_status=record["source_status"],
                source_url=record.get("source_url", ""),
                content_sha256=record["content_sha256"],
            )
        except CacheStoreCorruption:
            raise
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as exc:
            raise CacheStoreCorruption(f"Malformed cache entry {path}: {exc}") from exc

        return check_integrity(entry, revision)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put(self, entry: CacheEntry) -> None:
        sealed = seal(entry)
        path = self.entry_path(sealed.revision)
        record = {
            "schema_version": _SCHEMA_VERSION,
            "revision": sealed.revision,
            "content_b64": base64.b64encode(sealed.content).decode("ascii"),
            "content_sha256": sealed.content_sha256,
            "fetched_at": sealed.fetched_at.isoformat(),
            "source_status": sealed.source_status.value,
            "source_url": sealed.source_url,
        }
        payload = json.dumps(record, sort_keys=True, indent=2).encode("utf-8")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
        except OSError as exc:
            raise CacheStoreError(f"Cannot write cache entry {path}: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            raise CacheStoreError(f"Cannot write cache entry {path}: {exc}") from exc
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.debug("Cached release notes for %s at %s", sealed.revision, path)


class MemoryCacheStore:
    """In-process cache store with the same contract as FileCacheStore."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, revision: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(revision_key(revision))
        if entry is None:
            return None
        return check_integrity(entry, revision)

    def put(self, entry: CacheEntry) -> None:
        sealed = seal(entry)
        with self._lock:
            self._entries[revision_key(sealed.revision)] = sealed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

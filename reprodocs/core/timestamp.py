"""Revision-deterministic timestamp resolution.

The archive's embedded modification time comes from the revision's own
commit metadata, never from the machine clock, so every machine that builds
the same revision embeds the same time.  Broken or missing metadata resolves
to a fixed constant rather than an error.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Earliest time every common archive format (zip included) can represent.
FALLBACK_TIMESTAMP = "1980-01-01 00:00:00"

_CANONICAL_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
_OFFSET_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2}:\d{2})\s*(Z|[+-]\d{2}:?\d{2})$"
)
_EPOCH_RE = re.compile(r"^\d{1,12}$")


@runtime_checkable
class CommitMetadataProvider(Protocol):
    """Anything that can report a commit's timestamp.

    Returns ``None`` when the metadata is unavailable.
    """

    def get_commit_timestamp(self, revision: str) -> str | None:
        ...


class StaticCommitMetadataProvider:
    """Commit timestamps from a fixed mapping (injected values, tests)."""

    def __init__(self, timestamps: Mapping[str, str]) -> None:
        self._timestamps = dict(timestamps)

    def get_commit_timestamp(self, revision: str) -> str | None:
        return self._timestamps.get(revision)


class GitCommitMetadataProvider:
    """Ask git for the committer time of a revision in a checkout.

    Uses ``%ct`` (epoch seconds) so the answer does not depend on the
    committer's timezone.

    Parameters
    ----------
    repo_dir:
        Checkout to run git in.
    timeout:
        Seconds to wait for git before treating the metadata as absent.
    """

    def __init__(self, repo_dir: Path, timeout: float = 10.0) -> None:
        self._repo_dir = Path(repo_dir)
        self._timeout = timeout

    def get_commit_timestamp(self, revision: str) -> str | None:
        try:
            result = subprocess.run(
                ["git", "log", "-1", "--format=%ct", revision, "--"],
                cwd=self._repo_dir,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (subprocess.SubprocessError, OSError) as exc:
            logger.debug("git metadata unavailable for %s: %s", revision, exc)
            return None
        if result.returncode != 0:
            logger.debug(
                "git log failed for %s: %s", revision, result.stderr.strip()
            )
            return None
        return result.stdout.strip() or None


def normalize_timestamp(raw: str | None) -> str | None:
    """Convert accepted commit-time spellings to ``YYYY-MM-DD HH:MM:SS`` UTC.

    Accepted: the canonical form (taken as UTC), the canonical form or ISO
    form followed by an offset (``+0200``, ``+02:00``, ``Z``), and bare
    epoch seconds.  Returns ``None`` for anything else.
    """
    if raw is None:
        return None
    value = raw.strip()
    try:
        if _CANONICAL_RE.match(value):
            parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
            return parsed.strftime(TIMESTAMP_FORMAT)
        if _EPOCH_RE.match(value):
            parsed = datetime.fromtimestamp(int(value), tz=timezone.utc)
            return parsed.strftime(TIMESTAMP_FORMAT)
        match = _OFFSET_RE.match(value)
        if match:
            date_part, time_part, offset = match.groups()
            naive = datetime.strptime(f"{date_part} {time_part}", TIMESTAMP_FORMAT)
            aware = naive.replace(tzinfo=_parse_offset(offset))
            return aware.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def _parse_offset(offset: str) -> timezone:
    if offset == "Z":
        return timezone.utc
    sign = -1 if offset[0] == "-" else 1
    digits = offset[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * delta)


def timestamp_to_epoch(timestamp: str) -> int:
    """Integer epoch seconds for a canonical UTC timestamp string."""
    parsed = datetime.strptime(timestamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


class TimestampResolver:
    """Derives the canonical build timestamp for a revision.

    Parameters
    ----------
    provider:
        Source of commit metadata.
    fallback:
        Value returned when metadata is missing or malformed.
    """

    def __init__(
        self,
        provider: CommitMetadataProvider,
        fallback: str = FALLBACK_TIMESTAMP,
    ) -> None:
        if normalize_timestamp(fallback) != fallback:
            raise ValueError(f"Fallback timestamp must be canonical, got {fallback!r}")
        self._provider = provider
        self._fallback = fallback

    def resolve(self, revision: str) -> str:
        """Return the commit timestamp of *revision* as ``YYYY-MM-DD HH:MM:SS`` UTC."""
        timestamp, _ = self.resolve_with_status(revision)
        return timestamp

    def resolve_with_status(self, revision: str) -> tuple[str, bool]:
        """Like :meth:`resolve`, also reporting whether the fallback was used."""
        raw = self._provider.get_commit_timestamp(revision)
        timestamp = normalize_timestamp(raw)
        if timestamp is None:
            logger.warning(
                "Could not extract commit timestamp for %s (got %r), using fallback %s",
                revision,
                raw,
                self._fallback,
            )
            return self._fallback, True
        return timestamp, False

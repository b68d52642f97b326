"""Release-notes cache models — persistent entries and typed fetch results."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FetchStatus(str, Enum):
    """Freshness of the content a fetch returned."""

    FRESH = "fresh"
    STALE_FALLBACK = "stale_fallback"
    MISSING = "missing"


class CacheEntry(BaseModel):
    """One persisted release-notes snapshot, keyed by revision.

    ``content_sha256`` seals the content: a read whose bytes do not hash to
    it is treated as corruption.
    """

    model_config = ConfigDict(frozen=True)

    revision: str
    content: bytes
    fetched_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    source_status: FetchStatus = FetchStatus.FRESH
    source_url: str = ""
    content_sha256: str = ""

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the entry was fetched."""
        now = now or datetime.now(timezone.utc)
        return (now - self.fetched_at).total_seconds()


class FetchResult(BaseModel):
    """Outcome of a release-notes fetch.

    A fetch never raises; failures show up as ``status`` other than FRESH,
    with the absorbed failure described in ``error``.
    """

    model_config = ConfigDict(frozen=True)

    revision: str
    content: bytes = b""
    status: FetchStatus
    from_cache: bool = False
    fetched_at: datetime | None = None
    error: str | None = None

    @property
    def degraded(self) -> bool:
        """True when the content is not a fresh snapshot."""
        return self.status != FetchStatus.FRESH

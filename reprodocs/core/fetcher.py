"""External fetch cache for release notes.

Release notes come from an unreliable marketing endpoint.  ``fetch`` turns
every possible failure (timeout, non-2xx, connection error, corrupt cache)
into a typed ``FetchResult`` whose ``status`` says how fresh the content is.
It never raises, so the release-notes stage can never fail the pipeline.

Lookup order for a revision:

1. A cache entry fetched for this exact revision, if it is not older than
   ``max_age_seconds``: returned without touching the network.
2. One network fetch with a bounded timeout; success is persisted as FRESH.
3. On failure: the cached entry (even if too old) as STALE_FALLBACK, or
   empty content as MISSING.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

import httpx

from reprodocs.core.cache_store import CacheStore
from reprodocs.errors import CacheStoreCorruption, TransientNetworkError
from reprodocs.models.cache import CacheEntry, FetchResult, FetchStatus

logger = logging.getLogger(__name__)

PLACEHOLDER_CONTENT = b""


class ReleaseNotesFetcher:
    """Revision-addressed, cache-backed release-notes fetcher.

    Parameters
    ----------
    store:
        Persistent cache store shared across runs.
    url_template:
        Endpoint URL.  ``{revision}`` is replaced by the revision; without
        the placeholder the revision is sent as the ``revision`` query
        parameter.
    timeout:
        Seconds allowed for the whole request.  The deadline is checked
        between body chunks; a single stalled connect or read is cut off
        after the same number of seconds.
    max_age_seconds:
        Cached entries older than this are refetched.  ``None`` keeps a
        snapshot per revision forever.
    client:
        Optional pre-built ``httpx.Client`` (tests pass one with a
        ``MockTransport``).  The fetcher closes only clients it created.
    """

    def __init__(
        self,
        store: CacheStore,
        url_template: str,
        *,
        timeout: float = 30.0,
        max_age_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._store = store
        self._url_template = url_template
        self._timeout = timeout
        self._max_age = max_age_seconds
        self._client = client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch(
        self,
        revision: str,
        *,
        refresh: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> FetchResult:
        """Return release notes for *revision*; never raises.

        Once *cancel_event* is set, fetched content is still returned but
        no longer written to the shared cache.
        """
        cached = self._read_cache(revision)

        if cached is not None and not refresh and not self._is_expired(cached):
            logger.info("Release notes for %s served from cache", revision)
            return FetchResult(
                revision=revision,
                content=cached.content,
                status=FetchStatus.FRESH,
                from_cache=True,
                fetched_at=cached.fetched_at,
            )

        try:
            content = self._download(revision)
        except TransientNetworkError as exc:
            return self._fallback(revision, cached, str(exc))

        entry = CacheEntry(
            revision=revision,
            content=content,
            source_status=FetchStatus.FRESH,
            source_url=self.url_for(revision),
        )
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Run cancelled; not caching release notes for %s", revision)
        else:
            self._write_cache(entry)
        logger.info(
            "Fetched release notes for %s (%d bytes)", revision, len(content)
        )
        return FetchResult(
            revision=revision,
            content=content,
            status=FetchStatus.FRESH,
            fetched_at=entry.fetched_at,
        )

    def url_for(self, revision: str) -> str:
        """The URL requested for *revision*."""
        if "{revision}" in self._url_template:
            return self._url_template.replace("{revision}", revision)
        return self._url_template

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_cache(self, revision: str) -> CacheEntry | None:
        """The cached entry for *revision*, or ``None`` for anything but a clean one."""
        try:
            entry = self._store.get(revision)
        except CacheStoreCorruption as exc:
            logger.warning("Ignoring corrupt cache entry for %s: %s", revision, exc)
            return None
        except Exception as exc:
            # Any store failure reads as a miss.
            logger.warning(
                "Cache lookup for %s failed: %s: %s", revision, type(exc).__name__, exc
            )
            return None
        if entry is not None and entry.fetched_at.utcoffset() is None:
            logger.warning(
                "Ignoring cache entry for %s: fetched_at has no timezone", revision
            )
            return None
        return entry

    def _write_cache(self, entry: CacheEntry) -> None:
        try:
            self._store.put(entry)
        except Exception as exc:
            logger.warning(
                "Fetched release notes for %s but could not cache them: %s",
                entry.revision,
                exc,
            )

    def _is_expired(self, entry: CacheEntry) -> bool:
        if self._max_age is None:
            return False
        return entry.age_seconds(datetime.now(timezone.utc)) > self._max_age

    def _download(self, revision: str) -> bytes:
        url = self.url_for(revision)
        params = None if "{revision}" in self._url_template else {"revision": revision}
        deadline = time.monotonic() + self._timeout
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            with client.stream("GET", url, params=params, timeout=self._timeout) as response:
                response.raise_for_status()
                body = bytearray()
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    if time.monotonic() > deadline:
                        raise TransientNetworkError(
                            f"{url} did not finish within {self._timeout}s"
                        )
            return bytes(body)
        except httpx.HTTPStatusError as exc:
            raise TransientNetworkError(
                f"{url} returned HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransientNetworkError(
                f"{url} unreachable: {type(exc).__name__}: {exc}"
            ) from exc
        finally:
            if self._client is None:
                client.close()

    def _fallback(
        self, revision: str, cached: CacheEntry | None, error: str
    ) -> FetchResult:
        if cached is not None:
            logger.warning(
                "Release notes fetch failed for %s (%s); using cached snapshot from %s",
                revision,
                error,
                cached.fetched_at.isoformat(),
            )
            return FetchResult(
                revision=revision,
                content=cached.content,
                status=FetchStatus.STALE_FALLBACK,
                from_cache=True,
                fetched_at=cached.fetched_at,
                error=error,
            )
        logger.warning(
            "Release notes fetch failed for %s (%s); no cached snapshot, continuing with placeholder",
            revision,
            error,
        )
        return FetchResult(
            revision=revision,
            content=PLACEHOLDER_CONTENT,
            status=FetchStatus.MISSING,
            error=error,
        )

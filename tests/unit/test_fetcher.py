"""Tests for the ReleaseNotesFetcher — cache-first lookup and non-fatal failure."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from reprodocs.core.cache_store import MemoryCacheStore
from reprodocs.core.fetcher import ReleaseNotesFetcher
from reprodocs.errors import CacheStoreCorruption, CacheStoreError
from reprodocs.models.cache import CacheEntry, FetchStatus

URL = "https://notes.example.test/{revision}.txt"


def _fetcher(store, endpoint, **kwargs) -> ReleaseNotesFetcher:
    return ReleaseNotesFetcher(store, URL, client=endpoint.client(), timeout=2.0, **kwargs)


class TestFreshFetch:
    def test_fetches_and_caches(self, memory_store, notes_endpoint):
        result = _fetcher(memory_store, notes_endpoint).fetch("abc123")
        assert result.status == FetchStatus.FRESH
        assert result.content == b"Release notes for abc123\n"
        assert result.from_cache is False
        assert not result.degraded
        assert memory_store.get("abc123").content == result.content

    def test_revision_substituted_into_url(self, memory_store, notes_endpoint):
        _fetcher(memory_store, notes_endpoint).fetch("abc123")
        assert str(notes_endpoint.requests[0].url) == "https://notes.example.test/abc123.txt"

    def test_revision_as_query_parameter(self, memory_store, notes_endpoint):
        fetcher = ReleaseNotesFetcher(
            memory_store, "https://example.com", client=notes_endpoint.client()
        )
        fetcher.fetch("abc123")
        assert notes_endpoint.requests[0].url.params["revision"] == "abc123"

    def test_second_fetch_makes_no_network_call(self, memory_store, notes_endpoint):
        fetcher = _fetcher(memory_store, notes_endpoint)
        first = fetcher.fetch("abc123")
        second = fetcher.fetch("abc123")
        assert notes_endpoint.calls == 1
        assert second.content == first.content
        assert second.status == FetchStatus.FRESH
        assert second.from_cache is True

    def test_revisions_are_cached_separately(self, memory_store, notes_endpoint):
        fetcher = _fetcher(memory_store, notes_endpoint)
        fetcher.fetch("abc123")
        fetcher.fetch("def456")
        assert notes_endpoint.calls == 2
        assert len(memory_store) == 2


class TestFailureNeverRaises:
    def test_http_500_without_cache_is_missing(self, memory_store, broken_endpoint):
        result = _fetcher(memory_store, broken_endpoint).fetch("abc123")
        assert result.status == FetchStatus.MISSING
        assert result.content == b""
        assert "500" in result.error
        assert result.degraded
        assert len(memory_store) == 0

    def test_connection_error_is_missing(self, memory_store, offline_endpoint):
        result = _fetcher(memory_store, offline_endpoint).fetch("abc123")
        assert result.status == FetchStatus.MISSING
        assert "ConnectError" in result.error

    def test_timeout_is_missing(self, memory_store, make_endpoint):
        endpoint = make_endpoint(error=httpx.ReadTimeout("too slow"))
        result = _fetcher(memory_store, endpoint).fetch("abc123")
        assert result.status == FetchStatus.MISSING

    def test_refresh_failure_falls_back_to_cache(self, memory_store, broken_endpoint):
        memory_store.put(CacheEntry(revision="abc123", content=b"cached notes"))
        result = _fetcher(memory_store, broken_endpoint).fetch("abc123", refresh=True)
        assert broken_endpoint.calls == 1
        assert result.status == FetchStatus.STALE_FALLBACK
        assert result.content == b"cached notes"
        assert result.from_cache is True

    def test_failure_logs_warning(self, memory_store, broken_endpoint, caplog):
        with caplog.at_level("WARNING"):
            _fetcher(memory_store, broken_endpoint).fetch("abc123")
        assert "placeholder" in caplog.text

    def test_invalid_url_is_missing(self, memory_store):
        fetcher = ReleaseNotesFetcher(memory_store, "not a url at all {revision}", timeout=0.5)
        assert fetcher.fetch("abc123").status == FetchStatus.MISSING


class TestDeadline:
    @staticmethod
    def _trickle(request: httpx.Request) -> httpx.Response:
        def body():
            for _ in range(50):
                yield b"0123456789"
                time.sleep(0.2)

        return httpx.Response(200, content=body())

    def test_trickling_body_cut_off_at_deadline(self, memory_store):
        client = httpx.Client(transport=httpx.MockTransport(self._trickle))
        fetcher = ReleaseNotesFetcher(memory_store, URL, client=client, timeout=0.5)

        started = time.monotonic()
        result = fetcher.fetch("abc123")

        assert time.monotonic() - started < 3
        assert result.status == FetchStatus.MISSING
        assert "did not finish within 0.5s" in result.error
        assert len(memory_store) == 0

    def test_trickle_falls_back_to_cache(self, memory_store):
        memory_store.put(CacheEntry(revision="abc123", content=b"cached notes"))
        client = httpx.Client(transport=httpx.MockTransport(self._trickle))
        fetcher = ReleaseNotesFetcher(memory_store, URL, client=client, timeout=0.5)
        result = fetcher.fetch("abc123", refresh=True)
        assert result.status == FetchStatus.STALE_FALLBACK
        assert result.content == b"cached notes"


class TestCancellation:
    def test_cancelled_fetch_not_cached(self, memory_store, notes_endpoint):
        cancel = threading.Event()
        cancel.set()
        result = _fetcher(memory_store, notes_endpoint).fetch("abc123", cancel_event=cancel)
        assert result.status == FetchStatus.FRESH
        assert result.content == b"Release notes for abc123\n"
        assert len(memory_store) == 0

    def test_unset_event_still_caches(self, memory_store, notes_endpoint):
        cancel = threading.Event()
        _fetcher(memory_store, notes_endpoint).fetch("abc123", cancel_event=cancel)
        assert len(memory_store) == 1


class TestExpiry:
    def test_expired_entry_is_refetched(self, memory_store, notes_endpoint):
        old = datetime.now(timezone.utc) - timedelta(hours=2)
        memory_store.put(CacheEntry(revision="abc123", content=b"old", fetched_at=old))
        result = _fetcher(memory_store, notes_endpoint, max_age_seconds=3600).fetch("abc123")
        assert notes_endpoint.calls == 1
        assert result.content == b"Release notes for abc123\n"

    def test_expired_entry_used_when_refetch_fails(self, memory_store, broken_endpoint):
        old = datetime.now(timezone.utc) - timedelta(hours=2)
        memory_store.put(CacheEntry(revision="abc123", content=b"old", fetched_at=old))
        result = _fetcher(memory_store, broken_endpoint, max_age_seconds=3600).fetch("abc123")
        assert result.status == FetchStatus.STALE_FALLBACK
        assert result.content == b"old"

    def test_no_max_age_keeps_entries_forever(self, memory_store, notes_endpoint):
        ancient = datetime(2000, 1, 1, tzinfo=timezone.utc)
        memory_store.put(CacheEntry(revision="abc123", content=b"old", fetched_at=ancient))
        result = _fetcher(memory_store, notes_endpoint).fetch("abc123")
        assert notes_endpoint.calls == 0
        assert result.content == b"old"


class _CorruptStore(MemoryCacheStore):
    def get(self, revision):
        raise CacheStoreCorruption("bad checksum")


class _ReadOnlyStore(MemoryCacheStore):
    def put(self, entry):
        raise CacheStoreError("disk full")


class _CrashingStore(MemoryCacheStore):
    def get(self, revision):
        raise OSError("permission denied")


class TestStoreProblems:
    def test_corrupt_entry_treated_as_missing(self, notes_endpoint):
        result = _fetcher(_CorruptStore(), notes_endpoint).fetch("abc123")
        assert notes_endpoint.calls == 1
        assert result.status == FetchStatus.FRESH

    def test_corrupt_entry_and_failed_fetch(self, broken_endpoint):
        result = _fetcher(_CorruptStore(), broken_endpoint).fetch("abc123")
        assert result.status == FetchStatus.MISSING

    def test_write_failure_still_returns_content(self, notes_endpoint, caplog):
        with caplog.at_level("WARNING"):
            result = _fetcher(_ReadOnlyStore(), notes_endpoint).fetch("abc123")
        assert result.status == FetchStatus.FRESH
        assert result.content == b"Release notes for abc123\n"
        assert "could not cache" in caplog.text

    def test_unexpected_store_error_is_a_miss(self, notes_endpoint, caplog):
        with caplog.at_level("WARNING"):
            result = _fetcher(_CrashingStore(), notes_endpoint).fetch("abc123")
        assert result.status == FetchStatus.FRESH
        assert "Cache lookup for abc123 failed" in caplog.text


@pytest.mark.parametrize("status", [301, 404, 503])
def test_non_success_statuses_degrade(memory_store, make_endpoint, status):
    endpoint = make_endpoint(status, b"nope")
    result = _fetcher(memory_store, endpoint).fetch("abc123")
    assert result.status == FetchStatus.MISSING

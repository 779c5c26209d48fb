"""
Unit Tests for LocalStorage

Tests expiry, access bookkeeping and the access-order index of the
in-process store.
"""

import pytest

from query_cache.infrastructure.cache.storage import CacheEntry, LocalStorage


@pytest.fixture
def store(clock):
    return LocalStorage(clock=clock)


@pytest.mark.unit
class TestCacheEntry:
    def test_expiry_is_strictly_after_ttl(self):
        entry = CacheEntry(key="k", value=1, created_at=1_000, ttl_seconds=1)

        assert entry.is_expired(2_000) is False
        assert entry.is_expired(2_001) is True

    def test_last_accessed_defaults_to_creation(self):
        entry = CacheEntry(key="k", value=1, created_at=5_000, ttl_seconds=1)
        assert entry.last_accessed_at == 5_000


@pytest.mark.unit
class TestLocalReadWrite:
    async def test_write_then_read(self, store):
        await store.write("k", [{"id": 1}], 60, track_order=True)

        assert await store.read("k", track_order=True) == [{"id": 1}]

    async def test_read_updates_access_metadata(self, store, clock):
        await store.write("k", "v", 60, track_order=True)
        clock.advance(5)

        await store.read("k", track_order=True)
        await store.read("k", track_order=True)

        entry = store.entry("k")
        assert entry.access_count == 2
        assert entry.last_accessed_at == int(clock() * 1000)

    async def test_expired_read_removes_entry_and_index(self, store, clock):
        await store.write("k", "v", 1, track_order=True)
        clock.advance(1.5)

        assert await store.read("k", track_order=True) is None
        assert await store.count() == 0
        assert await store.oldest_tracked_key() is None

    async def test_overwrite_moves_key_to_newest(self, store):
        await store.write("a", 1, 60, track_order=True)
        await store.write("b", 2, 60, track_order=True)
        await store.write("a", 3, 60, track_order=True)

        assert await store.list_keys() == ["b", "a"]
        assert await store.oldest_tracked_key() == "b"
        assert await store.read("a", track_order=True) == 3

    async def test_untracked_write_skips_index(self, store):
        await store.write("a", 1, 60, track_order=False)

        assert await store.count() == 1
        assert await store.oldest_tracked_key() is None


@pytest.mark.unit
class TestLocalAccessOrder:
    async def test_read_moves_key_to_most_recent(self, store):
        for key in ("a", "b", "c"):
            await store.write(key, key, 60, track_order=True)

        await store.read("a", track_order=True)

        assert await store.oldest_tracked_key() == "b"

    async def test_untracked_read_keeps_position(self, store):
        for key in ("a", "b"):
            await store.write(key, key, 60, track_order=True)

        await store.read("a", track_order=False)

        assert await store.oldest_tracked_key() == "a"


@pytest.mark.unit
class TestLocalMaintenance:
    async def test_clear_resets_entries_index_and_cursor(self, store):
        await store.write("a", 1, 60, track_order=True)
        await store.write_cursor(4)

        await store.clear()

        assert await store.count() == 0
        assert await store.oldest_tracked_key() is None
        assert await store.read_cursor() == 0

    async def test_purge_expired(self, store, clock):
        await store.write("short", 1, 1, track_order=True)
        await store.write("long", 2, 60, track_order=True)
        clock.advance(2)

        assert await store.purge_expired() == 1
        assert await store.list_keys() == ["long"]
        assert await store.oldest_tracked_key() == "long"

    async def test_remove_reports_presence(self, store):
        await store.write("a", 1, 60, track_order=True)

        assert await store.remove("a") is True
        assert await store.remove("a") is False

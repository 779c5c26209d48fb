"""
Unit Tests for SharedStorage

Tests the Redis key layout (value, :meta hash, accessOrder, roundRobinIndex)
against the in-memory Redis stand-in.
"""

import pytest

from query_cache.core.exceptions import CacheSerializationError
from query_cache.infrastructure.cache.storage import SharedStorage

KEY_A = "snowflake:acme-sales-public:select a"
KEY_B = "snowflake:acme-sales-public:select b"


@pytest.fixture
def store(in_memory_redis, clock):
    return SharedStorage(in_memory_redis, "snowflake", clock=clock)


@pytest.mark.unit
class TestSharedWrite:
    async def test_value_is_json_with_ttl(self, store, in_memory_redis, clock):
        await store.write(KEY_A, [{"id": 1, "name": "x"}], 60, track_order=True)

        assert in_memory_redis.strings[KEY_A] == '[{"id":1,"name":"x"}]'
        assert in_memory_redis.expiry[KEY_A] == clock() + 60

    async def test_meta_hash_written_with_same_expiry(self, store, in_memory_redis, clock):
        await store.write(KEY_A, 1, 60, track_order=True)

        now_ms = str(int(clock() * 1000))
        assert in_memory_redis.hashes[f"{KEY_A}:meta"] == {
            "timestamp": now_ms,
            "accessCount": "0",
            "lastAccessed": now_ms,
        }
        assert in_memory_redis.expiry[f"{KEY_A}:meta"] == clock() + 60

    async def test_tracked_write_registers_access_order(self, store, in_memory_redis, clock):
        await store.write(KEY_A, 1, 60, track_order=True)
        assert in_memory_redis.zsets["accessOrder"] == {KEY_A: int(clock() * 1000)}

    async def test_untracked_write_skips_access_order(self, store, in_memory_redis):
        await store.write(KEY_A, 1, 60, track_order=False)
        assert "accessOrder" not in in_memory_redis.zsets

    async def test_unserializable_value_raises(self, store):
        with pytest.raises(CacheSerializationError):
            await store.write(KEY_A, object(), 60, track_order=True)


@pytest.mark.unit
class TestSharedRead:
    async def test_hit_updates_metadata_and_order(self, store, in_memory_redis, clock):
        await store.write(KEY_A, {"rows": 3}, 60, track_order=True)
        clock.advance(2)

        assert await store.read(KEY_A, track_order=True) == {"rows": 3}

        meta = await store.metadata(KEY_A)
        now_ms = int(clock() * 1000)
        assert meta["accessCount"] == 1
        assert meta["lastAccessed"] == now_ms
        assert in_memory_redis.zsets["accessOrder"][KEY_A] == now_ms

    async def test_miss_returns_none(self, store):
        assert await store.read(KEY_A, track_order=True) is None

    async def test_expired_value_is_a_miss(self, store, clock):
        await store.write(KEY_A, 1, 1, track_order=True)
        clock.advance(1.5)

        assert await store.read(KEY_A, track_order=True) is None

    async def test_corrupt_value_raises(self, store, in_memory_redis):
        in_memory_redis.strings[KEY_A] = "{not json"

        with pytest.raises(CacheSerializationError):
            await store.read(KEY_A, track_order=True)


@pytest.mark.unit
class TestSharedEnumeration:
    async def test_list_keys_sorted_and_excludes_meta(self, store, in_memory_redis):
        await store.write(KEY_B, 2, 60, track_order=True)
        await store.write(KEY_A, 1, 60, track_order=True)
        await in_memory_redis.set("other:key", "x")

        assert await store.list_keys() == [KEY_A, KEY_B]
        assert await store.count() == 2

    async def test_oldest_tracked_key_prunes_expired_members(self, store, in_memory_redis, clock):
        await store.write(KEY_A, 1, 1, track_order=True)
        clock.advance(0.5)
        await store.write(KEY_B, 2, 60, track_order=True)
        clock.advance(1)

        assert await store.oldest_tracked_key() == KEY_B
        assert KEY_A not in in_memory_redis.zsets["accessOrder"]

    async def test_remove_deletes_value_meta_and_order(self, store, in_memory_redis):
        await store.write(KEY_A, 1, 60, track_order=True)

        assert await store.remove(KEY_A) is True
        assert await in_memory_redis.exists(KEY_A, f"{KEY_A}:meta") == 0
        assert "accessOrder" not in in_memory_redis.zsets

    async def test_cursor_round_trip(self, store, in_memory_redis):
        assert await store.read_cursor() == 0

        await store.write_cursor(3)

        assert in_memory_redis.strings["roundRobinIndex"] == "3"
        assert await store.read_cursor() == 3

    async def test_malformed_cursor_reads_as_zero(self, store, in_memory_redis):
        in_memory_redis.strings["roundRobinIndex"] = "abc"
        assert await store.read_cursor() == 0


@pytest.mark.unit
class TestSharedMaintenance:
    async def test_clear_removes_namespace_only(self, store, in_memory_redis):
        await store.write(KEY_A, 1, 60, track_order=True)
        await store.write_cursor(2)
        await in_memory_redis.set("other:key", "keep")

        await store.clear()

        assert await store.count() == 0
        assert await in_memory_redis.exists(f"{KEY_A}:meta", "accessOrder", "roundRobinIndex") == 0
        assert await in_memory_redis.get("other:key") == "keep"

    async def test_purge_expired_prunes_order_index(self, store, in_memory_redis, clock):
        await store.write(KEY_A, 1, 1, track_order=True)
        await store.write(KEY_B, 2, 60, track_order=True)
        clock.advance(2)

        assert await store.purge_expired() == 1
        assert list(in_memory_redis.zsets["accessOrder"]) == [KEY_B]

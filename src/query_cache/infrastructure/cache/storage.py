"""
Cache Storage Backends

Two interchangeable stores behind the cache manager:

    LocalStorage  - bounded in-process store (always available)
    SharedStorage - Redis store with native TTL (may be unavailable)

They are not two tiers of one cache. The manager writes each entry to
exactly one of them and reports stats for whichever is active.

Both satisfy EvictableStore, so the eviction engine can target either one.
Each owns its access-order index and round-robin cursor.

Timestamps are epoch milliseconds in both stores.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import orjson

from query_cache.core.config.constants import (
    META_FIELD_ACCESS_COUNT,
    META_FIELD_LAST_ACCESSED,
    META_FIELD_TIMESTAMP,
    REDIS_KEY_ACCESS_ORDER,
    REDIS_KEY_ROUND_ROBIN_INDEX,
    REDIS_META_SUFFIX,
    CacheProvider,
)
from query_cache.core.exceptions import CacheSerializationError
from query_cache.core.logging.logger import get_logger
from query_cache.infrastructure.cache.keys import meta_key, namespace_pattern
from query_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

Clock = Callable[[], float]


def _now_ms(clock: Clock) -> int:
    return int(clock() * 1000)


@dataclass
class CacheEntry:
    """One cached query result held by LocalStorage."""

    key: str
    value: Any
    created_at: int
    ttl_seconds: int
    access_count: int = 0
    last_accessed_at: int = field(default=0)

    def __post_init__(self):
        if not self.last_accessed_at:
            self.last_accessed_at = self.created_at

    def is_expired(self, now_ms: int) -> bool:
        return now_ms - self.created_at > self.ttl_seconds * 1000

    def touch(self, now_ms: int) -> None:
        self.access_count += 1
        self.last_accessed_at = now_ms


class LocalStorage:
    """
    In-memory store used whenever Redis is not READY.

    STAGE-2.1: Local store

    Implementation Details:
    - dict of CacheEntry in insertion order (the round-robin enumeration order)
    - OrderedDict access-order index, oldest first; move_to_end on touch
    - No asyncio.Lock: no method awaits, so calls never interleave
    - Expired entries are removed lazily on read or by purge_expired()
    """

    provider = CacheProvider.IN_MEMORY

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._access_order: OrderedDict[str, int] = OrderedDict()
        self._cursor = 0

    async def read(self, key: str, track_order: bool) -> Any | None:
        """
        Return the cached value, or None if absent or expired.

        Expired entries are deleted along with their index record.
        A hit bumps access metadata and, when track_order is set, moves
        the key to the most recently touched position.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = _now_ms(self._clock)
        if entry.is_expired(now):
            await self.remove(key)
            logger.debug("Local entry expired", stage="2.1", key=key)
            return None

        entry.touch(now)
        if track_order:
            self._touch_order(key, now)
        return entry.value

    async def write(self, key: str, value: Any, ttl_seconds: int, track_order: bool) -> None:
        """Insert a new entry, replacing any existing entry for key."""
        if key in self._entries:
            await self.remove(key)

        now = _now_ms(self._clock)
        self._entries[key] = CacheEntry(key=key, value=value, created_at=now, ttl_seconds=ttl_seconds)
        if track_order:
            self._touch_order(key, now)

    def _touch_order(self, key: str, now: int) -> None:
        self._access_order[key] = now
        self._access_order.move_to_end(key)

    def entry(self, key: str) -> CacheEntry | None:
        """Raw entry without expiry checks or access bookkeeping."""
        return self._entries.get(key)

    async def count(self) -> int:
        return len(self._entries)

    async def contains(self, key: str) -> bool:
        return key in self._entries

    async def list_keys(self) -> list[str]:
        return list(self._entries)

    async def oldest_tracked_key(self) -> str | None:
        return next(iter(self._access_order), None)

    async def remove(self, key: str) -> bool:
        self._access_order.pop(key, None)
        return self._entries.pop(key, None) is not None

    async def read_cursor(self) -> int:
        return self._cursor

    async def write_cursor(self, value: int) -> None:
        self._cursor = value

    async def clear(self) -> None:
        self._entries.clear()
        self._access_order.clear()
        self._cursor = 0

    async def purge_expired(self) -> int:
        """Delete every expired entry. Returns how many were removed."""
        now = _now_ms(self._clock)
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            await self.remove(key)
        return len(expired)


class SharedStorage:
    """
    Redis store with native TTL.

    STAGE-2.2: Shared store

    Key layout:
        <namespace>:<conn>:<query>       JSON value (orjson), EX ttl
        <namespace>:<conn>:<query>:meta  hash: timestamp, accessCount, lastAccessed
        accessOrder                      sorted set, score = last touch (ms)
        roundRobinIndex                  round-robin cursor

    Every method may raise CacheConnectionError or CacheKeyError from the
    client; the manager decides whether to fall back.
    """

    provider = CacheProvider.REDIS

    def __init__(self, redis_client: RedisClient, namespace: str, clock: Clock = time.time):
        self._redis = redis_client
        self._namespace = namespace
        self._clock = clock

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    @staticmethod
    def encode(value: Any) -> str:
        try:
            return orjson.dumps(value).decode("utf-8")
        except TypeError as e:
            raise CacheSerializationError.from_exception(e, message=f"Cannot encode cache value: {e}")

    @staticmethod
    def decode(raw: str, key: str) -> Any:
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise CacheSerializationError.from_exception(
                e, message=f"Cached value for {key!r} is not valid JSON", key=key
            )

    # -------------------------------------------------------------------------
    # Read / write
    # -------------------------------------------------------------------------

    async def read(self, key: str, track_order: bool) -> Any | None:
        """
        Return the decoded value, or None on a miss.

        A hit increments accessCount, refreshes lastAccessed and, when
        track_order is set, re-scores the key in accessOrder.

        Raises:
            CacheSerializationError: Stored value is not valid JSON
        """
        raw = await self._redis.get(key)
        if raw is None:
            return None

        value = self.decode(raw, key)

        now = _now_ms(self._clock)
        meta = meta_key(key)
        await self._redis.hincrby(meta, META_FIELD_ACCESS_COUNT, 1)
        await self._redis.hset(meta, {META_FIELD_LAST_ACCESSED: now})
        if track_order:
            await self._redis.zadd(REDIS_KEY_ACCESS_ORDER, {key: now})
        return value

    async def write(self, key: str, value: Any, ttl_seconds: int, track_order: bool) -> None:
        """SET the value with EX ttl, write its metadata hash, register it in accessOrder."""
        payload = self.encode(value)

        now = _now_ms(self._clock)
        meta = meta_key(key)
        await self._redis.set(key, payload, ttl=ttl_seconds)
        await self._redis.hset(
            meta,
            {
                META_FIELD_TIMESTAMP: now,
                META_FIELD_ACCESS_COUNT: 0,
                META_FIELD_LAST_ACCESSED: now,
            },
        )
        await self._redis.expire(meta, ttl_seconds)
        if track_order:
            await self._redis.zadd(REDIS_KEY_ACCESS_ORDER, {key: now})

    async def metadata(self, key: str) -> dict[str, int]:
        """Access metadata for key as integers (empty if none)."""
        raw = await self._redis.hgetall(meta_key(key))
        return {name: int(value) for name, value in raw.items()}

    # -------------------------------------------------------------------------
    # EvictableStore
    # -------------------------------------------------------------------------

    async def _namespace_keys(self) -> list[str]:
        return await self._redis.scan_keys(namespace_pattern(self._namespace))

    async def list_keys(self) -> list[str]:
        """Live value keys, sorted lexicographically so enumeration is stable."""
        keys = await self._namespace_keys()
        return sorted(key for key in keys if not key.endswith(REDIS_META_SUFFIX))

    async def count(self) -> int:
        return len(await self.list_keys())

    async def contains(self, key: str) -> bool:
        return await self._redis.exists(key) > 0

    async def oldest_tracked_key(self) -> str | None:
        """
        Lowest-scored accessOrder member whose value still exists.

        Members whose value already expired are pruned on the way.
        """
        while True:
            members = await self._redis.zrange(REDIS_KEY_ACCESS_ORDER, 0, 0)
            if not members:
                return None
            candidate = members[0]
            if await self._redis.exists(candidate):
                return candidate
            await self._redis.zrem(REDIS_KEY_ACCESS_ORDER, candidate)
            logger.debug("Pruned stale access-order member", stage="2.2", key=candidate)

    async def remove(self, key: str) -> bool:
        deleted = await self._redis.delete(key, meta_key(key))
        await self._redis.zrem(REDIS_KEY_ACCESS_ORDER, key)
        return deleted > 0

    async def read_cursor(self) -> int:
        raw = await self._redis.get(REDIS_KEY_ROUND_ROBIN_INDEX)
        if raw is None:
            return 0
        try:
            return max(int(raw), 0)
        except ValueError:
            logger.warning("Ignoring malformed round-robin cursor", stage="2.2", raw=raw)
            return 0

    async def write_cursor(self, value: int) -> None:
        await self._redis.set(REDIS_KEY_ROUND_ROBIN_INDEX, str(value))

    async def clear(self) -> None:
        """Delete namespace values and metadata, accessOrder and roundRobinIndex. Never FLUSHDB."""
        keys = await self._namespace_keys()
        await self._redis.delete(*keys, REDIS_KEY_ACCESS_ORDER, REDIS_KEY_ROUND_ROBIN_INDEX)

    async def purge_expired(self) -> int:
        """
        Redis expires values natively; drop accessOrder members whose value is gone.

        Returns the number of members pruned.
        """
        members = await self._redis.zrange(REDIS_KEY_ACCESS_ORDER, 0, -1)
        stale = [member for member in members if not await self._redis.exists(member)]
        await self._redis.zrem(REDIS_KEY_ACCESS_ORDER, *stale)
        return len(stale)


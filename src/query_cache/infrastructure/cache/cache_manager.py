"""
Query Result Cache Manager

Architecture:
    CacheManager (public API)
        ├── AvailabilityTracker (is Redis usable right now?)
        ├── SharedStorage (Redis, preferred while READY)
        ├── LocalStorage (in-process fallback)
        ├── EvictionEngine (one victim per full insert)
        └── CacheObserver (hit/miss counters and logging)

Routing:
    Every get/set tries Redis first while the tracker is READY. Connectivity
    or command errors on that path are logged and the call falls back to the
    local store. Those errors never change the tracker's mode; only the
    Redis client's lifecycle events do.

    A miss in Redis is a miss: the local store is not consulted.

Capacity (Redis path):
    "count keys -> evict one -> insert" spans several awaits and is not
    atomic. Concurrent sets near capacity may briefly exceed max_size or
    evict twice. No lock is taken.
"""

import asyncio
import inspect
import time
from collections.abc import Callable, Mapping
from typing import Any

from query_cache.core.config.constants import CacheProvider
from query_cache.core.config.settings import Settings, get_settings
from query_cache.core.exceptions import CacheConnectionError, CacheError, CacheKeyError
from query_cache.core.interfaces import EvictableStore
from query_cache.core.logging.logger import get_logger, log_stage
from query_cache.core.resilience import AvailabilityTracker
from query_cache.infrastructure.cache.eviction import EvictionEngine, EvictionPolicy
from query_cache.infrastructure.cache.keys import ConnectionIdentity, derive_key
from query_cache.infrastructure.cache.redis_client import RedisClient, get_redis_client
from query_cache.infrastructure.cache.storage import Clock, LocalStorage, SharedStorage

logger = get_logger(__name__)

# Errors on the Redis path that trigger a local fallback
FALLBACK_ERRORS = (CacheConnectionError, CacheKeyError)


# =============================================================================
# OBSERVER
# =============================================================================


class CacheObserver:
    """
    Tracks cache hit/miss counters and logs operations.

    Counters are process-local and cover both stores.
    """

    def __init__(self, logger_instance=None):
        self._logger = logger_instance or logger
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0
        self._fallbacks = 0

    def record_get(self, provider: CacheProvider, key: str, hit: bool) -> None:
        stage = "2.2" if provider == CacheProvider.REDIS else "2.1"
        if hit:
            self._hits += 1
            log_stage(self._logger, stage, "Cache hit", level="debug",
                      provider=provider.value, cache_key=key[:60])
        else:
            self._misses += 1
            log_stage(self._logger, stage, "Cache miss", level="debug",
                      provider=provider.value, cache_key=key[:60])

    def record_set(self, provider: CacheProvider, key: str, ttl_seconds: int) -> None:
        self._sets += 1
        log_stage(self._logger, "3.1", "Cache set", level="debug",
                  provider=provider.value, cache_key=key[:60], ttl=ttl_seconds)

    def record_eviction(self, provider: CacheProvider, key: str) -> None:
        self._evictions += 1
        log_stage(self._logger, "4.2", "Evicted to make room", provider=provider.value, cache_key=key[:60])

    def record_fallback(self, operation: str, error: CacheError) -> None:
        self._fallbacks += 1
        log_stage(
            self._logger,
            "2.4",
            "Redis operation failed, using local store",
            level="warning",
            operation=operation,
            error_type=error.__class__.__name__,
            error=error.message,
        )

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hitRate": round(self._hits / total, 4) if total else 0.0,
            "sets": self._sets,
            "evictions": self._evictions,
            "fallbacks": self._fallbacks,
        }

    def reset(self) -> None:
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0
        self._fallbacks = 0


# =============================================================================
# PUBLIC API
# =============================================================================


class CacheManager:
    """
    Query result cache with Redis preferred and an in-process fallback.

    Usage:
        cache = CacheManager()
        await cache.initialize()  # connects to Redis in the background

        key = cache.derive_key("SELECT * FROM t;", {"account": "acme", "database": "db", "schema": "public"})
        rows = await cache.get(key, "lru")
        if rows is None:
            rows = await run_query(...)
            await cache.set(key, rows, 3600, "lru")

        stats = await cache.stats()
        await cache.shutdown()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        redis_client: RedisClient | None = None,
        clock: Clock = time.time,
    ):
        """
        Initialize cache manager.

        STAGE-0.1: Cache manager initialization

        Args:
            settings: Settings (defaults to the global settings)
            redis_client: Redis client (defaults to the global client)
            clock: Seconds since epoch; injectable for TTL tests
        """
        settings = settings or get_settings()
        cache_cfg = settings.cache

        self._max_size = cache_cfg.CACHE_MAX_SIZE
        self._default_ttl = cache_cfg.CACHE_DEFAULT_TTL
        self._default_policy = EvictionPolicy.parse(cache_cfg.CACHE_DEFAULT_POLICY)
        self._namespace = cache_cfg.CACHE_NAMESPACE
        self._stats_key_limit = cache_cfg.CACHE_STATS_KEY_LIMIT
        self._shared_enabled = cache_cfg.ENABLE_SHARED_CACHE

        self._redis = redis_client or get_redis_client()
        self._availability = AvailabilityTracker(name="redis")
        self._redis.add_lifecycle_listener(
            self._availability.mark_ready, self._availability.mark_unavailable
        )

        self._local = LocalStorage(clock=clock)
        self._shared = SharedStorage(self._redis, self._namespace, clock=clock)
        self._evictor = EvictionEngine()
        self._observer = CacheObserver()
        self._background: asyncio.Task | None = None

        log_stage(
            logger,
            "0.1",
            "Cache manager initialized",
            max_size=self._max_size,
            default_ttl=self._default_ttl,
            default_policy=self._default_policy.value,
            shared_cache_enabled=self._shared_enabled,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Start connecting to Redis without blocking.

        STAGE-0.2: Background connect + watcher

        get/set can be called immediately; they use the local store until
        Redis reports ready.
        """
        if not self._shared_enabled:
            log_stage(logger, "0.2", "Shared cache disabled, serving from local store only")
            return
        if self._background is not None:
            return

        self._availability.mark_connecting()
        self._background = asyncio.create_task(self._connect_and_watch(), name="redis-connection")

    async def _connect_and_watch(self) -> None:
        try:
            await self._redis.connect()
        except CacheConnectionError:
            # The client already reported the failure to the tracker
            pass
        await self._redis.watch()

    async def shutdown(self) -> None:
        """
        Stop the watcher and disconnect Redis.

        STAGE-6.1: Cleanup cache connections
        """
        if self._background is not None:
            self._background.cancel()
            try:
                await self._background
            except asyncio.CancelledError:
                pass
            self._background = None

        if self._shared_enabled:
            await self._redis.disconnect()
            self._availability.mark_unavailable("Cache manager shut down")

        log_stage(logger, "6.1", "Cache manager shutdown")

    # -------------------------------------------------------------------------
    # Routing helpers
    # -------------------------------------------------------------------------

    @property
    def availability(self) -> AvailabilityTracker:
        return self._availability

    @property
    def max_size(self) -> int:
        return self._max_size

    def is_ready(self) -> bool:
        """True while Redis is the active store."""
        return self._availability.is_ready()

    @property
    def provider(self) -> CacheProvider:
        """Provider currently receiving reads and writes."""
        return self._active_store().provider

    def _active_store(self) -> EvictableStore:
        return self._shared if self.is_ready() else self._local

    def _resolve_policy(self, algorithm: "str | EvictionPolicy | None") -> EvictionPolicy:
        if algorithm is None:
            return self._default_policy
        return EvictionPolicy.parse(algorithm)

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    def derive_key(
        self, raw_query: str, connection_identity: "ConnectionIdentity | Mapping[str, Any] | None"
    ) -> str:
        """
        Canonical key for a query against a connection.

        STAGE-1.1: Key derivation
        """
        key = derive_key(raw_query, connection_identity, namespace=self._namespace)
        logger.debug("Cache key derived", stage="1.1", cache_key=key[:60])
        return key

    async def get(self, key: str, algorithm: "str | EvictionPolicy | None" = None) -> Any | None:
        """
        Cached value for key, or None.

        Raises:
            InvalidEvictionPolicyError: Unknown algorithm
            CacheSerializationError: Redis holds a value that is not valid JSON
        """
        policy = self._resolve_policy(algorithm)

        if self.is_ready():
            try:
                value = await self._shared.read(key, policy.tracks_access_order)
                self._observer.record_get(CacheProvider.REDIS, key, hit=value is not None)
                return value
            except FALLBACK_ERRORS as e:
                self._observer.record_fallback("get", e)

        value = await self._local.read(key, policy.tracks_access_order)
        self._observer.record_get(CacheProvider.IN_MEMORY, key, hit=value is not None)
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        algorithm: "str | EvictionPolicy | None" = None,
    ) -> bool:
        """
        Store value under key for ttl_seconds.

        Evicts one entry first if the target store is full. Any cache error
        on the Redis path falls back to the local store, so this only raises
        if the local store itself fails.

        Raises:
            InvalidEvictionPolicyError: Unknown algorithm
            ValueError: ttl_seconds is not positive
        """
        policy = self._resolve_policy(algorithm)
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl}")

        if self.is_ready():
            try:
                await self._make_room(self._shared, key, policy)
                await self._shared.write(key, value, ttl, policy.tracks_access_order)
                self._observer.record_set(CacheProvider.REDIS, key, ttl)
                return True
            except CacheError as e:
                self._observer.record_fallback("set", e)

        await self._make_room(self._local, key, policy)
        await self._local.write(key, value, ttl, policy.tracks_access_order)
        self._observer.record_set(CacheProvider.IN_MEMORY, key, ttl)
        return True

    async def _make_room(self, store: EvictableStore, key: str, policy: EvictionPolicy) -> None:
        # Overwriting an existing key does not grow the store
        if await store.count() < self._max_size or await store.contains(key):
            return
        victim = await self._evictor.evict(policy, store)
        if victim is not None:
            self._observer.record_eviction(store.provider, victim)

    async def evict(self, algorithm: "str | EvictionPolicy | None" = None) -> str | None:
        """
        Evict one entry from the active store.

        Returns:
            The evicted key, or None if nothing was evicted
        """
        policy = self._resolve_policy(algorithm)
        store = self._active_store()
        try:
            victim = await self._evictor.evict(policy, store)
        except FALLBACK_ERRORS as e:
            self._observer.record_fallback("evict", e)
            return None
        if victim is not None:
            self._observer.record_eviction(store.provider, victim)
        return victim

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        ttl_seconds: int | None = None,
        algorithm: "str | EvictionPolicy | None" = None,
    ) -> Any:
        """
        Get from cache or fetch and cache the result (cache-aside pattern).

        STAGE-3.2: Cache-aside

        Args:
            key: Cache key
            fetch_fn: Sync or async callable producing the value on a miss
            ttl_seconds: Time-to-live in seconds
            algorithm: Eviction policy

        Returns:
            Cached or fetched value
        """
        cached = await self.get(key, algorithm)
        if cached is not None:
            return cached

        value = fetch_fn()
        if inspect.isawaitable(value):
            value = await value

        await self.set(key, value, ttl_seconds, algorithm)
        return value

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def stats(self) -> dict[str, Any]:
        """
        Statistics for the active store only.

        Returns:
            Dict with size, maxSize, provider, keys (first N), keysCount,
            plus process-wide counters and availability mode
        """
        store = self._active_store()
        try:
            keys = await store.list_keys()
        except FALLBACK_ERRORS as e:
            self._observer.record_fallback("stats", e)
            store = self._local
            keys = await store.list_keys()

        return {
            "size": len(keys),
            "maxSize": self._max_size,
            "provider": store.provider.value,
            "keys": keys[: self._stats_key_limit],
            "keysCount": len(keys),
            "availability": self._availability.mode.value,
            **self._observer.get_stats(),
        }

    async def clear(self) -> None:
        """
        Remove all entries, ordering and cursor state from the active store.

        STAGE-5.1: Clear

        The inactive store is left untouched. If Redis fails mid-clear the
        local store is cleared instead.
        """
        store = self._active_store()
        try:
            await store.clear()
        except FALLBACK_ERRORS as e:
            self._observer.record_fallback("clear", e)
            store = self._local
            await store.clear()

        log_stage(logger, "5.1", "Cache cleared", provider=store.provider.value)

    async def purge_expired(self) -> int:
        """
        Drop expired local entries and stale Redis access-order members.

        STAGE-5.2: Expiry sweep

        Returns:
            Number of entries/records removed
        """
        removed = await self._local.purge_expired()

        if self.is_ready():
            try:
                removed += await self._shared.purge_expired()
            except FALLBACK_ERRORS as e:
                self._observer.record_fallback("purge_expired", e)

        if removed:
            log_stage(logger, "5.2", "Expired cache records purged", removed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on both stores.

        status is "healthy" while Redis is READY, otherwise "degraded"
        (the local store keeps serving).
        """
        health = {
            "status": "healthy" if self.is_ready() else "degraded",
            "provider": self.provider.value,
            "availability": self._availability.snapshot(),
            "local": {
                "status": "healthy",
                "size": await self._local.count(),
                "max_size": self._max_size,
            },
            "shared": None,
        }

        if self._shared_enabled:
            health["shared"] = await self._redis.health_check()
        else:
            health["shared"] = {"status": "disabled"}

        return health


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_cache_manager: CacheManager | None = None


def get_cache_manager() -> CacheManager:
    """
    Get the global cache manager instance (singleton).

    Returns:
        CacheManager: Global cache manager instance
    """
    global _cache_manager

    if _cache_manager is None:
        _cache_manager = CacheManager()

    return _cache_manager


async def init_cache() -> CacheManager:
    """
    Initialize the global cache manager and start connecting to Redis.

    Returns:
        CacheManager: Initialized cache manager
    """
    manager = get_cache_manager()
    await manager.initialize()
    return manager


async def close_cache() -> None:
    """Shutdown the global cache manager."""
    global _cache_manager

    if _cache_manager:
        await _cache_manager.shutdown()
        _cache_manager = None

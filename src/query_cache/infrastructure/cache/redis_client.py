"""
Redis Client with Connection Pooling and Lifecycle Signals

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle, retries, lifecycle listeners)
        ├── OperationExecutor (Command execution with error mapping)
        └── HealthMonitor (Health checks and the background connection watcher)

Lifecycle signals:
    ConnectionManager notifies registered listeners:
    - on_connected(): handshake (PING) succeeded
    - on_error(reason): handshake failed or an established connection was lost
    These are the only events that should move the cache's availability state.
    Individual command failures are raised to the caller and do not notify.

Error mapping:
    redis ConnectionError / TimeoutError / OSError -> CacheConnectionError
    any other RedisError                          -> CacheKeyError
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from query_cache.core.config.constants import REDIS_SCAN_COUNT
from query_cache.core.config.settings import Settings, get_settings
from query_cache.core.exceptions import CacheConnectionError, CacheKeyError
from query_cache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

CONNECTIVITY_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)

OnConnected = Callable[[], None]
OnError = Callable[[str], None]


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# Handles connection lifecycle, pooling, retries and lifecycle listeners
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Connection attempts are bounded by REDIS_SOCKET_CONNECT_TIMEOUT and retried
    REDIS_CONNECT_RETRIES times with an incrementing delay capped at
    REDIS_RETRY_MAX_DELAY.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False
        self._on_connected: list[OnConnected] = []
        self._on_error: list[OnError] = []

    # -------------------------------------------------------------------------
    # Lifecycle listeners
    # -------------------------------------------------------------------------

    def add_listener(self, on_connected: OnConnected, on_error: OnError) -> None:
        """Register callbacks for connection-established and connection-error events."""
        self._on_connected.append(on_connected)
        self._on_error.append(on_error)

    def _emit_connected(self) -> None:
        for callback in self._on_connected:
            callback()

    def _emit_error(self, reason: str) -> None:
        for callback in self._on_error:
            callback(reason)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def _build_pool(self) -> ConnectionPool:
        cfg = self._settings.redis
        options = {
            "max_connections": cfg.REDIS_MAX_CONNECTIONS,
            "socket_connect_timeout": cfg.REDIS_SOCKET_CONNECT_TIMEOUT,
            "socket_timeout": cfg.REDIS_SOCKET_TIMEOUT,
            "decode_responses": True,
        }
        if cfg.REDIS_URL:
            return ConnectionPool.from_url(cfg.REDIS_URL, **options)
        return ConnectionPool(
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            db=cfg.REDIS_DB,
            password=cfg.REDIS_PASSWORD,
            **options,
        )

    def target(self) -> str:
        cfg = self._settings.redis
        if cfg.REDIS_URL:
            return cfg.REDIS_URL.rsplit("@", 1)[-1]
        return f"{cfg.REDIS_HOST}:{cfg.REDIS_PORT}"

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            CacheConnectionError: If every attempt fails
        """
        if self._is_connected and self._client:
            return self._client

        cfg = self._settings.redis
        if self._client is not None:
            # Close the client left behind by mark_lost()
            await self._release()

        self._pool = self._build_pool()
        self._client = redis.Redis(connection_pool=self._pool)

        # Tenacity logs through the standard library logger
        std_logger = logging.getLogger(__name__)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(cfg.REDIS_CONNECT_RETRIES + 1),
            wait=wait_incrementing(start=0.1, increment=0.1, max=cfg.REDIS_RETRY_MAX_DELAY),
            retry=retry_if_exception_type(CONNECTIVITY_ERRORS),
            before_sleep=before_sleep_log(std_logger, logging.WARNING),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._client.ping()
        except (*CONNECTIVITY_ERRORS, RedisError) as e:
            await self._release()
            reason = f"Failed to connect to Redis: {e}"
            log_stage(logger, "REDIS.2", "Redis connection failed", level="warning",
                      target=self.target(), error=str(e))
            self._emit_error(reason)
            raise CacheConnectionError.from_exception(e, message=reason, target=self.target())

        self._is_connected = True
        log_stage(
            logger,
            "REDIS.2",
            "Redis connected successfully",
            target=self.target(),
            max_connections=cfg.REDIS_MAX_CONNECTIONS,
        )
        self._emit_connected()
        return self._client

    def mark_lost(self, reason: str) -> None:
        """Record that an established connection stopped answering."""
        if not self._is_connected:
            return
        self._is_connected = False
        log_stage(logger, "REDIS.4", "Redis connection lost", level="warning", reason=reason)
        self._emit_error(reason)

    async def _release(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._client = None
        self._pool = None
        self._is_connected = False

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        await self._release()
        log_stage(logger, "REDIS.3", "Redis disconnected")

    async def ping(self) -> bool:
        """True if the current client answers PING."""
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (*CONNECTIVITY_ERRORS, RedisError):
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Executes Redis commands with consistent error mapping and logging
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Every command goes through _call(), which maps redis-py exceptions onto
    the cache exception hierarchy and logs the failure with its command name.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def _call(self, command: str, *args, **kwargs) -> Any:
        try:
            return await getattr(self._redis, command)(*args, **kwargs)
        except CONNECTIVITY_ERRORS as e:
            logger.warning("Redis command unreachable", stage=f"REDIS.{command.upper()}", error=str(e))
            raise CacheConnectionError.from_exception(
                e, message=f"Redis {command.upper()} failed: {e}", command=command
            )
        except RedisError as e:
            logger.error("Redis command failed", stage=f"REDIS.{command.upper()}", error=str(e))
            raise CacheKeyError.from_exception(
                e, message=f"Redis {command.upper()} failed: {e}", command=command
            )

    # -------------------------------------------------------------------------
    # Strings
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._call("get", key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        result = await self._call("set", key, value, ex=ttl)
        return result is not None

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call("delete", *keys)

    async def exists(self, *keys: str) -> int:
        return await self._call("exists", *keys)

    async def expire(self, key: str, ttl: int) -> bool:
        return await self._call("expire", key, ttl)

    # -------------------------------------------------------------------------
    # Hashes (per-key metadata)
    # -------------------------------------------------------------------------

    async def hset(self, name: str, mapping: dict[str, Any]) -> int:
        return await self._call("hset", name, mapping=mapping)

    async def hincrby(self, name: str, field: str, amount: int = 1) -> int:
        return await self._call("hincrby", name, field, amount)

    async def hgetall(self, name: str) -> dict[str, str]:
        return await self._call("hgetall", name)

    # -------------------------------------------------------------------------
    # Sorted sets (access ordering)
    # -------------------------------------------------------------------------

    async def zadd(self, name: str, mapping: dict[str, float]) -> int:
        return await self._call("zadd", name, mapping)

    async def zrange(self, name: str, start: int, end: int) -> list[str]:
        return await self._call("zrange", name, start, end)

    async def zrem(self, name: str, *members: str) -> int:
        if not members:
            return 0
        return await self._call("zrem", name, *members)

    # -------------------------------------------------------------------------
    # Key enumeration
    # -------------------------------------------------------------------------

    async def scan_keys(self, pattern: str) -> list[str]:
        """Collect every key matching pattern using SCAN (never KEYS)."""
        try:
            return [key async for key in self._redis.scan_iter(match=pattern, count=REDIS_SCAN_COUNT)]
        except CONNECTIVITY_ERRORS as e:
            logger.warning("Redis command unreachable", stage="REDIS.SCAN", error=str(e))
            raise CacheConnectionError.from_exception(e, message=f"Redis SCAN failed: {e}")
        except RedisError as e:
            logger.error("Redis command failed", stage="REDIS.SCAN", error=str(e))
            raise CacheKeyError.from_exception(e, message=f"Redis SCAN failed: {e}")


# =============================================================================
# LAYER 3: HEALTH MONITORING
# Health checks and the background connection watcher
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health.

    watch() is the source of connection-lifecycle events after startup:
    - connected and PING fails      -> ConnectionManager.mark_lost() (error event)
    - disconnected and reconnect ok -> ConnectionManager.connect() (connected event)
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Redis connection.

        STAGE-REDIS.HEALTH: Redis health check
        """
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "target": self._conn_mgr.target(),
            "pool_size": 0,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client or not self._conn_mgr.is_connected():
            health["status"] = "unhealthy"
            health["error"] = "Client not connected"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)

            pool = self._conn_mgr.get_pool()
            if pool:
                health["pool_size"] = pool.max_connections
        except (*CONNECTIVITY_ERRORS, RedisError) as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)

        return health

    async def watch_once(self) -> None:
        """One watcher tick: detect a lost connection or try to re-establish it."""
        if self._conn_mgr.is_connected():
            if not await self._conn_mgr.ping():
                self._conn_mgr.mark_lost("Redis did not answer PING")
            return

        try:
            await self._conn_mgr.connect()
        except CacheConnectionError:
            # connect() already logged and emitted the error event
            pass

    async def watch(self) -> None:
        """Run watch_once() every REDIS_HEALTH_CHECK_INTERVAL seconds until cancelled."""
        interval = self._settings.redis.REDIS_HEALTH_CHECK_INTERVAL
        while True:
            await asyncio.sleep(interval)
            try:
                await self.watch_once()
            except Exception as e:
                log_stage(logger, "REDIS.4", "Redis watcher tick failed", level="error",
                          error_type=e.__class__.__name__, error=str(e))


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client with connection pooling, lifecycle signals and health checks.

    Usage:
        client = RedisClient()
        client.add_lifecycle_listener(tracker.mark_ready, tracker.mark_unavailable)
        await client.connect()

        await client.set("key", "value", ttl=3600)
        value = await client.get("key")

        await client.disconnect()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings()

        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)

        # Rebuild the executor whenever a (re)connect succeeds
        self._conn_mgr.add_listener(self._bind_executor, lambda reason: None)

    def _bind_executor(self) -> None:
        client = self._conn_mgr.get_client()
        self._executor = OperationExecutor(client) if client else None

    def add_lifecycle_listener(self, on_connected: OnConnected, on_error: OnError) -> None:
        """Subscribe to connection-established / connection-error events."""
        self._conn_mgr.add_listener(on_connected, on_error)

    async def connect(self) -> None:
        """
        Establish connection to Redis with connection pooling.

        Raises:
            CacheConnectionError: If connection fails
        """
        await self._conn_mgr.connect()

    async def disconnect(self) -> None:
        """Close Redis connection and pool."""
        await self._conn_mgr.disconnect()
        self._executor = None

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    def is_connected(self) -> bool:
        return self._conn_mgr.is_connected()

    async def watch(self) -> None:
        """Background connection watcher; run as a task and cancel on shutdown."""
        await self._health_monitor.watch()

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()

    # -------------------------------------------------------------------------
    # Delegate to OperationExecutor
    # -------------------------------------------------------------------------

    def _require_executor(self) -> OperationExecutor:
        if self._executor is None:
            raise CacheConnectionError("Redis client is not connected")
        return self._executor

    async def get(self, key: str) -> str | None:
        """Get value from Redis."""
        return await self._require_executor().get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set value in Redis with optional expiry in seconds."""
        return await self._require_executor().set(key, value, ttl)

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        return await self._require_executor().delete(*keys)

    async def exists(self, *keys: str) -> int:
        """Count how many of keys exist."""
        return await self._require_executor().exists(*keys)

    async def expire(self, key: str, ttl: int) -> bool:
        """Set TTL on a key."""
        return await self._require_executor().expire(key, ttl)

    async def hset(self, name: str, mapping: dict[str, Any]) -> int:
        """Set hash fields from a mapping."""
        return await self._require_executor().hset(name, mapping)

    async def hincrby(self, name: str, field: str, amount: int = 1) -> int:
        """Increment a hash field."""
        return await self._require_executor().hincrby(name, field, amount)

    async def hgetall(self, name: str) -> dict[str, str]:
        """Get all hash fields."""
        return await self._require_executor().hgetall(name)

    async def zadd(self, name: str, mapping: dict[str, float]) -> int:
        """Add or re-score sorted set members."""
        return await self._require_executor().zadd(name, mapping)

    async def zrange(self, name: str, start: int, end: int) -> list[str]:
        """Sorted set members by rank, lowest score first."""
        return await self._require_executor().zrange(name, start, end)

    async def zrem(self, name: str, *members: str) -> int:
        """Remove sorted set members."""
        return await self._require_executor().zrem(name, *members)

    async def scan_keys(self, pattern: str) -> list[str]:
        """All keys matching a glob pattern."""
        return await self._require_executor().scan_keys(pattern)


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_redis_client: RedisClient | None = None


def get_redis_client() -> RedisClient:
    """Get the global Redis client instance (singleton)."""
    global _redis_client

    if _redis_client is None:
        _redis_client = RedisClient()

    return _redis_client


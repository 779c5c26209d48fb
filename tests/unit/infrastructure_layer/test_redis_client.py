"""
Unit Tests for RedisClient

Tests connection retries, lifecycle events, error mapping and the watcher
tick, with redis-py replaced by mocks.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from query_cache.core.exceptions import CacheConnectionError, CacheKeyError
from query_cache.infrastructure.cache import redis_client as redis_client_module
from query_cache.infrastructure.cache.redis_client import OperationExecutor, RedisClient
from tests.test_fixtures.cache_factory import CacheTestFactory


@pytest.fixture
def settings():
    return CacheTestFactory.settings(REDIS_CONNECT_RETRIES=1, REDIS_RETRY_MAX_DELAY=0.1)


@pytest.fixture
def fake_redis_instance():
    instance = MagicMock()
    instance.ping = AsyncMock(return_value=True)
    instance.aclose = AsyncMock()
    instance.get = AsyncMock(return_value="value")
    return instance


@pytest.fixture
def patched_redis(fake_redis_instance):
    with patch.object(redis_client_module.redis, "Redis", return_value=fake_redis_instance):
        yield fake_redis_instance


class EventRecorder:
    def __init__(self):
        self.events = []

    def on_connected(self):
        self.events.append("connected")

    def on_error(self, reason):
        self.events.append(("error", reason))


@pytest.mark.unit
class TestConnect:
    async def test_successful_connect_emits_connected(self, settings, patched_redis):
        client = RedisClient(settings)
        recorder = EventRecorder()
        client.add_lifecycle_listener(recorder.on_connected, recorder.on_error)

        await client.connect()

        assert client.is_connected() is True
        assert recorder.events == ["connected"]
        assert await client.get("k") == "value"
        patched_redis.get.assert_awaited_once_with("k")

    async def test_failed_connect_retries_then_emits_error(self, settings, patched_redis):
        patched_redis.ping.side_effect = RedisConnectionError("Connection refused")
        client = RedisClient(settings)
        recorder = EventRecorder()
        client.add_lifecycle_listener(recorder.on_connected, recorder.on_error)

        with pytest.raises(CacheConnectionError):
            await client.connect()

        # first attempt plus REDIS_CONNECT_RETRIES
        assert patched_redis.ping.await_count == 2
        assert client.is_connected() is False
        assert len(recorder.events) == 1
        assert recorder.events[0][0] == "error"
        assert "Connection refused" in recorder.events[0][1]

    async def test_commands_before_connect_raise_connection_error(self, settings):
        client = RedisClient(settings)

        with pytest.raises(CacheConnectionError):
            await client.get("k")

    async def test_disconnect_closes_client(self, settings, patched_redis):
        client = RedisClient(settings)
        await client.connect()

        await client.disconnect()

        patched_redis.aclose.assert_awaited_once()
        assert client.is_connected() is False


@pytest.mark.unit
class TestOperationExecutor:
    @pytest.mark.parametrize("error", [RedisConnectionError("reset"), RedisTimeoutError("slow")])
    async def test_connectivity_errors_map_to_connection_error(self, error):
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=error)

        with pytest.raises(CacheConnectionError) as exc_info:
            await OperationExecutor(redis).get("k")
        assert exc_info.value.details["command"] == "get"

    async def test_command_errors_map_to_key_error(self):
        redis = MagicMock()
        redis.hincrby = AsyncMock(side_effect=ResponseError("WRONGTYPE"))

        with pytest.raises(CacheKeyError):
            await OperationExecutor(redis).hincrby("k:meta", "accessCount", 1)

    async def test_set_passes_expiry(self):
        redis = MagicMock()
        redis.set = AsyncMock(return_value=True)

        assert await OperationExecutor(redis).set("k", "v", 60) is True
        redis.set.assert_awaited_once_with("k", "v", ex=60)

    async def test_delete_without_keys_is_noop(self):
        redis = MagicMock()
        redis.delete = AsyncMock()

        assert await OperationExecutor(redis).delete() == 0
        redis.delete.assert_not_awaited()

    async def test_scan_keys_collects_matches(self):
        async def scan_iter(match, count):
            for key in ("snowflake:a", "snowflake:b"):
                yield key

        redis = MagicMock()
        redis.scan_iter = scan_iter

        assert await OperationExecutor(redis).scan_keys("snowflake:*") == ["snowflake:a", "snowflake:b"]


@pytest.mark.unit
class TestWatcher:
    async def test_lost_connection_emits_error(self, settings, patched_redis):
        client = RedisClient(settings)
        recorder = EventRecorder()
        client.add_lifecycle_listener(recorder.on_connected, recorder.on_error)
        await client.connect()

        patched_redis.ping.side_effect = RedisConnectionError("gone")
        await client._health_monitor.watch_once()
        await client._health_monitor.watch_once()

        assert recorder.events[0] == "connected"
        assert recorder.events[1] == ("error", "Redis did not answer PING")
        assert client.is_connected() is False

    async def test_watcher_reconnects(self, settings, patched_redis):
        patched_redis.ping.side_effect = RedisConnectionError("down")
        client = RedisClient(settings)
        recorder = EventRecorder()
        client.add_lifecycle_listener(recorder.on_connected, recorder.on_error)
        with pytest.raises(CacheConnectionError):
            await client.connect()

        patched_redis.ping.side_effect = None
        await client._health_monitor.watch_once()

        assert client.is_connected() is True
        assert recorder.events[-1] == "connected"

    async def test_health_check_reports_unhealthy_when_disconnected(self, settings):
        health = await RedisClient(settings).health_check()

        assert health["status"] == "unhealthy"
        assert health["connected"] is False

    async def test_reconnect_closes_the_lost_client(self, settings):
        first = MagicMock()
        first.ping = AsyncMock(return_value=True)
        first.aclose = AsyncMock()
        second = MagicMock()
        second.ping = AsyncMock(return_value=True)
        second.aclose = AsyncMock()
        second.get = AsyncMock(return_value="fresh")

        with patch.object(redis_client_module.redis, "Redis", side_effect=[first, second]):
            client = RedisClient(settings)
            await client.connect()

            first.ping.side_effect = RedisConnectionError("gone")
            await client._health_monitor.watch_once()
            await client._health_monitor.watch_once()

        assert client.is_connected() is True
        first.aclose.assert_awaited_once()
        second.aclose.assert_not_awaited()
        assert await client.get("k") == "fresh"

    async def test_watch_survives_unexpected_tick_errors(self):
        client = RedisClient(CacheTestFactory.settings(REDIS_HEALTH_CHECK_INTERVAL=0))
        tick = AsyncMock(side_effect=[RuntimeError("boom"), asyncio.CancelledError()])

        with patch.object(client._health_monitor, "watch_once", tick):
            with pytest.raises(asyncio.CancelledError):
                await client.watch()

        assert tick.await_count == 2

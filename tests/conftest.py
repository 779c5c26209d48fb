"""
Pytest Configuration and Shared Test Fixtures

This module provides reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import pytest

from tests.test_fixtures.cache_factory import CacheTestFactory, FakeClock, InMemoryRedis

# pytest-asyncio runs in auto mode (see pyproject.toml)


# ============================================================================
# Settings Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def reset_global_settings(monkeypatch):
    """
    Keep tests independent of the developer's environment and of each other.

    Clears cache/Redis variables and drops the settings singleton so every
    test sees defaults unless it sets variables itself.
    """
    import query_cache.core.config.settings as settings_module

    for var in (
        "CACHE_MAX_SIZE",
        "CACHE_DEFAULT_TTL",
        "CACHE_DEFAULT_POLICY",
        "CACHE_NAMESPACE",
        "ENABLE_SHARED_CACHE",
        "REDIS_URL",
        "REDIS_HOST",
        "REDIS_PORT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(settings_module, "_settings", None)
    yield
    monkeypatch.setattr(settings_module, "_settings", None)


# ============================================================================
# Clock and Redis Stand-ins
# ============================================================================


@pytest.fixture
def clock():
    """Manually advanced clock shared by the manager and the fake Redis."""
    return FakeClock()


@pytest.fixture
def in_memory_redis(clock):
    """
    In-memory Redis client stub for testing.

    Mimics the RedisClient surface, including lifecycle listeners.
    """
    return InMemoryRedis(clock)


@pytest.fixture
def cache_settings():
    return CacheTestFactory.settings()


# ============================================================================
# Cache Managers
# ============================================================================


@pytest.fixture
def local_cache(clock):
    """CacheManager whose Redis never connected (local store active)."""
    manager, _ = CacheTestFactory.local_manager(clock)
    return manager


@pytest.fixture
async def redis_cache(clock):
    """CacheManager with a connected in-memory Redis (shared store active)."""
    manager, redis = await CacheTestFactory.redis_manager(clock)
    return manager, redis

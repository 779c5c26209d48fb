"""
Unit Tests for Configuration Constants

The Redis key layout is shared with other processes reading the same
database, so its names are pinned here.
"""

import pytest

from query_cache.core.config.constants import (
    CACHE_KEY_SEP,
    META_FIELD_ACCESS_COUNT,
    META_FIELD_LAST_ACCESSED,
    META_FIELD_TIMESTAMP,
    REDIS_KEY_ACCESS_ORDER,
    REDIS_KEY_ROUND_ROBIN_INDEX,
    REDIS_META_SUFFIX,
    AvailabilityMode,
    CacheProvider,
)


@pytest.mark.unit
class TestRedisLayout:
    def test_key_names(self):
        assert CACHE_KEY_SEP == ":"
        assert REDIS_META_SUFFIX == ":meta"
        assert REDIS_KEY_ACCESS_ORDER == "accessOrder"
        assert REDIS_KEY_ROUND_ROBIN_INDEX == "roundRobinIndex"

    def test_meta_fields(self):
        assert (META_FIELD_TIMESTAMP, META_FIELD_ACCESS_COUNT, META_FIELD_LAST_ACCESSED) == (
            "timestamp",
            "accessCount",
            "lastAccessed",
        )


@pytest.mark.unit
class TestEnums:
    def test_provider_names(self):
        assert CacheProvider.REDIS.value == "Redis"
        assert CacheProvider.IN_MEMORY.value == "In-Memory"

    def test_availability_modes(self):
        assert [mode.value for mode in AvailabilityMode] == [
            "uninitialized",
            "connecting",
            "ready",
            "degraded",
        ]

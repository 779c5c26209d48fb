"""
Configuration Module

Type-safe configuration for the query result cache.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Enums, defaults and the Redis key layout

Usage:
------
```python
from query_cache.core.config import get_settings
from query_cache.core.config.constants import AvailabilityMode

settings = get_settings()
max_size = settings.cache.CACHE_MAX_SIZE
```

Testing:
-------
```python
import os
from query_cache.core.config import reload_settings

os.environ["CACHE_MAX_SIZE"] = "2"
settings = reload_settings()
assert settings.cache.CACHE_MAX_SIZE == 2
```
"""

from query_cache.core.config.constants import (
    CACHE_KEY_SEP,
    DEFAULT_CACHE_NAMESPACE,
    DEFAULT_EVICTION_POLICY,
    DEFAULT_STATS_KEY_LIMIT,
    LOCAL_CACHE_MAX_SIZE,
    REDIS_KEY_ACCESS_ORDER,
    REDIS_KEY_ROUND_ROBIN_INDEX,
    REDIS_META_SUFFIX,
    SHARED_CACHE_DEFAULT_TTL,
    AvailabilityMode,
    CacheProvider,
)
from query_cache.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "AvailabilityMode",
    "CacheProvider",
    # Defaults
    "LOCAL_CACHE_MAX_SIZE",
    "SHARED_CACHE_DEFAULT_TTL",
    "DEFAULT_EVICTION_POLICY",
    "DEFAULT_CACHE_NAMESPACE",
    "DEFAULT_STATS_KEY_LIMIT",
    # Redis keys
    "CACHE_KEY_SEP",
    "REDIS_META_SUFFIX",
    "REDIS_KEY_ACCESS_ORDER",
    "REDIS_KEY_ROUND_ROBIN_INDEX",
]

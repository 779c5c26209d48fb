"""
Cache Module

Query result caching in Redis with an in-process fallback store.
"""

from .cache_manager import (
    CacheManager,
    close_cache,
    get_cache_manager,
    init_cache,
)
from .eviction import EvictionEngine, EvictionPolicy
from .keys import ConnectionIdentity, derive_key, normalize_query

__all__ = [
    "CacheManager",
    "get_cache_manager",
    "init_cache",
    "close_cache",
    "EvictionEngine",
    "EvictionPolicy",
    "ConnectionIdentity",
    "derive_key",
    "normalize_query",
]

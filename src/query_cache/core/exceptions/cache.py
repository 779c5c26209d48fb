"""
Cache-Related Exceptions

All exceptions related to caching operations (Redis and the in-process store).

Fallback rules:
- CacheConnectionError and CacheKeyError raised on the Redis path are logged
  and the call falls back to the local store. They never reach callers of
  get/set.
- CacheSerializationError means stored data is corrupt; no fallback can
  repair it, so it propagates.
"""

from query_cache.core.exceptions.base import QueryCacheError


class CacheError(QueryCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when Redis is unreachable or a command times out.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a Redis command fails for a non-connectivity reason.

    Common causes:
    - WRONGTYPE (key holds a different data type)
    - Memory limit exceeded
    - Client used before connect()
    """
    pass


class CacheSerializationError(CacheError):
    """
    Raised when a cached payload cannot be encoded or decoded.
    """
    pass


class InvalidEvictionPolicyError(CacheError):
    """
    Raised when a caller names an eviction policy that does not exist.

    Valid policies: fcfs, lru, roundrobin
    """
    pass

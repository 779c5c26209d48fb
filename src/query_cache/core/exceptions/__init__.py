"""
Exception Module

Structured exception hierarchy for the query result cache.

Module Structure:
-----------------
- **base.py**: QueryCacheError base class + ConfigurationError
- **cache.py**: Cache-related exceptions (Redis, serialization, policy)

Usage:
------
```python
from query_cache.core.exceptions import CacheConnectionError, CacheSerializationError
```
"""

from query_cache.core.exceptions.base import ConfigurationError, QueryCacheError
from query_cache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
    InvalidEvictionPolicyError,
)

__all__ = [
    # Base
    "QueryCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheSerializationError",
    "InvalidEvictionPolicyError",
]

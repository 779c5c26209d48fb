"""
Core Interfaces Module

Protocols that decouple the eviction engine from concrete backends.

Components:
-----------
- **cache.py**: EvictableStore protocol implemented by the local and shared stores
"""

from query_cache.core.interfaces.cache import EvictableStore

__all__ = ["EvictableStore"]

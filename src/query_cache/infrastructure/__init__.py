"""
Infrastructure Layer

Redis client, cache stores, eviction and the cache manager.
"""

"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .cache_factory import CacheTestFactory, FakeClock, InMemoryRedis

__all__ = ["CacheTestFactory", "FakeClock", "InMemoryRedis"]

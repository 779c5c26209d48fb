"""
Resilience Module

Keeps the cache serving when the shared backend is unreachable.
"""

from query_cache.core.resilience.availability import AvailabilityTracker

__all__ = ["AvailabilityTracker"]

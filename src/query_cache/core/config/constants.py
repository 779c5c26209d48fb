"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the query result cache.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers and Redis key names
- Type-safe enums for state management
"""

from enum import Enum

# ============================================================================
# Availability States
# ============================================================================


class AvailabilityMode(str, Enum):
    """
    Shared (Redis) backend availability.

    UNINITIALIZED: No connection attempted yet
    CONNECTING: Handshake in progress
    READY: Handshake succeeded, no unresolved connectivity error
    DEGRADED: Connectivity error reported; requests go to the local store
    """

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    DEGRADED = "degraded"


# ============================================================================
# Cache Provider Names (reported by stats and health)
# ============================================================================


class CacheProvider(str, Enum):
    """Which backend served a stats/clear call."""

    REDIS = "Redis"
    IN_MEMORY = "In-Memory"


# ============================================================================
# Defaults
# ============================================================================

LOCAL_CACHE_MAX_SIZE = 100  # Maximum entries per backend
SHARED_CACHE_DEFAULT_TTL = 3600  # Default TTL (1 hour)
DEFAULT_EVICTION_POLICY = "fcfs"
DEFAULT_CACHE_NAMESPACE = "snowflake"
DEFAULT_STATS_KEY_LIMIT = 20  # Keys listed by stats()

# ============================================================================
# Redis Key Layout
# ============================================================================

CACHE_KEY_SEP = ":"
REDIS_META_SUFFIX = ":meta"
REDIS_KEY_ACCESS_ORDER = "accessOrder"
REDIS_KEY_ROUND_ROBIN_INDEX = "roundRobinIndex"

# Fields of the <key>:meta hash
META_FIELD_TIMESTAMP = "timestamp"
META_FIELD_ACCESS_COUNT = "accessCount"
META_FIELD_LAST_ACCESSED = "lastAccessed"

# Batch size for SCAN iteration
REDIS_SCAN_COUNT = 500

# ============================================================================
# HTTP
# ============================================================================

API_BASE_PATH = "/api"
HEADER_REQUEST_ID = "X-Request-ID"

"""
Evictable Store Protocol

The eviction engine works against either backend through this protocol.
Each backend owns its own access-order index and round-robin cursor, so
independent cache instances never share eviction state.

Architectural Decision: Protocol-based abstraction
- LocalStorage and SharedStorage satisfy it structurally (no inheritance)
- Tests can drive the engine with any object providing these methods
"""

from typing import Protocol, runtime_checkable

from query_cache.core.config.constants import CacheProvider


@runtime_checkable
class EvictableStore(Protocol):
    """Operations the eviction engine, stats and clear need from a backend."""

    provider: CacheProvider

    async def count(self) -> int:
        """Number of live value entries."""
        ...

    async def contains(self, key: str) -> bool:
        """True if key currently holds a value."""
        ...

    async def list_keys(self) -> list[str]:
        """
        Live value keys in a stable enumeration order.

        Round-robin eviction indexes into this list, so two calls without
        intervening writes must return the same order.
        """
        ...

    async def oldest_tracked_key(self) -> str | None:
        """Key with the oldest access-order timestamp, or None if the index is empty."""
        ...

    async def remove(self, key: str) -> bool:
        """Delete a key together with its metadata and index record."""
        ...

    async def read_cursor(self) -> int:
        """Current round-robin cursor for this backend."""
        ...

    async def write_cursor(self, value: int) -> None:
        """Persist the round-robin cursor in this backend's scope."""
        ...

    async def clear(self) -> None:
        """Drop all entries, the access-order index and the cursor."""
        ...

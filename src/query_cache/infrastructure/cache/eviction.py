"""
Eviction Engine

Removes exactly one entry from a store when the manager is about to insert
into a full one. Policies:

FCFS / LRU:
    Evict the key with the oldest access-order timestamp. Reads refresh a
    key's position under BOTH policies, so FCFS behaves as LRU. If the index
    is empty while the store is not (entries written under round-robin),
    the first key in enumeration order is evicted instead.

ROUNDROBIN:
    Enumerate the store's keys in stable order, evict keys[cursor % count],
    persist cursor + 1 in the store. The cursor wraps against the key count
    at use time, so the same cursor value may hit a different key each time.

The engine holds no state. Index and cursor live in the store it is given,
so the local and shared cursors advance independently.
"""

from enum import Enum

from query_cache.core.exceptions import InvalidEvictionPolicyError
from query_cache.core.interfaces import EvictableStore
from query_cache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)


class EvictionPolicy(str, Enum):
    """Supported eviction policies."""

    FCFS = "fcfs"
    LRU = "lru"
    ROUND_ROBIN = "roundrobin"

    @classmethod
    def parse(cls, name: "str | EvictionPolicy") -> "EvictionPolicy":
        """
        Parse a policy name case-insensitively.

        "round_robin", "Round-Robin" and "roundrobin" are all ROUND_ROBIN.

        Raises:
            InvalidEvictionPolicyError: Unknown policy name
        """
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().lower().replace("_", "").replace("-", "")
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidEvictionPolicyError(
                f"Unknown eviction policy: {name!r}",
                details={"valid_policies": [policy.value for policy in cls]},
            )

    @property
    def tracks_access_order(self) -> bool:
        """FCFS and LRU maintain the access-order index; round-robin does not."""
        return self in (EvictionPolicy.FCFS, EvictionPolicy.LRU)


class EvictionEngine:
    """
    Selects and removes one victim from a store.

    STAGE-4.0: Eviction
    """

    async def evict(self, policy: EvictionPolicy, store: EvictableStore) -> str | None:
        """
        Evict one entry from store under policy.

        Returns:
            The evicted key, or None if the store was empty
        """
        if policy.tracks_access_order:
            victim = await self._select_oldest(store)
        else:
            victim = await self._select_round_robin(store)

        if victim is None:
            return None

        await store.remove(victim)
        log_stage(
            logger,
            "4.1",
            "Evicted cache entry",
            level="debug",
            policy=policy.value,
            provider=store.provider.value,
            key=victim,
        )
        return victim

    async def _select_oldest(self, store: EvictableStore) -> str | None:
        victim = await store.oldest_tracked_key()
        if victim is not None:
            return victim

        keys = await store.list_keys()
        return keys[0] if keys else None

    async def _select_round_robin(self, store: EvictableStore) -> str | None:
        keys = await store.list_keys()
        if not keys:
            return None

        cursor = await store.read_cursor()
        victim = keys[cursor % len(keys)]
        await store.write_cursor(cursor + 1)
        return victim

"""
Shared Backend Availability Tracker.

Records whether the shared (Redis) cache backend may be used, as an explicit
state machine rather than a boolean recomputed from call results.

STATES:
-------
- **UNINITIALIZED**: No connection attempted yet. Requests use the local store.
- **CONNECTING**: Handshake in progress. Requests use the local store.
- **READY**: Handshake succeeded and no connectivity error is outstanding.
  Requests try Redis first.
- **DEGRADED**: The Redis adapter reported a connectivity error. Requests use
  the local store until the adapter reports the connection re-established.

TRANSITIONS:
------------
    UNINITIALIZED --mark_connecting--> CONNECTING
    CONNECTING    --mark_ready-------> READY
    CONNECTING    --mark_unavailable-> DEGRADED
    READY         --mark_unavailable-> DEGRADED
    DEGRADED      --mark_connecting--> CONNECTING
    DEGRADED      --mark_ready-------> READY

Promotion is asymmetric: only a connection-lifecycle signal from the Redis
adapter calls mark_ready(). A single Redis command that happens to succeed
after a failure never promotes the tracker, and a single failed command
never demotes it.
"""

import time
from typing import Any

from query_cache.core.config.constants import AvailabilityMode
from query_cache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)


class AvailabilityTracker:
    """State machine for the shared backend's usability."""

    def __init__(self, name: str = "redis"):
        self.name = name
        self._mode = AvailabilityMode.UNINITIALIZED
        self._last_error: str | None = None
        self._has_connected = False
        self._changed_at = time.time()

    @property
    def mode(self) -> AvailabilityMode:
        return self._mode

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def _transition(self, new_mode: AvailabilityMode, level: str = "info", **fields) -> None:
        old_mode = self._mode
        self._mode = new_mode
        self._changed_at = time.time()
        log_stage(
            logger,
            "AV.1",
            "Shared cache availability changed",
            level=level,
            backend=self.name,
            from_mode=old_mode.value,
            to_mode=new_mode.value,
            **fields,
        )

    def mark_connecting(self) -> None:
        """Connection attempt started. Ignored while READY."""
        if self._mode == AvailabilityMode.READY:
            return
        if self._mode != AvailabilityMode.CONNECTING:
            self._transition(AvailabilityMode.CONNECTING)

    def mark_ready(self) -> None:
        """Connection established; clears any outstanding connectivity error."""
        self._has_connected = True
        self._last_error = None
        if self._mode != AvailabilityMode.READY:
            self._transition(AvailabilityMode.READY)

    def mark_unavailable(self, reason: str) -> None:
        """Connectivity error reported by the adapter."""
        self._last_error = reason
        if self._mode != AvailabilityMode.DEGRADED:
            self._transition(AvailabilityMode.DEGRADED, level="warning", reason=reason)

    def is_ready(self) -> bool:
        """True only while mode is READY."""
        return self._mode == AvailabilityMode.READY

    def snapshot(self) -> dict[str, Any]:
        """Current state for health reports."""
        return {
            "backend": self.name,
            "mode": self._mode.value,
            "has_connected": self._has_connected,
            "last_error": self._last_error,
            "since": self._changed_at,
        }

# ============================================================================
# STICKY RESULT TRACKER
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Non-OK result retention
# PURPOSE: Keep reporting a recent failure after a probe turns OK again
# CREATED: 19 OCT 2026
# ============================================================================
"""
Sticky Result Tracker

For probes configured with a retention window, an OK result is replaced
by the most recent non-OK result while that result is younger than the
window. A load balancer polling the system is therefore not told
"healthy" the moment a flapping dependency recovers.

The window is measured from when the non-OK result was computed, against
the time of the query. Only the status shown changes; the cached result
and its timestamps are untouched.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.config import STICKY_INDEFINITE
from health.core import Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StickyEntry:
    result: Result
    recorded_at: float


def retention_seconds(retention_ms: Optional[int]) -> Optional[float]:
    """Convert configured milliseconds; None = not sticky, inf = indefinite."""
    if retention_ms is None:
        return None
    if retention_ms == STICKY_INDEFINITE:
        return math.inf
    return retention_ms / 1000.0


class StickyResultTracker:
    """Remembers the most recent non-OK result per sticky probe."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._retention: Dict[str, float] = {}
        self._sticky: Dict[str, StickyEntry] = {}

    def configure(self, name: str, retention: Optional[float]) -> None:
        """Set the retention window in seconds (``math.inf`` = indefinite, None = off)."""
        if retention is None or retention <= 0:
            self._retention.pop(name, None)
            self._sticky.pop(name, None)
        else:
            self._retention[name] = retention

    def retention(self, name: str) -> Optional[float]:
        return self._retention.get(name)

    def apply(
        self,
        name: str,
        fresh: Result,
        computed_at: Optional[float] = None,
        now: Optional[float] = None,
    ) -> Result:
        """Effective result for ``fresh`` given the retained state."""
        retention = self._retention.get(name)
        if retention is None:
            return fresh

        now = self._clock() if now is None else now
        computed_at = now if computed_at is None else computed_at

        if not fresh.is_ok():
            current = self._sticky.get(name)
            if current is None or computed_at >= current.recorded_at:
                self._sticky[name] = StickyEntry(fresh, computed_at)
            return fresh

        current = self._sticky.get(name)
        if current is None:
            return fresh
        if now - current.recorded_at < retention:
            logger.debug(
                f"Probe {name} is OK but reporting sticky {current.result.status.value} "
                f"from {now - current.recorded_at:.1f}s ago"
            )
            return current.result

        del self._sticky[name]
        return fresh

    def current(self, name: str) -> Optional[StickyEntry]:
        return self._sticky.get(name)

    def reset(self, name: str) -> bool:
        return self._sticky.pop(name, None) is not None

    def forget(self, name: str) -> None:
        """Drop all state, including configuration, for an unregistered probe."""
        self._sticky.pop(name, None)
        self._retention.pop(name, None)


__all__ = [
    "StickyEntry",
    "StickyResultTracker",
    "retention_seconds",
]

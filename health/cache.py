# ============================================================================
# RESULT CACHE
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - TTL result store
# PURPOSE: Serve recent probe results without re-executing the probe
# CREATED: 19 OCT 2026
# ============================================================================
"""
Result Cache

Keeps the last raw execution of every probe, valid until
``computed_at + ttl``. Entries are written by the execution itself (caller
or scheduler triggered), read by the executor.

The map is guarded by one lock held only for single dict operations, so
unrelated probes never wait on each other's executions.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from health.core import Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedExecution:
    """A raw probe result plus the bookkeeping of the execution that made it."""
    result: Result
    computed_at: float
    elapsed_ms: float = 0.0
    finished_at: Optional[datetime] = None
    expires_at: float = 0.0

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class ResultCache:
    """
    TTL-keyed store of probe executions.

    Args:
        default_ttl: TTL in seconds used when put() is given none
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        default_ttl: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CachedExecution] = {}
        self._lock = threading.Lock()

    def put(
        self,
        name: str,
        result: Result,
        ttl: Optional[float] = None,
        computed_at: Optional[float] = None,
        elapsed_ms: float = 0.0,
        finished_at: Optional[datetime] = None,
    ) -> Optional[CachedExecution]:
        """
        Store a result. A non-positive TTL stores nothing.

        An entry computed before the one already stored never replaces it.
        """
        ttl = self.default_ttl if ttl is None else ttl
        computed_at = self._clock() if computed_at is None else computed_at
        if ttl <= 0:
            return None

        return self.store(
            name,
            CachedExecution(
                result=result,
                computed_at=computed_at,
                elapsed_ms=elapsed_ms,
                finished_at=finished_at,
                expires_at=computed_at + ttl,
            ),
        )

    def store(self, name: str, entry: CachedExecution) -> Optional[CachedExecution]:
        """Store a complete entry; one that expires as it is computed is dropped."""
        if entry.expires_at <= entry.computed_at:
            return None
        with self._lock:
            current = self._entries.get(name)
            if current is not None and current.computed_at > entry.computed_at:
                logger.debug(f"Cache put for {name} ignored: newer entry present")
                return current
            self._entries[name] = entry
        return entry

    def get_entry(self, name: str) -> Optional[CachedExecution]:
        """Valid entry for ``name``, or None. Expired entries are evicted."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return None
            if not entry.is_valid(now):
                del self._entries[name]
                return None
            return entry

    def get(self, name: str) -> Optional[Result]:
        entry = self.get_entry(name)
        return entry.result if entry is not None else None

    def invalidate(self, name: str) -> bool:
        with self._lock:
            return self._entries.pop(name, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def names(self) -> List[str]:
        now = self._clock()
        with self._lock:
            return [n for n, e in self._entries.items() if e.is_valid(now)]

    def __len__(self) -> int:
        return len(self.names())

    def __contains__(self, name: str) -> bool:
        return self.get_entry(name) is not None


__all__ = [
    "CachedExecution",
    "ResultCache",
]

# ============================================================================
# GRACE PERIOD ESCALATION
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Stuck recovery detection
# PURPOSE: Turn a long TEMPORARILY_UNAVAILABLE streak into CRITICAL
# CREATED: 19 OCT 2026
# ============================================================================
"""
Grace Period Escalator

TEMPORARILY_UNAVAILABLE promises self-healing. A probe that keeps
reporting it past its grace period is reported CRITICAL instead, with
the original log entries and an appended note.

The streak starts at the computation time of the first result in it and
ends the moment any other status is seen. Reapplying the same cached
result continues the streak without counting it twice.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from health.core import Result, Status

logger = logging.getLogger(__name__)


@dataclass
class Streak:
    started_at: float
    last_seen_at: float
    count: int = 1
    escalated: bool = False


class GracePeriodEscalator:
    """
    Args:
        grace_period: Default grace period in seconds
        clock: Monotonic clock in seconds
    """

    def __init__(self, grace_period: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.grace_period = grace_period
        self._clock = clock
        self._grace: Dict[str, float] = {}
        self._streaks: Dict[str, Streak] = {}

    def configure(self, name: str, grace_period: Optional[float]) -> None:
        if grace_period is None:
            self._grace.pop(name, None)
        else:
            self._grace[name] = grace_period

    def grace_for(self, name: str) -> float:
        return self._grace.get(name, self.grace_period)

    def apply(
        self,
        name: str,
        result: Result,
        computed_at: Optional[float] = None,
        now: Optional[float] = None,
    ) -> Result:
        now = self._clock() if now is None else now
        computed_at = now if computed_at is None else computed_at

        if result.status is not Status.TEMPORARILY_UNAVAILABLE:
            if self._streaks.pop(name, None) is not None:
                logger.debug(f"Probe {name} left TEMPORARILY_UNAVAILABLE, streak cleared")
            return result

        streak = self._streaks.get(name)
        if streak is None:
            streak = Streak(started_at=computed_at, last_seen_at=computed_at)
            self._streaks[name] = streak
        elif computed_at > streak.last_seen_at:
            streak.count += 1
            streak.last_seen_at = computed_at

        grace = self.grace_for(name)
        unavailable_for = now - streak.started_at
        if unavailable_for < grace:
            return result

        if not streak.escalated:
            streak.escalated = True
            logger.warning(
                f"Probe {name} TEMPORARILY_UNAVAILABLE for {unavailable_for:.1f}s "
                f"(grace {grace:.1f}s), escalating to CRITICAL"
            )
        return result.with_status(
            Status.CRITICAL,
            note=(
                f"Escalated to CRITICAL: TEMPORARILY_UNAVAILABLE for "
                f"{unavailable_for:.1f}s exceeds grace period of {grace:.1f}s"
            ),
        )

    def streak(self, name: str) -> Optional[Streak]:
        return self._streaks.get(name)

    def reset(self, name: str) -> bool:
        return self._streaks.pop(name, None) is not None

    def forget(self, name: str) -> None:
        self._streaks.pop(name, None)
        self._grace.pop(name, None)


__all__ = [
    "Streak",
    "GracePeriodEscalator",
]

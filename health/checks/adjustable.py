# ============================================================================
# ADJUSTABLE STATUS CONTROL
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Operator-injected results
# PURPOSE: Let an operator force WARN/CRITICAL/TEMPORARILY_UNAVAILABLE for tags
# CREATED: 19 OCT 2026
# ============================================================================
"""
Adjustable Status Control

An operational switch: inject a synthetic result for a set of tags, for
example to take an instance out of a load balancer pool before
maintenance. Injection registers an AdjustableStatusProbe carrying those
tags; any run selecting the tags sees the injected status until reset()
unregisters it.

Usage:
    control = AdjustableStatusControl(executor)
    control.temporarily_unavailable(["ready"], "Draining for deployment")
    ...
    control.reset()
"""

import logging
from typing import Iterable, Optional

from health.core import LogEntry, Probe, ProbeDescriptor, Result, Status
from health.executor import HealthCheckExecutor

logger = logging.getLogger(__name__)

ADJUSTABLE_STATUSES = (Status.WARN, Status.TEMPORARILY_UNAVAILABLE, Status.CRITICAL)


class AdjustableStatusProbe(Probe):
    """Returns whatever result was last injected."""

    def __init__(self, result: Result):
        self.result = result

    async def execute(self) -> Result:
        return self.result


class AdjustableStatusControl:
    """
    Args:
        executor: Executor to register the adjustable probe with
        name: Name the adjustable probe is registered under
    """

    DEFAULT_NAME = "adjustable-status"

    def __init__(self, executor: HealthCheckExecutor, name: str = DEFAULT_NAME):
        self._executor = executor
        self.name = name
        self._descriptor: Optional[ProbeDescriptor] = None

    @property
    def active(self) -> bool:
        return self._descriptor is not None and self.name in self._executor.registry

    @property
    def current(self) -> Optional[ProbeDescriptor]:
        return self._descriptor if self.active else None

    def inject(
        self,
        status: Status,
        tags: Iterable[str],
        message: Optional[str] = None,
    ) -> ProbeDescriptor:
        """
        Report ``status`` for probes selected by ``tags`` until reset.

        Replaces any previous injection.

        Raises:
            ValueError: If status is not WARN, TEMPORARILY_UNAVAILABLE or CRITICAL
        """
        status = Status(status)
        if status not in ADJUSTABLE_STATUSES:
            raise ValueError(f"Cannot inject status {status.value}")

        descriptor = ProbeDescriptor(
            name=self.name,
            title="Adjustable status",
            tags=frozenset(tags),
        )
        message = message or f"Status set to {status.value} by operator"
        probe = AdjustableStatusProbe(Result(status=status, entries=(LogEntry(status, message),)))

        self._executor.unregister(self.name)
        self._executor.register(descriptor, probe)
        self._descriptor = descriptor
        logger.warning(
            f"Injected {status.value} for tags {sorted(descriptor.tags)}: {message}"
        )
        return descriptor

    def warn(self, tags: Iterable[str], message: Optional[str] = None) -> ProbeDescriptor:
        return self.inject(Status.WARN, tags, message)

    def critical(self, tags: Iterable[str], message: Optional[str] = None) -> ProbeDescriptor:
        return self.inject(Status.CRITICAL, tags, message)

    def temporarily_unavailable(
        self, tags: Iterable[str], message: Optional[str] = None
    ) -> ProbeDescriptor:
        return self.inject(Status.TEMPORARILY_UNAVAILABLE, tags, message)

    def reset(self) -> bool:
        """Remove the injected result. Returns True if one was active."""
        self._descriptor = None
        removed = self._executor.unregister(self.name)
        if removed:
            logger.warning("Adjustable status reset")
        return removed


__all__ = [
    "ADJUSTABLE_STATUSES",
    "AdjustableStatusProbe",
    "AdjustableStatusControl",
]

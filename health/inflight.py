# ============================================================================
# IN-FLIGHT EXECUTIONS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Shared probe executions
# PURPOSE: Run each probe at most once at a time, shared by all waiters
# CREATED: 19 OCT 2026
# ============================================================================
"""
In-Flight Executions

Every probe execution, whether a caller or the scheduler asked for it,
runs as one asyncio task. Anyone else interested in the same probe while
that task runs joins it instead of starting another.

Waiters bound their wait with their own deadline over a shielded task:
giving up waiting never cancels the execution, which completes in the
background and still reports its result through ``on_complete``.

Synchronous probes run on a thread pool with the caller's logging
context copied into the worker thread.
"""

import asyncio
import contextvars
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from core.logging import log_context
from health.cache import CachedExecution
from health.core import Result
from health.registry import RegisteredProbe

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[RegisteredProbe, CachedExecution], None]


@dataclass
class InFlight:
    """A running probe execution."""
    entry: RegisteredProbe
    task: "asyncio.Task[CachedExecution]"
    started_at: float  # event loop time
    trigger: str

    @property
    def name(self) -> str:
        return self.entry.name

    def running_for(self) -> float:
        return asyncio.get_running_loop().time() - self.started_at


class InFlightExecutions:
    """
    Args:
        thread_pool: Pool for probes with a synchronous execute()
        on_complete: Called on the loop with each finished execution,
            before any waiter resumes
        clock: Monotonic clock stamped on results (``computed_at``)
    """

    def __init__(
        self,
        thread_pool: ThreadPoolExecutor,
        on_complete: Optional[CompletionCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._thread_pool = thread_pool
        self._on_complete = on_complete
        self._clock = clock
        self._running: Dict[str, InFlight] = {}

    def get(self, name: str) -> Optional[InFlight]:
        return self._running.get(name)

    def is_running(self, name: str) -> bool:
        return name in self._running

    def running(self) -> List[InFlight]:
        return list(self._running.values())

    def start_or_join(
        self,
        entry: RegisteredProbe,
        trigger: str = "request",
    ) -> Tuple[InFlight, bool]:
        """
        The in-flight execution of ``entry``, started if none is running.

        Must be called on the event loop. There is no await between the
        lookup and the insert, so two callers cannot both start one.

        Returns:
            (in-flight execution, True if this call started it)
        """
        current = self._running.get(entry.name)
        if current is not None and current.entry.token == entry.token:
            return current, False

        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._execute(entry),
            name=f"probe-{entry.name}",
        )
        inflight = InFlight(entry=entry, task=task, started_at=loop.time(), trigger=trigger)
        self._running[entry.name] = inflight
        task.add_done_callback(functools.partial(self._finished, inflight))
        logger.debug(f"Started execution of probe {entry.name} (trigger={trigger})")
        return inflight, True

    def _finished(self, inflight: InFlight, task: asyncio.Task) -> None:
        if self._running.get(inflight.name) is inflight:
            del self._running[inflight.name]

    async def _execute(self, entry: RegisteredProbe) -> CachedExecution:
        start = time.perf_counter()

        with log_context(probe=entry.name, operation="execute"):
            try:
                if entry.probe.is_async:
                    result = await entry.probe.execute()
                else:
                    loop = asyncio.get_running_loop()
                    ctx = contextvars.copy_context()
                    result = await loop.run_in_executor(
                        self._thread_pool,
                        functools.partial(ctx.run, entry.probe.execute),
                    )
                if not isinstance(result, Result):
                    raise TypeError(
                        f"execute() returned {type(result).__name__}, expected Result"
                    )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Probe {entry.name} failed: {e}", exc_info=True)
                result = Result.from_exception(e)

            elapsed_ms = (time.perf_counter() - start) * 1000
            computed_at = self._clock()
            execution = CachedExecution(
                result=result,
                computed_at=computed_at,
                elapsed_ms=elapsed_ms,
                finished_at=datetime.now(timezone.utc),
                expires_at=computed_at + entry.settings.cache_ttl,
            )

            logger.debug(
                f"Probe {entry.name}: {result.status.value} ({elapsed_ms:.1f}ms)"
            )

            if self._on_complete is not None:
                try:
                    self._on_complete(entry, execution)
                except Exception:
                    logger.exception(f"Completion handling failed for probe {entry.name}")

        return execution

    def cancel_all(self) -> List["asyncio.Task[CachedExecution]"]:
        """Cancel every running execution (shutdown only)."""
        tasks = [inflight.task for inflight in self._running.values()]
        for task in tasks:
            task.cancel()
        self._running.clear()
        return tasks


__all__ = [
    "InFlight",
    "InFlightExecutions",
    "CompletionCallback",
]

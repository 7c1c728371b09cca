# ============================================================================
# HEALTH CHECK EXECUTOR
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Probe orchestration
# PURPOSE: Select, execute, escalate and aggregate probes
# CREATED: 19 OCT 2026
# ============================================================================
"""
Health Check Executor

Executes probes selected by a tag filter with:
- Parallel execution of every selected probe
- Result caching (TTL per probe) and background scheduling
- One shared execution per probe, however many callers ask for it
- Per-caller timeouts that never cancel the real execution
- Grace-period escalation, then sticky non-OK results
- Result aggregation with 'worst wins' semantics

Per-probe policy:
1. A valid cache entry is the raw result; otherwise start or join the
   probe's execution and wait up to its timeout
2. On timeout, report WARN ("still running"), or CRITICAL once the
   execution has run past the exceedingly-late threshold
3. Apply the grace-period escalator (skipped for timeout fallbacks)
4. Apply the sticky result tracker
5. Record the effective result
6. Add it to the report

The cache holds raw execution results, written by the execution itself
when it finishes. Every finished execution, scheduled or requested, also
updates the escalation streak and the sticky result at its completion
time. Escalation and stickiness are reapplied on every read, so they
never feed back into cached timestamps.

A timeout fallback is not a probe report: it skips the escalator, so a
slow probe's TEMPORARILY_UNAVAILABLE streak keeps running.
"""

import asyncio
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from core.logging import log_context
from health.cache import CachedExecution, ResultCache
from health.core import (
    ExecutionMetadata,
    ExecutionRecord,
    Probe,
    ProbeDescriptor,
    ProbeOutcome,
    Report,
    Result,
)
from health.errors import UnknownProbeError
from health.escalation import GracePeriodEscalator
from health.filters import TagFilter, TagFilterInput
from health.inflight import InFlight, InFlightExecutions
from health.registry import ProbeRegistry, RegisteredProbe, get_registry
from health.scheduler import Scheduler
from health.sticky import StickyResultTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionOptions:
    """
    Caller options for a run.

    Attributes:
        force_instant_execution: Ignore cached results
        combine_tags_with_or: Match probes carrying any positive tag
        timeout_ms: Wait bound overriding every probe's configured timeout
        names: Probes selected by name (unioned with a non-empty tag filter)
        exclude_names: Probes never selected
        sort_by_status: Worst results first instead of registration order
    """
    force_instant_execution: bool = False
    combine_tags_with_or: bool = False
    timeout_ms: Optional[int] = None
    names: Tuple[str, ...] = ()
    exclude_names: Tuple[str, ...] = ()
    sort_by_status: bool = False


class HealthCheckExecutor:
    """
    Top-level orchestrator.

    All methods must be called from the event loop the executor runs on.
    Registration changes made on the registry are picked up immediately.
    """

    def __init__(
        self,
        registry: Optional[ProbeRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize executor.

        Args:
            registry: Probe registry (uses global if None)
            clock: Monotonic clock in seconds for TTL, sticky and grace bookkeeping
            wall_clock: Local wall clock for cron schedules
        """
        self.registry = registry if registry is not None else get_registry()
        self.defaults = self.registry.defaults
        self._clock = clock

        self.cache = ResultCache(self.defaults.result_cache_ttl_seconds, clock=clock)
        self.sticky = StickyResultTracker(clock=clock)
        self.escalator = GracePeriodEscalator(self.defaults.grace_period_seconds, clock=clock)

        self._thread_pool = ThreadPoolExecutor(
            max_workers=self.defaults.max_workers,
            thread_name_prefix="probe",
        )
        self._inflight = InFlightExecutions(
            self._thread_pool,
            on_complete=self._on_execution_complete,
            clock=clock,
        )
        self.scheduler = Scheduler(self._inflight, now=wall_clock)
        self._records: Dict[str, ExecutionRecord] = {}

        for entry in self.registry.get_all():
            self._adopt(entry)
        self.registry.add_listener(self._on_registry_change)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, descriptor: ProbeDescriptor, probe: Probe) -> RegisteredProbe:
        """
        Register a probe.

        Raises:
            DuplicateProbeError: If the name is taken
        """
        return self.registry.register(descriptor, probe)

    def unregister(self, name: str) -> bool:
        return self.registry.unregister(name)

    def reschedule(self, name: str, schedule: Optional[str]) -> RegisteredProbe:
        """
        Change (or remove, with None) the schedule of a registered probe.

        Raises:
            UnknownProbeError: If the probe is not registered
            pydantic.ValidationError: If the expression does not parse
        """
        entry = self.registry.get(name)
        if entry is None:
            raise UnknownProbeError(name)
        descriptor = ProbeDescriptor.model_validate(
            {**entry.descriptor.model_dump(), "schedule": schedule}
        )
        return self.registry.replace(descriptor)

    def _on_registry_change(self, event: str, entry: RegisteredProbe) -> None:
        if event == "registered":
            self._adopt(entry)
        elif event == "unregistered":
            self._discard(entry)
        elif event == "replaced":
            self.sticky.configure(entry.name, entry.settings.sticky_retention)
            self.escalator.configure(entry.name, entry.settings.grace_period)
            self.scheduler.schedule(entry)

    def _adopt(self, entry: RegisteredProbe) -> None:
        self._records[entry.name] = ExecutionRecord(name=entry.name)
        self.sticky.configure(entry.name, entry.settings.sticky_retention)
        self.escalator.configure(entry.name, entry.settings.grace_period)
        self.scheduler.schedule(entry)

    def _discard(self, entry: RegisteredProbe) -> None:
        self.scheduler.unschedule(entry.name)
        self._records.pop(entry.name, None)
        self.cache.invalidate(entry.name)
        self.sticky.forget(entry.name)
        self.escalator.forget(entry.name)

    def _on_execution_complete(self, entry: RegisteredProbe, execution: CachedExecution) -> None:
        if not self.registry.is_current(entry):
            logger.debug(f"Dropping result of unregistered probe {entry.name}")
            return
        self.cache.store(entry.name, execution)
        record = self._records.get(entry.name)
        if record is not None:
            record.execution_count += 1
            record.last_elapsed_ms = execution.elapsed_ms
            record.last_finished_at = execution.finished_at

        # Every finished execution feeds the policies, whoever started it
        computed_at = execution.computed_at
        escalated = self.escalator.apply(entry.name, execution.result, computed_at, computed_at)
        effective = self.sticky.apply(entry.name, escalated, computed_at, computed_at)
        self._record(entry.name, effective, computed_at)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def run(
        self,
        tags: TagFilterInput = None,
        timeout_ms: Optional[int] = None,
        *,
        options: Optional[ExecutionOptions] = None,
    ) -> Report:
        """
        Execute the probes matching a tag filter.

        Args:
            tags: Filter such as "a,-b" or ["a", "-b"]; empty selects all
            timeout_ms: Wait bound overriding each probe's configured timeout
            options: Further execution options

        Returns:
            Report with the aggregated status and one outcome per probe

        Raises:
            TagFilterError: If the filter is malformed
            ValueError: If the timeout is not positive
        """
        options = options or ExecutionOptions()
        if timeout_ms is None:
            timeout_ms = options.timeout_ms
        if timeout_ms is not None and timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        timeout_override = timeout_ms / 1000.0 if timeout_ms is not None else None

        tag_filter = TagFilter.parse(tags, any_positive=options.combine_tags_with_or)
        entries = self.registry.select(tag_filter, options.names, options.exclude_names)

        start_time = time.monotonic()
        with log_context(run_id=uuid.uuid4().hex[:12], tags=str(tag_filter), operation="run"):
            outcomes: List[ProbeOutcome] = list(
                await asyncio.gather(
                    *(self._evaluate(entry, timeout_override, options) for entry in entries)
                )
            )

            if options.sort_by_status:
                outcomes.sort(key=lambda o: o.status.severity, reverse=True)

            report = Report.from_outcomes(outcomes)
            logger.info(
                f"Executed {len(outcomes)} probe(s) for filter '{tag_filter}': "
                f"{report.status.value} ({(time.monotonic() - start_time) * 1000:.1f}ms)"
            )
        return report

    async def execute_single(
        self,
        name: str,
        timeout_ms: Optional[int] = None,
        force_instant_execution: bool = False,
    ) -> Optional[ProbeOutcome]:
        """Execute a single probe by name."""
        if name not in self.registry:
            return None
        report = await self.run(
            timeout_ms=timeout_ms,
            options=ExecutionOptions(
                names=(name,),
                force_instant_execution=force_instant_execution,
            ),
        )
        return report.get(name)

    async def _evaluate(
        self,
        entry: RegisteredProbe,
        timeout_override: Optional[float],
        options: ExecutionOptions,
    ) -> ProbeOutcome:
        name = entry.name
        with log_context(probe=name):
            try:
                cached = None if options.force_instant_execution else self.cache.get_entry(name)
                if cached is not None:
                    raw = cached.result
                    computed_at = cached.computed_at
                    metadata = ExecutionMetadata(cached.finished_at, cached.elapsed_ms)
                else:
                    timeout = entry.settings.timeout if timeout_override is None else timeout_override
                    raw, computed_at, metadata = await self._await_execution(entry, timeout)

                now = self._clock()
                if metadata.timed_out:
                    # A timeout fallback leaves the TEMPORARILY_UNAVAILABLE streak untouched
                    escalated = raw
                else:
                    escalated = self.escalator.apply(name, raw, computed_at, now)
                effective = self.sticky.apply(name, escalated, computed_at, now)
                self._record(name, effective, computed_at)

            except Exception as e:
                logger.error(f"Evaluation of probe {name} failed: {e}", exc_info=True)
                effective = Result.from_exception(e)
                metadata = ExecutionMetadata()

        return ProbeOutcome(entry.descriptor, effective, metadata)

    async def _await_execution(
        self,
        entry: RegisteredProbe,
        timeout: float,
    ) -> Tuple[Result, float, ExecutionMetadata]:
        inflight, started = self._inflight.start_or_join(entry)
        if not started:
            logger.debug(f"Joining running execution of probe {entry.name}")

        try:
            execution = await asyncio.wait_for(asyncio.shield(inflight.task), timeout)
        except asyncio.TimeoutError:
            running_for = inflight.running_for()
            result = self._timeout_result(inflight, running_for, timeout)
            return (
                result,
                self._clock(),
                ExecutionMetadata(elapsed_ms=running_for * 1000, timed_out=True),
            )

        return (
            execution.result,
            execution.computed_at,
            ExecutionMetadata(execution.finished_at, execution.elapsed_ms),
        )

    def _timeout_result(self, inflight: InFlight, running_for: float, timeout: float) -> Result:
        late = self.defaults.exceedingly_late_seconds
        if running_for > late:
            logger.warning(
                f"Probe {inflight.name} exceedingly late: running for {running_for:.1f}s"
            )
            return Result.critical(
                f"Probe execution exceedingly late: running for {running_for:.1f}s "
                f"(threshold {late:.1f}s)"
            )
        logger.warning(f"Probe {inflight.name} timed out after {timeout}s, still running")
        return Result.warn(
            f"Timeout: probe still running after {timeout:.3f}s "
            f"(running for {running_for:.3f}s)"
        )

    def _record(self, name: str, effective: Result, computed_at: float) -> None:
        record = self._records.get(name)
        if record is None:
            return
        record.last_result = effective
        record.last_computed_at = computed_at
        if effective.is_ok():
            record.non_ok_since = None
        elif record.non_ok_since is None:
            record.non_ok_since = computed_at

        streak = self.escalator.streak(name)
        if streak is None:
            record.temporarily_unavailable_count = 0
            record.temporarily_unavailable_since = None
        else:
            record.temporarily_unavailable_count = streak.count
            record.temporarily_unavailable_since = streak.started_at

    # =========================================================================
    # QUERY & CONTROL
    # =========================================================================

    def reset(self, name: str) -> None:
        """
        Clear sticky and escalation state of a probe.

        Raises:
            UnknownProbeError: If the probe is not registered
        """
        if name not in self.registry:
            raise UnknownProbeError(name)
        self.sticky.reset(name)
        self.escalator.reset(name)
        record = self._records.get(name)
        if record is not None:
            record.non_ok_since = None
            record.temporarily_unavailable_count = 0
            record.temporarily_unavailable_since = None
        logger.info(f"Reset sticky and escalation state of probe {name}")

    def record(self, name: str) -> ExecutionRecord:
        """
        Snapshot of a probe's execution record.

        Raises:
            UnknownProbeError: If the probe is not registered
        """
        record = self._records.get(name)
        if record is None:
            raise UnknownProbeError(name)
        return record.snapshot()

    def records(self) -> Dict[str, ExecutionRecord]:
        """Snapshots of every execution record, in registration order."""
        return {
            entry.name: self._records[entry.name].snapshot()
            for entry in self.registry.get_all()
            if entry.name in self._records
        }

    def running(self) -> List[str]:
        """Names of probes with an execution in flight."""
        return [inflight.name for inflight in self._inflight.running()]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Start background scheduling."""
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    async def close(self) -> None:
        """Stop scheduling, abandon running executions and release threads."""
        await self.stop()
        tasks = self._inflight.cancel_all()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.registry.remove_listener(self._on_registry_change)
        self._thread_pool.shutdown(wait=False)

    async def __aenter__(self) -> "HealthCheckExecutor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ExecutionOptions",
    "HealthCheckExecutor",
]

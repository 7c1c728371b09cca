# ============================================================================
# COMPOSITE PROBE
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Probe of probes
# PURPOSE: Report the aggregate of a tag-filtered executor run as one result
# CREATED: 19 OCT 2026
# ============================================================================
"""
Composite Probe

Runs the probes matching a tag filter through the executor and reports
their aggregate as a single result, prefixing every log line with the
probe it came from.

A composite never selects itself, nor any composite already running
further up the same chain; reaching itself through another path is
reported as HEALTH_CHECK_ERROR instead of recursing.
"""

from contextvars import ContextVar
from typing import Iterable, Tuple, Union

from health.core import LogEntry, Probe, Result, Status
from health.executor import ExecutionOptions, HealthCheckExecutor

_composite_chain: ContextVar[Tuple[str, ...]] = ContextVar("composite_chain", default=())


class CompositeProbe(Probe):
    """
    Args:
        executor: Executor running the member probes
        name: Name this composite is registered under
        filter_tags: Tag filter selecting the members
        combine_tags_with_or: Select members carrying any positive tag
    """

    def __init__(
        self,
        executor: HealthCheckExecutor,
        name: str,
        filter_tags: Union[str, Iterable[str]],
        combine_tags_with_or: bool = False,
    ):
        self._executor = executor
        self.name = name
        self.filter_tags = filter_tags
        self.combine_tags_with_or = combine_tags_with_or

    async def execute(self) -> Result:
        chain = _composite_chain.get()
        if self.name in chain:
            path = " -> ".join(chain + (self.name,))
            return Result(
                status=Status.HEALTH_CHECK_ERROR,
                entries=(LogEntry(Status.CRITICAL, f"Composite includes itself: {path}"),),
            )

        token = _composite_chain.set(chain + (self.name,))
        try:
            report = await self._executor.run(
                self.filter_tags,
                options=ExecutionOptions(
                    combine_tags_with_or=self.combine_tags_with_or,
                    exclude_names=chain + (self.name,),
                ),
            )
        finally:
            _composite_chain.reset(token)

        entries = []
        for outcome in report.outcomes:
            label = outcome.descriptor.display_name
            entries.append(
                LogEntry(Status.OK, f"{label}: {outcome.status.value}", debug=True)
            )
            for entry in outcome.result.entries:
                entries.append(
                    LogEntry(
                        entry.status,
                        f"{label}: {entry.message}",
                        debug=entry.debug,
                        exception=entry.exception,
                    )
                )
        if not report.outcomes:
            entries.append(LogEntry(Status.OK, f"No probes match filter {self.filter_tags!r}"))

        return Result(status=report.status, entries=tuple(entries))


__all__ = [
    "CompositeProbe",
]

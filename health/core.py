# ============================================================================
# HEALTH CHECK CORE TYPES
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Probe contract and value types
# PURPOSE: Status ordering, results, descriptors, reports
# CREATED: 19 OCT 2026
# ============================================================================
"""
Health Check Core Types

Defines the probe contract and the value types flowing through the
executor.

Status Hierarchy (worst wins):
- OK: All systems operational
- WARN: Operational with warnings
- TEMPORARILY_UNAVAILABLE: Not functional, expected to self-heal
- CRITICAL: Not functional
- HEALTH_CHECK_ERROR: The probe itself faulted

A Result is immutable. Its status is either given explicitly or derived
from the worst non-debug log entry. Descriptors are validated when they
are created, so malformed registrations never reach the executor.
"""

import inspect
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from health.schedule import parse_schedule


class Status(str, Enum):
    """Health status values, ordered from best to worst."""
    OK = "OK"
    WARN = "WARN"
    TEMPORARILY_UNAVAILABLE = "TEMPORARILY_UNAVAILABLE"
    CRITICAL = "CRITICAL"
    HEALTH_CHECK_ERROR = "HEALTH_CHECK_ERROR"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def is_ok(self) -> bool:
        return self is Status.OK

    # str defines every rich comparison, so all four are overridden
    def __lt__(self, other: "Status") -> bool:
        return self.severity < other.severity

    def __le__(self, other: "Status") -> bool:
        return self.severity <= other.severity

    def __gt__(self, other: "Status") -> bool:
        return self.severity > other.severity

    def __ge__(self, other: "Status") -> bool:
        return self.severity >= other.severity


_SEVERITY = {
    Status.OK: 0,
    Status.WARN: 1,
    Status.TEMPORARILY_UNAVAILABLE: 2,
    Status.CRITICAL: 3,
    Status.HEALTH_CHECK_ERROR: 4,
}


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True)
class LogEntry:
    """
    One diagnostic line of a result.

    Debug entries never influence the result status. A non-debug OK
    entry is an informational line.
    """
    status: Status
    message: str
    debug: bool = False
    exception: Optional[str] = None

    @property
    def level(self) -> str:
        if self.debug:
            return "DEBUG"
        if self.status is Status.OK:
            return "INFO"
        return self.status.value

    def to_dict(self) -> Dict[str, Any]:
        data = {"level": self.level, "message": self.message}
        if self.exception:
            data["exception"] = self.exception
        return data


def _worst_entry_status(entries: Iterable[LogEntry]) -> Status:
    worst = Status.OK
    for entry in entries:
        if not entry.debug and entry.status > worst:
            worst = entry.status
    return worst


@dataclass(frozen=True)
class Result:
    """Immutable outcome of one probe execution."""
    status: Status
    entries: Tuple[LogEntry, ...] = ()

    @classmethod
    def of(cls, entries: Iterable[LogEntry]) -> "Result":
        """Create a result whose status is the worst non-debug entry."""
        entries = tuple(entries)
        return cls(status=_worst_entry_status(entries), entries=entries)

    @classmethod
    def ok(cls, message: Optional[str] = None) -> "Result":
        entries = (LogEntry(Status.OK, message),) if message else ()
        return cls(status=Status.OK, entries=entries)

    @classmethod
    def warn(cls, message: str) -> "Result":
        return cls(status=Status.WARN, entries=(LogEntry(Status.WARN, message),))

    @classmethod
    def temporarily_unavailable(cls, message: str) -> "Result":
        return cls(
            status=Status.TEMPORARILY_UNAVAILABLE,
            entries=(LogEntry(Status.TEMPORARILY_UNAVAILABLE, message),),
        )

    @classmethod
    def critical(cls, message: str) -> "Result":
        return cls(status=Status.CRITICAL, entries=(LogEntry(Status.CRITICAL, message),))

    @classmethod
    def from_exception(cls, e: BaseException) -> "Result":
        """A faulted probe: HEALTH_CHECK_ERROR with the fault as a CRITICAL line."""
        description = f"{type(e).__name__}: {e}"
        trace = "".join(traceback.format_exception(type(e), e, e.__traceback__))
        return cls(
            status=Status.HEALTH_CHECK_ERROR,
            entries=(
                LogEntry(
                    Status.CRITICAL,
                    f"Health check failed: {description}",
                    exception=trace,
                ),
            ),
        )

    def with_status(self, status: Status, note: Optional[str] = None) -> "Result":
        """Copy with a rewritten status and, optionally, an appended note."""
        entries = self.entries
        if note:
            entries = entries + (LogEntry(status, note),)
        return Result(status=status, entries=entries)

    def is_ok(self) -> bool:
        return self.status.is_ok()

    @property
    def messages(self) -> List[str]:
        return [entry.message for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "log": [entry.to_dict() for entry in self.entries],
        }


class ResultLog:
    """
    Mutable builder for probe authors.

    Example:
        log = ResultLog()
        log.debug("Checked 3 mounts")
        if free < threshold:
            log.warn(f"Only {free} MB free")
        return log.result()
    """

    def __init__(self):
        self._entries: List[LogEntry] = []

    def add(self, entry: LogEntry) -> "ResultLog":
        self._entries.append(entry)
        return self

    def debug(self, message: str) -> "ResultLog":
        return self.add(LogEntry(Status.OK, message, debug=True))

    def info(self, message: str) -> "ResultLog":
        return self.add(LogEntry(Status.OK, message))

    def warn(self, message: str) -> "ResultLog":
        return self.add(LogEntry(Status.WARN, message))

    def temporarily_unavailable(self, message: str) -> "ResultLog":
        return self.add(LogEntry(Status.TEMPORARILY_UNAVAILABLE, message))

    def critical(self, message: str) -> "ResultLog":
        return self.add(LogEntry(Status.CRITICAL, message))

    def health_check_error(self, message: str, e: Optional[BaseException] = None) -> "ResultLog":
        exception = None
        if e is not None:
            exception = "".join(traceback.format_exception(type(e), e, e.__traceback__))
        return self.add(LogEntry(Status.HEALTH_CHECK_ERROR, message, exception=exception))

    @property
    def status(self) -> Status:
        return _worst_entry_status(self._entries)

    def result(self) -> Result:
        return Result.of(self._entries)


# ============================================================================
# PROBE CONTRACT
# ============================================================================

class Probe(ABC):
    """
    Base class for probes.

    Implement execute() as a plain method or as a coroutine. Plain methods
    run on the executor's thread pool, coroutines on the event loop. Either
    way the call should return quickly; slow dependencies belong in a
    background task whose latest state the probe reports.

    Example:
        class QueueDepthProbe(Probe):
            async def execute(self) -> Result:
                depth = await queue.depth()
                if depth > 1000:
                    return Result.warn(f"Queue depth {depth}")
                return Result.ok(f"Queue depth {depth}")
    """

    @abstractmethod
    def execute(self) -> Result:
        """Run the check once and return its result."""

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.execute)


class FunctionProbe(Probe):
    """Adapts a plain function or coroutine function to the Probe contract."""

    def __init__(self, fn: Callable[[], Any]):
        self._fn = fn
        if inspect.iscoroutinefunction(fn):
            self.execute = self._execute_async

    def execute(self) -> Result:
        return self._fn()

    async def _execute_async(self) -> Result:
        return await self._fn()

    def __repr__(self) -> str:
        return f"FunctionProbe({getattr(self._fn, '__name__', self._fn)!r})"


# ============================================================================
# DESCRIPTOR
# ============================================================================

def _check_tag(tag: str) -> str:
    if not tag or tag != tag.strip() or any(c.isspace() for c in tag):
        raise ValueError(f"Invalid tag {tag!r}: tags must be non-empty without whitespace")
    if "," in tag or tag.startswith("-"):
        raise ValueError(f"Invalid tag {tag!r}: tags may not contain ',' or start with '-'")
    return tag


class ProbeDescriptor(BaseModel):
    """
    Identity and configuration of a registered probe.

    Durations are milliseconds; unset values fall back to the process
    defaults at registration time. ``sticky_retention_ms=-1`` keeps non-OK
    results sticky indefinitely.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=128)
    title: Optional[str] = None
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    schedule: Optional[str] = Field(
        default=None,
        description="Fixed interval ('30s', '5m') or cron expression",
    )
    cache_ttl_ms: Optional[int] = Field(default=None, ge=0)
    sticky_retention_ms: Optional[int] = Field(default=None, ge=-1)
    timeout_ms: Optional[int] = Field(default=None, ge=1)
    grace_period_ms: Optional[int] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        if v != v.strip():
            raise ValueError("name may not have leading or trailing whitespace")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def handle_string_input(cls, v):
        """Allow a comma-separated string as shorthand for a tag set."""
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [t.strip() for t in v.split(",") if t.strip()]
        return frozenset(_check_tag(t) for t in v)

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        parse_schedule(v)
        return v.strip()

    @property
    def display_name(self) -> str:
        return self.title or self.name

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "tags": sorted(self.tags)}
        if self.title:
            data["title"] = self.title
        if self.schedule:
            data["schedule"] = self.schedule
        return data


# ============================================================================
# EXECUTION BOOKKEEPING
# ============================================================================

@dataclass(frozen=True)
class ExecutionMetadata:
    """Timing of the execution a reported result came from."""
    finished_at: Optional[datetime] = None
    elapsed_ms: float = 0.0
    timed_out: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "elapsed_ms": round(self.elapsed_ms, 2),
            "timed_out": self.timed_out,
        }
        if self.finished_at is not None:
            data["finished_at"] = self.finished_at.isoformat()
        return data


@dataclass
class ExecutionRecord:
    """
    Per-probe execution state.

    Exists exactly as long as the probe is registered. Clock values are
    readings of the executor clock (monotonic seconds by default).
    """
    name: str
    last_result: Optional[Result] = None
    last_computed_at: Optional[float] = None
    non_ok_since: Optional[float] = None
    temporarily_unavailable_count: int = 0
    temporarily_unavailable_since: Optional[float] = None
    execution_count: int = 0
    last_elapsed_ms: Optional[float] = None
    last_finished_at: Optional[datetime] = None

    def snapshot(self) -> "ExecutionRecord":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.last_result.status.value if self.last_result else None,
            "non_ok_since": self.non_ok_since,
            "temporarily_unavailable_count": self.temporarily_unavailable_count,
            "temporarily_unavailable_since": self.temporarily_unavailable_since,
            "execution_count": self.execution_count,
            "last_elapsed_ms": self.last_elapsed_ms,
            "last_finished_at": (
                self.last_finished_at.isoformat() if self.last_finished_at else None
            ),
        }


# ============================================================================
# REPORT
# ============================================================================

@dataclass(frozen=True)
class ProbeOutcome:
    """One probe's contribution to a report."""
    descriptor: ProbeDescriptor
    result: Result
    metadata: ExecutionMetadata = field(default_factory=ExecutionMetadata)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def status(self) -> Status:
        return self.result.status

    def to_dict(self) -> Dict[str, Any]:
        data = self.descriptor.to_dict()
        data.update(self.result.to_dict())
        data.update(self.metadata.to_dict())
        return data


@dataclass(frozen=True)
class Report:
    """Aggregated output of one executor run."""
    status: Status
    outcomes: Tuple[ProbeOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[ProbeOutcome]) -> "Report":
        from health.aggregator import aggregate

        outcomes = tuple(outcomes)
        return cls(status=aggregate(o.result for o in outcomes), outcomes=outcomes)

    def select(self, tags: Union[str, Iterable[str], None]) -> "Report":
        """Sub-report for the outcomes matching a tag filter, re-aggregated."""
        from health.filters import TagFilter

        tag_filter = TagFilter.parse(tags)
        return Report.from_outcomes(
            o for o in self.outcomes if tag_filter.matches(o.descriptor.tags)
        )

    def get(self, name: str) -> Optional[ProbeOutcome]:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    @property
    def names(self) -> List[str]:
        return [o.name for o in self.outcomes]

    def __len__(self) -> int:
        return len(self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "results": [o.to_dict() for o in self.outcomes],
        }


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "Status",
    "LogEntry",
    "Result",
    "ResultLog",
    "Probe",
    "FunctionProbe",
    "ProbeDescriptor",
    "ExecutionMetadata",
    "ExecutionRecord",
    "ProbeOutcome",
    "Report",
]

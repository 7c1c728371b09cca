# ============================================================================
# HEALTH CHECK MODULE
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Health check execution framework
# PURPOSE: Run pluggable probes, cache, schedule, escalate and aggregate them
# CREATED: 19 OCT 2026
# ============================================================================
"""
Health Check Module

In-process execution engine for availability probes:

- Probe: Contract implemented by every check (sync or async execute())
- ProbeRegistry: Registration in stable order, settings merged with defaults
- ResultCache: TTL store of the last raw result per probe
- StickyResultTracker: Keeps recent non-OK results visible after recovery
- GracePeriodEscalator: TEMPORARILY_UNAVAILABLE for too long becomes CRITICAL
- Scheduler: Interval/cron execution in the background, feeding the cache
- HealthCheckExecutor: Selects probes by tag, runs them with timeouts,
  applies the policies above and aggregates a Report (worst wins)

Usage:
    from health import HealthCheckExecutor, ProbeRegistry, ProbeDescriptor, FunctionProbe

    executor = HealthCheckExecutor(ProbeRegistry())
    executor.register(
        ProbeDescriptor(name="db", tags={"ready"}, timeout_ms=500),
        FunctionProbe(check_db),
    )
    async with executor:
        report = await executor.run("ready,-slow")
"""

from health.core import (
    Status,
    LogEntry,
    Result,
    ResultLog,
    Probe,
    FunctionProbe,
    ProbeDescriptor,
    ExecutionMetadata,
    ExecutionRecord,
    ProbeOutcome,
    Report,
)
from health.errors import (
    HealthCheckError,
    RegistrationError,
    DuplicateProbeError,
    InvalidScheduleError,
    TagFilterError,
    UnknownProbeError,
)
from health.aggregator import aggregate
from health.filters import TagFilter
from health.cache import ResultCache
from health.sticky import StickyResultTracker
from health.escalation import GracePeriodEscalator
from health.registry import (
    ProbeRegistry,
    ProbeSettings,
    RegisteredProbe,
    register_probe,
    get_registry,
)
from health.scheduler import Scheduler
from health.executor import ExecutionOptions, HealthCheckExecutor

__version__ = "1.0.0"

__all__ = [
    # Core types
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
    # Errors
    "HealthCheckError",
    "RegistrationError",
    "DuplicateProbeError",
    "InvalidScheduleError",
    "TagFilterError",
    "UnknownProbeError",
    # Policies
    "aggregate",
    "TagFilter",
    "ResultCache",
    "StickyResultTracker",
    "GracePeriodEscalator",
    # Registry
    "ProbeRegistry",
    "ProbeSettings",
    "RegisteredProbe",
    "register_probe",
    "get_registry",
    # Execution
    "Scheduler",
    "ExecutionOptions",
    "HealthCheckExecutor",
]

# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Core - Default configuration values
# PURPOSE: Process-wide defaults for probe execution, caching, escalation
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Process-wide defaults for the health check executor. Every probe
descriptor may override the per-probe values; the overrides are merged
with these defaults once, at registration time.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Milliseconds at the configuration surface, seconds internally

Environment:
    HC_TIMEOUT_MS            Wait bound for a probe execution (2000)
    HC_EXCEEDINGLY_LATE_MS   Running time after which a timeout is CRITICAL (300000)
    HC_RESULT_CACHE_TTL_MS   Default result cache TTL (2000)
    HC_GRACE_PERIOD_MS       TEMPORARILY_UNAVAILABLE grace period (60000)
    HC_STICKY_RETENTION_MS   Default sticky retention, unset = none, -1 = indefinite
    HC_MAX_WORKERS           Thread pool size for synchronous probes (10)
"""

import os
from dataclasses import dataclass
from typing import Optional

# Sticky retention value meaning "never expires"
STICKY_INDEFINITE = -1


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass(frozen=True)
class ExecutorDefaults:
    """
    Defaults for probe execution.

    All durations are milliseconds.
    """
    timeout_ms: int = 2000
    exceedingly_late_ms: int = 300_000
    result_cache_ttl_ms: int = 2000
    grace_period_ms: int = 60_000
    sticky_retention_ms: Optional[int] = None  # None = not sticky

    # Thread pool for probes with a synchronous execute()
    max_workers: int = 10

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def exceedingly_late_seconds(self) -> float:
        return self.exceedingly_late_ms / 1000.0

    @property
    def result_cache_ttl_seconds(self) -> float:
        return self.result_cache_ttl_ms / 1000.0

    @property
    def grace_period_seconds(self) -> float:
        return self.grace_period_ms / 1000.0

    @classmethod
    def from_env(cls) -> "ExecutorDefaults":
        """Create from environment variables."""
        return cls(
            timeout_ms=int(os.getenv("HC_TIMEOUT_MS", 2000)),
            exceedingly_late_ms=int(os.getenv("HC_EXCEEDINGLY_LATE_MS", 300_000)),
            result_cache_ttl_ms=int(os.getenv("HC_RESULT_CACHE_TTL_MS", 2000)),
            grace_period_ms=int(os.getenv("HC_GRACE_PERIOD_MS", 60_000)),
            sticky_retention_ms=_optional_int("HC_STICKY_RETENTION_MS"),
            max_workers=int(os.getenv("HC_MAX_WORKERS", 10)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

_defaults: Optional[ExecutorDefaults] = None


def get_defaults() -> ExecutorDefaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = ExecutorDefaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "STICKY_INDEFINITE",
    "ExecutorDefaults",
    "get_defaults",
    "reset_defaults",
]

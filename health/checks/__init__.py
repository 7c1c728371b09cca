# ============================================================================
# OPERATIONAL PROBES
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Built-in probe variants
# PURPOSE: Probes that operate on the executor itself
# CREATED: 19 OCT 2026
# ============================================================================
"""
Operational Probes

- AdjustableStatusControl / AdjustableStatusProbe: operator-injected
  WARN, TEMPORARILY_UNAVAILABLE or CRITICAL results for chosen tags
- CompositeProbe: one result aggregating a tag-filtered executor run

Probes checking the outside world (disk, memory, services, HTTP) are
supplied by the application and registered like any other probe.
"""

from health.checks.adjustable import (
    ADJUSTABLE_STATUSES,
    AdjustableStatusControl,
    AdjustableStatusProbe,
)
from health.checks.composite import CompositeProbe

__all__ = [
    "ADJUSTABLE_STATUSES",
    "AdjustableStatusControl",
    "AdjustableStatusProbe",
    "CompositeProbe",
]

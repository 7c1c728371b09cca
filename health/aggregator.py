# ============================================================================
# STATUS AGGREGATION
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Worst-wins combination
# PURPOSE: Combine probe results into one overall status
# CREATED: 19 OCT 2026
# ============================================================================
"""Worst-wins aggregation. Total: an empty input is OK."""

from typing import Iterable, Union

from health.core import Result, Status


def aggregate(items: Iterable[Union[Result, Status]]) -> Status:
    """Worst status among results or statuses, OK when there are none."""
    worst = Status.OK
    for item in items:
        status = item.status if isinstance(item, Result) else Status(item)
        if status > worst:
            worst = status
    return worst


__all__ = ["aggregate"]

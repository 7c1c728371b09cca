# ============================================================================
# SCHEDULE EXPRESSIONS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Probe cadence parsing
# PURPOSE: Fixed-interval and cron schedule expressions
# CREATED: 19 OCT 2026
# ============================================================================
"""
Schedule Expressions

Two forms are accepted:

Fixed interval:
    "30s", "500ms", "5m", "1h", "every 10s", "15" (seconds)
    Intervals shorter than 10ms are rejected.

Cron:
    5 fields   minute hour day-of-month month day-of-week
    6 fields   second minute hour day-of-month month day-of-week
    7 fields   as 6, plus year

Each cron field accepts '*', lists (1,5,9), ranges (1-5), steps (*/15,
10-40/10) and, for month and day-of-week, three-letter names. '?' is
accepted for day-of-month and day-of-week. In the 5-field form day-of-week
runs 0-7 with Sunday as 0 or 7; in the 6/7-field form it runs 1-7 with
Sunday as 1. When both day fields are restricted a day matching either
one fires.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, Optional, Union

from health.errors import InvalidScheduleError

_INTERVAL_RE = re.compile(
    r"^(?:every\s+)?(\d+(?:\.\d+)?)\s*"
    r"(ms|millis|s|sec|secs|seconds?|m|min|mins|minutes?|h|hr|hrs|hours?)?$",
    re.IGNORECASE,
)

_UNIT_SECONDS = {
    "ms": 0.001, "millis": 0.001,
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
}

_MONTH_NAMES = {
    name: i + 1 for i, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN",
         "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]
    )
}
_DOW_NAMES = {name: i for i, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])}

# Shortest accepted fixed interval
MIN_INTERVAL_SECONDS = 0.01

# Years searched ahead before a cron expression is declared unsatisfiable
_SEARCH_YEARS = 5


@dataclass(frozen=True)
class IntervalSchedule:
    """Fire every ``seconds``, starting immediately."""
    seconds: float
    expression: str

    def next_fire(self, after: datetime) -> datetime:
        return after + timedelta(seconds=self.seconds)


@dataclass(frozen=True)
class CronSchedule:
    """Fire at the times matching every field."""
    expression: str
    seconds: FrozenSet[int]
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days_of_month: FrozenSet[int]
    months: FrozenSet[int]
    days_of_week: FrozenSet[int]  # 0 = Sunday
    years: Optional[FrozenSet[int]] = None
    dom_restricted: bool = False
    dow_restricted: bool = False

    def _day_matches(self, t: datetime) -> bool:
        dom = t.day in self.days_of_month
        dow = (t.weekday() + 1) % 7 in self.days_of_week
        if self.dom_restricted and self.dow_restricted:
            return dom or dow
        return dom and dow

    def next_fire(self, after: datetime) -> Optional[datetime]:
        """First matching time strictly after ``after``, or None if none is near."""
        t = after.replace(microsecond=0) + timedelta(seconds=1)
        limit = after.year + _SEARCH_YEARS

        while t.year <= limit:
            if self.years is not None and t.year not in self.years:
                t = t.replace(year=t.year + 1, month=1, day=1, hour=0, minute=0, second=0)
                continue
            if t.month not in self.months:
                if t.month == 12:
                    t = t.replace(year=t.year + 1, month=1, day=1, hour=0, minute=0, second=0)
                else:
                    t = t.replace(month=t.month + 1, day=1, hour=0, minute=0, second=0)
                continue
            if not self._day_matches(t):
                t = (t + timedelta(days=1)).replace(hour=0, minute=0, second=0)
                continue
            if t.hour not in self.hours:
                t = t.replace(minute=0, second=0) + timedelta(hours=1)
                continue
            if t.minute not in self.minutes:
                t = t.replace(second=0) + timedelta(minutes=1)
                continue
            if t.second not in self.seconds:
                t = t + timedelta(seconds=1)
                continue
            return t
        return None


Schedule = Union[IntervalSchedule, CronSchedule]


def _parse_value(token: str, names: dict, expression: str) -> int:
    upper = token.upper()
    if upper in names:
        return names[upper]
    if not token.isdigit():
        raise InvalidScheduleError(expression, f"unsupported token {token!r}")
    return int(token)


def _parse_field(
    field: str,
    low: int,
    high: int,
    expression: str,
    names: Optional[dict] = None,
    allow_question: bool = False,
) -> FrozenSet[int]:
    """Expand one cron field into the set of values it selects."""
    names = names or {}
    values = set()

    for item in field.split(","):
        if not item:
            raise InvalidScheduleError(expression, f"empty list item in {field!r}")

        step = 1
        if "/" in item:
            item, step_text = item.split("/", 1)
            if not step_text.isdigit() or int(step_text) == 0:
                raise InvalidScheduleError(expression, f"invalid step in {field!r}")
            step = int(step_text)

        if item == "*" or (item == "?" and allow_question):
            start, end = low, high
        elif "-" in item:
            first, last = item.split("-", 1)
            start = _parse_value(first, names, expression)
            end = _parse_value(last, names, expression)
        else:
            start = _parse_value(item, names, expression)
            end = high if step > 1 else start

        if start < low or end > high or start > end:
            raise InvalidScheduleError(
                expression, f"{field!r} outside the range {low}-{high}"
            )
        values.update(range(start, end + 1, step))

    return frozenset(values)


def _is_wildcard(field: str) -> bool:
    return field in ("*", "?")


def parse_cron(expression: str) -> CronSchedule:
    fields = expression.split()
    if len(fields) not in (5, 6, 7):
        raise InvalidScheduleError(
            expression, f"expected 5, 6 or 7 fields, got {len(fields)}"
        )

    quartz = len(fields) >= 6
    if quartz:
        second_f, minute_f, hour_f, dom_f, month_f, dow_f = fields[:6]
        seconds = _parse_field(second_f, 0, 59, expression)
    else:
        minute_f, hour_f, dom_f, month_f, dow_f = fields
        seconds = frozenset({0})

    if quartz:
        dow_names = {name: value + 1 for name, value in _DOW_NAMES.items()}
        raw_dow = _parse_field(dow_f, 1, 7, expression, dow_names, allow_question=True)
        days_of_week = frozenset(value - 1 for value in raw_dow)
    else:
        raw_dow = _parse_field(dow_f, 0, 7, expression, _DOW_NAMES, allow_question=True)
        days_of_week = frozenset(value % 7 for value in raw_dow)

    years = None
    if len(fields) == 7 and not _is_wildcard(fields[6]):
        years = _parse_field(fields[6], 1970, 2199, expression)

    return CronSchedule(
        expression=expression,
        seconds=seconds,
        minutes=_parse_field(minute_f, 0, 59, expression),
        hours=_parse_field(hour_f, 0, 23, expression),
        days_of_month=_parse_field(dom_f, 1, 31, expression, allow_question=True),
        months=_parse_field(month_f, 1, 12, expression, _MONTH_NAMES),
        days_of_week=days_of_week,
        years=years,
        dom_restricted=not _is_wildcard(dom_f),
        dow_restricted=not _is_wildcard(dow_f),
    )


def parse_schedule(expression: str) -> Schedule:
    """
    Parse a schedule expression.

    Raises:
        InvalidScheduleError: If the expression is neither form
    """
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidScheduleError(str(expression), "empty expression")

    expression = expression.strip()
    match = _INTERVAL_RE.match(expression)
    if match:
        amount, unit = match.groups()
        seconds = float(amount) * _UNIT_SECONDS[(unit or "s").lower()]
        if seconds <= 0:
            raise InvalidScheduleError(expression, "interval must be positive")
        if seconds < MIN_INTERVAL_SECONDS:
            raise InvalidScheduleError(
                expression, f"interval must be at least {MIN_INTERVAL_SECONDS * 1000:.0f}ms"
            )
        return IntervalSchedule(seconds=seconds, expression=expression)

    return parse_cron(expression)


__all__ = [
    "MIN_INTERVAL_SECONDS",
    "Schedule",
    "IntervalSchedule",
    "CronSchedule",
    "parse_schedule",
    "parse_cron",
]

# ============================================================================
# SCHEDULE EXPRESSION TESTS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Tests - Interval and cron parsing
# PURPOSE: Verify schedule parsing, next fire times and rejection of bad input
# CREATED: 19 OCT 2026
# ============================================================================
"""
Schedule Expression Tests

Covers:
1. Fixed intervals with and without units
2. 5-field cron (minute resolution, Sunday = 0 or 7)
3. Quartz-style 6/7-field cron (seconds, Sunday = 1, '?')
4. Day-of-month / day-of-week OR semantics
5. Malformed expressions raise InvalidScheduleError

Run with:
    pytest tests/test_schedule.py -v
"""

from datetime import datetime

import pytest

from health.errors import InvalidScheduleError, RegistrationError
from health.schedule import CronSchedule, IntervalSchedule, parse_schedule


# ============================================================================
# INTERVALS
# ============================================================================


class TestIntervalSchedule:
    @pytest.mark.parametrize("expression,seconds", [
        ("30s", 30),
        ("30", 30),
        ("500ms", 0.5),
        ("5m", 300),
        ("5 min", 300),
        ("1h", 3600),
        ("every 10s", 10),
        ("EVERY 2 Minutes", 120),
        ("1.5s", 1.5),
    ])
    def test_parse(self, expression, seconds):
        schedule = parse_schedule(expression)
        assert isinstance(schedule, IntervalSchedule)
        assert schedule.seconds == pytest.approx(seconds)

    def test_zero_rejected(self):
        with pytest.raises(InvalidScheduleError):
            parse_schedule("0s")

    @pytest.mark.parametrize("expression", ["0.0001ms", "9ms", "0.005s"])
    def test_below_minimum_rejected(self, expression):
        with pytest.raises(InvalidScheduleError) as exc_info:
            parse_schedule(expression)
        assert "at least 10ms" in str(exc_info.value)

    def test_minimum_accepted(self):
        assert parse_schedule("10ms").seconds == pytest.approx(0.01)

    def test_next_fire(self):
        schedule = parse_schedule("90s")
        assert schedule.next_fire(datetime(2026, 1, 1, 12, 0, 0)) == datetime(2026, 1, 1, 12, 1, 30)


# ============================================================================
# CRON
# ============================================================================


class TestCronSchedule:
    def test_every_five_minutes(self):
        schedule = parse_schedule("*/5 * * * *")
        assert isinstance(schedule, CronSchedule)
        assert schedule.next_fire(datetime(2026, 3, 10, 8, 3, 20)) == datetime(2026, 3, 10, 8, 5, 0)
        assert schedule.next_fire(datetime(2026, 3, 10, 8, 5, 0)) == datetime(2026, 3, 10, 8, 10, 0)

    def test_hour_rollover(self):
        schedule = parse_schedule("0 * * * *")
        assert schedule.next_fire(datetime(2026, 3, 10, 23, 30)) == datetime(2026, 3, 11, 0, 0)

    def test_year_rollover(self):
        schedule = parse_schedule("0 0 1 JAN *")
        assert schedule.next_fire(datetime(2026, 6, 15, 10, 0)) == datetime(2027, 1, 1, 0, 0)

    def test_weekdays_by_name(self):
        schedule = parse_schedule("30 9 * * MON-FRI")
        # 2026-10-17 is a Saturday
        assert schedule.next_fire(datetime(2026, 10, 17, 12, 0)) == datetime(2026, 10, 19, 9, 30)

    def test_sunday_as_seven(self):
        schedule = parse_schedule("0 12 * * 7")
        # 2026-10-18 is a Sunday
        assert schedule.next_fire(datetime(2026, 10, 17, 0, 0)) == datetime(2026, 10, 18, 12, 0)

    def test_day_fields_combine_with_or(self):
        schedule = parse_schedule("0 0 1 * MON")
        # From Tue 2026-10-20 the next Monday (26th) comes before Nov 1st
        assert schedule.next_fire(datetime(2026, 10, 20, 1, 0)) == datetime(2026, 10, 26, 0, 0)
        # From Tue 2026-10-27 Nov 1st comes before the next Monday (Nov 2nd)
        assert schedule.next_fire(datetime(2026, 10, 27, 1, 0)) == datetime(2026, 11, 1, 0, 0)

    def test_lists_and_ranges_with_step(self):
        schedule = parse_schedule("0,30 8-18/5 * * *")
        assert schedule.hours == frozenset({8, 13, 18})
        assert schedule.minutes == frozenset({0, 30})

    def test_quartz_seconds_field(self):
        schedule = parse_schedule("*/15 * * * * ?")
        assert schedule.next_fire(datetime(2026, 1, 1, 0, 0, 1)) == datetime(2026, 1, 1, 0, 0, 15)

    def test_quartz_day_of_week_sunday_is_one(self):
        schedule = parse_schedule("0 0 12 ? * 1")
        assert schedule.days_of_week == frozenset({0})
        assert schedule.next_fire(datetime(2026, 10, 17, 0, 0)) == datetime(2026, 10, 18, 12, 0)

    def test_quartz_year_field(self):
        schedule = parse_schedule("0 0 0 1 1 ? 2030")
        assert schedule.next_fire(datetime(2026, 5, 1)) == datetime(2030, 1, 1, 0, 0)

    def test_unsatisfiable_returns_none(self):
        schedule = parse_schedule("0 0 30 2 *")
        assert schedule.next_fire(datetime(2026, 1, 1)) is None

    @pytest.mark.parametrize("expression", [
        "* * * *",
        "60 * * * *",
        "* 24 * * *",
        "* * 0 * *",
        "* * * 13 *",
        "*/0 * * * *",
        "5-1 * * * *",
        "L * * * *",
        "1,,2 * * * *",
        "",
        "   ",
    ])
    def test_malformed(self, expression):
        with pytest.raises(InvalidScheduleError):
            parse_schedule(expression)

    def test_schedule_errors_are_registration_errors(self):
        with pytest.raises(RegistrationError):
            parse_schedule("not a schedule at all")
        with pytest.raises(ValueError):
            parse_schedule("not a schedule at all")

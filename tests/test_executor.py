# ============================================================================
# EXECUTOR INTEGRATION TESTS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Tests - End-to-end probe execution
# PURPOSE: Verify selection, timeouts, sharing, policies and scheduling
# CREATED: 19 OCT 2026
# ============================================================================
"""
Executor Integration Tests

Tests the executor against real asyncio scheduling:
- Tag selection and run options
- Fault isolation between probes
- Cached results and shared executions
- Timeouts (WARN) and exceedingly late executions (CRITICAL)
- Sticky results and grace-period escalation
- Registration changes, records and reset
- Background scheduling
- Adjustable status control and composite probes

Run with:
    pytest tests/test_executor.py -v
"""

import asyncio
import threading

import pytest
from pydantic import ValidationError

from core.config import ExecutorDefaults
from health.checks import AdjustableStatusControl, CompositeProbe
from health.checks.composite import _composite_chain
from health.core import FunctionProbe, Probe, ProbeDescriptor, Result, Status
from health.errors import DuplicateProbeError, TagFilterError, UnknownProbeError
from health.executor import ExecutionOptions, HealthCheckExecutor
from health.registry import ProbeRegistry, get_registry, register_probe, reset_registry


# ============================================================================
# HELPERS
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingProbe(Probe):
    """Async probe returning a settable result after an optional delay."""

    def __init__(self, result: Result = None, delay: float = 0.0):
        self.result = result or Result.ok()
        self.delay = delay
        self.calls = 0

    async def execute(self) -> Result:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


class SequencedCheck(Probe):
    """Async check returning the given results in turn, then repeating the last."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    async def execute(self) -> Result:
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        return result


def make_executor(clock=None, **defaults) -> HealthCheckExecutor:
    registry = ProbeRegistry(defaults=ExecutorDefaults(**defaults))
    if clock is None:
        return HealthCheckExecutor(registry)
    return HealthCheckExecutor(registry, clock=clock)


def add(executor, name, tags=(), probe=None, **descriptor_fields):
    probe = probe or CountingProbe()
    executor.register(ProbeDescriptor(name=name, tags=frozenset(tags), **descriptor_fields), probe)
    return probe


# ============================================================================
# SELECTION & OPTIONS
# ============================================================================


class TestSelection:
    def test_positive_and_negative_tags(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a", ["a"])
            add(executor, "ab", ["a", "b"])
            add(executor, "b", ["b"])

            report = await executor.run("a,-b")
            await executor.close()
            return report

        report = asyncio.run(run_test())
        assert report.names == ["a"]
        assert report.status is Status.OK

    def test_empty_filter_selects_all_in_registration_order(self):
        async def run_test():
            executor = make_executor()
            for name in ("z", "m", "a"):
                add(executor, name)
            report = await executor.run()
            await executor.close()
            return report

        assert asyncio.run(run_test()).names == ["z", "m", "a"]

    def test_nothing_selected_is_ok(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a", ["a"])
            report = await executor.run("missing")
            await executor.close()
            return report

        report = asyncio.run(run_test())
        assert report.status is Status.OK
        assert len(report) == 0

    def test_combine_tags_with_or(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a", ["a"])
            add(executor, "b", ["b"])
            add(executor, "c", ["c"])
            report = await executor.run(
                "a,b", options=ExecutionOptions(combine_tags_with_or=True)
            )
            await executor.close()
            return report

        assert asyncio.run(run_test()).names == ["a", "b"]

    def test_names_and_exclusions(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a", ["a"])
            add(executor, "b", ["b"])
            add(executor, "c", ["c"])

            only_names = await executor.run(options=ExecutionOptions(names=("c",)))
            union = await executor.run("a", options=ExecutionOptions(names=("c",)))
            excluded = await executor.run(options=ExecutionOptions(exclude_names=("b",)))
            await executor.close()
            return only_names, union, excluded

        only_names, union, excluded = asyncio.run(run_test())
        assert only_names.names == ["c"]
        assert union.names == ["a", "c"]
        assert excluded.names == ["a", "c"]

    def test_sort_by_status(self):
        async def run_test():
            executor = make_executor()
            add(executor, "fine", probe=CountingProbe(Result.ok()))
            add(executor, "down", probe=CountingProbe(Result.critical("down")))
            add(executor, "meh", probe=CountingProbe(Result.warn("meh")))
            report = await executor.run(options=ExecutionOptions(sort_by_status=True))
            await executor.close()
            return report

        report = asyncio.run(run_test())
        assert report.names == ["down", "meh", "fine"]
        assert report.status is Status.CRITICAL

    def test_invalid_timeout(self):
        async def run_test():
            executor = make_executor()
            try:
                with pytest.raises(ValueError):
                    await executor.run(timeout_ms=0)
            finally:
                await executor.close()

        asyncio.run(run_test())

    def test_malformed_filter(self):
        async def run_test():
            executor = make_executor()
            try:
                with pytest.raises(TagFilterError):
                    await executor.run("a,--b")
            finally:
                await executor.close()

        asyncio.run(run_test())

    def test_execute_single(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a", probe=CountingProbe(Result.warn("w")))
            outcome = await executor.execute_single("a")
            missing = await executor.execute_single("nope")
            await executor.close()
            return outcome, missing

        outcome, missing = asyncio.run(run_test())
        assert outcome.status is Status.WARN
        assert missing is None


# ============================================================================
# FAULT ISOLATION
# ============================================================================


class TestFaultIsolation:
    def test_raising_probe_does_not_affect_siblings(self):
        def broken():
            raise RuntimeError("connection refused")

        async def run_test():
            executor = make_executor()
            add(executor, "ok", probe=CountingProbe(Result.ok()))
            add(executor, "broken", probe=FunctionProbe(broken))
            report = await executor.run()
            await executor.close()
            return report

        report = asyncio.run(run_test())
        assert report.status is Status.HEALTH_CHECK_ERROR
        assert report.get("ok").status is Status.OK
        broken_result = report.get("broken").result
        assert broken_result.status is Status.HEALTH_CHECK_ERROR
        assert "RuntimeError: connection refused" in broken_result.entries[0].message

    def test_non_result_return_is_an_error(self):
        async def run_test():
            executor = make_executor()
            add(executor, "odd", probe=FunctionProbe(lambda: "fine"))
            report = await executor.run()
            await executor.close()
            return report

        result = asyncio.run(run_test()).get("odd").result
        assert result.status is Status.HEALTH_CHECK_ERROR
        assert "TypeError" in result.entries[0].message

    def test_sync_probe_runs_on_thread_pool(self):
        async def run_test():
            executor = make_executor()
            add(executor, "sync", probe=FunctionProbe(
                lambda: Result.ok(threading.current_thread().name)
            ))
            report = await executor.run()
            await executor.close()
            return report

        message = asyncio.run(run_test()).get("sync").result.messages[0]
        assert message.startswith("probe")


# ============================================================================
# CACHING & SHARED EXECUTION
# ============================================================================


class TestCachingAndSharing:
    def test_repeated_runs_within_ttl_are_identical(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            probe = add(executor, "a", probe=CountingProbe(Result.warn("w")))
            first = await executor.run()
            second = await executor.run()
            await executor.close()
            return probe, first, second

        probe, first, second = asyncio.run(run_test())
        assert first == second
        assert probe.calls == 1

    def test_force_instant_execution_bypasses_cache(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            probe = add(executor, "a")
            await executor.run()
            await executor.run(options=ExecutionOptions(force_instant_execution=True))
            await executor.close()
            return probe

        assert asyncio.run(run_test()).calls == 2

    def test_concurrent_callers_share_one_execution(self):
        """Two waiters time out independently; the probe runs once and fills the cache."""
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            probe = add(executor, "slow", probe=CountingProbe(Result.ok("done"), delay=0.3))

            r1, r2 = await asyncio.gather(
                executor.run(timeout_ms=50),
                executor.run(timeout_ms=80),
            )
            running = executor.running()

            await asyncio.sleep(0.4)
            r3 = await executor.run(timeout_ms=50)
            await executor.close()
            return probe, r1, r2, running, r3

        probe, r1, r2, running, r3 = asyncio.run(run_test())
        assert r1.status is Status.WARN
        assert r2.status is Status.WARN
        assert r1.get("slow").metadata.timed_out
        assert "still running" in r1.get("slow").result.messages[0]
        assert running == ["slow"]

        assert r3.status is Status.OK
        assert r3.get("slow").result.messages == ["done"]
        assert probe.calls == 1

    def test_exceedingly_late_execution_is_critical(self):
        async def run_test():
            executor = make_executor(exceedingly_late_ms=100)
            probe = add(executor, "stuck", probe=CountingProbe(delay=5.0))

            first = await executor.run(timeout_ms=50)
            await asyncio.sleep(0.1)
            second = await executor.run(timeout_ms=50)
            await executor.close()
            return probe, first, second

        probe, first, second = asyncio.run(run_test())
        assert first.status is Status.WARN
        assert second.status is Status.CRITICAL
        assert "exceedingly late" in second.get("stuck").result.messages[0]
        assert probe.calls == 1

    def test_timeout_results_are_not_cached(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            add(executor, "slow", probe=CountingProbe(delay=0.2))
            await executor.run(timeout_ms=20)
            cached_during = "slow" in executor.cache
            await asyncio.sleep(0.3)
            cached_after = "slow" in executor.cache
            await executor.close()
            return cached_during, cached_after

        assert asyncio.run(run_test()) == (False, True)

    def test_completion_after_unregister_is_dropped(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            add(executor, "x", probe=CountingProbe(Result.critical("old"), delay=0.1))
            await executor.run(timeout_ms=20)

            executor.unregister("x")
            add(executor, "x", probe=CountingProbe(Result.ok()))
            await asyncio.sleep(0.2)
            cached = "x" in executor.cache
            report = await executor.run()
            await executor.close()
            return cached, report

        cached, report = asyncio.run(run_test())
        assert not cached
        assert report.status is Status.OK


# ============================================================================
# STICKY & ESCALATION
# ============================================================================


class TestPolicies:
    def test_sticky_result_survives_recovery(self):
        async def run_test():
            clock = FakeClock()
            executor = make_executor(clock=clock)
            probe = add(
                executor, "disk",
                probe=CountingProbe(Result.critical("down")),
                sticky_retention_ms=10_000, cache_ttl_ms=0,
            )
            statuses = [(await executor.run()).status]

            probe.result = Result.ok()
            for t in (5.0, 8.0, 11.0):
                clock.now = t
                statuses.append((await executor.run()).status)
            await executor.close()
            return statuses

        assert asyncio.run(run_test()) == [
            Status.CRITICAL, Status.CRITICAL, Status.CRITICAL, Status.OK,
        ]

    def test_grace_period_escalation(self):
        async def run_test():
            clock = FakeClock()
            executor = make_executor(clock=clock)
            probe = add(
                executor, "db",
                probe=CountingProbe(Result.temporarily_unavailable("starting")),
                grace_period_ms=60_000, cache_ttl_ms=0,
            )
            statuses = []
            for t in range(0, 70, 10):
                clock.now = float(t)
                statuses.append((await executor.run()).status)
            escalated_record = executor.record("db")

            probe.result = Result.ok()
            clock.now = 75.0
            recovered = (await executor.run()).status
            recovered_record = executor.record("db")
            await executor.close()
            return statuses, escalated_record, recovered, recovered_record

        statuses, escalated_record, recovered, recovered_record = asyncio.run(run_test())
        assert statuses[:6] == [Status.TEMPORARILY_UNAVAILABLE] * 6
        assert statuses[6] is Status.CRITICAL
        assert escalated_record.temporarily_unavailable_count == 7
        assert escalated_record.temporarily_unavailable_since == 0.0
        assert escalated_record.non_ok_since == 0.0

        assert recovered is Status.OK
        assert recovered_record.temporarily_unavailable_count == 0
        assert recovered_record.non_ok_since is None

    def test_reset_clears_indefinite_sticky(self):
        async def run_test():
            clock = FakeClock()
            executor = make_executor(clock=clock)
            probe = add(
                executor, "disk",
                probe=CountingProbe(Result.critical("down")),
                sticky_retention_ms=-1, cache_ttl_ms=0,
            )
            await executor.run()
            probe.result = Result.ok()
            clock.now = 10_000.0
            still_sticky = (await executor.run()).status

            executor.reset("disk")
            after_reset = (await executor.run()).status
            with pytest.raises(UnknownProbeError):
                executor.reset("nope")
            await executor.close()
            return still_sticky, after_reset

        assert asyncio.run(run_test()) == (Status.CRITICAL, Status.OK)

    def test_timeout_does_not_end_unavailable_streak(self):
        async def run_test():
            clock = FakeClock()
            executor = make_executor(clock=clock)
            probe = add(
                executor, "db",
                probe=CountingProbe(Result.temporarily_unavailable("starting")),
                grace_period_ms=60_000, cache_ttl_ms=0,
            )
            first = (await executor.run()).status

            probe.delay = 0.2
            clock.now = 10.0
            timed_out = (await executor.run(timeout_ms=20)).status
            streak_start = executor.escalator.streak("db").started_at
            await asyncio.sleep(0.3)

            probe.delay = 0.0
            clock.now = 70.0
            escalated = (await executor.run()).status
            record = executor.record("db")
            await executor.close()
            return first, timed_out, streak_start, escalated, record

        first, timed_out, streak_start, escalated, record = asyncio.run(run_test())
        assert first is Status.TEMPORARILY_UNAVAILABLE
        assert timed_out is Status.WARN
        assert streak_start == 0.0
        assert escalated is Status.CRITICAL
        assert record.temporarily_unavailable_count == 3
        assert record.temporarily_unavailable_since == 0.0


# ============================================================================
# REGISTRATION & RECORDS
# ============================================================================


class TestRegistration:
    def test_duplicate_name_rejected(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a")
            try:
                with pytest.raises(DuplicateProbeError):
                    add(executor, "a")
            finally:
                await executor.close()

        asyncio.run(run_test())

    def test_unregister_discards_state(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            add(executor, "a")
            await executor.run()
            assert "a" in executor.cache
            assert executor.record("a").execution_count == 1

            assert executor.unregister("a") is True
            assert executor.unregister("a") is False
            assert "a" not in executor.cache
            with pytest.raises(UnknownProbeError):
                executor.record("a")
            report = await executor.run()
            await executor.close()
            return report

        assert len(asyncio.run(run_test())) == 0

    def test_decorator_registers_with_global_registry(self):
        reset_registry()

        @register_probe("queue-depth", tags=["queue"], timeout_ms=500)
        class QueueDepthProbe(Probe):
            async def execute(self) -> Result:
                return Result.warn("backlog")

        async def run_test():
            executor = HealthCheckExecutor()
            report = await executor.run("queue")
            await executor.close()
            return executor, report

        try:
            executor, report = asyncio.run(run_test())
            assert executor.registry is get_registry()
            assert get_registry().get("queue-depth").settings.timeout == 0.5
            assert report.status is Status.WARN
        finally:
            reset_registry()

    def test_records_in_registration_order(self):
        async def run_test():
            executor = make_executor()
            add(executor, "b", probe=CountingProbe(Result.warn("w")))
            add(executor, "a")
            await executor.run()
            records = executor.records()
            await executor.close()
            return records

        records = asyncio.run(run_test())
        assert list(records) == ["b", "a"]
        assert records["b"].last_result.status is Status.WARN
        assert records["b"].last_elapsed_ms >= 0
        assert records["b"].last_finished_at is not None

    def test_record_snapshot_is_detached(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=0)
            add(executor, "a")
            await executor.run()
            snapshot = executor.record("a")
            await executor.run()
            current = executor.record("a")
            await executor.close()
            return snapshot, current

        snapshot, current = asyncio.run(run_test())
        assert snapshot.execution_count == 1
        assert current.execution_count == 2

    def test_reschedule(self):
        async def run_test():
            executor = make_executor()
            add(executor, "a")
            executor.reschedule("a", "30s")
            scheduled = executor.scheduler.scheduled_names()
            executor.reschedule("a", None)
            unscheduled = executor.scheduler.scheduled_names()

            with pytest.raises(ValidationError):
                executor.reschedule("a", "whenever")
            with pytest.raises(UnknownProbeError):
                executor.reschedule("nope", "30s")
            await executor.close()
            return scheduled, unscheduled

        assert asyncio.run(run_test()) == (["a"], [])


# ============================================================================
# SCHEDULER
# ============================================================================


class TestScheduler:
    def test_interval_tick_fills_cache(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            probe = add(executor, "bg", probe=CountingProbe(Result.warn("w")), schedule="1h")
            async with executor:
                await asyncio.sleep(0.05)
                cached = executor.cache.get("bg")
                report = await executor.run()
                fired = executor.scheduler.ticks_fired["bg"]
            return probe, cached, report, fired

        probe, cached, report, fired = asyncio.run(run_test())
        assert cached.status is Status.WARN
        assert report.status is Status.WARN
        assert probe.calls == 1
        assert fired == 1

    def test_tick_skipped_while_running(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            probe = add(executor, "slow", probe=CountingProbe(delay=0.35), schedule="100ms")
            async with executor:
                await asyncio.sleep(0.25)
                skipped = executor.scheduler.ticks_skipped["slow"]
                calls = probe.calls
            return skipped, calls

        skipped, calls = asyncio.run(run_test())
        assert skipped >= 1
        assert calls == 1

    def test_unregister_stops_timer(self):
        async def run_test():
            executor = make_executor()
            add(executor, "bg", schedule="1h")
            async with executor:
                before = executor.scheduler.scheduled_names()
                executor.unregister("bg")
                after = executor.scheduler.scheduled_names()
            return before, after

        assert asyncio.run(run_test()) == (["bg"], [])

    def test_scheduled_failure_sticks_after_recovery(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            probe = add(
                executor, "flappy",
                probe=SequencedCheck([Result.critical("down"), Result.ok()]),
                schedule="50ms", sticky_retention_ms=10_000,
            )
            async with executor:
                await asyncio.sleep(0.3)
                record = executor.record("flappy")
                report = await executor.run()
            return probe, record, report

        probe, record, report = asyncio.run(run_test())
        assert probe.calls > 2
        assert record.last_result.status is Status.CRITICAL
        assert report.status is Status.CRITICAL
        assert report.get("flappy").result.messages == ["down"]

    def test_scheduled_unavailable_streak_escalates(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            add(
                executor, "warming",
                probe=CountingProbe(Result.temporarily_unavailable("warming cache")),
                schedule="20ms", grace_period_ms=100,
            )
            async with executor:
                await asyncio.sleep(0.4)
                record = executor.record("warming")
                report = await executor.run()
            return record, report

        record, report = asyncio.run(run_test())
        assert record.temporarily_unavailable_count > 1
        assert record.temporarily_unavailable_since is not None
        assert record.last_result.status is Status.CRITICAL
        assert report.status is Status.CRITICAL

    def test_registration_while_running_is_scheduled(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            async with executor:
                probe = add(executor, "late", schedule="1h")
                await asyncio.sleep(0.05)
                return probe.calls

        assert asyncio.run(run_test()) == 1


# ============================================================================
# OPERATIONAL PROBES
# ============================================================================


class TestAdjustableStatus:
    def test_inject_and_reset(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=0)
            add(executor, "app", ["ready"])
            control = AdjustableStatusControl(executor)

            control.temporarily_unavailable(["ready"], "Draining for deployment")
            injected = await executor.run("ready")
            other = await executor.run("live")
            active = control.active

            assert control.reset() is True
            assert control.reset() is False
            after = await executor.run("ready")
            await executor.close()
            return injected, other, active, after

        injected, other, active, after = asyncio.run(run_test())
        assert injected.status is Status.TEMPORARILY_UNAVAILABLE
        assert injected.get("adjustable-status").result.messages == ["Draining for deployment"]
        assert len(other) == 0
        assert active
        assert after.status is Status.OK
        assert after.names == ["app"]

    def test_new_injection_replaces_previous(self):
        async def run_test():
            executor = make_executor(result_cache_ttl_ms=5000)
            control = AdjustableStatusControl(executor)
            control.warn(["ready"])
            await executor.run("ready")
            control.critical(["ready"])
            report = await executor.run("ready")
            await executor.close()
            return report

        report = asyncio.run(run_test())
        assert report.status is Status.CRITICAL
        assert len(report) == 1

    def test_only_adjustable_statuses(self):
        async def run_test():
            executor = make_executor()
            control = AdjustableStatusControl(executor)
            try:
                with pytest.raises(ValueError):
                    control.inject(Status.OK, ["ready"])
                with pytest.raises(ValueError):
                    control.inject(Status.HEALTH_CHECK_ERROR, ["ready"])
            finally:
                await executor.close()

        asyncio.run(run_test())


class TestCompositeProbe:
    def test_aggregates_members(self):
        async def run_test():
            executor = make_executor()
            add(executor, "orders-db", ["db"], probe=CountingProbe(Result.ok("reachable")))
            add(executor, "users-db", ["db"], probe=CountingProbe(Result.warn("replica lag")))
            executor.register(
                ProbeDescriptor(name="databases", tags={"db", "summary"}),
                CompositeProbe(executor, "databases", "db"),
            )
            report = await executor.run("summary")
            await executor.close()
            return report

        report = asyncio.run(run_test())
        assert report.names == ["databases"]
        result = report.get("databases").result
        assert result.status is Status.WARN
        assert "users-db: replica lag" in result.messages
        assert "orders-db: reachable" in result.messages

    def test_no_members(self):
        async def run_test():
            executor = make_executor()
            executor.register(
                ProbeDescriptor(name="empty"),
                CompositeProbe(executor, "empty", "nothing-has-this"),
            )
            report = await executor.run()
            await executor.close()
            return report

        result = asyncio.run(run_test()).get("empty").result
        assert result.status is Status.OK
        assert "No probes match filter" in result.messages[0]

    def test_direct_self_reference_is_an_error(self):
        async def run_test():
            executor = make_executor()
            composite = CompositeProbe(executor, "loop", "x")
            executor.register(ProbeDescriptor(name="loop", tags={"x"}), composite)
            outer = await executor.run("x")

            inner = CompositeProbe(executor, "inner", "x")
            token = _composite_chain.set(("inner",))
            try:
                nested = await inner.execute()
            finally:
                _composite_chain.reset(token)
            await executor.close()
            return outer, nested

        outer, nested = asyncio.run(run_test())
        # A composite never selects itself
        assert outer.get("loop").status is Status.OK
        assert nested.status is Status.HEALTH_CHECK_ERROR
        assert "inner -> inner" in nested.entries[0].message

# ============================================================================
# PROBE SCHEDULER
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Background probe execution
# PURPOSE: Run scheduled probes on their own cadence, feeding the cache
# CREATED: 19 OCT 2026
# ============================================================================
"""
Probe Scheduler

One asyncio task per scheduled probe. Each tick starts an execution
through the shared in-flight executions; the execution writes its result
into the result cache when it finishes, so the next caller request is
served from the cache.

Rules:
- Fixed intervals fire immediately, then at a fixed rate. Ticks missed
  while the loop was busy are dropped, not replayed.
- Cron schedules fire at wall-clock (local time) matches.
- If the probe is still executing when a tick fires (from an earlier tick
  or a caller request), the tick is skipped and logged.
- schedule()/unschedule() take effect immediately while running.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from health.inflight import InFlightExecutions
from health.registry import RegisteredProbe
from health.schedule import CronSchedule, IntervalSchedule

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Args:
        inflight: Shared in-flight executions
        now: Wall clock used for cron schedules
    """

    def __init__(
        self,
        inflight: InFlightExecutions,
        now: Callable[[], datetime] = datetime.now,
    ):
        self._inflight = inflight
        self._now = now
        self._entries: Dict[str, RegisteredProbe] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

        # Metrics
        self.ticks_fired: Dict[str, int] = {}
        self.ticks_skipped: Dict[str, int] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    def scheduled_names(self) -> List[str]:
        return list(self._entries)

    def schedule(self, entry: RegisteredProbe) -> None:
        """Add or replace the timer of a probe. Entries without a schedule are removed."""
        self.unschedule(entry.name)
        if entry.settings.schedule is None:
            return

        self._entries[entry.name] = entry
        self.ticks_fired.setdefault(entry.name, 0)
        self.ticks_skipped.setdefault(entry.name, 0)
        if self._running:
            self._start_timer(entry)
        logger.info(
            f"Scheduled probe {entry.name} ({entry.settings.schedule.expression})"
        )

    def unschedule(self, name: str) -> bool:
        entry = self._entries.pop(name, None)
        timer = self._timers.pop(name, None)
        if timer is not None:
            timer.cancel()
        self.ticks_fired.pop(name, None)
        self.ticks_skipped.pop(name, None)
        if entry is not None:
            logger.debug(f"Unscheduled probe {name}")
        return entry is not None

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return
        self._loop = asyncio.get_running_loop()
        self._running = True
        for entry in self._entries.values():
            self._start_timer(entry)
        logger.info(f"Scheduler started ({len(self._entries)} scheduled probes)")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        logger.info("Scheduler stopped")

    def _start_timer(self, entry: RegisteredProbe) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._timers[entry.name] = loop.create_task(
            self._timer_loop(entry),
            name=f"schedule-{entry.name}",
        )

    async def _timer_loop(self, entry: RegisteredProbe) -> None:
        schedule = entry.settings.schedule
        try:
            if isinstance(schedule, IntervalSchedule):
                await self._run_interval(entry, schedule)
            elif isinstance(schedule, CronSchedule):
                await self._run_cron(entry, schedule)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Timer for probe {entry.name} stopped unexpectedly")

    async def _run_interval(self, entry: RegisteredProbe, schedule: IntervalSchedule) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while True:
            delay = next_at - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            self._tick(entry)

            next_at += schedule.seconds
            now = loop.time()
            if next_at <= now:
                missed = int((now - next_at) // schedule.seconds) + 1
                next_at += missed * schedule.seconds
                logger.debug(f"Probe {entry.name}: dropped {missed} missed tick(s)")

    async def _run_cron(self, entry: RegisteredProbe, schedule: CronSchedule) -> None:
        last_fire: Optional[datetime] = None
        while True:
            now = self._now()
            after = now if last_fire is None or now > last_fire else last_fire
            fire_at = schedule.next_fire(after)
            if fire_at is None:
                logger.warning(
                    f"Cron schedule of probe {entry.name} never fires "
                    f"({schedule.expression}), timer stopped"
                )
                return
            await asyncio.sleep(max(0.0, (fire_at - now).total_seconds()))
            last_fire = fire_at
            self._tick(entry)

    def _tick(self, entry: RegisteredProbe) -> None:
        if self._inflight.is_running(entry.name):
            self.ticks_skipped[entry.name] = self.ticks_skipped.get(entry.name, 0) + 1
            logger.info(
                f"Skipping scheduled execution of probe {entry.name}: "
                f"previous execution still running"
            )
            return
        self.ticks_fired[entry.name] = self.ticks_fired.get(entry.name, 0) + 1
        self._inflight.start_or_join(entry, trigger="schedule")


__all__ = [
    "Scheduler",
]

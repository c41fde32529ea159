"""
Cron scheduler for host backups.

Once per tick (60 seconds by default, aligned to the minute boundary) every
host schedule is checked against the current minute. Due hosts get a backup
task pushed onto the queue; the scheduler never runs or awaits backups itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from fleetback.config.types import DEFAULT_CRON, Host
from fleetback.exceptions import ConfigurationError, MissingError, SchedulerError
from fleetback.observability.structured_logging import log_error
from fleetback.service.cron_parser import CronParseError, CronSpec, parse_cron
from fleetback.service.queue import TaskQueue
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.service.scheduler")

RESOLUTION = timedelta(minutes=1)


@dataclass(frozen=True)
class Schedule:
    """A host paired with its parsed cron expression."""

    host: Host
    cron: CronSpec
    is_default: bool = False


def parse_schedules(hosts: Iterable[Host], default_cron: str = DEFAULT_CRON) -> list[Schedule]:
    """
    Build one Schedule per host, in configuration order.

    A host without a cron expression, or with an invalid one, falls back to
    ``default_cron``; the problem is logged and other hosts are unaffected.

    Raises:
        ConfigurationError: If ``default_cron`` itself is invalid
    """
    try:
        default_spec = parse_cron(default_cron)
    except CronParseError as e:
        raise ConfigurationError(f"Invalid default cron expression {default_cron!r}: {e.message}") from e

    schedules: list[Schedule] = []
    for host in hosts:
        if not host.cron_schedule:
            log_error(
                MissingError(
                    f"Missing cron_schedule for '{host.identifier}': defaulting to '{default_cron}'",
                    host=host.identifier,
                ),
                level=logging.WARNING,
            )
            schedules.append(Schedule(host=host, cron=default_spec, is_default=True))
            continue

        try:
            spec = parse_cron(host.cron_schedule)
        except CronParseError as e:
            e.host = host.identifier
            e.message = (
                f"Invalid cron expression for '{host.identifier}' ({host.cron_schedule!r}): "
                f"{e.message}; defaulting to '{default_cron}'"
            )
            log_error(e)
            schedules.append(Schedule(host=host, cron=default_spec, is_default=True))
            continue

        schedules.append(Schedule(host=host, cron=spec))
    return schedules


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def is_due(schedule: Schedule, now: datetime) -> bool:
    """
    True if ``schedule`` fires in the minute containing ``now``.

    The next fire time strictly after ``now - 1 minute`` is compared with
    ``now``, both truncated to the minute.
    """
    scheduled = schedule.cron.next_after(now - RESOLUTION)
    return truncate_to_minute(scheduled) == truncate_to_minute(now)


class Scheduler:
    """
    Periodic due-check that feeds the task queue.

    Args:
        schedules: Host schedules, evaluated in this order every tick
        queue: Queue receiving due tasks
        task_factory: Builds the task for a due host
        tick_interval_s: Seconds between checks
        tz: Timezone for evaluating cron expressions (default: local time)
    """

    def __init__(
        self,
        schedules: list[Schedule],
        queue: TaskQueue,
        task_factory: Callable[[Host], object],
        *,
        tick_interval_s: float = 60.0,
        tz: tzinfo | None = None,
    ):
        self.schedules = schedules
        self.queue = queue
        self.task_factory = task_factory
        self.tick_interval_s = tick_interval_s
        self.tz = tz
        # host identifier -> minute it last fired
        self._last_fired: dict[str, datetime] = {}

    @classmethod
    def timezone_from_name(cls, name: str | None) -> tzinfo | None:
        return ZoneInfo(name) if name else None

    def now(self) -> datetime:
        if self.tz is not None:
            return datetime.now(self.tz)
        return datetime.now().astimezone()

    def tick(self, now: datetime | None = None) -> list[object]:
        """
        Run one due-check and enqueue a task for every due host.

        A host fires at most once per minute: a repeated check inside the same
        minute does not enqueue it again. A host whose check or enqueue fails
        is logged as a SchedulerError and retried on the next tick; the other
        hosts are still checked.

        Returns:
            Tasks enqueued by this tick
        """
        now = now or self.now()
        minute = truncate_to_minute(now)
        enqueued = []

        for schedule in self.schedules:
            host = schedule.host
            if self._last_fired.get(host.identifier) == minute:
                continue
            try:
                if not is_due(schedule, now):
                    continue
                task = self.task_factory(host)
                self.queue.push(task)
            except Exception as e:
                log_error(SchedulerError(f"Could not schedule backup: {e}", host=host.identifier))
                continue

            self._last_fired[host.identifier] = minute
            enqueued.append(task)
            logger.info(
                f"{host.identifier} is due ({schedule.cron.expr}); queued backup",
                extra={"event": "backup.queued", "host": host.identifier},
            )

        return enqueued

    def next_runs(self, now: datetime | None = None) -> list[tuple[Host, datetime | None]]:
        """
        Next fire time of every schedule, in configuration order.

        A schedule whose next fire time cannot be computed is logged and
        reported as None.
        """
        now = now or self.now()
        runs: list[tuple[Host, datetime | None]] = []
        for schedule in self.schedules:
            try:
                when = schedule.cron.next_after(now)
            except CronParseError as e:
                log_error(SchedulerError(f"Could not compute next run: {e.message}", host=schedule.host.identifier))
                when = None
            runs.append((schedule.host, when))
        return runs

    async def run(self, stop: asyncio.Event) -> None:
        """
        Tick until ``stop`` is set.

        Errors inside a tick are logged and the loop keeps going.
        """
        logger.info(f"Scheduler started with {len(self.schedules)} host schedule(s)")
        while not stop.is_set():
            try:
                self.tick()
            except Exception as e:
                log_error(SchedulerError(f"Scheduler tick failed: {e}"))

            try:
                await asyncio.wait_for(stop.wait(), timeout=self._seconds_until_next_tick())
            except TimeoutError:
                pass
        logger.info("Scheduler stopped")

    def _seconds_until_next_tick(self) -> float:
        # Align to interval boundaries so a drifting sleep never skips a minute.
        interval = self.tick_interval_s
        return interval - (time.time() % interval) + 0.05

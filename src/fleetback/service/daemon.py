"""
Long-running backup daemon.

Wires one TaskQueue between the Scheduler (producer) and the Executor
(consumer) and runs both loops until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

from fleetback.backup.task import BackupTask, ConnectionFactory
from fleetback.config.loader import load_global_config, load_hosts
from fleetback.config.types import GlobalConfig, Host
from fleetback.service.executor import Executor
from fleetback.service.queue import TaskQueue
from fleetback.service.scheduler import Scheduler, parse_schedules
from fleetback.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("fleetback.service.daemon")


class BackupService:
    """
    Scheduler + executor sharing one queue.

    Args:
        config: Global configuration
        hosts: Hosts to schedule
        connection_factory: Passed through to every BackupTask (tests inject fakes)
    """

    def __init__(
        self,
        config: GlobalConfig,
        hosts: list[Host],
        *,
        connection_factory: ConnectionFactory | None = None,
    ):
        self.config = config
        self.hosts = hosts
        self._connection_factory = connection_factory

        self.queue: TaskQueue[BackupTask] = TaskQueue()
        self.schedules = parse_schedules(hosts, config.default_cron)
        self.scheduler = Scheduler(
            self.schedules,
            self.queue,
            self.make_task,
            tick_interval_s=config.tick_interval_s,
            tz=Scheduler.timezone_from_name(config.timezone),
        )
        self.executor = Executor(
            self.queue,
            max_concurrency=config.max_concurrency,
            poll_interval_s=config.poll_interval_s,
            task_timeout_s=config.task_timeout_s,
        )

        self._stopping = asyncio.Event()
        self._background_tasks: list[asyncio.Task] = []

    def make_task(self, host: Host, *, incremental: bool = True) -> BackupTask:
        return BackupTask(host, self.config, incremental=incremental, connection_factory=self._connection_factory)

    def start_background_tasks(self) -> None:
        self._stopping.clear()
        self._background_tasks.append(asyncio.create_task(self.scheduler.run(self._stopping), name="scheduler"))
        self._background_tasks.append(asyncio.create_task(self.executor.run(self._stopping), name="executor"))

    async def stop_background_tasks(self) -> None:
        """Stop both loops, then cancel whatever backups are still in flight."""
        self._stopping.set()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        if self.executor.inflight:
            logger.warning(f"Cancelling {self.executor.inflight} in-flight backup(s)")
        await self.executor.cancel_all()

        pending = len(self.queue)
        if pending:
            logger.warning(f"{pending} queued backup(s) dropped at shutdown")

    def stop(self) -> None:
        """Request shutdown (safe to call from a signal handler)."""
        self._stopping.set()

    async def run(self) -> None:
        """Run until ``stop()`` is called."""
        logger.info(f"fleetback daemon started: {len(self.hosts)} host(s)")
        for host, when in self.scheduler.next_runs():
            if when is not None:
                logger.info(f"{host.identifier}: next backup at {when.isoformat()}")

        self.start_background_tasks()
        try:
            await self._stopping.wait()
        finally:
            await self.stop_background_tasks()
            logger.info(
                f"fleetback daemon stopped ({self.executor.succeeded} succeeded, {self.executor.failed} failed)"
            )


def run_daemon(config_path: str | Path | None = None) -> None:
    """
    Load configuration and run the daemon (blocking).

    Raises:
        ConfigurationError: If the global config or hosts file cannot be loaded
    """
    config = load_global_config(config_path)
    setup_logging_from_config(config)
    hosts = load_hosts(config.hosts_file)

    svc = BackupService(config, hosts)

    async def _main() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, svc.stop)
        await svc.run()

    asyncio.run(_main())

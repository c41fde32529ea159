"""
Executor: drains the task queue and runs backups concurrently.

Concurrency rules:
- at most one in-flight backup per host (the host's execution slot);
  a popped task whose host is busy goes back to the tail of the queue
- at most ``max_concurrency`` in-flight backups overall
- optional per-task timeout; an expired task is reported failed and its
  slot released, without touching the host's record

A failing backup is logged and never stops the drain loop.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from fleetback.backup.types import BackupResult
from fleetback.exceptions import BackupError, SchedulerError
from fleetback.observability.structured_logging import (
    add_correlation_id,
    log_backup_end,
    log_backup_start,
)
from fleetback.service.queue import TaskQueue
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.service.executor")


class RunnableTask(Protocol):
    task_id: str
    incremental: bool

    @property
    def host_key(self) -> str: ...

    async def run(self) -> BackupResult: ...


async def run_backup(task: RunnableTask, *, timeout: float | None = None) -> BackupResult | None:
    """
    Run one task, logging start/end under the task's correlation id.

    Errors are logged, not raised: the return value is None on failure.
    Cancellation still propagates.
    """
    loop = asyncio.get_running_loop()
    with add_correlation_id(task.task_id):
        log_backup_start(task.host_key, incremental=task.incremental)
        started = loop.time()
        error: BaseException | None = None
        try:
            if timeout is not None:
                result = await asyncio.wait_for(task.run(), timeout=timeout)
            else:
                result = await task.run()
        except BackupError as e:
            error = e
        except TimeoutError:
            error = SchedulerError(f"Backup timed out after {timeout}s", host=task.host_key)
        except Exception as e:
            error = e

        duration = loop.time() - started
        if error is not None:
            log_backup_end(task.host_key, success=False, duration=duration, error=error)
            return None

        log_backup_end(task.host_key, success=True, duration=duration, transferred=len(result.transferred))
        return result


class Executor:
    """
    Drains a TaskQueue and dispatches tasks as asyncio tasks.

    Args:
        queue: Queue to drain
        max_concurrency: Upper bound on in-flight backups across all hosts
        poll_interval_s: Sleep between drain passes
        task_timeout_s: Per-task timeout (None disables)
    """

    def __init__(
        self,
        queue: TaskQueue,
        *,
        max_concurrency: int = 4,
        poll_interval_s: float = 0.5,
        task_timeout_s: float | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.queue = queue
        self.max_concurrency = max_concurrency
        self.poll_interval_s = poll_interval_s
        self.task_timeout_s = task_timeout_s

        self.running_hosts: set[str] = set()
        self.succeeded = 0
        self.failed = 0
        self._inflight: set[asyncio.Task] = set()
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def dispatch_ready(self) -> int:
        """
        One drain pass over the tasks currently queued.

        Each task is either started or, if its host already has a backup in
        flight, pushed back to the tail. Tasks enqueued during the pass wait
        for the next one.

        Returns:
            Number of tasks started
        """
        started = 0
        for _ in range(len(self.queue)):
            task = self.queue.pop()
            if task is None:
                break
            if task.host_key in self.running_hosts:
                logger.debug(f"{task.host_key} already running; re-queued {task.task_id}")
                self.queue.push(task)
                continue
            self._start(task)
            started += 1
        return started

    def _start(self, task: RunnableTask) -> None:
        self.running_hosts.add(task.host_key)
        aio_task = asyncio.create_task(self._execute(task), name=f"backup:{task.task_id}")
        self._inflight.add(aio_task)
        aio_task.add_done_callback(self._inflight.discard)

    async def _execute(self, task: RunnableTask) -> BackupResult | None:
        try:
            async with self._semaphore:
                result = await run_backup(task, timeout=self.task_timeout_s)
        finally:
            self.running_hosts.discard(task.host_key)

        if result is None:
            self.failed += 1
        else:
            self.succeeded += 1
        return result

    async def run(self, stop: asyncio.Event) -> None:
        """Drain the queue until ``stop`` is set."""
        logger.info(f"Executor started (max_concurrency={self.max_concurrency})")
        while not stop.is_set():
            try:
                self.dispatch_ready()
            except Exception as e:
                logger.error(f"Executor drain pass failed: {e}", extra={"kind": SchedulerError.kind})

            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval_s)
            except TimeoutError:
                pass
        logger.info("Executor stopped")

    async def drain(self) -> None:
        """Wait until the queue is empty and no backup is in flight."""
        while True:
            self.dispatch_ready()
            if not self._inflight:
                if self.queue.is_empty():
                    return
                # Only re-queued tasks are left and their hosts just freed up
                continue
            await asyncio.wait(set(self._inflight), return_when=asyncio.FIRST_COMPLETED)

    async def cancel_all(self) -> None:
        """Cancel in-flight backups (used at shutdown)."""
        for aio_task in list(self._inflight):
            aio_task.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

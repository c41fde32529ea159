"""
FIFO of pending backup tasks.

The scheduler pushes, the executor pops. A plain lock guards the deque so the
queue stays safe whether producer and consumer are asyncio tasks or threads.
Popping never blocks; waiting for work is the executor's job.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class TaskQueue(Generic[T]):
    """Thread-safe FIFO queue with non-blocking pop."""

    def __init__(self) -> None:
        self._tasks: deque[T] = deque()
        self._lock = threading.Lock()

    def push(self, task: T) -> None:
        """Enqueue at the tail."""
        with self._lock:
            self._tasks.append(task)

    def pop(self) -> T | None:
        """Dequeue from the head; None if the queue is empty."""
        with self._lock:
            if not self._tasks:
                return None
            return self._tasks.popleft()

    def peek(self) -> T | None:
        """Head of the queue without removing it; None if empty."""
        with self._lock:
            return self._tasks[0] if self._tasks else None

    def is_empty(self) -> bool:
        with self._lock:
            return not self._tasks

    def snapshot(self) -> list[T]:
        """Copy of the pending tasks in pop order."""
        with self._lock:
            return list(self._tasks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

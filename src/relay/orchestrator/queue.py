"""FIFO buffer of pending tasks.

Generators push at the tail, the dispatcher pops from the head, and the
retry path pushes failed tasks back at the tail. Priority is carried on
each descriptor for reporting only and never reorders the queue.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable

from relay.core.logging import get_logger
from relay.core.models import TaskDescriptor

_logger = get_logger("orchestrator.queue")


class TaskQueue:
    """Lock-protected FIFO of ``TaskDescriptor`` objects.

    ``dequeue`` never blocks: an empty queue returns ``None`` and the
    caller decides what to do.
    """

    def __init__(self) -> None:
        self._items: deque[TaskDescriptor] = deque()
        self._lock = asyncio.Lock()

    async def enqueue(self, tasks: Iterable[TaskDescriptor]) -> int:
        """Append ``tasks`` in order; return how many were added."""
        async with self._lock:
            before = len(self._items)
            self._items.extend(tasks)
            added = len(self._items) - before
        if added:
            _logger.debug("queue.enqueued", count=added, size=before + added)
        return added

    async def requeue(self, task: TaskDescriptor) -> None:
        """Put a failed task back at the tail."""
        async with self._lock:
            self._items.append(task)
        _logger.debug(
            "queue.requeued",
            description=task.description,
            retry_count=task.retry_count,
        )

    async def dequeue(self) -> TaskDescriptor | None:
        async with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    async def take_all(self) -> list[TaskDescriptor]:
        """Remove and return every pending task in queue order."""
        async with self._lock:
            snapshot = list(self._items)
            self._items.clear()
        return snapshot

    async def clear(self) -> int:
        """Drop every pending task; return how many were dropped."""
        async with self._lock:
            removed = len(self._items)
            self._items.clear()
        if removed:
            _logger.info("queue.cleared", removed=removed)
        return removed

    async def pending(self) -> list[TaskDescriptor]:
        """Copy of the pending tasks, head first."""
        async with self._lock:
            return list(self._items)

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["TaskQueue"]

"""Dispatch counters and the read-only statistics snapshot.

``DispatchCounters`` is written by the dispatcher only. The aggregator
combines those counters with the current registry and queue contents
into a frozen ``StatsSnapshot``; taking a snapshot never mutates
anything, so two snapshots with no activity in between compare equal.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field
from typing import Any

from relay.core.errors import ExhaustedRetryError
from relay.core.models import JobStatus, TaskCategory
from relay.orchestrator.queue import TaskQueue
from relay.orchestrator.registry import JobRegistry


@dataclass(frozen=True)
class DroppedTask:
    """A task that ran out of launch attempts."""

    description: str
    category: str
    attempts: int
    last_error: str
    dropped_at: float


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time engine statistics."""

    total_launched: int
    completed: int
    failed: int
    by_category: dict[str, int]
    retried: int
    permanent_failures: int
    outstanding: int
    queued: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DispatchCounters:
    """Counters owned by the dispatcher.

    ``launched`` is per category; ``retried`` counts requeues, and
    ``dropped`` keeps one entry per permanent failure.
    """

    launched: dict[str, int] = field(default_factory=dict)
    retried: int = 0
    dropped: list[DroppedTask] = field(default_factory=list)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    async def record_launch(self, category: TaskCategory) -> None:
        async with self._lock:
            self.launched[category.value] = self.launched.get(category.value, 0) + 1

    async def record_retry(self) -> None:
        async with self._lock:
            self.retried += 1

    async def record_permanent_failure(
        self, error: ExhaustedRetryError, category: TaskCategory,
    ) -> None:
        async with self._lock:
            self.dropped.append(
                DroppedTask(
                    description=error.description,
                    category=category.value,
                    attempts=error.attempts,
                    last_error=error.last_error,
                    dropped_at=time.time(),
                )
            )

    async def reset(self) -> None:
        async with self._lock:
            self.launched.clear()
            self.retried = 0
            self.dropped.clear()

    @property
    def total_launched(self) -> int:
        return sum(self.launched.values())


class StatisticsAggregator:
    """Builds ``StatsSnapshot`` objects from the live engine state."""

    def __init__(
        self,
        registry: JobRegistry,
        queue: TaskQueue,
        counters: DispatchCounters,
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._counters = counters

    async def snapshot(self) -> StatsSnapshot:
        records = await self._registry.records()
        counters = self._counters
        return StatsSnapshot(
            total_launched=counters.total_launched,
            completed=sum(1 for r in records if r.status is JobStatus.FINISHED),
            failed=sum(1 for r in records if r.status is JobStatus.FAILED),
            by_category=dict(sorted(counters.launched.items())),
            retried=counters.retried,
            permanent_failures=len(counters.dropped),
            outstanding=sum(1 for r in records if r.status.is_outstanding),
            queued=self._queue.size(),
        )


__all__ = [
    "DispatchCounters",
    "DroppedTask",
    "StatisticsAggregator",
    "StatsSnapshot",
]

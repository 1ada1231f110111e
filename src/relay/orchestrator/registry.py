"""In-memory registry of launched jobs.

Every job the backend accepted is tracked here under its backend id
until an explicit ``remove``/``clear``. Status updates follow the
monotonic lifecycle of ``JobStatus``; an update that would move a job
backwards, or out of a terminal state, is logged and dropped.
"""

from __future__ import annotations

import asyncio
import time

from relay.core.logging import get_logger
from relay.core.models import JobRecord, JobStatus, TaskDescriptor

_logger = get_logger("orchestrator.registry")


class JobRegistry:
    """Lock-protected map of job id to ``JobRecord``."""

    def __init__(self) -> None:
        self._records: dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    async def register(
        self,
        job_id: str,
        task: TaskDescriptor,
        *,
        status: JobStatus = JobStatus.CREATING,
        branch: str | None = None,
    ) -> JobRecord:
        """Record a newly launched job.

        Raises:
            ValueError: If ``job_id`` is already registered.
        """
        now = time.time()
        record = JobRecord(
            job_id=job_id,
            task=task,
            status=status,
            launched_at=now,
            last_updated_at=now,
            branch=branch,
        )
        async with self._lock:
            if job_id in self._records:
                raise ValueError(f"job {job_id} is already registered")
            self._records[job_id] = record
        _logger.info(
            "registry.job_registered",
            job_id=job_id,
            category=task.category.value,
            status=record.status.value,
        )
        return record

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        summary: str | None = None,
    ) -> bool:
        """Apply a status update.

        Returns:
            True if the record changed state, False if the job is unknown
            or the transition was rejected. Same-state updates refresh
            ``last_updated_at`` (and summary) but return False.
        """
        async with self._lock:
            record = self._records.get(job_id)
            if record is None:
                _logger.warning("registry.unknown_job", job_id=job_id, status=status.value)
                return False
            old = record.status
            if not old.can_transition_to(status):
                _logger.warning(
                    "registry.transition_rejected",
                    job_id=job_id,
                    from_status=old.value,
                    to_status=status.value,
                )
                return False
            record.status = status
            record.last_updated_at = time.time()
            if summary:
                record.summary = summary
        if old is not status:
            _logger.debug(
                "registry.status_changed",
                job_id=job_id,
                from_status=old.value,
                to_status=status.value,
            )
        return old is not status

    async def get(self, job_id: str) -> JobRecord | None:
        async with self._lock:
            return self._records.get(job_id)

    async def all_outstanding(self) -> list[JobRecord]:
        """Records still CREATING or RUNNING, in launch order."""
        async with self._lock:
            return [r for r in self._records.values() if r.status.is_outstanding]

    async def records(self) -> list[JobRecord]:
        """Every record, in launch order."""
        async with self._lock:
            return list(self._records.values())

    async def remove(self, job_id: str) -> JobRecord | None:
        async with self._lock:
            return self._records.pop(job_id, None)

    async def clear(self) -> int:
        """Forget every record; return how many were dropped."""
        async with self._lock:
            removed = len(self._records)
            self._records.clear()
        if removed:
            _logger.info("registry.cleared", removed=removed)
        return removed

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["JobRegistry"]

"""Status poller: refreshes outstanding jobs from the backend.

One ``poll_once`` call asks the backend about every CREATING/RUNNING
job, one at a time. A failed refresh is isolated to its job: it is
logged as a ``PollError`` and the job is simply polled again on the
next cycle.

A job first seen as finished while still CREATING locally is moved
through RUNNING, so the registry never records CREATING -> FINISHED.
"""

from __future__ import annotations

from dataclasses import dataclass

from relay.backend.base import AgentBackend
from relay.core.errors import ConfigurationError, PollError
from relay.core.logging import get_logger
from relay.core.models import JobStatus
from relay.orchestrator.registry import JobRegistry

_logger = get_logger("orchestrator.poller")


@dataclass
class PollReport:
    """Outcome of one poll cycle."""

    polled: int = 0
    updated: int = 0
    failed: int = 0


class StatusPoller:
    """Polls the backend for every outstanding job in the registry."""

    def __init__(self, backend: AgentBackend, registry: JobRegistry) -> None:
        self.backend = backend
        self.registry = registry

    async def poll_once(self) -> PollReport:
        report = PollReport()
        for record in await self.registry.all_outstanding():
            report.polled += 1
            try:
                changed = await self._refresh(record.job_id, record.status)
            except PollError as e:
                report.failed += 1
                _logger.warning("poller.refresh_failed", job_id=e.job_id, error=str(e.cause))
                continue
            if changed:
                report.updated += 1

        if report.polled:
            _logger.debug(
                "poller.cycle_complete",
                polled=report.polled,
                updated=report.updated,
                failed=report.failed,
            )
        return report

    async def _refresh(self, job_id: str, current: JobStatus) -> bool:
        try:
            info = await self.backend.get_job(job_id)
        except ConfigurationError:
            raise
        except Exception as e:
            raise PollError(job_id, e) from e

        raw_status = info.get("status")
        status = JobStatus.from_backend(raw_status)
        if status is None:
            _logger.warning("poller.unknown_status", job_id=job_id, status=raw_status)
            return False

        summary = info.get("summary")
        if current is JobStatus.CREATING and status is JobStatus.FINISHED:
            # The job ran entirely between two polls.
            await self.registry.update_status(job_id, JobStatus.RUNNING)
        changed = await self.registry.update_status(job_id, status, summary=summary)
        if changed and status.is_terminal:
            _logger.info(
                "poller.job_terminal",
                job_id=job_id,
                status=status.value,
                summary=summary,
            )
        return changed


__all__ = ["PollReport", "StatusPoller"]

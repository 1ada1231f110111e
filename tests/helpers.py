"""Shared test helpers for Relay tests."""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any

from relay.backend.base import CreatedJob, JobInfo, JobPage, LaunchOptions
from relay.core.errors import BackendError

SMALL_CATALOG = """
baseline:
  development:
    - {key: engine, description: Create main game engine}
    - {key: server, description: Implement game server, priority: critical}
  quality:
    - {key: tests, description: Add integration tests, category: tests}
aggressive:
  features:
    - {description: Implement 3D engine, priority: critical, area: engine}
    - {description: Add physics engine, priority: critical, area: engine}
  controls:
    - {description: Implement WASD movement, priority: critical}
  tabs:
    - {description: Complete Dashboard tab, priority: critical}
  security:
    - {description: Verify code integrity, category: security}
"""


class FakeBackend:
    """In-memory ``AgentBackend``.

    Args:
        fail_creates: Number of create calls that fail before creates succeed.
        always_fail: Every create call fails.
        latency: Seconds each create call takes.
        fixed_id: Id returned by every successful create (default: a fresh
            "bc-N" per call).
    """

    def __init__(
        self,
        fail_creates: int = 0,
        always_fail: bool = False,
        latency: float = 0.0,
        fixed_id: str | None = None,
    ) -> None:
        self.fail_creates = fail_creates
        self.always_fail = always_fail
        self.latency = latency
        self.fixed_id = fixed_id
        self.create_calls: list[dict[str, Any]] = []
        self.create_started_at: list[float] = []
        self.statuses: dict[str, str] = {}
        self.summaries: dict[str, str] = {}
        self.get_errors: set[str] = set()
        self.get_calls: list[str] = []
        self.deleted: list[str] = []
        self.followups: list[tuple[str, str]] = []
        self.closed = False
        self._ids = itertools.count(1)

    async def create_job(
        self, prompt_text: str, source_ref: str, options: LaunchOptions,
    ) -> CreatedJob:
        self.create_started_at.append(time.monotonic())
        self.create_calls.append(
            {"prompt": prompt_text, "ref": source_ref, "branch": options.branch_name}
        )
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.always_fail or self.fail_creates > 0:
            self.fail_creates -= 1
            raise BackendError(500, "internal error", operation="create_job")
        job_id = self.fixed_id or f"bc-{next(self._ids)}"
        self.statuses[job_id] = "CREATING"
        return CreatedJob(id=job_id, status="CREATING")

    async def get_job(self, job_id: str) -> JobInfo:
        self.get_calls.append(job_id)
        if job_id in self.get_errors:
            raise BackendError(503, "unreachable", operation="get_job")
        info = JobInfo(id=job_id, status=self.statuses.get(job_id, "RUNNING"))
        if job_id in self.summaries:
            info["summary"] = self.summaries[job_id]
        return info

    async def list_jobs(self, limit: int = 20, cursor: str | None = None) -> JobPage:
        jobs = [{"id": k, "status": v, "name": f"job {k}"} for k, v in self.statuses.items()]
        return JobPage(jobs=jobs[:limit], next_cursor=None)

    async def delete_job(self, job_id: str) -> dict[str, Any]:
        self.deleted.append(job_id)
        return {"id": job_id}

    async def add_followup(self, job_id: str, prompt_text: str) -> dict[str, Any]:
        self.followups.append((job_id, prompt_text))
        return {"id": job_id}

    async def __aenter__(self) -> FakeBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.closed = True

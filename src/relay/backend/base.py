"""Contract between the orchestration engine and the agent backend.

The dispatcher and poller only depend on ``AgentBackend``; the HTTP
client in ``relay.backend.client`` satisfies it, and tests substitute
in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, Protocol, TypedDict


class CreatedJob(TypedDict):
    """Response of a create call."""

    id: str
    status: str


class JobInfo(TypedDict):
    """Response of a get call."""

    id: str
    status: str
    summary: NotRequired[str | None]


class JobPage(TypedDict):
    """One page of a list call."""

    jobs: list[dict[str, Any]]
    next_cursor: str | None


@dataclass
class LaunchOptions:
    """Per-job options sent with a create call."""

    model: str = "AUTO"
    branch_name: str | None = None
    auto_create_pr: bool = True
    images: list[dict[str, Any]] = field(default_factory=list)
    webhook_url: str | None = None
    webhook_secret: str | None = None


class AgentBackend(Protocol):
    """Operations the engine needs from the agent backend.

    Every method raises ``relay.core.errors.BackendError`` on failure.
    """

    async def create_job(
        self, prompt_text: str, source_ref: str, options: LaunchOptions,
    ) -> CreatedJob: ...

    async def get_job(self, job_id: str) -> JobInfo: ...

    async def list_jobs(self, limit: int = 20, cursor: str | None = None) -> JobPage: ...

    async def delete_job(self, job_id: str) -> dict[str, Any]: ...

    async def add_followup(self, job_id: str, prompt_text: str) -> dict[str, Any]: ...


__all__ = ["AgentBackend", "CreatedJob", "JobInfo", "JobPage", "LaunchOptions"]

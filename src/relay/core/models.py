"""Domain models: task descriptors, job records, and their enums.

Tasks are pending requests for work; jobs are tasks that the agent
backend accepted. Both are validated at construction so the rest of the
engine can trust their fields.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskCategory(str, Enum):
    """Kind of work a task asks for. Drives prompt template and counters."""

    FEATURE = "feature"
    BUG = "bug"
    PERFORMANCE = "performance"
    TESTS = "tests"
    DOCS = "docs"
    REFACTOR = "refactor"
    SECURITY = "security"


class Priority(str, Enum):
    """Task priority. Recorded for reporting; the queue itself is FIFO."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class JobStatus(str, Enum):
    """Lifecycle of a remote job.

    Inherits from ``str`` so records serialize as plain strings.
    """

    CREATING = "CREATING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FINISHED, JobStatus.FAILED)

    @property
    def is_outstanding(self) -> bool:
        return self in (JobStatus.CREATING, JobStatus.RUNNING)

    def can_transition_to(self, new: JobStatus) -> bool:
        """Whether ``self -> new`` respects the monotonic lifecycle.

        Same-state updates are allowed (they only refresh timestamps).
        """
        if new is self:
            return True
        return new in _ALLOWED_TRANSITIONS[self]

    @classmethod
    def from_backend(cls, raw: str | None) -> JobStatus | None:
        """Map a backend status string, or ``None`` if it is unknown."""
        if not raw:
            return None
        return _BACKEND_STATUS_MAP.get(raw.strip().upper())


_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.CREATING: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.FINISHED, JobStatus.FAILED}),
    JobStatus.FINISHED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

_BACKEND_STATUS_MAP: dict[str, JobStatus] = {
    "CREATING": JobStatus.CREATING,
    "RUNNING": JobStatus.RUNNING,
    "FINISHED": JobStatus.FINISHED,
    "COMPLETED": JobStatus.FINISHED,
    "FAILED": JobStatus.FAILED,
    "ERROR": JobStatus.FAILED,
    "EXPIRED": JobStatus.FAILED,
    "CANCELLED": JobStatus.FAILED,
}


@dataclass
class TaskDescriptor:
    """A pending request for work, not yet dispatched as a job.

    Only the retry path mutates a descriptor (``record_failed_attempt``).
    """

    description: str
    category: TaskCategory
    priority: Priority = Priority.MEDIUM
    retry_count: int = 0
    # Catalog section the task came from ("controls", "tabs", ...); selects
    # a prompt preamble and branch prefix, never affects ordering.
    area: str | None = None

    def __post_init__(self) -> None:
        self.description = self.description.strip() if self.description else ""
        if not self.description:
            raise ValueError("task description must not be empty")
        self.category = TaskCategory(self.category)
        self.priority = Priority(self.priority)
        if self.retry_count < 0:
            raise ValueError(f"retry_count must be >= 0, got {self.retry_count}")

    def record_failed_attempt(self) -> int:
        """Bump the retry counter and downgrade priority; return the new count."""
        self.retry_count += 1
        self.priority = Priority.LOW
        return self.retry_count

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "description": self.description,
            "category": self.category.value,
            "priority": self.priority.value,
            "retry_count": self.retry_count,
        }
        if self.area:
            result["area"] = self.area
        return result


@dataclass
class JobRecord:
    """A task the backend accepted, tracked by its backend-assigned id."""

    job_id: str
    task: TaskDescriptor
    status: JobStatus = JobStatus.CREATING
    launched_at: float = field(default_factory=time.time)
    last_updated_at: float = field(default_factory=time.time)
    summary: str | None = None
    branch: str | None = None

    def __post_init__(self) -> None:
        if not self.job_id:
            raise ValueError("job_id must not be empty")
        self.status = JobStatus(self.status)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "launched_at": self.launched_at,
            "last_updated_at": self.last_updated_at,
            "task": self.task.to_dict(),
        }
        if self.summary:
            result["summary"] = self.summary
        if self.branch:
            result["branch"] = self.branch
        return result


__all__ = [
    "JobRecord",
    "JobStatus",
    "Priority",
    "TaskCategory",
    "TaskDescriptor",
]

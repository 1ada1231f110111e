"""Tests for relay.core.models."""

from __future__ import annotations

import pytest

from relay.core.models import JobRecord, JobStatus, Priority, TaskCategory, TaskDescriptor


class TestTaskDescriptor:
    """Construction-time validation and the retry path."""

    def test_defaults(self):
        task = TaskDescriptor("Add login page", TaskCategory.FEATURE)
        assert task.priority is Priority.MEDIUM
        assert task.retry_count == 0
        assert task.area is None

    def test_coerces_string_enums(self):
        task = TaskDescriptor("Fix crash", "bug", priority="high")
        assert task.category is TaskCategory.BUG
        assert task.priority is Priority.HIGH

    @pytest.mark.parametrize("description", ["", "   "])
    def test_rejects_empty_description(self, description: str):
        with pytest.raises(ValueError, match="must not be empty"):
            TaskDescriptor(description, TaskCategory.DOCS)

    def test_rejects_unknown_category(self):
        with pytest.raises(ValueError):
            TaskDescriptor("Something", "gardening")

    def test_rejects_negative_retry_count(self):
        with pytest.raises(ValueError, match="retry_count"):
            TaskDescriptor("Something", TaskCategory.TESTS, retry_count=-1)

    def test_record_failed_attempt_downgrades_priority(self):
        task = TaskDescriptor("Ship it", TaskCategory.FEATURE, priority=Priority.CRITICAL)
        assert task.record_failed_attempt() == 1
        assert task.record_failed_attempt() == 2
        assert task.priority is Priority.LOW

    def test_to_dict_includes_area_only_when_set(self):
        assert "area" not in TaskDescriptor("a", TaskCategory.FEATURE).to_dict()
        data = TaskDescriptor("a", TaskCategory.FEATURE, area="tabs").to_dict()
        assert data == {
            "description": "a",
            "category": "feature",
            "priority": "medium",
            "retry_count": 0,
            "area": "tabs",
        }


class TestJobStatus:
    """Lifecycle transitions and backend status mapping."""

    @pytest.mark.parametrize(
        ("old", "new"),
        [
            (JobStatus.CREATING, JobStatus.RUNNING),
            (JobStatus.CREATING, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.FINISHED),
            (JobStatus.RUNNING, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.RUNNING),
        ],
    )
    def test_allowed_transitions(self, old: JobStatus, new: JobStatus):
        assert old.can_transition_to(new)

    @pytest.mark.parametrize(
        ("old", "new"),
        [
            (JobStatus.CREATING, JobStatus.FINISHED),
            (JobStatus.RUNNING, JobStatus.CREATING),
            (JobStatus.FINISHED, JobStatus.RUNNING),
            (JobStatus.FINISHED, JobStatus.FAILED),
            (JobStatus.FAILED, JobStatus.FINISHED),
            (JobStatus.FAILED, JobStatus.CREATING),
        ],
    )
    def test_rejected_transitions(self, old: JobStatus, new: JobStatus):
        assert not old.can_transition_to(new)

    def test_terminal_and_outstanding(self):
        assert JobStatus.FINISHED.is_terminal and JobStatus.FAILED.is_terminal
        assert JobStatus.CREATING.is_outstanding and JobStatus.RUNNING.is_outstanding
        assert not JobStatus.RUNNING.is_terminal

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("RUNNING", JobStatus.RUNNING),
            ("finished", JobStatus.FINISHED),
            ("COMPLETED", JobStatus.FINISHED),
            ("ERROR", JobStatus.FAILED),
            ("EXPIRED", JobStatus.FAILED),
            ("CANCELLED", JobStatus.FAILED),
            ("PAUSED", None),
            ("", None),
            (None, None),
        ],
    )
    def test_from_backend(self, raw: str | None, expected: JobStatus | None):
        assert JobStatus.from_backend(raw) is expected


class TestJobRecord:
    """JobRecord validation and serialization."""

    def test_rejects_empty_id(self):
        with pytest.raises(ValueError):
            JobRecord(job_id="", task=TaskDescriptor("x", TaskCategory.FEATURE))

    def test_to_dict(self):
        record = JobRecord(
            job_id="bc-1",
            task=TaskDescriptor("x", TaskCategory.BUG),
            status="RUNNING",
            launched_at=1.0,
            last_updated_at=2.0,
            branch="fix/x-1",
        )
        data = record.to_dict()
        assert data["status"] == "RUNNING"
        assert data["branch"] == "fix/x-1"
        assert data["task"]["category"] == "bug"
        assert "summary" not in data

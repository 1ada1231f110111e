"""Tests for relay.orchestrator.registry."""

from __future__ import annotations

import pytest

from relay.core.models import JobStatus, TaskCategory, TaskDescriptor
from relay.orchestrator.registry import JobRegistry


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


def _task(name: str = "task") -> TaskDescriptor:
    return TaskDescriptor(name, TaskCategory.FEATURE)


class TestRegister:
    """Registration and lookup."""

    @pytest.mark.asyncio
    async def test_register_and_get(self, registry: JobRegistry):
        record = await registry.register("bc-1", _task(), branch="feature/x")
        assert record.status is JobStatus.CREATING
        assert record.launched_at == record.last_updated_at
        assert await registry.get("bc-1") is record
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, registry: JobRegistry):
        await registry.register("bc-1", _task("a"))
        with pytest.raises(ValueError, match="already registered"):
            await registry.register("bc-1", _task("b"))
        assert (await registry.get("bc-1")).task.description == "a"

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, registry: JobRegistry):
        assert await registry.get("missing") is None


class TestUpdateStatus:
    """Monotonic status updates."""

    @pytest.mark.asyncio
    async def test_forward_transition_applies(self, registry: JobRegistry):
        record = await registry.register("bc-1", _task())
        assert await registry.update_status("bc-1", JobStatus.RUNNING)
        assert await registry.update_status("bc-1", JobStatus.FINISHED, summary="done")
        assert record.status is JobStatus.FINISHED
        assert record.summary == "done"

    @pytest.mark.asyncio
    async def test_no_transition_out_of_terminal(self, registry: JobRegistry):
        record = await registry.register("bc-1", _task())
        await registry.update_status("bc-1", JobStatus.FAILED)

        for status in (JobStatus.CREATING, JobStatus.RUNNING, JobStatus.FINISHED):
            assert not await registry.update_status("bc-1", status)
        assert record.status is JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_creating_cannot_skip_to_finished(self, registry: JobRegistry):
        record = await registry.register("bc-1", _task())
        assert not await registry.update_status("bc-1", JobStatus.FINISHED)
        assert record.status is JobStatus.CREATING

    @pytest.mark.asyncio
    async def test_backwards_transition_ignored(self, registry: JobRegistry):
        record = await registry.register("bc-1", _task())
        await registry.update_status("bc-1", JobStatus.RUNNING)
        assert not await registry.update_status("bc-1", JobStatus.CREATING)
        assert record.status is JobStatus.RUNNING

    @pytest.mark.asyncio
    async def test_same_state_refreshes_timestamp(self, registry: JobRegistry):
        record = await registry.register("bc-1", _task())
        record.last_updated_at = 0.0
        assert not await registry.update_status("bc-1", JobStatus.CREATING)
        assert record.last_updated_at > 0.0

    @pytest.mark.asyncio
    async def test_unknown_job(self, registry: JobRegistry):
        assert not await registry.update_status("missing", JobStatus.RUNNING)


class TestQueries:
    """Outstanding filter, removal and clear."""

    @pytest.mark.asyncio
    async def test_all_outstanding(self, registry: JobRegistry):
        for job_id in ("bc-1", "bc-2", "bc-3"):
            await registry.register(job_id, _task(job_id))
        await registry.update_status("bc-2", JobStatus.RUNNING)
        await registry.update_status("bc-3", JobStatus.RUNNING)
        await registry.update_status("bc-3", JobStatus.FINISHED)

        outstanding = await registry.all_outstanding()
        assert [r.job_id for r in outstanding] == ["bc-1", "bc-2"]

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, registry: JobRegistry):
        await registry.register("bc-1", _task())
        await registry.register("bc-2", _task())

        removed = await registry.remove("bc-1")
        assert removed is not None and removed.job_id == "bc-1"
        assert await registry.remove("bc-1") is None
        assert await registry.clear() == 1
        assert await registry.records() == []

"""Dispatcher: drains the task queue into remote jobs.

Two concurrency modes:

- **sequential**: pop one task, launch it, wait for the create call,
  pause ``sequential_delay_seconds``, repeat until the queue is empty.
- **stagger**: take a snapshot of the whole queue and launch every task
  concurrently, task ``i`` starting ``i * stagger_delay_seconds`` after
  the drain began. A failing launch never aborts the rest of the batch.

A failed launch bumps the task's retry count and puts it back at the
tail of the queue until ``max_retries`` requeues have been spent; the
next failure drops it and records a permanent failure. A job the
backend created but the registry could not record is dropped at once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from relay.backend.base import AgentBackend, LaunchOptions
from relay.core.config import ConcurrencyMode, DispatchConfig
from relay.core.errors import (
    ConfigurationError,
    ExhaustedRetryError,
    LaunchError,
    RegistrationError,
)
from relay.core.logging import get_logger
from relay.core.models import JobRecord, JobStatus, TaskDescriptor
from relay.orchestrator.queue import TaskQueue
from relay.orchestrator.registry import JobRegistry
from relay.orchestrator.stats import DispatchCounters
from relay.prompts.templating import PromptBuilder

_logger = get_logger("orchestrator.dispatcher")

Gate = Callable[[], bool]


@dataclass
class DrainReport:
    """Outcome of one ``Dispatcher.drain`` call."""

    mode: ConcurrencyMode
    launched: int = 0
    requeued: int = 0
    dropped: int = 0
    job_ids: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def attempted(self) -> int:
        return self.launched + self.requeued + self.dropped


class Dispatcher:
    """Launches queued tasks on the agent backend and registers the jobs.

    Args:
        backend: Anything implementing ``AgentBackend``.
        registry: Where accepted jobs are recorded.
        counters: Launch/retry/drop counters read by the statistics aggregator.
        config: Concurrency mode, delays and retry bound. Replaced by the
            orchestrator when the operating mode changes.
        prompt_builder: Turns a task into prompt text and a branch name.
        source_ref: Git ref every job starts from.
        model: Model requested for each job.
        auto_create_pr: Ask the backend to open a pull request per job.
    """

    def __init__(
        self,
        backend: AgentBackend,
        registry: JobRegistry,
        counters: DispatchCounters,
        config: DispatchConfig | None = None,
        prompt_builder: PromptBuilder | None = None,
        *,
        source_ref: str = "main",
        model: str = "AUTO",
        auto_create_pr: bool = True,
    ) -> None:
        self.backend = backend
        self.registry = registry
        self.counters = counters
        self.config = config or DispatchConfig()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.source_ref = source_ref
        self.model = model
        self.auto_create_pr = auto_create_pr

    # ─── Public API ────────────────────────────────────────────────

    async def drain(
        self,
        queue: TaskQueue,
        mode: ConcurrencyMode | None = None,
        gate: Gate | None = None,
    ) -> DrainReport:
        """Launch queued tasks until the queue is empty (or ``gate`` closes).

        Args:
            queue: Queue to drain. Failed tasks are requeued onto it.
            mode: Overrides ``config.concurrency`` for this call.
            gate: Checked before each launch; once it returns False no
                further task is launched. Launches already started finish.

        Raises:
            ConfigurationError: Propagated from the backend layer.
        """
        mode = ConcurrencyMode(mode or self.config.concurrency)
        report = DrainReport(mode=mode)
        start = time.monotonic()
        _logger.debug("dispatcher.drain_started", mode=mode.value, queued=queue.size())

        if mode is ConcurrencyMode.STAGGER:
            await self._drain_stagger(queue, report, gate)
        else:
            await self._drain_sequential(queue, report, gate)

        report.duration_seconds = round(time.monotonic() - start, 3)
        if report.attempted:
            _logger.info(
                "dispatcher.drain_complete",
                mode=mode.value,
                launched=report.launched,
                requeued=report.requeued,
                dropped=report.dropped,
                duration_seconds=report.duration_seconds,
            )
        return report

    async def launch(self, task: TaskDescriptor) -> JobRecord:
        """Create one remote job for ``task`` and register it.

        Raises:
            LaunchError: If the backend rejected or failed the create call.
            RegistrationError: If the created job could not be recorded
                (missing or duplicate id).
            ConfigurationError: Propagated unchanged.
        """
        branch = self.prompt_builder.branch_name(task)
        options = LaunchOptions(
            model=self.model,
            branch_name=branch,
            auto_create_pr=self.auto_create_pr,
        )
        try:
            prompt = self.prompt_builder.build_prompt(task)
            created = await self.backend.create_job(prompt, self.source_ref, options)
        except ConfigurationError:
            raise
        except Exception as e:
            raise LaunchError(task.description, e) from e

        job_id = created.get("id")
        status = JobStatus.from_backend(created.get("status")) or JobStatus.CREATING
        try:
            if not job_id:
                raise ValueError("create response has no job id")
            record = await self.registry.register(job_id, task, status=status, branch=branch)
        except ValueError as e:
            raise RegistrationError(task.description, job_id, e) from e
        await self.counters.record_launch(task.category)
        _logger.info(
            "dispatcher.job_launched",
            job_id=record.job_id,
            category=task.category.value,
            retry_count=task.retry_count,
            branch=branch,
        )
        return record

    # ─── Drain strategies ──────────────────────────────────────────

    async def _drain_sequential(
        self, queue: TaskQueue, report: DrainReport, gate: Gate | None,
    ) -> None:
        while gate is None or gate():
            task = await queue.dequeue()
            if task is None:
                return
            await self._dispatch_one(task, queue, report)
            if queue.size() == 0:
                return
            await asyncio.sleep(self.config.sequential_delay_seconds)

    async def _drain_stagger(
        self, queue: TaskQueue, report: DrainReport, gate: Gate | None,
    ) -> None:
        snapshot = await queue.take_all()
        if not snapshot:
            return
        delay = self.config.stagger_delay_seconds

        async def staggered(index: int, task: TaskDescriptor) -> None:
            if index:
                await asyncio.sleep(index * delay)
            if gate is not None and not gate():
                # Never launched: hand it back untouched.
                await queue.requeue(task)
                return
            await self._dispatch_one(task, queue, report)

        results = await asyncio.gather(
            *(staggered(i, task) for i, task in enumerate(snapshot)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, ConfigurationError):
                raise result
        for result in results:
            if isinstance(result, BaseException):
                _logger.error(
                    "dispatcher.stagger_task_error",
                    error_type=type(result).__name__,
                    error=str(result),
                )

    # ─── Retry policy ──────────────────────────────────────────────

    async def _dispatch_one(
        self, task: TaskDescriptor, queue: TaskQueue, report: DrainReport,
    ) -> None:
        try:
            record = await self.launch(task)
        except LaunchError as e:
            await self._handle_launch_failure(task, e, queue, report)
            return
        except RegistrationError as e:
            await self._handle_registration_failure(task, e, report)
            return
        report.launched += 1
        report.job_ids.append(record.job_id)

    async def _handle_launch_failure(
        self,
        task: TaskDescriptor,
        error: LaunchError,
        queue: TaskQueue,
        report: DrainReport,
    ) -> None:
        attempts = task.record_failed_attempt()
        max_retries = self.config.max_retries
        if attempts <= max_retries:
            await queue.requeue(task)
            await self.counters.record_retry()
            report.requeued += 1
            _logger.warning(
                "dispatcher.launch_failed",
                description=task.description,
                category=task.category.value,
                retry_count=attempts,
                max_retries=max_retries,
                error=str(error.cause),
            )
            return

        exhausted = ExhaustedRetryError(task.description, attempts, str(error.cause))
        await self.counters.record_permanent_failure(exhausted, task.category)
        report.dropped += 1
        _logger.error(
            "dispatcher.task_dropped",
            description=task.description,
            category=task.category.value,
            attempts=attempts,
            error=str(error.cause),
        )

    async def _handle_registration_failure(
        self,
        task: TaskDescriptor,
        error: RegistrationError,
        report: DrainReport,
    ) -> None:
        # The remote job may already exist; relaunching would duplicate it.
        attempts = task.retry_count + 1
        exhausted = ExhaustedRetryError(task.description, attempts, str(error))
        await self.counters.record_permanent_failure(exhausted, task.category)
        report.dropped += 1
        _logger.error(
            "dispatcher.registration_failed",
            job_id=error.job_id,
            description=task.description,
            category=task.category.value,
            error=str(error.cause),
        )


__all__ = ["DrainReport", "Dispatcher", "Gate"]

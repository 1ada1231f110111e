"""Orchestrator: wires the engine together and exposes the control surface.

``Orchestrator`` owns one queue, registry, dispatcher, poller and
scheduler, built from a ``RelayConfig``. Control calls return Pydantic
models; ``status()`` and ``export_history()`` only read local state, so
they keep answering while the backend is unreachable.

Example::

    async with Orchestrator(RelayConfig.from_yaml(path)) as orch:
        await orch.enable("aggressive")
        ...
        report = await orch.status()
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from relay import __version__
from relay.backend.base import AgentBackend
from relay.backend.client import AgentBackendClient
from relay.core.config import OperatingMode, RelayConfig
from relay.core.logging import get_logger
from relay.orchestrator.dispatcher import Dispatcher
from relay.orchestrator.generator import TaskCatalog, TaskGenerator, satisfied_by_keys
from relay.orchestrator.poller import StatusPoller
from relay.orchestrator.queue import TaskQueue
from relay.orchestrator.registry import JobRegistry
from relay.orchestrator.scheduler import GateFlags, Scheduler
from relay.orchestrator.stats import DispatchCounters, StatisticsAggregator
from relay.orchestrator.types import (
    ControlResponse,
    HistoryExport,
    LoopStatus,
    StatusReport,
)
from relay.prompts.templating import PromptBuilder

_logger = get_logger("orchestrator.controller")


class Orchestrator:
    """Facade over the task orchestration engine.

    Args:
        config: Relay configuration. Defaults to the stock presets.
        backend: Agent backend to use. When omitted an
            ``AgentBackendClient`` is built from ``config.backend``, which
            raises ``ConfigurationError`` if the credential is missing.
        catalog: Task catalog. When omitted it is loaded from
            ``config.catalog_path`` (or the bundled default).
        prompt_builder: Prompt templating; defaults to ``PromptBuilder``
            with ``config.project_name``.
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        backend: AgentBackend | None = None,
        catalog: TaskCatalog | None = None,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self.config = config or RelayConfig()
        self._owns_backend = backend is None
        self.backend: AgentBackend = (
            backend if backend is not None
            else AgentBackendClient.from_config(self.config.backend)
        )
        catalog = catalog or TaskCatalog.load(self.config.catalog_path)
        satisfied = (
            satisfied_by_keys(self.config.satisfied_keys)
            if self.config.satisfied_keys else None
        )

        self.gates = GateFlags()
        self.queue = TaskQueue()
        self.registry = JobRegistry()
        self.counters = DispatchCounters()
        self.generator = TaskGenerator(catalog, satisfied=satisfied)
        self.dispatcher = Dispatcher(
            self.backend,
            self.registry,
            self.counters,
            self.config.baseline.dispatch,
            prompt_builder or PromptBuilder(project=self.config.project_name),
            source_ref=self.config.backend.ref,
            model=self.config.backend.model,
            auto_create_pr=self.config.backend.auto_create_pr,
        )
        self.poller = StatusPoller(self.backend, self.registry)
        self.stats = StatisticsAggregator(self.registry, self.queue, self.counters)
        self.scheduler = Scheduler(
            self.config,
            self.gates,
            self.generator,
            self.queue,
            self.dispatcher,
            self.poller,
            auto_save=self.auto_save if self.config.auto_save_path else None,
        )
        self._save_lock = asyncio.Lock()

    async def __aenter__(self) -> Orchestrator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ─── Control surface ───────────────────────────────────────────

    async def enable(self, mode: OperatingMode | str = OperatingMode.BASELINE) -> ControlResponse:
        """Start the scheduler in ``mode``, switching modes if already running."""
        mode = OperatingMode(mode)
        if self.scheduler.is_running:
            if self.scheduler.mode is mode:
                return ControlResponse(
                    action="enable",
                    status="noop",
                    message=f"{mode.value} mode is already running",
                    mode=mode,
                    loops=[loop.name for loop in self.scheduler.loops()],
                )
            _logger.info(
                "controller.mode_switch",
                from_mode=self.scheduler.mode.value if self.scheduler.mode else None,
                to_mode=mode.value,
            )
            await self.scheduler.stop()

        loops = self.scheduler.start(mode)
        mode_config = self.config.mode(mode)
        return ControlResponse(
            action="enable",
            status="ok",
            message=f"{mode.value} mode enabled",
            mode=mode,
            loops=loops,
            details={
                "concurrency": mode_config.dispatch.concurrency.value,
                "max_retries": mode_config.dispatch.max_retries,
            },
        )

    async def disable(self) -> ControlResponse:
        """Close every gate and wait for the loops to stop."""
        mode = self.scheduler.mode
        if not self.scheduler.is_running:
            return ControlResponse(action="disable", status="noop", message="not running", mode=mode)
        await self.scheduler.stop()
        return ControlResponse(action="disable", status="ok", message="scheduler stopped", mode=mode)

    async def force_cycle(self, sections: Iterable[str] | None = None) -> ControlResponse:
        """Run one generate-and-drain cycle now, outside any loop.

        Uses the active mode, or baseline when stopped.
        """
        mode = self.scheduler.mode or OperatingMode.BASELINE
        report = await self.scheduler.run_cycle(mode, sections)
        return ControlResponse(
            action="force_cycle",
            status="ok",
            message=f"cycle executed: {report.launched} launched",
            mode=mode,
            details={
                "launched": report.launched,
                "requeued": report.requeued,
                "dropped": report.dropped,
                "job_ids": report.job_ids,
            },
        )

    async def clear_queue(self) -> ControlResponse:
        removed = await self.queue.clear()
        return ControlResponse(
            action="clear_queue",
            status="ok" if removed else "noop",
            message=f"removed {removed} pending task(s)",
            mode=self.scheduler.mode,
            details={"removed": removed},
        )

    async def reset(self) -> ControlResponse:
        """Stop everything and forget the queue, job history and counters."""
        if self.scheduler.is_running:
            await self.scheduler.stop()
        removed_tasks = await self.queue.clear()
        removed_jobs = await self.registry.clear()
        await self.counters.reset()
        _logger.info("controller.reset", removed_tasks=removed_tasks, removed_jobs=removed_jobs)
        return ControlResponse(
            action="reset",
            status="ok",
            message="engine reset",
            details={"removed_tasks": removed_tasks, "removed_jobs": removed_jobs},
        )

    async def status(self) -> StatusReport:
        fatal = self.scheduler.fatal_error
        return StatusReport(
            enabled=self.scheduler.is_running,
            mode=self.scheduler.mode,
            gates=self.gates.snapshot(),
            loops=[
                LoopStatus(
                    name=loop.name,
                    state=loop.state.value,
                    cadence_seconds=loop.cadence_seconds,
                    gates=list(loop.gates),
                    ticks=loop.ticks,
                    errors=loop.errors,
                    last_tick_at=loop.last_tick_at,
                    last_error=loop.last_error,
                )
                for loop in self.scheduler.loops()
            ],
            stats=await self.stats.snapshot(),
            fatal_error=str(fatal) if fatal else None,
        )

    async def export_history(self) -> HistoryExport:
        records = await self.registry.records()
        pending = await self.queue.pending()
        return HistoryExport(
            version=__version__,
            exported_at=datetime.now(UTC).isoformat(),
            mode=self.scheduler.mode,
            stats=await self.stats.snapshot(),
            jobs=[r.to_dict() for r in records],
            pending_tasks=[t.to_dict() for t in pending],
            dropped_tasks=[
                {
                    "description": d.description,
                    "category": d.category,
                    "attempts": d.attempts,
                    "last_error": d.last_error,
                    "dropped_at": d.dropped_at,
                }
                for d in self.counters.dropped
            ],
        )

    # ─── Lifecycle ─────────────────────────────────────────────────

    async def auto_save(self, path: Path | None = None) -> Path:
        """Write ``export_history()`` as JSON to ``path`` (or ``auto_save_path``).

        Raises:
            ValueError: If no path is given or configured.
        """
        target = path or self.config.auto_save_path
        if target is None:
            raise ValueError("no auto-save path configured")
        target = Path(target)
        export = await self.export_history()
        async with self._save_lock:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_file = target.with_suffix(target.suffix + ".tmp")
            with open(temp_file, "w") as f:
                json.dump(export.model_dump(mode="json"), f, indent=2)
            temp_file.replace(target)
        _logger.info("controller.history_saved", path=str(target), jobs=len(export.jobs))
        return target

    async def run(
        self,
        mode: OperatingMode | str = OperatingMode.BASELINE,
        duration: float | None = None,
    ) -> None:
        """Enable ``mode`` and block until the loops stop or ``duration`` elapses.

        Raises:
            ConfigurationError: If a loop halted the scheduler.
        """
        await self.enable(mode)
        try:
            if not await self.scheduler.wait(timeout=duration):
                _logger.info("controller.duration_elapsed", duration_seconds=duration)
        finally:
            await self.scheduler.stop()

    async def aclose(self) -> None:
        """Stop the scheduler and release the backend client if we built it."""
        await self.scheduler.stop()
        if self._owns_backend and isinstance(self.backend, AgentBackendClient):
            await self.backend.aclose()


__all__ = ["Orchestrator"]

"""Scheduler: gate flags and timed cadence loops.

Each ``CadenceLoop`` is an independent asyncio task that runs its body
every ``cadence_seconds`` while all of its gate flags are open. Gates
are checked before the body and again after it; the inter-tick sleep
wakes up as soon as a gate changes, so closing a gate stops the loop
without waiting out the cadence. An in-flight body is never cancelled.

``Scheduler.start(mode)`` builds the development loops of the mode plus
the status-poll and auto-save loops, all sharing one queue, registry
and dispatcher. Errors in a loop body are logged and the loop carries
on; a ``ConfigurationError`` closes every gate and is re-raised from
``Scheduler.wait()``.

Lock ordering: TaskQueue._lock, then JobRegistry._lock, then
DispatchCounters._lock. No code path holds two of them at once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from relay.core.config import (
    DEFAULT_GATES,
    GATE_AGGRESSIVE,
    GATE_AUTO_SAVE,
    GATE_AUTONOMOUS,
    GATE_SECURITY_SCAN,
    OperatingMode,
    RelayConfig,
)
from relay.core.errors import ConfigurationError
from relay.core.logging import get_logger
from relay.orchestrator.dispatcher import Dispatcher, DrainReport
from relay.orchestrator.generator import TaskGenerator
from relay.orchestrator.poller import StatusPoller
from relay.orchestrator.queue import TaskQueue

_logger = get_logger("orchestrator.scheduler")

STATUS_POLL_LOOP = "status-poll"
AUTO_SAVE_LOOP = "auto-save"


# ─── Gate flags ────────────────────────────────────────────────────


class GateFlags:
    """Named boolean flags shared by reference between loops.

    Unknown flags read as closed. Any change wakes every loop sleeping
    in ``sleep`` so it can re-check its own gates.
    """

    def __init__(self, opened: Iterable[str] = ()) -> None:
        self._flags: dict[str, bool] = dict.fromkeys(opened, True)
        self._waiters: set[asyncio.Future[None]] = set()

    def is_open(self, name: str) -> bool:
        return self._flags.get(name, False)

    def all_open(self, names: Iterable[str]) -> bool:
        return all(self._flags.get(name, False) for name in names)

    def set(self, name: str, value: bool) -> None:
        if self._flags.get(name) is value:
            return
        self._flags[name] = value
        self._notify()

    def open(self, *names: str) -> None:
        for name in names:
            self.set(name, True)

    def close(self, *names: str) -> None:
        for name in names:
            self.set(name, False)

    def close_all(self) -> None:
        self.close(*self._flags)

    def snapshot(self) -> dict[str, bool]:
        return dict(sorted(self._flags.items()))

    async def sleep(self, seconds: float, names: Iterable[str]) -> bool:
        """Sleep up to ``seconds`` unless one of ``names`` closes first.

        Returns:
            Whether all ``names`` are still open.
        """
        names = tuple(names)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds
        while self.all_open(names):
            remaining = deadline - loop.time()
            if remaining <= 0:
                return True
            waiter: asyncio.Future[None] = loop.create_future()
            self._waiters.add(waiter)
            try:
                await asyncio.wait({waiter}, timeout=remaining)
            finally:
                self._waiters.discard(waiter)
                if not waiter.done():
                    waiter.cancel()
        return False

    def _notify(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()


# ─── Cadence loops ─────────────────────────────────────────────────


class LoopState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class LoopStats:
    """Counters for one loop, exposed through status reports."""

    name: str
    cadence_seconds: float
    gates: tuple[str, ...]
    state: LoopState = LoopState.STOPPED
    ticks: int = 0
    errors: int = 0
    last_tick_at: float | None = None
    last_error: str | None = None


class CadenceLoop:
    """A body run every ``cadence_seconds`` while its gates are open."""

    def __init__(
        self,
        name: str,
        body: Callable[[], Awaitable[Any]],
        cadence_seconds: float,
        gates: GateFlags,
        gate_names: Iterable[str],
        *,
        initial_delay_seconds: float = 0.0,
    ) -> None:
        self.name = name
        self._body = body
        self._gates = gates
        self._initial_delay = initial_delay_seconds
        self.stats = LoopStats(
            name=name,
            cadence_seconds=cadence_seconds,
            gates=tuple(gate_names),
        )
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> LoopState:
        return self.stats.state

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def gates_open(self) -> bool:
        return self._gates.all_open(self.stats.gates)

    def start(self) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            raise RuntimeError(f"loop {self.name} is already running")
        self.stats.state = LoopState.RUNNING
        self._task = asyncio.create_task(self._run(), name=f"relay-loop-{self.name}")
        return self._task

    async def _run(self) -> None:
        log = _logger.bind(loop=self.name)
        log.info("loop.started", cadence_seconds=self.stats.cadence_seconds)
        try:
            if not await self._gates.sleep(self._initial_delay, self.stats.gates):
                return
            while self.gates_open():
                self.stats.ticks += 1
                self.stats.last_tick_at = time.time()
                try:
                    await self._body()
                except ConfigurationError:
                    raise
                except Exception as e:
                    self.stats.errors += 1
                    self.stats.last_error = f"{type(e).__name__}: {e}"
                    log.exception("loop.body_failed", tick=self.stats.ticks, error=str(e))
                if not await self._gates.sleep(self.stats.cadence_seconds, self.stats.gates):
                    break
        finally:
            self.stats.state = LoopState.STOPPED
            log.info("loop.stopped", ticks=self.stats.ticks, errors=self.stats.errors)


# ─── Scheduler ─────────────────────────────────────────────────────


class Scheduler:
    """Owns the loop set of the active operating mode.

    Args:
        config: Mode presets (loops, dispatch policy, cadences).
        gates: Shared gate flags.
        generator: Source of tasks for each development tick.
        queue: Queue shared by every loop.
        dispatcher: Drains the queue; its dispatch policy is switched on start.
        poller: Run by the status-poll loop.
        auto_save: Coroutine function run by the auto-save loop; no
            auto-save loop is created when None.
    """

    def __init__(
        self,
        config: RelayConfig,
        gates: GateFlags,
        generator: TaskGenerator,
        queue: TaskQueue,
        dispatcher: Dispatcher,
        poller: StatusPoller,
        auto_save: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self.config = config
        self.gates = gates
        self.generator = generator
        self.queue = queue
        self.dispatcher = dispatcher
        self.poller = poller
        self._auto_save = auto_save
        self._loops: dict[str, CadenceLoop] = {}
        self._mode: OperatingMode | None = None
        self._fatal: ConfigurationError | None = None

    @property
    def mode(self) -> OperatingMode | None:
        return self._mode

    @property
    def is_running(self) -> bool:
        return any(loop.state is LoopState.RUNNING for loop in self._loops.values())

    @property
    def fatal_error(self) -> ConfigurationError | None:
        return self._fatal

    def loops(self) -> list[LoopStats]:
        return [loop.stats for loop in self._loops.values()]

    def start(self, mode: OperatingMode | str) -> list[str]:
        """Open the mode's gates and start its loops; return the loop names.

        Raises:
            RuntimeError: If loops from a previous start are still running.
        """
        if self.is_running:
            raise RuntimeError("scheduler is already running; stop it first")
        mode = OperatingMode(mode)
        mode_config = self.config.mode(mode)
        self.dispatcher.config = mode_config.dispatch
        self._mode = mode
        self._fatal = None
        self._loops = {}

        self.gates.open(*DEFAULT_GATES)
        if mode is OperatingMode.AGGRESSIVE:
            self.gates.open(GATE_AGGRESSIVE, GATE_SECURITY_SCAN)
        else:
            self.gates.close(GATE_AGGRESSIVE, GATE_SECURITY_SCAN)

        for loop_config in mode_config.loops:
            gate_names = tuple(loop_config.gates)
            self._add_loop(
                CadenceLoop(
                    loop_config.name,
                    self._cycle_body(mode, loop_config.sections, gate_names),
                    loop_config.cadence_seconds,
                    self.gates,
                    gate_names,
                    initial_delay_seconds=loop_config.initial_delay_seconds,
                )
            )

        self._add_loop(
            CadenceLoop(
                STATUS_POLL_LOOP,
                self.poller.poll_once,
                mode_config.poll_interval_seconds,
                self.gates,
                (GATE_AUTONOMOUS,),
                initial_delay_seconds=mode_config.poll_interval_seconds,
            )
        )
        if self._auto_save is not None:
            self.gates.open(GATE_AUTO_SAVE)
            self._add_loop(
                CadenceLoop(
                    AUTO_SAVE_LOOP,
                    self._auto_save,
                    mode_config.auto_save_interval_seconds,
                    self.gates,
                    (GATE_AUTONOMOUS, GATE_AUTO_SAVE),
                    initial_delay_seconds=mode_config.auto_save_interval_seconds,
                )
            )

        for loop in self._loops.values():
            task = loop.start()
            task.add_done_callback(self._on_loop_done)

        _logger.info(
            "scheduler.started",
            mode=mode.value,
            loops=list(self._loops),
            concurrency=mode_config.dispatch.concurrency.value,
            max_retries=mode_config.dispatch.max_retries,
        )
        return list(self._loops)

    async def stop(self, timeout: float | None = None) -> None:
        """Close every gate and wait for the loops to wind down.

        In-flight bodies finish first. Loops still running after
        ``timeout`` seconds are cancelled.
        """
        self.gates.close_all()
        tasks = self._tasks()
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            _logger.warning("scheduler.loop_cancelled", task_name=task.get_name())
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        _logger.info("scheduler.stopped", mode=self._mode.value if self._mode else None)

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until every loop has stopped, or ``timeout`` seconds.

        Never cancels the loops.

        Returns:
            True if every loop stopped, False on timeout.

        Raises:
            ConfigurationError: If a loop halted the scheduler with one.
        """
        tasks = self._tasks()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                return False
        if self._fatal is not None:
            raise self._fatal
        return True

    async def run_cycle(
        self,
        mode: OperatingMode | str,
        sections: Iterable[str] | None = None,
        gate_names: Iterable[str] | None = None,
    ) -> DrainReport:
        """Generate tasks for ``sections``, enqueue them and drain the queue.

        With ``gate_names`` the drain stops launching once any of them closes.
        """
        tasks = self.generator.generate(mode, sections)
        await self.queue.enqueue(tasks)
        gate = None
        if gate_names is not None:
            names = tuple(gate_names)

            def gate() -> bool:
                return self.gates.all_open(names)

        return await self.dispatcher.drain(self.queue, gate=gate)

    # ─── Internals ─────────────────────────────────────────────────

    def _cycle_body(
        self,
        mode: OperatingMode,
        sections: list[str],
        gate_names: tuple[str, ...],
    ) -> Callable[[], Awaitable[DrainReport]]:
        async def body() -> DrainReport:
            return await self.run_cycle(mode, sections or None, gate_names)

        return body

    def _add_loop(self, loop: CadenceLoop) -> None:
        self._loops[loop.name] = loop

    def _tasks(self) -> list[asyncio.Task[None]]:
        return [loop.task for loop in self._loops.values() if loop.task is not None]

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, ConfigurationError):
            # Every loop shares the backend credential; stop them all.
            if self._fatal is None:
                self._fatal = exc
                _logger.error("scheduler.halted", task_name=task.get_name(), reason=str(exc))
                self.gates.close_all()
            return
        # Only this loop stops; the others keep running.
        _logger.error(
            "scheduler.loop_died",
            task_name=task.get_name(),
            error_type=type(exc).__name__,
            error=str(exc),
        )


__all__ = [
    "AUTO_SAVE_LOOP",
    "CadenceLoop",
    "GateFlags",
    "LoopState",
    "LoopStats",
    "STATUS_POLL_LOOP",
    "Scheduler",
]

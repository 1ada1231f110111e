"""Response models of the orchestrator control surface.

All models are Pydantic v2 ``BaseModel`` so every control call returns
something that serializes straight to JSON (``model_dump_json``).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from relay.core.config import OperatingMode
from relay.orchestrator.stats import StatsSnapshot


class ControlResponse(BaseModel):
    """Result of enable/disable/force-cycle/clear/reset."""

    action: Literal["enable", "disable", "force_cycle", "clear_queue", "reset"]
    status: Literal["ok", "noop"] = Field(
        description="noop when the call found nothing to do (e.g. disable while stopped)",
    )
    message: str
    mode: OperatingMode | None = None
    loops: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class LoopStatus(BaseModel):
    """One scheduler loop as reported by ``status()``."""

    name: str
    state: Literal["running", "stopped"]
    cadence_seconds: float
    gates: list[str]
    ticks: int
    errors: int
    last_tick_at: float | None = None
    last_error: str | None = None


class StatusReport(BaseModel):
    """Local-state view of the engine; never touches the backend."""

    enabled: bool
    mode: OperatingMode | None = None
    gates: dict[str, bool]
    loops: list[LoopStatus]
    stats: StatsSnapshot
    fatal_error: str | None = None


class HistoryExport(BaseModel):
    """Full history document, also written by the auto-save loop."""

    version: str
    exported_at: str = Field(description="ISO-8601 UTC timestamp")
    mode: OperatingMode | None = None
    stats: StatsSnapshot
    jobs: list[dict[str, Any]]
    pending_tasks: list[dict[str, Any]]
    dropped_tasks: list[dict[str, Any]]


__all__ = ["ControlResponse", "HistoryExport", "LoopStatus", "StatusReport"]

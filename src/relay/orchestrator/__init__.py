"""Task orchestration engine: queue, dispatcher, poller, scheduler and control surface."""

from relay.orchestrator.controller import Orchestrator
from relay.orchestrator.dispatcher import Dispatcher, DrainReport
from relay.orchestrator.generator import CatalogEntry, TaskCatalog, TaskGenerator
from relay.orchestrator.poller import PollReport, StatusPoller
from relay.orchestrator.queue import TaskQueue
from relay.orchestrator.registry import JobRegistry
from relay.orchestrator.scheduler import CadenceLoop, GateFlags, LoopState, Scheduler
from relay.orchestrator.stats import DispatchCounters, StatisticsAggregator, StatsSnapshot
from relay.orchestrator.types import ControlResponse, HistoryExport, StatusReport

__all__ = [
    "CadenceLoop",
    "CatalogEntry",
    "ControlResponse",
    "DispatchCounters",
    "Dispatcher",
    "DrainReport",
    "GateFlags",
    "HistoryExport",
    "JobRegistry",
    "LoopState",
    "Orchestrator",
    "PollReport",
    "Scheduler",
    "StatisticsAggregator",
    "StatsSnapshot",
    "StatusPoller",
    "StatusReport",
    "TaskCatalog",
    "TaskGenerator",
    "TaskQueue",
]

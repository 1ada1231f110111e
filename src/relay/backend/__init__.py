"""Agent backend client and the contract the engine depends on."""

from relay.backend.base import AgentBackend, CreatedJob, JobInfo, JobPage, LaunchOptions
from relay.backend.client import AgentBackendClient

__all__ = [
    "AgentBackend",
    "AgentBackendClient",
    "CreatedJob",
    "JobInfo",
    "JobPage",
    "LaunchOptions",
]

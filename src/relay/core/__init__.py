"""Core domain models, configuration, errors and logging."""

from relay.core.config import (
    BackendConfig,
    ConcurrencyMode,
    DispatchConfig,
    LoopConfig,
    ModeConfig,
    OperatingMode,
    RelayConfig,
)
from relay.core.errors import (
    BackendError,
    ConfigurationError,
    ExhaustedRetryError,
    LaunchError,
    PollError,
    RegistrationError,
    RelayError,
)
from relay.core.models import JobRecord, JobStatus, Priority, TaskCategory, TaskDescriptor

__all__ = [
    "BackendConfig",
    "BackendError",
    "ConcurrencyMode",
    "ConfigurationError",
    "DispatchConfig",
    "ExhaustedRetryError",
    "JobRecord",
    "JobStatus",
    "LaunchError",
    "LoopConfig",
    "ModeConfig",
    "OperatingMode",
    "PollError",
    "Priority",
    "RegistrationError",
    "RelayConfig",
    "RelayError",
    "TaskCategory",
    "TaskDescriptor",
]

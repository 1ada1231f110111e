"""Configuration models for Relay.

Pydantic v2 models for the backend connection, dispatch policy, and the
scheduling loops of each operating mode. ``RelayConfig.from_yaml`` loads
the whole tree from a YAML file; every field has a working default so an
empty file (or no file) gives the stock baseline/aggressive presets.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from relay.core.errors import ConfigurationError

# Gate flag names shared by the loop presets and the scheduler.
GATE_AUTONOMOUS = "autonomous"
GATE_DEVELOPMENT = "development"
GATE_CONTINUOUS = "continuous"
GATE_AGGRESSIVE = "aggressive"
GATE_SECURITY_SCAN = "security_scan"
GATE_AUTO_SAVE = "auto_save"

DEFAULT_GATES: tuple[str, ...] = (GATE_AUTONOMOUS, GATE_DEVELOPMENT, GATE_CONTINUOUS)


class OperatingMode(str, Enum):
    """Scheduler operating mode."""

    BASELINE = "baseline"
    AGGRESSIVE = "aggressive"


class ConcurrencyMode(str, Enum):
    """How the dispatcher launches the tasks it drains."""

    SEQUENTIAL = "sequential"
    STAGGER = "stagger"


class BackendConfig(BaseModel):
    """Connection settings for the agent backend."""

    base_url: str = Field(
        default="https://api.cursor.com/v0",
        description="Base URL of the agent backend API",
    )
    api_key_env: str = Field(
        default="RELAY_API_KEY",
        description="Environment variable holding the backend credential",
    )
    repository: str = Field(
        default="https://github.com/your-org/your-repo",
        description="Source repository the remote jobs work on",
    )
    ref: str = Field(default="main", description="Git ref jobs start from")
    model: str = Field(default="AUTO", description="Model requested for each job")
    auto_create_pr: bool = Field(
        default=True,
        description="Ask the backend to open a pull request when a job finishes",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Per-call timeout so a hung request cannot stall the dispatcher",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def resolve_api_key(self) -> str:
        """Read the credential from the environment.

        Raises:
            ConfigurationError: If the variable is unset or empty.
        """
        key = os.environ.get(self.api_key_env, "").strip()
        if not key:
            raise ConfigurationError(
                f"Backend credential missing: set the {self.api_key_env} environment variable"
            )
        return key


class DispatchConfig(BaseModel):
    """Dispatcher concurrency and retry policy."""

    concurrency: ConcurrencyMode = Field(
        default=ConcurrencyMode.SEQUENTIAL,
        description="sequential: one launch at a time with a fixed delay; "
        "stagger: launch the whole queue concurrently with offset starts",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Requeues allowed per task before it is dropped",
    )
    sequential_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Pause between launches in sequential mode",
    )
    stagger_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Start offset per queue position in stagger mode",
    )


class LoopConfig(BaseModel):
    """One timed development loop."""

    name: str = Field(description="Loop name, used in logs and status output")
    cadence_seconds: float = Field(gt=0, description="Interval between ticks")
    initial_delay_seconds: float = Field(
        default=1.0, ge=0, description="Delay before the first tick",
    )
    sections: list[str] = Field(
        default_factory=list,
        description="Catalog sections generated on each tick (empty = all sections of the mode)",
    )
    gates: list[str] = Field(
        default_factory=lambda: list(DEFAULT_GATES),
        description="Gate flags that must all be true for the loop to run and re-arm",
    )

    @field_validator("gates")
    @classmethod
    def _gates_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("a loop needs at least one gate flag")
        return v


class ModeConfig(BaseModel):
    """Dispatch policy and loop set for one operating mode."""

    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    loops: list[LoopConfig] = Field(default_factory=list)
    poll_interval_seconds: float = Field(
        default=30.0, gt=0, description="Status poller cadence",
    )
    auto_save_interval_seconds: float = Field(
        default=600.0, gt=0, description="Cadence of the history auto-save loop",
    )

    @model_validator(mode="after")
    def _unique_loop_names(self) -> ModeConfig:
        names = [loop.name for loop in self.loops]
        if len(names) != len(set(names)):
            raise ValueError(f"loop names must be unique, got {names}")
        return self

    @classmethod
    def baseline(cls) -> ModeConfig:
        """Single development loop, sequential launches, 3 retries."""
        return cls(
            dispatch=DispatchConfig(
                concurrency=ConcurrencyMode.SEQUENTIAL,
                max_retries=3,
                sequential_delay_seconds=2.0,
            ),
            loops=[
                LoopConfig(name="development", cadence_seconds=30.0, initial_delay_seconds=1.0),
            ],
            poll_interval_seconds=30.0,
            auto_save_interval_seconds=600.0,
        )

    @classmethod
    def aggressive(cls) -> ModeConfig:
        """Several concurrent loops, staggered launches, 5 retries."""
        gates = [*DEFAULT_GATES, GATE_AGGRESSIVE]
        return cls(
            dispatch=DispatchConfig(
                concurrency=ConcurrencyMode.STAGGER,
                max_retries=5,
                sequential_delay_seconds=1.0,
                stagger_delay_seconds=0.5,
            ),
            loops=[
                LoopConfig(
                    name="feature-cycle", cadence_seconds=15.0, initial_delay_seconds=0.5,
                    sections=["features"], gates=gates,
                ),
                LoopConfig(
                    name="controls-cycle", cadence_seconds=15.0, initial_delay_seconds=0.5,
                    sections=["controls"], gates=gates,
                ),
                LoopConfig(
                    name="tab-fulfillment-cycle", cadence_seconds=15.0, initial_delay_seconds=0.5,
                    sections=["tabs"], gates=gates,
                ),
                LoopConfig(
                    name="security-scan", cadence_seconds=30.0, initial_delay_seconds=1.0,
                    sections=["security"], gates=[*gates, GATE_SECURITY_SCAN],
                ),
            ],
            poll_interval_seconds=30.0,
            auto_save_interval_seconds=60.0,
        )


class RelayConfig(BaseModel):
    """Top-level Relay configuration."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    baseline: ModeConfig = Field(default_factory=ModeConfig.baseline)
    aggressive: ModeConfig = Field(default_factory=ModeConfig.aggressive)
    catalog_path: Path | None = Field(
        default=None,
        description="Task catalog YAML. None uses the bundled default catalog.",
    )
    satisfied_keys: list[str] = Field(
        default_factory=list,
        description="Catalog keys already implemented; suppressed from the baseline catalog",
    )
    project_name: str = Field(
        default="the project",
        description="Project name substituted into job prompts",
    )
    auto_save_path: Path | None = Field(
        default=None,
        description="Where the auto-save loop writes the history export. None disables it.",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")
    log_file: Path | None = Field(default=None)

    def mode(self, mode: OperatingMode | str) -> ModeConfig:
        """Settings for ``mode``."""
        return self.aggressive if OperatingMode(mode) is OperatingMode.AGGRESSIVE else self.baseline

    @classmethod
    def from_yaml(cls, path: Path) -> RelayConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or not a mapping.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Config file {path} is invalid: {e}") from e


__all__ = [
    "BackendConfig",
    "ConcurrencyMode",
    "DEFAULT_GATES",
    "DispatchConfig",
    "GATE_AGGRESSIVE",
    "GATE_AUTONOMOUS",
    "GATE_AUTO_SAVE",
    "GATE_CONTINUOUS",
    "GATE_DEVELOPMENT",
    "GATE_SECURITY_SCAN",
    "LoopConfig",
    "ModeConfig",
    "OperatingMode",
    "RelayConfig",
]

"""Pytest fixtures for Relay tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
import structlog

from relay.core.config import (
    ConcurrencyMode,
    DispatchConfig,
    LoopConfig,
    ModeConfig,
    RelayConfig,
)
from relay.orchestrator.generator import TaskCatalog
from tests.helpers import SMALL_CATALOG, FakeBackend


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset structlog, root handlers and CLI state around each test."""
    import relay.cli as cli_module

    original_state = dict(cli_module._state)
    structlog.reset_defaults()
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_module._state.clear()
    cli_module._state.update(original_state)
    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def small_catalog() -> TaskCatalog:
    return TaskCatalog.from_text(SMALL_CATALOG)


@pytest.fixture
def fast_config() -> RelayConfig:
    """Config whose loops, delays and poll cadence are all tens of milliseconds."""
    return RelayConfig(
        baseline=ModeConfig(
            dispatch=DispatchConfig(
                concurrency=ConcurrencyMode.SEQUENTIAL,
                max_retries=3,
                sequential_delay_seconds=0,
            ),
            loops=[
                LoopConfig(name="development", cadence_seconds=0.05, initial_delay_seconds=0),
            ],
            poll_interval_seconds=0.02,
            auto_save_interval_seconds=0.05,
        ),
        aggressive=ModeConfig(
            dispatch=DispatchConfig(
                concurrency=ConcurrencyMode.STAGGER,
                max_retries=5,
                stagger_delay_seconds=0.001,
            ),
            loops=[
                LoopConfig(
                    name="feature-cycle", cadence_seconds=0.05, initial_delay_seconds=0,
                    sections=["features"],
                    gates=["autonomous", "development", "continuous", "aggressive"],
                ),
                LoopConfig(
                    name="security-scan", cadence_seconds=0.05, initial_delay_seconds=0,
                    sections=["security"],
                    gates=["autonomous", "development", "continuous", "aggressive", "security_scan"],
                ),
            ],
            poll_interval_seconds=0.02,
            auto_save_interval_seconds=0.05,
        ),
    )

"""Relay command line interface.

Built with Typer; output goes through a shared Rich console. Global
options (config file, logging) are handled by the app callback and
stored in ``_state`` for the commands to pick up.

Commands:
    run       Start the scheduler in a mode until interrupted (or --duration)
    catalog   Print the tasks the generator would emit for a mode
    jobs      List remote jobs
    job       Show one remote job
    followup  Send a follow-up instruction to a remote job
    delete    Delete a remote job
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from relay import __version__
from relay.backend.client import AgentBackendClient
from relay.core.config import OperatingMode, RelayConfig
from relay.core.errors import BackendError, ConfigurationError
from relay.core.logging import configure_logging
from relay.core.models import JobStatus
from relay.orchestrator.controller import Orchestrator
from relay.orchestrator.generator import TaskCatalog, TaskGenerator, satisfied_by_keys
from relay.orchestrator.types import StatusReport

T = TypeVar("T")

console = Console()

app = typer.Typer(
    name="relay",
    help="Dispatch development tasks to a remote agent backend",
    add_completion=False,
)

_state: dict[str, Any] = {"config_path": None, "config": None}

STATUS_COLORS: dict[str, str] = {
    JobStatus.CREATING.value: "yellow",
    JobStatus.RUNNING.value: "blue",
    JobStatus.FINISHED.value: "green",
    JobStatus.FAILED.value: "red",
}


# =============================================================================
# Helpers
# =============================================================================


def _load_config() -> RelayConfig:
    if _state["config"] is None:
        path: Path | None = _state["config_path"]
        _state["config"] = RelayConfig.from_yaml(path) if path else RelayConfig()
    return _state["config"]


def _build_backend(config: RelayConfig) -> AgentBackendClient:
    return AgentBackendClient.from_config(config.backend)


def _fail(message: str, code: int = 1) -> typer.Exit:
    console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(code)


def _with_backend(call: Callable[[AgentBackendClient], Awaitable[T]]) -> T:
    """Run ``call`` against a fresh client, mapping errors to exit codes."""
    try:
        backend = _build_backend(_load_config())
    except ConfigurationError as e:
        raise _fail(str(e), 2) from None

    async def runner() -> T:
        async with backend:
            return await call(backend)

    try:
        return asyncio.run(runner())
    except BackendError as e:
        raise _fail(f"backend returned {e.status_code}: {e.message}") from None


def _status_text(status: str) -> str:
    color = STATUS_COLORS.get(status.upper(), "white")
    return f"[{color}]{status}[/{color}]"


def _print_status_report(report: StatusReport) -> None:
    stats = report.stats
    table = Table(title="Relay statistics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Launched", str(stats.total_launched))
    table.add_row("Completed", str(stats.completed))
    table.add_row("Failed", str(stats.failed))
    table.add_row("Outstanding", str(stats.outstanding))
    table.add_row("Queued", str(stats.queued))
    table.add_row("Retried", str(stats.retried))
    table.add_row("Dropped", str(stats.permanent_failures))
    for category, count in stats.by_category.items():
        table.add_row(f"  {category}", str(count))
    console.print(table)
    if report.fatal_error:
        console.print(f"[red]Halted:[/red] {report.fatal_error}")


# =============================================================================
# Global options
# =============================================================================


def version_callback(value: bool) -> None:
    if value:
        console.print(f"Relay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=version_callback, is_eager=True,
        help="Show version and exit",
    ),
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Relay configuration YAML", envvar="RELAY_CONFIG"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-L", help="DEBUG, INFO, WARNING or ERROR", envvar="RELAY_LOG_LEVEL"),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option("--log-format", help="console or json", envvar="RELAY_LOG_FORMAT"),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Also write logs to this file", envvar="RELAY_LOG_FILE"),
    ] = None,
) -> None:
    """Relay - dispatch development tasks to a remote agent backend."""
    _state["config_path"] = config
    _state["config"] = None
    try:
        cfg = _load_config()
    except (ConfigurationError, ValueError) as e:
        raise _fail(str(e), 2) from None
    configure_logging(
        level=(log_level or cfg.log_level).upper(),  # type: ignore[arg-type]
        format=log_format or cfg.log_format,  # type: ignore[arg-type]
        file_path=log_file or cfg.log_file,
    )


# =============================================================================
# Commands
# =============================================================================


@app.command()
def run(
    mode: OperatingMode = typer.Option(OperatingMode.BASELINE, "--mode", "-m", help="Operating mode"),
    duration: float | None = typer.Option(
        None, "--duration", "-d", min=0, help="Stop after this many seconds",
    ),
) -> None:
    """Start the scheduler and keep dispatching until interrupted."""
    cfg = _load_config()
    try:
        backend = _build_backend(cfg)
        orchestrator = Orchestrator(cfg, backend=backend)
    except ConfigurationError as e:
        raise _fail(str(e), 2) from None

    async def runner() -> StatusReport:
        async with backend, orchestrator:
            try:
                await orchestrator.run(mode, duration)
            finally:
                report = await orchestrator.status()
        return report

    console.print(f"[bold]Relay[/bold] starting in [cyan]{mode.value}[/cyan] mode")
    try:
        report = asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        return
    except ConfigurationError as e:
        raise _fail(str(e), 2) from None
    _print_status_report(report)


@app.command()
def catalog(
    mode: OperatingMode = typer.Option(OperatingMode.BASELINE, "--mode", "-m", help="Operating mode"),
    section: list[str] | None = typer.Option(
        None, "--section", "-s", help="Only these catalog sections (repeatable)",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Print the tasks the generator emits for a mode."""
    cfg = _load_config()
    try:
        task_catalog = TaskCatalog.load(cfg.catalog_path)
        satisfied = satisfied_by_keys(cfg.satisfied_keys) if cfg.satisfied_keys else None
        tasks = TaskGenerator(task_catalog, satisfied=satisfied).generate(mode, section or None)
    except ConfigurationError as e:
        raise _fail(str(e), 2) from None

    if json_output:
        console.print_json(json.dumps([t.to_dict() for t in tasks]))
        return

    table = Table(title=f"{mode.value} catalog ({len(tasks)} tasks)")
    table.add_column("Area", style="cyan")
    table.add_column("Category")
    table.add_column("Priority")
    table.add_column("Description")
    for task in tasks:
        table.add_row(task.area or "", task.category.value, task.priority.value, task.description)
    console.print(table)


@app.command()
def jobs(
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=100, help="Maximum jobs to list"),
    cursor: str | None = typer.Option(None, "--cursor", help="Pagination cursor"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List remote jobs."""
    page = _with_backend(lambda backend: backend.list_jobs(limit=limit, cursor=cursor))
    if json_output:
        console.print_json(json.dumps(page))
        return
    table = Table(title="Remote jobs")
    table.add_column("ID", style="bold")
    table.add_column("Status")
    table.add_column("Name")
    for item in page["jobs"]:
        table.add_row(
            str(item.get("id", "")),
            _status_text(str(item.get("status", ""))),
            str(item.get("name") or ""),
        )
    console.print(table)
    if page["next_cursor"]:
        console.print(f"[dim]next cursor: {page['next_cursor']}[/dim]")


@app.command()
def job(
    job_id: str = typer.Argument(..., help="Remote job id"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show one remote job."""
    info = _with_backend(lambda backend: backend.get_job(job_id))
    if json_output:
        console.print_json(json.dumps(info))
        return
    console.print(f"[bold]{info['id']}[/bold]  {_status_text(info['status'])}")
    if info.get("summary"):
        console.print(info["summary"])


@app.command()
def followup(
    job_id: str = typer.Argument(..., help="Remote job id"),
    text: str = typer.Argument(..., help="Follow-up instruction"),
) -> None:
    """Send a follow-up instruction to a running job."""
    _with_backend(lambda backend: backend.add_followup(job_id, text))
    console.print(f"[green]Follow-up sent to {job_id}[/green]")


@app.command()
def delete(
    job_id: str = typer.Argument(..., help="Remote job id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a remote job."""
    if not yes and not typer.confirm(f"Delete job {job_id}?"):
        raise typer.Exit(1)
    _with_backend(lambda backend: backend.delete_job(job_id))
    console.print(f"[green]Deleted {job_id}[/green]")


__all__ = ["app", "main"]

"""Jobs CLI application -- Typer-based operator interface.

Runs the installment status job outside the HTTP trigger and inspects its
run ledger.  Human-readable output goes to *stderr* via Rich; with
``--json`` the machine-readable result goes to *stdout* so that scripts can
compose cleanly.

Exit codes: ``0`` success, ``1`` job run failed, ``2`` job health is
critical, ``3`` the command itself could not complete.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import httpx
import typer
from jobs_api.config import load_api_settings
from jobs_api.schemas import StatusJobOutcome
from jobs_api.services.alert_dispatcher import AlertDispatcher
from jobs_api.services.email_trigger import EmailNotificationTrigger
from jobs_api.services.job_monitor import JobMonitor
from jobs_api.services.status_job_service import StatusJobService
from jobs_engine.config import Settings, load_settings
from jobs_engine.executor.retry import RetryConfig
from jobs_engine.ledger.metrics import HealthStatus, JobHealth, JobMetrics
from jobs_engine.ledger.run_ledger import LedgerError, RunLedger
from jobs_engine.state.database import create_tables, get_engine, session_factory
from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from jobs_cli.display import display_health, display_job_outcome, display_metrics

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="jobs",
    help="Scheduled installment jobs: run the status update and inspect its history.",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_database_url: str | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL (postgresql+asyncpg://... or sqlite+aiosqlite:///path).",
        envvar="JOBS_DATABASE_URL",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _database_url  # noqa: PLW0603
    _json_output = json_mode
    _database_url = database_url


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    settings = load_settings()
    if _database_url:
        settings = settings.model_copy(update={"database_url": _database_url})
    return settings


def _write_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


def _engine(settings: Settings) -> AsyncEngine:
    return get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def _monitor(settings: Settings, factory: async_sessionmaker[AsyncSession]) -> JobMonitor:
    return JobMonitor(
        RunLedger(factory),
        warning_hours=settings.health_warning_hours,
        critical_hours=settings.health_critical_hours,
    )


# ---------------------------------------------------------------------------
# init-db
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db() -> None:
    """Create the database tables (local SQLite or dev; production uses Alembic)."""
    settings = _settings()

    async def _create() -> None:
        engine = _engine(settings)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    try:
        asyncio.run(_create())
    except Exception as exc:
        console.print(f"[red]Failed to create tables: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _write_json({"initialised": True})
    else:
        console.print("[green]Database tables ready.[/green]")


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


async def _run_status_job(settings: Settings) -> StatusJobOutcome:
    api_settings = load_api_settings()
    engine = _engine(settings)
    try:
        async with httpx.AsyncClient(timeout=api_settings.notifications_timeout) as client:
            service = StatusJobService(
                session_factory(engine),
                job_name=settings.status_job_name,
                retry_config=RetryConfig(
                    max_retries=settings.retry_max_retries,
                    initial_delay=settings.retry_initial_delay,
                ),
                email_trigger=EmailNotificationTrigger(
                    api_settings.notifications_url,
                    api_settings.notifications_api_key.get_secret_value(),
                    timeout=api_settings.notifications_timeout,
                    http_client=client,
                ),
                alerts=AlertDispatcher(
                    api_settings.slack_webhook_url,
                    app_url=api_settings.app_url,
                    http_client=client,
                ),
                default_timezone=settings.default_timezone,
            )
            return await service.run()
    finally:
        await engine.dispose()


@app.command()
def run() -> None:
    """Run one invocation of the installment status job."""
    settings = _settings()

    try:
        outcome = asyncio.run(_run_status_job(settings))
    except LedgerError as exc:
        console.print(f"[red]Failed to start job logging: {exc}[/red]")
        outcome = StatusJobOutcome.failure("Failed to start job logging")

    if _json_output:
        _write_json(outcome.to_response())
    else:
        display_job_outcome(console, outcome)

    if not outcome.success:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# health
# ---------------------------------------------------------------------------


@app.command()
def health(
    job_name: str | None = typer.Option(None, "--job-name", help="Defaults to the status job."),
) -> None:
    """Report whether the job ran within its expected window."""
    settings = _settings()

    async def _check() -> JobHealth:
        engine = _engine(settings)
        try:
            monitor = _monitor(settings, session_factory(engine))
            return await monitor.check_health(job_name or settings.status_job_name)
        finally:
            await engine.dispose()

    try:
        result = asyncio.run(_check())
    except Exception as exc:
        console.print(f"[red]Health check failed: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _write_json(result.model_dump(mode="json", by_alias=True))
    else:
        display_health(console, result)

    if result.status is HealthStatus.CRITICAL:
        raise typer.Exit(code=2)


# ---------------------------------------------------------------------------
# metrics
# ---------------------------------------------------------------------------


@app.command()
def metrics(
    days: int = typer.Option(30, "--days", min=1, max=365, help="Size of the reporting window."),
    limit: int = typer.Option(10, "--limit", min=1, max=100, help="Number of recent executions to list."),
    job_name: str | None = typer.Option(None, "--job-name", help="Defaults to the status job."),
) -> None:
    """Show run counts, durations, recent executions and the daily trend."""
    settings = _settings()

    async def _collect() -> JobMetrics:
        engine = _engine(settings)
        try:
            monitor = _monitor(settings, session_factory(engine))
            return await monitor.metrics(job_name or settings.status_job_name, days=days, limit=limit)
        finally:
            await engine.dispose()

    try:
        result = asyncio.run(_collect())
    except Exception as exc:
        console.print(f"[red]Failed to load metrics: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _write_json(result.model_dump(mode="json", by_alias=True))
    else:
        display_metrics(console, result)

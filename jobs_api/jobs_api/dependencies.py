"""FastAPI dependency injection for settings, database sessions, and job services."""

from __future__ import annotations

import logging
from typing import Annotated

import httpx
from fastapi import Depends
from jobs_engine.config import Settings, load_settings
from jobs_engine.executor.retry import RetryConfig
from jobs_engine.ledger.run_ledger import RunLedger
from jobs_engine.state.database import get_engine, session_factory
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from jobs_api.config import APISettings, load_api_settings
from jobs_api.services.alert_dispatcher import AlertDispatcher
from jobs_api.services.email_trigger import EmailNotificationTrigger
from jobs_api.services.job_monitor import JobMonitor
from jobs_api.services.status_job_service import StatusJobService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None
_engine_settings_cache: Settings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


def get_engine_settings() -> Settings:
    """Return the cached engine :class:`Settings` (job name, retry, health thresholds)."""
    global _engine_settings_cache  # noqa: PLW0603
    if _engine_settings_cache is None:
        _engine_settings_cache = load_settings()
    return _engine_settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]
EngineSettingsDep = Annotated[Settings, Depends(get_engine_settings)]

# ---------------------------------------------------------------------------
# Database session factory
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = session_factory(_engine)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory.

    The job services open their own short transactions (one per update
    attempt, one per ledger write), so they take the factory rather than a
    request-scoped session.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _session_factory


SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]

# ---------------------------------------------------------------------------
# Outbound HTTP client (email trigger + alerts)
# ---------------------------------------------------------------------------

_http_client: httpx.AsyncClient | None = None


def init_http_client(settings: APISettings) -> httpx.AsyncClient:
    """Create and cache the shared outbound ``httpx.AsyncClient``."""
    global _http_client  # noqa: PLW0603
    _http_client = httpx.AsyncClient(timeout=settings.notifications_timeout)
    return _http_client


async def dispose_http_client() -> None:
    global _http_client  # noqa: PLW0603
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def get_http_client() -> httpx.AsyncClient:
    if _http_client is None:
        raise RuntimeError(
            "HTTP client has not been initialised. Ensure init_http_client() is called during application startup."
        )
    return _http_client


HTTPClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]

# ---------------------------------------------------------------------------
# Job services
# ---------------------------------------------------------------------------


def get_alert_dispatcher(settings: SettingsDep, client: HTTPClientDep) -> AlertDispatcher:
    return AlertDispatcher(settings.slack_webhook_url, app_url=settings.app_url, http_client=client)


AlertDispatcherDep = Annotated[AlertDispatcher, Depends(get_alert_dispatcher)]


def get_email_trigger(settings: SettingsDep, client: HTTPClientDep) -> EmailNotificationTrigger:
    return EmailNotificationTrigger(
        settings.notifications_url,
        settings.notifications_api_key.get_secret_value(),
        timeout=settings.notifications_timeout,
        http_client=client,
    )


EmailTriggerDep = Annotated[EmailNotificationTrigger, Depends(get_email_trigger)]


def get_status_job_service(
    session_factory: SessionFactoryDep,
    engine_settings: EngineSettingsDep,
    email_trigger: EmailTriggerDep,
    alerts: AlertDispatcherDep,
) -> StatusJobService:
    """Build the service behind ``POST /jobs/update-installment-statuses``."""
    return StatusJobService(
        session_factory,
        job_name=engine_settings.status_job_name,
        retry_config=RetryConfig(
            max_retries=engine_settings.retry_max_retries,
            initial_delay=engine_settings.retry_initial_delay,
        ),
        email_trigger=email_trigger,
        alerts=alerts,
        default_timezone=engine_settings.default_timezone,
    )


StatusJobServiceDep = Annotated[StatusJobService, Depends(get_status_job_service)]


def get_job_monitor(
    session_factory: SessionFactoryDep,
    engine_settings: EngineSettingsDep,
    alerts: AlertDispatcherDep,
) -> JobMonitor:
    return JobMonitor(
        RunLedger(session_factory),
        alerts,
        warning_hours=engine_settings.health_warning_hours,
        critical_hours=engine_settings.health_critical_hours,
    )


JobMonitorDep = Annotated[JobMonitor, Depends(get_job_monitor)]

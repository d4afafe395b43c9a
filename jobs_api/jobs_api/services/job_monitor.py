"""Health checks and metrics over the job run ledger."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from jobs_engine.ledger.metrics import (
    HealthStatus,
    JobHealth,
    JobMetrics,
    assess_health,
    compute_job_metrics,
)
from jobs_engine.ledger.run_ledger import RunLedger
from jobs_engine.models.job_run import JobRunRecord
from jobs_engine.scheduling.clock import utcnow

from jobs_api.services.alert_dispatcher import AlertDispatcher, missed_run_alert

logger = logging.getLogger(__name__)


class JobMonitor:
    """Answer "is the job running?" and "how has it been doing?".

    Parameters
    ----------
    ledger:
        Read access to ``jobs_log``.
    alerts:
        Receives a missed-execution alert whenever a health check is
        critical.  ``None`` disables alerting.
    warning_hours, critical_hours:
        Freshness thresholds, in hours since the latest run started.
    """

    def __init__(
        self,
        ledger: RunLedger,
        alerts: AlertDispatcher | None = None,
        *,
        warning_hours: float = 24.0,
        critical_hours: float = 25.0,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._alerts = alerts
        self._warning_hours = warning_hours
        self._critical_hours = critical_hours
        self._now_fn = now_fn

    async def check_health(self, job_name: str) -> JobHealth:
        latest = await self._ledger.latest(job_name)
        health = assess_health(
            job_name,
            latest,
            self._now_fn(),
            warning_hours=self._warning_hours,
            critical_hours=self._critical_hours,
        )
        if health.status is HealthStatus.CRITICAL:
            logger.error("Job %s health is critical: %s", job_name, health.message)
            if self._alerts is not None:
                await self._alerts.send(missed_run_alert(health))
        elif health.status is HealthStatus.WARNING:
            logger.warning("Job %s health is degraded: %s", job_name, health.message)
        return health

    async def metrics(self, job_name: str, *, days: int = 30, limit: int = 10) -> JobMetrics:
        now = self._now_fn()
        runs = await self._ledger.since(job_name, now - timedelta(days=days))
        return compute_job_metrics(
            job_name,
            runs,
            now,
            days=days,
            limit=limit,
            warning_hours=self._warning_hours,
            critical_hours=self._critical_hours,
        )

    async def recent_runs(self, job_name: str, limit: int = 20) -> list[JobRunRecord]:
        return await self._ledger.recent(job_name, limit=limit)

"""Orchestration of one installment status job invocation.

Control flow::

    RunLedger.start
      -> retry(InstallmentStatusUpdater.update_all)   one transaction per attempt
      -> OverdueNotificationGenerator.generate         best-effort
      -> EmailNotificationTrigger.trigger              best-effort
    RunLedger.finish(success | failed)

Only a failure of the status update itself (including exhausted retries)
fails the run.  Notification and email errors are recorded in the run
metadata and the response, and the run still finishes ``success``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from jobs_engine.executor.retry import RetryConfig, async_retry_with_backoff
from jobs_engine.ledger.run_ledger import LedgerError, RunLedger, RunTracker
from jobs_engine.models.job_run import AgencyUpdateResult
from jobs_engine.scheduling.clock import DEFAULT_TIMEZONE, utcnow
from jobs_engine.scheduling.status_updater import InstallmentStatusUpdater
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs_api.schemas import StatusJobOutcome
from jobs_api.services.alert_dispatcher import AlertDispatcher, job_failed_alert
from jobs_api.services.email_trigger import EmailNotificationTrigger, EmailTriggerOutcome
from jobs_api.services.overdue_notifications import OverdueNotificationGenerator

logger = logging.getLogger(__name__)


class StatusJobService:
    """Run the status transition job end to end.

    Parameters
    ----------
    session_factory:
        Factory for database sessions.
    job_name:
        Name recorded in ``jobs_log``.
    retry_config:
        Backoff policy for the status update step.
    email_trigger:
        Batched email hand-off.  ``None`` skips the email stage.
    alerts:
        Receives a failure alert when a run finishes ``failed``.
    default_timezone:
        Fallback for agencies with a missing or unknown timezone.
    now_fn:
        Source of the current UTC instant for the updater and the ledger.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        job_name: str,
        retry_config: RetryConfig | None = None,
        email_trigger: EmailNotificationTrigger | None = None,
        alerts: AlertDispatcher | None = None,
        default_timezone: str = DEFAULT_TIMEZONE,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._job_name = job_name
        self._retry_config = retry_config or RetryConfig()
        self._email_trigger = email_trigger
        self._alerts = alerts
        self._default_timezone = default_timezone
        self._now_fn = now_fn
        self._ledger = RunLedger(session_factory, now_fn=now_fn)
        self._notifications = OverdueNotificationGenerator(session_factory)

    @property
    def job_name(self) -> str:
        return self._job_name

    async def _update_statuses(self) -> list[AgencyUpdateResult]:
        """One attempt of the status update, in a single transaction."""
        async with self._session_factory() as session, session.begin():
            updater = InstallmentStatusUpdater(
                session,
                now_fn=self._now_fn,
                default_timezone=self._default_timezone,
            )
            return await updater.update_all()

    async def run(self) -> StatusJobOutcome:
        """Execute one invocation.

        Raises
        ------
        LedgerError
            If the run could not be recorded as started.  No work is done
            in that case.
        """
        tracker: RunTracker | None = None
        try:
            async with self._ledger.track(self._job_name) as tracker:
                return await self._execute(tracker)
        except LedgerError:
            if tracker is None:
                raise
            logger.error("Run ledger failure for job %s", self._job_name, exc_info=True)
            return StatusJobOutcome.failure("Failed to record job completion", run_id=tracker.run_id)
        except Exception as exc:
            logger.error("Job %s failed: %s", self._job_name, exc, exc_info=True)
            run_id = tracker.run_id if tracker is not None else ""
            if self._alerts is not None:
                await self._alerts.send(job_failed_alert(self._job_name, run_id, str(exc)))
            return StatusJobOutcome.failure(str(exc) or type(exc).__name__, run_id=run_id)

    async def _execute(self, tracker: RunTracker) -> StatusJobOutcome:
        def _record_retry(attempt: int, delay: float, exc: Exception) -> None:
            tracker.metadata["retry_attempts"] = attempt

        results = await async_retry_with_backoff(
            self._update_statuses,
            self._retry_config,
            on_retry=_record_retry,
        )
        total_updated = sum(r.updated_count for r in results)

        notifications = await self._notifications.generate(results)
        if notifications.errors:
            logger.error("Notification generation errors: %s", notifications.errors)

        newly_overdue = [i for r in results for i in r.newly_overdue_ids]
        email = EmailTriggerOutcome()
        if self._email_trigger is not None:
            email = await self._email_trigger.trigger(newly_overdue, event_type="overdue")
        emails_sent = email.sent
        email_errors = email.errors

        metadata: dict[str, Any] = {
            "agencies": [r.model_dump(mode="json") for r in results],
            "total_agencies_processed": len(results),
            "notifications_created": notifications.created,
            "emails_sent": emails_sent,
            "emails_failed": email.failed,
            "emails_skipped": email.skipped,
        }
        if notifications.errors:
            metadata["notification_errors"] = notifications.errors
        if email_errors:
            metadata["email_errors"] = email_errors

        tracker.records_updated = total_updated
        tracker.metadata.update(metadata)

        logger.info(
            "Job %s run %s: %d updated, %d notification(s), %d email(s)",
            self._job_name,
            tracker.run_id,
            total_updated,
            notifications.created,
            emails_sent,
        )
        return StatusJobOutcome(
            success=True,
            records_updated=total_updated,
            notifications_created=notifications.created,
            emails_sent=emails_sent,
            agencies=results,
            notification_errors=notifications.errors or None,
            email_errors=email_errors or None,
            run_id=tracker.run_id,
        )

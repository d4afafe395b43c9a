"""Durable run ledger for scheduled jobs.

Every execution is recorded in ``jobs_log``: a ``running`` row is inserted
before any work starts and receives exactly one terminal update when the
work ends.  Each ledger operation commits in its own short transaction so
that the audit trail survives a rollback of the job's own work.

:meth:`RunLedger.track` is the usual entry point: it guarantees that a run
whose body raises is still finished as ``failed`` (with the traceback in
its metadata) before the exception propagates.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs_engine.models.job_run import JobRunRecord, JobRunStatus
from jobs_engine.scheduling.clock import utcnow
from jobs_engine.state.repository import JobRunRepository
from jobs_engine.state.tables import JobRunTable

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Raised when a run cannot be started or finished."""


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive timestamps; they were written as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def to_record(row: JobRunTable) -> JobRunRecord:
    """Convert a ``jobs_log`` row to its read model."""
    return JobRunRecord(
        id=row.id,
        job_name=row.job_name,
        started_at=_as_utc(row.started_at),
        completed_at=_as_utc(row.completed_at),
        status=JobRunStatus(row.status),
        records_updated=row.records_updated or 0,
        error_message=row.error_message,
        metadata=row.metadata_json,
    )


@dataclass
class RunTracker:
    """Mutable outcome of a tracked run, filled in by the job body."""

    run_id: str
    job_name: str
    records_updated: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class RunLedger:
    """Start, finish, and query job runs.

    Parameters
    ----------
    session_factory:
        Factory for short-lived sessions; every write commits on its own.
    now_fn:
        Source of the current UTC instant for ``started_at`` and
        ``completed_at``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._now_fn = now_fn

    async def start(self, job_name: str) -> str:
        """Insert a ``running`` row and return its id.

        Raises
        ------
        LedgerError
            If the row could not be written.  Callers must not start any
            work in that case.
        """
        try:
            async with self._session_factory() as session, session.begin():
                row = await JobRunRepository(session).create_run(job_name, self._now_fn())
                run_id = row.id
        except Exception as exc:
            logger.error("Failed to start run for job %s: %s", job_name, exc, exc_info=True)
            raise LedgerError(f"Failed to start job logging: {exc}") from exc

        logger.info("Started run %s for job %s", run_id, job_name)
        return run_id

    async def finish(
        self,
        run_id: str,
        status: JobRunStatus,
        records_updated: int = 0,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        """Apply the single terminal update to a running row.

        Raises
        ------
        ValueError
            If *status* is not terminal.
        LedgerError
            If the run is unknown, already finished, or the write failed.
        """
        status = JobRunStatus(status)
        if not status.is_terminal:
            raise ValueError(f"Cannot finish a run with non-terminal status {status.value!r}")

        try:
            async with self._session_factory() as session, session.begin():
                finished = await JobRunRepository(session).finish_run(
                    run_id,
                    status=status,
                    completed_at=self._now_fn(),
                    records_updated=records_updated,
                    metadata=metadata,
                    error_message=error_message,
                )
        except Exception as exc:
            raise LedgerError(f"Failed to finish run {run_id}: {exc}") from exc

        if not finished:
            raise LedgerError(f"Run {run_id} is unknown or already finished")
        logger.info(
            "Finished run %s status=%s records_updated=%d",
            run_id,
            status.value,
            records_updated,
        )

    @asynccontextmanager
    async def track(self, job_name: str) -> AsyncIterator[RunTracker]:
        """Wrap a job body in a ledger run.

        On normal exit the run is finished as ``success`` with the counts and
        metadata recorded on the yielded :class:`RunTracker`.  If the body
        raises, the run is finished as ``failed`` with the exception message
        and ``{"error_stack": <traceback>}`` merged into its metadata, and the
        exception is re-raised.
        """
        run_id = await self.start(job_name)
        tracker = RunTracker(run_id=run_id, job_name=job_name)
        try:
            yield tracker
        except Exception as exc:
            metadata = {**tracker.metadata, "error_stack": traceback.format_exc()}
            try:
                await self.finish(
                    run_id,
                    JobRunStatus.FAILED,
                    records_updated=0,
                    metadata=metadata,
                    error_message=str(exc) or type(exc).__name__,
                )
            except LedgerError:
                logger.error("Could not record failure of run %s", run_id, exc_info=True)
            raise
        else:
            await self.finish(
                run_id,
                JobRunStatus.SUCCESS,
                records_updated=tracker.records_updated,
                metadata=tracker.metadata,
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, run_id: str) -> JobRunRecord | None:
        async with self._session_factory() as session:
            row = await JobRunRepository(session).get_by_id(run_id)
            return to_record(row) if row is not None else None

    async def latest(self, job_name: str) -> JobRunRecord | None:
        async with self._session_factory() as session:
            row = await JobRunRepository(session).get_latest(job_name)
            return to_record(row) if row is not None else None

    async def recent(self, job_name: str, limit: int = 20) -> list[JobRunRecord]:
        async with self._session_factory() as session:
            rows = await JobRunRepository(session).list_recent(job_name, limit=limit)
            return [to_record(r) for r in rows]

    async def since(self, job_name: str, since: datetime) -> list[JobRunRecord]:
        async with self._session_factory() as session:
            rows = await JobRunRepository(session).list_since(job_name, since)
            return [to_record(r) for r in rows]

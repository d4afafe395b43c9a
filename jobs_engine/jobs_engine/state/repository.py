"""Repository classes providing access to the agency job state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for
committing (typically via ``async with session.begin():``).

Tenant-scoped repositories receive the agency identifier explicitly and
filter every query on it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jobs_engine.models.installment import InstallmentStatus, PaymentPlanStatus
from jobs_engine.models.job_run import JobRunStatus
from jobs_engine.state.tables import (
    ActivityLogTable,
    AgencyTable,
    InstallmentTable,
    JobRunTable,
    NotificationTable,
    PaymentPlanTable,
    StudentTable,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _dialect_name(session: AsyncSession) -> str:
    bind = session.get_bind()
    return str(getattr(getattr(bind, "dialect", None), "name", ""))


@dataclass(frozen=True)
class InstallmentDetail:
    """Installment joined with its plan and student, as read by the job."""

    id: str
    payment_plan_id: str
    agency_id: str
    amount: Decimal
    student_due_date: date
    student_id: str | None
    student_first_name: str | None
    student_last_name: str | None

    @property
    def student_name(self) -> str | None:
        if self.student_first_name is None and self.student_last_name is None:
            return None
        return f"{self.student_first_name or ''} {self.student_last_name or ''}".strip()


# ---------------------------------------------------------------------------
# AgencyRepository
# ---------------------------------------------------------------------------


class AgencyRepository:
    """Read access to the ``agencies`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_all(self) -> list[AgencyTable]:
        """List every agency (**cross-tenant**).

        .. warning:: **Intentionally cross-tenant**

           The status job is the only caller: it runs as a service identity
           and iterates agencies itself, passing each identifier explicitly
           to the tenant-scoped repositories below.
        """
        stmt = select(AgencyTable).order_by(AgencyTable.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# InstallmentRepository
# ---------------------------------------------------------------------------


class InstallmentRepository:
    """Tenant-scoped reads and status writes for ``installments``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    def _active_plan_ids(self) -> Any:
        return select(PaymentPlanTable.id).where(
            PaymentPlanTable.agency_id == self._tenant_id,
            PaymentPlanTable.status == PaymentPlanStatus.ACTIVE.value,
        )

    def _detail_select(self) -> Any:
        return (
            select(
                InstallmentTable.id,
                InstallmentTable.payment_plan_id,
                PaymentPlanTable.agency_id,
                InstallmentTable.amount,
                InstallmentTable.student_due_date,
                PaymentPlanTable.student_id,
                StudentTable.first_name,
                StudentTable.last_name,
            )
            .join(PaymentPlanTable, PaymentPlanTable.id == InstallmentTable.payment_plan_id)
            .outerjoin(StudentTable, StudentTable.id == PaymentPlanTable.student_id)
            .where(PaymentPlanTable.agency_id == self._tenant_id)
        )

    async def list_transition_candidates(self, today: date) -> list[InstallmentDetail]:
        """Return pending installments of active plans not yet processed *today*.

        Only due dates up to and including *today* can transition, so later
        due dates are excluded up front.  On PostgreSQL the rows are locked
        with ``SKIP LOCKED`` so an overlapping invocation does not wait on
        (or re-read) rows this transaction is about to update.
        """
        stmt = (
            self._detail_select()
            .where(
                PaymentPlanTable.status == PaymentPlanStatus.ACTIVE.value,
                InstallmentTable.status == InstallmentStatus.PENDING.value,
                InstallmentTable.student_due_date <= today,
                or_(
                    InstallmentTable.last_processed_date.is_(None),
                    InstallmentTable.last_processed_date < today,
                ),
            )
            .order_by(InstallmentTable.student_due_date, InstallmentTable.id)
            .with_for_update(of=InstallmentTable, skip_locked=True)
        )
        result = await self._session.execute(stmt)
        return [InstallmentDetail(*row) for row in result.all()]

    async def mark_overdue(self, installment_ids: list[str], today: date, now: datetime) -> list[str]:
        """Conditionally promote *installment_ids* to overdue.

        Every eligibility guard is repeated in the ``WHERE`` clause so the
        statement is safe against concurrent invocations: a row already
        processed today, paid in the meantime, or whose plan left ``active``
        is not touched.  Returns the ids actually updated.
        """
        if not installment_ids:
            return []
        stmt = (
            update(InstallmentTable)
            .where(
                InstallmentTable.id.in_(installment_ids),
                InstallmentTable.payment_plan_id.in_(self._active_plan_ids()),
                InstallmentTable.status == InstallmentStatus.PENDING.value,
                or_(
                    InstallmentTable.last_processed_date.is_(None),
                    InstallmentTable.last_processed_date < today,
                ),
            )
            .values(
                status=InstallmentStatus.OVERDUE.value,
                last_processed_date=today,
                updated_at=now,
            )
            .returning(InstallmentTable.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_details(self, installment_ids: list[str]) -> dict[str, InstallmentDetail]:
        """Fetch details for *installment_ids* belonging to this agency."""
        if not installment_ids:
            return {}
        stmt = self._detail_select().where(InstallmentTable.id.in_(installment_ids))
        result = await self._session.execute(stmt)
        return {row[0]: InstallmentDetail(*row) for row in result.all()}


# ---------------------------------------------------------------------------
# ActivityLogRepository
# ---------------------------------------------------------------------------


class ActivityLogRepository:
    """Append-only writes to ``activity_log``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def record(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: str,
        description: str,
        metadata: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> ActivityLogTable:
        row = ActivityLogTable(
            id=_new_id(),
            agency_id=self._tenant_id,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            description=description,
            metadata_json=metadata,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[ActivityLogTable]:
        stmt = (
            select(ActivityLogTable)
            .where(
                ActivityLogTable.agency_id == self._tenant_id,
                ActivityLogTable.entity_type == entity_type,
                ActivityLogTable.entity_id == entity_id,
            )
            .order_by(ActivityLogTable.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# NotificationRepository
# ---------------------------------------------------------------------------


class NotificationRepository:
    """Tenant-scoped access to ``notifications``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def find_by_metadata(self, notification_type: str, key: str, value: str) -> NotificationTable | None:
        """Return the first notification whose metadata contains ``{key: value}``.

        PostgreSQL uses JSONB ``@>`` containment; SQLite has no containment
        operator, so the key is extracted and compared instead.
        """
        if "postgresql" in _dialect_name(self._session):
            match = NotificationTable.metadata_json.contains({key: value})
        else:
            match = NotificationTable.metadata_json[key].as_string() == value
        stmt = (
            select(NotificationTable)
            .where(
                NotificationTable.agency_id == self._tenant_id,
                NotificationTable.type == notification_type,
                match,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        notification_type: str,
        message: str,
        link: str | None = None,
        metadata: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> NotificationTable:
        row = NotificationTable(
            id=_new_id(),
            agency_id=self._tenant_id,
            user_id=user_id,
            type=notification_type,
            message=message,
            link=link,
            is_read=False,
            metadata_json=metadata,
        )
        self._session.add(row)
        await self._session.flush()
        return row


# ---------------------------------------------------------------------------
# JobRunRepository
# ---------------------------------------------------------------------------

_MAX_RUN_PAGE_SIZE = 100


class JobRunRepository:
    """Writes and reads for the ``jobs_log`` ledger table.

    The ledger is system-wide rather than per agency: one run covers every
    tenant.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_run(self, job_name: str, started_at: datetime) -> JobRunTable:
        row = JobRunTable(
            id=_new_id(),
            job_name=job_name,
            started_at=started_at,
            status=JobRunStatus.RUNNING.value,
            records_updated=0,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def finish_run(
        self,
        run_id: str,
        *,
        status: JobRunStatus,
        completed_at: datetime,
        records_updated: int = 0,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Apply the terminal update to a ``running`` row.

        Returns ``False`` when no running row matched (unknown id or already
        finished); the row is left untouched in that case.
        """
        stmt = (
            update(JobRunTable)
            .where(
                JobRunTable.id == run_id,
                JobRunTable.status == JobRunStatus.RUNNING.value,
            )
            .values(
                status=status.value,
                completed_at=completed_at,
                records_updated=records_updated,
                metadata_json=metadata,
                error_message=error_message,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return bool(result.rowcount)

    async def get_by_id(self, run_id: str) -> JobRunTable | None:
        stmt = select(JobRunTable).where(JobRunTable.id == run_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest(self, job_name: str) -> JobRunTable | None:
        """Return the most recently started run for *job_name*."""
        stmt = (
            select(JobRunTable)
            .where(JobRunTable.job_name == job_name)
            .order_by(JobRunTable.started_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recent(self, job_name: str, limit: int = 20) -> list[JobRunTable]:
        stmt = (
            select(JobRunTable)
            .where(JobRunTable.job_name == job_name)
            .order_by(JobRunTable.started_at.desc())
            .limit(min(max(limit, 1), _MAX_RUN_PAGE_SIZE))
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_since(self, job_name: str, since: datetime) -> list[JobRunTable]:
        """Return runs started at or after *since*, newest first."""
        stmt = (
            select(JobRunTable)
            .where(
                JobRunTable.job_name == job_name,
                JobRunTable.started_at >= since,
            )
            .order_by(JobRunTable.started_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

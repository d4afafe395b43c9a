"""Idempotent batch updater for installment statuses.

For every agency the updater resolves the agency-local clock, evaluates the
pending installments of active plans against the overdue rule, and promotes
the ones that transitioned with a single conditional ``UPDATE ... RETURNING``.
The ids returned by the database are the only source of truth for what
changed; they feed both the result and the activity-log rows written in the
same transaction.

The updater does not manage its own transaction.  Callers run a whole
invocation inside one ``session.begin()`` block so that a failure part-way
through rolls back every agency's writes and a retry sees the same
candidates again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from jobs_engine.models.job_run import AgencyUpdateResult, TransitionCounts
from jobs_engine.scheduling.clock import DEFAULT_TIMEZONE, resolve_tenant_clock, utcnow
from jobs_engine.scheduling.evaluator import DEFAULT_CUTOFF, should_transition
from jobs_engine.state.repository import (
    ActivityLogRepository,
    AgencyRepository,
    InstallmentDetail,
    InstallmentRepository,
)
from jobs_engine.state.tables import AgencyTable

logger = logging.getLogger(__name__)

MARKED_OVERDUE_ACTION = "marked_overdue"


def _activity_description(detail: InstallmentDetail) -> str:
    student = detail.student_name or "unknown student"
    return f"System marked installment ${detail.amount:.2f} as overdue for {student}"


class InstallmentStatusUpdater:
    """Promote pending installments to overdue across all agencies.

    Parameters
    ----------
    session:
        An ``AsyncSession`` with an open transaction owned by the caller.
    now_fn:
        Source of the current UTC instant.  Tests inject a fixed clock.
    default_timezone:
        Fallback zone for agencies whose stored timezone is missing or
        unknown.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        now_fn: Callable[[], datetime] = utcnow,
        default_timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._session = session
        self._now_fn = now_fn
        self._default_timezone = default_timezone

    async def update_all(self) -> list[AgencyUpdateResult]:
        """Apply the overdue transition to every agency, in id order.

        Returns one :class:`AgencyUpdateResult` per agency, including agencies
        where nothing changed.  A second call on the same agency-local day
        reports ``updated_count == 0`` for every agency.
        """
        now = self._now_fn()
        agencies = await AgencyRepository(self._session).list_all()

        results: list[AgencyUpdateResult] = []
        for agency in agencies:
            results.append(await self._update_agency(agency, now))

        total = sum(r.updated_count for r in results)
        logger.info(
            "Status update complete: %d installment(s) marked overdue across %d agencies",
            total,
            len(results),
        )
        return results

    async def _update_agency(self, agency: AgencyTable, now: datetime) -> AgencyUpdateResult:
        clock = resolve_tenant_clock(
            agency.timezone,
            now,
            agency_id=agency.id,
            default_timezone=self._default_timezone,
        )
        cutoff = agency.overdue_cutoff_time or DEFAULT_CUTOFF
        today = clock.local_date

        installments = InstallmentRepository(self._session, agency.id)
        candidates = await installments.list_transition_candidates(today)
        due = [
            c for c in candidates if should_transition(c.student_due_date, today, clock.local_time, cutoff)
        ]

        updated_ids = await installments.mark_overdue([c.id for c in due], today, now)

        if updated_ids:
            by_id = {c.id: c for c in due}
            activity = ActivityLogRepository(self._session, agency.id)
            for installment_id in updated_ids:
                detail = by_id[installment_id]
                await activity.record(
                    entity_type="installment",
                    entity_id=installment_id,
                    action=MARKED_OVERDUE_ACTION,
                    description=_activity_description(detail),
                    metadata={
                        "student_name": detail.student_name,
                        "amount": f"{detail.amount:.2f}",
                        "installment_id": installment_id,
                        "payment_plan_id": detail.payment_plan_id,
                        "original_due_date": detail.student_due_date.isoformat(),
                    },
                )

        logger.debug(
            "Agency %s (%s, local %s %s): %d candidate(s), %d updated",
            agency.id,
            clock.timezone,
            today.isoformat(),
            clock.local_time.strftime("%H:%M"),
            len(candidates),
            len(updated_ids),
        )
        return AgencyUpdateResult(
            agency_id=agency.id,
            updated_count=len(updated_ids),
            transitions=TransitionCounts(pending_to_overdue=len(updated_ids)),
            newly_overdue_ids=list(updated_ids),
        )

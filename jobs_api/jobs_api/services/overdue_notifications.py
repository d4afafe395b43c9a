"""In-app notifications for installments that just became overdue.

Runs after the status update has committed and only for the ids the update
returned.  Each notification is deduplicated on ``(agency, type,
metadata.installment_id)`` so a job invoked twice near the transition
boundary never notifies twice.

INVARIANT: Notification generation is best-effort.  Per-item failures are
collected as strings and logged; they never propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from jobs_engine.models.job_run import AgencyUpdateResult
from jobs_engine.state.repository import (
    InstallmentDetail,
    InstallmentRepository,
    NotificationRepository,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

OVERDUE_NOTIFICATION_TYPE = "overdue_payment"
OVERDUE_LINK = "/payments/plans?status=overdue"


@dataclass
class NotificationOutcome:
    """Counts and collected errors from one generation pass."""

    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def format_overdue_message(detail: InstallmentDetail) -> str:
    """Render ``Payment overdue: <name> - $<amount> due <MM/DD/YYYY>``."""
    return (
        f"Payment overdue: {detail.student_name} - ${detail.amount:.2f} "
        f"due {detail.student_due_date.strftime('%m/%d/%Y')}"
    )


class OverdueNotificationGenerator:
    """Create one agency-wide ``overdue_payment`` notification per transition."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def generate(self, results: list[AgencyUpdateResult]) -> NotificationOutcome:
        """Create notifications for every newly-overdue id in *results*.

        Each agency is handled in its own transaction and each item in its
        own savepoint, so one bad item rolls back only itself.
        """
        outcome = NotificationOutcome()
        for result in results:
            if not result.newly_overdue_ids:
                continue
            agency_outcome = NotificationOutcome()
            try:
                await self._generate_for_agency(result, agency_outcome)
            except Exception as exc:
                message = f"Agency {result.agency_id}: failed to generate notifications: {exc}"
                logger.error(message, exc_info=True)
                # The agency transaction rolled back, so nothing it counted exists.
                outcome.errors.extend(agency_outcome.errors)
                outcome.errors.append(message)
                continue
            outcome.created += agency_outcome.created
            outcome.skipped += agency_outcome.skipped
            outcome.errors.extend(agency_outcome.errors)

        logger.info(
            "Overdue notifications: %d created, %d skipped, %d error(s)",
            outcome.created,
            outcome.skipped,
            len(outcome.errors),
        )
        return outcome

    async def _generate_for_agency(self, result: AgencyUpdateResult, outcome: NotificationOutcome) -> None:
        """Counts land in *outcome* as savepoints close; they are only real once this returns."""
        async with self._session_factory() as session, session.begin():
            details = await InstallmentRepository(session, result.agency_id).get_details(result.newly_overdue_ids)
            notifications = NotificationRepository(session, result.agency_id)

            for installment_id in result.newly_overdue_ids:
                detail = details.get(installment_id)
                if detail is None:
                    outcome.errors.append(f"Installment {installment_id}: not found")
                    continue
                if detail.student_id is None or detail.student_name is None:
                    outcome.errors.append(f"Installment {installment_id}: Missing student data")
                    continue

                try:
                    async with session.begin_nested():
                        existing = await notifications.find_by_metadata(
                            OVERDUE_NOTIFICATION_TYPE, "installment_id", installment_id
                        )
                        if existing is not None:
                            logger.debug("Notification already exists for installment %s", installment_id)
                            outcome.skipped += 1
                            continue

                        await notifications.create(
                            notification_type=OVERDUE_NOTIFICATION_TYPE,
                            message=format_overdue_message(detail),
                            link=OVERDUE_LINK,
                            metadata={
                                "installment_id": installment_id,
                                "payment_plan_id": detail.payment_plan_id,
                                "student_id": detail.student_id,
                                "amount": float(detail.amount),
                                "due_date": detail.student_due_date.isoformat(),
                            },
                        )
                    outcome.created += 1
                except Exception as exc:
                    message = f"Failed to create notification for installment {installment_id}: {exc}"
                    logger.warning(message)
                    outcome.errors.append(message)

"""Pydantic models shared by the engine, API and CLI."""

from jobs_engine.models.installment import InstallmentStatus, PaymentPlanStatus
from jobs_engine.models.job_run import (
    AgencyUpdateResult,
    JobRunRecord,
    JobRunStatus,
    TransitionCounts,
)

__all__ = [
    "AgencyUpdateResult",
    "InstallmentStatus",
    "JobRunRecord",
    "JobRunStatus",
    "PaymentPlanStatus",
    "TransitionCounts",
]

"""Shared Pydantic response models for API endpoints.

Top-level keys of the job responses are camelCase, matching what the
external scheduler and dashboards consume; the per-agency entries keep the
snake_case shape stored in the run metadata.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from jobs_engine.models.job_run import AgencyUpdateResult, JobRunStatus
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Status job
# ---------------------------------------------------------------------------


class StatusJobOutcome(BaseModel):
    """Result of one status job invocation, as returned by the trigger endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    records_updated: int = 0
    notifications_created: int = 0
    emails_sent: int = 0
    agencies: list[AgencyUpdateResult] = Field(default_factory=list)
    notification_errors: list[str] | None = None
    email_errors: list[str] | None = None
    error: str | None = None
    # Internal: not part of the response body.
    run_id: str | None = Field(default=None, exclude=True)

    @classmethod
    def failure(cls, error: str, run_id: str | None = None) -> StatusJobOutcome:
        return cls(success=False, error=error, run_id=run_id)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Run listing
# ---------------------------------------------------------------------------


class JobRunResponse(BaseModel):
    """A single ``jobs_log`` row."""

    id: str
    job_name: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    status: JobRunStatus
    records_updated: int = 0
    error_message: str | None = None
    metadata: dict[str, Any] | None = None


class JobRunListResponse(BaseModel):
    job_name: str
    runs: list[JobRunResponse] = Field(default_factory=list)

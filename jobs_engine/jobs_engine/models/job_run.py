"""Job run and batch result models.

A ``JobRunRecord`` is the read model of one row in ``jobs_log``.  Runs are
created as ``running`` and receive exactly one terminal update to
``success`` or ``failed``.

``AgencyUpdateResult`` is the per-agency payload returned by the batch
updater; its JSON shape is also the ``agencies`` entry of the trigger
endpoint response and of the run metadata.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobRunStatus(str, Enum):
    """Lifecycle state of a job execution."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobRunStatus.RUNNING


class TransitionCounts(BaseModel):
    """Counts per state transition applied during one invocation."""

    pending_to_overdue: int = Field(default=0, ge=0)


class AgencyUpdateResult(BaseModel):
    """Outcome of the status update for a single agency."""

    agency_id: str
    updated_count: int = Field(default=0, ge=0)
    transitions: TransitionCounts = Field(default_factory=TransitionCounts)
    newly_overdue_ids: list[str] = Field(default_factory=list)


class JobRunRecord(BaseModel):
    """Read model for a ``jobs_log`` row."""

    id: str
    job_name: str
    started_at: datetime
    completed_at: datetime | None = None
    status: JobRunStatus
    records_updated: int = 0
    error_message: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

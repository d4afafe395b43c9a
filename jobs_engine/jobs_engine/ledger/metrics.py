"""Health and performance metrics derived from the run ledger.

All functions here are pure: they take already-loaded :class:`JobRunRecord`
objects (newest first) and the evaluation instant, so the same logic backs
the HTTP monitoring endpoints and the CLI.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from jobs_engine.models.job_run import JobRunRecord, JobRunStatus

# Reported when the job has never run.
NEVER_RAN_HOURS = 999.0


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobHealth(_CamelModel):
    """Freshness of the most recent run of a daily job."""

    job_name: str
    last_run: datetime | None = None
    hours_since_last_run: float
    status: HealthStatus
    message: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ok(self) -> bool:
        return self.status is not HealthStatus.CRITICAL


class TimeRange(_CamelModel):
    start: datetime
    end: datetime
    days: int


class RunSummary(_CamelModel):
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    success_rate: float = 0.0
    total_records_updated: int = 0


class RunPerformance(_CamelModel):
    avg_duration_seconds: float = 0.0
    min_duration_seconds: float = 0.0
    max_duration_seconds: float = 0.0


class ExecutionSummary(_CamelModel):
    id: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    records_updated: int = 0
    status: JobRunStatus
    error_message: str | None = None


class DailyTrend(_CamelModel):
    date: str
    runs: int
    successful_runs: int
    failed_runs: int
    total_records_updated: int
    avg_duration_seconds: float


class JobMetrics(_CamelModel):
    job_name: str
    time_range: TimeRange
    summary: RunSummary
    performance: RunPerformance
    recent_executions: list[ExecutionSummary] = Field(default_factory=list)
    daily_trend: list[DailyTrend] = Field(default_factory=list)
    health_status: JobHealth


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def assess_health(
    job_name: str,
    latest: JobRunRecord | None,
    now: datetime,
    *,
    warning_hours: float = 24.0,
    critical_hours: float = 25.0,
) -> JobHealth:
    """Classify job freshness from the start time of its latest run.

    ``healthy`` up to *warning_hours*, ``warning`` up to *critical_hours*,
    ``critical`` beyond that or when the job never ran.
    """
    if latest is None:
        hours = NEVER_RAN_HOURS
    else:
        hours = (now - latest.started_at).total_seconds() / 3600.0

    if hours <= warning_hours:
        status = HealthStatus.HEALTHY
        message = "Job running normally"
    elif hours <= critical_hours:
        status = HealthStatus.WARNING
        message = "Job slightly delayed but within tolerance"
    else:
        status = HealthStatus.CRITICAL
        message = f"Job has not run in {round(hours)} hours - missed execution detected"

    return JobHealth(
        job_name=job_name,
        last_run=latest.started_at if latest is not None else None,
        hours_since_last_run=round(hours, 1),
        status=status,
        message=message,
    )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def _successful_durations(runs: list[JobRunRecord]) -> list[float]:
    return [
        r.duration_seconds
        for r in runs
        if r.status is JobRunStatus.SUCCESS and r.duration_seconds is not None
    ]


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def summarise_runs(runs: list[JobRunRecord]) -> RunSummary:
    total = len(runs)
    successes = sum(1 for r in runs if r.status is JobRunStatus.SUCCESS)
    failures = sum(1 for r in runs if r.status is JobRunStatus.FAILED)
    rate = (successes / total) * 100 if total else 0.0
    return RunSummary(
        total_runs=total,
        successful_runs=successes,
        failed_runs=failures,
        success_rate=round(rate, 2),
        total_records_updated=sum(r.records_updated for r in runs),
    )


def run_performance(runs: list[JobRunRecord]) -> RunPerformance:
    durations = _successful_durations(runs)
    if not durations:
        return RunPerformance()
    return RunPerformance(
        avg_duration_seconds=_mean(durations),
        min_duration_seconds=min(durations),
        max_duration_seconds=max(durations),
    )


def daily_trend(runs: list[JobRunRecord]) -> list[DailyTrend]:
    """Group runs by UTC start date, newest day first."""
    by_day: dict[str, list[JobRunRecord]] = defaultdict(list)
    for run in runs:
        by_day[run.started_at.date().isoformat()].append(run)

    trend = [
        DailyTrend(
            date=day,
            runs=len(day_runs),
            successful_runs=sum(1 for r in day_runs if r.status is JobRunStatus.SUCCESS),
            failed_runs=sum(1 for r in day_runs if r.status is JobRunStatus.FAILED),
            total_records_updated=sum(r.records_updated for r in day_runs),
            avg_duration_seconds=_mean(_successful_durations(day_runs)),
        )
        for day, day_runs in by_day.items()
    ]
    trend.sort(key=lambda d: d.date, reverse=True)
    return trend


def compute_job_metrics(
    job_name: str,
    runs: list[JobRunRecord],
    now: datetime,
    *,
    days: int = 30,
    limit: int = 10,
    warning_hours: float = 24.0,
    critical_hours: float = 25.0,
) -> JobMetrics:
    """Build the full metrics report for runs started in the last *days*.

    Parameters
    ----------
    runs:
        Runs of *job_name*, newest first.  Runs older than the window are
        ignored.
    limit:
        Number of most recent executions to include in detail.
    """
    start = now - timedelta(days=days)
    window = [r for r in runs if r.started_at >= start]

    recent = [
        ExecutionSummary(
            id=r.id,
            started_at=r.started_at,
            completed_at=r.completed_at,
            duration_seconds=round(r.duration_seconds, 2) if r.duration_seconds is not None else None,
            records_updated=r.records_updated,
            status=r.status,
            error_message=r.error_message,
        )
        for r in window[: max(limit, 0)]
    ]

    return JobMetrics(
        job_name=job_name,
        time_range=TimeRange(start=start, end=now, days=days),
        summary=summarise_runs(window),
        performance=run_performance(window),
        recent_executions=recent,
        daily_trend=daily_trend(window),
        health_status=assess_health(
            job_name,
            window[0] if window else None,
            now,
            warning_hours=warning_hours,
            critical_hours=critical_hours,
        ),
    )

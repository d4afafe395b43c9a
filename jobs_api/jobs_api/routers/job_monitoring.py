"""Monitoring endpoints over the job run ledger: health, metrics, run listing."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from jobs_api.dependencies import EngineSettingsDep, JobMonitorDep
from jobs_api.schemas import JobRunListResponse, JobRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["job-monitoring"])

_MAX_RUNS = 100


@router.get("/health")
async def job_health(
    monitor: JobMonitorDep,
    engine_settings: EngineSettingsDep,
    job_name: str | None = Query(default=None, description="Defaults to the status job."),
) -> JSONResponse:
    """Freshness of the latest run.  HTTP 503 when the job missed its window."""
    health = await monitor.check_health(job_name or engine_settings.status_job_name)
    return JSONResponse(
        status_code=200 if health.ok else 503,
        content=health.model_dump(mode="json", by_alias=True),
    )


@router.get("/metrics")
async def job_metrics(
    monitor: JobMonitorDep,
    engine_settings: EngineSettingsDep,
    job_name: str | None = Query(default=None),
    days: int = Query(default=30, ge=1, le=365),
    limit: int = Query(default=10, ge=1, le=_MAX_RUNS),
) -> dict[str, Any]:
    metrics = await monitor.metrics(job_name or engine_settings.status_job_name, days=days, limit=limit)
    return metrics.model_dump(mode="json", by_alias=True)


@router.get("/runs", response_model=JobRunListResponse)
async def list_job_runs(
    monitor: JobMonitorDep,
    engine_settings: EngineSettingsDep,
    job_name: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1),
) -> JobRunListResponse:
    """Newest runs first; *limit* is capped at 100."""
    name = job_name or engine_settings.status_job_name
    records = await monitor.recent_runs(name, limit=min(limit, _MAX_RUNS))
    runs = [JobRunResponse(**r.model_dump(), duration_seconds=r.duration_seconds) for r in records]
    return JobRunListResponse(job_name=name, runs=runs)

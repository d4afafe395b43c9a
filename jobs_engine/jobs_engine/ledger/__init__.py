"""Job run ledger and the metrics derived from it."""

from __future__ import annotations

from jobs_engine.ledger.metrics import (
    HealthStatus,
    JobHealth,
    JobMetrics,
    assess_health,
    compute_job_metrics,
)
from jobs_engine.ledger.run_ledger import LedgerError, RunLedger, RunTracker

__all__ = [
    "HealthStatus",
    "JobHealth",
    "JobMetrics",
    "LedgerError",
    "RunLedger",
    "RunTracker",
    "assess_health",
    "compute_job_metrics",
]

"""Agency-local clock resolution and the overdue transition job."""

from __future__ import annotations

from jobs_engine.scheduling.clock import TenantClock, resolve_tenant_clock
from jobs_engine.scheduling.evaluator import should_transition
from jobs_engine.scheduling.status_updater import InstallmentStatusUpdater

__all__ = [
    "InstallmentStatusUpdater",
    "TenantClock",
    "resolve_tenant_clock",
    "should_transition",
]

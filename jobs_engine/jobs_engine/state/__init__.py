"""State persistence layer using PostgreSQL (SQLite for local runs)."""

from jobs_engine.state.database import create_tables, get_engine, session_factory
from jobs_engine.state.repository import (
    ActivityLogRepository,
    AgencyRepository,
    InstallmentDetail,
    InstallmentRepository,
    JobRunRepository,
    NotificationRepository,
)

__all__ = [
    "ActivityLogRepository",
    "AgencyRepository",
    "InstallmentDetail",
    "InstallmentRepository",
    "JobRunRepository",
    "NotificationRepository",
    "create_tables",
    "get_engine",
    "session_factory",
]

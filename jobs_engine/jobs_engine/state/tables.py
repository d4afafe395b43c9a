"""SQLAlchemy 2.0 ORM table definitions for the agency job state store.

All tables use the modern ``Mapped`` / ``mapped_column`` declaration style
introduced in SQLAlchemy 2.0.  The ``Base`` declarative base is exported for
use by Alembic migrations and the repository layer.

Only the columns the status job reads or writes are modelled for the
agency-domain tables (agencies, students, payment plans, installments); the
CRUD surfaces that own the remaining columns live outside this package.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Cross-dialect JSON type: uses JSONB on PostgreSQL for GIN indexing and
# containment operators, falls back to plain JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all job state tables."""


# ---------------------------------------------------------------------------
# Agencies
# ---------------------------------------------------------------------------


class AgencyTable(Base):
    """Tenant organisations and their business-time settings."""

    __tablename__ = "agencies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True, default="Australia/Brisbane")
    overdue_cutoff_time: Mapped[time] = mapped_column(Time, nullable=False, default=time(17, 0))
    due_soon_threshold_days: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "due_soon_threshold_days BETWEEN 1 AND 30",
            name="ck_agencies_due_soon_days",
        ),
    )


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


class StudentTable(Base):
    """Students enrolled through an agency (read-only to the job)."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agency_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False
    )
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (Index("ix_students_agency", "agency_id"),)


# ---------------------------------------------------------------------------
# Payment plans
# ---------------------------------------------------------------------------


class PaymentPlanTable(Base):
    """Groups installments owed by one student to one agency."""

    __tablename__ = "payment_plans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agency_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("students.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_payment_plans_status",
        ),
        Index("ix_payment_plans_agency_status", "agency_id", "status"),
    )


# ---------------------------------------------------------------------------
# Installments
# ---------------------------------------------------------------------------


class InstallmentTable(Base):
    """Individual scheduled payment obligations."""

    __tablename__ = "installments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payment_plan_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("payment_plans.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    student_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    # Set to the agency-local date whenever the job marks the row overdue.
    last_processed_date: Mapped[date | None] = mapped_column(Date, nullable=True, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','overdue','paid','cancelled')",
            name="ck_installments_status",
        ),
        Index("ix_installments_plan_status", "payment_plan_id", "status"),
        Index("ix_installments_due_date", "student_due_date"),
    )


# ---------------------------------------------------------------------------
# Job run ledger
# ---------------------------------------------------------------------------


class JobRunTable(Base):
    """Audit trail of scheduled job executions.

    Rows are inserted as ``running`` and receive exactly one terminal
    update.  The ``metadata`` column name is reserved on declarative classes,
    hence the ``metadata_json`` attribute.
    """

    __tablename__ = "jobs_log"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    job_name: Mapped[str] = mapped_column(String(128), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    records_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", _JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('running','success','failed')",
            name="ck_jobs_log_status",
        ),
        Index("ix_jobs_log_job_started", "job_name", "started_at"),
        Index("ix_jobs_log_status", "status"),
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationTable(Base):
    """In-app notifications shown to agency users.

    Overdue notifications are deduplicated by ``(agency_id, type,
    metadata.installment_id)``.
    """

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agency_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", _JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_notifications_agency_type", "agency_id", "type"),)


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityLogTable(Base):
    """Append-only feed of user and system actions per agency."""

    __tablename__ = "activity_log"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agency_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False
    )
    # NULL for system actions.
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", _JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_activity_log_agency_created", "agency_id", "created_at"),
        Index("ix_activity_log_entity", "entity_type", "entity_id"),
    )

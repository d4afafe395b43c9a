"""Initial schema for the agency job state store.

Creates the agency-domain tables the status job reads (agencies, students,
payment plans, installments) and the notification and activity feeds it
writes to.

Revision ID: 001
Revises: None
Create Date: 2025-10-13 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ------------------------------------------------------------------
    # agencies
    # ------------------------------------------------------------------
    op.create_table(
        "agencies",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=True, server_default="Australia/Brisbane"),
        sa.Column(
            "overdue_cutoff_time",
            sa.Time(),
            nullable=False,
            server_default=sa.text("'17:00:00'"),
        ),
        sa.Column("due_soon_threshold_days", sa.Integer(), nullable=False, server_default="4"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "due_soon_threshold_days BETWEEN 1 AND 30",
            name="ck_agencies_due_soon_days",
        ),
    )

    # ------------------------------------------------------------------
    # students
    # ------------------------------------------------------------------
    op.create_table(
        "students",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "agency_id",
            sa.String(64),
            sa.ForeignKey("agencies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
    )
    op.create_index("ix_students_agency", "students", ["agency_id"])

    # ------------------------------------------------------------------
    # payment_plans
    # ------------------------------------------------------------------
    op.create_table(
        "payment_plans",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "agency_id",
            sa.String(64),
            sa.ForeignKey("agencies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "student_id",
            sa.String(64),
            sa.ForeignKey("students.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_payment_plans_status",
        ),
    )
    op.create_index("ix_payment_plans_agency_status", "payment_plans", ["agency_id", "status"])

    # ------------------------------------------------------------------
    # installments
    # ------------------------------------------------------------------
    op.create_table(
        "installments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "payment_plan_id",
            sa.String(64),
            sa.ForeignKey("payment_plans.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("student_due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status IN ('pending','overdue','paid','cancelled')",
            name="ck_installments_status",
        ),
    )
    op.create_index("ix_installments_plan_status", "installments", ["payment_plan_id", "status"])
    op.create_index("ix_installments_due_date", "installments", ["student_due_date"])

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "agency_id",
            sa.String(64),
            sa.ForeignKey("agencies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(1024), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_notifications_agency_type", "notifications", ["agency_id", "type"])
    # Supports the ``metadata @> '{"installment_id": ...}'`` dedup lookup.
    op.create_index(
        "ix_notifications_metadata_gin",
        "notifications",
        ["metadata"],
        postgresql_using="gin",
    )

    # ------------------------------------------------------------------
    # activity_log
    # ------------------------------------------------------------------
    op.create_table(
        "activity_log",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "agency_id",
            sa.String(64),
            sa.ForeignKey("agencies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_activity_log_agency_created", "activity_log", ["agency_id", "created_at"])
    op.create_index("ix_activity_log_entity", "activity_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("activity_log")
    op.drop_table("notifications")
    op.drop_table("installments")
    op.drop_table("payment_plans")
    op.drop_table("students")
    op.drop_table("agencies")

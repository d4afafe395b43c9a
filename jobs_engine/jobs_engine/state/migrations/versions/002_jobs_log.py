"""Add the job run ledger and the installment processing guard.

Creates ``jobs_log`` and adds ``installments.last_processed_date``, which the
status job sets to the agency-local date whenever it marks a row overdue.

Revision ID: 002
Revises: 001
Create Date: 2025-10-14 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "jobs_log",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("job_name", sa.String(128), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("records_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status IN ('running','success','failed')",
            name="ck_jobs_log_status",
        ),
    )
    op.create_index("ix_jobs_log_job_started", "jobs_log", ["job_name", "started_at"])
    op.create_index("ix_jobs_log_status", "jobs_log", ["status"])

    op.add_column("installments", sa.Column("last_processed_date", sa.Date(), nullable=True))
    # Partial index over the rows the job scans each tick.
    op.create_index(
        "ix_installments_pending_processing",
        "installments",
        ["student_due_date", "last_processed_date"],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("ix_installments_pending_processing", table_name="installments")
    op.drop_column("installments", "last_processed_date")
    op.drop_index("ix_jobs_log_status", table_name="jobs_log")
    op.drop_index("ix_jobs_log_job_started", table_name="jobs_log")
    op.drop_table("jobs_log")

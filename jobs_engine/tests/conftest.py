"""Shared fixtures for jobs_engine tests.

Database tests run against an in-memory SQLite database via aiosqlite.
JSONB and timezone-aware DateTime columns are patched at import time so the
ORM metadata compiles on SQLite and timestamps come back UTC-aware.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, date, time
from decimal import Decimal

import pytest_asyncio
from jobs_engine.state.tables import (
    AgencyTable,
    Base,
    InstallmentTable,
    PaymentPlanTable,
    StudentTable,
)
from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.types import TypeDecorator


def _patch_columns_for_sqlite() -> None:
    """Substitute Postgres-specific column types for SQLite compatibility."""

    class _UTCAwareDateTime(TypeDecorator):
        impl = DateTime
        cache_ok = True

        def process_result_value(self, value, dialect):  # type: ignore[override]
            if value is not None and value.tzinfo is None:
                return value.replace(tzinfo=UTC)
            return value

    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()
            elif isinstance(column.type, DateTime) and getattr(column.type, "timezone", False):
                column.type = _UTCAwareDateTime()


_patch_columns_for_sqlite()


@pytest_asyncio.fixture
async def session_factory():
    """Provide a session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


@dataclass
class Seeder:
    """Inserts agencies, plans and installments for a test."""

    factory: async_sessionmaker[AsyncSession]

    async def agency(
        self,
        agency_id: str = "agency-1",
        *,
        timezone: str | None = "Australia/Brisbane",
        cutoff: time = time(17, 0),
    ) -> str:
        async with self.factory() as session, session.begin():
            session.add(
                AgencyTable(
                    id=agency_id,
                    name=f"Agency {agency_id}",
                    timezone=timezone,
                    overdue_cutoff_time=cutoff,
                    due_soon_threshold_days=4,
                )
            )
        return agency_id

    async def plan(
        self,
        agency_id: str,
        *,
        status: str = "active",
        first_name: str = "Jane",
        last_name: str = "Smith",
    ) -> str:
        student_id = uuid.uuid4().hex
        plan_id = uuid.uuid4().hex
        async with self.factory() as session, session.begin():
            session.add(StudentTable(id=student_id, agency_id=agency_id, first_name=first_name, last_name=last_name))
            await session.flush()
            session.add(PaymentPlanTable(id=plan_id, agency_id=agency_id, student_id=student_id, status=status))
        return plan_id

    async def installment(
        self,
        plan_id: str,
        due: date,
        *,
        amount: str = "250.00",
        status: str = "pending",
        last_processed: date | None = None,
    ) -> str:
        installment_id = uuid.uuid4().hex
        async with self.factory() as session, session.begin():
            session.add(
                InstallmentTable(
                    id=installment_id,
                    payment_plan_id=plan_id,
                    amount=Decimal(amount),
                    student_due_date=due,
                    status=status,
                    last_processed_date=last_processed,
                )
            )
        return installment_id

    async def installment_row(self, installment_id: str) -> InstallmentTable:
        async with self.factory() as session:
            row = await session.get(InstallmentTable, installment_id)
            assert row is not None
            return row


@pytest_asyncio.fixture
async def seed(session_factory) -> Seeder:
    return Seeder(session_factory)
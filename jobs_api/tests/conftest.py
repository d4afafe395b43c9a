"""Shared fixtures for jobs API tests.

Provides an in-memory SQLite database, seeding helpers, an
``httpx.MockTransport``-backed outbound client that records every request
it receives, and an ``AsyncClient`` bound to the application through
``ASGITransport`` with the dependencies overridden.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, time
from decimal import Decimal
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jobs_engine.config import Settings
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

from jobs_api.config import APISettings
from jobs_api.dependencies import (
    get_engine_settings,
    get_http_client,
    get_session_factory,
    get_settings,
)
from jobs_api.main import create_app

TEST_FUNCTION_KEY = "test-function-key"
NOTIFICATIONS_URL = "https://notify.test/api/notifications/send"
SLACK_WEBHOOK_URL = "https://hooks.slack.test/services/T000/B000/XXXX"


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


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@dataclass
class Seeder:
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
        student: bool = True,
    ) -> str:
        student_id = uuid.uuid4().hex if student else None
        plan_id = uuid.uuid4().hex
        async with self.factory() as session, session.begin():
            if student_id is not None:
                session.add(
                    StudentTable(id=student_id, agency_id=agency_id, first_name=first_name, last_name=last_name)
                )
                await session.flush()
            session.add(PaymentPlanTable(id=plan_id, agency_id=agency_id, student_id=student_id, status=status))
        return plan_id

    async def installment(self, plan_id: str, due: date, *, amount: str = "250.00", status: str = "pending") -> str:
        installment_id = uuid.uuid4().hex
        async with self.factory() as session, session.begin():
            session.add(
                InstallmentTable(
                    id=installment_id,
                    payment_plan_id=plan_id,
                    amount=Decimal(amount),
                    student_due_date=due,
                    status=status,
                )
            )
        return installment_id

    async def installment_status(self, installment_id: str) -> str:
        async with self.factory() as session:
            row = await session.get(InstallmentTable, installment_id)
            assert row is not None
            return row.status


@pytest_asyncio.fixture
async def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


# ---------------------------------------------------------------------------
# Outbound HTTP
# ---------------------------------------------------------------------------


@dataclass
class RecordingTransport:
    """Answers outbound requests and records them for assertions.

    The email endpoint reports every requested id as sent; the Slack
    webhook answers ``ok``.
    """

    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == NOTIFICATIONS_URL:
            ids = json.loads(request.content)["installmentIds"]
            return httpx.Response(200, json={"summary": {"sent": len(ids), "failed": 0, "skipped": 0}})
        return httpx.Response(200, text="ok")

    def bodies_for(self, url: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if str(r.url) == url]


@pytest.fixture
def outbound() -> RecordingTransport:
    return RecordingTransport()


@pytest_asyncio.fixture
async def http_client(outbound: RecordingTransport):
    async with httpx.AsyncClient(transport=httpx.MockTransport(outbound.handler)) as client:
        yield client


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture
def api_settings() -> APISettings:
    return APISettings(
        database_url="sqlite+aiosqlite://",
        platform_env="dev",
        function_api_key=TEST_FUNCTION_KEY,
        notifications_url=NOTIFICATIONS_URL,
        notifications_api_key="notify-key",
        slack_webhook_url=SLACK_WEBHOOK_URL,
        app_url="https://app.test",
    )


@pytest.fixture
def engine_settings() -> Settings:
    return Settings(retry_max_retries=3, retry_initial_delay=0.1, default_timezone="UTC")


@pytest.fixture
def app(api_settings, engine_settings, session_factory, http_client):
    application = create_app(api_settings)
    application.dependency_overrides[get_settings] = lambda: api_settings
    application.dependency_overrides[get_engine_settings] = lambda: engine_settings
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_http_client] = lambda: http_client
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-API-Key": TEST_FUNCTION_KEY}

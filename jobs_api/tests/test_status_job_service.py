"""End-to-end tests for StatusJobService against in-memory SQLite.

The agency clock is pinned through ``now_fn``; outbound email and Slack
calls go to an ``httpx.MockTransport``.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from jobs_engine.executor.retry import RetryConfig
from jobs_engine.ledger.run_ledger import RunLedger
from jobs_engine.models.job_run import JobRunStatus
from jobs_engine.state.tables import NotificationTable
from sqlalchemy import select

from jobs_api.services.alert_dispatcher import AlertDispatcher
from jobs_api.services.email_trigger import EmailNotificationTrigger
from jobs_api.services.status_job_service import StatusJobService

JOB_NAME = "update-installment-statuses"

# 2025-10-15 16:00 in Brisbane, one hour before the default 17:00 cutoff.
BEFORE_CUTOFF = datetime(2025, 10, 15, 6, 0, tzinfo=UTC)
TODAY = date(2025, 10, 15)
YESTERDAY = date(2025, 10, 14)


@pytest.fixture
def make_service(session_factory, api_settings, http_client):
    def _make(now: datetime = BEFORE_CUTOFF, client: httpx.AsyncClient | None = None) -> StatusJobService:
        client = client or http_client
        return StatusJobService(
            session_factory,
            job_name=JOB_NAME,
            retry_config=RetryConfig(max_retries=3, initial_delay=0.1),
            email_trigger=EmailNotificationTrigger(
                api_settings.notifications_url, "notify-key", http_client=client
            ),
            alerts=AlertDispatcher(api_settings.slack_webhook_url, http_client=client),
            now_fn=lambda: now,
        )

    return _make


async def _notifications(session_factory) -> list[NotificationTable]:
    async with session_factory() as session:
        result = await session.execute(select(NotificationTable))
        return list(result.scalars().all())


class TestScenarios:
    @pytest.mark.asyncio
    async def test_due_yesterday_in_brisbane_becomes_overdue(
        self, make_service, session_factory, seed, outbound, api_settings
    ):
        agency_id = await seed.agency(timezone="Australia/Brisbane")
        plan_id = await seed.plan(agency_id)
        item = await seed.installment(plan_id, YESTERDAY)

        outcome = await make_service().run()

        assert outcome.success is True
        assert outcome.records_updated == 1
        assert outcome.notifications_created == 1
        assert outcome.emails_sent == 1
        assert outcome.agencies[0].newly_overdue_ids == [item]
        assert await seed.installment_status(item) == "overdue"

        assert outbound.bodies_for(api_settings.notifications_url) == [
            {"installmentIds": [item], "eventType": "overdue"}
        ]

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.status is JobRunStatus.SUCCESS
        assert run.records_updated == 1
        assert run.metadata["total_agencies_processed"] == 1
        assert run.metadata["notifications_created"] == 1
        assert run.metadata["emails_sent"] == 1
        assert run.metadata["emails_failed"] == 0
        assert run.metadata["emails_skipped"] == 0
        assert run.metadata["agencies"][0]["transitions"] == {"pending_to_overdue": 1}

    @pytest.mark.asyncio
    async def test_due_today_before_cutoff_stays_pending(self, make_service, seed, outbound, api_settings):
        agency_id = await seed.agency(timezone="Australia/Brisbane")
        plan_id = await seed.plan(agency_id)
        item = await seed.installment(plan_id, TODAY)

        outcome = await make_service().run()

        assert outcome.success is True
        assert outcome.records_updated == 0
        assert outcome.notifications_created == 0
        assert await seed.installment_status(item) == "pending"
        # Nothing newly overdue, so the email service is not called.
        assert outbound.bodies_for(api_settings.notifications_url) == []

    @pytest.mark.asyncio
    async def test_cancelled_plan_is_untouched(self, make_service, seed):
        agency_id = await seed.agency()
        plan_id = await seed.plan(agency_id, status="cancelled")
        item = await seed.installment(plan_id, date(2025, 10, 1))

        outcome = await make_service().run()

        assert outcome.records_updated == 0
        assert await seed.installment_status(item) == "pending"

    @pytest.mark.asyncio
    async def test_two_timeouts_then_success(self, make_service, session_factory, seed):
        agency_id = await seed.agency()
        plan_id = await seed.plan(agency_id)
        item = await seed.installment(plan_id, YESTERDAY)

        service = make_service()
        real_update = service._update_statuses
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls <= 2:
                raise TimeoutError("Connection timeout")
            return await real_update()

        service._update_statuses = flaky  # type: ignore[method-assign]

        with patch("jobs_engine.executor.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            outcome = await service.run()

        assert calls == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.1, 0.2]
        assert outcome.success is True
        assert outcome.agencies[0].newly_overdue_ids == [item]

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.status is JobRunStatus.SUCCESS
        assert run.metadata["retry_attempts"] == 2

    @pytest.mark.asyncio
    async def test_second_invocation_is_a_no_op(self, make_service, session_factory, seed, outbound, api_settings):
        agency_id = await seed.agency()
        plan_id = await seed.plan(agency_id)
        await seed.installment(plan_id, YESTERDAY)

        first = await make_service().run()
        second = await make_service().run()

        assert first.records_updated == 1
        assert second.records_updated == 0
        assert second.notifications_created == 0
        assert len(await _notifications(session_factory)) == 1
        assert len(outbound.bodies_for(api_settings.notifications_url)) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_permanent_error_fails_run_without_retry(self, make_service, session_factory, seed, outbound):
        await seed.agency()
        service = make_service()
        service._update_statuses = AsyncMock(side_effect=ValueError("invalid installment state"))  # type: ignore[method-assign]

        with patch("jobs_engine.executor.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            outcome = await service.run()

        mock_sleep.assert_not_awaited()
        assert service._update_statuses.await_count == 1
        assert outcome.success is False
        assert outcome.error == "invalid installment state"
        assert outcome.to_response() == {
            "success": False,
            "recordsUpdated": 0,
            "notificationsCreated": 0,
            "emailsSent": 0,
            "agencies": [],
            "error": "invalid installment state",
        }

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.status is JobRunStatus.FAILED
        assert run.error_message == "invalid installment state"
        assert "ValueError" in run.metadata["error_stack"]

        slack_posts = [r for r in outbound.requests if "hooks.slack" in str(r.url)]
        assert len(slack_posts) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_the_run(self, make_service, session_factory):
        service = make_service()
        service._update_statuses = AsyncMock(side_effect=ConnectionResetError("ECONNRESET"))  # type: ignore[method-assign]

        with patch("jobs_engine.executor.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            outcome = await service.run()

        assert service._update_statuses.await_count == 4
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.1, 0.2, 0.4]
        assert outcome.success is False
        assert outcome.error == "ECONNRESET"

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.status is JobRunStatus.FAILED

    @pytest.mark.asyncio
    async def test_email_failure_is_best_effort(self, make_service, session_factory, seed, api_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == api_settings.notifications_url:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, text="ok")

        agency_id = await seed.agency()
        plan_id = await seed.plan(agency_id)
        item = await seed.installment(plan_id, YESTERDAY)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await make_service(client=client).run()

        assert outcome.success is True
        assert outcome.records_updated == 1
        assert outcome.emails_sent == 0
        assert outcome.email_errors is not None
        assert "HTTP 503" in outcome.email_errors[0]
        assert await seed.installment_status(item) == "overdue"

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.status is JobRunStatus.SUCCESS
        assert run.metadata["email_errors"] == outcome.email_errors

    @pytest.mark.asyncio
    async def test_without_email_trigger_no_email_stage(self, session_factory, seed):
        agency_id = await seed.agency()
        plan_id = await seed.plan(agency_id)
        await seed.installment(plan_id, YESTERDAY)

        service = StatusJobService(session_factory, job_name=JOB_NAME, now_fn=lambda: BEFORE_CUTOFF)
        outcome = await service.run()

        assert outcome.success is True
        assert outcome.records_updated == 1
        assert outcome.emails_sent == 0
        assert outcome.email_errors is None

    @pytest.mark.asyncio
    async def test_email_failed_and_skipped_counts_are_recorded(
        self, make_service, session_factory, seed, api_settings
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == api_settings.notifications_url:
                return httpx.Response(200, json={"summary": {"sent": 0, "failed": 1, "skipped": 2}})
            return httpx.Response(200, text="ok")

        agency_id = await seed.agency()
        plan_id = await seed.plan(agency_id)
        await seed.installment(plan_id, YESTERDAY)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await make_service(client=client).run()

        assert outcome.success is True
        assert outcome.emails_sent == 0

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.metadata["emails_sent"] == 0
        assert run.metadata["emails_failed"] == 1
        assert run.metadata["emails_skipped"] == 2

    @pytest.mark.asyncio
    async def test_notification_errors_do_not_fail_the_run(self, make_service, session_factory, seed):
        agency_id = await seed.agency()
        with_student = await seed.installment(await seed.plan(agency_id), YESTERDAY)
        orphan = await seed.installment(await seed.plan(agency_id, student=False), YESTERDAY)

        outcome = await make_service().run()

        expected_errors = [f"Installment {orphan}: Missing student data"]
        assert outcome.success is True
        assert outcome.records_updated == 2
        assert outcome.notifications_created == 1
        assert outcome.notification_errors == expected_errors
        assert outcome.to_response()["notificationErrors"] == expected_errors
        assert await seed.installment_status(with_student) == "overdue"
        assert await seed.installment_status(orphan) == "overdue"

        run = await RunLedger(session_factory).get(outcome.run_id)
        assert run.status is JobRunStatus.SUCCESS
        assert run.metadata["notification_errors"] == expected_errors
        assert run.metadata["notifications_created"] == 1

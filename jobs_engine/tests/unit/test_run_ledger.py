"""Tests for the job run ledger (start / finish / track)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from jobs_engine.ledger.run_ledger import LedgerError, RunLedger
from jobs_engine.models.job_run import JobRunStatus
from jobs_engine.state.tables import JobRunTable
from sqlalchemy import func, select


class _Clock:
    """Advances one second per call."""

    def __init__(self, start: datetime) -> None:
        self._now = start

    def __call__(self) -> datetime:
        current = self._now
        self._now += timedelta(seconds=1)
        return current


@pytest.fixture
def ledger(session_factory) -> RunLedger:
    return RunLedger(session_factory, now_fn=_Clock(datetime(2025, 10, 15, 7, 0, tzinfo=UTC)))


async def _count_runs(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(JobRunTable))


class TestStartFinish:
    @pytest.mark.asyncio
    async def test_start_inserts_running_row(self, ledger: RunLedger):
        run_id = await ledger.start("update-installment-statuses")

        run = await ledger.get(run_id)
        assert run is not None
        assert run.status is JobRunStatus.RUNNING
        assert run.job_name == "update-installment-statuses"
        assert run.completed_at is None
        assert run.records_updated == 0

    @pytest.mark.asyncio
    async def test_finish_success(self, ledger: RunLedger):
        run_id = await ledger.start("job")

        await ledger.finish(run_id, JobRunStatus.SUCCESS, records_updated=7, metadata={"agencies": []})

        run = await ledger.get(run_id)
        assert run.status is JobRunStatus.SUCCESS
        assert run.records_updated == 7
        assert run.metadata == {"agencies": []}
        assert run.completed_at is not None
        assert run.duration_seconds == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_finish_twice_raises(self, ledger: RunLedger):
        run_id = await ledger.start("job")
        await ledger.finish(run_id, JobRunStatus.FAILED, error_message="boom")

        with pytest.raises(LedgerError, match="already finished"):
            await ledger.finish(run_id, JobRunStatus.SUCCESS)

        run = await ledger.get(run_id)
        assert run.status is JobRunStatus.FAILED
        assert run.error_message == "boom"

    @pytest.mark.asyncio
    async def test_finish_unknown_run_raises(self, ledger: RunLedger):
        with pytest.raises(LedgerError):
            await ledger.finish("missing", JobRunStatus.SUCCESS)

    @pytest.mark.asyncio
    async def test_finish_rejects_running_status(self, ledger: RunLedger):
        run_id = await ledger.start("job")
        with pytest.raises(ValueError, match="non-terminal"):
            await ledger.finish(run_id, JobRunStatus.RUNNING)

    @pytest.mark.asyncio
    async def test_start_failure_raises_ledger_error(self):
        def broken_factory():
            raise ConnectionError("connection refused")

        ledger = RunLedger(broken_factory)  # type: ignore[arg-type]
        with pytest.raises(LedgerError, match="Failed to start job logging"):
            await ledger.start("job")


class TestTrack:
    @pytest.mark.asyncio
    async def test_track_success_records_counts(self, ledger: RunLedger):
        async with ledger.track("job") as run:
            run.records_updated = 3
            run.metadata["agencies"] = [{"agency_id": "a"}]

        stored = await ledger.get(run.run_id)
        assert stored.status is JobRunStatus.SUCCESS
        assert stored.records_updated == 3
        assert stored.metadata == {"agencies": [{"agency_id": "a"}]}

    @pytest.mark.asyncio
    async def test_track_failure_finishes_failed_and_reraises(self, ledger: RunLedger):
        with pytest.raises(RuntimeError, match="Connection timeout"):
            async with ledger.track("job") as run:
                run.metadata["retries"] = 3
                raise RuntimeError("Connection timeout")

        stored = await ledger.get(run.run_id)
        assert stored.status is JobRunStatus.FAILED
        assert stored.error_message == "Connection timeout"
        assert stored.records_updated == 0
        assert stored.metadata["retries"] == 3
        assert "RuntimeError: Connection timeout" in stored.metadata["error_stack"]

    @pytest.mark.asyncio
    async def test_no_run_left_running(self, ledger: RunLedger, session_factory):
        for i in range(3):
            try:
                async with ledger.track("job"):
                    if i % 2:
                        raise ValueError("bad")
            except ValueError:
                pass

        async with session_factory() as session:
            running = await session.scalar(
                select(func.count()).select_from(JobRunTable).where(JobRunTable.status == "running")
            )
        assert running == 0
        assert await _count_runs(session_factory) == 3


class TestReads:
    @pytest.mark.asyncio
    async def test_latest_and_recent_are_newest_first(self, ledger: RunLedger):
        ids = []
        for _ in range(3):
            run_id = await ledger.start("job")
            await ledger.finish(run_id, JobRunStatus.SUCCESS)
            ids.append(run_id)
        await ledger.start("other-job")

        latest = await ledger.latest("job")
        recent = await ledger.recent("job", limit=2)

        assert latest.id == ids[-1]
        assert [r.id for r in recent] == [ids[2], ids[1]]
        assert latest.started_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_latest_none_when_never_ran(self, ledger: RunLedger):
        assert await ledger.latest("job") is None

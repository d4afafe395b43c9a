"""Unit tests for jobs_engine.scheduling.clock."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time

import pytest
from jobs_engine.scheduling.clock import resolve_tenant_clock


class TestResolveTenantClock:
    def test_brisbane_is_ten_hours_ahead(self):
        now = datetime(2025, 10, 15, 8, 0, tzinfo=UTC)
        clock = resolve_tenant_clock("Australia/Brisbane", now)

        assert clock.timezone == "Australia/Brisbane"
        assert clock.local_date == date(2025, 10, 15)
        assert clock.local_time == time(18, 0)
        assert clock.fell_back is False

    def test_local_date_rolls_over_before_utc(self):
        now = datetime(2025, 10, 15, 20, 30, tzinfo=UTC)
        clock = resolve_tenant_clock("Australia/Brisbane", now)

        assert clock.local_date == date(2025, 10, 16)
        assert clock.local_time == time(6, 30)

    def test_daylight_saving_zone(self):
        # Sydney is on AEDT (UTC+11) in January.
        now = datetime(2025, 1, 10, 5, 0, tzinfo=UTC)
        clock = resolve_tenant_clock("Australia/Sydney", now)

        assert clock.local_time == time(16, 0)

    @pytest.mark.parametrize("name", [None, "", "   ", "Mars/Olympus_Mons"])
    def test_missing_or_unknown_timezone_falls_back_to_utc(self, name, caplog):
        now = datetime(2025, 10, 15, 8, 0, tzinfo=UTC)

        with caplog.at_level(logging.WARNING, logger="jobs_engine.scheduling.clock"):
            clock = resolve_tenant_clock(name, now, agency_id="agency-9")

        assert clock.timezone == "UTC"
        assert clock.fell_back is True
        assert clock.local_time == time(8, 0)
        assert "agency-9" in caplog.text

    def test_custom_default_timezone(self):
        now = datetime(2025, 10, 15, 8, 0, tzinfo=UTC)
        clock = resolve_tenant_clock(None, now, default_timezone="Australia/Perth")

        assert clock.timezone == "Australia/Perth"
        assert clock.local_time == time(16, 0)

    def test_invalid_default_timezone_raises(self):
        now = datetime(2025, 10, 15, 8, 0, tzinfo=UTC)
        with pytest.raises(ValueError, match="Invalid default timezone"):
            resolve_tenant_clock(None, now, default_timezone="Not/AZone")

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            resolve_tenant_clock("UTC", datetime(2025, 10, 15, 8, 0))

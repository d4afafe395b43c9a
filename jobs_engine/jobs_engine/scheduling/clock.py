"""Tenant clock resolution.

Converts the shared UTC scheduler tick into the wall-clock date and time of
day an agency actually observes.  Agencies store an IANA timezone name; a
missing or unknown name is never silently ignored: the resolver falls back
to the configured default (``UTC``), flags the result, and logs a warning
naming the agency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True)
class TenantClock:
    """An agency's view of a single UTC instant."""

    timezone: str
    local_date: date
    local_time: time
    fell_back: bool = False


def _load_zone(name: str | None) -> ZoneInfo | None:
    if not name or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return None


def resolve_tenant_clock(
    timezone_name: str | None,
    now: datetime,
    *,
    agency_id: str | None = None,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> TenantClock:
    """Project the instant *now* onto an agency's local calendar.

    Parameters
    ----------
    timezone_name:
        The agency's stored IANA timezone, e.g. ``"Australia/Brisbane"``.
    now:
        The scheduler instant.  Must be timezone-aware.
    agency_id:
        Used only to name the agency in the fallback warning.
    default_timezone:
        Zone used when *timezone_name* is missing or unknown.

    Returns
    -------
    TenantClock
        Local date and time of day, the zone actually applied, and whether
        the fallback was taken.

    Raises
    ------
    ValueError
        If *now* is naive, or *default_timezone* itself is not a valid zone.
    """
    if now.tzinfo is None or now.tzinfo.utcoffset(now) is None:
        raise ValueError("now must be a timezone-aware datetime")

    zone = _load_zone(timezone_name)
    fell_back = zone is None
    if zone is None:
        zone = _load_zone(default_timezone)
        if zone is None:
            raise ValueError(f"Invalid default timezone: {default_timezone!r}")
        logger.warning(
            "Agency %s has missing or unknown timezone %r; falling back to %s",
            agency_id or "<unknown>",
            timezone_name,
            default_timezone,
        )

    local = now.astimezone(zone)
    return TenantClock(
        timezone=zone.key,
        local_date=local.date(),
        local_time=local.time(),
        fell_back=fell_back,
    )


def utcnow() -> datetime:
    """Return the current UTC instant (timezone-aware)."""
    return datetime.now(UTC)

"""Civil day and month boundaries in a named timezone.

Both helpers return inclusive ranges whose ends carry millisecond precision
(``23:59:59.999``), expressed as timezone-aware datetimes in the requested
zone so that they compare correctly against UTC timestamps in the database.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone, tzinfo
from typing import NamedTuple
from zoneinfo import ZoneInfo

END_OF_DAY_MICROSECOND = 999_000


class DateRange(NamedTuple):
    start: datetime
    end: datetime


def _resolve_zone(tz: tzinfo | str) -> tzinfo:
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def local_now(tz: tzinfo | str, instant: datetime | None = None) -> datetime:
    """Return ``instant`` (default: now) converted to ``tz``; naive input is read as UTC."""
    zone = _resolve_zone(tz)
    if instant is None:
        return datetime.now(zone)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone)


def day_range(instant: datetime, tz: tzinfo | str) -> DateRange:
    local = local_now(tz, instant)
    zone = local.tzinfo
    start = datetime(local.year, local.month, local.day, tzinfo=zone)
    end = datetime(
        local.year, local.month, local.day, 23, 59, 59, END_OF_DAY_MICROSECOND, tzinfo=zone
    )
    return DateRange(start, end)


def month_range(instant: datetime, tz: tzinfo | str) -> DateRange:
    local = local_now(tz, instant)
    zone = local.tzinfo
    last_day = calendar.monthrange(local.year, local.month)[1]
    start = datetime(local.year, local.month, 1, tzinfo=zone)
    end = datetime(
        local.year, local.month, last_day, 23, 59, 59, END_OF_DAY_MICROSECOND, tzinfo=zone
    )
    return DateRange(start, end)

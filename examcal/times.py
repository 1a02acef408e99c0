"""
Exam time resolution.

An exam row carries a calendar date and a wall-clock start time with no zone.
Both only mean something once paired with the zone the exam takes place in:

    2025-06-10 09:00 in Europe/Madrid  ->  2025-06-10T07:00:00Z (CEST, UTC+2)
    2025-01-09 09:00 in Europe/Madrid  ->  2025-01-09T08:00:00Z (CET,  UTC+1)

Never build a naive datetime and ask for its UTC value: that silently applies
the host's offset instead of the exam zone's offset.
"""

from __future__ import annotations

import re
from datetime import date as date_type
from datetime import datetime, timedelta, timezone
from datetime import time as time_type
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from examcal.errors import InvalidTimeError
from examcal.model import ResolvedTimes

DEFAULT_DURATION_MINUTES = 60

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def _parse_date(value: Union[str, date_type, None]) -> date_type:
    """
    Accept a date object or 'YYYY-MM-DD'.
    Raises InvalidTimeError for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date_type):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidTimeError(f"Missing exam date: {value!r}")

    m = _DATE_RE.match(value.strip())
    if not m:
        raise InvalidTimeError(f"Invalid date format: {value!r}")
    try:
        return date_type(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError as exc:
        raise InvalidTimeError(f"Invalid date value: {value!r}") from exc


def _parse_time(value: Union[str, time_type, None]) -> time_type:
    """
    Accept a time object, 'H:MM', 'HH:MM' or 'HH:MM:SS'.
    """
    if isinstance(value, time_type):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        raise InvalidTimeError(f"Missing exam time: {value!r}")

    m = _TIME_RE.match(value.strip())
    if not m:
        raise InvalidTimeError(f"Invalid time format: {value!r}")
    h = int(m.group(1))
    mi = int(m.group(2))
    s = int(m.group(3) or 0)
    if not (0 <= h <= 23 and 0 <= mi <= 59 and 0 <= s <= 59):
        raise InvalidTimeError(f"Invalid time value: {value!r}")
    return time_type(h, mi, s)


def normalize_duration(duration_minutes: Any) -> int:
    """
    Return a positive duration in minutes.

    Missing, non-numeric and non-positive values fall back to
    DEFAULT_DURATION_MINUTES (rows are tolerated, not rejected).
    """
    if isinstance(duration_minutes, bool):
        return DEFAULT_DURATION_MINUTES
    try:
        minutes = int(duration_minutes)
    except (TypeError, ValueError):
        return DEFAULT_DURATION_MINUTES
    return minutes if minutes > 0 else DEFAULT_DURATION_MINUTES


def get_zone(time_zone: str) -> ZoneInfo:
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimeError(f"Unknown time zone: {time_zone!r}") from exc


def resolve(
    date: Union[str, date_type, None],
    local_time: Union[str, time_type, None],
    duration_minutes: Optional[Any],
    time_zone: str,
) -> ResolvedTimes:
    """
    Interpret date + local_time as wall-clock time in `time_zone` and return
    absolute UTC start/end instants.

    Wall-clock times inside a DST gap or overlap use fold=0, i.e. the offset
    in effect before the transition.
    """
    day = _parse_date(date)
    clock = _parse_time(local_time)
    zone = get_zone(time_zone)

    local_start = datetime.combine(day, clock).replace(tzinfo=zone)
    start = local_start.astimezone(timezone.utc)
    end = start + timedelta(minutes=normalize_duration(duration_minutes))
    return ResolvedTimes(start=start, end=end)


def utc_offset_hours(date: Union[str, date_type], local_time: Union[str, time_type], time_zone: str) -> float:
    """
    UTC offset (in hours) that applies to a wall-clock time in a zone.
    Handy for diagnostics ("is this exam in summer or winter time?").
    """
    day = _parse_date(date)
    clock = _parse_time(local_time)
    local = datetime.combine(day, clock).replace(tzinfo=get_zone(time_zone))
    offset = local.utcoffset() or timedelta(0)
    return offset.total_seconds() / 3600

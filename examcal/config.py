"""
Configuration helpers.

- CalendarOptions from JSON-like mappings (camelCase or snake_case keys)
- reminder lead times from ISO-8601 durations ("-P1D", "-PT30M")
- logging setup for the command line

The library itself never reads the environment; callers pass options in.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from examcal.errors import ConfigError
from examcal.model import DEFAULT_CALENDAR_NAME, DEFAULT_REMINDER_MINUTES, DEFAULT_TIME_ZONE, CalendarOptions

_OPTION_KEYS = {
    "calendarName": "calendar_name",
    "calendar_name": "calendar_name",
    "name": "calendar_name",
    "timeZone": "time_zone",
    "time_zone": "time_zone",
    "reminderMinutes": "reminder_minutes",
    "reminder_minutes": "reminder_minutes",
    "useLegacyClientFormat": "use_legacy_client_format",
    "use_legacy_client_format": "use_legacy_client_format",
}

_DAYS_RE = re.compile(r"P(\d+)D", re.IGNORECASE)
_TIME_PART_RE = re.compile(r"T([0-9HMS]+)", re.IGNORECASE)
_HOURS_RE = re.compile(r"(\d+)H", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)M", re.IGNORECASE)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"


def validate_time_zone(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"Invalid time zone: {name!r}")
    try:
        ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown time zone: {name!r}") from exc
    return name.strip()


def validate_reminders(values: Any) -> tuple[int, ...]:
    if values is None:
        return DEFAULT_REMINDER_MINUTES
    if isinstance(values, (int, str)) and not isinstance(values, bool):
        values = [values]
    out: list[int] = []
    for v in values:
        if isinstance(v, bool):
            raise ConfigError(f"Invalid reminder: {v!r}")
        try:
            minutes = int(v)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid reminder: {v!r}") from exc
        if minutes <= 0:
            raise ConfigError(f"Reminder must be a positive number of minutes: {v!r}")
        out.append(minutes)
    return tuple(out)


def options_from_mapping(data: Optional[Mapping[str, Any]]) -> CalendarOptions:
    """
    Build validated CalendarOptions.

    Missing keys take the defaults; unknown keys are rejected so that typos in
    option files do not go unnoticed.
    """
    values: dict[str, Any] = {}
    for key, value in (data or {}).items():
        target = _OPTION_KEYS.get(key)
        if target is None:
            raise ConfigError(f"Unknown calendar option: {key!r}")
        values[target] = value

    name = values.get("calendar_name")
    name = str(name).strip() if name is not None else ""

    return CalendarOptions(
        calendar_name=name or DEFAULT_CALENDAR_NAME,
        time_zone=validate_time_zone(values.get("time_zone", DEFAULT_TIME_ZONE)),
        reminder_minutes=validate_reminders(values.get("reminder_minutes")),
        use_legacy_client_format=bool(values.get("use_legacy_client_format", False)),
    )


def load_options_file(path: str | Path) -> CalendarOptions:
    """
    Read CalendarOptions from a JSON file.
    """
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read options file {p}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Options file {p} must contain a JSON object")
    return options_from_mapping(data)


def parse_reminder_durations(values: Iterable[str]) -> Optional[list[int]]:
    """
    Convert negative ISO-8601 durations into minutes before the event.

        ["-P1D", "-PT2H", "-PT30M"] -> [1440, 120, 30]

    Positive or unparseable values are ignored. The result is deduplicated
    and sorted so the longest lead time comes first. Returns None when no
    value was given at all (caller keeps its default).
    """
    values = [v for v in values if v is not None]
    if not values:
        return None

    minutes: set[int] = set()
    for iso in values:
        iso = iso.strip()
        if not iso.startswith("-P"):
            continue
        dur = iso[1:]
        total = 0
        d = _DAYS_RE.search(dur)
        if d:
            total += int(d.group(1)) * 24 * 60
        t = _TIME_PART_RE.search(dur)
        if t:
            h = _HOURS_RE.search(t.group(1))
            m = _MINUTES_RE.search(t.group(1))
            if h:
                total += int(h.group(1)) * 60
            if m:
                total += int(m.group(1))
        if total > 0:
            minutes.add(total)
    return sorted(minutes, reverse=True)


def configure_logging(verbose: bool = False) -> None:
    """
    Log to stderr. INFO by default, DEBUG with --verbose.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

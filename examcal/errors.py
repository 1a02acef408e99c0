"""
Error taxonomy.

Per-record problems (InvalidTimeError) are recovered inside feed generation.
Boundary problems (tokens, upstream fetches, missing calendars) propagate to
the caller, which turns them into an HTTP status or a CLI exit code.
"""

from __future__ import annotations


class ExamCalendarError(Exception):
    """Base class for every error raised by examcal."""


class InvalidTimeError(ExamCalendarError, ValueError):
    """An exam record's date or time cannot be turned into an instant."""


class MalformedTokenError(ExamCalendarError):
    """An access token does not decode into (calendar_id, owner_id, issued_at)."""


class UpstreamFetchError(ExamCalendarError):
    """The exam rows or the saved calendar could not be loaded."""


class SerializationError(ExamCalendarError):
    """A rendered content line is not valid iCalendar. Always a bug."""


class CalendarNotFoundError(ExamCalendarError):
    """No saved calendar with this id belongs to the token's owner."""


class ConfigError(ExamCalendarError, ValueError):
    """Calendar options are invalid (unknown time zone, bad reminder, ...)."""

"""
Central data model definitions used across the project.

This module defines the canonical structure of exams, options and rendered
calendar objects so that:
- filtering, time resolution and rendering share the same field names
- rendered events are immutable once built (safe to reuse for caching)
- serialization lives in one place (CalendarDocument.to_ical)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime
from datetime import time as time_type
from typing import TYPE_CHECKING, Optional, Tuple, Union

if TYPE_CHECKING:
    from examcal.export_ics import ClientFormat


DEFAULT_CALENDAR_NAME = "Exams"
DEFAULT_TIME_ZONE = "Europe/Madrid"
DEFAULT_REMINDER_MINUTES: Tuple[int, ...] = (60,)


@dataclass(frozen=True)
class ExamRecord:
    """
    One exam sitting as delivered by the exam source.

    date and time are kept as delivered (text or date/time objects);
    they are only interpreted by examcal.times.resolve.
    """

    id: Union[int, str]
    subject: str
    code: str
    date: Union[str, date_type, None]
    time: Union[str, time_type, None]
    duration_minutes: Optional[int] = None
    location: str = ""
    comment: str = ""
    acronym: str = ""
    school: Optional[str] = None
    degree: Optional[str] = None
    year: Optional[str] = None
    semester: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class CalendarOptions:
    """
    Calendar-level settings injected by the caller.

    Use CalendarOptions.from_mapping (examcal.config) to build one from
    JSON / query data; the constructor does not validate.
    """

    calendar_name: str = DEFAULT_CALENDAR_NAME
    time_zone: str = DEFAULT_TIME_ZONE
    reminder_minutes: Tuple[int, ...] = DEFAULT_REMINDER_MINUTES
    use_legacy_client_format: bool = False

    @classmethod
    def from_mapping(cls, data) -> "CalendarOptions":
        from examcal.config import options_from_mapping

        return options_from_mapping(data)


@dataclass(frozen=True)
class ResolvedTimes:
    """Absolute start/end instants of one exam, both aware UTC datetimes."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class Reminder:
    """A VALARM that fires `minutes` before the event start."""

    minutes: int
    description: str


@dataclass(frozen=True)
class EventBlock:
    """
    One rendered VEVENT. Text fields are stored unescaped.
    """

    uid: str
    start: datetime
    end: datetime
    summary: str
    description: str
    location: str
    created: datetime
    last_modified: datetime
    status: str = "CONFIRMED"
    transparency: str = "OPAQUE"
    categories: Tuple[str, ...] = ()
    reminders: Tuple[Reminder, ...] = ()


@dataclass(frozen=True)
class CalendarDocument:
    """
    A complete feed: envelope metadata plus ordered events.

    The client format decides header/property order and quirks;
    see examcal.export_ics.
    """

    name: str
    time_zone: str
    events: Tuple[EventBlock, ...]
    client_format: "ClientFormat" = field(compare=False)

    def to_ical(self) -> str:
        """Serialize to iCalendar text (CRLF line endings, folded lines)."""
        return self.client_format.serialize(self)

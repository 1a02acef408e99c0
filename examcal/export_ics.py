"""
iCalendar (.ics) rendering.

We turn exam records into VEVENT blocks that calendar clients can subscribe to:
- Google Calendar
- Outlook
- Apple Calendar
- the university's own calendar importer (legacy format, see LegacyIcsFormat)

Every client gets UTC start/end times (no VTIMEZONE block), CRLF line endings,
lines folded at 75 octets and escaped text values.

The two output flavours are two ClientFormat classes. LegacyIcsFormat lists
every difference from IcsFormat explicitly; nothing else branches on the
format.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from examcal.errors import SerializationError
from examcal.model import CalendarDocument, CalendarOptions, EventBlock, ExamRecord, Reminder, ResolvedTimes
from examcal.times import normalize_duration

logger = logging.getLogger(__name__)

# Event UIDs are uuid5(UID_NAMESPACE, "exam:<id>")@UID_DOMAIN. Changing either
# value makes every subscribed client see a brand-new set of events.
UID_NAMESPACE = uuid.UUID("6f1c3c0e-5b7a-5d4e-9a51-2f0e8c7b4a10")
UID_DOMAIN = "examcal"

MAX_LINE_OCTETS = 75

# Room words that make a comment part of the location (legacy format).
_ROOM_KEYWORDS = re.compile(r"\b(aula|sala|laboratorio|lab|room|edificio)\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def escape_text(text: str, keep_commas: bool = False) -> str:
    """
    Escape a TEXT value (RFC 5545 3.3.11): backslash, semicolon, comma, newline.
    """
    out = text.replace("\\", "\\\\").replace(";", "\\;")
    if not keep_commas:
        out = out.replace(",", "\\,")
    return out.replace("\r\n", "\\n").replace("\r", "\\n").replace("\n", "\\n")


def fold_line(line: str) -> str:
    """
    Fold a content line so that no physical line exceeds 75 octets.

    Continuation lines start with a single space. Multi-byte UTF-8 characters
    are never split.
    """
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    parts: list[str] = []
    current = ""
    current_len = 0
    limit = MAX_LINE_OCTETS
    for ch in line:
        n = len(ch.encode("utf-8"))
        if current_len + n > limit:
            parts.append(current)
            # the leading space of a continuation line counts too
            current = " "
            current_len = 1
        current += ch
        current_len += n
    parts.append(current)
    return "\r\n".join(parts)


def format_utc(dt: datetime) -> str:
    """aware datetime -> 'YYYYMMDDThhmmssZ'"""
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def event_uid(exam_id: object) -> str:
    """Stable UID for an exam id; identical across refreshes."""
    return f"{uuid.uuid5(UID_NAMESPACE, f'exam:{exam_id}')}@{UID_DOMAIN}"


def _clean(value: object) -> str:
    return "" if value is None else str(value).strip()


def _humanize_minutes(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} minutes"
    if minutes % (24 * 60) == 0:
        return f"{minutes // (24 * 60)} day(s)"
    return f"{round(minutes / 60)} hour(s)"


# ---------------------------------------------------------------------------
# Client formats
# ---------------------------------------------------------------------------


class IcsFormat:
    """
    Standard RFC 5545 output, understood by Google, Outlook and Apple clients.
    """

    prodid = "-//examcal//Exam Calendar//EN"
    categories: tuple[str, ...] = ("EXAM", "UNIVERSITY")

    # -- event content ----------------------------------------------------

    def summary(self, record: ExamRecord) -> str:
        return _clean(record.subject) or "Exam"

    def description(self, record: ExamRecord) -> str:
        """
        Fixed order: code, location, school, degree, year, semester,
        acronym, comment, duration. Empty fields are left out.
        """
        labelled = [
            ("Code", record.code),
            ("Location", record.location),
            ("School", record.school),
            ("Degree", record.degree),
            ("Year", record.year),
            ("Semester", record.semester),
            ("Acronym", record.acronym),
        ]
        lines = [f"{label}: {_clean(value)}" for label, value in labelled if _clean(value)]
        comment = _clean(record.comment)
        if comment:
            lines.append(comment)
        lines.append(f"Duration: {normalize_duration(record.duration_minutes)} minutes")
        return "\n".join(lines)

    def location(self, record: ExamRecord) -> str:
        return _clean(record.location)

    def reminder(self, record: ExamRecord, minutes: int) -> Reminder:
        text = f"Reminder: {self.summary(record)} exam in {_humanize_minutes(minutes)}"
        return Reminder(minutes=minutes, description=text)

    # -- rendering ----------------------------------------------------------

    def header_lines(self, doc: CalendarDocument) -> list[str]:
        return [
            "VERSION:2.0",
            f"PRODID:{self.prodid}",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
            f"X-WR-CALNAME:{escape_text(doc.name)}",
            f"X-WR-TIMEZONE:{doc.time_zone}",
        ]

    def event_properties(self, ev: EventBlock) -> list[str]:
        lines = [
            f"UID:{ev.uid}",
            f"DTSTAMP:{format_utc(ev.last_modified)}",
            f"DTSTART:{format_utc(ev.start)}",
            f"DTEND:{format_utc(ev.end)}",
            f"SUMMARY:{escape_text(ev.summary)}",
            f"DESCRIPTION:{escape_text(ev.description)}",
            f"LOCATION:{escape_text(ev.location)}",
            f"CREATED:{format_utc(ev.created)}",
            f"LAST-MODIFIED:{format_utc(ev.last_modified)}",
            f"STATUS:{ev.status}",
            f"TRANSP:{ev.transparency}",
        ]
        if ev.categories:
            lines.append("CATEGORIES:" + ",".join(escape_text(c) for c in ev.categories))
        return lines

    def alarm_lines(self, reminder: Reminder) -> list[str]:
        return [
            "BEGIN:VALARM",
            "ACTION:DISPLAY",
            f"DESCRIPTION:{escape_text(reminder.description)}",
            f"TRIGGER:-PT{reminder.minutes}M",
            "END:VALARM",
        ]

    def serialize(self, doc: CalendarDocument) -> str:
        lines = ["BEGIN:VCALENDAR"]
        lines.extend(self.header_lines(doc))
        for ev in doc.events:
            lines.append("BEGIN:VEVENT")
            lines.extend(self.event_properties(ev))
            for reminder in ev.reminders:
                lines.extend(self.alarm_lines(reminder))
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")

        for line in lines:
            if "\r" in line or "\n" in line:
                raise SerializationError(f"Unescaped line break in content line: {line[:40]!r}")

        # ICS standard uses CRLF
        return "\r\n".join(fold_line(line) for line in lines) + "\r\n"


class LegacyIcsFormat(IcsFormat):
    """
    Output for the university calendar importer and the clients that sync
    through it. Differences from IcsFormat, all of them:

    - PRODID "-//UPV-Cal//Exam API 1.0//ES", written before VERSION
    - X-APPLE-CALENDAR-COLOR instead of X-WR-TIMEZONE in the header
    - event properties in the importer's order (DTSTART first, SUMMARY late)
    - SEQUENCE:0, UPV_BGCOLOR and UPV_FGCOLOR on every event, no CATEGORIES
    - description is "Subject" or "Subject - comment"
    - a comment that names a room is appended to the location
    - commas in LOCATION stay unescaped (the importer shows backslashes)
    """

    prodid = "-//UPV-Cal//Exam API 1.0//ES"
    categories: tuple[str, ...] = ()
    calendar_color = "#0252D4"
    foreground_color = "#ffffff"

    def description(self, record: ExamRecord) -> str:
        subject = self.summary(record)
        comment = _clean(record.comment)
        return f"{subject} - {comment}" if comment else subject

    def location(self, record: ExamRecord) -> str:
        place = _clean(record.location)
        comment = _clean(record.comment)
        if comment and _ROOM_KEYWORDS.search(comment):
            return f"{place} - {comment}" if place else comment
        return place

    def header_lines(self, doc: CalendarDocument) -> list[str]:
        return [
            f"PRODID:{self.prodid}",
            "VERSION:2.0",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
            f"X-WR-CALNAME:{escape_text(doc.name)}",
            f"X-APPLE-CALENDAR-COLOR:{self.calendar_color}",
        ]

    def event_properties(self, ev: EventBlock) -> list[str]:
        return [
            f"DTSTART:{format_utc(ev.start)}",
            f"DTEND:{format_utc(ev.end)}",
            f"DTSTAMP:{format_utc(ev.last_modified)}",
            f"UID:{ev.uid}",
            f"CREATED:{format_utc(ev.created)}",
            f"DESCRIPTION:{escape_text(ev.description)}",
            f"LAST-MODIFIED:{format_utc(ev.last_modified)}",
            f"LOCATION:{escape_text(ev.location, keep_commas=True)}",
            "SEQUENCE:0",
            f"STATUS:{ev.status}",
            f"SUMMARY:{escape_text(ev.summary)}",
            f"TRANSP:{ev.transparency}",
            f"UPV_BGCOLOR:{self.calendar_color}",
            f"UPV_FGCOLOR:{self.foreground_color}",
        ]


ClientFormat = IcsFormat

DEFAULT_FORMAT = IcsFormat()
LEGACY_FORMAT = LegacyIcsFormat()


def format_for(options: CalendarOptions) -> ClientFormat:
    return LEGACY_FORMAT if options.use_legacy_client_format else DEFAULT_FORMAT


# ---------------------------------------------------------------------------
# Event formatting
# ---------------------------------------------------------------------------


def format_event(
    record: ExamRecord,
    resolved: ResolvedTimes,
    options: CalendarOptions,
    stamp: datetime,
    client_format: Optional[ClientFormat] = None,
) -> EventBlock:
    """
    Build the EventBlock for one exam.

    `stamp` is used for CREATED/LAST-MODIFIED/DTSTAMP unless the record
    carries its own created_at.
    """
    fmt = client_format or format_for(options)
    created = record.created_at or stamp
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)

    return EventBlock(
        uid=event_uid(record.id),
        start=resolved.start,
        end=resolved.end,
        summary=fmt.summary(record),
        description=fmt.description(record),
        location=fmt.location(record),
        created=created,
        last_modified=created,
        categories=fmt.categories,
        reminders=tuple(fmt.reminder(record, m) for m in options.reminder_minutes),
    )

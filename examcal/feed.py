"""
Feed assembly.

    records + filter spec + options
        -> filter (input order kept)
        -> resolve times, format events (bad rows skipped)
        -> placeholder event if nothing is left
        -> CalendarDocument

Generation is pure: no I/O and no shared state. With the same inputs and the
same `now`, the output is byte-identical, which keeps ETags and client-side
change detection stable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional

from examcal.config import validate_time_zone
from examcal.errors import InvalidTimeError
from examcal.export_ics import format_event, format_for
from examcal.filters import filter_records
from examcal.mapper import record_from_row
from examcal.model import CalendarDocument, CalendarOptions, EventBlock, ExamRecord
from examcal.times import resolve

logger = logging.getLogger(__name__)

PLACEHOLDER_SUMMARY = "No Exams Found"
PLACEHOLDER_UID = "no-exams-placeholder@examcal"
# Far from any academic term a real exam could fall in.
PLACEHOLDER_START = datetime(2000, 1, 1, 12, 0, tzinfo=timezone.utc)
PLACEHOLDER_DESCRIPTION = (
    "No exams match your current filters or there are no exams available. "
    "Please adjust your filters and try again, or check back later for new exam schedules."
)


def placeholder_event(stamp: datetime) -> EventBlock:
    """
    The single event used when no exam survives filtering.

    Some clients reject or silently ignore a feed without events on first
    subscription.
    """
    return EventBlock(
        uid=PLACEHOLDER_UID,
        start=PLACEHOLDER_START,
        end=PLACEHOLDER_START + timedelta(hours=1),
        summary=PLACEHOLDER_SUMMARY,
        description=PLACEHOLDER_DESCRIPTION,
        location="",
        created=stamp,
        last_modified=stamp,
        status="TENTATIVE",
        transparency="TRANSPARENT",
        categories=("INFO",),
    )


def _as_record(item: Any) -> Optional[ExamRecord]:
    if isinstance(item, ExamRecord):
        return item
    if isinstance(item, Mapping):
        return record_from_row(item)
    logger.warning("Skipping exam of unsupported type %s", type(item).__name__)
    return None


def build_calendar(
    records: Iterable[ExamRecord | Mapping[str, Any]],
    filter_spec: Optional[Mapping[str, Any]] = None,
    options: Optional[CalendarOptions] = None,
    now: Optional[datetime] = None,
) -> CalendarDocument:
    """
    Filter, format and wrap exam records into a CalendarDocument.

    `now` stamps events without their own created_at; pass a fixed value for
    reproducible output. Records whose date/time cannot be resolved are
    dropped with a warning; they never abort the feed. An unknown
    options.time_zone raises ConfigError before any record is looked at.
    """
    options = options or CalendarOptions()
    validate_time_zone(options.time_zone)
    stamp = now or datetime.now(timezone.utc)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    stamp = stamp.astimezone(timezone.utc).replace(microsecond=0)
    fmt = format_for(options)

    candidates = [r for r in (_as_record(item) for item in records) if r is not None]
    retained = filter_records(candidates, filter_spec)

    events: list[EventBlock] = []
    skipped = 0
    for record in retained:
        try:
            resolved = resolve(record.date, record.time, record.duration_minutes, options.time_zone)
        except InvalidTimeError as exc:
            skipped += 1
            logger.warning("Skipping exam %r (%s): %s", record.id, record.subject, exc)
            continue
        events.append(format_event(record, resolved, options, stamp, client_format=fmt))

    if skipped:
        logger.warning("Skipped %d of %d matching exams with unusable date/time", skipped, len(retained))

    if not events:
        logger.info("No exams to publish for %r, adding placeholder event", options.calendar_name)
        events.append(placeholder_event(stamp))

    logger.debug(
        "Built calendar %r: %d input, %d matching, %d events",
        options.calendar_name,
        len(candidates),
        len(retained),
        len(events),
    )
    return CalendarDocument(
        name=options.calendar_name,
        time_zone=options.time_zone,
        events=tuple(events),
        client_format=fmt,
    )


def generate(
    records: Iterable[ExamRecord | Mapping[str, Any]],
    filter_spec: Optional[Mapping[str, Any]] = None,
    options: Optional[CalendarOptions] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Return the iCalendar text for the given exams. See build_calendar.
    """
    return build_calendar(records, filter_spec, options, now=now).to_ical()


def count_events(ics_text: str) -> int:
    return ics_text.count("BEGIN:VEVENT")


def is_placeholder_feed(ics_text: str) -> bool:
    """True when the feed only carries the 'No Exams Found' event."""
    return count_events(ics_text) == 1 and f"UID:{PLACEHOLDER_UID}" in ics_text

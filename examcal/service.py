"""
Feed service: the only place where examcal waits on I/O.

    token -> saved calendar (store) -> exam rows (source) -> feed text

Both lookups run in worker threads and are awaited once, before generation
starts. Generation itself is synchronous and pure (examcal.feed).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from examcal import tokens
from examcal.config import parse_reminder_durations
from examcal.errors import CalendarNotFoundError, ExamCalendarError, MalformedTokenError, UpstreamFetchError
from examcal.feed import generate
from examcal.mapper import records_from_rows
from examcal.model import CalendarOptions
from examcal.response import FeedResponse, build_feed_response, error_response
from examcal.storage import SavedCalendar

logger = logging.getLogger(__name__)


class CalendarStore(Protocol):
    def get(self, calendar_id: str) -> Optional[SavedCalendar]: ...


class ExamSource(Protocol):
    def fetch_rows(self) -> List[Dict[str, Any]]: ...


async def _in_thread(what: str, fn, *args, timeout: Optional[float] = None):
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout)
    except asyncio.TimeoutError as exc:
        raise UpstreamFetchError(f"Timed out loading {what}") from exc
    except ExamCalendarError:
        raise
    except Exception as exc:
        # store/source adapters outside examcal may raise anything
        raise UpstreamFetchError(f"Could not load {what}: {exc}") from exc


async def render_feed(
    calendar_id: str,
    token: str,
    store: CalendarStore,
    source: ExamSource,
    options: Optional[CalendarOptions] = None,
    now: Optional[datetime] = None,
    fetch_timeout: Optional[float] = None,
) -> tuple[SavedCalendar, str]:
    """
    Produce the feed for a share link.

    Raises MalformedTokenError, CalendarNotFoundError or UpstreamFetchError.
    No feed is produced when loading fails, so an upstream failure never looks
    like an empty calendar.
    """
    decoded = tokens.verify(token, calendar_id)

    calendar = await _in_thread("calendar", store.get, decoded.calendar_id, timeout=fetch_timeout)
    if calendar is None or calendar.owner_id != decoded.owner_id:
        raise CalendarNotFoundError(f"Calendar {calendar_id} not found")

    rows = await _in_thread("exam rows", source.fetch_rows, timeout=fetch_timeout)
    logger.info("Loaded %d exam rows for calendar %s (%r)", len(rows), calendar.id, calendar.name)

    options = options or CalendarOptions()
    if calendar.name:
        options = replace(options, calendar_name=calendar.name)

    return calendar, generate(records_from_rows(rows), calendar.filters, options, now=now)


async def serve_feed(
    method: str,
    calendar_id: str,
    token: Optional[str],
    store: CalendarStore,
    source: ExamSource,
    options: Optional[CalendarOptions] = None,
    reminders: Iterable[str] = (),
    if_none_match: Optional[str] = None,
    now: Optional[datetime] = None,
    fetch_timeout: Optional[float] = None,
) -> FeedResponse:
    """
    Answer a GET/HEAD for /api/calendars/<calendar_id>/ical?token=...

    `reminders` are the raw "reminder" query values ("-P1D", "-PT30M").
    """
    if method.upper() not in ("GET", "HEAD"):
        return build_feed_response(method, "", None)

    options = options or CalendarOptions()
    minutes = parse_reminder_durations(reminders)
    if minutes is not None:
        options = replace(options, reminder_minutes=tuple(minutes))

    try:
        if not token:
            raise MalformedTokenError("Token required")
        calendar, text = await render_feed(
            calendar_id, token, store, source, options, now=now, fetch_timeout=fetch_timeout
        )
    except ExamCalendarError as exc:
        logger.warning("Feed request for calendar %s failed: %s", calendar_id, exc)
        return error_response(exc, method)

    return build_feed_response(method, text, calendar.name, if_none_match)

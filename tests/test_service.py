import asyncio
import time
import unittest
from datetime import datetime, timezone

from examcal import tokens
from examcal.errors import CalendarNotFoundError, MalformedTokenError, UpstreamFetchError
from examcal.feed import is_placeholder_feed
from examcal.model import CalendarOptions
from examcal.service import render_feed, serve_feed
from examcal.storage import SavedCalendar

NOW = datetime(2025, 5, 1, 8, 0, tzinfo=timezone.utc)

ROWS = [
    {"id": 7, "subject": "Calculus II", "code": "11520", "date": "2025-06-10", "time": "09:00",
     "duration_minutes": 120, "school": "ETSINF"},
    {"id": 8, "subject": "Physics", "code": "11521", "date": "2025-06-11", "time": "09:00", "school": "ETSIT"},
]


class FakeStore:
    def __init__(self, *calendars: SavedCalendar) -> None:
        self.calendars = {c.id: c for c in calendars}

    def get(self, calendar_id):
        return self.calendars.get(calendar_id)


class FakeSource:
    def __init__(self, rows=None, error=None, delay=0.0) -> None:
        self.rows = rows if rows is not None else ROWS
        self.error = error
        self.delay = delay
        self.calls = 0

    def fetch_rows(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.rows)


CAL = SavedCalendar(id="cal1", owner_id="user1", name="My Exams", filters={"school": ["ETSINF"]})


def _serve(method="GET", token=None, source=None, **kw):
    token = tokens.encode("cal1", "user1") if token is None else token
    return asyncio.run(
        serve_feed(method, "cal1", token, FakeStore(CAL), source or FakeSource(), now=NOW, **kw)
    )


class TestRenderFeed(unittest.TestCase):
    def test_success_uses_saved_filters_and_name(self) -> None:
        token = tokens.encode("cal1", "user1")
        calendar, text = asyncio.run(render_feed("cal1", token, FakeStore(CAL), FakeSource(), now=NOW))
        self.assertEqual(calendar.id, "cal1")
        self.assertIn("X-WR-CALNAME:My Exams\r\n", text)
        self.assertIn("SUMMARY:Calculus II\r\n", text)
        self.assertNotIn("Physics", text)

    def test_wrong_owner_is_not_found(self) -> None:
        token = tokens.encode("cal1", "intruder")
        with self.assertRaises(CalendarNotFoundError):
            asyncio.run(render_feed("cal1", token, FakeStore(CAL), FakeSource(), now=NOW))

    def test_token_for_other_calendar(self) -> None:
        token = tokens.encode("cal2", "user1")
        with self.assertRaises(MalformedTokenError):
            asyncio.run(render_feed("cal1", token, FakeStore(CAL), FakeSource(), now=NOW))

    def test_source_failure_is_wrapped(self) -> None:
        token = tokens.encode("cal1", "user1")
        source = FakeSource(error=ConnectionError("refused"))
        with self.assertRaises(UpstreamFetchError):
            asyncio.run(render_feed("cal1", token, FakeStore(CAL), source, now=NOW))

    def test_slow_source_times_out(self) -> None:
        token = tokens.encode("cal1", "user1")
        source = FakeSource(delay=0.5)
        with self.assertRaises(UpstreamFetchError):
            asyncio.run(render_feed("cal1", token, FakeStore(CAL), source, now=NOW, fetch_timeout=0.05))


class TestServeFeed(unittest.TestCase):
    def test_get_ok(self) -> None:
        resp = _serve()
        self.assertEqual(resp.status, 200)
        self.assertEqual(resp.headers["Content-Disposition"], 'attachment; filename="My Exams.ics"')
        self.assertIn(b"DTSTART:20250610T070000Z", resp.body)

    def test_head_matches_get(self) -> None:
        get = _serve("GET")
        head = _serve("HEAD")
        self.assertEqual(head.status, 200)
        self.assertEqual(head.headers, get.headers)
        self.assertEqual(head.body, b"")

    def test_missing_and_bad_tokens(self) -> None:
        self.assertEqual(_serve(token="").status, 401)
        self.assertEqual(_serve(token="garbage!").status, 401)

    def test_unknown_calendar(self) -> None:
        resp = asyncio.run(
            serve_feed("GET", "nope", tokens.encode("nope", "user1"), FakeStore(CAL), FakeSource(), now=NOW)
        )
        self.assertEqual(resp.status, 404)

    def test_upstream_failure_is_502_not_empty_calendar(self) -> None:
        source = FakeSource(error=OSError("db down"))
        resp = _serve(source=source)
        self.assertEqual(resp.status, 502)
        self.assertNotIn(b"VCALENDAR", resp.body)

    def test_no_matching_exams_is_placeholder(self) -> None:
        resp = _serve(source=FakeSource(rows=[]))
        self.assertEqual(resp.status, 200)
        self.assertTrue(is_placeholder_feed(resp.body.decode("utf-8")))

    def test_reminder_parameters(self) -> None:
        resp = _serve(reminders=["-P1D", "-PT30M"])
        self.assertIn(b"TRIGGER:-PT1440M", resp.body)
        self.assertIn(b"TRIGGER:-PT30M", resp.body)
        self.assertNotIn(b"TRIGGER:-PT60M", resp.body)

    def test_conditional_request(self) -> None:
        first = _serve()
        second = _serve(if_none_match=first.headers["ETag"])
        self.assertEqual(second.status, 304)
        self.assertEqual(second.body, b"")

    def test_unknown_time_zone_is_an_error_response(self) -> None:
        resp = _serve(options=CalendarOptions(time_zone="Mars/Olympus"))
        self.assertEqual(resp.status, 500)
        self.assertEqual(resp.headers["Content-Type"], "text/plain; charset=utf-8")
        self.assertNotIn(b"VCALENDAR", resp.body)

    def test_post_is_rejected_without_loading(self) -> None:
        source = FakeSource()
        resp = _serve("POST", source=source)
        self.assertEqual(resp.status, 405)
        self.assertEqual(source.calls, 0)


if __name__ == "__main__":
    unittest.main()

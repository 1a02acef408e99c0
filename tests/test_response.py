import hashlib
import unittest

from examcal.errors import (
    CalendarNotFoundError,
    ExamCalendarError,
    MalformedTokenError,
    SerializationError,
    UpstreamFetchError,
)
from examcal.feed import generate
from examcal.response import build_feed_response, error_response, etag_for, safe_filename, status_for

FEED = generate([])


class TestFilename(unittest.TestCase):
    def test_unsafe_characters_are_stripped(self) -> None:
        self.assertEqual(safe_filename("Exámenes 2º (ETSINF)"), "Exmenes 2 ETSINF.ics")
        self.assertEqual(safe_filename('my "exams"/2025'), "my exams2025.ics")

    def test_line_breaks_and_tabs_are_collapsed(self) -> None:
        self.assertEqual(safe_filename("Exams\r\nSet-Cookie: a=b"), "Exams Set-Cookie ab.ics")
        self.assertEqual(safe_filename("My\texams\n"), "My exams.ics")

    def test_header_value_has_no_control_characters(self) -> None:
        resp = build_feed_response("GET", FEED, "Exams\r\nSet-Cookie: a=b\t")
        disposition = resp.headers["Content-Disposition"]
        self.assertEqual(disposition, 'attachment; filename="Exams Set-Cookie ab.ics"')
        for ch in "\r\n\t":
            self.assertNotIn(ch, disposition)

    def test_fallback(self) -> None:
        self.assertEqual(safe_filename(""), "exams.ics")
        self.assertEqual(safe_filename(None), "exams.ics")
        self.assertEqual(safe_filename("ñ€/"), "exams.ics")


class TestFeedResponse(unittest.TestCase):
    def test_get(self) -> None:
        resp = build_feed_response("GET", FEED, "Finals")
        body = FEED.encode("utf-8")
        self.assertEqual(resp.status, 200)
        self.assertEqual(resp.body, body)
        self.assertEqual(resp.headers["Content-Type"], "text/calendar; charset=utf-8")
        self.assertEqual(resp.headers["Content-Disposition"], 'attachment; filename="Finals.ics"')
        self.assertEqual(resp.headers["Content-Length"], str(len(body)))
        self.assertEqual(resp.headers["Cache-Control"], "public, max-age=3600")
        self.assertEqual(resp.headers["ETag"], '"%s"' % hashlib.sha256(body).hexdigest())

    def test_head_has_get_headers_and_no_body(self) -> None:
        get = build_feed_response("GET", FEED, "Finals")
        head = build_feed_response("head", FEED, "Finals")
        self.assertEqual(head.status, 200)
        self.assertEqual(head.headers, get.headers)
        self.assertEqual(head.body, b"")

    def test_not_modified(self) -> None:
        etag = etag_for(FEED.encode("utf-8"))
        for value in (etag, f"W/{etag}", f'"other", {etag}', "*"):
            with self.subTest(if_none_match=value):
                resp = build_feed_response("GET", FEED, "Finals", if_none_match=value)
                self.assertEqual(resp.status, 304)
                self.assertEqual(resp.body, b"")
                self.assertEqual(resp.headers["ETag"], etag)

    def test_stale_etag_gets_full_response(self) -> None:
        resp = build_feed_response("GET", FEED, "Finals", if_none_match='"stale"')
        self.assertEqual(resp.status, 200)
        self.assertTrue(resp.body)

    def test_other_methods(self) -> None:
        resp = build_feed_response("POST", FEED, "Finals")
        self.assertEqual(resp.status, 405)
        self.assertEqual(resp.headers["Allow"], "GET, HEAD")


class TestErrors(unittest.TestCase):
    def test_status_mapping(self) -> None:
        self.assertEqual(status_for(MalformedTokenError("x")), 401)
        self.assertEqual(status_for(CalendarNotFoundError("x")), 404)
        self.assertEqual(status_for(UpstreamFetchError("x")), 502)
        self.assertEqual(status_for(SerializationError("x")), 500)
        self.assertEqual(status_for(RuntimeError("x")), 500)

    def test_upstream_message_hides_details(self) -> None:
        resp = error_response(UpstreamFetchError("connection refused to 10.0.0.3"))
        self.assertEqual(resp.status, 502)
        self.assertEqual(resp.headers["Content-Type"], "text/plain; charset=utf-8")
        self.assertIn(b"Could not load exam schedule", resp.body)
        self.assertNotIn(b"10.0.0.3", resp.body)
        self.assertNotIn(b"VCALENDAR", resp.body)

    def test_head_error_has_no_body(self) -> None:
        resp = error_response(ExamCalendarError("boom"), "HEAD")
        self.assertEqual(resp.status, 500)
        self.assertEqual(resp.body, b"")


if __name__ == "__main__":
    unittest.main()

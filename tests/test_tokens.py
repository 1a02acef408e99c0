import base64
import time
import unittest
from datetime import datetime, timezone

from examcal import tokens
from examcal.errors import MalformedTokenError


def _b64(raw: str) -> str:
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


class TestTokens(unittest.TestCase):
    def test_round_trip(self) -> None:
        before = int(time.time() * 1000)
        token = tokens.encode("2b0f7c2e-8f1d-4c51-9c3e-0d2f5a6b7c8d", "42")
        after = int(time.time() * 1000)

        decoded = tokens.decode(token)
        self.assertEqual(decoded.calendar_id, "2b0f7c2e-8f1d-4c51-9c3e-0d2f5a6b7c8d")
        self.assertEqual(decoded.owner_id, "42")
        self.assertGreaterEqual(decoded.issued_at_millis, before)
        self.assertLessEqual(decoded.issued_at_millis, after)

    def test_token_is_url_safe_without_padding(self) -> None:
        token = tokens.encode("cal-1", "owner_1", issued_at_millis=1736416800000)
        self.assertNotIn("=", token)
        self.assertNotIn("+", token)
        self.assertNotIn("/", token)

    def test_issued_at(self) -> None:
        decoded = tokens.decode(tokens.encode("cal", "me", issued_at_millis=1736416800123))
        self.assertEqual(decoded.issued_at, datetime(2025, 1, 9, 10, 0, 0, 123000, tzinfo=timezone.utc))

    def test_integer_ids(self) -> None:
        decoded = tokens.decode(tokens.encode(123, 456, issued_at_millis=0))
        self.assertEqual((decoded.calendar_id, decoded.owner_id, decoded.issued_at_millis), ("123", "456", 0))

    def test_padded_standard_base64_is_accepted(self) -> None:
        decoded = tokens.decode(_b64("cal1:user1:1700000000000"))
        self.assertEqual(decoded.calendar_id, "cal1")

    def test_url_quoted_token_is_accepted(self) -> None:
        token = _b64("c:o:1700000000000").replace("=", "%3D")
        self.assertEqual(tokens.decode(token).owner_id, "o")

    def test_malformed_tokens(self) -> None:
        bad = [
            "",
            "   ",
            "!!!not base64!!!",
            _b64("only:two"),
            _b64("a:b:c:d"),
            _b64("cal::1700000000000"),
            _b64("cal:owner:yesterday"),
            _b64("cal:owner:-5"),
            _b64("cal:own er:1700000000000"),
            _b64("cal:owner:" + "9" * 30),
        ]
        for token in bad:
            with self.subTest(token=token):
                with self.assertRaises(MalformedTokenError):
                    tokens.decode(token)

    def test_encode_rejects_delimiter_in_ids(self) -> None:
        with self.assertRaises(MalformedTokenError):
            tokens.encode("a:b", "owner")

    def test_verify_checks_calendar(self) -> None:
        token = tokens.encode("cal1", "user1")
        self.assertEqual(tokens.verify(token, "cal1").owner_id, "user1")
        with self.assertRaises(MalformedTokenError):
            tokens.verify(token, "cal2")


if __name__ == "__main__":
    unittest.main()

"""
HTTP content contract for feed endpoints.

The web layer is not part of examcal, but every route that serves a feed must
answer the same way:

- 200 with text/calendar body and an attachment filename for GET
- the same status and headers, without body, for HEAD
- 304 with the same headers when If-None-Match carries the current ETag
- a text/plain error for failures; never an empty calendar
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from examcal.errors import CalendarNotFoundError, ExamCalendarError, MalformedTokenError, UpstreamFetchError

logger = logging.getLogger(__name__)

CALENDAR_CONTENT_TYPE = "text/calendar; charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
CACHE_CONTROL = "public, max-age=3600"
DEFAULT_FILENAME = "exams"

_WHITESPACE = re.compile(r"\s+")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w -]", re.ASCII)


@dataclass(frozen=True)
class FeedResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def safe_filename(calendar_name: Optional[str]) -> str:
    """
    'Exámenes 2º (ETSINF)' -> 'Exmenes 2 ETSINF.ics'; falls back to 'exams.ics'.
    """
    # CR/LF/tab never reach the Content-Disposition header
    stem = _WHITESPACE.sub(" ", calendar_name or "")
    stem = _UNSAFE_FILENAME_CHARS.sub("", stem).strip()
    return f"{stem or DEFAULT_FILENAME}.ics"


def etag_for(body: bytes) -> str:
    return '"' + hashlib.sha256(body).hexdigest() + '"'


def _etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = [c.strip() for c in if_none_match.split(",")]
    # weak comparison, as required for If-None-Match
    return any(c == "*" or c.removeprefix("W/") == etag for c in candidates)


def feed_headers(calendar_name: Optional[str], body: bytes) -> dict[str, str]:
    return {
        "Content-Type": CALENDAR_CONTENT_TYPE,
        "Content-Disposition": f'attachment; filename="{safe_filename(calendar_name)}"',
        "Content-Length": str(len(body)),
        "Cache-Control": CACHE_CONTROL,
        "ETag": etag_for(body),
    }


def build_feed_response(
    method: str,
    ics_text: str,
    calendar_name: Optional[str],
    if_none_match: Optional[str] = None,
) -> FeedResponse:
    """
    Wrap a generated feed for GET or HEAD.

    HEAD shares the GET headers (Content-Length included) and is built from
    the same single generation.
    """
    method = method.upper()
    if method not in ("GET", "HEAD"):
        return FeedResponse(405, {"Allow": "GET, HEAD", "Content-Type": TEXT_CONTENT_TYPE}, b"Method not allowed")

    body = ics_text.encode("utf-8")
    headers = feed_headers(calendar_name, body)

    if _etag_matches(if_none_match, headers["ETag"]):
        return FeedResponse(304, headers, b"")
    if method == "HEAD":
        return FeedResponse(200, headers, b"")
    return FeedResponse(200, headers, body)


def status_for(exc: Exception) -> int:
    if isinstance(exc, MalformedTokenError):
        return 401
    if isinstance(exc, CalendarNotFoundError):
        return 404
    if isinstance(exc, UpstreamFetchError):
        return 502
    return 500


def error_response(exc: Exception, method: str = "GET") -> FeedResponse:
    """
    Plain-text error for a failed feed request.

    Upstream failures get a fixed user-facing message; the details go to the
    log only.
    """
    status = status_for(exc)
    if isinstance(exc, UpstreamFetchError):
        message = "Could not load exam schedule. Please try again later."
    elif isinstance(exc, MalformedTokenError):
        message = f"Invalid token: {exc}"
    elif isinstance(exc, CalendarNotFoundError):
        message = "Calendar not found"
    elif isinstance(exc, ExamCalendarError):
        message = f"Calendar generation failed: {exc}"
    else:
        message = "Calendar generation failed"

    body = message.encode("utf-8")
    headers = {"Content-Type": TEXT_CONTENT_TYPE, "Content-Length": str(len(body))}
    return FeedResponse(status, headers, b"" if method.upper() == "HEAD" else body)

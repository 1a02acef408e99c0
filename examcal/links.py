"""
Share links for saved calendars.

    https://host/api/calendars/<id>/ical?token=<token>     download / subscribe
    webcal://host/api/calendars/<id>/ical?token=<token>    opens the calendar app
    https://calendar.google.com/calendar/u/0/r?cid=...     Google "add by URL"
"""

from __future__ import annotations

from typing import Union
from urllib.parse import quote, urlencode

from examcal import tokens

GOOGLE_SUBSCRIBE_URL = "https://calendar.google.com/calendar/u/0/r"


def feed_url(base_url: str, calendar_id: Union[str, int], token: str) -> str:
    base = base_url.rstrip("/")
    return f"{base}/api/calendars/{quote(str(calendar_id), safe='')}/ical?{urlencode({'token': token})}"


def webcal_url(https_url: str) -> str:
    for scheme in ("https://", "http://"):
        if https_url.startswith(scheme):
            return "webcal://" + https_url[len(scheme):]
    raise ValueError(f"Not an http(s) URL: {https_url!r}")


def google_subscribe_url(webcal: str) -> str:
    # /u/0/r works with several signed-in Google accounts, plain /r does not
    if not webcal.startswith("webcal://"):
        raise ValueError(f"Not a webcal URL: {webcal!r}")
    return f"{GOOGLE_SUBSCRIBE_URL}?cid={quote(webcal, safe='')}"


def share_links(base_url: str, calendar_id: Union[str, int], owner_id: Union[str, int]) -> dict[str, str]:
    """
    Mint a fresh token for (calendar, owner) and return every link flavour.
    """
    token = tokens.encode(calendar_id, owner_id)
    https = feed_url(base_url, calendar_id, token)
    webcal = webcal_url(https)
    return {
        "token": token,
        "url": https,
        "webcal": webcal,
        "google": google_subscribe_url(webcal),
    }

"""
Access tokens for share links.

A token is "<calendar_id>:<owner_id>:<issued_at_millis>" in URL-safe base64.
It is an opaque handle, not a credential: nothing is signed and nothing
expires here. Whoever serves a feed must still check that the calendar exists
and belongs to owner_id (see examcal.service).
"""

from __future__ import annotations

import base64
import binascii
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from urllib.parse import unquote

from examcal.errors import MalformedTokenError

DELIMITER = ":"

# UUIDs, numeric ids, slugs. Never contains DELIMITER.
_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass(frozen=True)
class DecodedToken:
    calendar_id: str
    owner_id: str
    issued_at_millis: int

    @property
    def issued_at(self) -> datetime:
        seconds, millis = divmod(self.issued_at_millis, 1000)
        return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)


def _check_id(kind: str, value: str) -> str:
    if not _ID_RE.match(value):
        raise MalformedTokenError(f"Invalid {kind} in token: {value!r}")
    return value


def encode(calendar_id: Union[str, int], owner_id: Union[str, int], issued_at_millis: Optional[int] = None) -> str:
    """
    Build a share token. issued_at defaults to the current time.
    """
    cal = _check_id("calendar id", str(calendar_id))
    owner = _check_id("owner id", str(owner_id))
    if issued_at_millis is None:
        issued_at_millis = int(time.time() * 1000)

    raw = DELIMITER.join([cal, owner, str(int(issued_at_millis))])
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode(token: str) -> DecodedToken:
    """
    Reverse encode().

    Accepts URL-quoted tokens, the standard and the URL-safe base64 alphabet,
    with or without padding (older links used padded standard base64).
    """
    if not isinstance(token, str) or not token.strip():
        raise MalformedTokenError("Empty token")

    text = unquote(token.strip()).replace("+", "-").replace("/", "_")
    text += "=" * ((4 - len(text) % 4) % 4)
    try:
        decoded = base64.urlsafe_b64decode(text.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise MalformedTokenError("Token is not valid base64") from exc

    parts = decoded.split(DELIMITER)
    if len(parts) != 3:
        raise MalformedTokenError(f"Invalid token format: expected 3 parts, got {len(parts)}")

    calendar_id, owner_id, issued = parts
    _check_id("calendar id", calendar_id)
    _check_id("owner id", owner_id)
    if not issued.isascii() or not issued.isdigit():
        raise MalformedTokenError(f"Invalid issue time in token: {issued!r}")

    millis = int(issued)
    try:
        datetime.fromtimestamp(millis // 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedTokenError(f"Issue time out of range: {issued!r}") from exc
    return DecodedToken(calendar_id=calendar_id, owner_id=owner_id, issued_at_millis=millis)


def verify(token: str, calendar_id: Union[str, int]) -> DecodedToken:
    """
    Decode a token presented for `calendar_id` and make sure it was issued
    for that calendar.
    """
    decoded = decode(token)
    if decoded.calendar_id != str(calendar_id):
        raise MalformedTokenError(f"Calendar ID mismatch: token={decoded.calendar_id}, url={calendar_id}")
    return decoded

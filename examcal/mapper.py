"""
Raw exam rows -> ExamRecord.

Rows come in two shapes:
- straight from the exam table: exam_instance_id, exam_date, exam_time, place
- already mapped (JSON exports, tests): id, date, time, location

Many rows have an empty place and the room hidden in the comment
("Aula 0.1 - Examen parcial", "1G 0.1, 1G 0.2 ..."). In that case the room is
moved from the comment into the location.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from examcal.model import ExamRecord

logger = logging.getLogger(__name__)

_LOCATION_PREFIX_RE = re.compile(r"Location:\s*([^⋅\n]+)", re.IGNORECASE)
_ROOM_CODES_RE = re.compile(r"(?:^|\s)([0-9]+[A-Z]\s+[0-9]+\.[0-9]+(?:\s*,\s*[0-9]+[A-Z]\s+[0-9]+\.[0-9]+)*)")
_SINGLE_ROOM_RE = re.compile(r"^[0-9]+[A-Z]\s+[0-9]+\.[0-9]+$")
_LOCATION_KEYWORDS = ("aula", "sala", "laboratorio", "lab", "room")


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _duration(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _created_at(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        # "2025-01-09T10:00:00Z" and "+00:00" forms
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparseable created_at %r", value)
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def extract_location_from_comment(comment: str) -> tuple[str, str]:
    """
    Split a comment into (location, remaining comment).

    Recognised, in this order:
    1. "Location: <text>"
    2. room codes such as "1G 0.1, 1G 0.2"
    3. a room keyword (aula, sala, laboratorio, lab, room) and what follows it
    Returns ("", comment) when nothing looks like a location.
    """
    if not comment:
        return "", ""

    m = _LOCATION_PREFIX_RE.search(comment)
    if m:
        return m.group(1).strip(), _LOCATION_PREFIX_RE.sub("", comment, count=1).strip()

    m = _ROOM_CODES_RE.search(comment)
    if m:
        location = m.group(1).strip()
        if "," in location or _SINGLE_ROOM_RE.match(location):
            return location, comment.replace(m.group(0), "", 1).strip()

    for keyword in _LOCATION_KEYWORDS:
        m = re.search(rf"{keyword}\s*:?\s*([^⋅\n,]+)", comment, re.IGNORECASE)
        if m:
            return m.group(1).strip(), comment.replace(m.group(0), "", 1).strip()

    return "", comment


def record_from_row(row: Mapping[str, Any]) -> Optional[ExamRecord]:
    """
    Map one raw row to an ExamRecord.

    Returns None (and logs a warning) for rows without an id. Missing
    date/time are kept as None: the time resolver rejects them later, per
    record.
    """
    exam_id = _first(row, "id", "exam_instance_id", "exam_id")
    if exam_id is None:
        logger.warning("Skipping exam row without id: %r", dict(row))
        return None

    comment = _text(row.get("comment"))
    location = _text(_first(row, "location", "place"))
    if not location and comment:
        location, comment = extract_location_from_comment(comment)

    return ExamRecord(
        id=exam_id,
        subject=_text(row.get("subject")),
        code=_text(row.get("code")),
        date=_first(row, "date", "exam_date"),
        time=_first(row, "time", "exam_time"),
        duration_minutes=_duration(_first(row, "duration_minutes", "durationMinutes")),
        location=location,
        comment=comment,
        acronym=_text(row.get("acronym")),
        school=_optional_text(row.get("school")),
        degree=_optional_text(row.get("degree")),
        year=_optional_text(row.get("year")),
        semester=_optional_text(row.get("semester")),
        created_at=_created_at(row.get("created_at")),
    )


def records_from_rows(rows: list[Mapping[str, Any]]) -> list[ExamRecord]:
    out: list[ExamRecord] = []
    for row in rows:
        if not isinstance(row, Mapping):
            logger.warning("Skipping non-object exam row: %r", row)
            continue
        record = record_from_row(row)
        if record is not None:
            out.append(record)
    return out

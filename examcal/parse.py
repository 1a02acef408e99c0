"""
Parsing (published exam page HTML -> raw exam rows).

Schools publish their exam calendars as plain HTML tables. This module finds
the exam table on such a page and turns each data row into the raw row shape
understood by examcal.mapper:

    {"id", "subject", "code", "date", "time", "duration_minutes",
     "location", "comment", "school", "degree", "year", "semester", "acronym"}

Important rules:
- 1 table row = 1 exam
- headings may be Spanish or English, matched case-insensitively
- rows without a subject are ignored (spacer / group rows)
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Column headings
# ---------------------------------------------------------------------------

_HEADINGS = {
    "id": "id",
    "subject": "subject",
    "asignatura": "subject",
    "code": "code",
    "código": "code",
    "codigo": "code",
    "date": "date",
    "fecha": "date",
    "time": "time",
    "hora": "time",
    "duration": "duration_minutes",
    "duración": "duration_minutes",
    "duracion": "duration_minutes",
    "location": "location",
    "place": "location",
    "lugar": "location",
    "aula": "location",
    "comment": "comment",
    "observaciones": "comment",
    "school": "school",
    "centro": "school",
    "escuela": "school",
    "degree": "degree",
    "titulación": "degree",
    "titulacion": "degree",
    "year": "year",
    "curso": "year",
    "semester": "semester",
    "semestre": "semester",
    "cuatrimestre": "semester",
    "acronym": "acronym",
    "siglas": "acronym",
}

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")
_TIME_RANGE_RE = re.compile(r"^(\d{1,2}:\d{2})\s*(?:-|–|a)\s*(\d{1,2}:\d{2})$")
_DIGITS_RE = re.compile(r"\d+")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _heading_key(text: str) -> Optional[str]:
    return _HEADINGS.get(text.strip().lower().rstrip(":"))


def _iso_date(text: str) -> Optional[str]:
    raw = text.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _minutes_between(start: str, end: str) -> Optional[int]:
    s = datetime.strptime(start, "%H:%M")
    e = datetime.strptime(end, "%H:%M")
    minutes = int((e - s).total_seconds() // 60)
    return minutes if minutes > 0 else None


def _find_exam_table(soup: BeautifulSoup) -> tuple[Any, List[Optional[str]]]:
    """
    Return the first table whose heading row names a subject, a date and a time,
    together with the column -> field mapping.
    """
    for table in soup.find_all("table"):
        header_row = table.find("tr")
        if header_row is None:
            continue
        cells = header_row.find_all(["th", "td"])
        columns = [_heading_key(c.get_text(" ", strip=True)) for c in cells]
        if {"subject", "date", "time"} <= set(columns):
            return table, columns
    return None, []


# ---------------------------------------------------------------------------
# Row parsing (CORE LOGIC)
# ---------------------------------------------------------------------------


def parse_exam_row(values: Dict[str, str]) -> Optional[Dict[str, Any]]:
    """
    Turn one table row (field -> cell text) into a raw exam row.

    Returns None for rows without a subject. Unparseable dates are kept
    as-is so that the feed can report and skip them per exam.
    """
    subject = values.get("subject", "").strip()
    if not subject:
        return None

    row: Dict[str, Any] = {k: v.strip() for k, v in values.items() if k not in ("date", "time", "duration_minutes")}

    date_text = values.get("date", "").strip()
    row["date"] = _iso_date(date_text) or date_text or None

    # "09:00 - 11:30" carries the duration as well
    time_text = values.get("time", "").strip()
    duration: Optional[int] = None
    m = _TIME_RANGE_RE.match(time_text)
    if m:
        time_text = m.group(1)
        duration = _minutes_between(m.group(1), m.group(2))
    row["time"] = time_text or None

    digits = _DIGITS_RE.search(values.get("duration_minutes", ""))
    if digits:
        duration = int(digits.group(0))
    row["duration_minutes"] = duration

    if not row.get("id"):
        # Stable id for pages that do not publish one
        code = row.get("code") or subject
        row["id"] = f"{code}__{row['date'] or ''}T{(row['time'] or '').replace(':', '')}"

    return row


def parse_exam_table(html: str) -> List[Dict[str, Any]]:
    """
    Parse a published exam page and return raw exam rows in page order.
    """
    soup = BeautifulSoup(html, "html.parser")
    table, columns = _find_exam_table(soup)
    if table is None:
        logger.warning("No exam table found in page")
        return []

    rows: List[Dict[str, Any]] = []
    for tr in table.find_all("tr")[1:]:
        cells = tr.find_all(["td", "th"])
        if not cells:
            continue

        values: Dict[str, str] = {}
        for field, cell in zip(columns, cells):
            if field is None:
                continue
            values[field] = cell.get_text(" ", strip=True)

        row = parse_exam_row(values)
        if row is not None:
            rows.append(row)

    logger.debug("Parsed %d exam rows", len(rows))
    return rows

"""
Filter matching.

A filter spec maps a dimension to the values the user accepts:

    {"school": ["ETSINF"], "year": ["2", "3"], "search": ["calc"]}

Rules:
- values inside one dimension are OR'ed
- dimensions are AND'ed
- a missing or empty dimension does not constrain anything
- exact, case-sensitive comparison, except "search", which is a
  case-insensitive substring match on subject name or subject code
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from typing import Any, Iterable, Mapping, Optional

from examcal.model import ExamRecord

logger = logging.getLogger(__name__)

EXACT_DIMENSIONS = ("school", "degree", "year", "semester", "acronym")
DIMENSIONS = EXACT_DIMENSIONS + ("subject", "search")

# Saved calendars and older links use plural / camelCase keys.
_KEY_ALIASES = {
    "schools": "school",
    "degrees": "degree",
    "years": "year",
    "semesters": "semester",
    "subjects": "subject",
    "acronyms": "acronym",
    "searchQuery": "search",
}

# "Calculus II (CAL2)" -> "CAL2"
_SUBJECT_ACRONYM_RE = re.compile(r"\(([^)]+)\)\s*$")


def _field(record: Any, name: str) -> Any:
    """
    Read a field from an ExamRecord or a plain row dict.
    Missing fields come back as None.
    """
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _as_text(value: Any) -> Optional[str]:
    # year=2 and year="2" are the same year
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        return str(value)
    return None


def _values(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (str, int)) and not isinstance(raw, bool):
        raw = [raw]
    out: list[str] = []
    for v in raw:
        text = _as_text(v)
        if text is not None and text != "":
            out.append(text)
    return out


def normalize_filter_spec(raw: Optional[Mapping[str, Any]]) -> dict[str, list[str]]:
    """
    Bring a filter spec into canonical form:
    singular dimension names, list values, empty dimensions dropped.

    A bare string value counts as a one-element list. Unknown keys are
    ignored (logged at debug level).
    """
    spec: dict[str, list[str]] = {}
    if not raw:
        return spec

    for key, value in raw.items():
        name = _KEY_ALIASES.get(key, key)
        if name not in DIMENSIONS:
            logger.debug("Ignoring unknown filter dimension %r", key)
            continue
        values = _values(value)
        if values:
            spec.setdefault(name, []).extend(values)
    return spec


def _matches_subject(record: Any, values: list[str]) -> bool:
    subject = _as_text(_field(record, "subject"))
    acronym = _as_text(_field(record, "acronym"))
    for v in values:
        if subject is not None and v == subject:
            return True
        m = _SUBJECT_ACRONYM_RE.search(v)
        if m and acronym and m.group(1).strip() == acronym:
            return True
    return False


def _matches_search(record: Any, queries: list[str]) -> bool:
    hay = [
        text.lower()
        for text in (_as_text(_field(record, "subject")), _as_text(_field(record, "code")))
        if text is not None
    ]
    for q in queries:
        needle = q.lower()
        if any(needle in h for h in hay):
            return True
    return False


def matches(record: ExamRecord | Mapping[str, Any], filter_spec: Optional[Mapping[str, Any]]) -> bool:
    """
    Decide whether one exam record satisfies a filter spec.

    Never raises for missing record fields: a missing field simply does not
    match a constrained dimension.
    """
    spec = normalize_filter_spec(filter_spec)

    for dim in EXACT_DIMENSIONS:
        accepted = spec.get(dim)
        if not accepted:
            continue
        value = _as_text(_field(record, dim))
        if value is None or value not in accepted:
            return False

    if spec.get("subject") and not _matches_subject(record, spec["subject"]):
        return False
    if spec.get("search") and not _matches_search(record, spec["search"]):
        return False
    return True


def filter_records(records: Iterable[Any], filter_spec: Optional[Mapping[str, Any]]) -> list[Any]:
    """
    Keep matching records, preserving input order.
    """
    spec = normalize_filter_spec(filter_spec)
    return [r for r in records if matches(r, spec)]


# ---------------------------------------------------------------------------
# Query parameters
# ---------------------------------------------------------------------------


def decode_packed_filters(packed: str) -> Optional[dict[str, Any]]:
    """
    Decode a base64url JSON filter object (the "p" query parameter).
    Returns None when the value is not valid base64 JSON object.
    """
    b64 = packed.strip().replace("-", "+").replace("_", "/")
    b64 += "=" * ((4 - len(b64) % 4) % 4)
    try:
        data = json.loads(base64.b64decode(b64).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def encode_packed_filters(spec: Mapping[str, Any]) -> str:
    payload = json.dumps(normalize_filter_spec(spec), separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def filters_from_query(pairs: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    """
    Build a filter spec from (name, value) query pairs.

    Each dimension may repeat (?school=A&school=B means A OR B).
    A packed "p" parameter takes precedence when it decodes.
    """
    pairs = list(pairs)

    for name, value in pairs:
        if name == "p" and value:
            packed = decode_packed_filters(value)
            if packed is not None:
                return normalize_filter_spec(packed)
            logger.warning("Ignoring undecodable packed filter parameter")

    raw: dict[str, list[str]] = {}
    for name, value in pairs:
        if name == "p":
            continue
        raw.setdefault(name, []).append(value)
    return normalize_filter_spec(raw)

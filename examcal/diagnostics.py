"""
Feed diagnostics.

A structural check of iCalendar text, used by `examcal validate` and by the
tests. It is not a full RFC 5545 validator; it looks for the mistakes that
have broken real subscriptions: missing envelope, CRLF problems, unfolded
lines, TZID combined with UTC times, feeds without events.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

from examcal.export_ics import MAX_LINE_OCTETS

_TEXT_PROPS = ("SUMMARY", "DESCRIPTION", "LOCATION")
# separator after an even number of backslashes (zero included)
_UNESCAPED = re.compile(r"(?<!\\)(?:\\\\)*[;,]")


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    line_count: int = 0
    event_count: int = 0
    has_timezone: bool = False
    size: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _unfold(lines: List[str]) -> List[str]:
    out: List[str] = []
    for line in lines:
        if line.startswith((" ", "\t")) and out:
            out[-1] += line[1:]
        else:
            out.append(line)
    return out


def validate_feed(content: str, check_text_escaping: bool = True) -> ValidationResult:
    """
    Inspect a feed and report errors (clients will reject it) and warnings
    (some clients may misbehave).

    check_text_escaping=False skips the separator check, for feeds in the
    legacy format where LOCATION commas are deliberately left unescaped.
    """
    result = ValidationResult(size=len(content.encode("utf-8")))

    if re.search(r"(?<!\r)\n", content):
        result.errors.append("Bare LF line ending found (CRLF required)")

    physical = content.split("\r\n")
    if physical and physical[-1] == "":
        physical.pop()
    result.line_count = len(physical)

    for i, line in enumerate(physical, start=1):
        if len(line.encode("utf-8")) > MAX_LINE_OCTETS:
            result.warnings.append(f"Line {i} exceeds {MAX_LINE_OCTETS} octets and is not folded")

    lines = _unfold(physical)

    if not lines or lines[0] != "BEGIN:VCALENDAR":
        result.errors.append("Missing BEGIN:VCALENDAR at start")
    if not lines or lines[-1] != "END:VCALENDAR":
        result.errors.append("Missing END:VCALENDAR at end")
    for prop in ("VERSION", "PRODID"):
        if not any(line.startswith(prop + ":") for line in lines):
            result.errors.append(f"Missing required property: {prop}")

    result.has_timezone = "BEGIN:VTIMEZONE" in lines

    event: List[str] = []
    in_event = False
    for line in lines:
        if line == "BEGIN:VEVENT":
            in_event = True
            event = []
            continue
        if line == "END:VEVENT" and in_event:
            in_event = False
            result.event_count += 1
            _check_event(result.event_count, event, result, check_text_escaping)
            continue
        if in_event:
            event.append(line)

    if in_event:
        result.errors.append("Unterminated VEVENT")
    if result.event_count == 0:
        result.warnings.append("Feed contains no events; some clients ignore such feeds")
    return result


def _check_event(n: int, lines: List[str], result: ValidationResult, check_text_escaping: bool) -> None:
    names = {line.split(":", 1)[0].split(";", 1)[0] for line in lines}
    for prop in ("UID", "DTSTART", "DTEND"):
        if prop not in names:
            result.errors.append(f"Event {n}: missing required property {prop}")

    for line in lines:
        name, _, value = line.partition(":")
        base = name.split(";", 1)[0]
        if base in ("DTSTART", "DTEND") and "TZID=" in name and value.endswith("Z"):
            result.errors.append(f"Event {n}: {base} has TZID parameter but uses UTC format (Z suffix)")
        if check_text_escaping and base in _TEXT_PROPS and _UNESCAPED.search(value):
            result.warnings.append(f"Event {n}: unescaped separator in {base}")

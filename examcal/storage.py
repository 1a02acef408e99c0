"""
Persistent storage for saved calendars.

This module manages a single JSON file:

    {"calendars": [{"id": ..., "owner_id": ..., "name": ..., "filters": {...}}, ...]}

Design rationale:
- exam rows come from an exam source and are never stored here
- a saved calendar only remembers who owns it, its display name and its filters

This keeps user state independent from the exam data, which is refreshed on
every feed request.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from examcal.errors import UpstreamFetchError
from examcal.filters import normalize_filter_spec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedCalendar:
    id: str
    owner_id: str
    name: str
    filters: dict[str, list[str]] = field(default_factory=dict)


def _default_store_path() -> Path:
    """
    Default location of calendars.json: the user's working directory.

    Using a function instead of a constant makes testing easier,
    because tests can pass their own path.
    """
    return Path.cwd() / "calendars.json"


def new_calendar_id() -> str:
    return str(uuid.uuid4())


class JsonCalendarStore:
    """
    Saved calendars in one JSON file.

    A missing file is an empty store. A corrupted file raises
    UpstreamFetchError: pretending the store is empty would turn every feed
    into a "not found" instead of a visible failure.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else _default_store_path()

    def _load(self) -> list[SavedCalendar]:
        # First run: file does not exist yet -> no calendars
        if not self.path.exists():
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UpstreamFetchError(f"Cannot read calendar store {self.path}: {exc}") from exc

        items = data.get("calendars", []) if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise UpstreamFetchError(f"Calendar store {self.path} has an unexpected layout")

        out: list[SavedCalendar] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("id"):
                logger.warning("Ignoring malformed calendar entry in %s: %r", self.path, item)
                continue
            out.append(
                SavedCalendar(
                    id=str(item["id"]),
                    owner_id=str(item.get("owner_id", "")),
                    name=str(item.get("name", "") or ""),
                    filters=normalize_filter_spec(item.get("filters") or {}),
                )
            )
        return out

    def _write(self, calendars: list[SavedCalendar]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload: dict[str, Any] = {"calendars": [asdict(c) for c in calendars]}
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def get(self, calendar_id: str) -> Optional[SavedCalendar]:
        for cal in self._load():
            if cal.id == str(calendar_id):
                return cal
        return None

    def list_for_owner(self, owner_id: str) -> list[SavedCalendar]:
        return [c for c in self._load() if c.owner_id == str(owner_id)]

    def save(self, calendar: SavedCalendar) -> SavedCalendar:
        """
        Insert or replace a calendar (matched by id). Filters are normalized
        before saving to guarantee a stable file format.
        """
        calendar = SavedCalendar(
            id=calendar.id,
            owner_id=calendar.owner_id,
            name=calendar.name,
            filters=normalize_filter_spec(calendar.filters),
        )
        calendars = [c for c in self._load() if c.id != calendar.id]
        calendars.append(calendar)
        self._write(calendars)
        return calendar

    def delete(self, calendar_id: str) -> bool:
        calendars = self._load()
        kept = [c for c in calendars if c.id != str(calendar_id)]
        if len(kept) == len(calendars):
            return False
        self._write(kept)
        return True

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from examcal.errors import UpstreamFetchError
from examcal.parse import parse_exam_table

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT = 30
DEFAULT_TABLE = "exams"
DEFAULT_ORDER = "exam_date.asc"


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def _ensure_rows(data: Any, origin: str) -> List[Dict[str, Any]]:
    if not isinstance(data, list):
        raise UpstreamFetchError(f"Expected a list of exam rows from {origin}, got {type(data).__name__}")
    return [row for row in data if isinstance(row, dict)]


class RestExamSource:
    """
    Exam rows from a PostgREST-style endpoint:

        GET <base_url>/rest/v1/<table>?select=*&order=exam_date.asc
    """

    def __init__(
        self,
        base_url: str,
        table: str = DEFAULT_TABLE,
        api_key: Optional[str] = None,
        order: str = DEFAULT_ORDER,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.api_key = api_key
        self.order = order
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def fetch_rows(self) -> List[Dict[str, Any]]:
        params = {"select": "*", "order": self.order}
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info("Fetching exam rows from %s", self.url)
        try:
            resp = requests.get(self.url, params=params, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise UpstreamFetchError(f"Could not fetch exams from {self.url}: {exc}") from exc
        except ValueError as exc:
            raise UpstreamFetchError(f"Exam endpoint {self.url} did not return JSON") from exc

        rows = _ensure_rows(data, self.url)
        logger.info("Fetched %d exam rows", len(rows))
        return rows


class HtmlExamSource:
    """
    Exam rows scraped from a school's published exam calendar page.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout

    def fetch_rows(self) -> List[Dict[str, Any]]:
        logger.info("Fetching exam page %s", self.url)
        try:
            resp = requests.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamFetchError(f"Could not fetch exam page {self.url}: {exc}") from exc

        rows = parse_exam_table(resp.text)
        logger.info("Parsed %d exam rows from %s", len(rows), self.url)
        return rows


class JsonFileExamSource:
    """
    Exam rows from a local JSON file (a list of row objects), e.g. one written
    by `examcal fetch`.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def fetch_rows(self) -> List[Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UpstreamFetchError(f"Could not read exam rows from {self.path}: {exc}") from exc
        return _ensure_rows(data, str(self.path))


def save_rows(rows: List[Dict[str, Any]], out_path: str | Path) -> int:
    """
    Write exam rows as JSON. Returns number of rows written.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(rows, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    return len(rows)

"""
CLI (Command Line Interface).

Quick terminal commands around the feed engine, e.g.:

    examcal fetch --rest https://db.example.org --table exams rows.json
    examcal export rows.json out.ics --school ETSINF --reminder -P1D
    examcal save "My exams" --owner 42 --school ETSINF
    examcal share <calendar_id> --owner 42
    examcal feed <calendar_id> --token <token> --rows rows.json out.ics
    examcal inspect <token>
    examcal validate out.ics

Note:
- Library errors are turned into an error message and exit code 1 here
- Output is plain text (no rich formatting)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from examcal import links, tokens
from examcal.config import configure_logging, load_options_file, parse_reminder_durations, validate_time_zone
from examcal.diagnostics import validate_feed
from examcal.errors import ExamCalendarError
from examcal.feed import count_events, generate, is_placeholder_feed
from examcal.filters import DIMENSIONS, normalize_filter_spec
from examcal.mapper import records_from_rows
from examcal.model import CalendarOptions
from examcal.service import render_feed
from examcal.source import HtmlExamSource, JsonFileExamSource, RestExamSource, save_rows
from examcal.storage import JsonCalendarStore, SavedCalendar, new_calendar_id

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"


def _filters_from_args(args: argparse.Namespace) -> dict[str, list[str]]:
    """
    Collect the repeatable --school/--degree/... flags into a filter spec.
    """
    raw = {dim: getattr(args, dim, None) or [] for dim in DIMENSIONS}
    return normalize_filter_spec(raw)


def _options_from_args(args: argparse.Namespace) -> CalendarOptions:
    """
    Options file first, then command-line flags on top.
    """
    options = load_options_file(args.config) if args.config else CalendarOptions()

    name = getattr(args, "name", None)
    if name:
        options = replace(options, calendar_name=name.strip())
    if args.tz:
        options = replace(options, time_zone=validate_time_zone(args.tz))
    minutes = parse_reminder_durations(args.reminder or [])
    if minutes is not None:
        options = replace(options, reminder_minutes=tuple(minutes))
    if args.legacy:
        options = replace(options, use_legacy_client_format=True)
    return options


def _write_feed(text: str, out_path: str) -> None:
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    # newline="" keeps the CRLF line endings untouched
    with out.open("w", encoding="utf-8", newline="") as fh:
        fh.write(text)


def _report_feed(text: str, out_path: str) -> None:
    if is_placeholder_feed(text):
        print(f"No matching exams. Wrote placeholder calendar to: {out_path}")
    else:
        print(f"Exported {count_events(text)} exams to: {out_path}")


def _cmd_export(args: argparse.Namespace) -> int:
    """
    Generate a feed from a JSON rows file.
    """
    rows = JsonFileExamSource(args.rows).fetch_rows()
    options = _options_from_args(args)
    text = generate(records_from_rows(rows), _filters_from_args(args), options)
    _write_feed(text, args.out)
    _report_feed(text, args.out)
    return 0


def _cmd_fetch(args: argparse.Namespace) -> int:
    """
    Download exam rows from a REST endpoint or a published exam page.
    """
    if args.rest:
        source: Any = RestExamSource(args.rest, table=args.table, api_key=args.api_key)
    elif args.html:
        source = HtmlExamSource(args.html)
    else:
        print("Please provide --rest URL or --html URL.")
        return 1

    n = save_rows(source.fetch_rows(), args.out)
    print(f"Saved {n} exam rows to: {args.out}")
    return 0


def _cmd_save(args: argparse.Namespace) -> int:
    """
    Save a named calendar (owner + filters) in the JSON store.
    """
    name = (args.name or "").strip()
    if not name:
        print("Please provide a calendar name.")
        return 1

    store = JsonCalendarStore(args.store)
    calendar = store.save(
        SavedCalendar(
            id=args.id or new_calendar_id(),
            owner_id=str(args.owner),
            name=name,
            filters=_filters_from_args(args),
        )
    )
    print(f"Saved calendar {calendar.id} ({calendar.name})")
    return 0


def _cmd_share(args: argparse.Namespace) -> int:
    """
    Print a fresh token and the share links for a saved calendar.
    """
    store = JsonCalendarStore(args.store)
    calendar = store.get(args.calendar_id)
    if calendar is None or calendar.owner_id != str(args.owner):
        print(f"Calendar not found: {args.calendar_id}")
        return 1

    out = links.share_links(args.base_url, calendar.id, calendar.owner_id)
    print(f"Token:  {out['token']}")
    print(f"URL:    {out['url']}")
    print(f"Webcal: {out['webcal']}")
    print(f"Google: {out['google']}")
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    decoded = tokens.decode(args.token)
    print(f"calendar_id: {decoded.calendar_id}")
    print(f"owner_id:    {decoded.owner_id}")
    print(f"issued_at:   {decoded.issued_at.isoformat()}")
    return 0


def _cmd_feed(args: argparse.Namespace) -> int:
    """
    Token-authorised generation, the same path a feed request takes.
    """
    store = JsonCalendarStore(args.store)
    source = JsonFileExamSource(args.rows)
    options = _options_from_args(args)

    _, text = asyncio.run(render_feed(args.calendar_id, args.token, store, source, options))
    _write_feed(text, args.out)
    _report_feed(text, args.out)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    path = Path(args.file)
    try:
        with path.open("r", encoding="utf-8", newline="") as fh:
            content = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Cannot read {path}: {exc}")
        return 1

    result = validate_feed(content, check_text_escaping=not args.legacy)
    print(f"Lines: {result.line_count}  Events: {result.event_count}  Size: {result.size} bytes")
    for err in result.errors:
        print(f"ERROR   {err}")
    for warn in result.warnings:
        print(f"WARNING {warn}")
    print("OK" if result.is_valid else "INVALID")
    return 0 if result.is_valid else 1


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    for dim in DIMENSIONS:
        p.add_argument(f"--{dim}", action="append", metavar="VALUE", help=f"Filter by {dim} (repeatable)")


def _add_option_args(p: argparse.ArgumentParser, with_name: bool = True) -> None:
    p.add_argument("--config", type=str, help="JSON file with calendar options")
    if with_name:
        p.add_argument("--name", type=str, help="Calendar display name")
    p.add_argument("--tz", type=str, help="IANA time zone of the exam times (default Europe/Madrid)")
    p.add_argument("--reminder", action="append", metavar="DURATION", help="Reminder, e.g. -P1D or -PT30M (repeatable)")
    p.add_argument("--legacy", action="store_true", help="Use the legacy client format")


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="examcal", description="Exam calendar feeds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("export", help="Generate an .ics feed from a JSON rows file")
    p_export.add_argument("rows", type=str, help="JSON file with exam rows")
    p_export.add_argument("out", type=str, help="Output file path (e.g. exams.ics)")
    _add_filter_args(p_export)
    _add_option_args(p_export)

    p_fetch = sub.add_parser("fetch", help="Download exam rows to a JSON file")
    p_fetch.add_argument("out", type=str, help="Output JSON file")
    p_fetch.add_argument("--rest", type=str, help="Base URL of a REST exam endpoint")
    p_fetch.add_argument("--table", type=str, default="exams", help="Table name on the REST endpoint")
    p_fetch.add_argument("--api-key", type=str, help="API key for the REST endpoint")
    p_fetch.add_argument("--html", type=str, help="URL of a published exam page")

    p_save = sub.add_parser("save", help="Save a calendar definition")
    p_save.add_argument("name", type=str, help="Calendar name")
    p_save.add_argument("--owner", required=True, help="Owner id")
    p_save.add_argument("--id", type=str, help="Calendar id (default: new UUID)")
    p_save.add_argument("--store", type=str, help="Calendar store file (default ./calendars.json)")
    _add_filter_args(p_save)

    p_share = sub.add_parser("share", help="Print share links for a saved calendar")
    p_share.add_argument("calendar_id", type=str)
    p_share.add_argument("--owner", required=True, help="Owner id")
    p_share.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL)
    p_share.add_argument("--store", type=str)

    p_inspect = sub.add_parser("inspect", help="Decode an access token")
    p_inspect.add_argument("token", type=str)

    p_feed = sub.add_parser("feed", help="Generate a saved calendar's feed using its access token")
    p_feed.add_argument("calendar_id", type=str)
    p_feed.add_argument("out", type=str, help="Output file path")
    p_feed.add_argument("--token", required=True)
    p_feed.add_argument("--rows", required=True, help="JSON file with exam rows")
    p_feed.add_argument("--store", type=str)
    # a saved calendar always publishes under its saved name
    _add_option_args(p_feed, with_name=False)

    p_validate = sub.add_parser("validate", help="Check an .ics file")
    p_validate.add_argument("file", type=str)
    p_validate.add_argument("--legacy", action="store_true", help="File uses the legacy client format")

    return parser


_COMMANDS = {
    "export": _cmd_export,
    "fetch": _cmd_fetch,
    "save": _cmd_save,
    "share": _cmd_share,
    "inspect": _cmd_inspect,
    "feed": _cmd_feed,
    "validate": _cmd_validate,
}


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        code = handler(args)
    except ExamCalendarError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}")
        code = 1
    raise SystemExit(code)

from __future__ import annotations

import argparse
from typing import List, Sequence

from rich.console import Console
from rich.table import Table

from .batches import DEFAULT_CALENDAR_ID, create_events, delete_by_batch
from .calendar_client import GoogleCalendarClient, OAuthFlow, TokenStore
from .config import Settings, configure_logging
from .exceptions import CourseCalendarError
from .extractor import extract_schedule
from .ics_export import DEFAULT_FILENAME, write_calendar_file
from .models import Course, ExtractionReport
from .readers import read_grid_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="course-calendar",
        description="Turn a Workday course schedule export into recurring calendar events",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    preview = commands.add_parser("preview", help="Show the courses found in a schedule file")
    preview.add_argument("file", help="Path to the .xlsx or .csv export")

    export = commands.add_parser("export", help="Write an .ics calendar file")
    export.add_argument("file", help="Path to the .xlsx or .csv export")
    export.add_argument("--out", default=DEFAULT_FILENAME, help=f"Output path (default: {DEFAULT_FILENAME})")

    auth = commands.add_parser("auth", help="Authorize access to Google Calendar")
    _add_user_argument(auth)

    calendars = commands.add_parser("calendars", help="List the calendars you can write to")
    _add_user_argument(calendars)

    push = commands.add_parser("push", help="Create recurring events in Google Calendar")
    push.add_argument("file", help="Path to the .xlsx or .csv export")
    push.add_argument("--calendar", default=DEFAULT_CALENDAR_ID, help="Google Calendar ID (default: primary)")
    push.add_argument("--batch-id", default=None, help="Reuse a batch id instead of generating one")
    push.add_argument("--timezone", default=None, help="IANA timezone of the meeting times")
    _add_user_argument(push)

    remove = commands.add_parser("remove", help="Delete every event created by one push")
    remove.add_argument("batch_id", help="Batch id printed by push")
    remove.add_argument("--calendar", default=DEFAULT_CALENDAR_ID, help="Google Calendar ID (default: primary)")
    _add_user_argument(remove)

    return parser


def main(args: list[str] | None = None) -> int:
    parser = build_parser()
    opts = parser.parse_args(args=args)
    settings = Settings()
    configure_logging(opts.log_level or settings.log_level)

    console = Console()
    try:
        return _dispatch(opts, settings, console)
    except (CourseCalendarError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/]")
        return 1


def _dispatch(opts: argparse.Namespace, settings: Settings, console: Console) -> int:
    if opts.command == "preview":
        report = _load(opts.file, console)
        if report.courses:
            _render_preview(console, report.courses)
        return 0

    if opts.command == "export":
        report = _load(opts.file, console)
        if not report.courses:
            return 1
        count = write_calendar_file(report.courses, opts.out)
        console.print(f"[green]Wrote {count} recurring events to {opts.out}[/]")
        return 0

    store = TokenStore(settings.token_dir)

    if opts.command == "auth":
        flow = OAuthFlow(settings.oauth_settings())
        credentials = flow.run_local(open_browser=not settings.console_oauth)
        store.save(opts.user, credentials)
        console.print(f"[green]Saved Google Calendar access for '{opts.user}'.[/]")
        return 0

    client = GoogleCalendarClient(store.load(opts.user))

    if opts.command == "calendars":
        table = Table(title="Calendars")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Primary")
        for calendar in client.list_calendars():
            table.add_row(calendar.id, calendar.summary, "yes" if calendar.primary else "")
        console.print(table)
        return 0

    if opts.command == "push":
        report = _load(opts.file, console)
        if not report.courses:
            return 1
        result = create_events(
            client,
            report.courses,
            opts.calendar,
            opts.batch_id,
            timezone=opts.timezone or settings.timezone,
        )
        console.print(f"[green]Created {result.events_created} events.[/] Batch id: [bold]{result.batch_id}[/]")
        _print_errors(console, result.errors)
        return 0 if not result.errors else 2

    if opts.command == "remove":
        result = delete_by_batch(client, opts.batch_id, opts.calendar)
        console.print(f"[green]Deleted {result.deleted_count} of {result.total_found} events.[/]")
        _print_errors(console, result.errors)
        return 0 if not result.errors else 2

    raise ValueError(f"Unknown command '{opts.command}'")  # pragma: no cover


def _add_user_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", default="default", help="Token store key (default: default)")


def _load(path: str, console: Console) -> ExtractionReport:
    report = extract_schedule(read_grid_file(path))
    for warning in report.warnings:
        console.print(f"[yellow]{warning}[/]")
    console.print(report.summary())
    return report


def _render_preview(console: Console, courses: Sequence[Course]) -> None:
    table = Table(title="Courses")
    table.add_column("Course")
    table.add_column("Days")
    table.add_column("Time")
    table.add_column("Location")
    table.add_column("Instructor")
    table.add_column("Dates")
    for course in courses:
        table.add_row(
            course.title,
            course.days_label,
            f"{course.start_time:%H:%M}-{course.end_time:%H:%M}",
            course.location,
            course.instructor,
            f"{_fmt_date(course.start_date)} - {_fmt_date(course.end_date)}",
        )
    console.print(table)


def _print_errors(console: Console, errors: List[str]) -> None:
    if not errors:
        return
    console.print(f"[yellow]{len(errors)} failed:[/]")
    for error in errors:
        console.print(f"- {error}")


def _fmt_date(value) -> str:
    return value.isoformat() if value else "?"


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

"""Wall-clock time, calendar date and weekly recurrence helpers.

Meeting times are local wall-clock values. They are rendered as floating times in
the calendar file or paired with an explicit zone name for the Google Calendar API,
and are never converted through UTC.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import List, Sequence

from dateutil import parser as date_parser

from .exceptions import InvalidRecurrence
from .weekdays import Weekday, join_days

TIME_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?")
SLASH_DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})\s*$")
ISO_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})")
TWO_DIGIT_YEAR_PIVOT = 30
FIRST_MEETING_SEARCH_DAYS = 7
RRULE_PREFIX = "RRULE:"

DaysInput = str | Sequence[Weekday] | None
DateInput = str | date | None


def parse_time(value: str | time | None) -> time | None:
    """Parse ``"9:00 AM"``, ``"5:30 pm"`` or ``"14:15"`` into a wall-clock time.

    ``12:xx AM`` maps to hour 0 and ``12:xx PM`` stays at 12. Returns ``None`` when
    the text carries no usable hour/minute.
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    text = str(value).strip()
    match = TIME_RE.search(text)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)

    lowered = text.lower()
    if "pm" in lowered and hour < 12:
        hour += 12
    elif "am" in lowered and hour == 12:
        hour = 0

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return time(hour, minute)


def format_time_for_ics(value: str | time) -> str:
    """Render a wall-clock time as zero-padded 24-hour ``HHMMSS``."""
    parsed = parse_time(value)
    if parsed is None:
        raise ValueError(f"Invalid time '{value}'")
    return f"{parsed.hour:02d}{parsed.minute:02d}00"


def parse_date(value: DateInput) -> date | None:
    """Parse a calendar date without attaching any timezone.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` and ``M/D/YY(YY)`` text;
    anything else goes through ``dateutil``. Blank input returns ``None`` and
    unparseable text raises ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    iso = ISO_DATE_RE.match(text)
    if iso:
        return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

    slash = SLASH_DATE_RE.match(text)
    if slash:
        month, day, year = (int(part) for part in slash.groups())
        if year < 100:
            year += 2000 if year < TWO_DIGIT_YEAR_PIVOT else 1900
        return date(year, month, day)

    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Invalid date '{text}': {exc}") from exc


def _coerce_days(days: DaysInput) -> tuple[Weekday, ...]:
    if days is None:
        return ()
    if isinstance(days, str):
        return Weekday.parse_list(days)
    return tuple(days)


def get_first_meeting_date(start_date: DateInput, days: DaysInput, *, today: date | None = None) -> date:
    """Return the first date on or after ``start_date`` that falls on a meeting day.

    A missing start date means "from today". With no meeting days at all the
    answer is simply today.
    """
    today = today or date.today()
    targets = {day.python_weekday for day in _coerce_days(days)}
    if not targets:
        return today

    try:
        start = parse_date(start_date) or today
    except ValueError:
        start = today

    for offset in range(FIRST_MEETING_SEARCH_DAYS + 1):
        candidate = start + timedelta(days=offset)
        if candidate.weekday() in targets:
            return candidate
    return start


def rrule_days(days: DaysInput) -> str:
    """Comma-joined BYDAY codes; an empty day-set falls back to Monday."""
    codes = [day.abbreviation for day in _coerce_days(days)]
    return ",".join(codes) if codes else Weekday.MONDAY.abbreviation


def weekly_rule(byday: str, until: date | None) -> str:
    """RRULE value (without the ``RRULE:`` prefix) shared by the file and API paths."""
    rule = f"FREQ=WEEKLY;BYDAY={byday}"
    if until is not None:
        rule += f";UNTIL={until.strftime('%Y%m%d')}"
    return rule


def get_recurrence_rule(days: DaysInput, start_date: DateInput, end_date: DateInput) -> List[str]:
    """Build the Google Calendar ``recurrence`` list for a weekly course.

    Raises ``InvalidRecurrence`` when no weekday can be mapped or either boundary
    date is missing, unparseable or out of order.
    """
    weekdays = _coerce_days(days)
    if not weekdays:
        raise InvalidRecurrence(f"No valid meeting days in '{_describe(days)}'")
    try:
        start = parse_date(start_date)
        end = parse_date(end_date)
    except ValueError as exc:
        raise InvalidRecurrence(str(exc)) from exc
    if start is None or end is None:
        raise InvalidRecurrence(f"Missing recurrence bounds (start: {start_date}, end: {end_date})")
    if end < start:
        raise InvalidRecurrence(f"End date {end.isoformat()} is before start date {start.isoformat()}")
    return [RRULE_PREFIX + weekly_rule(rrule_days(weekdays), end)]


def _describe(days: DaysInput) -> str:
    if days is None or isinstance(days, str):
        return days or ""
    return join_days(days)

"""Turn the rows of a Workday "View My Courses" export into Course records.

The extractor is pure: it only looks at the grid it is given and never assumes
the grid is rectangular. Short rows are read as if padded with empty cells.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Sequence, Tuple

from .models import (
    DEFAULT_END_TIME,
    DEFAULT_START_TIME,
    UNTITLED_COURSE,
    ColumnMap,
    Course,
    ExtractionReport,
    MeetingPattern,
    RawGrid,
)
from .recurrence import parse_date, parse_time
from .weekdays import Weekday, sort_days

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 10
HEADER_MARKERS = ("meeting patterns", "instructor", "course listing")

# Ordered synonyms per logical column; the first keyword found in any header cell wins.
COLUMN_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "course_listing": ("course listing", "course", "subject", "class", "name", "title"),
    "meeting_patterns": ("meeting patterns", "enrolled sections meeting patterns", "schedule", "days", "time"),
    "instructor": ("instructor", "professor", "teacher", "staff"),
    "start_date": ("start date", "start"),
    "end_date": ("end date", "end"),
    "registration_status": ("registration status", "status", "enrollment status"),
}

HEADER_LABEL = "Course Listing"
STRAY_LISTING_VALUES = frozenset({HEADER_LABEL, "13"})
INACTIVE_STATUSES = ("unregistered", "dropped", "withdrawn")

COURSE_NAME_RE = re.compile(r"([A-Z]{2,4}\s+\d{4})\s*-\s*(.+?)(?:\s*-\s*Fall|$)")
COURSE_CODE_RE = re.compile(r"^[A-Z]{2,4}\s+\d{4}")
TIME_RANGE_RE = re.compile(r"(\d{1,2}:\d{2}\s*[AP]M)\s*-\s*(\d{1,2}:\d{2}\s*[AP]M)", re.IGNORECASE)
NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")
DATE_TEXT_RE = re.compile(r"^(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}/\d{2,4})$")

# Serial 1 is 1900-01-01. Spreadsheets count a non-existent 1900-02-29 as serial 60,
# so every serial after 59 is one day ahead of the real calendar.
EXCEL_EPOCH = date(1899, 12, 31)
EXCEL_LEAP_BUG_SERIAL = 59


def find_header_row(grid: RawGrid) -> int | None:
    """Index of the first of the leading rows naming all three Workday header columns."""
    for index, row in enumerate(grid[:HEADER_SCAN_ROWS]):
        cells = [cell.lower() for cell in (row or []) if isinstance(cell, str)]
        if all(any(marker in cell for cell in cells) for marker in HEADER_MARKERS):
            return index
    return None


def find_column(headers: Sequence[Any], keywords: Sequence[str]) -> int:
    normalized = [_header_text(cell) for cell in headers]
    for keyword in keywords:
        for index, header in enumerate(normalized):
            if keyword in header:
                return index
    return -1


def resolve_columns(headers: Sequence[Any]) -> ColumnMap:
    return ColumnMap(**{field: find_column(headers, keywords) for field, keywords in COLUMN_SYNONYMS.items()})


def extract_course_name(course_listing: str) -> str:
    """``"CSE 4501 - Video Game Programming II - Fall 2025"`` -> ``"CSE 4501 - Video Game Programming II"``."""
    if not course_listing or not course_listing.strip():
        return UNTITLED_COURSE
    match = COURSE_NAME_RE.search(course_listing)
    if match:
        return f"{match.group(1)} - {match.group(2)}"
    return course_listing


def parse_meeting_patterns(text: str) -> MeetingPattern:
    """Split ``"Mon/Wed | 5:30 PM - 7:00 PM | RIDGLEY, Room 00016"`` into its parts.

    Missing pieces keep their defaults: Monday, 09:00-10:00, no location.
    """
    parts = [part.strip() for part in (text or "").split("|", 2)]

    day_token = parts[0]
    fragments = day_token.split("/") if "/" in day_token else [day_token]
    days = sort_days(day for fragment in fragments for day in Weekday.in_fragment(fragment))

    start_time, end_time = DEFAULT_START_TIME, DEFAULT_END_TIME
    if len(parts) >= 2 and parts[1]:
        match = TIME_RANGE_RE.search(parts[1])
        if match:
            start_time = parse_time(match.group(1)) or DEFAULT_START_TIME
            end_time = parse_time(match.group(2)) or DEFAULT_END_TIME

    location = parts[2] if len(parts) >= 3 else ""
    return MeetingPattern(
        days=days or (Weekday.MONDAY,),
        start_time=start_time,
        end_time=end_time,
        location=location,
    )


def excel_serial_to_date(serial: Any) -> date | None:
    """Convert a spreadsheet day serial (1 == 1900-01-01) to a calendar date."""
    if isinstance(serial, bool):
        return None
    try:
        value = float(serial)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value) or value < 1:
        return None
    day_count = int(math.floor(value))
    if day_count > EXCEL_LEAP_BUG_SERIAL:
        day_count -= 1
    return EXCEL_EPOCH + timedelta(days=day_count)


def read_date_cell(value: Any) -> date | None:
    """Date from a serial number, a native date cell or ISO / ``M/D/YY`` text; otherwise ``None``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return excel_serial_to_date(value)
    text = _cell_text(value)
    if NUMERIC_RE.match(text):
        return excel_serial_to_date(text)
    if DATE_TEXT_RE.match(text):
        try:
            return parse_date(text)
        except ValueError:
            return None
    return None


def is_active_status(registration_status: str) -> bool:
    lowered = (registration_status or "").lower()
    return not any(status in lowered for status in INACTIVE_STATUSES)


def is_valid_course(course: Course) -> bool:
    return bool(COURSE_CODE_RE.match(course.title)) and is_active_status(course.registration_status)


def extract_schedule(grid: RawGrid) -> ExtractionReport:
    """Extract every enrolled course from ``grid`` together with diagnostics."""
    if len(grid) < 2:
        return ExtractionReport(warnings=["Spreadsheet has fewer than two rows."])

    warnings: List[str] = []
    header_row = find_header_row(grid)
    if header_row is None:
        warnings.append(
            f"No header row with Course Listing, Meeting Patterns and Instructor in the first "
            f"{HEADER_SCAN_ROWS} rows; using row 1."
        )
        header_row = 0

    columns = resolve_columns(grid[header_row] or [])
    logger.debug("Header row %s resolved columns %s", header_row, columns)

    courses: List[Course] = []
    skipped = 0
    for row in grid[header_row + 1 :]:
        row = row or []
        if all(not _cell_text(cell) for cell in row):
            continue

        listing = _cell_text(_cell(row, columns.course_listing))
        if not listing or listing in STRAY_LISTING_VALUES:
            continue

        course = _build_course(row, columns, listing, next_id=len(courses) + 1)
        if is_valid_course(course):
            courses.append(course)
        else:
            skipped += 1
            logger.debug("Skipping row for %r (status %r)", course.title, course.registration_status)

    if not courses:
        warnings.append("No enrolled courses found. Check that the file is a Workday course export.")

    return ExtractionReport(
        courses=courses, header_row=header_row, columns=columns, skipped_rows=skipped, warnings=warnings
    )


def extract_courses(grid: RawGrid) -> List[Course]:
    return extract_schedule(grid).courses


def _build_course(row: Sequence[Any], columns: ColumnMap, listing: str, *, next_id: int) -> Course:
    meeting = parse_meeting_patterns(_cell_text(_cell(row, columns.meeting_patterns)))
    return Course(
        id=next_id,
        title=extract_course_name(listing),
        days=meeting.days,
        start_time=meeting.start_time,
        end_time=meeting.end_time,
        location=meeting.location,
        instructor=_cell_text(_cell(row, columns.instructor)),
        registration_status=_cell_text(_cell(row, columns.registration_status)),
        start_date=read_date_cell(_cell(row, columns.start_date)),
        end_date=read_date_cell(_cell(row, columns.end_date)),
    )


def _cell(row: Sequence[Any], index: int) -> Any:
    if index < 0 or index >= len(row):
        return ""
    return row[index]


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _header_text(value: Any) -> str:
    return _cell_text(value).lower()

"""iCalendar (.ics) export of weekly course meetings.

DTSTART/DTEND are floating local times (no TZID, no ``Z``) so that a 9:00 AM class
shows at 9:00 AM whatever timezone the importing calendar uses.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import List, Sequence

from icalendar import Calendar, Event
from icalendar.prop import vInline

from .models import Course
from .recurrence import get_first_meeting_date, rrule_days, weekly_rule

PRODID = "-//Workday Course Calendar//EN"
UID_DOMAIN = "workday-course-calendar"
DEFAULT_FILENAME = "workday-schedule.ics"


def event_uid(number: int) -> str:
    return f"workday-event-{number}@{UID_DOMAIN}"


def event_numbers(courses: Sequence[Course]) -> List[int]:
    """Course ids when they are all positive and distinct, otherwise 1-based positions."""
    ids = [course.id for course in courses]
    if all(number > 0 for number in ids) and len(set(ids)) == len(ids):
        return ids
    return list(range(1, len(courses) + 1))


def course_to_event(
    course: Course, *, now: datetime, today: date | None = None, number: int | None = None
) -> Event:
    first_meeting = get_first_meeting_date(course.start_date, course.days, today=today)

    event = Event()
    event.add("uid", event_uid(course.id if number is None else number))
    event.add("dtstamp", now)
    event.add("dtstart", datetime.combine(first_meeting, course.start_time))
    event.add("dtend", datetime.combine(first_meeting, course.end_time))
    event.add("summary", course.title)
    # Verbatim, same text as the Google Calendar recurrence entry.
    event["RRULE"] = vInline(weekly_rule(rrule_days(course.days), course.end_date))
    if course.location:
        event.add("location", course.location)
    if course.instructor:
        event.add("description", f"Instructor: {course.instructor}")
    return event


def build_calendar(
    courses: Sequence[Course],
    *,
    now: datetime | None = None,
    today: date | None = None,
) -> Calendar:
    now = now or datetime.now(timezone.utc).replace(microsecond=0)

    calendar = Calendar()
    calendar.add("prodid", PRODID)
    calendar.add("version", "2.0")
    calendar.add("calscale", "GREGORIAN")
    calendar.add("method", "PUBLISH")
    for course, number in zip(courses, event_numbers(courses)):
        calendar.add_component(course_to_event(course, now=now, today=today, number=number))
    return calendar


def to_calendar_file(
    courses: Sequence[Course],
    *,
    now: datetime | None = None,
    today: date | None = None,
) -> str:
    """Serialize one recurring VEVENT per course into an iCalendar document."""
    return build_calendar(courses, now=now, today=today).to_ical().decode("utf-8")


def write_calendar_file(courses: Sequence[Course], out_path: str | Path) -> int:
    """Write the calendar document to ``out_path`` and return the number of events."""
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(to_calendar_file(courses), encoding="utf-8", newline="")
    return len(courses)

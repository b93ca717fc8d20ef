"""Create and remove batches of recurring course events in Google Calendar.

Every event created by one ``create_events`` call carries the same batch id in its
private extended properties; ``delete_by_batch`` finds them again through the
provider's metadata filter, so no local record of created ids is needed.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import date, datetime
from functools import reduce
from typing import Any, Dict, Optional, Sequence, Tuple

from .calendar_client import CalendarClient
from .exceptions import AuthenticationError, CalendarProviderError, MaterializationError, MissingDateTime
from .models import Course, CreateEventsResult, DeleteBatchResult
from .recurrence import get_first_meeting_date, get_recurrence_rule

logger = logging.getLogger(__name__)

APP_SOURCE = "workday-course-calendar"
DEFAULT_CALENDAR_ID = "primary"
DEFAULT_TIMEZONE = "America/Chicago"
BATCH_SUFFIX_LENGTH = 9
BASE36_ALPHABET = string.digits + string.ascii_lowercase
LOCAL_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
PLACEHOLDER = "TBA"
REMINDERS: Dict[str, Any] = {
    "useDefault": False,
    "overrides": [
        {"method": "popup", "minutes": 10},
        {"method": "email", "minutes": 30},
    ],
}


@dataclass(frozen=True)
class _Outcome:
    event_id: Optional[str] = None
    error: Optional[str] = None


def generate_batch_id() -> str:
    """``batch_<epoch millis>_<9 base36 chars>``."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(BATCH_SUFFIX_LENGTH))
    return f"batch_{millis}_{suffix}"


def build_event_body(
    course: Course,
    batch_id: str,
    timezone: str = DEFAULT_TIMEZONE,
    *,
    today: date | None = None,
) -> Dict[str, Any]:
    """Google Calendar event resource for one course.

    Start/end are local wall-clock strings without an offset, paired with
    ``timezone`` so the provider reads them as times in that zone.
    """
    if course.start_date is None:
        raise MissingDateTime("Missing start date")
    if course.end_time <= course.start_time:
        raise MissingDateTime(
            f"Invalid time: end {course.end_time.strftime('%H:%M')} is not after "
            f"start {course.start_time.strftime('%H:%M')}"
        )
    recurrence = get_recurrence_rule(course.days, course.start_date, course.end_date)

    first_meeting = get_first_meeting_date(course.start_date, course.days, today=today)
    start = datetime.combine(first_meeting, course.start_time)
    end = datetime.combine(first_meeting, course.end_time)

    location = course.location or PLACEHOLDER
    return {
        "summary": course.title,
        "description": f"Instructor: {course.instructor or PLACEHOLDER}\nLocation: {location}",
        "location": location,
        "start": {"dateTime": start.strftime(LOCAL_DATETIME_FORMAT), "timeZone": timezone},
        "end": {"dateTime": end.strftime(LOCAL_DATETIME_FORMAT), "timeZone": timezone},
        "recurrence": recurrence,
        "extendedProperties": {"private": {"appSource": APP_SOURCE, "batchId": batch_id}},
        "reminders": REMINDERS,
    }


def create_events(
    client: CalendarClient | None,
    courses: Sequence[Course],
    calendar_id: str = DEFAULT_CALENDAR_ID,
    batch_id: str | None = None,
    *,
    timezone: str = DEFAULT_TIMEZONE,
    deadline: float | None = None,
) -> CreateEventsResult:
    """Create one recurring event per course, in order, tagging all with one batch id.

    Per-course failures are collected as ``"<title>: <message>"`` and never stop the
    remaining courses. ``deadline`` is a ``time.monotonic()`` value; courses reached
    after it are reported as cancelled instead of being submitted.
    """
    _require_authenticated(client)
    assert client is not None
    batch_id = batch_id or generate_batch_id()
    logger.info("Creating %s events in calendar %s (batch %s)", len(courses), calendar_id, batch_id)

    outcomes = (
        _create_one(client, course, calendar_id, batch_id, timezone, deadline) for course in courses
    )
    event_ids, errors = reduce(_fold_outcome, outcomes, ((), ()))

    logger.info("Batch %s: %s created, %s failed", batch_id, len(event_ids), len(errors))
    return CreateEventsResult(
        events_created=len(event_ids),
        event_ids=list(event_ids),
        batch_id=batch_id,
        errors=list(errors),
    )


def delete_by_batch(
    client: CalendarClient | None,
    batch_id: str,
    calendar_id: str = DEFAULT_CALENDAR_ID,
) -> DeleteBatchResult:
    """Delete every event tagged with ``batch_id``; per-event failures are reported, not raised."""
    _require_authenticated(client)
    assert client is not None
    if not batch_id or not batch_id.strip():
        raise ValueError("Batch ID is required")

    found = client.list_events(calendar_id, {"batchId": batch_id})
    logger.info("Found %s events for batch %s in calendar %s", len(found), batch_id, calendar_id)

    deleted_ids = []
    errors = []
    for event in found:
        event_id = event.get("id")
        if not event_id:
            errors.append("Found an event without an id")
            continue
        try:
            client.delete_event(calendar_id, event_id)
        except CalendarProviderError as exc:
            logger.warning("Failed to delete event %s: %s", event_id, exc)
            errors.append(f"Failed to delete event {event_id}: {exc}")
        else:
            deleted_ids.append(event_id)

    return DeleteBatchResult(
        deleted_count=len(deleted_ids),
        deleted_ids=deleted_ids,
        total_found=len(found),
        errors=errors,
    )


def _require_authenticated(client: CalendarClient | None) -> None:
    if client is None or not client.is_authenticated():
        raise AuthenticationError("Not authenticated with Google Calendar")


def _create_one(
    client: CalendarClient,
    course: Course,
    calendar_id: str,
    batch_id: str,
    timezone: str,
    deadline: float | None,
) -> _Outcome:
    if deadline is not None and time.monotonic() >= deadline:
        return _Outcome(error=f"{course.title}: cancelled before submission")
    try:
        body = build_event_body(course, batch_id, timezone)
        created = client.insert_event(calendar_id, body)
    except (MaterializationError, CalendarProviderError) as exc:
        logger.warning("Could not create event for %s: %s", course.title, exc)
        return _Outcome(error=f"{course.title}: {exc}")
    return _Outcome(event_id=str(created.get("id", "")))


def _fold_outcome(
    acc: Tuple[Tuple[str, ...], Tuple[str, ...]], outcome: _Outcome
) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    event_ids, errors = acc
    if outcome.error is not None:
        return event_ids, errors + (outcome.error,)
    return event_ids + (outcome.event_id or "",), errors

"""Workday course schedule to calendar converter."""

__version__ = "1.0.0"

from .batches import create_events, delete_by_batch, generate_batch_id
from .calendar_client import GoogleCalendarClient, OAuthFlow, OAuthSettings, TokenStore
from .exceptions import (
    AuthenticationError,
    CalendarProviderError,
    ConfigurationError,
    CourseCalendarError,
    GridReadError,
    InvalidRecurrence,
    MaterializationError,
    MissingDateTime,
)
from .extractor import extract_courses, extract_schedule
from .ics_export import to_calendar_file, write_calendar_file
from .models import CalendarSummary, Course, CreateEventsResult, DeleteBatchResult, ExtractionReport
from .readers import read_grid, read_grid_file
from .recurrence import format_time_for_ics, get_first_meeting_date, get_recurrence_rule, parse_time
from .weekdays import Weekday

__all__ = [
    "AuthenticationError",
    "CalendarProviderError",
    "CalendarSummary",
    "ConfigurationError",
    "Course",
    "CourseCalendarError",
    "CreateEventsResult",
    "DeleteBatchResult",
    "ExtractionReport",
    "GoogleCalendarClient",
    "GridReadError",
    "InvalidRecurrence",
    "MaterializationError",
    "MissingDateTime",
    "OAuthFlow",
    "OAuthSettings",
    "TokenStore",
    "Weekday",
    "create_events",
    "delete_by_batch",
    "extract_courses",
    "extract_schedule",
    "format_time_for_ics",
    "generate_batch_id",
    "get_first_meeting_date",
    "get_recurrence_rule",
    "parse_time",
    "read_grid",
    "read_grid_file",
    "to_calendar_file",
    "write_calendar_file",
]

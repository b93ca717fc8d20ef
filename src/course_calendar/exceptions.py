from __future__ import annotations


class CourseCalendarError(Exception):
    """Base class for errors raised by the course calendar package."""


class MaterializationError(CourseCalendarError, ValueError):
    """A single course could not be turned into a calendar event."""


class MissingDateTime(MaterializationError):
    """The course has no usable start date or meeting time."""


class InvalidRecurrence(MaterializationError):
    """The weekly recurrence rule cannot be built for the course."""


class AuthenticationError(CourseCalendarError):
    """No valid Google credential is available for the request."""


class CalendarProviderError(CourseCalendarError):
    """The Google Calendar API rejected or failed a request."""


class ConfigurationError(CourseCalendarError):
    """Required settings (for example OAuth client secrets) are missing."""


class GridReadError(CourseCalendarError):
    """An uploaded spreadsheet could not be decoded into rows of cells."""

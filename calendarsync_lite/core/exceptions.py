"""Exception hierarchy for calendarsync_lite.

Feed problems (missing file, HTTP errors, malformed entries) are reported as
warnings and never raised. Exceptions are reserved for caller errors and
storage failures.
"""


class CalendarSyncError(Exception):
    """Base exception for all calendarsync_lite errors."""


class CalendarRangeError(CalendarSyncError, ValueError):
    """Requested date range is malformed, reversed or too long.

    Raised when:
    - rangeStart or rangeEnd is not a valid YYYY-MM-DD date
    - rangeEnd is before rangeStart
    - the range spans more than 60 days

    Should result in HTTP 400 Bad Request response.
    """


class CalendarStoreError(CalendarSyncError):
    """Persisted storage failed to read or write.

    Should result in HTTP 500 Internal Server Error response.
    """

"""Requested date-range validation and per-day work windows."""

from __future__ import annotations

import datetime
import logging
import re

from ..calendar.lite_datetime_utils import local_parts_to_utc
from ..calendar.lite_models import CalendarRange, DayWindow, LocalParts, RangeContext
from ..core.config_manager import DEFAULT_WORKDAY_CONFIG, WorkdayConfig
from ..core.exceptions import CalendarRangeError
from ..core.timezone_utils import now_utc

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 60
DEFAULT_RANGE_DAYS = 7

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_only(value: str) -> datetime.date | None:
    """Parse a strict YYYY-MM-DD string, or return None."""
    if not _DATE_ONLY_RE.match(value):
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        return None


def normalize_requested_range(
    range_start: str | None,
    range_end: str | None,
    today: datetime.date | None = None,
) -> CalendarRange:
    """Validate a caller-supplied range, defaulting to [today, today + 7].

    Raises:
        CalendarRangeError: On malformed dates, a reversed range, or a span over 60 days
    """
    if today is None:
        today = now_utc().date()

    start_text = range_start if range_start is not None else today.isoformat()
    end_text = (
        range_end
        if range_end is not None
        else (today + datetime.timedelta(days=DEFAULT_RANGE_DAYS)).isoformat()
    )

    start = parse_date_only(start_text)
    end = parse_date_only(end_text)
    if start is None or end is None:
        raise CalendarRangeError("rangeStart and rangeEnd must be YYYY-MM-DD")

    if end < start:
        raise CalendarRangeError("rangeEnd must be on or after rangeStart")

    if (end - start).days > MAX_RANGE_DAYS:
        raise CalendarRangeError(f"range may not exceed {MAX_RANGE_DAYS} days")

    return CalendarRange(range_start=start, range_end=end)


def _wall_clock_to_utc(day: datetime.date, hours: float, tzid: str) -> datetime.datetime:
    # Fractional hours (16.5 -> 16:30); 24 rolls over to the next midnight
    wall = datetime.datetime.combine(day, datetime.time()) + datetime.timedelta(hours=hours)
    return local_parts_to_utc(
        LocalParts(wall.year, wall.month, wall.day, wall.hour, wall.minute, wall.second), tzid
    )


def build_day_windows(
    calendar_range: CalendarRange,
    workday: WorkdayConfig = DEFAULT_WORKDAY_CONFIG,
) -> RangeContext:
    """Compute the UTC bounds of a range and one work window per day.

    The range runs from local midnight of the first day to local midnight after
    the last day, in the workday timezone.
    """
    start = calendar_range.range_start
    end = calendar_range.range_end
    if end < start:
        raise CalendarRangeError("rangeEnd must be on or after rangeStart")

    tzid = workday.timezone
    utc_start = _wall_clock_to_utc(start, 0, tzid)
    utc_end_exclusive = _wall_clock_to_utc(end + datetime.timedelta(days=1), 0, tzid)

    windows = []
    current = start
    while current <= end:
        windows.append(
            DayWindow(
                day=current,
                window_start=_wall_clock_to_utc(current, workday.focus_window_start_hour, tzid),
                window_end=_wall_clock_to_utc(current, workday.focus_window_end_hour, tzid),
            )
        )
        current += datetime.timedelta(days=1)

    logger.debug(
        "Built %d day windows for %s..%s in %s", len(windows), start, end, tzid
    )
    return RangeContext(
        utc_range_start=utc_start,
        utc_range_end_exclusive=utc_end_exclusive,
        windows=tuple(windows),
    )

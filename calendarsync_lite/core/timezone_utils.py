"""Timezone name normalization and wall-clock conversion utilities for calendarsync_lite."""

from __future__ import annotations

import datetime
import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc

# Windows timezone names to IANA identifiers.
# Outlook/Exchange ICS exports carry Windows zone ids in TZID parameters. Names that are
# not in this table pass through unchanged, which is a known limitation: a name that is
# neither mapped nor a valid IANA id cannot be resolved and callers fall back to UTC.
WINDOWS_TZ_MAP: dict[str, str] = {
    "Eastern Standard Time": "America/New_York",
    "Central Standard Time": "America/Chicago",
    "Mountain Standard Time": "America/Denver",
    "Pacific Standard Time": "America/Los_Angeles",
    "Alaska Standard Time": "America/Anchorage",
    "Alaskan Standard Time": "America/Anchorage",
    "Hawaiian Standard Time": "Pacific/Honolulu",
    "Arizona Standard Time": "America/Phoenix",
    "Atlantic Standard Time": "America/Halifax",
    "GMT Standard Time": "Europe/London",
    "W. Europe Standard Time": "Europe/Berlin",
    "Central European Standard Time": "Europe/Warsaw",
    "Romance Standard Time": "Europe/Paris",
    "Central Europe Standard Time": "Europe/Budapest",
    "E. Europe Standard Time": "Europe/Chisinau",
    "FLE Standard Time": "Europe/Kiev",
    "GTB Standard Time": "Europe/Bucharest",
    "Russian Standard Time": "Europe/Moscow",
    "India Standard Time": "Asia/Kolkata",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "Korea Standard Time": "Asia/Seoul",
    "AUS Eastern Standard Time": "Australia/Sydney",
    "E. Australia Standard Time": "Australia/Brisbane",
    "Cen. Australia Standard Time": "Australia/Adelaide",
    "W. Australia Standard Time": "Australia/Perth",
    "New Zealand Standard Time": "Pacific/Auckland",
    "UTC": "UTC",
    "Coordinated Universal Time": "UTC",
}


def normalize_timezone_name(tzid: str) -> str:
    """Map a legacy (Windows) zone name to its IANA identifier.

    IANA-looking names (containing "/") and "UTC" are returned unchanged, as are
    names missing from the table.
    """
    cleaned = tzid.strip()
    if "/" in cleaned or cleaned == "UTC":
        return cleaned
    return WINDOWS_TZ_MAP.get(cleaned, cleaned)


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert a Windows timezone name to an IANA identifier, or None if unknown."""
    return WINDOWS_TZ_MAP.get(windows_tz)


def get_zone(tzid: str) -> datetime.tzinfo:
    """Resolve a zone id to a tzinfo.

    Raises:
        ZoneInfoNotFoundError: If the id is not a known zone
    """
    if tzid in ("UTC", "Z", "Etc/UTC"):
        return UTC
    try:
        return ZoneInfo(tzid)
    except (ValueError, OSError) as e:
        # ValueError for keys that are not valid paths ("../x", ""); OSError for keys
        # naming a tzdata directory ("America")
        raise ZoneInfoNotFoundError(f"Invalid timezone key: {tzid!r}") from e


def zoned_datetime_to_utc(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int,
    tzid: str,
) -> datetime.datetime:
    """Convert local wall-clock parts in ``tzid`` to an aware UTC datetime.

    Uses the zone's rules at that wall time, so a fixed local time keeps its wall
    clock across DST transitions. Wall times inside a spring-forward gap use the
    offset in effect before the gap; repeated fall-back times resolve to their
    first occurrence.

    Raises:
        ZoneInfoNotFoundError: If the zone is unknown
        ValueError: If the parts do not form a valid date/time
    """
    zone = get_zone(tzid)
    local = datetime.datetime(year, month, day, hour, minute, second, tzinfo=zone)
    return local.astimezone(UTC)


def local_wall_time_in_zone(instant: datetime.datetime, tzid: str) -> datetime.datetime:
    """Return the naive wall-clock time of ``instant`` in ``tzid`` (UTC for unknown zones)."""
    try:
        zone = get_zone(tzid)
    except ZoneInfoNotFoundError:
        logger.debug("Unknown timezone %r for local time lookup, using UTC", tzid)
        zone = UTC
    return instant.astimezone(zone).replace(tzinfo=None)


def local_date_in_zone(instant: datetime.datetime, tzid: str) -> datetime.date:
    """Return the calendar date of ``instant`` as seen in ``tzid`` (UTC for unknown zones)."""
    return local_wall_time_in_zone(instant, tzid).date()


def is_valid_timezone(tzid: str) -> bool:
    """Check whether ``tzid`` resolves to a known zone."""
    try:
        get_zone(tzid)
    except ZoneInfoNotFoundError:
        return False
    return True


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the CALENDARSYNC_TEST_TIME environment variable
    (ISO 8601, e.g. "2025-10-27T08:20:00-07:00"). Naive values are read as UTC.
    """
    test_time = os.environ.get("CALENDARSYNC_TEST_TIME")
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(UTC)
            return dt.replace(tzinfo=UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse CALENDARSYNC_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now(UTC)


def format_utc_iso(instant: datetime.datetime) -> str:
    """Canonical UTC string used in identifiers, hashes and payloads (YYYY-MM-DDTHH:MM:SSZ)."""
    return instant.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")

"""DateTime resolution for ICS property values - calendarsync_lite.

Resolves DTSTART/DTEND/EXDATE/RDATE/UNTIL values into UTC instants while
keeping the local wall-clock parts needed for recurrence arithmetic.
"""

import datetime
import logging
import re
from collections.abc import Mapping
from typing import Optional
from zoneinfo import ZoneInfoNotFoundError

from dateutil import parser as date_parser

from ..core.timezone_utils import UTC, normalize_timezone_name, zoned_datetime_to_utc
from .lite_models import LocalParts, ParsedDateTime

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{8}$")
_UTC_DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$", re.IGNORECASE)
_LOCAL_DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})$", re.IGNORECASE)


def ensure_timezone_aware(dt: datetime.datetime) -> datetime.datetime:
    """Ensure datetime is timezone-aware (UTC if originally naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def local_parts_to_utc(parts: LocalParts, tzid: str) -> datetime.datetime:
    """Convert local parts in tzid to UTC, reading them as UTC when the zone is unknown.

    Raises:
        ValueError: If the parts are not a valid date/time
    """
    try:
        return zoned_datetime_to_utc(
            parts.year, parts.month, parts.day, parts.hour, parts.minute, parts.second, tzid
        )
    except ZoneInfoNotFoundError:
        logger.debug("Unknown timezone %r, reading wall time as UTC", tzid)
        return datetime.datetime(
            parts.year, parts.month, parts.day, parts.hour, parts.minute, parts.second, tzinfo=UTC
        )


def _parse_date_value(value: str, tzid: str) -> ParsedDateTime:
    digits = value.replace("-", "")[:8]
    if not (len(digits) == 8 and digits.isdigit()):
        return ParsedDateTime(None, True, tzid)

    parts = LocalParts(int(digits[:4]), int(digits[4:6]), int(digits[6:8]))
    try:
        instant = local_parts_to_utc(parts, tzid)
    except (ValueError, OverflowError):
        logger.debug("Invalid all-day date %r", value)
        return ParsedDateTime(None, True, tzid, parts)
    return ParsedDateTime(instant, True, tzid, parts)


def parse_ics_datetime(
    raw_value: str,
    params: Optional[Mapping[str, str]] = None,
    default_timezone: str = "UTC",
) -> ParsedDateTime:
    """Resolve an ICS date or date-time value.

    Args:
        raw_value: Property value, e.g. "20240105", "20240105T090000Z",
            "20240105T090000"
        params: Property parameters (TZID, VALUE)
        default_timezone: Zone used for floating times without TZID

    Returns:
        ParsedDateTime; ``instant_utc`` is None when the value cannot be resolved.
        This function never raises.
    """
    params = params or {}
    value = (raw_value or "").strip()
    tzid = normalize_timezone_name(params.get("TZID") or default_timezone)
    value_type = (params.get("VALUE") or "").upper()

    if value_type == "DATE" or _DATE_RE.match(value):
        return _parse_date_value(value, tzid)

    match = _UTC_DATETIME_RE.match(value)
    if match:
        parts = LocalParts(*(int(group) for group in match.groups()))
        try:
            instant = datetime.datetime(
                parts.year, parts.month, parts.day, parts.hour, parts.minute, parts.second, tzinfo=UTC
            )
        except ValueError:
            logger.debug("Invalid UTC date-time %r", value)
            return ParsedDateTime(None, False, "UTC", parts)
        return ParsedDateTime(instant, False, "UTC", parts)

    match = _LOCAL_DATETIME_RE.match(value)
    if match:
        parts = LocalParts(*(int(group) for group in match.groups()))
        try:
            instant = local_parts_to_utc(parts, tzid)
        except (ValueError, OverflowError):
            logger.debug("Invalid local date-time %r in %s", value, tzid)
            return ParsedDateTime(None, False, tzid, parts)
        return ParsedDateTime(instant, False, tzid, parts)

    if not value:
        return ParsedDateTime(None, False, tzid)

    try:
        instant = ensure_timezone_aware(date_parser.isoparse(value)).astimezone(UTC)
    except (ValueError, OverflowError):
        logger.debug("Unparseable date-time value %r", value)
        return ParsedDateTime(None, False, tzid)

    return ParsedDateTime(instant, False, tzid)


def parse_ics_date_list(
    raw_value: str,
    params: Optional[Mapping[str, str]] = None,
    default_timezone: str = "UTC",
) -> list[datetime.datetime]:
    """Resolve a comma-separated EXDATE/RDATE value, skipping unresolvable entries."""
    instants: list[datetime.datetime] = []
    for item in (raw_value or "").split(","):
        item = item.strip()
        if not item:
            continue
        resolved = parse_ics_datetime(item, params, default_timezone).instant_utc
        if resolved is not None:
            instants.append(resolved)
    return instants

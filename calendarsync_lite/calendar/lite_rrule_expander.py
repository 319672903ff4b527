"""RRULE parsing and expansion for calendarsync_lite.

Expansion runs a dateutil rrule on the series' naive local wall clock and converts
each occurrence back to UTC with the series zone, so a fixed local time keeps its
wall clock across DST transitions.
"""

import datetime
import logging
import re
from collections.abc import Collection
from typing import Optional

from dateutil import rrule as dateutil_rrule

from ..core.timezone_utils import format_utc_iso, local_wall_time_in_zone
from .lite_datetime_utils import local_parts_to_utc, parse_ics_datetime
from .lite_event_identity import build_external_event_id, build_recurrence_key
from .lite_models import (
    ByDayToken,
    CalendarEvent,
    ExpansionWindow,
    LocalParts,
    RecurrenceFrequency,
    RecurrenceRule,
    RecurringEventDefinition,
)

logger = logging.getLogger(__name__)

# Guard against unbounded or malformed rules
MAX_RECURRENCE_OCCURRENCES = 2000

ONE_DAY = datetime.timedelta(days=1)
DEFAULT_TIMED_DURATION = datetime.timedelta(minutes=30)

WEEKDAY_TO_INDEX: dict[str, int] = {
    "MO": 0,
    "TU": 1,
    "WE": 2,
    "TH": 3,
    "FR": 4,
    "SA": 5,
    "SU": 6,
}

_BY_DAY_RE = re.compile(r"^([+-]?\d{1,2})?([A-Z]{2})$", re.IGNORECASE)


def parse_by_day_token(raw_token: str) -> Optional[ByDayToken]:
    """Parse a BYDAY entry such as "MO", "2FR" or "-1SU"."""
    match = _BY_DAY_RE.match(raw_token.strip())
    if not match:
        return None

    weekday = WEEKDAY_TO_INDEX.get(match.group(2).upper())
    if weekday is None:
        return None

    if not match.group(1):
        return ByDayToken(weekday=weekday)

    ordinal = int(match.group(1))
    if ordinal == 0:
        return None
    return ByDayToken(weekday=weekday, ordinal=ordinal)


def _parse_int_list(raw: Optional[str]) -> list[int]:
    values = []
    for token in (raw or "").split(","):
        try:
            values.append(int(token.strip()))
        except ValueError:
            continue
    return values


def parse_recurrence_rule(raw_rule: str, default_timezone: str = "UTC") -> Optional[RecurrenceRule]:
    """Parse an RRULE value.

    Args:
        raw_rule: e.g. "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;UNTIL=20240301T000000Z"
        default_timezone: Zone for a floating UNTIL (the event's start zone)

    Returns:
        RecurrenceRule, or None when FREQ is missing or unsupported
    """
    values: dict[str, str] = {}
    for token in raw_rule.split(";"):
        key, sep, value = token.partition("=")
        key = key.strip().upper()
        value = value.strip()
        if not sep or not key or not value:
            continue
        values[key] = value

    try:
        freq = RecurrenceFrequency(values.get("FREQ", "").upper())
    except ValueError:
        logger.debug("Unsupported recurrence frequency in %r", raw_rule)
        return None

    try:
        interval = int(values.get("INTERVAL", "1"))
    except ValueError:
        interval = 1
    if interval <= 0:
        interval = 1

    until = None
    if "UNTIL" in values:
        until = parse_ics_datetime(values["UNTIL"], {}, default_timezone).instant_utc

    count = None
    if "COUNT" in values:
        try:
            count = int(values["COUNT"])
        except ValueError:
            count = None
        if count is not None and count <= 0:
            count = None

    by_day = tuple(
        token
        for token in (parse_by_day_token(raw) for raw in values.get("BYDAY", "").split(",") if raw)
        if token is not None
    )
    by_month_day = tuple(
        day for day in _parse_int_list(values.get("BYMONTHDAY")) if day != 0 and -31 <= day <= 31
    )
    by_month = tuple(month for month in _parse_int_list(values.get("BYMONTH")) if 1 <= month <= 12)
    week_start = WEEKDAY_TO_INDEX.get(values.get("WKST", "MO").upper(), WEEKDAY_TO_INDEX["MO"])

    return RecurrenceRule(
        freq=freq,
        interval=interval,
        until=until,
        count=count,
        by_day=by_day,
        by_month_day=by_month_day,
        by_month=by_month,
        week_start=week_start,
    )


DATEUTIL_FREQUENCIES = {
    RecurrenceFrequency.DAILY: dateutil_rrule.DAILY,
    RecurrenceFrequency.WEEKLY: dateutil_rrule.WEEKLY,
    RecurrenceFrequency.MONTHLY: dateutil_rrule.MONTHLY,
    RecurrenceFrequency.YEARLY: dateutil_rrule.YEARLY,
}

# Indexed by Python weekday numbering (Monday=0)
DATEUTIL_WEEKDAYS = (
    dateutil_rrule.MO,
    dateutil_rrule.TU,
    dateutil_rrule.WE,
    dateutil_rrule.TH,
    dateutil_rrule.FR,
    dateutil_rrule.SA,
    dateutil_rrule.SU,
)


def build_dateutil_rule(
    rule: RecurrenceRule,
    dtstart: datetime.datetime,
    until_local: Optional[datetime.datetime] = None,
) -> dateutil_rrule.rrule:
    """Translate a parsed rule into a dateutil rrule on the series' local calendar.

    Args:
        rule: Parsed RRULE
        dtstart: Naive wall-clock start of the series
        until_local: Naive wall-clock UNTIL bound, ignored when COUNT is set

    BYMONTHDAY takes precedence over BYDAY for monthly and yearly rules. Weekly
    rules default to the start's weekday and yearly rules to the start's month.
    """
    by_day = rule.by_day
    by_month = rule.by_month
    if rule.freq is RecurrenceFrequency.WEEKLY and not by_day:
        by_day = (ByDayToken(weekday=dtstart.weekday()),)
    if rule.freq in (RecurrenceFrequency.MONTHLY, RecurrenceFrequency.YEARLY) and rule.by_month_day:
        by_day = ()
    if rule.freq is RecurrenceFrequency.YEARLY and not by_month:
        by_month = (dtstart.month,)

    return dateutil_rrule.rrule(
        DATEUTIL_FREQUENCIES[rule.freq],
        dtstart=dtstart,
        interval=rule.interval,
        wkst=rule.week_start,
        count=rule.count,
        # dateutil deprecates COUNT together with UNTIL; the caller enforces UNTIL then
        until=None if rule.count else until_local,
        byweekday=[DATEUTIL_WEEKDAYS[token.weekday](token.ordinal) for token in by_day] or None,
        bymonthday=list(rule.by_month_day) or None,
        bymonth=list(by_month) or None,
        cache=False,
    )


def event_duration(event: CalendarEvent) -> datetime.timedelta:
    """Event length, replacing non-positive spans with 1 day (all-day) or 30 minutes."""
    duration = event.end_at - event.start_at
    if duration <= datetime.timedelta(0):
        return ONE_DAY if event.is_all_day else DEFAULT_TIMED_DURATION
    return duration


class _OccurrenceCollector:
    """Accumulates occurrences of one series, applying exclusions and the window."""

    def __init__(
        self,
        definition: RecurringEventDefinition,
        window: ExpansionWindow,
        overridden_keys: Collection[str],
        duration: datetime.timedelta,
    ) -> None:
        self.definition = definition
        self.window = window
        self.overridden_keys = overridden_keys
        self.duration = duration
        self.seen_starts: set[datetime.datetime] = set()
        self.emitted_keys: set[tuple[str, datetime.datetime]] = set()
        self.occurrences: list[CalendarEvent] = []

    def push(self, start: datetime.datetime) -> None:
        if start in self.seen_starts:
            return
        self.seen_starts.add(start)

        if start in self.definition.exdates:
            return

        start_iso = format_utc_iso(start)
        uid = self.definition.uid
        if uid and build_recurrence_key(uid, start_iso) in self.overridden_keys:
            return

        try:
            end = start + self.duration
        except OverflowError:
            logger.debug("Dropping occurrence at %s: end out of range", start_iso)
            return
        if not self.window.overlaps(start, end):
            return

        base = self.definition.event
        external_event_id = build_external_event_id(uid, start_iso, base.title, start, end)
        key = (external_event_id, start)
        if key in self.emitted_keys:
            return
        self.emitted_keys.add(key)

        self.occurrences.append(
            base.model_copy(
                update={"external_event_id": external_event_id, "start_at": start, "end_at": end}
            )
        )


def _expand_local_occurrences(
    definition: RecurringEventDefinition,
    rule: RecurrenceRule,
    start_local: LocalParts,
    window: ExpansionWindow,
    duration: datetime.timedelta,
    collector: _OccurrenceCollector,
) -> None:
    series_start = definition.event.start_at
    tzid = definition.start_tzid

    scan_start = max(series_start, window.start - max(duration, ONE_DAY))
    scan_end = window.end_exclusive + ONE_DAY
    if rule.until is not None:
        scan_end = min(scan_end, rule.until + ONE_DAY)

    if scan_end < scan_start:
        return

    generated = 0
    try:
        until_local = local_wall_time_in_zone(rule.until, tzid) if rule.until is not None else None
        recurrence = build_dateutil_rule(rule, start_local.to_datetime(), until_local)
        last_local = local_wall_time_in_zone(scan_end, tzid)

        for local_start in recurrence.xafter(local_wall_time_in_zone(scan_start, tzid), inc=True):
            if local_start > last_local:
                break
            if generated >= MAX_RECURRENCE_OCCURRENCES:
                logger.warning(
                    "Recurrence expansion for %r stopped at %d occurrences",
                    definition.uid or definition.event.title,
                    MAX_RECURRENCE_OCCURRENCES,
                )
                break

            occurrence = local_parts_to_utc(LocalParts.from_datetime(local_start), tzid)
            if rule.until is not None and occurrence > rule.until:
                break
            generated += 1
            collector.push(occurrence)
    except (ValueError, OverflowError) as e:
        logger.debug(
            "Stopped expanding %r after %d occurrences: %s",
            definition.uid or definition.event.title,
            generated,
            e,
        )


def expand_recurring_event(
    definition: RecurringEventDefinition,
    window: ExpansionWindow,
    overridden_keys: Collection[str] = frozenset(),
) -> list[CalendarEvent]:
    """Expand one series into the occurrences overlapping ``window``.

    Args:
        definition: Parsed event block with its rule, EXDATEs and RDATEs
        window: UTC expansion window
        overridden_keys: Recurrence keys (uid::instant) replaced by RECURRENCE-ID blocks

    Returns:
        Occurrences in generation order; the base event alone when the definition
        has no usable rule and nothing else was emitted.
    """
    event = definition.event
    duration = event_duration(event)
    collector = _OccurrenceCollector(definition, window, overridden_keys, duration)
    rule = definition.rule

    if rule is not None and definition.start_local is not None:
        _expand_local_occurrences(definition, rule, definition.start_local, window, duration, collector)
    else:
        collector.push(event.start_at)

    for rdate in definition.rdates:
        collector.push(rdate)

    if not collector.occurrences and (rule is None or definition.start_local is None):
        return [event]

    logger.debug(
        "Expanded %r into %d occurrences",
        definition.uid or event.title,
        len(collector.occurrences),
    )
    return collector.occurrences

"""Event materialization for ICS processing - calendarsync_lite.

Turns one tokenized VEVENT block into a RecurringEventDefinition: resolved
start/end, normalized title, scrubbed body and participants, stable id and
content hash, plus the recurrence data needed for expansion.
"""

import datetime
import logging
from typing import Optional

from icalendar.prop import vDuration

from ..core.timezone_utils import format_utc_iso
from .lite_body_sanitizer import build_body_preview, sanitize_body
from .lite_datetime_utils import parse_ics_date_list, parse_ics_datetime
from .lite_event_identity import build_content_hash, build_external_event_id
from .lite_models import CalendarEvent, RawProperty, RecurringEventDefinition
from .lite_rrule_expander import DEFAULT_TIMED_DURATION, ONE_DAY, parse_recurrence_rule
from .lite_text_utils import (
    normalize_participants,
    normalize_title,
    sanitize_participant_display,
    unfold_ics_escapes,
)

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TITLE = "Untitled Event"
BODY_PROPERTIES = ("DESCRIPTION", "X-ALT-DESC", "COMMENT")


def extract_display_name(prop: RawProperty) -> Optional[str]:
    """Display name of an ATTENDEE/ORGANIZER: the CN parameter, else the value."""
    cn = prop.param("CN")
    if cn:
        return sanitize_participant_display(cn)
    return sanitize_participant_display(prop.value)


def _fallback_span(is_all_day: bool) -> datetime.timedelta:
    return ONE_DAY if is_all_day else DEFAULT_TIMED_DURATION


def _parse_duration(prop: Optional[RawProperty]) -> Optional[datetime.timedelta]:
    if prop is None:
        return None
    try:
        duration = vDuration.from_ical(prop.value.strip())
    except ValueError:
        logger.debug("Ignoring malformed DURATION %r", prop.value)
        return None
    return duration if isinstance(duration, datetime.timedelta) else None


class LiteEventMaterializer:
    """Builds event definitions from tokenized VEVENT blocks."""

    def __init__(self, default_timezone: str, body_max_chars: int):
        """Initialize materializer.

        Args:
            default_timezone: Zone for floating times without TZID
            body_max_chars: Maximum length of a sanitized body
        """
        self.default_timezone = default_timezone
        self.body_max_chars = body_max_chars

    def build_definition(self, block: list[RawProperty]) -> Optional[RecurringEventDefinition]:
        """Materialize one VEVENT block.

        Returns:
            The definition, or None for cancelled blocks and blocks without a
            resolvable DTSTART.
        """
        summary = ""
        dtstart: Optional[RawProperty] = None
        dtend: Optional[RawProperty] = None
        duration_prop: Optional[RawProperty] = None
        description: Optional[RawProperty] = None
        uid: Optional[str] = None
        recurrence_id: Optional[str] = None
        raw_rule: Optional[str] = None
        status: Optional[str] = None
        organizer: Optional[RawProperty] = None
        exdates: list[datetime.datetime] = []
        rdates: list[datetime.datetime] = []
        attendees: list[str] = []

        for prop in block:
            name = prop.name
            if name == "SUMMARY":
                summary = unfold_ics_escapes(prop.value)
            elif name == "DTSTART":
                dtstart = prop
            elif name == "DTEND":
                dtend = prop
            elif name == "DURATION":
                duration_prop = duration_prop or prop
            elif name in BODY_PROPERTIES:
                description = description or prop
            elif name == "UID":
                uid = unfold_ics_escapes(prop.value).strip()
            elif name == "RECURRENCE-ID":
                resolved = parse_ics_datetime(prop.value, prop.params, self.default_timezone)
                if resolved.instant_utc is not None:
                    recurrence_id = format_utc_iso(resolved.instant_utc)
                else:
                    recurrence_id = unfold_ics_escapes(prop.value).strip()
            elif name == "RRULE":
                raw_rule = raw_rule or unfold_ics_escapes(prop.value)
            elif name == "EXDATE":
                exdates.extend(parse_ics_date_list(prop.value, prop.params, self.default_timezone))
            elif name == "RDATE":
                rdates.extend(parse_ics_date_list(prop.value, prop.params, self.default_timezone))
            elif name == "STATUS":
                status = unfold_ics_escapes(prop.value).strip().upper()
            elif name == "ORGANIZER":
                organizer = organizer or prop
            elif name == "ATTENDEE":
                display = extract_display_name(prop)
                if display:
                    attendees.append(display)

        if status == "CANCELLED":
            logger.debug("Dropping cancelled event %r", uid or summary)
            return None

        if dtstart is None:
            logger.debug("Skipping event without DTSTART (%r)", uid or summary)
            return None

        start = parse_ics_datetime(dtstart.value, dtstart.params, self.default_timezone)
        if start.instant_utc is None:
            logger.debug("Skipping event with unresolvable DTSTART %r", dtstart.value)
            return None

        start_at = start.instant_utc
        resolved_end = self._resolve_end(start_at, start.is_all_day, dtend, duration_prop)
        if resolved_end is None:
            logger.debug("Skipping event whose end is out of range (%r)", uid or summary)
            return None
        end_at, end_is_all_day = resolved_end

        organizer_display = extract_display_name(organizer) if organizer else None
        participants = attendees + [organizer_display] if organizer_display else attendees
        with_display = normalize_participants(participants)

        title = normalize_title(summary) or DEFAULT_EVENT_TITLE
        body = sanitize_body(description.value, self.body_max_chars) if description else ""
        body_scrubbed = body or None

        event = CalendarEvent(
            external_event_id=build_external_event_id(uid, recurrence_id, title, start_at, end_at),
            start_at=start_at,
            end_at=end_at,
            is_all_day=start.is_all_day or end_is_all_day,
            title=title,
            organizer_display=organizer_display,
            with_display=with_display,
            sanitized_body=body_scrubbed,
            body_scrubbed_preview=build_body_preview(body_scrubbed),
            content_hash=build_content_hash(title, with_display, body_scrubbed),
        )

        start_tzid = start.tzid or self.default_timezone
        rule = parse_recurrence_rule(raw_rule, start_tzid) if raw_rule else None

        return RecurringEventDefinition(
            event=event,
            uid=uid or None,
            recurrence_id=recurrence_id or None,
            rule=rule,
            exdates=frozenset(exdates),
            rdates=tuple(dict.fromkeys(rdates)),
            start_local=start.local_parts,
            start_tzid=start_tzid,
        )

    def _resolve_end(
        self,
        start_at: datetime.datetime,
        is_all_day: bool,
        dtend: Optional[RawProperty],
        duration_prop: Optional[RawProperty],
    ) -> Optional[tuple[datetime.datetime, bool]]:
        """End instant: DTEND, else DTSTART + DURATION, else the default span.

        Returns None when the end falls past the largest representable date.
        """
        end_is_all_day = False
        end_at: Optional[datetime.datetime] = None

        if dtend is not None:
            end = parse_ics_datetime(dtend.value, dtend.params, self.default_timezone)
            end_at = end.instant_utc
            end_is_all_day = end.is_all_day
        else:
            duration = _parse_duration(duration_prop)
            if duration is not None:
                try:
                    end_at = start_at + duration
                except OverflowError:
                    return None

        if end_at is None or end_at <= start_at:
            try:
                end_at = start_at + _fallback_span(is_all_day)
            except OverflowError:
                return None
        return end_at, end_is_all_day

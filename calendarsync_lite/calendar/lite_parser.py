"""Feed-level parse driver - calendarsync_lite.

tokenize -> materialize definitions -> collect overrides -> expand -> dedup -> sort
"""

import logging
from typing import Optional

from .lite_event_identity import build_recurrence_key
from .lite_event_parser import LiteEventMaterializer
from .lite_models import CalendarEvent, ExpansionWindow, RecurringEventDefinition
from .lite_rrule_expander import expand_recurring_event
from .lite_tokenizer import tokenize_event_blocks

logger = logging.getLogger(__name__)


class LiteICSParser:
    """Parses a full ICS feed into sorted, de-duplicated occurrences."""

    def __init__(self, default_timezone: str, body_max_chars: int) -> None:
        """Initialize ICS parser.

        Args:
            default_timezone: Zone for floating times without TZID
            body_max_chars: Maximum length of a sanitized body
        """
        self.default_timezone = default_timezone
        self.body_max_chars = body_max_chars
        self._materializer = LiteEventMaterializer(default_timezone, body_max_chars)
        logger.debug("Lite ICS parser initialized (default_timezone=%s)", default_timezone)

    def parse_definitions(self, ics_content: str) -> list[RecurringEventDefinition]:
        """Materialize every usable VEVENT block in feed order."""
        definitions = []
        for block in tokenize_event_blocks(ics_content):
            definition = self._materializer.build_definition(block)
            if definition is not None:
                definitions.append(definition)
        return definitions

    def parse_ics_events(
        self,
        ics_content: str,
        window: Optional[ExpansionWindow] = None,
    ) -> list[CalendarEvent]:
        """Parse a feed into occurrences.

        Recurring series are expanded only when ``window`` is given; otherwise
        each definition contributes its own base event.

        Args:
            ics_content: Raw feed text
            window: UTC expansion window

        Returns:
            Occurrences unique on (external_event_id, start_at), sorted by start
        """
        definitions = self.parse_definitions(ics_content)

        overridden_keys = {
            build_recurrence_key(definition.uid, definition.recurrence_id)
            for definition in definitions
            if definition.uid and definition.recurrence_id
        }

        events: list[CalendarEvent] = []
        for definition in definitions:
            if definition.recurrence_id or not definition.has_recurrence_pattern or window is None:
                events.append(definition.event)
                continue
            events.extend(expand_recurring_event(definition, window, overridden_keys))

        deduped: dict[tuple, CalendarEvent] = {}
        for event in events:
            deduped.setdefault((event.external_event_id, event.start_at), event)

        result = sorted(deduped.values(), key=lambda event: event.start_at)
        logger.debug(
            "Parsed %d definitions into %d occurrences (%d overrides)",
            len(definitions),
            len(result),
            len(overridden_keys),
        )
        return result


def parse_ics_events(
    ics_content: str,
    default_timezone: str,
    body_max_chars: int,
    window: Optional[ExpansionWindow] = None,
) -> list[CalendarEvent]:
    """Convenience wrapper around LiteICSParser.parse_ics_events."""
    return LiteICSParser(default_timezone, body_max_chars).parse_ics_events(ics_content, window)

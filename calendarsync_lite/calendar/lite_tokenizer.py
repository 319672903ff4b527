"""Split raw feed text into per-event property blocks.

Line unfolding and NAME;PARAM=VALUE:value splitting are delegated to the
icalendar content-line parser. Event structure is tracked here so that a
malformed line only drops that line, not the whole feed.
"""

import logging
from collections.abc import Iterator

from icalendar.parser import Contentline, Contentlines

from .lite_models import RawProperty

logger = logging.getLogger(__name__)

EVENT_COMPONENT = "VEVENT"


def _param_value(value: object) -> str:
    # Multi-valued parameters come back as lists
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    return str(value)


def raw_property_value(line: str) -> str:
    """Text after the first unquoted, unescaped colon, with its escapes intact.

    Contentline.parts() partially unescapes values; text values are unescaped
    exactly once later by unfold_ics_escapes.
    """
    in_quotes = False
    escaped = False
    for index, char in enumerate(line):
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            in_quotes = not in_quotes
        elif char == ":" and not in_quotes:
            return line[index + 1 :]
    return ""


def parse_content_line(line: str) -> RawProperty | None:
    """Parse one unfolded content line, or return None if it is malformed."""
    if not line.strip():
        return None
    try:
        name, params, _ = Contentline(line).parts()
    except ValueError as e:
        logger.debug("Skipping malformed content line %r: %s", line[:80], e)
        return None

    name = str(name).strip().upper()
    if not name:
        return None
    normalized_params = {
        str(key).strip().upper(): _param_value(param_value).strip()
        for key, param_value in params.items()
    }
    return RawProperty(name=name, params=normalized_params, value=raw_property_value(line))


def iter_content_lines(ics_text: str) -> Iterator[str]:
    """Yield unfolded content lines (CRLF/LF endings, space or tab continuations)."""
    for line in Contentlines.from_ical(ics_text):
        if line:
            yield str(line)


def tokenize_event_blocks(ics_text: str) -> list[list[RawProperty]]:
    """Return the properties of every VEVENT block in feed order.

    Properties of components nested inside an event (such as VALARM) are not
    part of the event's block. An event left open at end of input is dropped.
    """
    blocks: list[list[RawProperty]] = []
    current: list[RawProperty] | None = None
    nested_depth = 0

    for line in iter_content_lines(ics_text):
        prop = parse_content_line(line)
        if prop is None:
            continue

        if prop.name == "BEGIN":
            component = prop.value.strip().upper()
            if current is None:
                if component == EVENT_COMPONENT:
                    current = []
                    nested_depth = 0
            else:
                nested_depth += 1
            continue

        if prop.name == "END":
            if current is None:
                continue
            if nested_depth > 0:
                nested_depth -= 1
            elif prop.value.strip().upper() == EVENT_COMPONENT:
                blocks.append(current)
                current = None
            continue

        if current is not None and nested_depth == 0:
            current.append(prop)

    if current is not None:
        logger.debug("Dropping unterminated VEVENT block with %d properties", len(current))

    logger.debug("Tokenized %d event blocks", len(blocks))
    return blocks

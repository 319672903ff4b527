"""Event body scrubbing: join-block removal, PII redaction and truncation.

Event descriptions routinely carry dial-in numbers, attendee emails and
tracking ids. Bodies pass through ``sanitize_body`` before they are stored or
returned so none of that is persisted or surfaced verbatim.
"""

import logging
import re
from typing import Optional

from .lite_text_utils import (
    EMAIL_RE,
    LONG_NUMERIC_ID_RE,
    MAILTO_RE,
    PHONE_RE,
    URL_RE,
    is_probably_html,
    normalize_whitespace,
    strip_html_to_text,
    unfold_ics_escapes,
)

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_CHARS = 280

JOIN_BLOCK_KEYWORDS: tuple[str, ...] = (
    "join microsoft teams meeting",
    "click here to join",
    "meeting id",
    "passcode",
    "dial-in",
    "conference id",
    "join teams meeting",
    "join zoom meeting",
    "one tap mobile",
    "call in",
)

# Lines removed around a keyword line, relative to it
JOIN_BLOCK_CONTEXT = range(-1, 3)

_LINE_SPLIT_RE = re.compile(r"\r?\n")


def redact_join_blocks(text: str) -> str:
    """Remove every line mentioning a join keyword, with one line before and two after."""
    lines = _LINE_SPLIT_RE.split(text)
    skip: set[int] = set()

    for index, line in enumerate(lines):
        lowered = line.lower()
        if not any(keyword in lowered for keyword in JOIN_BLOCK_KEYWORDS):
            continue
        for offset in JOIN_BLOCK_CONTEXT:
            target = index + offset
            if 0 <= target < len(lines):
                skip.add(target)

    if skip:
        logger.debug("Redacted %d join-block lines", len(skip))
    return "\n".join(line for index, line in enumerate(lines) if index not in skip)


def scrub_contact_details(text: str) -> str:
    """Replace URLs, mailto links, emails, phone numbers and long numeric ids with a space."""
    for pattern in (URL_RE, MAILTO_RE, EMAIL_RE, PHONE_RE, LONG_NUMERIC_ID_RE):
        text = pattern.sub(" ", text)
    return text


def truncate_text(value: str, max_chars: int) -> str:
    if len(value) <= max_chars:
        return value
    return value[:max_chars].rstrip()


def sanitize_body(text: Optional[str], max_chars: int) -> str:
    """Turn a raw (possibly HTML) event description into scrubbed plain text.

    Args:
        text: Raw DESCRIPTION/X-ALT-DESC/COMMENT value
        max_chars: Maximum length of the result

    Returns:
        Scrubbed text, or "" when nothing is left
    """
    if not text:
        return ""

    unfolded = unfold_ics_escapes(text)
    as_text = strip_html_to_text(unfolded) if is_probably_html(unfolded) else unfolded
    without_join_blocks = redact_join_blocks(as_text)
    normalized = normalize_whitespace(scrub_contact_details(without_join_blocks))
    return truncate_text(normalized, max_chars)


def build_body_preview(body: Optional[str], preview_chars: int = DEFAULT_PREVIEW_CHARS) -> Optional[str]:
    """Short preview of a sanitized body, ending in "..." when clipped."""
    if not body:
        return None
    if len(body) <= preview_chars:
        return body
    return f"{body[:preview_chars].rstrip()}..."

"""Text normalization helpers shared by the body sanitizer and event materializer."""

import re
from typing import Iterable, Optional

from bs4 import BeautifulSoup

URL_RE = re.compile(r"\bhttps?://\S+|\bwww\.[^\s]+", re.IGNORECASE)
MAILTO_RE = re.compile(r"\bmailto:[^\s]+", re.IGNORECASE)
EMAIL_RE = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
PHONE_RE = re.compile(r"\+?\d[\d().\s-]{7,}\d")
LONG_NUMERIC_ID_RE = re.compile(r"\b\d{6,}\b")

_HTML_TAG_RE = re.compile(r"</?[a-z][^>]*>", re.IGNORECASE)
_ICS_ESCAPE_RE = re.compile(r"\\([\\;,nN])")
_WHITESPACE_RE = re.compile(r"\s+")

# Elements whose end starts a new line of text
BLOCK_TAGS = ["p", "div", "tr", "h1", "h2", "h3", "h4", "h5", "h6"]


def unfold_ics_escapes(value: str) -> str:
    """Undo ICS text escaping (\\n, \\, \\; and \\\\) in a single pass."""
    return _ICS_ESCAPE_RE.sub(lambda match: "\n" if match.group(1) in "nN" else match.group(1), value)


def is_probably_html(value: str) -> bool:
    return bool(_HTML_TAG_RE.search(value))


def strip_html_to_text(value: str) -> str:
    """Convert an HTML fragment to plain text, keeping line structure."""
    soup = BeautifulSoup(value, "html.parser")

    for element in soup(["style", "script"]):
        element.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for item in soup.find_all("li"):
        item.insert(0, "- ")
        item.append("\n")
    for block in soup.find_all(BLOCK_TAGS):
        block.append("\n")

    return soup.get_text().replace("\xa0", " ")


def normalize_whitespace(value: str) -> str:
    """Collapse runs of spaces, trim around newlines and cap blank lines at one."""
    text = value.replace("\r\n", "\n")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def collapse_whitespace(value: str) -> str:
    """Single-line form: every whitespace run becomes one space."""
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_title(title: str) -> str:
    return collapse_whitespace(title)


def sanitize_participant_display(value: Optional[str]) -> Optional[str]:
    """Reduce a participant name to display text with contact details removed.

    Returns None when nothing readable is left (e.g. a bare mailto: address).
    """
    if not value:
        return None

    text = unfold_ics_escapes(value).replace('"', "").strip()
    text = MAILTO_RE.sub(" ", text)
    text = EMAIL_RE.sub(" ", text)
    text = URL_RE.sub(" ", text)
    text = collapse_whitespace(text)
    return text or None


def normalize_participants(values: Iterable[Optional[str]]) -> list[str]:
    """Sanitize participant names and drop case-insensitive duplicates, keeping first appearance."""
    seen: dict[str, str] = {}
    for value in values:
        cleaned = sanitize_participant_display(value)
        if not cleaned:
            continue
        key = cleaned.lower()
        if key not in seen:
            seen[key] = cleaned
    return list(seen.values())

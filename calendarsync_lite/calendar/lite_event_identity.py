"""Stable identifiers and content hashes for materialized occurrences."""

import datetime
import hashlib
from collections.abc import Iterable
from typing import Optional

from ..core.timezone_utils import format_utc_iso
from .lite_text_utils import collapse_whitespace, normalize_participants, normalize_title


def hash_sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def build_recurrence_key(uid: str, recurrence_id: str) -> str:
    """Key matching a RECURRENCE-ID override to the generated instance it replaces."""
    return f"{uid.strip()}::{recurrence_id}"


def build_external_event_id(
    uid: Optional[str],
    recurrence_id: Optional[str],
    title: str,
    start_at: datetime.datetime,
    end_at: datetime.datetime,
) -> str:
    """Identifier for an occurrence.

    Prefers the feed UID, suffixed with the recurrence instant when present.
    Entries without a UID get a digest of title, start and end so that
    re-ingesting unchanged content yields the same id.
    """
    cleaned_uid = (uid or "").strip()
    if cleaned_uid:
        cleaned_recurrence = (recurrence_id or "").strip()
        if cleaned_recurrence:
            return f"{cleaned_uid}::{cleaned_recurrence}"
        return cleaned_uid

    return hash_sha256(
        f"{normalize_title(title)}::{format_utc_iso(start_at)}::{format_utc_iso(end_at)}"
    )


def build_content_hash(title: str, with_display: Iterable[str], body: Optional[str]) -> str:
    """Digest of the fields a user would call the event's content.

    Timestamps are excluded so a reschedule is distinguishable from an edit.
    """
    normalized_title = normalize_title(title).lower()
    people = sorted(name.lower() for name in normalize_participants(with_display))
    normalized_body = collapse_whitespace(body) if body else ""
    return hash_sha256(f"{normalized_title}\n{'|'.join(people)}\n{normalized_body}")

"""Snapshot building and diffing for change detection between ingests."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..calendar.lite_models import (
    CalendarChangesSince,
    CalendarDeltaChanged,
    CalendarDeltaEntry,
    SnapshotEntry,
    StoredCalendarEvent,
)
from ..core.timezone_utils import format_utc_iso

logger = logging.getLogger(__name__)

_SNAPSHOT_FIELDS = ("external_event_id", "start_at", "end_at", "hash")


def build_snapshot_payload(rows: Iterable[StoredCalendarEvent]) -> list[SnapshotEntry]:
    """Compact projection of stored rows, sorted by external id."""
    entries = [
        SnapshotEntry(
            external_event_id=row.external_event_id,
            start_at=format_utc_iso(row.start_at),
            end_at=format_utc_iso(row.end_at),
            hash=row.content_hash,
        )
        for row in rows
    ]
    return sorted(entries, key=lambda entry: entry.external_event_id)


def serialize_snapshot(entries: Iterable[SnapshotEntry]) -> list[dict[str, str]]:
    return [entry.model_dump() for entry in entries]


def parse_snapshot_payload(raw: Any) -> list[SnapshotEntry]:
    """Rebuild snapshot entries from stored JSON, dropping malformed items."""
    if not isinstance(raw, list):
        return []

    entries = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        if not all(isinstance(item.get(field), str) for field in _SNAPSHOT_FIELDS):
            continue
        entries.append(SnapshotEntry(**{field: item[field] for field in _SNAPSHOT_FIELDS}))

    if len(entries) != len(raw):
        logger.debug("Dropped %d malformed snapshot entries", len(raw) - len(entries))
    return entries


def compute_deltas(
    previous: Iterable[SnapshotEntry],
    current: Iterable[SnapshotEntry],
) -> CalendarChangesSince:
    """Compare two snapshots keyed by external id.

    ``timeChanged`` and ``contentChanged`` are set independently so callers can
    tell a reschedule from an edit.
    """
    previous_by_id = {entry.external_event_id: entry for entry in previous}
    current_by_id = {entry.external_event_id: entry for entry in current}

    changes = CalendarChangesSince()
    for event_id, entry in current_by_id.items():
        before = previous_by_id.get(event_id)
        if before is None:
            changes.added.append(
                CalendarDeltaEntry(
                    external_event_id=event_id, start_at=entry.start_at, end_at=entry.end_at
                )
            )
            continue

        time_changed = before.start_at != entry.start_at or before.end_at != entry.end_at
        content_changed = before.hash != entry.hash
        if time_changed or content_changed:
            changes.changed.append(
                CalendarDeltaChanged(
                    external_event_id=event_id,
                    previous_start_at=before.start_at,
                    previous_end_at=before.end_at,
                    start_at=entry.start_at,
                    end_at=entry.end_at,
                    time_changed=time_changed,
                    content_changed=content_changed,
                )
            )

    for event_id, before in previous_by_id.items():
        if event_id not in current_by_id:
            changes.removed.append(
                CalendarDeltaEntry(
                    external_event_id=event_id, start_at=before.start_at, end_at=before.end_at
                )
            )

    return changes

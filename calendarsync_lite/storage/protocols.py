"""Protocol definitions for calendar row and snapshot storage.

The ingestion orchestrator depends only on these interfaces; the in-memory
and SQLite stores both implement them.
"""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Any, Optional, Protocol

from ..calendar.lite_models import StoredCalendarEvent


class CalendarEventStore(Protocol):
    """Row store keyed by (user_id, source, external_event_id, start_at)."""

    async def upsert_events(self, rows: Sequence[StoredCalendarEvent]) -> None:
        """Insert rows or replace the content of rows with the same key.

        An existing row keeps its id.
        """
        ...

    async def list_events(
        self,
        user_id: str,
        range_start: datetime.datetime,
        range_end_exclusive: datetime.datetime,
        source: Optional[str] = None,
    ) -> list[StoredCalendarEvent]:
        """Rows with end_at >= range_start and start_at < range_end_exclusive, by start."""
        ...

    async def delete_events_by_ids(self, ids: Sequence[str]) -> int:
        """Delete rows by id; returns the number deleted."""
        ...

    async def delete_events_ending_before(self, user_id: str, cutoff: datetime.datetime) -> int:
        """Delete a user's rows with end_at < cutoff."""
        ...

    async def delete_events_starting_after(self, user_id: str, cutoff: datetime.datetime) -> int:
        """Delete a user's rows with start_at > cutoff."""
        ...


class CalendarSnapshotStore(Protocol):
    """Snapshot blobs keyed by (user_id, range_start, range_end)."""

    async def get_latest_snapshot(
        self, user_id: str, range_start: datetime.date, range_end: datetime.date
    ) -> Optional[Any]:
        """Most recently captured payload for the range, or None."""
        ...

    async def insert_snapshot(
        self,
        user_id: str,
        range_start: datetime.date,
        range_end: datetime.date,
        payload: list[dict[str, str]],
        captured_at: datetime.datetime,
    ) -> None:
        ...

    async def delete_snapshots_before(self, user_id: str, cutoff: datetime.datetime) -> int:
        """Delete a user's snapshots captured before cutoff."""
        ...


class CalendarStore(CalendarEventStore, CalendarSnapshotStore, Protocol):
    """A store that holds both rows and snapshots."""

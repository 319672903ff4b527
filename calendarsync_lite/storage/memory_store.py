"""In-memory calendar store, used by tests and the CLI when no database is given."""

from __future__ import annotations

import asyncio
import copy
import datetime
import logging
from collections.abc import Sequence
from typing import Any, Optional

from ..calendar.lite_models import StoredCalendarEvent

logger = logging.getLogger(__name__)


class InMemoryCalendarStore:
    """Dict-backed implementation of the row and snapshot store protocols."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str, str, datetime.datetime], StoredCalendarEvent] = {}
        self._snapshots: list[dict[str, Any]] = []
        self._lock = asyncio.Lock()

    @property
    def rows(self) -> list[StoredCalendarEvent]:
        """All stored rows ordered by start."""
        return sorted(self._rows.values(), key=lambda row: row.start_at)

    @property
    def snapshots(self) -> list[dict[str, Any]]:
        return list(self._snapshots)

    async def upsert_events(self, rows: Sequence[StoredCalendarEvent]) -> None:
        async with self._lock:
            for row in rows:
                existing = self._rows.get(row.key)
                if existing is not None:
                    row = row.model_copy(update={"id": existing.id})
                self._rows[row.key] = row

    async def list_events(
        self,
        user_id: str,
        range_start: datetime.datetime,
        range_end_exclusive: datetime.datetime,
        source: Optional[str] = None,
    ) -> list[StoredCalendarEvent]:
        return [
            row
            for row in self.rows
            if row.user_id == user_id
            and (source is None or row.source == source)
            and row.end_at >= range_start
            and row.start_at < range_end_exclusive
        ]

    async def delete_events_by_ids(self, ids: Sequence[str]) -> int:
        wanted = set(ids)
        async with self._lock:
            doomed = [key for key, row in self._rows.items() if row.id in wanted]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    async def delete_events_ending_before(self, user_id: str, cutoff: datetime.datetime) -> int:
        async with self._lock:
            doomed = [
                key
                for key, row in self._rows.items()
                if row.user_id == user_id and row.end_at < cutoff
            ]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    async def delete_events_starting_after(self, user_id: str, cutoff: datetime.datetime) -> int:
        async with self._lock:
            doomed = [
                key
                for key, row in self._rows.items()
                if row.user_id == user_id and row.start_at > cutoff
            ]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    async def get_latest_snapshot(
        self, user_id: str, range_start: datetime.date, range_end: datetime.date
    ) -> Optional[Any]:
        matching = [
            snapshot
            for snapshot in self._snapshots
            if snapshot["user_id"] == user_id
            and snapshot["range_start"] == range_start
            and snapshot["range_end"] == range_end
        ]
        if not matching:
            return None
        # Later inserts win ties on captured_at
        latest = max(enumerate(matching), key=lambda item: (item[1]["captured_at"], item[0]))[1]
        return copy.deepcopy(latest["payload"])

    async def insert_snapshot(
        self,
        user_id: str,
        range_start: datetime.date,
        range_end: datetime.date,
        payload: list[dict[str, str]],
        captured_at: datetime.datetime,
    ) -> None:
        async with self._lock:
            self._snapshots.append(
                {
                    "user_id": user_id,
                    "range_start": range_start,
                    "range_end": range_end,
                    "payload": copy.deepcopy(payload),
                    "captured_at": captured_at,
                }
            )

    async def delete_snapshots_before(self, user_id: str, cutoff: datetime.datetime) -> int:
        async with self._lock:
            before = len(self._snapshots)
            self._snapshots = [
                snapshot
                for snapshot in self._snapshots
                if not (snapshot["user_id"] == user_id and snapshot["captured_at"] < cutoff)
            ]
            removed = before - len(self._snapshots)
        if removed:
            logger.debug("Deleted %d snapshots for %s captured before %s", removed, user_id, cutoff)
        return removed

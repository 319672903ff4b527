"""SQLite-backed calendar row and snapshot store."""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite
from dateutil import parser as date_parser

from ..calendar.lite_models import StoredCalendarEvent
from ..core.exceptions import CalendarStoreError
from ..core.timezone_utils import UTC, format_utc_iso

logger = logging.getLogger(__name__)

# SQLite caps bound variables per statement
_DELETE_CHUNK_SIZE = 500

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS calendar_events (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        source TEXT NOT NULL,
        external_event_id TEXT NOT NULL,
        start_at TEXT NOT NULL,
        end_at TEXT NOT NULL,
        is_all_day INTEGER NOT NULL DEFAULT 0,
        title TEXT NOT NULL,
        organizer_display TEXT,
        with_display TEXT NOT NULL DEFAULT '[]',
        body_scrubbed TEXT,
        body_scrubbed_preview TEXT,
        content_hash TEXT NOT NULL,
        ingested_at TEXT NOT NULL,
        UNIQUE (user_id, source, external_event_id, start_at)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_calendar_events_user_range
    ON calendar_events(user_id, start_at, end_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS calendar_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        range_start TEXT NOT NULL,
        range_end TEXT NOT NULL,
        payload_min TEXT NOT NULL,
        captured_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_calendar_snapshots_lookup
    ON calendar_snapshots(user_id, range_start, range_end, captured_at)
    """,
)

_EVENT_COLUMNS = (
    "id, user_id, source, external_event_id, start_at, end_at, is_all_day, title, "
    "organizer_display, with_display, body_scrubbed, body_scrubbed_preview, content_hash, "
    "ingested_at"
)


def _parse_instant(value: str) -> datetime.datetime:
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _row_to_event(row: aiosqlite.Row) -> StoredCalendarEvent:
    try:
        with_display = json.loads(row["with_display"] or "[]")
    except json.JSONDecodeError:
        with_display = []
    return StoredCalendarEvent(
        id=row["id"],
        user_id=row["user_id"],
        source=row["source"],
        external_event_id=row["external_event_id"],
        start_at=_parse_instant(row["start_at"]),
        end_at=_parse_instant(row["end_at"]),
        is_all_day=bool(row["is_all_day"]),
        title=row["title"],
        organizer_display=row["organizer_display"],
        with_display=[name for name in with_display if isinstance(name, str)],
        body_scrubbed=row["body_scrubbed"],
        body_scrubbed_preview=row["body_scrubbed_preview"],
        content_hash=row["content_hash"],
        ingested_at=_parse_instant(row["ingested_at"]),
    )


class SQLiteCalendarStore:
    """aiosqlite implementation of the row and snapshot store protocols.

    Instants are stored as canonical UTC strings, which sort chronologically.
    """

    def __init__(self, database_path: Union[Path, str]):
        """Initialize store.

        Args:
            database_path: Path to SQLite database file
        """
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._initialization_lock: Optional[asyncio.Lock] = None

        logger.info("Calendar store initialized (lazy): %s", self.database_path)

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        if self._initialization_lock is None:
            self._initialization_lock = asyncio.Lock()

        async with self._initialization_lock:
            if self._initialized:
                return
            try:
                async with aiosqlite.connect(str(self.database_path)) as db:
                    # WAL for concurrent readers during ingest
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.execute("PRAGMA synchronous=NORMAL")
                    for statement in _SCHEMA_STATEMENTS:
                        await db.execute(statement)
                    await db.commit()
            except aiosqlite.Error as e:
                logger.exception("Failed to initialize calendar database")
                raise CalendarStoreError(f"Failed to initialize {self.database_path}") from e
            self._initialized = True
            logger.debug("Calendar database schema ready at %s", self.database_path)

    async def _execute_write(self, sql: str, params: Sequence[Any]) -> int:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                cursor = await db.execute(sql, params)
                await db.commit()
                return cursor.rowcount
        except aiosqlite.Error as e:
            logger.exception("Calendar store write failed")
            raise CalendarStoreError("Calendar store write failed") from e

    async def _fetch_all(self, sql: str, params: Sequence[Any]) -> list[aiosqlite.Row]:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(sql, params) as cursor:
                    return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            logger.exception("Calendar store read failed")
            raise CalendarStoreError("Calendar store read failed") from e

    async def upsert_events(self, rows: Sequence[StoredCalendarEvent]) -> None:
        if not rows:
            return
        await self._ensure_initialized()

        params = [
            (
                row.id,
                row.user_id,
                row.source,
                row.external_event_id,
                format_utc_iso(row.start_at),
                format_utc_iso(row.end_at),
                int(row.is_all_day),
                row.title,
                row.organizer_display,
                json.dumps(row.with_display),
                row.body_scrubbed,
                row.body_scrubbed_preview,
                row.content_hash,
                format_utc_iso(row.ingested_at),
            )
            for row in rows
        ]
        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                await db.executemany(
                    f"""
                    INSERT INTO calendar_events ({_EVENT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (user_id, source, external_event_id, start_at) DO UPDATE SET
                        end_at = excluded.end_at,
                        is_all_day = excluded.is_all_day,
                        title = excluded.title,
                        organizer_display = excluded.organizer_display,
                        with_display = excluded.with_display,
                        body_scrubbed = excluded.body_scrubbed,
                        body_scrubbed_preview = excluded.body_scrubbed_preview,
                        content_hash = excluded.content_hash,
                        ingested_at = excluded.ingested_at
                    """,
                    params,
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.exception("Failed to upsert %d calendar rows", len(params))
            raise CalendarStoreError("Failed to upsert calendar rows") from e

        logger.debug("Upserted %d calendar rows", len(params))

    async def list_events(
        self,
        user_id: str,
        range_start: datetime.datetime,
        range_end_exclusive: datetime.datetime,
        source: Optional[str] = None,
    ) -> list[StoredCalendarEvent]:
        sql = (
            f"SELECT {_EVENT_COLUMNS} FROM calendar_events "
            "WHERE user_id = ? AND end_at >= ? AND start_at < ?"
        )
        params: list[Any] = [user_id, format_utc_iso(range_start), format_utc_iso(range_end_exclusive)]
        if source is not None:
            sql += " AND source = ?"
            params.append(source)
        sql += " ORDER BY start_at ASC"

        rows = await self._fetch_all(sql, params)
        return [_row_to_event(row) for row in rows]

    async def delete_events_by_ids(self, ids: Sequence[str]) -> int:
        deleted = 0
        ids = list(ids)
        for offset in range(0, len(ids), _DELETE_CHUNK_SIZE):
            chunk = ids[offset : offset + _DELETE_CHUNK_SIZE]
            placeholders = ", ".join("?" for _ in chunk)
            deleted += await self._execute_write(
                f"DELETE FROM calendar_events WHERE id IN ({placeholders})", chunk
            )
        return deleted

    async def delete_events_ending_before(self, user_id: str, cutoff: datetime.datetime) -> int:
        return await self._execute_write(
            "DELETE FROM calendar_events WHERE user_id = ? AND end_at < ?",
            (user_id, format_utc_iso(cutoff)),
        )

    async def delete_events_starting_after(self, user_id: str, cutoff: datetime.datetime) -> int:
        return await self._execute_write(
            "DELETE FROM calendar_events WHERE user_id = ? AND start_at > ?",
            (user_id, format_utc_iso(cutoff)),
        )

    async def get_latest_snapshot(
        self, user_id: str, range_start: datetime.date, range_end: datetime.date
    ) -> Optional[Any]:
        rows = await self._fetch_all(
            """
            SELECT payload_min FROM calendar_snapshots
            WHERE user_id = ? AND range_start = ? AND range_end = ?
            ORDER BY captured_at DESC, id DESC
            LIMIT 1
            """,
            (user_id, range_start.isoformat(), range_end.isoformat()),
        )
        if not rows:
            return None
        try:
            return json.loads(rows[0]["payload_min"])
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable snapshot for %s %s..%s", user_id, range_start, range_end)
            return None

    async def insert_snapshot(
        self,
        user_id: str,
        range_start: datetime.date,
        range_end: datetime.date,
        payload: list[dict[str, str]],
        captured_at: datetime.datetime,
    ) -> None:
        await self._execute_write(
            """
            INSERT INTO calendar_snapshots (user_id, range_start, range_end, payload_min, captured_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                user_id,
                range_start.isoformat(),
                range_end.isoformat(),
                json.dumps(payload),
                format_utc_iso(captured_at),
            ),
        )

    async def delete_snapshots_before(self, user_id: str, cutoff: datetime.datetime) -> int:
        return await self._execute_write(
            "DELETE FROM calendar_snapshots WHERE user_id = ? AND captured_at < ?",
            (user_id, format_utc_iso(cutoff)),
        )

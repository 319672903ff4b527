"""Ingestion orchestration: load -> parse -> filter -> reconcile, plus retention.

The orchestrator receives its configuration and store explicitly. Feed
problems come back as warnings; only range errors and store failures raise.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Callable
from typing import Optional

from ..calendar.lite_fetcher import CalendarFeedLoader
from ..calendar.lite_models import (
    ApiCalendarEvent,
    CalendarEvent,
    CalendarIngestResult,
    CalendarIngestSummary,
    CalendarRange,
    CalendarViewPayload,
    StoredCalendarEvent,
)
from ..calendar.lite_parser import LiteICSParser
from ..calendar.lite_text_utils import normalize_participants
from ..core.config_manager import (
    DEFAULT_WORKDAY_CONFIG,
    CalendarRuntimeConfig,
    CalendarSource,
    WorkdayConfig,
)
from ..core.timezone_utils import now_utc
from ..storage.protocols import CalendarStore
from .availability import calculate_busy_stats, merge_busy_blocks
from .calendar_range import build_day_windows
from .snapshot_differ import (
    build_snapshot_payload,
    compute_deltas,
    parse_snapshot_payload,
    serialize_snapshot,
)

logger = logging.getLogger(__name__)

PARSE_EMPTY_WARNING = "ICS loaded successfully, but no events could be parsed."
RANGE_EMPTY_WARNING = "ICS parsed successfully, but no events were found in the requested date range."


def stale_event_key(external_event_id: str, start_at: datetime.datetime) -> tuple[str, datetime.datetime]:
    return (external_event_id, start_at)


class CalendarIngestionOrchestrator:
    """Drives feed ingestion, retention and the calendar view for one store."""

    def __init__(
        self,
        config: CalendarRuntimeConfig,
        store: CalendarStore,
        loader: Optional[CalendarFeedLoader] = None,
        workday: WorkdayConfig = DEFAULT_WORKDAY_CONFIG,
        clock: Callable[[], datetime.datetime] = now_utc,
    ) -> None:
        """Initialize orchestrator.

        Args:
            config: Immutable runtime configuration
            store: Row and snapshot store
            loader: Feed loader (defaults to one built from config)
            workday: Work-hours window and zone; the zone is also the default
                zone for floating feed times
            clock: Current-time provider
        """
        self.config = config
        self.store = store
        self.loader = loader or CalendarFeedLoader(config)
        self.workday = workday
        self.clock = clock
        self.parser = LiteICSParser(workday.timezone, config.body_max_chars)

    @property
    def source(self) -> str:
        return CalendarSource(self.config.source).value

    def _build_rows(
        self, events: list[CalendarEvent], user_id: str, ingested_at: datetime.datetime
    ) -> list[StoredCalendarEvent]:
        return [
            StoredCalendarEvent(
                id=uuid.uuid4().hex,
                user_id=user_id,
                source=self.source,
                external_event_id=event.external_event_id,
                start_at=event.start_at,
                end_at=event.end_at,
                is_all_day=event.is_all_day,
                title=event.title,
                organizer_display=event.organizer_display,
                with_display=event.with_display,
                body_scrubbed=event.sanitized_body if self.config.store_body else None,
                body_scrubbed_preview=event.body_scrubbed_preview,
                content_hash=event.content_hash,
                ingested_at=ingested_at,
            )
            for event in events
        ]

    async def ingest_calendar_events(
        self, calendar_range: CalendarRange, user_id: str
    ) -> CalendarIngestResult:
        """Load, parse and reconcile the feed for one user and range.

        Stored rows for the same user/source/window that the feed no longer
        contains are deleted, so cancelled or moved occurrences disappear.
        """
        source = self.source
        warnings: list[str] = []

        if source == CalendarSource.NONE.value:
            return CalendarIngestResult(source=source, ingested_count=0, warnings=warnings)

        load_result = await self.loader.load()
        warnings.extend(load_result.warnings)
        if not load_result.ics:
            return CalendarIngestResult(source=source, ingested_count=0, warnings=warnings)

        range_context = build_day_windows(calendar_range, self.workday)
        window = range_context.as_expansion_window()
        parsed_events = self.parser.parse_ics_events(load_result.ics, window)
        if not parsed_events:
            logger.warning("Feed for %s produced no events", user_id)
            warnings.append(PARSE_EMPTY_WARNING)
            return CalendarIngestResult(source=source, ingested_count=0, warnings=warnings)

        events_in_range = [
            event for event in parsed_events if window.overlaps(event.start_at, event.end_at)
        ]
        rows = self._build_rows(events_in_range, user_id, self.clock())

        if rows:
            await self.store.upsert_events(rows)

        existing = await self.store.list_events(
            user_id, window.start, window.end_exclusive, source=source
        )
        current_keys = {stale_event_key(row.external_event_id, row.start_at) for row in rows}
        stale_ids = [
            row.id
            for row in existing
            if stale_event_key(row.external_event_id, row.start_at) not in current_keys
        ]
        if stale_ids:
            deleted = await self.store.delete_events_by_ids(stale_ids)
            logger.debug("Deleted %d stale rows for %s", deleted, user_id)

        if not events_in_range:
            warnings.append(RANGE_EMPTY_WARNING)

        logger.info(
            "Ingested %d events for %s (%s..%s, source=%s, warnings=%d)",
            len(rows),
            user_id,
            calendar_range.range_start,
            calendar_range.range_end,
            source,
            len(warnings),
        )
        return CalendarIngestResult(source=source, ingested_count=len(rows), warnings=warnings)

    async def enforce_calendar_retention(
        self, user_id: str, now: Optional[datetime.datetime] = None
    ) -> None:
        """Delete rows and snapshots outside the retention horizons."""
        now = now or self.clock()
        past_cutoff = now - datetime.timedelta(days=self.config.retention_days)
        future_cutoff = now + datetime.timedelta(days=self.config.future_horizon_days)

        expired = await self.store.delete_events_ending_before(user_id, past_cutoff)
        too_far = await self.store.delete_events_starting_after(user_id, future_cutoff)
        snapshots = await self.store.delete_snapshots_before(user_id, past_cutoff)

        if expired or too_far or snapshots:
            logger.debug(
                "Retention for %s removed %d past rows, %d future rows, %d snapshots",
                user_id,
                expired,
                too_far,
                snapshots,
            )

    async def build_calendar_view(
        self, calendar_range: CalendarRange, user_id: str
    ) -> CalendarViewPayload:
        """Ingest, then assemble events, busy stats and changes since the last view."""
        await self.enforce_calendar_retention(user_id)
        ingest_result = await self.ingest_calendar_events(calendar_range, user_id)
        await self.enforce_calendar_retention(user_id)

        range_context = build_day_windows(calendar_range, self.workday)
        rows = await self.store.list_events(
            user_id, range_context.utc_range_start, range_context.utc_range_end_exclusive
        )

        events = [
            ApiCalendarEvent(
                start_at=row.start_at,
                end_at=row.end_at,
                title=row.title,
                with_display=normalize_participants(row.with_display),
                body_scrubbed_preview=row.body_scrubbed_preview,
                is_all_day=row.is_all_day,
                external_event_id=row.external_event_id,
            )
            for row in rows
        ]
        busy_blocks = merge_busy_blocks(events, range_context.windows)
        stats = calculate_busy_stats(events, range_context.windows)

        current_snapshot = build_snapshot_payload(rows)
        previous_raw = await self.store.get_latest_snapshot(
            user_id, calendar_range.range_start, calendar_range.range_end
        )
        changes = compute_deltas(parse_snapshot_payload(previous_raw), current_snapshot)
        generated_at = self.clock()
        await self.store.insert_snapshot(
            user_id,
            calendar_range.range_start,
            calendar_range.range_end,
            serialize_snapshot(current_snapshot),
            generated_at,
        )

        return CalendarViewPayload(
            range_start=calendar_range.range_start,
            range_end=calendar_range.range_end,
            source=ingest_result.source,
            warning=ingest_result.warnings[0] if ingest_result.warnings else None,
            warnings=ingest_result.warnings,
            ingest=CalendarIngestSummary(
                source=ingest_result.source,
                ingested_count=ingest_result.ingested_count,
                warning_count=len(ingest_result.warnings),
            ),
            events=events,
            busy_blocks=busy_blocks,
            stats=stats,
            changes_since=changes,
            generated_at=generated_at,
        )

"""Data models for calendar feed ingestion - calendarsync_lite.

Internal parse types are frozen dataclasses; rows and payload types are
pydantic models serialized with the canonical UTC string form.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..core.config_manager import CalendarSource
from ..core.timezone_utils import format_utc_iso


@dataclass(frozen=True)
class RawProperty:
    """One content line of a feed block: NAME;PARAM=VALUE:value."""

    name: str
    params: dict[str, str] = field(default_factory=dict)
    value: str = ""

    def param(self, key: str) -> Optional[str]:
        """Return a parameter value by (case-insensitive) key."""
        return self.params.get(key.upper())


@dataclass(frozen=True)
class LocalParts:
    """Wall-clock parts of a date-time in its own zone."""

    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    def date(self) -> datetime.date:
        return datetime.date(self.year, self.month, self.day)

    def to_datetime(self) -> datetime.datetime:
        """Naive wall-clock datetime."""
        return datetime.datetime(self.year, self.month, self.day, self.hour, self.minute, self.second)

    @classmethod
    def from_datetime(cls, value: datetime.datetime) -> LocalParts:
        return cls(value.year, value.month, value.day, value.hour, value.minute, value.second)


@dataclass(frozen=True)
class ParsedDateTime:
    """A resolved feed date/time value.

    ``local_parts`` is kept so recurrence arithmetic can run on the event's own
    local calendar instead of UTC.
    """

    instant_utc: Optional[datetime.datetime]
    is_all_day: bool
    tzid: str
    local_parts: Optional[LocalParts] = None


class RecurrenceFrequency(str, Enum):
    """Supported RRULE frequencies."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class ByDayToken:
    """BYDAY entry; weekday uses Python numbering (Monday=0 .. Sunday=6)."""

    weekday: int
    ordinal: Optional[int] = None


@dataclass(frozen=True)
class RecurrenceRule:
    """Parsed RRULE."""

    freq: RecurrenceFrequency
    interval: int = 1
    until: Optional[datetime.datetime] = None
    count: Optional[int] = None
    by_day: tuple[ByDayToken, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_month: tuple[int, ...] = ()
    week_start: int = 0


@dataclass(frozen=True)
class ExpansionWindow:
    """UTC window [start, end_exclusive) that occurrences are expanded into."""

    start: datetime.datetime
    end_exclusive: datetime.datetime

    def overlaps(self, start: datetime.datetime, end: datetime.datetime) -> bool:
        """Check overlap; an event ending exactly at the window start still counts."""
        return end >= self.start and start < self.end_exclusive


class CalendarEvent(BaseModel):
    """One materialized occurrence."""

    external_event_id: str = Field(..., description="Stable occurrence identifier")
    start_at: datetime.datetime = Field(..., description="Start instant (UTC)")
    end_at: datetime.datetime = Field(..., description="End instant (UTC)")
    is_all_day: bool = Field(default=False, description="All-day event flag")
    title: str = Field(default="Untitled Event", description="Normalized title")
    organizer_display: Optional[str] = Field(default=None, description="Organizer display name")
    with_display: list[str] = Field(default_factory=list, description="Participant names")
    sanitized_body: Optional[str] = Field(default=None, description="Scrubbed body text")
    body_scrubbed_preview: Optional[str] = Field(default=None, description="Short body preview")
    content_hash: str = Field(..., description="Digest of title, participants and body")

    model_config = ConfigDict(frozen=True)

    @field_serializer("start_at", "end_at")
    def serialize_instant(self, dt: datetime.datetime) -> str:
        return format_utc_iso(dt)


@dataclass(frozen=True)
class RecurringEventDefinition:
    """One parsed VEVENT block before expansion.

    ``recurrence_id`` is the canonical instant string of a RECURRENCE-ID
    override (or its raw value when it cannot be resolved).
    """

    event: CalendarEvent
    uid: Optional[str]
    recurrence_id: Optional[str]
    rule: Optional[RecurrenceRule]
    exdates: frozenset[datetime.datetime] = frozenset()
    rdates: tuple[datetime.datetime, ...] = ()
    start_local: Optional[LocalParts] = None
    start_tzid: str = "UTC"

    @property
    def has_recurrence_pattern(self) -> bool:
        return self.rule is not None or len(self.rdates) > 0


class StoredCalendarEvent(BaseModel):
    """A persisted occurrence row, unique on (user_id, source, external_event_id, start_at)."""

    id: str
    user_id: str
    source: str
    external_event_id: str
    start_at: datetime.datetime
    end_at: datetime.datetime
    is_all_day: bool = False
    title: str = "Untitled Event"
    organizer_display: Optional[str] = None
    with_display: list[str] = Field(default_factory=list)
    body_scrubbed: Optional[str] = None
    body_scrubbed_preview: Optional[str] = None
    content_hash: str
    ingested_at: datetime.datetime

    @property
    def key(self) -> tuple[str, str, str, datetime.datetime]:
        """Upsert key."""
        return (self.user_id, self.source, self.external_event_id, self.start_at)

    @field_serializer("start_at", "end_at", "ingested_at")
    def serialize_instant(self, dt: datetime.datetime) -> str:
        return format_utc_iso(dt)


class ApiCalendarEvent(BaseModel):
    """Allowed-fields projection returned to clients; never carries the stored body."""

    start_at: datetime.datetime
    end_at: datetime.datetime
    title: str
    with_display: list[str] = Field(default_factory=list)
    body_scrubbed_preview: Optional[str] = None
    is_all_day: bool = False
    external_event_id: str

    @field_serializer("start_at", "end_at")
    def serialize_instant(self, dt: datetime.datetime) -> str:
        return format_utc_iso(dt)


@dataclass(frozen=True)
class DayWindow:
    """Work-hours window of one local day, in UTC."""

    day: datetime.date
    window_start: datetime.datetime
    window_end: datetime.datetime


@dataclass(frozen=True)
class RangeContext:
    """UTC bounds of a requested date range plus its per-day work windows."""

    utc_range_start: datetime.datetime
    utc_range_end_exclusive: datetime.datetime
    windows: tuple[DayWindow, ...]

    def as_expansion_window(self) -> ExpansionWindow:
        return ExpansionWindow(self.utc_range_start, self.utc_range_end_exclusive)


class BusyBlock(BaseModel):
    """A merged busy interval clipped to a work window."""

    start_at: datetime.datetime
    end_at: datetime.datetime

    @field_serializer("start_at", "end_at")
    def serialize_instant(self, dt: datetime.datetime) -> str:
        return format_utc_iso(dt)


class BusyStats(BaseModel):
    """Busy/free totals across all day windows."""

    busy_minutes: int = Field(default=0, alias="busyMinutes")
    blocks: int = 0
    largest_focus_block_minutes: int = Field(default=0, alias="largestFocusBlockMinutes")

    model_config = ConfigDict(populate_by_name=True)


class SnapshotEntry(BaseModel):
    """Compact prior-state projection of one occurrence, used only for diffing."""

    external_event_id: str
    start_at: str
    end_at: str
    hash: str

    model_config = ConfigDict(frozen=True)


class CalendarDeltaEntry(BaseModel):
    """An added or removed occurrence."""

    external_event_id: str
    start_at: str
    end_at: str


class CalendarDeltaChanged(BaseModel):
    """An occurrence present in both snapshots with a time and/or content change."""

    external_event_id: str
    previous_start_at: str
    previous_end_at: str
    start_at: str
    end_at: str
    time_changed: bool = Field(alias="timeChanged")
    content_changed: bool = Field(alias="contentChanged")

    model_config = ConfigDict(populate_by_name=True)


class CalendarChangesSince(BaseModel):
    """Delta between the previous and current snapshot."""

    added: list[CalendarDeltaEntry] = Field(default_factory=list)
    removed: list[CalendarDeltaEntry] = Field(default_factory=list)
    changed: list[CalendarDeltaChanged] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class CalendarRange(BaseModel):
    """A validated inclusive date range."""

    range_start: datetime.date = Field(alias="rangeStart")
    range_end: datetime.date = Field(alias="rangeEnd")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def day_count(self) -> int:
        return (self.range_end - self.range_start).days + 1


class CalendarIngestResult(BaseModel):
    """Outcome of one ingest call."""

    source: CalendarSource
    ingested_count: int = Field(default=0, alias="ingestedCount")
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


@dataclass(frozen=True)
class FeedLoadResult:
    """Raw feed text, or None with the warnings explaining why."""

    ics: Optional[str]
    warnings: tuple[str, ...] = ()


class CalendarIngestSummary(BaseModel):
    source: str
    ingested_count: int = Field(alias="ingestedCount")
    warning_count: int = Field(alias="warningCount")

    model_config = ConfigDict(populate_by_name=True)


class CalendarViewPayload(BaseModel):
    """Response body of the calendar view."""

    range_start: datetime.date = Field(alias="rangeStart")
    range_end: datetime.date = Field(alias="rangeEnd")
    source: str
    warning: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    ingest: CalendarIngestSummary
    events: list[ApiCalendarEvent] = Field(default_factory=list)
    busy_blocks: list[BusyBlock] = Field(default_factory=list, alias="busyBlocks")
    stats: BusyStats = Field(default_factory=BusyStats)
    changes_since: CalendarChangesSince = Field(
        default_factory=CalendarChangesSince, alias="changesSince"
    )
    generated_at: datetime.datetime = Field(alias="generatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_serializer("generated_at")
    def serialize_generated_at(self, dt: datetime.datetime) -> str:
        return format_utc_iso(dt)

    def to_json_dict(self) -> dict:
        """Serialize with the wire field names."""
        return self.model_dump(mode="json", by_alias=True)

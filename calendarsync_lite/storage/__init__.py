"""Calendar row and snapshot stores."""

from .memory_store import InMemoryCalendarStore
from .protocols import CalendarEventStore, CalendarSnapshotStore, CalendarStore
from .sqlite_store import SQLiteCalendarStore

__all__ = [
    "CalendarEventStore",
    "CalendarSnapshotStore",
    "CalendarStore",
    "InMemoryCalendarStore",
    "SQLiteCalendarStore",
]

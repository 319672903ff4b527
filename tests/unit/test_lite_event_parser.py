"""Unit tests for event materialization and the feed-level parser."""

import datetime

import pytest

from calendarsync_lite.calendar.lite_event_identity import (
    build_content_hash,
    build_external_event_id,
    hash_sha256,
)
from calendarsync_lite.calendar.lite_event_parser import LiteEventMaterializer
from calendarsync_lite.calendar.lite_models import ExpansionWindow
from calendarsync_lite.calendar.lite_parser import LiteICSParser, parse_ics_events
from calendarsync_lite.calendar.lite_tokenizer import tokenize_event_blocks
from calendarsync_lite.core.timezone_utils import UTC
from tests.ics_samples import WEEKLY_STANDUP_ICS, build_single_event_ics, wrap_events

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _utc(*args: int) -> datetime.datetime:
    return datetime.datetime(*args, tzinfo=UTC)


def _definition(ics: str, default_timezone: str = "UTC"):
    blocks = tokenize_event_blocks(ics)
    assert len(blocks) == 1
    return LiteEventMaterializer(default_timezone, 4000).build_definition(blocks[0])


class TestBuildDefinition:
    def test_build_when_unchanged_block_twice_then_identical_id_and_hash(self) -> None:
        ics = build_single_event_ics(description="Agenda")

        first = _definition(ics)
        second = _definition(ics)

        assert first.event.external_event_id == second.event.external_event_id == "evt-1"
        assert first.event.content_hash == second.event.content_hash

    def test_build_when_only_start_moves_then_hash_unchanged(self) -> None:
        before = _definition(build_single_event_ics())
        after = _definition(build_single_event_ics(start="20240304T160000Z", end="20240304T170000Z"))

        assert before.event.content_hash == after.event.content_hash
        assert before.event.start_at != after.event.start_at

    def test_build_when_title_changes_then_hash_changes(self) -> None:
        before = _definition(build_single_event_ics(summary="Planning"))
        after = _definition(build_single_event_ics(summary="Planning (moved)"))

        assert before.event.content_hash != after.event.content_hash

    def test_build_when_cancelled_then_none(self) -> None:
        ics = wrap_events(
            """
            UID:gone
            DTSTART:20240304T140000Z
            STATUS:CANCELLED
            """
        )

        assert _definition(ics) is None

    def test_build_when_no_dtstart_then_none(self) -> None:
        assert _definition(wrap_events("UID:nostart\nSUMMARY:No start")) is None

    def test_build_when_no_end_then_thirty_minutes(self) -> None:
        definition = _definition(wrap_events("UID:short\nDTSTART:20240304T140000Z"))

        assert definition.event.end_at == _utc(2024, 3, 4, 14, 30)
        assert definition.event.title == "Untitled Event"

    def test_build_when_all_day_without_end_then_one_day(self) -> None:
        definition = _definition(wrap_events("UID:holiday\nDTSTART;VALUE=DATE:20240304"))

        assert definition.event.is_all_day is True
        assert definition.event.end_at - definition.event.start_at == datetime.timedelta(days=1)

    def test_build_when_end_before_start_then_default_span(self) -> None:
        definition = _definition(
            wrap_events("UID:backwards\nDTSTART:20240304T140000Z\nDTEND:20240304T130000Z")
        )

        assert definition.event.end_at == _utc(2024, 3, 4, 14, 30)

    def test_build_when_duration_then_end_from_duration(self) -> None:
        definition = _definition(wrap_events("UID:dur\nDTSTART:20240304T140000Z\nDURATION:PT1H15M"))

        assert definition.event.end_at == _utc(2024, 3, 4, 15, 15)

    def test_build_when_participants_then_scrubbed_and_deduplicated(self) -> None:
        ics = wrap_events(
            """
            UID:people
            DTSTART:20240304T140000Z
            SUMMARY:  Design   sync
            ORGANIZER;CN=Alice Smith:mailto:alice@example.com
            ATTENDEE;CN=Bob Jones:mailto:bob@example.com
            ATTENDEE;CN=alice smith:mailto:alice@example.com
            ATTENDEE:mailto:carol@example.com
            """
        )

        definition = _definition(ics)

        assert definition.event.title == "Design sync"
        assert definition.event.organizer_display == "Alice Smith"
        assert definition.event.with_display == ["Bob Jones", "alice smith"]

    def test_build_when_description_then_sanitized_body_and_preview(self) -> None:
        ics = build_single_event_ics(description="Call me at 555-123-4567\\nThanks")

        event = _definition(ics).event

        assert event.sanitized_body == "Call me at\nThanks"
        assert event.body_scrubbed_preview == "Call me at\nThanks"

    def test_build_when_no_uid_then_digest_of_title_and_times(self) -> None:
        definition = _definition(wrap_events("DTSTART:20240304T140000Z\nDTEND:20240304T150000Z\nSUMMARY:Anon"))

        expected = hash_sha256("Anon::2024-03-04T14:00:00Z::2024-03-04T15:00:00Z")
        assert definition.event.external_event_id == expected

    def test_build_when_recurrence_id_then_suffixed_id(self) -> None:
        ics = wrap_events(
            """
            UID:standup-1
            RECURRENCE-ID:20240109T150000Z
            DTSTART:20240109T160000Z
            DTEND:20240109T163000Z
            SUMMARY:Team Standup (late)
            """
        )

        definition = _definition(ics)

        assert definition.recurrence_id == "2024-01-09T15:00:00Z"
        assert definition.event.external_event_id == "standup-1::2024-01-09T15:00:00Z"

    def test_build_when_start_at_last_representable_instant_then_none(self) -> None:
        assert _definition(wrap_events("UID:edge\nDTSTART:99991231T235959Z")) is None
        assert _definition(wrap_events("UID:edge\nDTSTART:99991231T235959Z\nDURATION:PT1H")) is None

    def test_build_when_text_escaped_then_unescaped_once(self) -> None:
        ics = wrap_events(
            r"""
            UID:escapes
            DTSTART:20240304T140000Z
            SUMMARY:Q3\, Q4 review
            DESCRIPTION:path C:\\new\; see notes\nnext line
            """
        )

        event = _definition(ics).event

        assert event.title == "Q3, Q4 review"
        assert event.sanitized_body == "path C:\\new; see notes\nnext line"

    def test_build_when_floating_start_then_default_timezone(self) -> None:
        definition = _definition(
            wrap_events("UID:floating\nDTSTART:20240304T090000"), default_timezone="America/New_York"
        )

        assert definition.event.start_at == _utc(2024, 3, 4, 14, 0)
        assert definition.start_tzid == "America/New_York"


class TestIdentity:
    def test_build_content_hash_when_participant_order_differs_then_same(self) -> None:
        assert build_content_hash("Sync", ["B", "a"], "body") == build_content_hash(
            " sync ", ["A", "b"], "body "
        )

    def test_build_external_event_id_when_uid_blank_then_digest(self) -> None:
        start = _utc(2024, 1, 1, 9)
        end = _utc(2024, 1, 1, 10)

        assert build_external_event_id("  ", None, "T", start, end) == build_external_event_id(
            None, None, "T", start, end
        )


class TestLiteICSParser:
    def test_parse_when_override_present_then_replaces_generated_instance(self) -> None:
        override = (
            "BEGIN:VEVENT\r\n"
            "UID:standup-1\r\n"
            "RECURRENCE-ID:20240109T150000Z\r\n"
            "DTSTART:20240109T170000Z\r\n"
            "DTEND:20240109T173000Z\r\n"
            "SUMMARY:Team Standup (moved)\r\n"
            "END:VEVENT\r\n"
        )
        ics = WEEKLY_STANDUP_ICS.replace("END:VCALENDAR\r\n", override + "END:VCALENDAR\r\n")
        window = ExpansionWindow(_utc(2024, 1, 1), _utc(2024, 1, 29))

        events = LiteICSParser("UTC", 4000).parse_ics_events(ics, window)

        jan_9 = [event for event in events if event.start_at.date() == datetime.date(2024, 1, 9)]
        assert len(events) == 4
        assert len(jan_9) == 1
        assert jan_9[0].title == "Team Standup (moved)"
        assert jan_9[0].start_at == _utc(2024, 1, 9, 17, 0)

    def test_parse_when_no_window_then_base_events_only(self) -> None:
        events = parse_ics_events(WEEKLY_STANDUP_ICS, "UTC", 4000)

        assert len(events) == 1
        assert events[0].external_event_id == "standup-1"

    def test_parse_when_duplicate_blocks_then_deduplicated_and_sorted(self) -> None:
        late = build_single_event_ics(uid="late", start="20240305T140000Z", end="20240305T150000Z")
        early = build_single_event_ics(uid="early")
        body = early.split("BEGIN:VEVENT")[1].split("END:VEVENT")[0]
        ics = late.replace("END:VCALENDAR", f"BEGIN:VEVENT{body}END:VEVENT\r\nBEGIN:VEVENT{body}END:VEVENT\r\nEND:VCALENDAR")

        events = parse_ics_events(ics, "UTC", 4000)

        assert [event.external_event_id for event in events] == ["early", "late"]

    def test_parse_when_one_block_out_of_range_then_other_blocks_kept(self) -> None:
        ics = wrap_events(
            """
            UID:a
            DTSTART:20240304T140000Z
            DTEND:20240304T150000Z
            """,
            """
            UID:b
            DTSTART:99991231T235959Z
            """,
        )

        events = parse_ics_events(ics, "UTC", 4000)

        assert [event.external_event_id for event in events] == ["a"]

    def test_parse_when_timezone_names_a_directory_then_block_kept_as_utc(self) -> None:
        ics = wrap_events(
            """
            UID:dir-zone
            DTSTART;TZID=America:20240105T090000
            DTEND;TZID=America:20240105T100000
            """
        )

        events = parse_ics_events(ics, "UTC", 4000)

        assert [event.start_at for event in events] == [_utc(2024, 1, 5, 9, 0)]

    def test_parse_when_empty_feed_then_no_events(self) -> None:
        assert parse_ics_events("BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n", "UTC", 4000) == []

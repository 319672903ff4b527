"""Unit tests for calendarsync_lite.calendar.lite_rrule_expander."""

import datetime

import pytest

from calendarsync_lite.calendar.lite_models import (
    ByDayToken,
    ExpansionWindow,
    RecurrenceFrequency,
    RecurrenceRule,
)
from calendarsync_lite.calendar.lite_parser import LiteICSParser
from calendarsync_lite.calendar.lite_rrule_expander import (
    MAX_RECURRENCE_OCCURRENCES,
    build_dateutil_rule,
    expand_recurring_event,
    parse_by_day_token,
    parse_recurrence_rule,
)
from calendarsync_lite.core.timezone_utils import UTC
from tests.ics_samples import WEEKLY_STANDUP_ICS, wrap_events

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _utc(*args: int) -> datetime.datetime:
    return datetime.datetime(*args, tzinfo=UTC)


def _window(start: datetime.date, end: datetime.date) -> ExpansionWindow:
    return ExpansionWindow(
        datetime.datetime.combine(start, datetime.time(), tzinfo=UTC),
        datetime.datetime.combine(end, datetime.time(), tzinfo=UTC),
    )


def _expand(ics: str, window: ExpansionWindow) -> list:
    return LiteICSParser("UTC", 4000).parse_ics_events(ics, window)


class TestParseRecurrenceRule:
    def test_parse_when_full_rule_then_all_parts(self) -> None:
        rule = parse_recurrence_rule(
            "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,-1FR;UNTIL=20240301T000000Z;WKST=SU"
        )

        assert rule is not None
        assert rule.freq is RecurrenceFrequency.WEEKLY
        assert rule.interval == 2
        assert rule.by_day == (ByDayToken(0), ByDayToken(4, -1))
        assert rule.until == _utc(2024, 3, 1)
        assert rule.week_start == 6

    def test_parse_when_unsupported_freq_then_none(self) -> None:
        assert parse_recurrence_rule("FREQ=HOURLY;COUNT=3") is None
        assert parse_recurrence_rule("INTERVAL=2") is None

    def test_parse_when_bad_numbers_then_defaults(self) -> None:
        rule = parse_recurrence_rule("FREQ=DAILY;INTERVAL=0;COUNT=-4;BYMONTHDAY=0,x,15;BYMONTH=13,2")

        assert rule is not None
        assert rule.interval == 1
        assert rule.count is None
        assert rule.by_month_day == (15,)
        assert rule.by_month == (2,)

    def test_parse_when_floating_until_then_start_zone(self) -> None:
        rule = parse_recurrence_rule("FREQ=DAILY;UNTIL=20240110T090000", "America/New_York")

        assert rule is not None
        assert rule.until == _utc(2024, 1, 10, 14, 0)

    def test_parse_by_day_token_when_invalid_then_none(self) -> None:
        assert parse_by_day_token("XX") is None
        assert parse_by_day_token("0MO") is None
        assert parse_by_day_token("2TU") == ByDayToken(1, 2)


class TestBuildDateutilRule:
    def _occurrences(self, rule: RecurrenceRule, dtstart: datetime.datetime, end: datetime.datetime) -> list:
        return list(build_dateutil_rule(rule, dtstart).between(dtstart, end, inc=True))

    def test_monthly_by_month_day_when_negative_then_counts_from_end(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.MONTHLY, by_month_day=(-1,))

        starts = self._occurrences(rule, datetime.datetime(2024, 1, 31, 9), datetime.datetime(2024, 4, 30, 23))

        assert [start.date() for start in starts] == [
            datetime.date(2024, 1, 31),
            datetime.date(2024, 2, 29),
            datetime.date(2024, 3, 31),
            datetime.date(2024, 4, 30),
        ]

    def test_monthly_by_day_when_last_friday_then_only_that_day(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.MONTHLY, by_day=(ByDayToken(4, -1),))

        starts = self._occurrences(rule, datetime.datetime(2024, 1, 26, 15), datetime.datetime(2024, 3, 1))

        assert starts == [datetime.datetime(2024, 1, 26, 15), datetime.datetime(2024, 2, 23, 15)]

    def test_monthly_by_day_when_second_tuesday_then_matches(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.MONTHLY, by_day=(ByDayToken(1, 2),))

        starts = self._occurrences(rule, datetime.datetime(2024, 3, 12, 10), datetime.datetime(2024, 5, 1))

        assert [start.day for start in starts] == [12, 9]

    def test_monthly_when_month_day_and_weekday_then_month_day_wins(self) -> None:
        rule = RecurrenceRule(
            freq=RecurrenceFrequency.MONTHLY,
            by_month_day=(15,),
            by_day=(ByDayToken(0),),
        )

        starts = self._occurrences(rule, datetime.datetime(2024, 1, 15, 9), datetime.datetime(2024, 3, 31))

        assert [start.day for start in starts] == [15, 15, 15]

    def test_weekly_when_no_by_day_then_start_weekday(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.WEEKLY)

        starts = self._occurrences(rule, datetime.datetime(2024, 1, 3, 8), datetime.datetime(2024, 1, 20))

        assert [start.day for start in starts] == [3, 10, 17]

    def test_yearly_when_start_on_leap_day_then_only_leap_years(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.YEARLY)

        starts = self._occurrences(rule, datetime.datetime(2020, 2, 29, 10), datetime.datetime(2028, 12, 31))

        assert [start.year for start in starts] == [2020, 2024, 2028]

    def test_until_when_no_count_then_inclusive(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.DAILY)

        recurrence = build_dateutil_rule(
            rule, datetime.datetime(2024, 1, 1, 9), datetime.datetime(2024, 1, 3, 9)
        )

        assert [start.day for start in recurrence] == [1, 2, 3]

    def test_until_when_count_set_then_count_only(self) -> None:
        rule = RecurrenceRule(freq=RecurrenceFrequency.DAILY, count=5)

        recurrence = build_dateutil_rule(
            rule, datetime.datetime(2024, 1, 1, 9), datetime.datetime(2024, 1, 3, 9)
        )

        assert len(list(recurrence)) == 5


class TestExpansion:
    def test_weekly_when_four_week_window_then_four_occurrences(self) -> None:
        events = _expand(WEEKLY_STANDUP_ICS, _window(datetime.date(2024, 1, 1), datetime.date(2024, 1, 29)))

        starts = [event.start_at for event in events]
        assert len(starts) == 4
        assert all(b - a == datetime.timedelta(days=7) for a, b in zip(starts, starts[1:]))
        assert [event.external_event_id for event in events][0] == "standup-1::2024-01-02T15:00:00Z"

    def test_monthly_last_friday_when_february_then_23rd(self) -> None:
        ics = wrap_events(
            """
            UID:retro
            DTSTART:20240126T150000Z
            DTEND:20240126T160000Z
            RRULE:FREQ=MONTHLY;BYDAY=-1FR
            SUMMARY:Retro
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 2, 1), datetime.date(2024, 3, 1)))

        assert [event.start_at for event in events] == [_utc(2024, 2, 23, 15, 0)]

    def test_exdate_when_present_then_exactly_one_removed(self) -> None:
        ics = WEEKLY_STANDUP_ICS.replace(
            "RRULE:FREQ=WEEKLY;INTERVAL=1\r\n",
            "RRULE:FREQ=WEEKLY;INTERVAL=1\r\nEXDATE:20240109T150000Z\r\n",
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 1, 29)))

        starts = [event.start_at for event in events]
        assert len(starts) == 3
        assert _utc(2024, 1, 9, 15, 0) not in starts

    def test_rdate_when_present_then_exactly_one_added(self) -> None:
        ics = WEEKLY_STANDUP_ICS.replace(
            "RRULE:FREQ=WEEKLY;INTERVAL=1\r\n",
            "RRULE:FREQ=WEEKLY;INTERVAL=1\r\nRDATE:20240110T150000Z\r\n",
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 1, 29)))

        starts = [event.start_at for event in events]
        assert len(starts) == 5
        assert _utc(2024, 1, 10, 15, 0) in starts

    def test_count_when_set_then_counts_from_series_start(self) -> None:
        ics = wrap_events(
            """
            UID:daily
            DTSTART:20240101T090000Z
            DTEND:20240101T093000Z
            RRULE:FREQ=DAILY;INTERVAL=2;COUNT=3
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 2, 1)))

        assert [event.start_at.day for event in events] == [1, 3, 5]

    def test_until_when_set_then_inclusive_bound(self) -> None:
        ics = wrap_events(
            """
            UID:until
            DTSTART:20240101T090000Z
            DTEND:20240101T093000Z
            RRULE:FREQ=DAILY;UNTIL=20240103T090000Z
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 2, 1)))

        assert [event.start_at.day for event in events] == [1, 2, 3]

    def test_weekly_when_dst_starts_then_local_wall_clock_kept(self) -> None:
        ics = wrap_events(
            """
            UID:dst
            DTSTART;TZID=America/New_York:20240304T090000
            DTEND;TZID=America/New_York:20240304T100000
            RRULE:FREQ=WEEKLY
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 3, 1), datetime.date(2024, 3, 15)))

        assert [event.start_at for event in events] == [_utc(2024, 3, 4, 14, 0), _utc(2024, 3, 11, 13, 0)]
        assert all(event.end_at - event.start_at == datetime.timedelta(hours=1) for event in events)

    def test_weekly_by_day_when_multiple_days_then_each_matched(self) -> None:
        ics = wrap_events(
            """
            UID:mwf
            DTSTART:20240101T120000Z
            RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 1, 8)))

        assert [event.start_at.day for event in events] == [1, 3, 5]

    def test_series_when_started_before_window_then_only_window_occurrences(self) -> None:
        events = _expand(WEEKLY_STANDUP_ICS, _window(datetime.date(2024, 6, 1), datetime.date(2024, 6, 15)))

        assert [event.start_at for event in events] == [_utc(2024, 6, 4, 15, 0), _utc(2024, 6, 11, 15, 0)]

    def test_unbounded_daily_when_huge_window_then_capped(self) -> None:
        ics = wrap_events(
            """
            UID:forever
            DTSTART:20240101T090000Z
            RRULE:FREQ=DAILY
            """
        )
        definition = LiteICSParser("UTC", 4000).parse_definitions(ics)[0]

        events = expand_recurring_event(
            definition, _window(datetime.date(2024, 1, 1), datetime.date(2031, 1, 1))
        )

        assert len(events) == MAX_RECURRENCE_OCCURRENCES

    def test_no_occurrence_in_window_then_empty(self) -> None:
        events = _expand(WEEKLY_STANDUP_ICS, _window(datetime.date(2023, 1, 1), datetime.date(2023, 2, 1)))

        assert events == []

    def test_yearly_when_started_on_leap_day_then_only_leap_year_occurrence(self) -> None:
        ics = wrap_events(
            """
            UID:leap
            DTSTART:20200229T100000Z
            DTEND:20200229T110000Z
            RRULE:FREQ=YEARLY
            """
        )

        events = _expand(ics, _window(datetime.date(2021, 1, 1), datetime.date(2025, 1, 1)))

        assert [event.start_at for event in events] == [_utc(2024, 2, 29, 10, 0)]

    def test_monthly_last_day_when_crossing_dst_then_month_ends_with_shifted_utc_hour(self) -> None:
        ics = wrap_events(
            """
            UID:month-end
            DTSTART;TZID=America/New_York:20240131T090000
            DTEND;TZID=America/New_York:20240131T093000
            RRULE:FREQ=MONTHLY;BYMONTHDAY=-1
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 2, 1), datetime.date(2024, 5, 1)))

        assert [event.start_at for event in events] == [
            _utc(2024, 2, 29, 14, 0),
            _utc(2024, 3, 31, 13, 0),
            _utc(2024, 4, 30, 13, 0),
        ]

    @pytest.mark.parametrize(
        ("week_start", "expected_days"),
        [
            ("SU", [6, 18, 20]),
            ("MO", [6, 11, 20, 25]),
        ],
    )
    def test_biweekly_when_week_start_given_then_weeks_grouped_by_it(
        self, week_start: str, expected_days: list[int]
    ) -> None:
        ics = wrap_events(
            f"""
            UID:biweekly
            DTSTART:20240806T090000Z
            DTEND:20240806T100000Z
            RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=TU,SU;WKST={week_start}
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 8, 1), datetime.date(2024, 9, 1)))

        assert [event.start_at.day for event in events] == expected_days

    def test_daily_interval_when_three_then_every_third_day(self) -> None:
        ics = wrap_events(
            """
            UID:every-third
            DTSTART:20240101T080000Z
            DTEND:20240101T083000Z
            RRULE:FREQ=DAILY;INTERVAL=3
            """
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 1, 11)))

        assert [event.start_at.day for event in events] == [1, 4, 7, 10]

    def test_override_when_moved_outside_window_then_instance_suppressed_and_override_emitted(self) -> None:
        ics = wrap_events(
            """
            UID:sync
            DTSTART:20240102T150000Z
            DTEND:20240102T160000Z
            RRULE:FREQ=WEEKLY
            SUMMARY:Sync
            """,
            """
            UID:sync
            RECURRENCE-ID:20240109T150000Z
            DTSTART:20240301T150000Z
            DTEND:20240301T160000Z
            SUMMARY:Sync (moved)
            """,
        )

        events = _expand(ics, _window(datetime.date(2024, 1, 1), datetime.date(2024, 1, 15)))

        assert [event.start_at for event in events] == [_utc(2024, 1, 2, 15, 0), _utc(2024, 3, 1, 15, 0)]
        assert events[1].title == "Sync (moved)"
        assert events[1].external_event_id == "sync::2024-01-09T15:00:00Z"

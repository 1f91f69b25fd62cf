"""Tests for calendar windows, day-grid layout and date/time display."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from campus_calendar.domain.calendar_events.time_ranges import (
    TimeRange,
    all_day_bounds,
    daily_layout,
    date_time_display,
    event_duration_minutes,
    get_range,
    localize,
    resolve_tz,
    sms_date,
    sms_time,
    sort_by_start_date,
    time_display,
    utc_range,
)
from campus_calendar.exceptions import ValidationError
from tests.support import EASTERN, PACIFIC, stored

pytestmark = pytest.mark.unit


def _event(start, end, all_day=False):
    return SimpleNamespace(start_at=start, end_at=end, all_day=all_day)


class TestGetRange:
    def test_day(self):
        r = get_range(date(2026, 7, 16), "day", PACIFIC)

        assert r.start == datetime(2026, 7, 16, 0, 0, tzinfo=resolve_tz(PACIFIC))
        assert r.end.date() == date(2026, 7, 16)
        assert (r.end.hour, r.end.minute) == (23, 59)

    def test_week_runs_sunday_through_saturday(self):
        r = get_range(date(2026, 7, 15), "week", PACIFIC)

        assert r.start.date() == date(2026, 7, 12)
        assert r.start.weekday() == 6
        assert r.end.date() == date(2026, 7, 18)
        assert r.end.weekday() == 5

    def test_month_expands_to_whole_weeks(self):
        r = get_range(date(2026, 7, 10), "month", PACIFIC)

        assert r.start.date() == date(2026, 6, 28)
        assert r.end.date() == date(2026, 8, 1)

    @pytest.mark.parametrize("month", range(1, 13))
    def test_month_covers_whole_sunday_weeks(self, month):
        first = date(2026, month, 1)
        last = date(2026, month, calendar.monthrange(2026, month)[1])

        r = get_range(date(2026, month, 15), "month", PACIFIC)

        assert r.start.weekday() == 6
        assert first - timedelta(days=6) <= r.start.date() <= first
        assert r.end.weekday() == 5
        assert last <= r.end.date() <= last + timedelta(days=6)

    def test_month_already_on_week_boundaries(self):
        r = get_range(date(2026, 2, 10), "month", PACIFIC)

        assert r.start.date() == date(2026, 2, 1)
        assert r.end.date() == date(2026, 2, 28)

    def test_bounds_are_in_requested_zone(self):
        r = get_range(date(2026, 7, 16), "day", EASTERN)
        start_utc, end_utc = utc_range(r)

        assert start_utc == datetime(2026, 7, 16, 4, 0)
        assert start_utc.tzinfo is None
        assert end_utc.date() == date(2026, 7, 17)

    def test_unknown_granularity(self):
        with pytest.raises(ValidationError):
            get_range(date(2026, 7, 16), "year", PACIFIC)


class TestTimeRange:
    def test_contains_and_overlaps_are_inclusive(self):
        r = get_range(date(2026, 7, 16), "day", PACIFIC)

        assert r.contains(r.start)
        assert r.overlaps(localize(datetime(2026, 7, 15, 22), PACIFIC), r.start)
        assert not r.overlaps(
            localize(datetime(2026, 7, 17, 1), PACIFIC), localize(datetime(2026, 7, 17, 2), PACIFIC)
        )

    def test_dates(self):
        r = get_range(date(2026, 7, 15), "week", PACIFIC)

        assert len(r.dates()) == 7
        assert r.dates()[0] == date(2026, 7, 12)


class TestDailyLayout:
    def test_same_day_event(self):
        event = _event(stored(2026, 7, 16, 9), stored(2026, 7, 16, 10, 30))

        layout = daily_layout(event, date(2026, 7, 16), PACIFIC, row_height=5)

        assert layout.top == pytest.approx(45)
        assert layout.height == pytest.approx(7.5)

    def test_multi_day_event_per_day(self):
        event = _event(stored(2026, 7, 15, 22), stored(2026, 7, 17, 2))

        first = daily_layout(event, date(2026, 7, 15), PACIFIC, row_height=5)
        middle = daily_layout(event, date(2026, 7, 16), PACIFIC, row_height=5)
        last = daily_layout(event, date(2026, 7, 17), PACIFIC, row_height=5)

        assert (first.top, first.height) == pytest.approx((110, 10))
        assert (middle.top, middle.height) == pytest.approx((0, 120))
        assert (last.top, last.height) == pytest.approx((0, 10))

    def test_event_not_on_focus_date(self):
        event = _event(stored(2026, 7, 16, 9), stored(2026, 7, 16, 10))

        assert daily_layout(event, date(2026, 7, 17), PACIFIC) is None

    def test_event_ending_at_midnight_is_not_drawn_next_day(self):
        event = _event(stored(2026, 7, 15, 22), stored(2026, 7, 16, 0))

        assert daily_layout(event, date(2026, 7, 16), PACIFIC) is None
        assert daily_layout(event, date(2026, 7, 15), PACIFIC, row_height=5).height == pytest.approx(10)

    def test_dst_spring_forward_uses_elapsed_hours(self):
        # 2026-03-08 02:00 does not exist in Pacific time; 00:00-04:00 is three real hours
        event = _event(stored(2026, 3, 8, 0), stored(2026, 3, 8, 4))

        layout = daily_layout(event, date(2026, 3, 8), PACIFIC, row_height=5)

        assert layout.top == 0
        assert layout.height == pytest.approx(15)

    def test_layout_follows_viewing_zone(self):
        event = _event(stored(2026, 7, 16, 9), stored(2026, 7, 16, 10))

        layout = daily_layout(event, date(2026, 7, 16), EASTERN, row_height=5)

        assert layout.top == pytest.approx(60)


class TestDisplay:
    def setup_method(self):
        self.event = _event(datetime(2026, 7, 16, 20, 0), datetime(2026, 7, 16, 21, 0))

    def test_date_time_display(self):
        assert date_time_display(self.event, PACIFIC) == "Thursday, Jul 16 2026, 1:00PM-2:00PM PDT"
        assert date_time_display(self.event, PACIFIC, short=True) == "7/16/2026, 1:00PM-2:00PM PDT"
        assert date_time_display(self.event, EASTERN, short=True) == "7/16/2026, 4:00PM-5:00PM EDT"

    def test_multi_day_display_shows_both_ends(self):
        event = _event(stored(2026, 7, 16, 9), stored(2026, 7, 17, 17))

        assert date_time_display(event, PACIFIC, short=True) == "7/16/2026, 9:00AM - 7/17/2026, 5:00PM PDT"

    def test_all_day_display(self):
        start, end = all_day_bounds(date(2026, 7, 16), PACIFIC)
        event = _event(start.astimezone(timezone.utc), end.astimezone(timezone.utc), all_day=True)

        assert date_time_display(event, PACIFIC) == "Thursday, Jul 16 2026"
        assert time_display(event, PACIFIC) == "All Day"

    def test_time_display(self):
        assert time_display(self.event, PACIFIC) == "1:00 PM - 2:00 PM"

    def test_sms_formats(self):
        assert sms_time(self.event.start_at, PACIFIC) == "1:00 PM PDT"
        assert sms_date(self.event.start_at, PACIFIC) == "Thursday July 16, 2026"

    def test_duration(self):
        assert event_duration_minutes(self.event) == 60


class TestHelpers:
    def test_unknown_zone_falls_back_to_default(self):
        assert resolve_tz("Not/AZone") == resolve_tz(None)

    def test_localize_naive_and_aware(self):
        naive = localize(datetime(2026, 7, 16, 13), PACIFIC)
        aware = localize(datetime(2026, 7, 16, 20, tzinfo=timezone.utc), PACIFIC)

        assert naive == aware
        assert aware.hour == 13

    def test_sort_by_start_date_groups_by_local_day(self):
        late = _event(stored(2026, 7, 16, 23), stored(2026, 7, 16, 23, 30))
        early = _event(stored(2026, 7, 16, 8), stored(2026, 7, 16, 9))
        next_day = _event(stored(2026, 7, 17, 8), stored(2026, 7, 17, 9))

        grouped = sort_by_start_date([next_day, late, early], PACIFIC)

        assert list(grouped) == ["7/16/2026", "7/17/2026"]
        assert grouped["7/16/2026"] == [early, late]

    def test_time_range_compares_by_value(self):
        r = get_range(date(2026, 7, 16), "day", PACIFIC)

        assert r == TimeRange(r.start, r.end)

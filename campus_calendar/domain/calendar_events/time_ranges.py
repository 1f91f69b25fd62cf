"""
Calendar view windows, day-grid geometry and date/time display
Every function takes the viewing time zone explicitly; stored instants are UTC
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...config import DAILY_VIEW_ROW_HEIGHT, DEFAULT_TIME_ZONE
from ...exceptions import ValidationError
from ...models import as_utc

logger = logging.getLogger(__name__)

GRANULARITIES = ("day", "week", "month")
ALL_DAY_END = time(23, 55)

TzLike = Union[str, ZoneInfo, None]


def resolve_tz(tz: TzLike) -> ZoneInfo:
    """ZoneInfo for a name, falling back to the default zone for blank or unknown names"""
    if isinstance(tz, ZoneInfo):
        return tz
    if tz:
        try:
            return ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"⚠️ Unknown time zone {tz!r}, using {DEFAULT_TIME_ZONE}")
    return ZoneInfo(DEFAULT_TIME_ZONE)


def localize(value: datetime, tz: TzLike) -> datetime:
    """Wall-clock input without an offset is taken to be in tz; aware values are converted"""
    zone = resolve_tz(tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value.astimezone(zone)


def to_local(instant: datetime, tz: TzLike) -> datetime:
    """Stored (naive UTC) or aware instant in the viewing zone"""
    return as_utc(instant).astimezone(resolve_tz(tz))


def start_of_day(day: date, tz: TzLike) -> datetime:
    return datetime.combine(day, time.min, tzinfo=resolve_tz(tz))


def end_of_day(day: date, tz: TzLike) -> datetime:
    return datetime.combine(day, time.max, tzinfo=resolve_tz(tz))


def all_day_bounds(day: date, tz: TzLike) -> tuple[datetime, datetime]:
    zone = resolve_tz(tz)
    return datetime.combine(day, time.min, tzinfo=zone), datetime.combine(day, ALL_DAY_END, tzinfo=zone)


def _hours_between(start: datetime, end: datetime) -> float:
    # Elapsed real time, so DST transitions inside the span are honored
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return as_utc(self.start) <= as_utc(instant) <= as_utc(self.end)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return as_utc(start) <= as_utc(self.end) and as_utc(end) >= as_utc(self.start)

    def dates(self, tz: TzLike = None) -> list[date]:
        zone = resolve_tz(tz) if tz else self.start.tzinfo
        first = as_utc(self.start).astimezone(zone).date()
        last = as_utc(self.end).astimezone(zone).date()
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def week_start(day: date) -> date:
    """Sunday on or before day"""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_end(day: date) -> date:
    """Saturday on or after day"""
    return day + timedelta(days=(5 - day.weekday()) % 7)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first, next_first - timedelta(days=1)


def get_range(focus_date: date, granularity: str, tz: TzLike) -> TimeRange:
    """
    Calendar view window around focus_date in tz.
    Weeks run Sunday through Saturday; months expand to whole weeks
    """
    if isinstance(focus_date, datetime):
        focus_date = focus_date.date()

    if granularity == "day":
        first = last = focus_date
    elif granularity == "week":
        first, last = week_start(focus_date), week_end(focus_date)
    elif granularity == "month":
        month_first, month_last = month_bounds(focus_date)
        first, last = week_start(month_first), week_end(month_last)
    else:
        raise ValidationError(f"Invalid range granularity: {granularity}")

    return TimeRange(start=start_of_day(first, tz), end=end_of_day(last, tz))


@dataclass(frozen=True)
class DailyLayout:
    top: float
    height: float


def daily_layout(
    event, focus_date: date, tz: TzLike, row_height: float = DAILY_VIEW_ROW_HEIGHT
) -> Optional[DailyLayout]:
    """
    Position of an event block on the focus date's day grid, in row_height units per hour.
    None when the event does not touch the focus date
    """
    zone = resolve_tz(tz)
    start = to_local(event.start_at, zone)
    end = to_local(event.end_at, zone)
    start_date, end_date = start.date(), end.date()

    if focus_date < start_date or focus_date > end_date:
        return None

    focus_midnight = start_of_day(focus_date, zone)
    next_midnight = start_of_day(focus_date + timedelta(days=1), zone)

    if start_date == end_date:
        top = _hours_between(focus_midnight, start)
        height = _hours_between(start, end)
    elif focus_date == start_date:
        top = _hours_between(focus_midnight, start)
        height = _hours_between(start, next_midnight)
    elif focus_date == end_date:
        if end == focus_midnight:
            # Ends exactly at midnight, nothing to draw on this day
            return None
        top = 0.0
        height = _hours_between(focus_midnight, end)
    else:
        top = 0.0
        height = 24.0

    return DailyLayout(top=top * row_height, height=height * row_height)


# Display formatting, built by hand so output does not depend on the platform strftime

def _clock(value: datetime, spaced: bool = False) -> str:
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d}{' ' if spaced else ''}{meridiem}"


def _long_date(value: datetime) -> str:
    return f"{value.strftime('%A')}, {value.strftime('%b')} {value.day} {value.year}"


def short_date(value: Union[date, datetime]) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def sms_time(instant: datetime, tz: TzLike) -> str:
    """Formatted like 1:00 PM PDT"""
    local = to_local(instant, tz)
    return f"{_clock(local, spaced=True)} {local.strftime('%Z')}"


def sms_date(instant: datetime, tz: TzLike) -> str:
    """Formatted like Thursday July 16, 2026"""
    local = to_local(instant, tz)
    return f"{local.strftime('%A')} {local.strftime('%B')} {local.day}, {local.year}"


def date_time_display(event, tz: TzLike, short: bool = False) -> str:
    """
    "Thursday, Jul 16 2026, 1:00PM-2:00PM PDT" or with short=True "7/16/2026, 1:00PM-2:00PM PDT".
    All day events show dates only; multi-day events show both ends
    """
    start = to_local(event.start_at, tz)
    end = to_local(event.end_at, tz)
    fmt_date = short_date if short else _long_date
    same_day = start.date() == end.date()

    if event.all_day:
        if same_day:
            return fmt_date(start)
        return f"{fmt_date(start)} - {fmt_date(end)}"

    zone_abbr = end.strftime("%Z")
    if same_day:
        return f"{fmt_date(start)}, {_clock(start)}-{_clock(end)} {zone_abbr}"
    return f"{fmt_date(start)}, {_clock(start)} - {fmt_date(end)}, {_clock(end)} {zone_abbr}"


def time_display(event, tz: TzLike) -> str:
    if event.all_day:
        return "All Day"
    start = to_local(event.start_at, tz)
    end = to_local(event.end_at, tz)
    return f"{_clock(start, spaced=True)} - {_clock(end, spaced=True)}"


def sort_by_start_date(events: Iterable, tz: TzLike) -> dict[str, list]:
    """Events grouped by local start date ("7/17/2026"), in start order"""
    grouped: dict[str, list] = {}
    for event in sorted(events, key=lambda e: as_utc(e.start_at)):
        grouped.setdefault(short_date(to_local(event.start_at, tz)), []).append(event)
    return grouped


def event_duration_minutes(event) -> int:
    return int((as_utc(event.end_at) - as_utc(event.start_at)).total_seconds() // 60)


def utc_range(time_range: TimeRange) -> tuple[datetime, datetime]:
    """Naive UTC bounds for querying stored columns"""
    return (
        time_range.start.astimezone(timezone.utc).replace(tzinfo=None),
        time_range.end.astimezone(timezone.utc).replace(tzinfo=None),
    )

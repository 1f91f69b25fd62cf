"""
Advisory scheduling conflict checks
Results are surfaced for confirmation only and never block a write
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ...directory import Directory, Holiday, HolidayCalendar, UsFederalHolidayCalendar
from .repository import CalendarEventRepository
from .roster import RosterEntry, involved_user_ids
from .time_ranges import (
    TimeRange,
    TzLike,
    date_time_display,
    end_of_day,
    localize,
    resolve_tz,
    start_of_day,
    to_local,
    utc_range,
)

logger = logging.getLogger(__name__)


class ConflictCategory(str, Enum):
    FEDERAL_HOLIDAYS = "federal_holidays"
    ORGANIZATION_HOLIDAYS = "organization_holidays"
    USER_CONFLICTS = "user_conflicts"
    RECIPIENT_CONFLICTS = "recipient_conflicts"


_CATEGORY_NAMES = {
    ConflictCategory.FEDERAL_HOLIDAYS: "Federal Holiday",
    ConflictCategory.ORGANIZATION_HOLIDAYS: "Organization Holiday",
    ConflictCategory.USER_CONFLICTS: "User Conflict",
    ConflictCategory.RECIPIENT_CONFLICTS: "Recipient Conflict",
}


def category_label(category, count: int = 1) -> str:
    """Display label for a notice category, pluralized by count"""
    name = _CATEGORY_NAMES[ConflictCategory(category)]
    return name if count == 1 else f"{name}s"


@dataclass
class ConflictQuery:
    start_at: datetime
    end_at: datetime
    parent_organization_id: int
    organization_id: Optional[int] = None
    roster: list[RosterEntry] = field(default_factory=list)
    recipient_type: Optional[str] = None
    recipient_id: Optional[int] = None
    exclude_event_id: Optional[int] = None
    time_zone: Optional[str] = None


def event_summary(event, tz: TzLike) -> str:
    return f"{event.name} ({date_time_display(event, tz, short=True)})"


class ConflictDetector:
    """Holiday and overlap checks against a candidate time range"""

    def __init__(self, db: Session, directory: Directory, holiday_calendar: Optional[HolidayCalendar] = None):
        self.db = db
        self.directory = directory
        self.holiday_calendar = holiday_calendar or UsFederalHolidayCalendar()
        self.repo = CalendarEventRepository()

    def check(self, query: ConflictQuery) -> dict[str, list[str]]:
        """Notices keyed by ConflictCategory value, empty categories omitted"""
        tz = resolve_tz(query.time_zone)
        start = localize(query.start_at, tz)
        end = localize(query.end_at, tz)
        if end < start:
            start, end = end, start
        start_utc, end_utc = utc_range(TimeRange(start, end))

        notices: dict[str, list[str]] = {}

        federal = [
            f"{h.date.strftime('%m/%d/%Y')} - {h.name}"
            for h in self.holiday_calendar.federal_holidays_between(start.date(), end.date())
        ]
        if federal:
            notices[ConflictCategory.FEDERAL_HOLIDAYS.value] = federal

        day_start, day_end = utc_range(TimeRange(start_of_day(start.date(), tz), end_of_day(end.date(), tz)))
        org_holidays = [
            event_summary(e, tz)
            for e in self.repo.holiday_events_in_range(
                self.db, query.parent_organization_id, query.organization_id, day_start, day_end
            )
            if e.id != query.exclude_event_id
        ]
        if org_holidays:
            notices[ConflictCategory.ORGANIZATION_HOLIDAYS.value] = org_holidays

        user_notices = []
        for user_id in involved_user_ids(query.roster, self.directory, query.organization_id):
            user = self.directory.resolve_user(user_id)
            if not user:
                logger.warning(f"⚠️ Conflict check skipped unknown user {user_id}")
                continue
            events = self.repo.user_events_in_range(
                self.db,
                user_id,
                start_utc,
                end_utc,
                department_ids=user.department_ids,
                exclude_event_id=query.exclude_event_id,
                strict=True,
            )
            if events:
                user_notices.append(f"{user.full_name} - " + ", ".join(event_summary(e, tz) for e in events))
        if user_notices:
            notices[ConflictCategory.USER_CONFLICTS.value] = user_notices

        recipient_notice = self._recipient_conflicts(query, start_utc, end_utc, tz)
        if recipient_notice:
            notices[ConflictCategory.RECIPIENT_CONFLICTS.value] = [recipient_notice]

        if notices:
            logger.info(f"📅 Conflict check found {sum(len(v) for v in notices.values())} notice(s)")
        return notices

    def _recipient_conflicts(self, query: ConflictQuery, start_utc, end_utc, tz) -> Optional[str]:
        if not (query.recipient_type and query.recipient_id) or query.recipient_type == "EXTERNAL":
            return None

        if query.recipient_type == "USER":
            user = self.directory.resolve_user(query.recipient_id)
            events = self.repo.user_events_in_range(
                self.db,
                query.recipient_id,
                start_utc,
                end_utc,
                department_ids=user.department_ids if user else (),
                exclude_event_id=query.exclude_event_id,
                strict=True,
            )
        else:
            events = self.repo.recipient_events_in_range(
                self.db, query.recipient_type, query.recipient_id, start_utc, end_utc, query.exclude_event_id
            )
        if not events:
            return None

        recipient = self.directory.resolve_entity(query.recipient_type, query.recipient_id)
        name = recipient.full_name if recipient else f"{query.recipient_type}-{query.recipient_id}"
        return f"{name} - " + ", ".join(event_summary(e, tz) for e in events)

    def date_is_holiday(
        self,
        day: date,
        parent_organization_id: int,
        organization_id: Optional[int] = None,
        tz: TzLike = None,
    ) -> Optional[str]:
        """Holiday name for a local date, federal holidays win over organization holiday events"""
        federal = self.holiday_calendar.is_federal_holiday(day)
        if federal:
            return federal

        day_start, day_end = utc_range(TimeRange(start_of_day(day, tz), end_of_day(day, tz)))
        events = self.repo.holiday_events_in_range(
            self.db, parent_organization_id, organization_id, day_start, day_end
        )
        return events[0].name if events else None

    def holidays_between(
        self,
        start_date: date,
        end_date: date,
        parent_organization_id: Optional[int] = None,
        organization_id: Optional[int] = None,
        tz: TzLike = None,
    ) -> list[Holiday]:
        """Federal holidays plus, with an organization, each local day its holiday events cover"""
        found: list[Holiday] = list(self.holiday_calendar.federal_holidays_between(start_date, end_date))
        if parent_organization_id is None:
            return found

        zone = resolve_tz(tz)
        day_start, day_end = utc_range(TimeRange(start_of_day(start_date, zone), end_of_day(end_date, zone)))
        for event in self.repo.holiday_events_in_range(
            self.db, parent_organization_id, organization_id, day_start, day_end
        ):
            first = max(to_local(event.start_at, zone).date(), start_date)
            last = min(to_local(event.end_at, zone).date(), end_date)
            found.extend(Holiday(date=first + timedelta(days=i), name=event.name) for i in range((last - first).days + 1))
        return sorted(found, key=lambda h: (h.date, h.name))

"""FastAPI dependencies - collaborators registered on app.state at startup"""

import logging
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .database import get_db
from .directory import Directory, HolidayCalendar, StaffUser
from .domain.calendar_events.lifecycle import AppointmentLifecycle
from .domain.calendar_events.service import CalendarEventService
from .exceptions import AccessDenied, TransientDependencyError
from .services.notification_service import NotificationComposer

logger = logging.getLogger(__name__)


def get_directory(request: Request) -> Directory:
    directory = getattr(request.app.state, "directory", None)
    if directory is None:
        logger.error("❌ No directory registered on app.state")
        raise TransientDependencyError("Directory service unavailable")
    return directory


def get_notifier(request: Request) -> Optional[NotificationComposer]:
    return getattr(request.app.state, "notifier", None)


def get_holiday_calendar(request: Request) -> Optional[HolidayCalendar]:
    return getattr(request.app.state, "holiday_calendar", None)


def get_lifecycle(request: Request, directory: Directory = Depends(get_directory)) -> AppointmentLifecycle:
    return AppointmentLifecycle(directory, getattr(request.app.state, "action_executor", None))


def get_calendar_event_service(
    db: Session = Depends(get_db),
    directory: Directory = Depends(get_directory),
    notifier: Optional[NotificationComposer] = Depends(get_notifier),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    holiday_calendar: Optional[HolidayCalendar] = Depends(get_holiday_calendar),
) -> CalendarEventService:
    """Dependency injection for CalendarEventService"""
    return CalendarEventService(db, directory, notifier, lifecycle, holiday_calendar)


def get_current_staff_user(
    x_staff_user_id: Optional[int] = Header(None),
    directory: Directory = Depends(get_directory),
) -> StaffUser:
    """Acting staff user, identified by the header the upstream auth gateway sets"""
    if x_staff_user_id is None:
        raise AccessDenied("Missing staff user")
    user = directory.resolve_user(x_staff_user_id)
    if not user:
        logger.warning(f"⚠️ Unknown staff user id in request: {x_staff_user_id}")
        raise AccessDenied("Unknown staff user")
    return user

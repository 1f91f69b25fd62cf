"""
Appointment status lifecycle
unset -> complete | rescheduled | no_show, appointment kinds only
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from ...directory import Directory, Recipient, StaffUser, resolve_event_recipient
from ...exceptions import ValidationError
from ...models import CalendarEvent, as_utc, to_storage
from .constants import APPOINTMENT_STATUSES, type_of_display
from .time_ranges import TzLike, resolve_tz

logger = logging.getLogger(__name__)

EVENT_CREATION_TRIGGER = "event_creation"


class ActionExecutor(Protocol):
    async def execute_actions(
        self,
        trigger_key: str,
        action_data: dict[str, Any],
        recipient: Optional[Recipient],
        staff_user: Optional[StaffUser],
    ) -> Any: ...


def status_trigger_key(status: str) -> str:
    return f"appt_{status}"


class AppointmentLifecycle:
    def __init__(self, directory: Directory, action_executor: Optional[ActionExecutor] = None):
        self.directory = directory
        self.action_executor = action_executor

    @staticmethod
    def apply_status(event: CalendarEvent, status: Optional[str], now: Optional[datetime] = None) -> None:
        """Set appointment_status and stamp the change time, the caller owns the commit"""
        if not event.is_appointment:
            raise ValidationError(f"{type_of_display(event.type_of)} events do not have an appointment status")
        if status is not None and status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Invalid appointment status: {status}")

        event.appointment_status = status
        event.appt_status_updated_at = to_storage(now or datetime.now(timezone.utc))

    @staticmethod
    def needs_completion(event: CalendarEvent, tz: TzLike, now: Optional[datetime] = None) -> bool:
        """Appointment with no status whose start has passed, as seen from tz"""
        if not event.is_appointment or event.appointment_status:
            return False
        zone = resolve_tz(tz)
        if now is None:
            current = datetime.now(zone)
        elif now.tzinfo is None:
            current = now.replace(tzinfo=zone)
        else:
            current = now.astimezone(zone)
        return current >= as_utc(event.start_at)

    async def run_actions(self, event: CalendarEvent, trigger_key: str) -> bool:
        """
        Hand the event's active action configuration to the action executor.
        Failures are logged, never raised; returns whether the hook ran
        """
        action = event.active_action
        if not self.action_executor or not action:
            return False

        try:
            recipient = resolve_event_recipient(event, self.directory)
            staff_user = self.directory.resolve_user(event.appt_user_id) if event.appt_user_id else None
            await self.action_executor.execute_actions(trigger_key, action.data, recipient, staff_user)
            logger.info(f"✅ Ran {trigger_key} actions for calendar event {event.id}")
            return True
        except Exception as e:
            logger.error(f"❌ Calendar event {event.id} {trigger_key} actions failed: {e}", exc_info=True)
            return False

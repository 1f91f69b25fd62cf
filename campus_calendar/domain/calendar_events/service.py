"""Calendar event service - Business logic for event mutations and calendar reads"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...directory import Directory, HolidayCalendar, StaffUser
from ...exceptions import AccessDenied, NotFoundError, ValidationError
from ...models import RECIPIENT_ACTOR, CalendarEvent, StaffActor, as_utc, to_storage
from ...services.notification_service import (
    DeliveryReport,
    NotificationAction,
    NotificationComposer,
    SmsScope,
    decode_event_token,
    event_time_zone,
)
from .conflicts import ConflictDetector, ConflictQuery
from .constants import APPT_EVENT_TYPES, RECIPIENT_TYPES, is_appointment_type, type_of_display
from .lifecycle import EVENT_CREATION_TRIGGER, AppointmentLifecycle, status_trigger_key
from .repository import CalendarEventRepository
from .roster import RosterEntry, apply_roster, user_has_write_access
from .schemas import CalendarEventCreate, CalendarEventUpdate, ConflictCheckRequest
from .time_ranges import TimeRange, all_day_bounds, get_range, localize, utc_range

logger = logging.getLogger(__name__)

# Event columns a caller may set, keyed by schema field
_FIELD_MAP = {
    "organizationId": "organization_id",
    "typeOf": "type_of",
    "name": "name",
    "location": "location",
    "description": "description",
    "startAt": "start_at",
    "endAt": "end_at",
    "allDay": "all_day",
    "isPublic": "is_public",
    "recipientType": "recipient_type",
    "recipientId": "recipient_id",
    "apptUserId": "appt_user_id",
    "appointmentStatus": "appointment_status",
}


@dataclass
class MutationResult:
    event: CalendarEvent
    report: Optional[DeliveryReport] = None
    actions_ran: bool = False


def ensure_assigned_user(entries: list[RosterEntry], appt_user_id: Optional[int]) -> list[RosterEntry]:
    """The assigned staff member always holds a write-access roster entry"""
    if not appt_user_id:
        return entries
    for i, entry in enumerate(entries):
        if entry.identity == ("USER", appt_user_id):
            if entry.view_only or not entry.write_access:
                entries[i] = RosterEntry("USER", appt_user_id, write_access=True, view_only=False)
            return entries
    return entries + [RosterEntry("USER", appt_user_id, write_access=True, view_only=False)]


class CalendarEventService:
    """Service layer for calendar event business logic"""

    def __init__(
        self,
        db: Session,
        directory: Directory,
        notifier: Optional[NotificationComposer] = None,
        lifecycle: Optional[AppointmentLifecycle] = None,
        holiday_calendar: Optional[HolidayCalendar] = None,
    ):
        self.db = db
        self.directory = directory
        self.notifier = notifier
        self.lifecycle = lifecycle or AppointmentLifecycle(directory)
        self.holiday_calendar = holiday_calendar
        self.repo = CalendarEventRepository()

    # Reads

    def get(self, event_id: int, include_deleted: bool = False) -> CalendarEvent:
        """Get a specific calendar event"""
        event = self.repo.get_event(self.db, event_id, include_deleted=include_deleted)
        if not event:
            raise NotFoundError("Calendar event not found")
        return event

    def time_zone_for(self, parent_organization_id: int, organization_id: Optional[int]) -> str:
        organization = self.directory.resolve_organization(organization_id) if organization_id else None
        parent = self.directory.resolve_parent_organization(parent_organization_id)
        return event_time_zone(organization, parent)

    def list_for_range(
        self,
        parent_organization_id: int,
        focus_date: date,
        granularity: str,
        tz: Optional[str] = None,
        organization_id: Optional[int] = None,
        user: Optional[StaffUser] = None,
    ) -> tuple[TimeRange, list[CalendarEvent]]:
        """Events for a day/week/month view, optionally only those a staff user is involved in"""
        tz = tz or self.time_zone_for(parent_organization_id, organization_id)
        time_range = get_range(focus_date, granularity, tz)
        start, end = utc_range(time_range)

        if user:
            events = [
                e
                for e in self.repo.user_events_in_range(self.db, user.id, start, end, department_ids=user.department_ids)
                if e.parent_organization_id == parent_organization_id
                and (not organization_id or e.organization_id in (None, organization_id))
            ]
        else:
            events = self.repo.events_in_range(
                self.db, parent_organization_id, start, end, organization_id=organization_id
            )
        return time_range, events

    def check_conflicts(self, data: ConflictCheckRequest) -> dict[str, list[str]]:
        tz = data.timeZone or self.time_zone_for(data.parentOrganizationId, data.organizationId)
        detector = ConflictDetector(self.db, self.directory, self.holiday_calendar)
        return detector.check(
            ConflictQuery(
                start_at=data.startAt,
                end_at=data.endAt,
                parent_organization_id=data.parentOrganizationId,
                organization_id=data.organizationId,
                roster=data.roster_entries(),
                recipient_type=data.recipientType,
                recipient_id=data.recipientId,
                exclude_event_id=data.excludeEventId,
                time_zone=tz,
            )
        )

    def needs_completion(self, user: StaffUser, now: Optional[datetime] = None) -> list[CalendarEvent]:
        """Past appointments assigned to the user still waiting for a status"""
        now = now or datetime.now(timezone.utc)
        return self.repo.events_needing_completion(self.db, user.id, APPT_EVENT_TYPES, to_storage(now))

    # Validation

    def _require_write(self, event: CalendarEvent, user: StaffUser) -> None:
        if not user_has_write_access(event, user):
            logger.warning(f"⚠️ User {user.id} denied write access to calendar event {event.id}")
            raise AccessDenied("You do not have write access to this calendar event")

    def _build_fields(self, values: dict[str, Any], tz: str) -> dict[str, Any]:
        """Check kind-specific rules and convert times to stored UTC"""
        type_of = values.get("type_of")
        appointment = is_appointment_type(type_of)

        if not type_of:
            raise ValidationError("Event type is required")
        if values.get("is_public") is None:
            raise ValidationError("Public flag is required")
        if not values.get("name"):
            raise ValidationError("Event name is required")
        if not values.get("start_at"):
            raise ValidationError("Start date is required")

        start = localize(values["start_at"], tz)
        end = localize(values["end_at"], tz) if values.get("end_at") else None

        if values.get("all_day"):
            if appointment:
                raise ValidationError(f"{type_of_display(type_of)} events cannot be all day")
            start = all_day_bounds(start.date(), tz)[0]
            end = all_day_bounds((end or start).date(), tz)[1]
        elif end is None:
            raise ValidationError("End date is required")

        if start > end:
            raise ValidationError("Start date must be before end date")

        if appointment:
            if not values.get("appt_user_id"):
                raise ValidationError("An assigned staff user is required for appointments")
            if not self.directory.resolve_user(values["appt_user_id"]):
                raise NotFoundError(f"Staff user {values['appt_user_id']} not found")

            has_internal = values.get("recipient_type") and values.get("recipient_id")
            if not has_internal and not values.get("external_rcpt_data"):
                raise ValidationError("A recipient is required for appointments")
            if has_internal:
                if values["recipient_type"] not in RECIPIENT_TYPES or values["recipient_type"] == "EXTERNAL":
                    raise ValidationError(f"Invalid recipient type: {values['recipient_type']}")
                if not self.directory.resolve_entity(values["recipient_type"], values["recipient_id"]):
                    raise NotFoundError("Recipient not found")
        else:
            if values.get("appointment_status"):
                raise ValidationError(f"{type_of_display(type_of)} events do not have an appointment status")
            values["appt_user_id"] = None

        values["start_at"] = to_storage(start)
        values["end_at"] = to_storage(end)
        values["all_day"] = bool(values.get("all_day"))
        return values

    # Mutations

    async def create(self, data: CalendarEventCreate, actor: StaffUser) -> MutationResult:
        """Create an event with its roster and action, then send notices"""
        logger.info(f"📥 Creating {data.typeOf} calendar event for user_id: {actor.id}")
        tz = self.time_zone_for(data.parentOrganizationId, data.organizationId)

        values = {column: getattr(data, field) for field, column in _FIELD_MAP.items()}
        values["parent_organization_id"] = data.parentOrganizationId
        values["external_rcpt_data"] = data.externalRecipient.to_snapshot() if data.externalRecipient else None
        if values["external_rcpt_data"]:
            values["recipient_type"] = None
            values["recipient_id"] = None
        fields = self._build_fields(values, tz)
        if fields.get("appointment_status"):
            fields["appt_status_updated_at"] = to_storage(datetime.now(timezone.utc))

        roster = ensure_assigned_user(data.roster_entries(), fields.get("appt_user_id"))
        staff_actor = StaffActor(actor.id)

        try:
            event = self.repo.create_event(self.db, created_by=actor.id, **fields)
            apply_roster(self.db, event, roster, staff_actor)
            self.repo.upsert_action(self.db, event, data.action, staff_actor)
            self.db.commit()
            self.db.refresh(event)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Created calendar event {event.id} ({event.type_of})")

        actions_ran = False
        if event.is_appointment:
            actions_ran = await self.lifecycle.run_actions(event, EVENT_CREATION_TRIGGER)

        report = await self._notify(event, NotificationAction.CREATE, data.sendEmail, data.sendSms, data.smsScope, actor)
        return MutationResult(event=event, report=report, actions_ran=actions_ran)

    async def update(self, event_id: int, data: CalendarEventUpdate, actor: StaffUser) -> MutationResult:
        """
        Update an event. A changed start or end makes this a reschedule for notices.
        Roster and action are only touched when sent
        """
        event = self.get(event_id)
        self._require_write(event, actor)

        sent = data.model_fields_set
        values = {column: getattr(event, column) for column in _FIELD_MAP.values()}
        values["start_at"] = as_utc(event.start_at)
        values["end_at"] = as_utc(event.end_at)
        values["external_rcpt_data"] = event.external_rcpt_data
        for field, column in _FIELD_MAP.items():
            if field in sent:
                values[column] = getattr(data, field)
        if "externalRecipient" in sent:
            values["external_rcpt_data"] = data.externalRecipient.to_snapshot() if data.externalRecipient else None
        if values["external_rcpt_data"] and "recipientType" not in sent:
            values["recipient_type"] = None
            values["recipient_id"] = None
        if not is_appointment_type(values["type_of"]) and "appointmentStatus" not in sent:
            values["appointment_status"] = None

        organization_id = values["organization_id"]
        tz = self.time_zone_for(event.parent_organization_id, organization_id)
        fields = self._build_fields(values, tz)

        old_start, old_end = event.start_at, event.end_at
        old_status = event.appointment_status
        new_status = fields.pop("appointment_status")
        status_changed = new_status != old_status
        staff_actor = StaffActor(actor.id)

        try:
            self.repo.update_event(self.db, event, **fields)
            if status_changed and event.is_appointment:
                self.lifecycle.apply_status(event, new_status)
            elif status_changed:
                event.appointment_status = None
                event.appt_status_updated_at = None
            if data.roster_given or fields.get("appt_user_id"):
                current = [RosterEntry.from_row(r) for r in event.active_recipients]
                desired = data.roster_entries() if data.roster_given else current
                apply_roster(self.db, event, ensure_assigned_user(desired, fields.get("appt_user_id")), staff_actor)
            if "action" in sent:
                self.repo.upsert_action(self.db, event, data.action, staff_actor)
            self.db.commit()
            self.db.refresh(event)
        except Exception:
            self.db.rollback()
            raise

        rescheduled = event.start_at != old_start or event.end_at != old_end
        logger.info(f"✅ Updated calendar event {event.id}{' (rescheduled)' if rescheduled else ''}")

        actions_ran = False
        if status_changed and new_status and event.is_appointment:
            actions_ran = await self.lifecycle.run_actions(event, status_trigger_key(new_status))

        action = NotificationAction.RESCHEDULE if rescheduled else NotificationAction.UPDATE
        report = await self._notify(event, action, data.sendEmail, data.sendSms, data.smsScope, actor)
        return MutationResult(event=event, report=report, actions_ran=actions_ran)

    async def set_status(
        self, event_id: int, status: Optional[str], actor: StaffUser, now: Optional[datetime] = None
    ) -> MutationResult:
        """Set the appointment status and run the matching action trigger"""
        event = self.get(event_id)
        self._require_write(event, actor)

        try:
            self.lifecycle.apply_status(event, status, now)
            self.db.commit()
            self.db.refresh(event)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Calendar event {event.id} appointment status set to {status or 'unset'}")
        actions_ran = False
        if status:
            actions_ran = await self.lifecycle.run_actions(event, status_trigger_key(status))
        return MutationResult(event=event, actions_ran=actions_ran)

    async def delete(
        self,
        event_id: int,
        actor: StaffUser,
        send_email: bool = True,
        send_sms: bool = False,
        sms_scope: str = SmsScope.RECIPIENT,
    ) -> MutationResult:
        """Soft delete an event, emailing cancel notices unless told not to"""
        event = self.get(event_id)
        self._require_write(event, actor)

        try:
            self.repo.soft_delete_event(self.db, event, StaffActor(actor.id))
            self.db.commit()
            self.db.refresh(event)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Calendar event {event.id} deleted by user {actor.id}")
        report = await self._cancel_notices(event, send_email, send_sms, sms_scope, actor)
        return MutationResult(event=event, report=report)

    async def cancel_by_recipient(self, token: str) -> MutationResult:
        """Recipient self-cancel through the link in their notice"""
        event_id = decode_event_token(token)
        if event_id is None:
            raise NotFoundError("Calendar event not found")
        event = self.get(event_id)
        if not event.is_appointment or not event.has_recipient:
            raise ValidationError("Only appointments can be canceled by their recipient")

        try:
            self.repo.soft_delete_event(self.db, event, RECIPIENT_ACTOR)
            self.db.commit()
            self.db.refresh(event)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Calendar event {event.id} canceled by its recipient")
        report = await self._cancel_notices(event, True, True, SmsScope.ALL, None)
        return MutationResult(event=event, report=report)

    # Notices

    async def _cancel_notices(self, event, send_email, send_sms, sms_scope, actor) -> Optional[DeliveryReport]:
        report = None
        if send_email or send_sms:
            report = await self._notify(event, NotificationAction.CANCEL, send_email, send_sms, sms_scope, actor)
        if self.notifier:
            await self.notifier.discard_attachment(event, report.attachment if report else None)
        return report

    async def _notify(
        self, event, action, send_email, send_sms, sms_scope, actor: Optional[StaffUser]
    ) -> Optional[DeliveryReport]:
        """Best effort fan-out after commit, never raises"""
        if not self.notifier:
            return None
        try:
            return await self.notifier.notify(
                event, action, send_email=send_email, send_sms=send_sms, sms_scope=sms_scope, actor=actor
            )
        except Exception as e:
            logger.error(f"❌ Calendar event {event.id} {action.value} notices failed: {e}", exc_info=True)
            return None

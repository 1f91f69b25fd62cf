"""
Calendar Event Notification Service
Builds the email, SMS and .ics attachment for an event action and fans them out per recipient.
Every send is independent: a failure is logged and recorded, never raised
"""

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import DEFAULT_TIME_ZONE, ICS_GENERATION_TIMEOUT, SCHEDULING_URL
from ..directory import (
    Directory,
    Organization,
    ParentOrganization,
    Recipient,
    StaffUser,
    resolve_event_recipient,
)
from ..domain.calendar_events.constants import type_of_display
from ..domain.calendar_events.roster import RosterEntry, involved_user_ids
from ..domain.calendar_events.time_ranges import date_time_display, sms_date, sms_time
from ..exceptions import TransientDependencyError
from ..models import CalendarEvent
from ..shared.validators import validate_us_phone
from .ics_service import generate_ics, ics_filename
from .payloads import (
    AttachmentRef,
    AttachmentStore,
    DeliveryResult,
    EmailPayload,
    EmailTransport,
    SmsPayload,
    SmsTransport,
)

logger = logging.getLogger(__name__)


class NotificationAction(str, Enum):
    CREATE = "create"
    RESCHEDULE = "reschedule"
    UPDATE = "update"
    CANCEL = "cancel"


class SmsScope(str, Enum):
    RECIPIENT = "RECIPIENT"
    ALL = "ALL"


RECIPIENT_SUBJECT_SUFFIX = {
    NotificationAction.CREATE: "",
    NotificationAction.RESCHEDULE: " Rescheduled",
    NotificationAction.UPDATE: " Updated",
    NotificationAction.CANCEL: " Canceled",
}

STAFF_SUBJECTS = {
    NotificationAction.CREATE: "New Calendar Event",
    NotificationAction.RESCHEDULE: "Calendar Event Rescheduled",
    NotificationAction.UPDATE: "Calendar Event Updated",
    NotificationAction.CANCEL: "Calendar Event Canceled",
}

STAFF_INTROS = {
    NotificationAction.CREATE: "A new calendar event has been scheduled",
    NotificationAction.RESCHEDULE: "Calendar event has been rescheduled",
    NotificationAction.UPDATE: "Calendar event has been updated",
    NotificationAction.CANCEL: "Calendar event has been canceled",
}

SMS_VERBS = {
    NotificationAction.CREATE: "scheduled",
    NotificationAction.RESCHEDULE: "updated",
    NotificationAction.UPDATE: "updated",
    NotificationAction.CANCEL: "canceled",
}

# Shared staff body, {r_fname} and {dt_display} are filled in per recipient
STAFF_EMAIL_TEMPLATE = "Hi {r_fname},\n{intro}.\n\n{details}"


def encode_event_token(event_id: int) -> str:
    return base64.urlsafe_b64encode(str(event_id).encode()).decode().rstrip("=")


def decode_event_token(token: str) -> Optional[int]:
    """Event id from a reschedule/cancel link token, None when malformed"""
    try:
        padded = token + "=" * (-len(token) % 4)
        return int(base64.urlsafe_b64decode(padded.encode()).decode())
    except (ValueError, UnicodeDecodeError):
        return None


def reschedule_url(event: CalendarEvent) -> str:
    return f"{SCHEDULING_URL}/reschedule/{encode_event_token(event.id)}"


def cancel_url(event: CalendarEvent) -> str:
    return f"{SCHEDULING_URL}/cancel/{encode_event_token(event.id)}"


@dataclass
class DeliveryAttempt:
    channel: str
    recipient: str
    destination: Optional[str]
    result: Optional[DeliveryResult] = None
    skipped_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.result and self.result.success)


@dataclass
class DeliveryReport:
    """Outcome of one fan-out, returned to the caller instead of raising"""

    event_id: int
    action: NotificationAction
    attachment: Optional[AttachmentRef] = None
    attempts: list[DeliveryAttempt] = field(default_factory=list)

    def _count(self, channel: str) -> int:
        return sum(1 for a in self.attempts if a.channel == channel and a.succeeded)

    @property
    def emails_sent(self) -> int:
        return self._count("email")

    @property
    def texts_sent(self) -> int:
        return self._count("sms")

    @property
    def failures(self) -> list[DeliveryAttempt]:
        return [a for a in self.attempts if a.result is not None and not a.result.success]

    @property
    def skipped(self) -> list[DeliveryAttempt]:
        return [a for a in self.attempts if a.skipped_reason]


@dataclass
class NoticeContext:
    """Directory lookups for one fan-out, resolved once up front"""

    event_tz: str
    organization: Optional[Organization]
    parent_organization: Optional[ParentOrganization]
    creator: Optional[StaffUser]
    staff_user: Optional[StaffUser]
    actor: Optional[StaffUser]
    recipient: Optional[Recipient]
    staff_ids: list[int]
    who: list[str] = field(default_factory=list)

    @property
    def staff_name(self) -> str:
        person = self.staff_user or self.creator
        return person.full_name if person else "Staff"

    @property
    def organization_name(self) -> str:
        if self.organization:
            return self.organization.name
        return self.parent_organization.name if self.parent_organization else ""

    @property
    def actor_name(self) -> str:
        person = self.actor or self.creator
        return person.full_name if person else "Staff"


def event_time_zone(
    organization: Optional[Organization],
    parent_organization: Optional[ParentOrganization],
    default_tz: str = DEFAULT_TIME_ZONE,
) -> str:
    """Campus zone, then parent organization zone, then the default"""
    if organization and organization.timezone:
        return organization.timezone
    if parent_organization and parent_organization.timezone:
        return parent_organization.timezone
    return default_tz


def _label(recipient: Recipient) -> str:
    return f"[{recipient.entity_type}] {recipient.full_name}"


def _staff_label(user: StaffUser) -> str:
    return f"[USER] {user.full_name}"


class NotificationComposer:
    """Composes and dispatches calendar event notices"""

    def __init__(
        self,
        directory: Directory,
        email_transport: Optional[EmailTransport] = None,
        sms_transport: Optional[SmsTransport] = None,
        attachment_store: Optional[AttachmentStore] = None,
        attachment_timeout: float = ICS_GENERATION_TIMEOUT,
        default_tz: str = DEFAULT_TIME_ZONE,
    ):
        self.directory = directory
        self.email_transport = email_transport
        self.sms_transport = sms_transport
        self.attachment_store = attachment_store
        self.attachment_timeout = attachment_timeout
        self.default_tz = default_tz

    async def notify(
        self,
        event: CalendarEvent,
        action: NotificationAction,
        send_email: bool = True,
        send_sms: bool = False,
        sms_scope: SmsScope = SmsScope.RECIPIENT,
        actor: Optional[StaffUser] = None,
    ) -> DeliveryReport:
        """Fan out notices for a committed event action"""
        action = NotificationAction(action)
        report = DeliveryReport(event_id=event.id, action=action)

        try:
            context = self.build_context(event, actor)
        except Exception as e:
            logger.error(f"❌ Calendar event {event.id} notices not sent, lookup failed: {e}", exc_info=True)
            return report

        report.attachment = await self.prepare_attachment(event, action, context)

        if send_email:
            await self._send_recipient_email(report, event, action, context)
            await self._send_staff_emails(report, event, action, context)

        if send_sms and event.is_appointment:
            await self._send_recipient_sms(report, event, action, context)
            if SmsScope(sms_scope) == SmsScope.ALL:
                await self._send_staff_sms(report, event, action, context)

        logger.info(
            f"📨 Calendar event {event.id} {action.value} notices: {report.emails_sent} email(s), "
            f"{report.texts_sent} text(s), {len(report.failures)} failure(s)"
        )
        return report

    def build_context(self, event: CalendarEvent, actor: Optional[StaffUser] = None) -> NoticeContext:
        directory = self.directory
        organization = directory.resolve_organization(event.organization_id) if event.organization_id else None
        parent_organization = directory.resolve_parent_organization(event.parent_organization_id)
        roster = [RosterEntry.from_row(row) for row in event.active_recipients]
        recipient = resolve_event_recipient(event, directory)

        return NoticeContext(
            event_tz=event_time_zone(organization, parent_organization, self.default_tz),
            organization=organization,
            parent_organization=parent_organization,
            creator=directory.resolve_user(event.created_by) if event.created_by else None,
            staff_user=directory.resolve_user(event.appt_user_id) if event.appt_user_id else None,
            actor=actor,
            recipient=recipient,
            staff_ids=involved_user_ids(roster, directory, event.organization_id),
            who=self.who_names(recipient, roster),
        )

    def who_names(self, recipient: Optional[Recipient], roster: list[RosterEntry]) -> list[str]:
        """The recipient, then every USER and DEPARTMENT on the roster that is not view-only"""
        names = [recipient.full_name] if recipient else []
        for entry in roster:
            if entry.view_only:
                continue
            if entry.entity_type == "USER":
                entity = self.directory.resolve_user(entry.entity_id)
                name = entity.full_name if entity else None
            else:
                entity = self.directory.resolve_department(entry.entity_id)
                name = entity.name if entity else None
            if name:
                names.append(name)
        return names

    # Attachment

    async def prepare_attachment(
        self, event: CalendarEvent, action: NotificationAction, context: NoticeContext
    ) -> Optional[AttachmentRef]:
        """
        Regenerate and store the .ics for every action except cancel, which reuses the stored one.
        Store calls run in a worker thread bounded by attachment_timeout
        """
        if self.attachment_store is None:
            return None

        try:
            if action == NotificationAction.CANCEL:
                call = asyncio.to_thread(self.attachment_store.get, event.id)
            else:
                content = generate_ics(event, context.creator, context.organization, self.default_tz)
                metadata = {"event_id": event.id, "filename": ics_filename(event), "content_type": "text/calendar"}
                call = asyncio.to_thread(self.attachment_store.put, content, metadata)
            return await asyncio.wait_for(call, timeout=self.attachment_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"⏱️ Calendar attachment for event {event.id} timed out after {self.attachment_timeout}s, "
                f"sending notices without it"
            )
        except TransientDependencyError as e:
            logger.error(f"❌ Calendar attachment for event {event.id} failed [{e.error_code}]: {e.message}")
        except Exception as e:
            logger.error(f"❌ Calendar attachment for event {event.id} failed: {e}", exc_info=True)
        return None

    async def discard_attachment(self, event: CalendarEvent, ref: Optional[AttachmentRef] = None) -> None:
        """Remove a canceled event's stored attachment"""
        if self.attachment_store is None:
            return
        try:
            if ref is None:
                ref = await asyncio.wait_for(
                    asyncio.to_thread(self.attachment_store.get, event.id), timeout=self.attachment_timeout
                )
            if ref is not None:
                await asyncio.wait_for(
                    asyncio.to_thread(self.attachment_store.delete, ref), timeout=self.attachment_timeout
                )
        except asyncio.TimeoutError:
            logger.error(f"⏱️ Removing calendar attachment for event {event.id} timed out")
        except Exception as e:
            logger.error(f"❌ Removing calendar attachment for event {event.id} failed: {e}")

    # Email

    def recipient_email(
        self, event: CalendarEvent, action: NotificationAction, context: NoticeContext, attachment=None
    ) -> Optional[EmailPayload]:
        recipient = context.recipient
        if not recipient or not recipient.email:
            return None

        when = date_time_display(event, recipient.timezone or context.event_tz)
        lines = [f"Event Name: {event.name}", f"When: {when}"]
        if event.location:
            lines.append(f"Where: {event.location}")
        lines.append(f"Who: {', '.join(context.who)}")
        if event.description:
            lines.append(f"Description: {event.description}")

        links = []
        if recipient.is_external and action in (NotificationAction.CREATE, NotificationAction.RESCHEDULE):
            links = [("Reschedule", reschedule_url(event)), ("Cancel", cancel_url(event))]
            lines.append("")
            lines.append(f"Need to reschedule? {links[0][1]}")
            lines.append(f"Need to cancel? {links[1][1]}")

        subject = f"Appointment with {context.staff_name}{RECIPIENT_SUBJECT_SUFFIX[action]} - {when}"
        return EmailPayload(
            to=recipient.email,
            subject=subject,
            body="\n".join(lines),
            recipient_name=recipient.full_name,
            heading=f"Appointment with {context.staff_name}{RECIPIENT_SUBJECT_SUFFIX[action]}",
            organization_name=context.organization_name,
            canceled=action == NotificationAction.CANCEL,
            links=links,
            attachments=[attachment] if attachment else [],
        )

    def staff_email_template(self, event: CalendarEvent, action: NotificationAction, context: NoticeContext) -> str:
        """Body shared by every staff recipient, still holding {r_fname} and {dt_display}"""
        if event.organization_id:
            campus = context.organization.name if context.organization else "N/A"
        elif context.recipient and context.recipient.is_external:
            campus = "N/A"
        else:
            campus = "All Campuses"

        details = [f"Event Name: {event.name}", f"Campus: {campus}", "When: {dt_display}"]
        if event.location:
            details.append(f"Where: {event.location}")
        if context.who:
            details.append(f"Who: {', '.join(context.who)}")
        if event.description:
            details.append(f"Description: {event.description}")

        return (
            STAFF_EMAIL_TEMPLATE.replace("{intro}", STAFF_INTROS[action])
            .replace("{details}", "\n".join(details))
        )

    async def _send_recipient_email(self, report, event, action, context) -> None:
        payload = self.recipient_email(event, action, context, report.attachment)
        if payload is None:
            if context.recipient:
                self._skip(report, "email", _label(context.recipient), None, "no email address")
            return
        await self._deliver_email(report, payload, _label(context.recipient))

    async def _send_staff_emails(self, report, event, action, context) -> None:
        template = self.staff_email_template(event, action, context)
        parent_name = context.parent_organization.name if context.parent_organization else context.organization_name
        subject = f"{STAFF_SUBJECTS[action]} - {parent_name}"

        for user_id in context.staff_ids:
            user = self.directory.resolve_user(user_id)
            if not user:
                logger.warning(f"⚠️ Calendar event {event.id} staff notice skipped, unknown user {user_id}")
                continue
            if not user.email:
                self._skip(report, "email", _staff_label(user), None, "no email address")
                continue

            # Substitution per recipient, each in their own zone
            body = template.replace("{r_fname}", user.first_name).replace(
                "{dt_display}", date_time_display(event, user.timezone or context.event_tz)
            )
            payload = EmailPayload(
                to=user.email,
                subject=subject,
                body=body,
                recipient_name=user.full_name,
                heading=STAFF_SUBJECTS[action],
                organization_name=parent_name,
                canceled=action == NotificationAction.CANCEL,
                attachments=[report.attachment] if report.attachment else [],
            )
            await self._deliver_email(report, payload, _staff_label(user))

    async def _deliver_email(self, report: DeliveryReport, payload: EmailPayload, label: str) -> None:
        attempt = DeliveryAttempt(channel="email", recipient=label, destination=payload.to)
        report.attempts.append(attempt)
        if self.email_transport is None:
            attempt.skipped_reason = "email transport not configured"
            return
        attempt.result = await self._guarded(self.email_transport.send_email(payload))
        if not attempt.result.success:
            logger.error(
                f"Calendar Event Notice Email Error - {label}, "
                f"Error Text: {attempt.result.error_text}, Error: {attempt.result.error_code}"
            )

    # SMS

    def textable_phone(self, phone: Optional[str], organization_id: Optional[int], do_not_text: bool = False):
        """(normalized phone, None) or (None, reason the destination is skipped)"""
        if not phone:
            return None, "no textable phone"
        if do_not_text:
            return None, "recipient is do-not-text"
        try:
            normalized = validate_us_phone(phone)
        except ValueError:
            return None, f"invalid phone {phone}"
        if self.directory.is_do_not_text(organization_id, normalized):
            return None, "phone is on the do-not-text list"
        return normalized, None

    def recipient_sms(self, event: CalendarEvent, action: NotificationAction, context: NoticeContext) -> str:
        tz = (context.recipient.timezone if context.recipient else None) or context.event_tz
        return (
            f"{type_of_display(event.type_of)} with {context.staff_name} from {context.organization_name} "
            f"has been {SMS_VERBS[action]} for {sms_time(event.start_at, tz)} on {sms_date(event.start_at, tz)}."
        )

    def staff_sms(
        self, event: CalendarEvent, action: NotificationAction, context: NoticeContext, user: StaffUser
    ) -> str:
        tz = user.timezone or context.event_tz
        when = f"{sms_time(event.start_at, tz)} on {sms_date(event.start_at, tz)}"
        org_name = context.organization_name

        if action == NotificationAction.CREATE:
            if user.id == event.appt_user_id:
                recipient_name = context.recipient.full_name if context.recipient else "a recipient"
                return f"{type_of_display(event.type_of)} has been scheduled with {recipient_name} from {org_name} for {when}."
            return (
                f'You have been included in calendar event "{event.name}" from {org_name} '
                f"by {context.actor_name} for {when}."
            )
        if action == NotificationAction.CANCEL:
            return f'Calendar event "{event.name}" at {org_name} for {when} has been canceled.'
        return f'Calendar event "{event.name}" at {org_name} has been updated: {when}.'

    async def _send_recipient_sms(self, report, event, action, context) -> None:
        recipient = context.recipient
        if not recipient:
            return
        phone, reason = self.textable_phone(recipient.textable_phone, event.organization_id, recipient.do_not_text)
        if reason:
            self._skip(report, "sms", _label(recipient), recipient.textable_phone, reason)
            return
        payload = SmsPayload(to=phone, body=self.recipient_sms(event, action, context), recipient_name=recipient.full_name)
        await self._deliver_sms(report, payload, _label(recipient))

    async def _send_staff_sms(self, report, event, action, context) -> None:
        for user_id in context.staff_ids:
            user = self.directory.resolve_user(user_id)
            if not user:
                continue
            phone, reason = self.textable_phone(user.textable_phone, event.organization_id)
            if reason:
                self._skip(report, "sms", _staff_label(user), user.textable_phone, reason)
                continue
            payload = SmsPayload(to=phone, body=self.staff_sms(event, action, context, user), recipient_name=user.full_name)
            await self._deliver_sms(report, payload, _staff_label(user))

    async def _deliver_sms(self, report: DeliveryReport, payload: SmsPayload, label: str) -> None:
        attempt = DeliveryAttempt(channel="sms", recipient=label, destination=payload.to)
        report.attempts.append(attempt)
        if self.sms_transport is None:
            attempt.skipped_reason = "sms transport not configured"
            return
        attempt.result = await self._guarded(self.sms_transport.send_sms(payload))
        if not attempt.result.success:
            logger.error(
                f"Calendar Event Notice Text Error - {label}, "
                f"Error Text: {attempt.result.error_text}, Error: {attempt.result.error_code}"
            )

    # Shared

    @staticmethod
    async def _guarded(send) -> DeliveryResult:
        """Await one transport call, turning any raised error into a failed result"""
        try:
            return await send
        except TransientDependencyError as e:
            return DeliveryResult.failed(e.message, e.error_code)
        except Exception as e:
            return DeliveryResult.failed(str(e), type(e).__name__)

    @staticmethod
    def _skip(report: DeliveryReport, channel: str, label: str, destination: Optional[str], reason: str) -> None:
        logger.info(f"⚠️ Calendar event {report.event_id} {channel} to {label} skipped: {reason}")
        report.attempts.append(
            DeliveryAttempt(channel=channel, recipient=label, destination=destination, skipped_reason=reason)
        )

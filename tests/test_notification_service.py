"""Tests for calendar event notice composition and fan-out.

Every send is independent: a failing destination is recorded on the report and
never stops the others.
"""

from __future__ import annotations

import pytest

from campus_calendar.config import SCHEDULING_URL
from campus_calendar.directory import Recipient
from campus_calendar.domain.calendar_events.roster import RosterEntry
from campus_calendar.services.notification_service import (
    NotificationAction,
    NotificationComposer,
    SmsScope,
    decode_event_token,
    encode_event_token,
)
from tests.support import PACIFIC, SlowAttachmentStore

pytestmark = pytest.mark.unit

JAMIE_EMAIL = "jamie@student.westfield.edu"
JAMIE_PHONE = "+15553010100"


@pytest.fixture
def external_appointment(make_event):
    return make_event(
        name="Campus Visit",
        type_of="campus_tour",
        appt_user_id=2,
        external_rcpt_data={
            "first_name": "Pat",
            "last_name": "Outside",
            "email": "pat@example.com",
            "phone": "+15559990000",
            "time_zone": PACIFIC,
        },
    )


class TestEmailFanOut:
    async def test_recipient_and_staff_emails(self, notifier, email_transport, appointment):
        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=True)

        assert report.emails_sent == 3
        assert {p.to for p in email_transport.sent} == {
            JAMIE_EMAIL,
            "sam@westfield.edu",
            "riley@westfield.edu",
        }

    async def test_one_failure_does_not_stop_the_rest(self, notifier, email_transport, appointment):
        email_transport.fail_for.add(JAMIE_EMAIL)
        email_transport.raise_for.add("sam@westfield.edu")

        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=True)

        assert report.emails_sent == 1
        assert email_transport.to("riley@westfield.edu")
        failed = {a.recipient: a.result for a in report.failures}
        assert failed["[STUDENT] Jamie Student"].error_code == "550"
        assert failed["[USER] Sam Rivera"].error_code == "RuntimeError"

    async def test_recipient_email_in_recipient_zone(self, notifier, email_transport, appointment):
        await notifier.notify(appointment, NotificationAction.CREATE, send_email=True)

        payload = email_transport.to(JAMIE_EMAIL)[0]
        assert payload.subject == "Appointment with Sam Rivera - Thursday, Jul 16 2026, 3:00PM-4:00PM CDT"
        assert "Event Name: Advising Call" in payload.body
        assert "Who: Jamie Student, Sam Rivera, Riley Chen" in payload.body

    async def test_staff_bodies_are_personalized(self, notifier, email_transport, appointment):
        await notifier.notify(appointment, NotificationAction.RESCHEDULE, send_email=True)

        riley = email_transport.to("riley@westfield.edu")[0]
        sam = email_transport.to("sam@westfield.edu")[0]
        assert riley.body.startswith("Hi Riley,\nCalendar event has been rescheduled.")
        assert "When: Thursday, Jul 16 2026, 4:00PM-5:00PM EDT" in riley.body
        assert "When: Thursday, Jul 16 2026, 1:00PM-2:00PM PDT" in sam.body
        assert "Campus: North Campus" in sam.body
        assert "Who: Jamie Student, Sam Rivera, Riley Chen" in sam.body
        assert riley.subject == "Calendar Event Rescheduled - Westfield College"

    async def test_who_lists_departments_and_skips_view_only(self, notifier, email_transport, make_event):
        event = make_event(
            roster=(
                RosterEntry("USER", 4),
                RosterEntry("DEPARTMENT", 5),
                RosterEntry("USER", 1, view_only=True),
            )
        )

        await notifier.notify(event, NotificationAction.CREATE, send_email=True)

        body = email_transport.to("nora@westfield.edu")[0].body
        assert body.startswith("Hi Nora,\nA new calendar event has been scheduled.")
        assert "Who: Nora Pike, Admissions" in body

    async def test_campus_wide_event(self, notifier, email_transport, make_event):
        event = make_event(name="All Hands", organization_id=None, roster=(RosterEntry("USER", 4),))

        await notifier.notify(event, NotificationAction.CREATE, send_email=True)

        assert "Campus: All Campuses" in email_transport.to("nora@westfield.edu")[0].body

    async def test_view_only_members_get_nothing(self, notifier, email_transport, make_event):
        event = make_event(roster=(RosterEntry("USER", 4, view_only=True),))

        report = await notifier.notify(event, NotificationAction.CREATE, send_email=True)

        assert report.attempts == []


class TestExternalRecipientLinks:
    async def test_create_includes_reschedule_and_cancel_links(
        self, notifier, email_transport, external_appointment
    ):
        await notifier.notify(external_appointment, NotificationAction.CREATE, send_email=True)

        payload = email_transport.to("pat@example.com")[0]
        token = encode_event_token(external_appointment.id)
        assert f"Need to reschedule? {SCHEDULING_URL}/reschedule/{token}" in payload.body
        assert f"Need to cancel? {SCHEDULING_URL}/cancel/{token}" in payload.body
        assert [label for label, _ in payload.links] == ["Reschedule", "Cancel"]

    async def test_update_has_no_links(self, notifier, email_transport, external_appointment):
        await notifier.notify(external_appointment, NotificationAction.UPDATE, send_email=True)

        payload = email_transport.to("pat@example.com")[0]
        assert payload.links == []
        assert "Need to cancel?" not in payload.body

    def test_token_decodes_to_event_id(self):
        assert decode_event_token(encode_event_token(4821)) == 4821
        assert decode_event_token("not a token!") is None


class TestSms:
    async def test_recipient_scope(self, notifier, sms_transport, appointment):
        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=False, send_sms=True)

        assert report.texts_sent == 1
        assert sms_transport.to(JAMIE_PHONE)[0].body == (
            "Phone Appointment with Sam Rivera from North Campus has been scheduled "
            "for 3:00 PM CDT on Thursday July 16, 2026."
        )

    async def test_all_scope_texts_staff(self, notifier, sms_transport, appointment):
        report = await notifier.notify(
            appointment, NotificationAction.CREATE, send_email=False, send_sms=True, sms_scope=SmsScope.ALL
        )

        assert report.texts_sent == 3
        assert sms_transport.to("+15552010002")[0].body == (
            "Phone Appointment has been scheduled with Jamie Student from North Campus "
            "for 1:00 PM PDT on Thursday July 16, 2026."
        )
        assert sms_transport.to("+15552010003")[0].body == (
            'You have been included in calendar event "Advising Call" from North Campus '
            "by Ada Admin for 4:00 PM EDT on Thursday July 16, 2026."
        )

    async def test_cancel_wording(self, notifier, sms_transport, appointment):
        await notifier.notify(appointment, NotificationAction.CANCEL, send_email=False, send_sms=True)

        assert "has been canceled for" in sms_transport.to(JAMIE_PHONE)[0].body

    async def test_do_not_text_list_is_honored(self, notifier, directory, sms_transport, appointment):
        directory.block_texts(10, JAMIE_PHONE)

        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=False, send_sms=True)

        assert report.texts_sent == 0
        assert sms_transport.sent == []
        assert report.skipped[0].skipped_reason == "phone is on the do-not-text list"

    async def test_recipient_do_not_text_flag(self, notifier, directory, sms_transport, appointment):
        directory.add_entity(
            Recipient(entity_type="STUDENT", id=100, full_name="Jamie Student", textable_phone=JAMIE_PHONE, do_not_text=True)
        )

        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=False, send_sms=True)

        assert sms_transport.sent == []
        assert report.skipped[0].skipped_reason == "recipient is do-not-text"

    async def test_meetings_are_never_texted(self, notifier, sms_transport, make_event):
        event = make_event(roster=(RosterEntry("USER", 2),))

        await notifier.notify(event, NotificationAction.CREATE, send_sms=True, sms_scope=SmsScope.ALL)

        assert sms_transport.sent == []

    def test_textable_phone(self, notifier):
        assert notifier.textable_phone("(555) 301-0100", 10) == (JAMIE_PHONE, None)
        assert notifier.textable_phone(None, 10) == (None, "no textable phone")
        assert notifier.textable_phone("12", 10) == (None, "invalid phone 12")


class TestAttachments:
    async def test_ics_attached_to_every_email(self, notifier, email_transport, appointment):
        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=True)

        assert report.attachment.filename == f"advising-call-{appointment.id}.ics"
        for payload in email_transport.sent:
            assert payload.attachments[0].content.startswith(b"BEGIN:VCALENDAR")

    async def test_cancel_reuses_stored_attachment(self, notifier, attachment_store, appointment):
        created = await notifier.notify(appointment, NotificationAction.CREATE, send_email=True)
        appointment.name = "Renamed After Send"

        canceled = await notifier.notify(appointment, NotificationAction.CANCEL, send_email=True)

        assert canceled.attachment.key == created.attachment.key
        assert canceled.attachment.content == created.attachment.content

    async def test_slow_store_times_out_and_notices_still_go(
        self, directory, email_transport, sms_transport, appointment
    ):
        composer = NotificationComposer(
            directory,
            email_transport=email_transport,
            sms_transport=sms_transport,
            attachment_store=SlowAttachmentStore(delay=0.5),
            attachment_timeout=0.05,
        )

        report = await composer.notify(appointment, NotificationAction.CREATE, send_email=True)

        assert report.attachment is None
        assert report.emails_sent == 3
        assert all(p.attachments == [] for p in email_transport.sent)

    async def test_discard_removes_stored_attachment(self, notifier, attachment_store, appointment):
        await notifier.notify(appointment, NotificationAction.CREATE, send_email=False)
        assert attachment_store.get(appointment.id) is not None

        await notifier.discard_attachment(appointment)

        assert attachment_store.get(appointment.id) is None


class TestDegradedCollaborators:
    async def test_missing_transports_are_recorded_as_skipped(self, directory, appointment):
        composer = NotificationComposer(directory)

        report = await composer.notify(appointment, NotificationAction.CREATE, send_email=True, send_sms=True)

        assert report.emails_sent == 0
        assert report.failures == []
        assert {a.skipped_reason for a in report.attempts} == {
            "email transport not configured",
            "sms transport not configured",
        }

    async def test_directory_failure_returns_empty_report(self, notifier, directory, appointment, monkeypatch):
        def broken(_organization_id):
            raise ConnectionError("directory down")

        monkeypatch.setattr(directory, "resolve_organization", broken)

        report = await notifier.notify(appointment, NotificationAction.CREATE, send_email=True)

        assert report.attempts == []

"""Shared fixtures for the calendar event test suite.

Covers:
- In-memory SQLite session with the calendar tables created
- A seeded directory (parent organization, two campuses, a department, staff and recipients)
- Fake email/SMS transports, attachment store and action executor
- Factories for events and a fully wired CalendarEventService
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campus_calendar.database import Base
from campus_calendar.directory import (
    Department,
    InMemoryDirectory,
    Organization,
    ParentOrganization,
    Recipient,
    StaffUser,
    UsFederalHolidayCalendar,
)
from campus_calendar.domain.calendar_events.lifecycle import AppointmentLifecycle
from campus_calendar.domain.calendar_events.roster import RosterEntry
from campus_calendar.domain.calendar_events.service import CalendarEventService
from campus_calendar.models import CalendarEvent, CalendarEventAction, CalendarEventRecipient
from campus_calendar.services.attachment_storage import InMemoryAttachmentStore
from campus_calendar.services.notification_service import NotificationComposer
from tests.support import (
    CENTRAL,
    EASTERN,
    PACIFIC,
    FakeEmailTransport,
    FakeSmsTransport,
    RecordingActionExecutor,
    stored,
)

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

ADMIN = StaffUser(
    id=1,
    first_name="Ada",
    last_name="Admin",
    email="ada@westfield.edu",
    timezone=PACIFIC,
    is_parent_admin=True,
)
SAM = StaffUser(
    id=2,
    first_name="Sam",
    last_name="Rivera",
    email="sam@westfield.edu",
    textable_phone="+15552010002",
    timezone=PACIFIC,
    organization_id=10,
    department_ids=(5,),
)
RILEY = StaffUser(
    id=3,
    first_name="Riley",
    last_name="Chen",
    email="riley@westfield.edu",
    textable_phone="+15552010003",
    timezone=EASTERN,
    organization_id=10,
    department_ids=(5,),
)
NORA = StaffUser(
    id=4,
    first_name="Nora",
    last_name="Pike",
    email="nora@westfield.edu",
    organization_id=10,
)
JAMIE = Recipient(
    entity_type="STUDENT",
    id=100,
    first_name="Jamie",
    last_name="Student",
    full_name="Jamie Student",
    email="jamie@student.westfield.edu",
    textable_phone="(555) 301-0100",
    timezone=CENTRAL,
    internal_id="S-100",
    label="Student",
    organization_id=10,
)
LEE = Recipient(
    entity_type="STUDENT_LEAD",
    id=200,
    first_name="Lee",
    last_name="Prospect",
    full_name="Lee Prospect",
    textable_phone="555-301-0200",
    label="Lead",
    organization_id=10,
)


@pytest.fixture
def directory() -> InMemoryDirectory:
    d = InMemoryDirectory()
    d.add_parent_organization(ParentOrganization(id=1, name="Westfield College", timezone=PACIFIC))
    d.add_organization(Organization(id=10, name="North Campus", short_code="NC", timezone=PACIFIC))
    d.add_organization(Organization(id=11, name="East Campus", short_code="EC", timezone=EASTERN))
    d.add_department(Department(id=5, name="Admissions"))
    for user in (ADMIN, SAM, RILEY, NORA):
        d.add_user(user)
    d.add_entity(JAMIE)
    d.add_entity(LEE)
    return d


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def email_transport() -> FakeEmailTransport:
    return FakeEmailTransport()


@pytest.fixture
def sms_transport() -> FakeSmsTransport:
    return FakeSmsTransport()


@pytest.fixture
def attachment_store() -> InMemoryAttachmentStore:
    return InMemoryAttachmentStore()


@pytest.fixture
def action_executor() -> RecordingActionExecutor:
    return RecordingActionExecutor()


@pytest.fixture(scope="session")
def holiday_calendar() -> UsFederalHolidayCalendar:
    return UsFederalHolidayCalendar()


@pytest.fixture
def notifier(directory, email_transport, sms_transport, attachment_store) -> NotificationComposer:
    return NotificationComposer(
        directory,
        email_transport=email_transport,
        sms_transport=sms_transport,
        attachment_store=attachment_store,
        attachment_timeout=2,
        default_tz=PACIFIC,
    )


@pytest.fixture
def service(db_session, directory, notifier, action_executor, holiday_calendar) -> CalendarEventService:
    return CalendarEventService(
        db_session,
        directory,
        notifier=notifier,
        lifecycle=AppointmentLifecycle(directory, action_executor),
        holiday_calendar=holiday_calendar,
    )


# ---------------------------------------------------------------------------
# Event factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_event(db_session):
    """Insert an event directly, bypassing the service rules."""

    def _make(
        name: str = "Team Sync",
        type_of: str = "meeting",
        start=None,
        end=None,
        roster: tuple[RosterEntry, ...] = (),
        action: dict | None = None,
        parent_organization_id: int = 1,
        organization_id: int | None = 10,
        created_by: int | None = 1,
        **fields,
    ) -> CalendarEvent:
        event = CalendarEvent(
            name=name,
            type_of=type_of,
            start_at=start or stored(2026, 7, 21, 10),
            end_at=end or stored(2026, 7, 21, 11),
            parent_organization_id=parent_organization_id,
            organization_id=organization_id,
            created_by=created_by,
            **fields,
        )
        for entry in roster:
            event.recipients.append(
                CalendarEventRecipient(
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    write_access=entry.write_access,
                    view_only=entry.view_only,
                )
            )
        if action:
            event.actions.append(CalendarEventAction(data=action))
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event

    return _make


@pytest.fixture
def appointment(make_event):
    """Phone appointment with Jamie, assigned to Sam, Riley on the roster."""
    return make_event(
        name="Advising Call",
        type_of="phone_appointment",
        start=stored(2026, 7, 16, 13),
        end=stored(2026, 7, 16, 14),
        recipient_type="STUDENT",
        recipient_id=100,
        appt_user_id=2,
        roster=(RosterEntry("USER", 2, write_access=True), RosterEntry("USER", 3)),
        action={"steps": ["send_followup"]},
    )

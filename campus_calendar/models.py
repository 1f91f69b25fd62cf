"""
Calendar Event Models
Events, their recipient rosters and linked action configuration
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .domain.calendar_events.constants import is_appointment_type


@dataclass(frozen=True)
class StaffActor:
    """A staff user acting on an event"""

    id: int


@dataclass(frozen=True)
class RecipientActor:
    """The event's own recipient acting on it (e.g. cancelling through the public link)"""


RECIPIENT_ACTOR = RecipientActor()

Actor = Union[StaffActor, RecipientActor]


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage format for every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a stored naive timestamp (or normalize an aware one)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> datetime:
    """Convert an aware instant to naive UTC for storage, naive values are assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SoftDeleteMixin:
    """deleted_by holds a staff id, deleted_by_recipient marks deletion by the event recipient"""

    deleted_at = Column(DateTime, nullable=True, index=True)
    deleted_by = Column(Integer, nullable=True)
    deleted_by_recipient = Column(Boolean, default=False, nullable=False)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def deleted_by_actor(self) -> Optional[Actor]:
        if self.deleted_at is None:
            return None
        if self.deleted_by_recipient:
            return RECIPIENT_ACTOR
        if self.deleted_by is not None:
            return StaffActor(self.deleted_by)
        return None

    def soft_delete(self, actor: Optional[Actor], when: Optional[datetime] = None) -> None:
        self.deleted_at = when or utcnow()
        if isinstance(actor, RecipientActor):
            self.deleted_by = None
            self.deleted_by_recipient = True
        else:
            self.deleted_by = actor.id if actor is not None else None
            self.deleted_by_recipient = False


class CalendarEvent(SoftDeleteMixin, Base):
    """A single-span calendar event, appointment kinds carry a recipient, staff user and status"""

    __tablename__ = "calendar_events"

    id = Column(Integer, primary_key=True, index=True)
    parent_organization_id = Column(Integer, nullable=False, index=True)
    organization_id = Column(Integer, nullable=True, index=True)  # None = all campuses

    type_of = Column(String(50), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    location = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)

    # UTC instants
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False, index=True)
    all_day = Column(Boolean, default=False, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)

    # Internal recipient (student, lead, ...) or an embedded snapshot for outside parties
    recipient_type = Column(String(50), nullable=True)
    recipient_id = Column(Integer, nullable=True)
    external_rcpt_data = Column(JSON, nullable=True)

    # Appointment kinds only
    appointment_status = Column(String(50), nullable=True)
    appt_status_updated_at = Column(DateTime, nullable=True)
    appt_user_id = Column(Integer, nullable=True, index=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    recipients = relationship(
        "CalendarEventRecipient", back_populates="calendar_event", order_by="CalendarEventRecipient.id"
    )
    actions = relationship(
        "CalendarEventAction", back_populates="calendar_event", order_by="CalendarEventAction.id"
    )

    @property
    def is_appointment(self) -> bool:
        return is_appointment_type(self.type_of)

    @property
    def start_at_utc(self) -> datetime:
        return as_utc(self.start_at)

    @property
    def end_at_utc(self) -> datetime:
        return as_utc(self.end_at)

    @property
    def has_recipient(self) -> bool:
        return bool((self.recipient_type and self.recipient_id) or self.external_rcpt_data)

    @property
    def active_recipients(self) -> list["CalendarEventRecipient"]:
        return [r for r in self.recipients if r.deleted_at is None]

    @property
    def active_action(self) -> Optional["CalendarEventAction"]:
        active = [a for a in self.actions if a.deleted_at is None]
        return active[-1] if active else None

    @property
    def data_id(self) -> str:
        """Reference string for linking activity entries back to the event"""
        return f"clevt{self.id}"

    def __repr__(self):
        return f"<CalendarEvent id={self.id} type_of={self.type_of!r} name={self.name!r}>"


class CalendarEventRecipient(SoftDeleteMixin, Base):
    """Roster entry granting a staff user or a department visibility of an event"""

    __tablename__ = "calendar_event_recipients"

    id = Column(Integer, primary_key=True, index=True)
    calendar_event_id = Column(Integer, ForeignKey("calendar_events.id"), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)  # USER, DEPARTMENT
    entity_id = Column(Integer, nullable=False)
    write_access = Column(Boolean, default=False, nullable=False)
    view_only = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    calendar_event = relationship("CalendarEvent", back_populates="recipients")

    @property
    def identity(self) -> tuple[str, int]:
        return (self.entity_type, self.entity_id)


class CalendarEventAction(SoftDeleteMixin, Base):
    """Current action configuration for an event, consumed by the action execution hook"""

    __tablename__ = "calendar_event_actions"

    id = Column(Integer, primary_key=True, index=True)
    calendar_event_id = Column(Integer, ForeignKey("calendar_events.id"), nullable=False, index=True)
    data = Column(JSON, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    calendar_event = relationship("CalendarEvent", back_populates="actions")

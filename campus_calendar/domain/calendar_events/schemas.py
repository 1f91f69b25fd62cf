"""Calendar event domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...shared.validators import validate_email, validate_time_zone, validate_us_phone
from .constants import APPOINTMENT_STATUSES, EVENT_TYPES, EXTERNAL_TYPES, RECIPIENT_TYPES, ROSTER_ENTITY_TYPES
from .roster import RosterEntry, parse_roster_string


class ExternalRecipientData(BaseModel):
    """Snapshot of an outside party stored on the event"""

    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    timeZone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("timeZone")
    @classmethod
    def validate_tz(cls, v):
        return validate_time_zone(v)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "first_name": self.firstName,
            "last_name": self.lastName or "",
            "email": self.email,
            "phone": self.phone,
            "time_zone": self.timeZone,
        }


class RosterEntryData(BaseModel):
    entityType: str
    entityId: int
    writeAccess: bool = False
    viewOnly: bool = False

    @field_validator("entityType")
    @classmethod
    def validate_entity_type(cls, v):
        v = v.upper()
        if v not in ROSTER_ENTITY_TYPES:
            raise ValueError(f"Recipient type must be one of {', '.join(ROSTER_ENTITY_TYPES)}")
        return v

    def to_entry(self) -> RosterEntry:
        return RosterEntry(self.entityType, self.entityId, self.writeAccess, self.viewOnly)


class RosterInput(BaseModel):
    """Roster as a typed list or the delimited form string, the list wins when both are sent"""

    roster: Optional[list[RosterEntryData]] = None
    rosterString: Optional[str] = None

    @property
    def roster_given(self) -> bool:
        return self.roster is not None or self.rosterString is not None

    def roster_entries(self) -> list[RosterEntry]:
        if self.roster is not None:
            return [r.to_entry() for r in self.roster]
        return parse_roster_string(self.rosterString)


def _check_type_of(v):
    if v is not None and v not in EVENT_TYPES + EXTERNAL_TYPES:
        raise ValueError(f"Invalid event type: {v}")
    return v


def _check_status(v):
    if v is not None and v not in APPOINTMENT_STATUSES:
        raise ValueError(f"Appointment status must be one of {', '.join(APPOINTMENT_STATUSES)}")
    return v


def _check_recipient_type(v):
    if v is not None:
        v = v.upper()
        if v not in RECIPIENT_TYPES:
            raise ValueError(f"Invalid recipient type: {v}")
    return v


class NoticeOptions(BaseModel):
    sendEmail: bool = False
    sendSms: bool = False
    smsScope: str = "RECIPIENT"

    @field_validator("smsScope")
    @classmethod
    def validate_scope(cls, v):
        v = (v or "RECIPIENT").upper()
        if v not in ("RECIPIENT", "ALL"):
            raise ValueError("SMS scope must be RECIPIENT or ALL")
        return v


class CalendarEventCreate(RosterInput, NoticeOptions):
    """Schema for creating a calendar event, times without an offset are in the event's zone"""

    parentOrganizationId: int
    organizationId: Optional[int] = None
    typeOf: str
    name: str
    location: Optional[str] = None
    description: Optional[str] = None
    startAt: datetime
    endAt: Optional[datetime] = None
    allDay: bool = False
    isPublic: bool = False
    recipientType: Optional[str] = None
    recipientId: Optional[int] = None
    externalRecipient: Optional[ExternalRecipientData] = None
    apptUserId: Optional[int] = None
    appointmentStatus: Optional[str] = None
    action: Optional[dict] = None

    @field_validator("typeOf")
    @classmethod
    def validate_type_of(cls, v):
        return _check_type_of(v)

    @field_validator("appointmentStatus")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)

    @field_validator("recipientType")
    @classmethod
    def validate_recipient_type(cls, v):
        return _check_recipient_type(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Event name is required")
        return v


class CalendarEventUpdate(RosterInput, NoticeOptions):
    """Schema for updating an event, omitted fields keep their value"""

    organizationId: Optional[int] = None
    typeOf: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    startAt: Optional[datetime] = None
    endAt: Optional[datetime] = None
    allDay: Optional[bool] = None
    isPublic: Optional[bool] = None
    recipientType: Optional[str] = None
    recipientId: Optional[int] = None
    externalRecipient: Optional[ExternalRecipientData] = None
    apptUserId: Optional[int] = None
    appointmentStatus: Optional[str] = None
    action: Optional[dict] = None

    @field_validator("typeOf")
    @classmethod
    def validate_type_of(cls, v):
        return _check_type_of(v)

    @field_validator("appointmentStatus")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)

    @field_validator("recipientType")
    @classmethod
    def validate_recipient_type(cls, v):
        return _check_recipient_type(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Event name cannot be blank")
        return v


class AppointmentStatusUpdate(BaseModel):
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)


class ConflictCheckRequest(RosterInput):
    parentOrganizationId: int
    organizationId: Optional[int] = None
    startAt: datetime
    endAt: datetime
    recipientType: Optional[str] = None
    recipientId: Optional[int] = None
    excludeEventId: Optional[int] = None
    timeZone: Optional[str] = None

    @field_validator("timeZone")
    @classmethod
    def validate_tz(cls, v):
        return validate_time_zone(v)


class RosterEntryResponse(BaseModel):
    entityType: str
    entityId: int
    writeAccess: bool
    viewOnly: bool


class LayoutResponse(BaseModel):
    top: float
    height: float


class CalendarEventResponse(BaseModel):
    """Schema for calendar event response, times are UTC"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    parentOrganizationId: int
    organizationId: Optional[int]
    typeOf: str
    typeDisplay: str
    color: str
    name: str
    location: Optional[str]
    description: Optional[str]
    startAt: datetime
    endAt: datetime
    allDay: bool
    isPublic: bool
    recipientType: Optional[str]
    recipientId: Optional[int]
    externalRecipient: Optional[dict]
    apptUserId: Optional[int]
    appointmentStatus: Optional[str]
    apptStatusUpdatedAt: Optional[datetime]
    needsCompletion: bool = False
    dateTimeDisplay: Optional[str] = None
    timeDisplay: Optional[str] = None
    layout: Optional[LayoutResponse] = None
    roster: dict[str, list[RosterEntryResponse]] = {}
    createdBy: Optional[int]
    createdAt: Optional[datetime] = None


class CalendarRangeResponse(BaseModel):
    start: datetime
    end: datetime
    granularity: str
    timeZone: str
    events: list[CalendarEventResponse]


class ConflictCheckResponse(BaseModel):
    notices: dict[str, list[str]]
    labels: dict[str, str]


class HolidayResponse(BaseModel):
    date: date
    name: str


class DeliverySummary(BaseModel):
    emailsSent: int = 0
    textsSent: int = 0
    failures: list[str] = []


class MutationResponse(BaseModel):
    event: CalendarEventResponse
    notices: Optional[DeliverySummary] = None

"""Calendar event router - FastAPI endpoints for calendar event operations"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...deps import get_calendar_event_service, get_current_staff_user
from ...directory import StaffUser
from ...models import CalendarEvent, as_utc
from ...services.ics_service import generate_ics, ics_filename
from ...services.notification_service import DeliveryReport, SmsScope
from .conflicts import ConflictDetector, category_label
from .constants import event_color, type_of_display
from .lifecycle import AppointmentLifecycle
from .roster import RosterEntry, group_roster
from .schemas import (
    AppointmentStatusUpdate,
    CalendarEventCreate,
    CalendarEventResponse,
    CalendarEventUpdate,
    CalendarRangeResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    DeliverySummary,
    HolidayResponse,
    LayoutResponse,
    MutationResponse,
    RosterEntryResponse,
)
from .service import CalendarEventService, MutationResult
from .time_ranges import daily_layout, date_time_display, time_display

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar-events", tags=["Calendar Events"])


def build_event_response(
    event: CalendarEvent, tz: str, focus_date: Optional[date] = None
) -> CalendarEventResponse:
    roster = group_roster([RosterEntry.from_row(r) for r in event.active_recipients], event.created_by)
    layout = daily_layout(event, focus_date, tz) if focus_date else None
    return CalendarEventResponse(
        id=event.id,
        parentOrganizationId=event.parent_organization_id,
        organizationId=event.organization_id,
        typeOf=event.type_of,
        typeDisplay=type_of_display(event.type_of),
        color=event_color(event.type_of),
        name=event.name,
        location=event.location,
        description=event.description,
        startAt=as_utc(event.start_at),
        endAt=as_utc(event.end_at),
        allDay=event.all_day,
        isPublic=event.is_public,
        recipientType=event.recipient_type,
        recipientId=event.recipient_id,
        externalRecipient=event.external_rcpt_data,
        apptUserId=event.appt_user_id,
        appointmentStatus=event.appointment_status,
        apptStatusUpdatedAt=as_utc(event.appt_status_updated_at),
        needsCompletion=AppointmentLifecycle.needs_completion(event, tz),
        dateTimeDisplay=date_time_display(event, tz),
        timeDisplay=time_display(event, tz),
        layout=LayoutResponse(top=layout.top, height=layout.height) if layout else None,
        roster={
            group: [
                RosterEntryResponse(
                    entityType=e.entity_type, entityId=e.entity_id, writeAccess=e.write_access, viewOnly=e.view_only
                )
                for e in entries
            ]
            for group, entries in roster.items()
        },
        createdBy=event.created_by,
        createdAt=as_utc(event.created_at),
    )


def summarize(report: Optional[DeliveryReport]) -> Optional[DeliverySummary]:
    if report is None:
        return None
    return DeliverySummary(
        emailsSent=report.emails_sent,
        textsSent=report.texts_sent,
        failures=[f"{a.channel}: {a.recipient}" for a in report.failures],
    )


def mutation_response(service: CalendarEventService, result: MutationResult) -> MutationResponse:
    event = result.event
    tz = service.time_zone_for(event.parent_organization_id, event.organization_id)
    return MutationResponse(event=build_event_response(event, tz), notices=summarize(result.report))


# ============================================================================
# CALENDAR VIEWS
# ============================================================================


@router.get("", response_model=CalendarRangeResponse)
async def list_calendar_events(
    parentOrganizationId: int = Query(...),
    focusDate: date = Query(...),
    granularity: str = Query("week"),
    organizationId: Optional[int] = Query(None),
    timeZone: Optional[str] = Query(None),
    mine: bool = Query(False),
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Events for a day, week or month view; day views include block layout"""
    tz = timeZone or current_user.timezone or service.time_zone_for(parentOrganizationId, organizationId)
    time_range, events = service.list_for_range(
        parentOrganizationId,
        focusDate,
        granularity,
        tz=tz,
        organization_id=organizationId,
        user=current_user if mine else None,
    )
    layout_date = focusDate if granularity == "day" else None
    return CalendarRangeResponse(
        start=time_range.start,
        end=time_range.end,
        granularity=granularity,
        timeZone=tz,
        events=[build_event_response(e, tz, layout_date) for e in events],
    )


@router.get("/holidays", response_model=list[HolidayResponse])
async def list_holidays(
    startDate: date = Query(...),
    endDate: date = Query(...),
    parentOrganizationId: Optional[int] = Query(None),
    organizationId: Optional[int] = Query(None),
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Federal holidays plus organization holiday events in a date range"""
    tz = None
    if parentOrganizationId:
        tz = service.time_zone_for(parentOrganizationId, organizationId)
    detector = ConflictDetector(service.db, service.directory, service.holiday_calendar)
    holidays = detector.holidays_between(startDate, endDate, parentOrganizationId, organizationId, tz)
    return [HolidayResponse(date=h.date, name=h.name) for h in holidays]


@router.post("/conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    data: ConflictCheckRequest,
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Advisory holiday and overlap notices for a proposed time range"""
    notices = service.check_conflicts(data)
    return ConflictCheckResponse(
        notices=notices,
        labels={category: category_label(category, len(items)) for category, items in notices.items()},
    )


@router.get("/needs-completion", response_model=list[CalendarEventResponse])
async def get_appointments_needing_completion(
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Past appointments assigned to the current user with no status yet"""
    tz = current_user.timezone
    return [
        build_event_response(e, tz or service.time_zone_for(e.parent_organization_id, e.organization_id))
        for e in service.needs_completion(current_user)
    ]


# ============================================================================
# PUBLIC RECIPIENT LINKS
# ============================================================================


@router.post("/public/cancel/{token}")
async def cancel_calendar_event_by_recipient(
    token: str,
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Recipient self-cancel from the link in their appointment notice"""
    await service.cancel_by_recipient(token)
    return {"message": "Appointment canceled"}


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.post("", response_model=MutationResponse, status_code=201)
async def create_calendar_event(
    data: CalendarEventCreate,
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Create a calendar event"""
    result = await service.create(data, current_user)
    return mutation_response(service, result)


@router.get("/{event_id}", response_model=CalendarEventResponse)
async def get_calendar_event(
    event_id: int,
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Get a specific calendar event"""
    event = service.get(event_id)
    tz = current_user.timezone or service.time_zone_for(event.parent_organization_id, event.organization_id)
    return build_event_response(event, tz)


@router.get("/{event_id}/ics")
async def download_calendar_event_ics(
    event_id: int,
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Download the event as an .ics file"""
    event = service.get(event_id)
    creator = service.directory.resolve_user(event.created_by) if event.created_by else None
    organization = service.directory.resolve_organization(event.organization_id) if event.organization_id else None
    content = generate_ics(
        event, creator, organization, service.time_zone_for(event.parent_organization_id, event.organization_id)
    )
    return Response(
        content=content,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{ics_filename(event)}"'},
    )


@router.put("/{event_id}", response_model=MutationResponse)
async def update_calendar_event(
    event_id: int,
    data: CalendarEventUpdate,
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Update a calendar event"""
    result = await service.update(event_id, data, current_user)
    return mutation_response(service, result)


@router.patch("/{event_id}/status", response_model=MutationResponse)
async def update_appointment_status(
    event_id: int,
    data: AppointmentStatusUpdate,
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Set or clear an appointment's status"""
    result = await service.set_status(event_id, data.status, current_user)
    return mutation_response(service, result)


@router.delete("/{event_id}")
async def delete_calendar_event(
    event_id: int,
    sendEmail: bool = Query(True),
    sendSms: bool = Query(False),
    smsScope: SmsScope = Query(SmsScope.RECIPIENT),
    current_user: StaffUser = Depends(get_current_staff_user),
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Delete a calendar event and email cancel notices"""
    result = await service.delete(event_id, current_user, sendEmail, sendSms, smsScope)
    return {"message": "Calendar event deleted", "notices": summarize(result.report)}

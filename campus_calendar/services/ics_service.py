"""
Calendar file (.ics) generation
Output is a pure function of the event attributes so repeated generations are byte-identical
"""

import logging
import re
from typing import Optional

from icalendar import Calendar, Event, vCalAddress, vText

from ..config import DEFAULT_TIME_ZONE, ICS_PRODUCT_ID, ICS_UID_DOMAIN
from ..directory import Organization, StaffUser
from ..domain.calendar_events.time_ranges import resolve_tz, to_local
from ..models import CalendarEvent, as_utc

logger = logging.getLogger(__name__)


def ics_uid(event: CalendarEvent) -> str:
    return f"calendar-event-{event.id}@{ICS_UID_DOMAIN}"


def ics_filename(event: CalendarEvent) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (event.name or "event").lower()).strip("-")
    return f"{slug or 'event'}-{event.id}.ics"


def ics_summary(event: CalendarEvent, organization: Optional[Organization]) -> str:
    if event.organization_id and organization and organization.short_code:
        return f"[{organization.short_code}] {event.name}"
    return event.name


def generate_ics(
    event: CalendarEvent,
    creator: Optional[StaffUser],
    organization: Optional[Organization] = None,
    default_tz: str = DEFAULT_TIME_ZONE,
) -> bytes:
    """
    One VEVENT with start/end in the creator's time zone (default_tz when the creator is unknown),
    summary prefixed with the campus short code, and the creator as organizer
    """
    zone = resolve_tz((creator.timezone if creator else None) or default_tz)

    cal = Calendar()
    cal.add("prodid", ICS_PRODUCT_ID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")

    vevent = Event()
    vevent.add("uid", ics_uid(event))
    vevent.add("dtstamp", as_utc(event.created_at or event.start_at))
    vevent.add("dtstart", to_local(event.start_at, zone))
    vevent.add("dtend", to_local(event.end_at, zone))
    vevent.add("summary", ics_summary(event, organization))

    if event.description:
        vevent.add("description", event.description)
    if event.location:
        vevent.add("location", event.location)

    if creator and creator.email:
        organizer = vCalAddress(f"mailto:{creator.email}")
        organizer.params["cn"] = vText(creator.full_name)
        vevent["organizer"] = organizer

    cal.add_component(vevent)
    content = cal.to_ical()
    logger.debug(f"Generated calendar file for event {event.id} ({len(content)} bytes)")
    return content

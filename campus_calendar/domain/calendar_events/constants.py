"""Calendar event kinds, statuses and display names"""

from typing import Optional

# Some event types have specific display text, see type_of_display
EVENT_TYPES = [
    "campus_appointment",
    "campus_appointment_remote",
    "campus_tour",
    "financial_aid_appointment",
    "financial_aid_appointment_remote",
    "financial_aid_packaging",
    "holiday",
    "meeting",
    "orientation",
    "orientation_appointment",
    "out_of_office",
    "phone_appointment",
    "testing_appointment",
    "vacation",
    "video_chat",
]
APPT_EVENT_TYPES = [
    "campus_appointment",
    "campus_appointment_remote",
    "campus_tour",
    "financial_aid_appointment",
    "financial_aid_appointment_remote",
    "financial_aid_packaging",
    "orientation_appointment",
    "phone_appointment",
    "testing_appointment",
    "video_chat",
]
# Only created through the public calendar event request process, excluded from general selection
EXTERNAL_TYPES = ["external_appointment"]
HOLIDAY_TYPE = "holiday"

APPOINTMENT_STATUSES = ["complete", "rescheduled", "no_show"]

# Roster entries may only reference staff users or departments
ROSTER_ENTITY_TYPES = ["USER", "DEPARTMENT"]
RECIPIENT_TYPES = ["STUDENT", "STUDENT_LEAD", "USER", "DEPARTMENT", "EXTERNAL"]

# Event display color by type_of, "fedhol" marks federal holidays
COLOR_DEFAULT = "blue"
TYPE_OF_COLORS = {
    "campus_appointment": "#6495ed",
    "campus_tour": "#05a005",
    "external_appointment": "grey",
    "fedhol": "darkgreen",
    "financial_aid_appointment": "maroon",
    "holiday": "olive",
    "meeting": "purple",
    "orientation": "darkblue",
    "out_of_office": "red",
    "phone_appointment": "darkorange",
    "testing_appointment": "coral",
    "vacation": "#d4b700",
    "video_chat": "#5f5f5f",
}

_SPECIAL_DISPLAY = {
    "campus_appointment": "Campus Appointment - In Person",
    "campus_appointment_remote": "Campus Appointment - Remote",
    "financial_aid_appointment": "Financial Aid Appointment - In Person",
    "financial_aid_appointment_remote": "Financial Aid Appointment - Remote",
    "orientation_appointment": "Orientation - Appointment",
}


def is_appointment_type(type_of: Optional[str]) -> bool:
    return type_of in APPT_EVENT_TYPES


def type_of_display(type_of: Optional[str], cert: bool = False) -> str:
    """Human readable event type, cert=True for calendar event request template displays"""
    if not type_of:
        return ""
    if type_of in _SPECIAL_DISPLAY:
        return _SPECIAL_DISPLAY[type_of]
    if type_of == "external_appointment" and cert:
        return "External Appointment | Public Calendar Request"
    return type_of.replace("_", " ").title()


def event_color(type_of: Optional[str]) -> str:
    if not type_of:
        return COLOR_DEFAULT
    return TYPE_OF_COLORS.get(type_of, COLOR_DEFAULT)


def event_type_options(option: Optional[str] = None) -> list[tuple[str, str]]:
    """(label, value) pairs for type selects: "appt", "CERT" (request templates) or all types"""
    if option == "appt":
        return [(type_of_display(t), t) for t in APPT_EVENT_TYPES]
    if option == "CERT":
        return [(type_of_display(t, cert=True), t) for t in sorted(APPT_EVENT_TYPES + EXTERNAL_TYPES)]
    return [(type_of_display(t), t) for t in EVENT_TYPES]

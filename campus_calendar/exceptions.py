"""
Calendar event error hierarchy
Synchronous errors abort the enclosing transaction; transient dependency errors
are caught at the notification boundary and only logged
"""

from typing import Optional


class CalendarEventError(Exception):
    """Base class for calendar event errors"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CalendarEventError):
    """Bad or missing date range, or a missing kind-specific field"""

    status_code = 422


class NotFoundError(CalendarEventError):
    """Unknown event, recipient or action id"""

    status_code = 404


class AccessDenied(CalendarEventError):
    """Write attempted by an actor without write access to the event"""

    status_code = 403


class TransientDependencyError(CalendarEventError):
    """Attachment store timeout or notification transport failure"""

    status_code = 503

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code

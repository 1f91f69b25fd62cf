"""Test doubles and builders shared across the calendar test modules."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from campus_calendar.domain.calendar_events.time_ranges import localize
from campus_calendar.models import to_storage
from campus_calendar.services.attachment_storage import InMemoryAttachmentStore
from campus_calendar.services.payloads import DeliveryResult, EmailPayload, SmsPayload

PACIFIC = "America/Los_Angeles"
EASTERN = "America/New_York"
CENTRAL = "America/Chicago"


def stored(year: int, month: int, day: int, hour: int = 0, minute: int = 0, tz: str = PACIFIC) -> datetime:
    """Naive UTC storage value for a wall-clock time in tz."""
    return to_storage(localize(datetime(year, month, day, hour, minute), tz))


class FakeEmailTransport:
    """Records sent emails; addresses in fail_for get a failed result, raise_for raise."""

    def __init__(self):
        self.sent: list[EmailPayload] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    async def send_email(self, payload: EmailPayload) -> DeliveryResult:
        if payload.to in self.raise_for:
            raise RuntimeError("connection reset by peer")
        if payload.to in self.fail_for:
            return DeliveryResult.failed("Mailbox unavailable", "550")
        self.sent.append(payload)
        return DeliveryResult.ok()

    def to(self, address: str) -> list[EmailPayload]:
        return [p for p in self.sent if p.to == address]


class FakeSmsTransport:
    def __init__(self):
        self.sent: list[SmsPayload] = []
        self.fail_for: set[str] = set()

    async def send_sms(self, payload: SmsPayload) -> DeliveryResult:
        if payload.to in self.fail_for:
            return DeliveryResult.failed("Unreachable destination", "30003")
        self.sent.append(payload)
        return DeliveryResult.ok()

    def to(self, phone: str) -> list[SmsPayload]:
        return [p for p in self.sent if p.to == phone]


class SlowAttachmentStore(InMemoryAttachmentStore):
    """Attachment store whose writes take ``delay`` seconds."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    def put(self, content: bytes, metadata: dict[str, Any]):
        time.sleep(self.delay)
        return super().put(content, metadata)


class RecordingActionExecutor:
    def __init__(self, error: Exception | None = None):
        self.calls: list[tuple] = []
        self.error = error

    async def execute_actions(self, trigger_key, action_data, recipient, staff_user):
        self.calls.append((trigger_key, action_data, recipient, staff_user))
        if self.error:
            raise self.error

    @property
    def trigger_keys(self) -> list[str]:
        return [call[0] for call in self.calls]

"""Message and attachment records passed between the composer and its transports"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    error_text: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls) -> "DeliveryResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error_text: str, error_code: Optional[str] = None) -> "DeliveryResult":
        return cls(success=False, error_text=error_text, error_code=error_code)


@dataclass(frozen=True)
class AttachmentRef:
    key: str
    filename: str
    url: Optional[str] = None
    content_type: str = "text/calendar"
    content: Optional[bytes] = field(default=None, repr=False, compare=False)


@dataclass
class EmailPayload:
    to: str
    subject: str
    body: str
    recipient_name: str = ""
    heading: str = ""
    organization_name: Optional[str] = None
    canceled: bool = False
    links: list[tuple[str, str]] = field(default_factory=list)
    attachments: list[AttachmentRef] = field(default_factory=list)


@dataclass
class SmsPayload:
    to: str
    body: str
    recipient_name: str = ""


class EmailTransport(Protocol):
    async def send_email(self, payload: EmailPayload) -> DeliveryResult: ...


class SmsTransport(Protocol):
    async def send_sms(self, payload: SmsPayload) -> DeliveryResult: ...


class AttachmentStore(Protocol):
    def put(self, content: bytes, metadata: dict[str, Any]) -> AttachmentRef: ...

    def get(self, event_id: int) -> Optional[AttachmentRef]: ...

    def delete(self, ref: AttachmentRef) -> None: ...

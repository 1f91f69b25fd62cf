"""
Twilio SMS Service
Sends calendar event text notices through the Twilio REST API
"""

import logging
from typing import Optional

import httpx

from ..config import (
    TEXT_SIZE_LIMIT,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
    TWILIO_MESSAGING_SERVICE_SID,
    TWILIO_TIMEOUT,
)
from .payloads import DeliveryResult, SmsPayload

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


def truncate_message(body: str, limit: int = TEXT_SIZE_LIMIT) -> str:
    """Clip a message to the provider size limit"""
    if len(body) <= limit:
        return body
    return body[: limit - 3].rstrip() + "..."


class TwilioSmsTransport:
    """SmsTransport backed by a single Twilio account"""

    def __init__(
        self,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        messaging_service_sid: Optional[str] = TWILIO_MESSAGING_SERVICE_SID,
        from_number: Optional[str] = TWILIO_FROM_NUMBER,
        timeout: float = TWILIO_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.messaging_service_sid = messaging_service_sid
        self.from_number = from_number
        self.timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and (self.messaging_service_sid or self.from_number))

    async def _post(self, data: dict) -> httpx.Response:
        url = TWILIO_MESSAGES_URL.format(account_sid=self.account_sid)
        if self._client is not None:
            return await self._client.post(
                url, auth=(self.account_sid, self.auth_token), data=data, timeout=self.timeout
            )
        async with httpx.AsyncClient() as client:
            return await client.post(url, auth=(self.account_sid, self.auth_token), data=data, timeout=self.timeout)

    async def send_sms(self, payload: SmsPayload) -> DeliveryResult:
        """
        Send one SMS via Twilio

        Returns:
            DeliveryResult with Twilio's error message and code on failure
        """
        if not payload.to:
            return DeliveryResult.failed("No phone number provided")

        # Ensure phone number is in E.164 format
        if not payload.to.startswith("+"):
            logger.warning(f"Phone number not in E.164 format: {payload.to}")
            return DeliveryResult.failed("Phone number must be in E.164 format (e.g., +1234567890)")

        if not self.is_configured:
            logger.warning("⚠️ Twilio is not configured, SMS not sent")
            return DeliveryResult.failed("Twilio not configured", "not_configured")

        data = {"To": payload.to, "Body": truncate_message(payload.body)}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number

        try:
            logger.info(f"🚀 Sending SMS to Twilio API for {payload.to}")
            response = await self._post(data)
            logger.info(f"📡 Twilio API response status: {response.status_code}")

            if response.status_code in [200, 201]:
                message_sid = response.json().get("sid")
                logger.info(f"✅ SMS sent successfully to {payload.to} (SID: {message_sid})")
                return DeliveryResult.ok()

            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            error_message = error_data.get("message", "Unknown error")
            error_code = error_data.get("code")
            logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
            return DeliveryResult.failed(error_message, str(error_code) if error_code else str(response.status_code))

        except httpx.HTTPError as e:
            logger.error(f"Twilio API error: {str(e)}")
            return DeliveryResult.failed(str(e), type(e).__name__)

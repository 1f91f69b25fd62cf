"""
Email Service using Resend
Calendar notices are built from MJML templates and sent with their .ics attachment
"""

import logging
from typing import Optional

import resend
from mjml import mjml_to_html

from ..config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import calendar_event_notice_template
from .payloads import DeliveryResult, EmailPayload

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a result with 'html' and 'errors'
        errors = result.get("errors") if isinstance(result, dict) else getattr(result, "errors", None)
        if errors:
            logger.warning(f"MJML compilation warnings: {errors}")
        if isinstance(result, dict):
            return result.get("html", "")
        return getattr(result, "html", str(result))
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


def render_notice_html(payload: EmailPayload) -> str:
    mjml_content = calendar_event_notice_template(
        title=payload.heading or payload.subject,
        body=payload.body,
        links=payload.links,
        organization_name=payload.organization_name,
        canceled=payload.canceled,
    )
    return compile_mjml_to_html(mjml_content)


class ResendEmailTransport:
    """EmailTransport backed by Resend"""

    def __init__(self, api_key: Optional[str] = RESEND_API_KEY, from_address: str = EMAIL_FROM_ADDRESS):
        self.api_key = api_key
        self.from_address = from_address

    async def send_email(self, payload: EmailPayload) -> DeliveryResult:
        if not self.api_key:
            logger.error("❌ No email service configured - RESEND_API_KEY missing")
            return DeliveryResult.failed("Email service not configured", "not_configured")

        try:
            html_content = render_notice_html(payload)
        except Exception as e:
            return DeliveryResult.failed(str(e), "template_error")

        email_data = {
            "from": self.from_address,
            "to": [payload.to],
            "subject": payload.subject,
            "html": html_content,
            "text": payload.body,
        }

        attachments = [a for a in payload.attachments if a.content or a.url]
        if attachments:
            email_data["attachments"] = [
                {"filename": a.filename, "content": list(a.content)} if a.content else {"filename": a.filename, "path": a.url}
                for a in attachments
            ]

        try:
            logger.info(f"📧 Sending email via Resend to: {payload.to}")
            resend.api_key = self.api_key
            response = resend.Emails.send(email_data)
            logger.info(f"✅ Email sent successfully via Resend: {response}")
            return DeliveryResult.ok()
        except Exception as e:
            logger.error(f"❌ Email send error to {payload.to}: {e}")
            error_code = getattr(e, "code", None)
            return DeliveryResult.failed(str(e), str(error_code) if error_code else type(e).__name__)

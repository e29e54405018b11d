"""SMS and email delivery through the SMTP2Go REST API.

In non-production environments recipients are overridden with the configured
sandbox phone/email so real loan officers are never paged during development
or testing. Unlike borrower-facing helpers, these calls raise
``NotificationTransportError`` on failure: the MLO notifier records every
channel outcome itself.
"""

import logging
from typing import Any

import httpx

from auma.services.notifications.errors import NotificationTransportError, TransportNotConfigured

logger = logging.getLogger(__name__)

SMTP2GO_SMS_URL = "https://api.smtp2go.com/v3/sms/send"
SMTP2GO_EMAIL_URL = "https://api.smtp2go.com/v3/email/send"


def _mask_phone(phone: str) -> str:
    return f"***{phone[-4:]}" if len(phone) > 4 else "***"


class Smtp2GoClient:
    def __init__(
        self,
        api_key: str,
        sender: str,
        sms_sender: str = "AUMA",
        environment: str = "development",
        sandbox_phone: str = "",
        sandbox_email: str = "",
        timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.sender = sender
        self.sms_sender = sms_sender
        self.environment = environment
        self.sandbox_phone = sandbox_phone
        self.sandbox_email = sandbox_email
        self.timeout = timeout

    def _recipient(self, real: str, sandbox: str) -> str:
        if self.environment != "production" and sandbox:
            return sandbox
        return real

    async def _post(self, url: str, payload: dict[str, Any], what: str) -> dict[str, Any]:
        if not self.api_key:
            logger.warning("SMTP2Go API key not configured — cannot send %s", what)
            raise TransportNotConfigured(f"SMTP2Go API key not configured for {what}")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"X-Smtp2go-Api-Key": self.api_key},
                    timeout=self.timeout,
                )
        except httpx.HTTPError as exc:
            raise NotificationTransportError(f"SMTP2Go {what} request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error("SMTP2Go %s error %s: %s", what, response.status_code, response.text)
            raise NotificationTransportError(
                f"SMTP2Go {what} error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return {}

    async def send_sms(self, to: str, message: str) -> dict[str, Any]:
        to = self._recipient(to, self.sandbox_phone)
        result = await self._post(
            SMTP2GO_SMS_URL,
            {"sender": self.sms_sender, "to": [to], "message": message},
            "SMS",
        )
        logger.info("External SMS sent to %s", _mask_phone(to))
        return result

    async def send_email(self, to: str, subject: str, html: str) -> dict[str, Any]:
        to = self._recipient(to, self.sandbox_email)
        result = await self._post(
            SMTP2GO_EMAIL_URL,
            {
                "sender": self.sender,
                "to": [to],
                "subject": subject,
                "html_body": html,
            },
            "email",
        )
        logger.info("External email sent to %s", to)
        return result

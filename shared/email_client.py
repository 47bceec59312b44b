"""
Email client for client and admin notifications.

Delivers plain-text messages through the Resend HTTP API. The booking core
only depends on the ``send(recipient, subject, body) -> bool`` capability,
so delivery failures are reported as ``False`` and never raised.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)


class ResendEmailClient:
    """
    Client for the Resend transactional email API.

    Each send opens a short-lived httpx client with an explicit timeout so a
    slow provider cannot hold a request handler indefinitely.
    """

    def __init__(self):
        """Initialize Resend client with credentials from settings."""
        settings = get_settings()
        self.api_url = settings.RESEND_API_URL.rstrip("/")
        self.sender = settings.EMAIL_FROM
        self.reply_to = settings.EMAIL_REPLY_TO or None
        self.timeout = settings.EMAIL_TIMEOUT_SECONDS

        self.headers = {
            "Authorization": f"Bearer {settings.RESEND_API_KEY}",
            "Content-Type": "application/json",
        }

        logger.info(f"ResendEmailClient initialized: {self.api_url}, from={self.sender}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    async def _post_email(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.api_url}/emails",
                json=payload,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        """
        Send a plain-text email.

        Args:
            recipient: Destination address
            subject: Email subject line
            body: Plain-text body

        Returns:
            True if the provider accepted the message, False otherwise
        """
        payload: dict[str, Any] = {
            "from": self.sender,
            "to": [recipient],
            "subject": subject,
            "text": body,
        }
        if self.reply_to:
            payload["reply_to"] = self.reply_to

        try:
            data = await self._post_email(payload)
        except httpx.HTTPError as e:
            logger.error(f"Email delivery failed | to={recipient} | subject={subject!r}: {e}")
            return False

        logger.info(f"Email sent | to={recipient} | id={data.get('id')}")
        return True

"""Email sender using Resend, for email.send and subscription confirmations."""

from __future__ import annotations

import asyncio
import logging

import resend

from cms.config import settings
from primitives.catalog.store import EmailMessage, EmailSender, SendResult

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.RESEND_API_KEY


def _recipient(message: EmailMessage) -> str:
    return f"{message.to_name} <{message.to}>" if message.to_name else message.to


class ResendSender(EmailSender):
    """
    Sends one message per call through the Resend API.

    The Resend SDK is blocking, so each send runs in a worker thread.
    Errors never propagate: they come back as SendResult(success=False).
    """

    def __init__(self, from_address: str | None = None) -> None:
        self.from_address = from_address or settings.EMAIL_FROM

    async def send(self, message: EmailMessage) -> SendResult:
        """
        Send an email via Resend.

        Args:
            message: The message; from_address overrides the sender default

        Returns:
            SendResult with the Resend message id, or the error text
        """
        params: dict = {
            "from": message.from_address or self.from_address,
            "to": [_recipient(message)],
            "subject": message.subject,
        }
        if message.html:
            params["html"] = message.html
        if message.text:
            params["text"] = message.text
        if message.reply_to:
            params["reply_to"] = message.reply_to

        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.warning("resend: send to %s failed: %s", message.to, e)
            return SendResult(success=False, error=str(e))

        return SendResult(success=True, message_id=response.get("id"))

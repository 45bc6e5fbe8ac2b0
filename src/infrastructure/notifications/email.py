# src/infrastructure/notifications/email.py

import logging

import resend

from src.domain.exceptions import DependencyFailure
from src.infrastructure import settings

logger = logging.getLogger(__name__)


class ResendEmailSender:
    """Transactional email through the Resend API."""

    def __init__(
        self,
        api_key: str | None = None,
        from_address: str | None = None,
        brand_name: str | None = None,
    ):
        self.api_key = api_key or settings.RESEND_API_KEY
        self.from_address = from_address or settings.EMAIL_FROM_ADDRESS
        self.brand_name = brand_name or settings.BRAND_NAME

    def send(self, to: str, subject: str, text: str, html: str) -> None:
        if not self.api_key:
            raise DependencyFailure("email", "RESEND_API_KEY is not configured")

        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(
                {
                    "from": f"{self.brand_name} <{self.from_address}>",
                    "to": [to],
                    "subject": subject,
                    "text": text,
                    "html": html,
                }
            )
        except Exception as exc:
            raise DependencyFailure("email", str(exc)) from exc

        logger.info("Email sent to %s subject=%r id=%s", to, subject, response.get("id"))

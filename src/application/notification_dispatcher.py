# src/application/notification_dispatcher.py

import logging
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.application.notices import BookingNotice
from src.domain.exceptions import DependencyFailure
from src.domain.state_machine import BookingStatus
from src.infrastructure import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


class EmailSender(Protocol):
    def send(self, to: str, subject: str, text: str, html: str) -> None:
        ...


class PushSender(Protocol):
    def send(self, token: str, title: str, body: str, data: dict[str, str] | None = None) -> str:
        ...


class NotificationDispatcher:
    """
    Email and push fan-out for booking events.

    Both channels are best effort. Provider failures are logged here and
    reported as a False return; they are never raised to the caller.
    """

    def __init__(
        self,
        email_sender: EmailSender,
        push_sender: PushSender,
        brand_name: str | None = None,
        template_dir: Path = TEMPLATE_DIR,
    ):
        self.email_sender = email_sender
        self.push_sender = push_sender
        self.brand_name = brand_name or settings.BRAND_NAME
        self.templates = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
            keep_trailing_newline=True,
        )

    def render_status_email(
        self,
        notice: BookingNotice,
        admin_action: bool = False,
    ) -> tuple[str, str, str]:
        status = notice.status.value
        if admin_action:
            subject = f"Booking Update (Admin Action): {status.upper()}"
        else:
            subject = f"Booking Updated: {status.upper()}"

        context = {
            "booking_id": notice.booking_id,
            "status": status,
            "client_name": notice.client_name or "there",
            "carer_name": notice.carer_name or "your carer",
            "service_type": notice.service_type,
            # Cost is only quoted once the booking is completed.
            "total_cost": notice.total_cost if notice.status == BookingStatus.COMPLETED else None,
            "brand_name": self.brand_name,
        }
        text = self.templates.get_template("email/booking_status.txt").render(context)
        html = self.templates.get_template("email/booking_status.html").render(context)
        return subject, text, html

    def send_status_email(self, notice: BookingNotice, admin_action: bool = False) -> bool:
        if not notice.client_email:
            logger.warning("Booking %s has no client email, skipping status email", notice.booking_id)
            return False

        subject, text, html = self.render_status_email(notice, admin_action=admin_action)
        try:
            self.email_sender.send(notice.client_email, subject, text, html)
        except DependencyFailure as exc:
            logger.warning("Status email for booking %s not delivered: %s", notice.booking_id, exc)
            return False
        return True

    def send_new_booking_push(self, notice: BookingNotice) -> bool:
        if not notice.carer_push_token:
            logger.warning(
                "Carer %s has no push token, skipping notification for booking %s",
                notice.carer_id,
                notice.booking_id,
            )
            return False

        try:
            self.push_sender.send(
                notice.carer_push_token,
                "New Booking Request",
                f"You have a new {notice.service_type} booking on {notice.date}",
                {
                    "booking_id": str(notice.booking_id),
                    "type": "new-booking",
                },
            )
        except DependencyFailure as exc:
            logger.warning("Push for booking %s not delivered: %s", notice.booking_id, exc)
            return False
        return True

# src/application/notices.py

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.domain.state_machine import BookingStatus
from src.infrastructure.db.models import Booking


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def booking_payload(booking: Booking) -> dict[str, Any]:
    """JSON-safe representation of a booking, as broadcast to live sessions."""
    return {
        "id": booking.id,
        "client_id": booking.client_id,
        "carer_id": booking.carer_id,
        "service_type": booking.service_type,
        "service_hrs": _money(booking.service_hrs),
        "date": booking.date.isoformat(),
        "time": booking.time,
        "location": booking.location,
        "notes": booking.notes,
        "status": booking.status.value,
        "total_cost": _money(booking.total_cost),
        "payment_status": booking.payment_status.value,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
        "updated_at": booking.updated_at.isoformat() if booking.updated_at else None,
    }


@dataclass(frozen=True)
class BookingNotice:
    """
    Detached copy of everything a side effect needs.
    Side effects run after the session is gone, so they never see ORM objects.
    """

    booking_id: int
    status: BookingStatus
    service_type: str
    date: str
    time: str
    total_cost: Decimal | None
    client_name: str | None
    client_email: str | None
    carer_id: int
    carer_name: str | None
    carer_push_token: str | None
    payload: dict[str, Any]

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingNotice":
        client = booking.client
        carer = booking.carer
        return cls(
            booking_id=booking.id,
            status=booking.status,
            service_type=booking.service_type,
            date=booking.date.isoformat(),
            time=booking.time,
            total_cost=booking.total_cost,
            client_name=client.full_name if client else None,
            client_email=client.email if client else None,
            carer_id=booking.carer_id,
            carer_name=carer.full_name if carer else None,
            carer_push_token=carer.fcm_token if carer else None,
            payload=booking_payload(booking),
        )

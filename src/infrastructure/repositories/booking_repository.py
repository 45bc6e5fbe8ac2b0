# src/infrastructure/repositories/booking_repository.py

import datetime as dt
from decimal import Decimal

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select

from src.infrastructure.db.models import Booking
from src.domain.state_machine import BookingStatus, PaymentStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: int,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .options(selectinload(Booking.carer), selectinload(Booking.client))
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_by_id(self, booking_id: int) -> Booking | None:
        """
        SELECT ... FOR UPDATE on the booking row only.
        Serializes concurrent transitions and settlements.
        """

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update(of=Booking)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_order_id(self, order_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.payment_order_id == order_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_booking(
        self,
        client_id: int,
        carer_id: int,
        service_type: str,
        service_hrs: Decimal | None,
        date: dt.date,
        time: str,
        location: str | None,
        notes: str | None,
    ) -> Booking:

        booking = Booking(
            client_id=client_id,
            carer_id=carer_id,
            service_type=service_type,
            service_hrs=service_hrs,
            date=date,
            time=time,
            location=location or "Unknown",
            notes=notes,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )

        self.db.add(booking)
        return booking

    def apply_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
        total_cost: Decimal | None,
    ) -> None:
        # Status and cost land in the same flush.
        booking.status = new_status
        booking.total_cost = total_cost

    def mark_paid(self, booking: Booking, payment_reference: str | None) -> None:
        booking.payment_status = PaymentStatus.PAID
        booking.payment_reference = payment_reference

    def list_for_client(self, client_id: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.client_id == client_id)
            .options(selectinload(Booking.carer))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_carer(self, carer_id: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.carer_id == carer_id)
            .options(selectinload(Booking.client))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def latest_for_carer(self, carer_id: int) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.carer_id == carer_id)
            .options(selectinload(Booking.client), selectinload(Booking.carer))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[Booking]:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.carer), selectinload(Booking.client))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_paid_completed_between(
        self,
        carer_id: int,
        start: dt.date,
        end: dt.date,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.carer_id == carer_id)
            .where(Booking.status == BookingStatus.COMPLETED)
            .where(Booking.payment_status == PaymentStatus.PAID)
            .where(Booking.date >= start)
            .where(Booking.date <= end)
            .order_by(Booking.date)
        )
        return list(self.db.execute(stmt).scalars().all())

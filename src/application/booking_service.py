import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from src.application.notices import BookingNotice
from src.application.notification_dispatcher import NotificationDispatcher
from src.application.realtime_broadcaster import (
    BOOKING_CREATED,
    BOOKING_UPDATED,
    RealtimeBroadcaster,
)
from src.application.side_effects import SideEffectRunner
from src.domain.actors import CarerActor, ClientActor
from src.domain.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
)
from src.domain.pricing import calculate_total_cost
from src.domain.state_machine import BookingStateMachine, BookingStatus, PaymentStatus
from src.infrastructure.db.models import Booking, Notification
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.notification_repository import NotificationRepository
from src.infrastructure.repositories.party_repository import PartyRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeeklyEarnings:
    week_start: dt.date
    week_end: dt.date
    total_earnings: Decimal
    bookings: list[Booking]


class BookingService:
    """
    Booking lifecycle engine.

    Every status change is committed first; email, push and broadcast
    side effects are dispatched afterwards and cannot undo the change.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationDispatcher,
        broadcaster: RealtimeBroadcaster,
        side_effects: SideEffectRunner | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.broadcaster = broadcaster
        self.side_effects = side_effects or SideEffectRunner()
        self.booking_repository = BookingRepository(db)
        self.party_repository = PartyRepository(db)
        self.notification_repository = NotificationRepository(db)

    def create_booking(
        self,
        client: ClientActor,
        carer_id: int,
        service_type: str,
        date: dt.date,
        time: str,
        service_hrs: Decimal | None = None,
        location: str | None = None,
        notes: str | None = None,
    ) -> Booking:
        if self.party_repository.find(client) is None:
            raise NotFoundError(f"Client {client.id} not found")
        if self.party_repository.find(CarerActor(carer_id)) is None:
            raise NotFoundError(f"Carer {carer_id} not found")

        booking = self.booking_repository.create_booking(
            client_id=client.id,
            carer_id=carer_id,
            service_type=service_type,
            service_hrs=service_hrs,
            date=date,
            time=time,
            location=location,
            notes=notes,
        )
        # Durable record for carers who are offline when the push goes out.
        self.notification_repository.create(
            carer_id=carer_id,
            message=f"New {service_type} booking for {date.isoformat()} at {time}",
        )
        self._commit(booking)
        logger.info("Booking %s created by client %s for carer %s", booking.id, client.id, carer_id)

        notice = BookingNotice.from_booking(booking)
        self.side_effects.dispatch("new-booking-push", self.notifier.send_new_booking_push, notice)
        self.side_effects.dispatch(
            "booking-created-broadcast",
            self.broadcaster.publish,
            BOOKING_CREATED,
            notice.payload,
        )
        return booking

    def transition(
        self,
        booking_id: int,
        acting_carer_id: int,
        requested_status: BookingStatus | str,
    ) -> Booking:
        booking = self._lock_booking(booking_id)

        # Ownership is checked before legality.
        if booking.carer_id != acting_carer_id:
            raise ForbiddenError(
                f"Carer {acting_carer_id} is not assigned to booking {booking_id}"
            )

        target = self._coerce_status(booking, requested_status)
        BookingStateMachine.validate_transition(booking.status, target)
        return self._apply(booking, target, admin_action=False)

    def admin_override(
        self,
        booking_id: int,
        requested_status: BookingStatus | str,
    ) -> Booking:
        """
        Set any status regardless of the current one.
        Paid bookings are frozen, even for admins.
        """
        booking = self._lock_booking(booking_id)
        target = self._coerce_status(booking, requested_status)

        if booking.payment_status == PaymentStatus.PAID:
            raise ForbiddenError(f"Booking {booking_id} is already paid and cannot be overridden")

        logger.warning(
            "Admin override on booking %s: %s -> %s",
            booking_id,
            booking.status.value,
            target.value,
        )
        return self._apply(booking, target, admin_action=True)

    def list_client_bookings(self, client_id: int) -> list[Booking]:
        return self.booking_repository.list_for_client(client_id)

    def list_carer_bookings(self, carer_id: int) -> list[Booking]:
        return self.booking_repository.list_for_carer(carer_id)

    def latest_carer_booking(self, carer_id: int) -> Booking | None:
        return self.booking_repository.latest_for_carer(carer_id)

    def list_all_bookings(self) -> list[Booking]:
        return self.booking_repository.list_all()

    def list_carer_notifications(self, carer_id: int) -> list[Notification]:
        return self.notification_repository.list_for_carer(carer_id)

    def register_push_token(self, carer_id: int, token: str) -> None:
        if not token or not token.strip():
            raise ValueError("FCM token required")

        carer = self.party_repository.find(CarerActor(carer_id))
        if carer is None:
            raise NotFoundError(f"Carer {carer_id} not found")

        self.party_repository.set_carer_push_token(carer, token.strip())
        self.db.commit()

    def weekly_earnings(self, carer_id: int, today: dt.date) -> WeeklyEarnings:
        week_start = today - dt.timedelta(days=today.weekday())
        week_end = week_start + dt.timedelta(days=6)
        bookings = self.booking_repository.list_paid_completed_between(
            carer_id, week_start, week_end
        )
        total = sum((b.total_cost or Decimal("0") for b in bookings), Decimal("0.00"))
        return WeeklyEarnings(
            week_start=week_start,
            week_end=week_end,
            total_earnings=total,
            bookings=bookings,
        )

    def _lock_booking(self, booking_id: int) -> Booking:
        booking = self.booking_repository.lock_by_id(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _coerce_status(booking: Booking, requested_status: BookingStatus | str) -> BookingStatus:
        if isinstance(requested_status, BookingStatus):
            return requested_status
        try:
            return BookingStatus(requested_status)
        except ValueError as exc:
            raise InvalidStateTransitionError(
                from_state=booking.status.value,
                to_state=str(requested_status),
            ) from exc

    def _apply(self, booking: Booking, target: BookingStatus, admin_action: bool) -> Booking:
        if target != BookingStatus.COMPLETED:
            total_cost = None
        elif booking.status == BookingStatus.COMPLETED:
            # Already completed: the recorded cost stands.
            total_cost = booking.total_cost
        else:
            carer = self.party_repository.get_carer(booking.carer_id)
            total_cost = calculate_total_cost(
                booking.service_hrs,
                carer.charge_hrs if carer else None,
            )
            if total_cost == 0:
                logger.warning("Booking %s completed with zero cost", booking.id)

        previous = booking.status
        self.booking_repository.apply_status(booking, target, total_cost)
        self._commit(booking)
        logger.info("Booking %s moved %s -> %s", booking.id, previous.value, target.value)

        notice = BookingNotice.from_booking(booking)
        self.side_effects.dispatch(
            "status-email",
            self.notifier.send_status_email,
            notice,
            admin_action=admin_action,
        )
        self.side_effects.dispatch(
            "booking-updated-broadcast",
            self.broadcaster.publish,
            BOOKING_UPDATED,
            notice.payload,
        )
        return booking

    def _commit(self, booking: Booking) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)

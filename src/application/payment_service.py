import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from src.application.notices import booking_payload
from src.application.realtime_broadcaster import BOOKING_PAID, RealtimeBroadcaster
from src.application.side_effects import SideEffectRunner
from src.domain.exceptions import (
    AlreadySettledError,
    ForbiddenError,
    NotFoundError,
    PaymentNotAllowedError,
)
from src.domain.pricing import calculate_total_cost, to_minor_units
from src.domain.state_machine import PaymentStateMachine
from src.infrastructure import settings
from src.infrastructure.db.models import Booking
from src.infrastructure.payments.razorpay_gateway import RazorpayGateway
from src.infrastructure.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)

SETTLEMENT_EVENTS = {"payment.captured", "order.paid"}


@dataclass(frozen=True)
class PaymentOrder:
    booking_id: int
    order_id: str
    total_cost: Decimal
    amount_minor: int
    currency: str
    key_id: str | None


@dataclass(frozen=True)
class SettlementResult:
    booking: Booking
    settled: bool


class PaymentService:
    """
    Payment settlement bridge.

    Orthogonal to the booking lifecycle: payment goes pending -> paid once.
    Amounts are always recomputed from stored hours and the carer's rate.
    """

    def __init__(
        self,
        db: Session,
        gateway: RazorpayGateway,
        broadcaster: RealtimeBroadcaster | None = None,
        side_effects: SideEffectRunner | None = None,
        currency: str | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.broadcaster = broadcaster
        self.side_effects = side_effects or SideEffectRunner()
        self.currency = currency or settings.PAYMENT_CURRENCY
        self.booking_repository = BookingRepository(db)

    def initiate_payment(self, booking_id: int, client_id: int) -> PaymentOrder:
        # Row lock: one order id per booking at a time.
        booking = self._get_owned_booking(booking_id, client_id, lock=True)

        if PaymentStateMachine.is_settled(booking.payment_status):
            self.db.rollback()
            raise AlreadySettledError(f"Booking {booking_id} already paid")
        if not PaymentStateMachine.can_settle(booking.status, booking.payment_status):
            self.db.rollback()
            raise PaymentNotAllowedError("Payment allowed only after booking is completed")

        total_cost = calculate_total_cost(
            booking.service_hrs,
            booking.carer.charge_hrs if booking.carer else None,
        )
        amount_minor = to_minor_units(total_cost)
        if amount_minor <= 0:
            self.db.rollback()
            raise PaymentNotAllowedError("Invalid total cost")

        order = self.gateway.create_order(
            amount_minor=amount_minor,
            currency=self.currency,
            receipt=f"booking-{booking.id}",
            notes={
                "booking_id": str(booking.id),
                "client_id": str(booking.client_id),
                "carer_id": str(booking.carer_id),
            },
        )
        booking.payment_order_id = order["id"]
        self.db.commit()
        logger.info(
            "Payment order %s created for booking %s amount=%s %s",
            order["id"],
            booking.id,
            amount_minor,
            self.currency,
        )

        return PaymentOrder(
            booking_id=booking.id,
            order_id=order["id"],
            total_cost=total_cost,
            amount_minor=amount_minor,
            currency=self.currency,
            key_id=self.gateway.key_id,
        )

    def confirm_payment(
        self,
        booking_id: int,
        client_id: int,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> SettlementResult:
        booking = self._get_owned_booking(booking_id, client_id)
        if not booking.payment_order_id:
            raise PaymentNotAllowedError("Order not created for this booking")
        if booking.payment_order_id != order_id:
            raise PaymentNotAllowedError("Order id does not match this booking")

        self.gateway.verify_payment_signature(order_id, payment_id, signature)
        return self.settle(booking.id, payment_id)

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> str:
        """
        Process a processor event. Returns an outcome label.

        Signature failures raise. Everything after verification is logged
        and swallowed so the processor stops retrying.
        """
        self.gateway.verify_webhook_signature(raw_body, signature)

        try:
            event = json.loads(raw_body)
            event_type = event.get("event")
            if event_type not in SETTLEMENT_EVENTS:
                logger.info("Ignoring payment webhook event %s", event_type)
                return "ignored"

            booking_id, payment_id = self._correlate(event)
            if booking_id is None:
                logger.warning("Payment webhook %s without booking correlation", event_type)
                return "ignored"

            result = self.settle(booking_id, payment_id)
        except PaymentNotAllowedError as exc:
            logger.warning("Payment webhook for booking %s not applied: %s", booking_id, exc)
            return "error"
        except Exception:
            self.db.rollback()
            logger.exception("Error processing payment webhook")
            return "error"

        return "settled" if result.settled else "duplicate"

    def settle(self, booking_id: int, payment_reference: str | None) -> SettlementResult:
        booking = self.booking_repository.lock_by_id(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")

        if PaymentStateMachine.is_settled(booking.payment_status):
            # Replays are a no-op.
            self.db.rollback()
            logger.info("Booking %s already paid, skipping settlement", booking_id)
            return SettlementResult(booking=booking, settled=False)

        if not PaymentStateMachine.can_settle(booking.status, booking.payment_status):
            # The lifecycle may have moved since the order was created.
            self.db.rollback()
            raise PaymentNotAllowedError(
                f"Booking {booking_id} is {booking.status.value}; only completed bookings can be paid"
            )

        self.booking_repository.mark_paid(booking, payment_reference)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)
        logger.info("Booking %s marked as paid reference=%s", booking_id, payment_reference)

        if self.broadcaster is not None:
            self.side_effects.dispatch(
                "booking-paid-broadcast",
                self.broadcaster.publish,
                BOOKING_PAID,
                booking_payload(booking),
            )
        return SettlementResult(booking=booking, settled=True)

    def _get_owned_booking(self, booking_id: int, client_id: int, lock: bool = False) -> Booking:
        if lock:
            booking = self.booking_repository.lock_by_id(booking_id)
        else:
            booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            self.db.rollback()
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.client_id != client_id:
            self.db.rollback()
            raise ForbiddenError(f"Client {client_id} does not own booking {booking_id}")
        return booking

    def _correlate(self, event: dict[str, Any]) -> tuple[int | None, str | None]:
        payload = event.get("payload") or {}
        payment = (payload.get("payment") or {}).get("entity") or {}
        order = (payload.get("order") or {}).get("entity") or {}

        payment_id = payment.get("id")
        notes = payment.get("notes") or order.get("notes") or {}
        booking_id = notes.get("booking_id") if isinstance(notes, dict) else None
        if booking_id is not None:
            return int(booking_id), payment_id

        order_id = payment.get("order_id") or order.get("id")
        if order_id:
            booking = self.booking_repository.get_by_order_id(order_id)
            if booking is not None:
                return booking.id, payment_id

        return None, payment_id

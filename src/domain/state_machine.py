# src/domain/state_machine.py

from enum import Enum
from typing import Dict, FrozenSet

from src.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    STARTED = "started"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# Carer-driven lifecycle. Declined and completed are final.
_CARER_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.ACCEPTED, BookingStatus.DECLINED}),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.STARTED}),
    BookingStatus.STARTED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


class BookingStateMachine:
    """
    Legal moves for a booking as driven by its assigned carer.
    Admin overrides bypass this table entirely.
    """

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)
        return to_status in _CARER_TRANSITIONS[from_status]

    @classmethod
    def validate_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError naming both statuses
        when the carer may not make this move.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        cls._ensure_valid_status(status)
        return not _CARER_TRANSITIONS[status]

    @classmethod
    def get_allowed_transitions(cls, status: BookingStatus) -> FrozenSet[BookingStatus]:
        cls._ensure_valid_status(status)
        return _CARER_TRANSITIONS[status]

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        # Raw strings must be coerced by the caller first.
        if not isinstance(status, BookingStatus):
            raise TypeError(f"Expected BookingStatus, got {type(status).__name__}")


class PaymentStateMachine:
    """Payment runs beside the lifecycle: pending -> paid, one way."""

    @staticmethod
    def can_settle(
        booking_status: BookingStatus,
        payment_status: PaymentStatus,
    ) -> bool:
        return (
            booking_status == BookingStatus.COMPLETED
            and payment_status != PaymentStatus.PAID
        )

    @staticmethod
    def is_settled(payment_status: PaymentStatus) -> bool:
        return payment_status == PaymentStatus.PAID

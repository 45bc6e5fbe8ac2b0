

class CareBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the Care Booking Engine.
    """


class NotFoundError(CareBookingError):
    """Raised when a booking, carer or client does not exist."""


class ForbiddenError(CareBookingError):
    """Raised when the acting party has no rights over the entity."""


class InvalidStateTransitionError(CareBookingError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Cannot change status from "
            f"{from_state!r} to {to_state!r}"
        )
        super().__init__(message)


class InvalidSignatureError(CareBookingError):
    """Raised when a payment signature does not verify."""


class AlreadySettledError(CareBookingError):
    """Raised when a payment is requested for a booking that is already paid."""


class PaymentNotAllowedError(CareBookingError):
    """Raised when a booking is not in a payable state."""


class DependencyFailure(CareBookingError):
    """
    Raised by email, push and broadcast collaborators.
    Never propagates past the side effect runner.
    """

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"{channel} delivery failed: {reason}")

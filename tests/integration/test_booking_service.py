# tests/integration/test_booking_service.py

import datetime as dt
from decimal import Decimal

import pytest

from src.domain.actors import ClientActor
from src.domain.exceptions import (
    DependencyFailure,
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
)
from src.domain.state_machine import BookingStatus, PaymentStatus


def advance(service, booking, carer_id, *statuses):
    for status in statuses:
        booking = service.transition(booking.id, carer_id, status)
    return booking


# ---------------------
# CREATION
# ---------------------

def test_new_booking_is_pending(make_booking, carer, care_client):
    booking = make_booking()

    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.total_cost is None
    assert booking.location == "Unknown"
    assert booking.carer_id == carer.id
    assert booking.client_id == care_client.id


def test_creation_notifies_carer(make_booking, booking_service, carer, push_sender):
    booking = make_booking()

    assert push_sender.sent[0]["token"] == "fcm-token-amara"
    assert push_sender.sent[0]["data"]["booking_id"] == str(booking.id)

    notifications = booking_service.list_carer_notifications(carer.id)
    assert [n.message for n in notifications] == [
        "New Companionship booking for 2026-10-21 at 09:00"
    ]
    assert not notifications[0].is_read


def test_creation_broadcasts_to_live_sessions(make_booking, live_session):
    booking = make_booking()

    assert live_session.messages[0]["event"] == "booking-created"
    assert live_session.messages[0]["data"]["id"] == booking.id
    assert live_session.messages[0]["data"]["status"] == "pending"


def test_unknown_carer(booking_service, care_client):
    with pytest.raises(NotFoundError):
        booking_service.create_booking(
            client=ClientActor(care_client.id),
            carer_id=999,
            service_type="Companionship",
            date=dt.date(2026, 10, 21),
            time="09:00",
        )


def test_unknown_client(booking_service, carer):
    with pytest.raises(NotFoundError):
        booking_service.create_booking(
            client=ClientActor(999),
            carer_id=carer.id,
            service_type="Companionship",
            date=dt.date(2026, 10, 21),
            time="09:00",
        )


@pytest.mark.parametrize("failure", [
    DependencyFailure("push", "unregistered token"),
    RuntimeError("firebase exploded"),
])
def test_push_failure_does_not_fail_creation(make_booking, booking_service, push_sender, failure):
    push_sender.fail_with = failure

    booking = make_booking()

    assert booking.id is not None
    assert booking_service.list_all_bookings()[0].id == booking.id


def test_unexpected_push_error_reaches_error_sink(make_booking, push_sender, error_sink):
    push_sender.fail_with = RuntimeError("firebase exploded")

    make_booking()

    assert [name for name, _ in error_sink.errors] == ["new-booking-push"]


# ---------------------
# TRANSITIONS
# ---------------------

def test_full_lifecycle_prices_on_completion(make_booking, booking_service, carer):
    booking = make_booking(hours=Decimal("3"))

    booking = advance(booking_service, booking, carer.id, "accepted", "started")
    assert booking.total_cost is None

    booking = booking_service.transition(booking.id, carer.id, BookingStatus.COMPLETED)

    assert booking.status == BookingStatus.COMPLETED
    assert booking.total_cost == Decimal("60.00")


def test_status_email_on_every_transition(make_booking, booking_service, carer, email_sender):
    booking = make_booking()

    advance(booking_service, booking, carer.id, "accepted", "started", "completed")

    subjects = [mail["subject"] for mail in email_sender.sent]
    assert subjects == [
        "Booking Updated: ACCEPTED",
        "Booking Updated: STARTED",
        "Booking Updated: COMPLETED",
    ]
    assert "Total Cost: £60.00" in email_sender.sent[-1]["text"]
    assert email_sender.sent[-1]["to"] == "margaret@example.com"


def test_transition_broadcasts_update(make_booking, booking_service, carer, live_session):
    booking = make_booking()

    booking_service.transition(booking.id, carer.id, "accepted")

    events = [message["event"] for message in live_session.messages]
    assert events == ["booking-created", "booking-updated"]
    assert live_session.messages[-1]["data"]["status"] == "accepted"


def test_zero_rate_completes_at_zero(make_booking, booking_service, carer, db):
    carer.charge_hrs = None
    db.commit()
    booking = make_booking()

    booking = advance(booking_service, booking, carer.id, "accepted", "started", "completed")

    assert booking.total_cost == Decimal("0.00")


def test_illegal_transition(make_booking, booking_service, carer):
    booking = make_booking()

    with pytest.raises(InvalidStateTransitionError):
        booking_service.transition(booking.id, carer.id, "started")

    assert booking_service.list_all_bookings()[0].status == BookingStatus.PENDING


def test_unknown_status_string(make_booking, booking_service, carer):
    booking = make_booking()

    with pytest.raises(InvalidStateTransitionError):
        booking_service.transition(booking.id, carer.id, "cancelled")


def test_other_carer_is_forbidden(make_booking, booking_service, other_carer):
    booking = make_booking()

    with pytest.raises(ForbiddenError):
        booking_service.transition(booking.id, other_carer.id, "accepted")


def test_ownership_checked_before_legality(make_booking, booking_service, other_carer):
    booking = make_booking()

    # pending -> completed is also illegal; ownership wins.
    with pytest.raises(ForbiddenError):
        booking_service.transition(booking.id, other_carer.id, "completed")


def test_missing_booking(booking_service, carer):
    with pytest.raises(NotFoundError):
        booking_service.transition(404, carer.id, "accepted")


def test_email_failure_keeps_new_status(make_booking, booking_service, carer, email_sender, error_sink):
    booking = make_booking()
    email_sender.fail_with = RuntimeError("resend unavailable")

    booking = booking_service.transition(booking.id, carer.id, "accepted")

    assert booking.status == BookingStatus.ACCEPTED
    assert booking_service.list_all_bookings()[0].status == BookingStatus.ACCEPTED
    assert [name for name, _ in error_sink.errors] == ["status-email"]


# ---------------------
# STORED COST
# ---------------------

def test_rate_change_after_completion_keeps_cost(make_booking, booking_service, carer, db):
    booking = make_booking()
    advance(booking_service, booking, carer.id, "accepted", "started", "completed")

    carer.charge_hrs = Decimal("35.00")
    db.commit()

    assert booking_service.list_carer_bookings(carer.id)[0].total_cost == Decimal("60.00")


def test_admin_recompleting_keeps_cost(make_booking, booking_service, carer, db):
    booking = make_booking()
    advance(booking_service, booking, carer.id, "accepted", "started", "completed")
    carer.charge_hrs = Decimal("35.00")
    db.commit()

    booking = booking_service.admin_override(booking.id, BookingStatus.COMPLETED)

    assert booking.total_cost == Decimal("60.00")


# ---------------------
# ADMIN OVERRIDE
# ---------------------

def test_admin_can_revive_declined_booking(make_booking, booking_service, carer, email_sender):
    booking = make_booking()
    booking_service.transition(booking.id, carer.id, "declined")

    booking = booking_service.admin_override(booking.id, "completed")

    assert booking.status == BookingStatus.COMPLETED
    assert booking.total_cost == Decimal("60.00")
    assert email_sender.sent[-1]["subject"] == "Booking Update (Admin Action): COMPLETED"


def test_admin_moving_off_completed_clears_cost(make_booking, booking_service, carer):
    booking = make_booking()
    advance(booking_service, booking, carer.id, "accepted", "started", "completed")

    booking = booking_service.admin_override(booking.id, "started")

    assert booking.status == BookingStatus.STARTED
    assert booking.total_cost is None


def test_admin_cannot_touch_paid_booking(make_booking, booking_service, payment_service, carer):
    booking = make_booking()
    advance(booking_service, booking, carer.id, "accepted", "started", "completed")
    payment_service.settle(booking.id, "pay_0001")

    with pytest.raises(ForbiddenError):
        booking_service.admin_override(booking.id, "pending")


def test_admin_unknown_booking(booking_service):
    with pytest.raises(NotFoundError):
        booking_service.admin_override(404, "accepted")


# ---------------------
# VIEWS
# ---------------------

def test_list_views_are_scoped(make_booking, booking_service, carer, other_carer, care_client):
    mine = make_booking()
    theirs = make_booking(carer_id=other_carer.id)

    assert [b.id for b in booking_service.list_carer_bookings(carer.id)] == [mine.id]
    assert [b.id for b in booking_service.list_carer_bookings(other_carer.id)] == [theirs.id]
    assert {b.id for b in booking_service.list_client_bookings(care_client.id)} == {mine.id, theirs.id}
    assert len(booking_service.list_all_bookings()) == 2


def test_latest_carer_booking(make_booking, booking_service, carer, other_carer):
    assert booking_service.latest_carer_booking(carer.id) is None

    make_booking()
    second = make_booking(service_type="Respite")

    assert booking_service.latest_carer_booking(carer.id).id == second.id
    assert booking_service.latest_carer_booking(other_carer.id) is None


# ---------------------
# PUSH TOKENS
# ---------------------

def test_register_push_token(booking_service, carer, db):
    booking_service.register_push_token(carer.id, "  new-token  ")

    db.refresh(carer)
    assert carer.fcm_token == "new-token"


def test_register_blank_push_token(booking_service, carer):
    with pytest.raises(ValueError):
        booking_service.register_push_token(carer.id, "   ")


def test_register_push_token_unknown_carer(booking_service):
    with pytest.raises(NotFoundError):
        booking_service.register_push_token(999, "token")


# ---------------------
# EARNINGS
# ---------------------

def test_weekly_earnings_counts_paid_completed_only(
    make_booking,
    booking_service,
    payment_service,
    carer,
):
    paid = make_booking(hours=Decimal("3"))
    advance(booking_service, paid, carer.id, "accepted", "started", "completed")
    payment_service.settle(paid.id, "pay_0001")

    unpaid = make_booking(hours=Decimal("5"))
    advance(booking_service, unpaid, carer.id, "accepted", "started", "completed")

    next_week = make_booking(hours=Decimal("2"), date=dt.date(2026, 10, 28))
    advance(booking_service, next_week, carer.id, "accepted", "started", "completed")
    payment_service.settle(next_week.id, "pay_0002")

    earnings = booking_service.weekly_earnings(carer.id, dt.date(2026, 10, 24))

    assert earnings.week_start == dt.date(2026, 10, 19)
    assert earnings.week_end == dt.date(2026, 10, 25)
    assert earnings.total_earnings == Decimal("60.00")
    assert [b.id for b in earnings.bookings] == [paid.id]


def test_weekly_earnings_empty_week(booking_service, carer):
    earnings = booking_service.weekly_earnings(carer.id, dt.date(2026, 10, 19))

    assert earnings.total_earnings == Decimal("0")
    assert earnings.bookings == []

from datetime import datetime, timedelta

import pytest

from app.core.exceptions import InvalidTransitionError
from app.models.booking import Booking, BookingStatus
from app.services import lifecycle


def _booking(status, end=datetime(2026, 3, 2, 12, 0), **kwargs):
    return Booking(
        status=status.value,
        start_time=datetime(2026, 3, 2, 10, 0),
        end_time=end,
        extensions=[],
        penalties=[],
        **kwargs,
    )


@pytest.mark.parametrize(
    "current, target",
    [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.ACTIVE),
        (BookingStatus.CONFIRMED, BookingStatus.NO_SHOW),
        (BookingStatus.ACTIVE, BookingStatus.COMPLETED),
        (BookingStatus.ACTIVE, BookingStatus.EXPIRED),
    ],
)
def test_allowed_transitions(current, target):
    booking = lifecycle.transition(_booking(current), target)
    assert booking.status == target.value


@pytest.mark.parametrize(
    "current, target",
    [
        (BookingStatus.PENDING, BookingStatus.COMPLETED),
        (BookingStatus.PENDING, BookingStatus.ACTIVE),
        (BookingStatus.ACTIVE, BookingStatus.CANCELLED),
        (BookingStatus.COMPLETED, BookingStatus.ACTIVE),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
        (BookingStatus.NO_SHOW, BookingStatus.ACTIVE),
    ],
)
def test_rejected_transitions(current, target):
    booking = _booking(current)
    with pytest.raises(InvalidTransitionError) as exc_info:
        lifecycle.transition(booking, target)

    assert booking.status == current.value
    assert exc_info.value.current_status == current.value
    assert exc_info.value.details["allowed_transitions"] == lifecycle.allowed_transitions(current.value)


def test_terminal_statuses_have_no_exits():
    for status in ("completed", "cancelled", "expired", "no_show"):
        assert lifecycle.allowed_transitions(status) == []


def test_confirmed_booking_expires_after_end():
    booking = _booking(BookingStatus.CONFIRMED)
    assert lifecycle.reconcile_state(booking, datetime(2026, 3, 2, 11, 0)) is False
    assert lifecycle.reconcile_state(booking, datetime(2026, 3, 2, 12, 1)) is True
    assert booking.status == "expired"


def test_reconcile_is_idempotent():
    booking = _booking(BookingStatus.CONFIRMED)
    now = datetime(2026, 3, 2, 13, 0)
    assert lifecycle.reconcile_state(booking, now) is True
    assert lifecycle.reconcile_state(booking, now) is False
    assert booking.status == "expired"


def test_active_booking_expires_only_after_grace():
    grace = timedelta(hours=24)
    booking = _booking(BookingStatus.ACTIVE, actual_entry_time=datetime(2026, 3, 2, 10, 0))

    assert lifecycle.reconcile_state(booking, datetime(2026, 3, 2, 18, 0), grace) is False
    assert booking.status == "active"
    assert lifecycle.reconcile_state(booking, datetime(2026, 3, 3, 12, 1), grace) is True
    assert booking.status == "expired"


def test_pending_booking_is_not_reconciled():
    booking = _booking(BookingStatus.PENDING)
    assert lifecycle.expiry_target(booking, datetime(2026, 3, 5)) is None

"""
Booking status state machine.

    pending -> confirmed -> active -> completed
    pending -> cancelled
    confirmed -> cancelled | expired | no_show
    active -> expired

Terminal: completed, cancelled, expired, no_show.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple
from app.core.exceptions import InvalidTransitionError
from app.models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)

S = BookingStatus

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PENDING.value: frozenset({S.CONFIRMED.value, S.CANCELLED.value}),
    S.CONFIRMED.value: frozenset({
        S.ACTIVE.value,
        S.CANCELLED.value,
        S.EXPIRED.value,
        S.NO_SHOW.value,
    }),
    S.ACTIVE.value: frozenset({S.COMPLETED.value, S.EXPIRED.value}),
    S.COMPLETED.value: frozenset(),
    S.CANCELLED.value: frozenset(),
    S.EXPIRED.value: frozenset(),
    S.NO_SHOW.value: frozenset(),
}


def allowed_transitions(status: str) -> List[str]:
    return sorted(ALLOWED_TRANSITIONS.get(status, frozenset()))


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_status(booking: Booking, expected: Tuple[BookingStatus, ...], message: str) -> None:
    """Raise unless the booking is in one of the ``expected`` statuses."""
    if booking.status not in {s.value for s in expected}:
        raise InvalidTransitionError(
            message,
            current_status=booking.status,
            allowed_transitions=allowed_transitions(booking.status),
        )


def transition(booking: Booking, target: BookingStatus) -> Booking:
    """Move ``booking`` to ``target`` or raise InvalidTransitionError."""
    target_value = target.value
    if not can_transition(booking.status, target_value):
        raise InvalidTransitionError(
            f"Cannot move booking from {booking.status} to {target_value}",
            current_status=booking.status,
            allowed_transitions=allowed_transitions(booking.status),
        )
    logger.info("Booking %s: %s -> %s", booking.id, booking.status, target_value)
    booking.status = target_value
    return booking


def expiry_target(
    booking: Booking,
    now: datetime,
    active_grace: timedelta = timedelta(0),
) -> Optional[BookingStatus]:
    """Status the booking should expire to at ``now``, or None if it is current."""
    if booking.status == S.CONFIRMED and now > booking.end_time:
        return S.EXPIRED
    if (
        booking.status == S.ACTIVE
        and booking.actual_exit_time is None
        and now > booking.end_time + active_grace
    ):
        return S.EXPIRED
    return None


def reconcile_state(
    booking: Booking,
    now: datetime,
    active_grace: timedelta = timedelta(0),
) -> bool:
    """
    Apply time-driven transitions. Idempotent; returns True if status changed.

    A confirmed booking past its end without check-in expires. An active
    booking expires only once ``active_grace`` has passed beyond its end,
    so an overstaying vehicle can still check out and be charged.
    """
    target = expiry_target(booking, now, active_grace)
    if target is None:
        return False
    transition(booking, target)
    return True

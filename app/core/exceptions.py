"""
Domain exceptions for the booking core.

Each error carries a machine-readable code and a details payload so the
HTTP layer can turn it into a structured response without inspecting it.
"""
from typing import Any, Dict, Iterable, List, Optional


class DomainError(Exception):
    """Base exception for all booking-domain errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Malformed or unacceptable input."""

    status_code = 400


class NotFoundError(DomainError):
    """A location, space or booking id does not resolve."""

    status_code = 404


class PermissionDeniedError(DomainError):
    """Actor is not the booking owner or not assigned to the location."""

    status_code = 403


class ConflictError(DomainError):
    """Requested window overlaps confirmed or active bookings on the space."""

    status_code = 409

    def __init__(self, message: str, conflicting_bookings: Iterable[Any] = ()) -> None:
        self.conflicting_bookings = list(conflicting_bookings)
        super().__init__(
            message,
            details={
                "conflicting_bookings": [
                    {
                        "id": str(b.id),
                        "start_time": b.start_time.isoformat(),
                        "end_time": b.end_time.isoformat(),
                    }
                    for b in self.conflicting_bookings
                ]
            },
        )


class InvalidTransitionError(DomainError):
    """Booking status does not allow the requested action."""

    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: str,
        allowed_transitions: List[str],
    ) -> None:
        self.current_status = current_status
        self.allowed_transitions = allowed_transitions
        super().__init__(
            message,
            details={
                "current_status": current_status,
                "allowed_transitions": allowed_transitions,
            },
        )


class ActiveBookingConflictError(DomainError):
    """A space cannot go to maintenance while a booking currently covers it."""

    status_code = 409

    def __init__(self, message: str, booking_ids: Iterable[Any] = ()) -> None:
        self.booking_ids = [str(b) for b in booking_ids]
        super().__init__(message, details={"booking_ids": self.booking_ids})


class SpaceLockTimeoutError(DomainError):
    """The per-space lock could not be acquired in time."""

    status_code = 503

"""
Booking error taxonomy.

Every failure raised by the booking core is a BookingError subclass with a
stable ``code``; routes and consumers branch on the class (or the code) and
never on the message text.
"""

from enum import Enum
from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for all booking failures."""

    code = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


# ---- validation (user-correctable) ----

class WindowRejection(str, Enum):
    TOO_SOON = "too_soon"
    INVALID_ORDER = "invalid_order"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    reason: Optional[WindowRejection] = None


class TooSoonError(ValidationError):
    code = "TOO_SOON"
    reason = WindowRejection.TOO_SOON

    def __init__(self, lead_hours: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Booking must be at least {lead_hours:g} hours from now",
            details=details,
        )


class InvalidOrderError(ValidationError):
    code = "INVALID_ORDER"
    reason = WindowRejection.INVALID_ORDER

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__("End time must be after start time", details=details)


class TooShortError(ValidationError):
    code = "TOO_SHORT"
    reason = WindowRejection.TOO_SHORT

    def __init__(self, min_hours: float, details: Optional[Dict[str, Any]] = None):
        unit = "hour" if min_hours == 1 else "hours"
        super().__init__(f"Booking must be at least {min_hours:g} {unit} long", details=details)


class TooLongError(ValidationError):
    code = "TOO_LONG"
    reason = WindowRejection.TOO_LONG

    def __init__(self, max_hours: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Booking cannot exceed {max_hours:g} hours", details=details)


class MessageTooLongError(ValidationError):
    code = "MESSAGE_TOO_LONG"

    def __init__(self, max_length: int, length: int):
        super().__init__(
            f"Message cannot exceed {max_length} characters",
            details={"max_length": max_length, "length": length},
        )


class SelfBookingError(ValidationError):
    code = "SELF_BOOKING"

    def __init__(self):
        super().__init__("You cannot book yourself")


# ---- conflicts ----

class ConflictError(BookingError):
    """The requested window collides with the provider's active bookings."""

    code = "BOOKING_CONFLICT"

    def __init__(self, conflicting=(), message: Optional[str] = None):
        self.conflicting = tuple(conflicting)
        super().__init__(
            message or "Time slot conflicts with existing booking",
            details={
                "conflicting_bookings": [
                    {
                        "booking_id": b.booking_id,
                        "start_time": b.start_time.isoformat(),
                        "end_time": b.end_time.isoformat(),
                    }
                    for b in self.conflicting
                ]
            },
        )

    @property
    def conflicting_ids(self) -> list[str]:
        return [b.booking_id for b in self.conflicting]


# ---- lifecycle ----

class InvalidTransitionError(BookingError):
    """The booking is not in a state where the actor may move it to target."""

    code = "INVALID_TRANSITION"

    def __init__(self, current, target, role=None):
        self.current = current
        self.target = target
        self.role = role
        super().__init__(
            "This booking has already been updated",
            details={
                "current_status": getattr(current, "value", current),
                "target_status": getattr(target, "value", target),
                "role": getattr(role, "value", role),
            },
        )


class NotAParticipantError(BookingError):
    code = "NOT_A_PARTICIPANT"

    def __init__(self, booking_id: str, actor_id: str):
        super().__init__(
            "You are not a participant in this booking",
            details={"booking_id": booking_id, "actor_id": actor_id},
        )


# ---- repository ----

class RepositoryError(BookingError):
    code = "REPOSITORY_ERROR"


class RetryableRepositoryError(RepositoryError):
    """Transient storage failure (network, connection, timeout); safe to retry."""

    code = "REPOSITORY_UNAVAILABLE"


class FatalRepositoryError(RepositoryError):
    """Storage rejected the operation; retrying will not help."""

    code = "REPOSITORY_FAILURE"


class BookingNotFoundError(FatalRepositoryError):
    code = "BOOKING_NOT_FOUND"

    def __init__(self, booking_id: str):
        super().__init__("Booking not found", details={"booking_id": booking_id})

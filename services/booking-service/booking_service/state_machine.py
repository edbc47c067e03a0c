"""
Booking status lifecycle.

    pending ──provider──────────────▶ confirmed
    pending ──provider|requester────▶ cancelled
    confirmed ──provider|requester──▶ cancelled
    confirmed ──either party|system─▶ completed

completed and cancelled are terminal. Nothing ever returns to pending.
"""

from .enums import BookingStatus, Role, TERMINAL_STATUSES
from .errors import InvalidTransitionError, NotAParticipantError

_PARTIES = frozenset({Role.PROVIDER, Role.REQUESTER})

# from-status -> {to-status: roles allowed to make the move}
TRANSITIONS: dict[BookingStatus, dict[BookingStatus, frozenset[Role]]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED: frozenset({Role.PROVIDER}),
        BookingStatus.CANCELLED: _PARTIES,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.CANCELLED: _PARTIES,
        BookingStatus.COMPLETED: _PARTIES | {Role.SYSTEM},
    },
    BookingStatus.COMPLETED: {},
    BookingStatus.CANCELLED: {},
}

EVENT_TYPES: dict[BookingStatus, str] = {
    BookingStatus.PENDING: "booking.created",
    BookingStatus.CONFIRMED: "booking.confirmed",
    BookingStatus.CANCELLED: "booking.cancelled",
    BookingStatus.COMPLETED: "booking.completed",
}

# a new status must be wired into both tables before the service will import
_missing = (set(BookingStatus) - set(TRANSITIONS)) | (set(BookingStatus) - set(EVENT_TYPES))
if _missing:
    raise RuntimeError(f"Unmapped booking statuses: {sorted(s.value for s in _missing)}")


def allowed_transitions(status: BookingStatus) -> frozenset[BookingStatus]:
    return frozenset(TRANSITIONS[BookingStatus(status)])


def is_terminal(status: BookingStatus) -> bool:
    return not TRANSITIONS[BookingStatus(status)]


for _status in TERMINAL_STATUSES:
    if not is_terminal(_status):
        raise RuntimeError(f"Terminal status {_status.value} has outgoing transitions")


def can_transition(current: BookingStatus, target: BookingStatus, role: Role) -> bool:
    current, target = BookingStatus(current), BookingStatus(target)
    if target not in allowed_transitions(current):
        return False
    return Role(role) in TRANSITIONS[current][target]


def check_transition(current: BookingStatus, target: BookingStatus, role: Role) -> None:
    if not can_transition(current, target, role):
        raise InvalidTransitionError(BookingStatus(current), BookingStatus(target), Role(role))


def resolve_role(booking, actor_id: str, system_actor_id: str | None = None) -> Role:
    """
    Work out which side of the booking ``actor_id`` is on.

    A provider who somehow requested their own booking is treated as the
    provider.
    """
    if actor_id == booking.provider_id:
        return Role.PROVIDER
    if actor_id == booking.requester_id:
        return Role.REQUESTER
    if system_actor_id and actor_id == system_actor_id:
        return Role.SYSTEM
    raise NotAParticipantError(booking.booking_id, actor_id)


def event_type_for(status: BookingStatus) -> str:
    return EVENT_TYPES[BookingStatus(status)]

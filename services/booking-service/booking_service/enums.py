from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Role(str, Enum):
    PROVIDER = "provider"
    REQUESTER = "requester"
    # automatic trigger (e.g. completion once end_time has elapsed)
    SYSTEM = "system"


# statuses that hold a provider's time
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

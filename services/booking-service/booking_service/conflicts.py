from dataclasses import dataclass, field
from typing import Iterable

from .enums import ACTIVE_STATUSES
from .timewindow import TimeWindow


@dataclass(frozen=True)
class ConflictReport:
    has_conflict: bool
    conflicting: tuple = field(default_factory=tuple)

    @property
    def conflicting_ids(self) -> list[str]:
        return [b.booking_id for b in self.conflicting]


def detect_conflicts(
    provider_id: str,
    window: TimeWindow,
    existing: Iterable,
    exclude_booking_id: str | None = None,
) -> ConflictReport:
    """
    Test a candidate window against a provider's bookings.

    Only pending/confirmed bookings of ``provider_id`` hold time; anything
    else in ``existing`` is skipped. Windows that merely touch (one ends
    exactly when the other starts) do not conflict.
    """
    hits = []
    for booking in existing:
        if booking.provider_id != provider_id:
            continue
        if booking.status not in ACTIVE_STATUSES:
            continue
        if exclude_booking_id and booking.booking_id == exclude_booking_id:
            continue
        if window.overlaps(booking.start_time, booking.end_time):
            hits.append(booking)

    hits.sort(key=lambda b: (b.start_time, b.booking_id))
    return ConflictReport(has_conflict=bool(hits), conflicting=tuple(hits))

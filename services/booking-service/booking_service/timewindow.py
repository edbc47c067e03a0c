from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from . import config
from .errors import (
    InvalidOrderError,
    MessageTooLongError,
    TooLongError,
    TooShortError,
    TooSoonError,
)

MAX_MESSAGE_LENGTH = 500


@dataclass(frozen=True)
class WindowPolicy:
    min_lead_time: timedelta = timedelta(hours=config.MIN_LEAD_HOURS)
    min_duration: timedelta = timedelta(hours=config.MIN_DURATION_HOURS)
    max_duration: timedelta = timedelta(hours=config.MAX_DURATION_HOURS)


DEFAULT_POLICY = WindowPolicy()


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other_start: datetime, other_end: datetime) -> bool:
        return overlaps(self.start, self.end, other_start, other_end)

    def to_dict(self) -> dict:
        return {"start_time": self.start.isoformat(), "end_time": self.end.isoformat()}


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def validate_window(
    start: datetime,
    end: datetime,
    now: datetime,
    policy: WindowPolicy = DEFAULT_POLICY,
) -> TimeWindow:
    """
    Check a proposed window against lead-time and duration rules.

    Rejections are raised in a fixed order (too soon, end before start,
    too short, too long) so the first broken rule is the one reported.
    """
    start = as_utc(start)
    end = as_utc(end)
    now = as_utc(now)

    details = {"start_time": start.isoformat(), "end_time": end.isoformat()}

    if start <= now + policy.min_lead_time:
        raise TooSoonError(_hours(policy.min_lead_time), details=details)

    if end <= start:
        raise InvalidOrderError(details=details)

    duration = end - start
    if duration < policy.min_duration:
        raise TooShortError(_hours(policy.min_duration), details=details)

    if duration > policy.max_duration:
        raise TooLongError(_hours(policy.max_duration), details=details)

    return TimeWindow(start=start, end=end)


def validate_message(message: str | None) -> str | None:
    if message is None:
        return None
    message = message.strip()
    if not message:
        return None
    if len(message) > MAX_MESSAGE_LENGTH:
        raise MessageTooLongError(MAX_MESSAGE_LENGTH, len(message))
    return message

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Enum, Index, Integer, String, Text

from shared.database import Base, UTCDateTime

from .enums import BookingStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    booking_id = Column(String, unique=True, nullable=False, index=True)

    provider_id = Column(String, nullable=False, index=True)
    requester_id = Column(String, nullable=False, index=True)

    start_time = Column(UTCDateTime(), nullable=False)
    end_time = Column(UTCDateTime(), nullable=False)

    status = Column(
        Enum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            length=16,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    message = Column(String(500), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_bookings_provider_window", "provider_id", "start_time", "end_time"),
    )

    def __repr__(self):
        return (
            f"<Booking {self.booking_id} provider={self.provider_id} "
            f"{self.start_time}-{self.end_time} {self.status}>"
        )


class OutboxEvent(Base):
    """Lifecycle event written in the same transaction as the booking change."""

    __tablename__ = "booking_events_outbox"

    PENDING = "PENDING"
    SENT = "SENT"

    id = Column(Integer, primary_key=True)
    event_id = Column(String, unique=True, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    booking_id = Column(String, nullable=False, index=True)
    payload = Column(JSON, nullable=False)

    status = Column(String, nullable=False, default=PENDING, index=True)  # PENDING/SENT
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    published_at = Column(UTCDateTime(), nullable=True)

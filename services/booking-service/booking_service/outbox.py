"""
Transactional outbox for booking lifecycle events.

Booking writes add their event row in the same transaction, so a booking
change and its event commit together. OutboxRelay later pushes PENDING rows
to the broker in insertion order and marks them SENT.
"""

import logging

from sqlalchemy import func, select

from .events import to_json
from .models import OutboxEvent, utcnow

logger = logging.getLogger(__name__)


def enqueue(db, event: dict, booking_id: str) -> OutboxEvent:
    row = OutboxEvent(
        event_id=event["event_id"],
        event_type=event["event_type"],
        booking_id=booking_id,
        payload=event,
        status=OutboxEvent.PENDING,
        attempt_count=0,
    )
    db.add(row)
    return row


class OutboxRelay:
    def __init__(self, session_factory, publisher):
        self._session_factory = session_factory
        self._publisher = publisher

    async def flush(self, limit: int = 100) -> int:
        """
        Publish up to ``limit`` pending events, oldest first.

        Stops at the first publish failure so per-booking ordering holds; the
        failed row stays PENDING with its error recorded. Returns the number
        of events published.
        """
        if not self._publisher.enabled:
            return 0

        sent = 0
        async with self._session_factory() as db:
            async with db.begin():
                stmt = (
                    select(OutboxEvent)
                    .where(OutboxEvent.status == OutboxEvent.PENDING)
                    .order_by(OutboxEvent.id.asc())
                    .limit(limit)
                )
                if db.get_bind().dialect.name == "postgresql":
                    stmt = stmt.with_for_update(skip_locked=True)

                rows = (await db.execute(stmt)).scalars().all()
                for row in rows:
                    row.attempt_count += 1
                    try:
                        await self._publisher.publish(row.event_type, to_json(row.payload))
                    except Exception as e:
                        row.last_error = str(e)[:1000]
                        logger.warning(
                            "publish failed for %s (%s), attempt %s: %s",
                            row.event_type, row.event_id, row.attempt_count, e,
                        )
                        break
                    row.status = OutboxEvent.SENT
                    row.published_at = utcnow()
                    row.last_error = None
                    sent += 1

        if sent:
            logger.info("published %s booking event(s)", sent)
        return sent

    async def pending_count(self) -> int:
        async with self._session_factory() as db:
            return await db.scalar(
                select(func.count()).select_from(OutboxEvent).where(OutboxEvent.status == OutboxEvent.PENDING)
            )

"""
Booking persistence.

BookingRepository is the contract the orchestrator talks to;
SqlBookingRepository implements it over SQLAlchemy async sessions. Writes
are guarded so concurrent callers cannot double-book a provider or apply two
transitions to the same booking.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, text, update
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from . import outbox
from .conflicts import detect_conflicts
from .enums import ACTIVE_STATUSES, BookingStatus, Role
from .errors import (
    BookingError,
    BookingNotFoundError,
    ConflictError,
    FatalRepositoryError,
    InvalidTransitionError,
    RetryableRepositoryError,
)
from .events import booking_event
from .models import Booking, utcnow
from .state_machine import event_type_for
from .timewindow import TimeWindow

logger = logging.getLogger(__name__)

NO_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_provider"


@dataclass(frozen=True)
class BookingDraft:
    provider_id: str
    requester_id: str
    window: TimeWindow
    message: str | None = None
    requested_at: datetime = field(default_factory=utcnow)


class BookingRepository(ABC):
    """Persistence contract consumed by the booking orchestrator."""

    @abstractmethod
    async def create(self, draft: BookingDraft) -> Booking:
        """Insert a pending booking; raises ConflictError if the window is taken."""

    @abstractmethod
    async def list_for_provider(self, provider_id: str, statuses: Iterable[BookingStatus]) -> list[Booking]:
        ...

    @abstractmethod
    async def update_status(
        self,
        booking_id: str,
        new_status: BookingStatus,
        actor_id: str,
        expected_current_status: BookingStatus,
        at: datetime | None = None,
    ) -> Booking:
        """Apply ``new_status`` only if the stored status is still the expected one."""

    @abstractmethod
    async def get_by_id(self, booking_id: str) -> Booking:
        ...

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        role: Role,
        statuses: Iterable[BookingStatus] | None = None,
        limit: int | None = None,
        offset: int = 0,
        soonest_first: bool = False,
    ) -> list[Booking]:
        ...


def _is_overlap_violation(e: IntegrityError) -> bool:
    orig = getattr(e, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None) or ""
    if constraint_name == NO_OVERLAP_CONSTRAINT:
        return True
    message = str(orig or e).lower()
    return NO_OVERLAP_CONSTRAINT in message or "exclusion constraint" in message


@dataclass
class _ProviderLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0  # current holder plus waiters


@asynccontextmanager
async def storage_errors(operation: str):
    """Translate driver/SQLAlchemy failures into the repository error taxonomy."""
    try:
        yield
    except BookingError:
        raise
    except IntegrityError as e:
        raise FatalRepositoryError(
            f"{operation} rejected by storage", details={"error": str(e.orig or e)}
        ) from e
    except (OperationalError, InterfaceError, PoolTimeoutError, ConnectionError, TimeoutError) as e:
        logger.warning("%s failed with transient storage error: %s", operation, e)
        raise RetryableRepositoryError(
            f"{operation} failed, storage temporarily unavailable", details={"error": str(e)}
        ) from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise RetryableRepositoryError(
                f"{operation} failed, storage connection lost", details={"error": str(e)}
            ) from e
        raise FatalRepositoryError(f"{operation} failed", details={"error": str(e)}) from e
    except SQLAlchemyError as e:
        raise FatalRepositoryError(f"{operation} failed", details={"error": str(e)}) from e


class SqlBookingRepository(BookingRepository):
    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._provider_locks: dict[str, _ProviderLock] = {}

    # ---- write guards ----

    @asynccontextmanager
    async def _provider_lock(self, provider_id: str):
        entry = self._provider_locks.get(provider_id)
        if entry is None:
            entry = self._provider_locks[provider_id] = _ProviderLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._provider_locks[provider_id]

    async def _lock_provider_schedule(self, db, provider_id: str):
        # serializes inserts for one provider across processes until commit
        if db.get_bind().dialect.name == "postgresql":
            await db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"bookings:provider:{provider_id}"},
            )

    async def _active_for_provider(self, db, provider_id: str, statuses) -> list[Booking]:
        res = await db.execute(
            select(Booking)
            .where(Booking.provider_id == provider_id)
            .where(Booking.status.in_([BookingStatus(s) for s in statuses]))
            .order_by(Booking.start_time.asc())
        )
        return list(res.scalars().all())

    # ---- contract ----

    async def create(self, draft: BookingDraft) -> Booking:
        async with self._provider_lock(draft.provider_id):
            try:
                async with storage_errors("create booking"):
                    return await self._insert(draft)
            except FatalRepositoryError as e:
                if isinstance(e.__cause__, IntegrityError) and _is_overlap_violation(e.__cause__):
                    existing = await self.list_for_provider(draft.provider_id, ACTIVE_STATUSES)
                    report = detect_conflicts(draft.provider_id, draft.window, existing)
                    raise ConflictError(report.conflicting) from e
                raise

    async def _insert(self, draft: BookingDraft) -> Booking:
        async with self._session_factory() as db:
            async with db.begin():
                await self._lock_provider_schedule(db, draft.provider_id)

                existing = await self._active_for_provider(db, draft.provider_id, ACTIVE_STATUSES)
                report = detect_conflicts(draft.provider_id, draft.window, existing)
                if report.has_conflict:
                    # detach before the rollback expires them
                    for hit in report.conflicting:
                        db.expunge(hit)
                    raise ConflictError(report.conflicting)

                booking = Booking(
                    booking_id=str(uuid.uuid4()),
                    provider_id=draft.provider_id,
                    requester_id=draft.requester_id,
                    start_time=draft.window.start,
                    end_time=draft.window.end,
                    status=BookingStatus.PENDING,
                    message=draft.message,
                    created_at=draft.requested_at,
                    updated_at=draft.requested_at,
                )
                db.add(booking)
                await db.flush()

                event = booking_event(
                    event_type_for(BookingStatus.PENDING),
                    booking,
                    actor_id=draft.requester_id,
                    occurred_at=draft.requested_at,
                )
                outbox.enqueue(db, event, booking.booking_id)
            return booking

    async def list_for_provider(self, provider_id: str, statuses: Iterable[BookingStatus]) -> list[Booking]:
        async with storage_errors("list provider bookings"):
            async with self._session_factory() as db:
                return await self._active_for_provider(db, provider_id, statuses)

    async def update_status(
        self,
        booking_id: str,
        new_status: BookingStatus,
        actor_id: str,
        expected_current_status: BookingStatus,
        at: datetime | None = None,
    ) -> Booking:
        new_status = BookingStatus(new_status)
        expected_current_status = BookingStatus(expected_current_status)
        at = at or utcnow()

        async with storage_errors("update booking status"):
            async with self._session_factory() as db:
                async with db.begin():
                    res = await db.execute(
                        update(Booking)
                        .where(Booking.booking_id == booking_id)
                        .where(Booking.status == expected_current_status)
                        .values(status=new_status, updated_at=at)
                        .execution_options(synchronize_session=False)
                    )
                    if res.rowcount == 0:
                        current = await db.scalar(
                            select(Booking.status).where(Booking.booking_id == booking_id)
                        )
                        if current is None:
                            raise BookingNotFoundError(booking_id)
                        # someone else moved it first
                        raise InvalidTransitionError(current, new_status)

                    booking = await db.scalar(select(Booking).where(Booking.booking_id == booking_id))
                    event = booking_event(event_type_for(new_status), booking, actor_id, occurred_at=at)
                    outbox.enqueue(db, event, booking_id)
                return booking

    async def get_by_id(self, booking_id: str) -> Booking:
        async with storage_errors("get booking"):
            async with self._session_factory() as db:
                booking = await db.scalar(select(Booking).where(Booking.booking_id == booking_id))
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def list_for_user(
        self,
        user_id: str,
        role: Role,
        statuses: Iterable[BookingStatus] | None = None,
        limit: int | None = None,
        offset: int = 0,
        soonest_first: bool = False,
    ) -> list[Booking]:
        column = Booking.provider_id if Role(role) == Role.PROVIDER else Booking.requester_id
        stmt = select(Booking).where(column == user_id)
        if statuses is not None:
            stmt = stmt.where(Booking.status.in_([BookingStatus(s) for s in statuses]))
        if soonest_first:
            stmt = stmt.order_by(Booking.start_time.asc(), Booking.id.asc())
        else:
            stmt = stmt.order_by(Booking.created_at.desc(), Booking.id.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with storage_errors("list user bookings"):
            async with self._session_factory() as db:
                res = await db.execute(stmt)
                return list(res.scalars().all())

"""Shared test fixtures."""

import pytest

from shared.database import Base, get_engine, get_session

from booking_service.orchestrator import BookingService
from booking_service.outbox import OutboxRelay
from booking_service.repository import SqlBookingRepository

from factories import NOW, PROVIDER, REQUESTER, at, make_publisher


@pytest.fixture
async def session_factory(tmp_path):
    # file-backed so concurrent sessions get their own connections
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session(engine)
    await engine.dispose()


@pytest.fixture
def repository(session_factory):
    return SqlBookingRepository(session_factory)


@pytest.fixture
def publisher():
    return make_publisher()


@pytest.fixture
def relay(session_factory, publisher):
    return OutboxRelay(session_factory, publisher)


@pytest.fixture
def service(repository, relay):
    return BookingService(repository, relay=relay, clock=lambda: NOW, system_actor_id="system")


@pytest.fixture
async def pending_booking(service):
    return await service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16), "see you there")


@pytest.fixture
async def confirmed_booking(service, pending_booking):
    return await service.confirm_booking(pending_booking.booking_id, PROVIDER)

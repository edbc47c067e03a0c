"""Tests for the booking orchestrator (request + lifecycle entry points)."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from booking_service.enums import BookingStatus, Role
from booking_service.errors import (
    ConflictError,
    InvalidOrderError,
    InvalidTransitionError,
    MessageTooLongError,
    NotAParticipantError,
    SelfBookingError,
    TooLongError,
    TooSoonError,
)
from booking_service.orchestrator import BookingService
from booking_service.repository import SqlBookingRepository

from factories import NOW, OTHER_REQUESTER, PROVIDER, REQUESTER, STRANGER, at


class TestRequestBooking:
    async def test_creates_pending(self, service, publisher):
        booking = await service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16), "  bring tools ")

        assert booking.status == BookingStatus.PENDING
        assert booking.message == "bring tools"
        assert booking.created_at == NOW
        publisher.publish.assert_awaited_once()
        routing_key, body = publisher.publish.await_args.args
        assert routing_key == "booking.created"
        assert booking.booking_id in body

    async def test_scenario_a_overlap_then_adjacent(self, service):
        existing = await service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16))
        await service.confirm_booking(existing.booking_id, PROVIDER)

        with pytest.raises(ConflictError) as exc:
            await service.request_booking(PROVIDER, OTHER_REQUESTER, at(1, 15), at(1, 17))
        assert exc.value.conflicting_ids == [existing.booking_id]
        assert exc.value.details["conflicting_bookings"] == [
            {
                "booking_id": existing.booking_id,
                "start_time": at(1, 14).isoformat(),
                "end_time": at(1, 16).isoformat(),
            }
        ]

        adjacent = await service.request_booking(PROVIDER, OTHER_REQUESTER, at(1, 16), at(1, 18))
        assert adjacent.status == BookingStatus.PENDING

    async def test_pending_booking_also_blocks(self, service, pending_booking):
        with pytest.raises(ConflictError):
            await service.request_booking(PROVIDER, OTHER_REQUESTER, at(1, 15), at(1, 17))

    async def test_scenario_b_too_soon_despite_conflict(self, service, repository):
        # an existing booking right where the too-soon request lands
        start = NOW + timedelta(hours=3)
        await service.request_booking(PROVIDER, REQUESTER, start, start + timedelta(hours=2))

        soon = NOW + timedelta(minutes=30)
        with pytest.raises(TooSoonError):
            await service.request_booking(PROVIDER, OTHER_REQUESTER, soon, start + timedelta(hours=1))

    async def test_scenario_c_too_long_before_conflict_detection(self):
        repository = AsyncMock()
        service = BookingService(repository, clock=lambda: NOW)

        with pytest.raises(TooLongError):
            await service.request_booking(PROVIDER, REQUESTER, at(1, 9), at(1, 18))

        repository.list_for_provider.assert_not_awaited()
        repository.create.assert_not_awaited()

    async def test_invalid_order(self, service):
        with pytest.raises(InvalidOrderError):
            await service.request_booking(PROVIDER, REQUESTER, at(1, 16), at(1, 14))

    async def test_message_too_long(self, service):
        with pytest.raises(MessageTooLongError):
            await service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16), "x" * 501)

    async def test_cannot_book_self(self, service):
        with pytest.raises(SelfBookingError):
            await service.request_booking(PROVIDER, PROVIDER, at(1, 14), at(1, 16))

    async def test_concurrent_overlapping_requests_one_wins(self, service, repository):
        results = await asyncio.gather(
            service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16)),
            service.request_booking(PROVIDER, OTHER_REQUESTER, at(1, 15), at(1, 17)),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(created) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], ConflictError)
        assert failed[0].conflicting_ids == [created[0].booking_id]


class TestTransitionBooking:
    async def test_provider_confirms(self, service, pending_booking, publisher):
        updated = await service.transition_booking(pending_booking.booking_id, BookingStatus.CONFIRMED, PROVIDER)

        assert updated.status == BookingStatus.CONFIRMED
        assert publisher.publish.await_args.args[0] == "booking.confirmed"

    async def test_scenario_d_requester_cannot_confirm(self, service, pending_booking, repository):
        with pytest.raises(InvalidTransitionError):
            await service.transition_booking(pending_booking.booking_id, BookingStatus.CONFIRMED, REQUESTER)

        assert (await repository.get_by_id(pending_booking.booking_id)).status == BookingStatus.PENDING

    @pytest.mark.parametrize("actor", [PROVIDER, REQUESTER])
    async def test_either_party_cancels_pending(self, service, pending_booking, actor):
        updated = await service.cancel_booking(pending_booking.booking_id, actor)
        assert updated.status == BookingStatus.CANCELLED

    @pytest.mark.parametrize("actor", [PROVIDER, REQUESTER, "system"])
    async def test_confirmed_completes(self, service, confirmed_booking, actor):
        updated = await service.complete_booking(confirmed_booking.booking_id, actor)
        assert updated.status == BookingStatus.COMPLETED

    async def test_system_cannot_cancel(self, service, confirmed_booking):
        with pytest.raises(InvalidTransitionError):
            await service.cancel_booking(confirmed_booking.booking_id, "system")

    async def test_pending_cannot_complete(self, service, pending_booking):
        with pytest.raises(InvalidTransitionError):
            await service.complete_booking(pending_booking.booking_id, PROVIDER)

    async def test_cannot_return_to_pending(self, service, confirmed_booking):
        with pytest.raises(InvalidTransitionError):
            await service.transition_booking(confirmed_booking.booking_id, BookingStatus.PENDING, PROVIDER)

    async def test_second_cancel_fails(self, service, pending_booking):
        await service.cancel_booking(pending_booking.booking_id, REQUESTER)
        with pytest.raises(InvalidTransitionError):
            await service.cancel_booking(pending_booking.booking_id, REQUESTER)

    @pytest.mark.parametrize("target", list(BookingStatus))
    async def test_terminal_rejects_everything(self, service, confirmed_booking, target):
        await service.complete_booking(confirmed_booking.booking_id, PROVIDER)
        with pytest.raises(InvalidTransitionError):
            await service.transition_booking(confirmed_booking.booking_id, target, PROVIDER)

    async def test_stranger_cannot_transition(self, service, pending_booking, repository, publisher):
        publisher.publish.reset_mock()
        with pytest.raises(NotAParticipantError):
            await service.cancel_booking(pending_booking.booking_id, STRANGER)

        assert (await repository.get_by_id(pending_booking.booking_id)).status == BookingStatus.PENDING
        publisher.publish.assert_not_awaited()

    async def test_updated_at_uses_clock(self, repository, relay, pending_booking):
        later = NOW + timedelta(hours=1)
        service = BookingService(repository, relay=relay, clock=lambda: later)
        updated = await service.confirm_booking(pending_booking.booking_id, PROVIDER)
        assert updated.updated_at == later
        assert updated.created_at == NOW

    async def test_concurrent_confirm_on_stale_read(self, session_factory, relay, pending_booking):
        """Both callers read 'pending'; only the first conditional update lands."""

        class StaleReads(SqlBookingRepository):
            async def get_by_id(self, booking_id):
                return pending_booking

        service = BookingService(StaleReads(session_factory), relay=relay, clock=lambda: NOW)

        first = await service.confirm_booking(pending_booking.booking_id, PROVIDER)
        assert first.status == BookingStatus.CONFIRMED

        with pytest.raises(InvalidTransitionError):
            await service.confirm_booking(pending_booking.booking_id, PROVIDER)


class TestEvents:
    async def test_publish_failure_keeps_booking_and_event(self, service, publisher, relay):
        publisher.publish.side_effect = ConnectionError("broker down")

        booking = await service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16))

        assert (await service.repository.get_by_id(booking.booking_id)).status == BookingStatus.PENDING
        assert await relay.pending_count() == 1

        publisher.publish.side_effect = None
        assert await service.flush_outbox() == 1
        assert await relay.pending_count() == 0

    async def test_no_relay_no_publish(self, repository):
        service = BookingService(repository, clock=lambda: NOW)
        await service.request_booking(PROVIDER, REQUESTER, at(1, 14), at(1, 16))
        assert await service.flush_outbox() == 0


class TestReads:
    async def test_get_booking_for_participants(self, service, pending_booking):
        assert (await service.get_booking(pending_booking.booking_id, PROVIDER)).booking_id == pending_booking.booking_id
        assert (await service.get_booking(pending_booking.booking_id, REQUESTER)).booking_id == pending_booking.booking_id
        with pytest.raises(NotAParticipantError):
            await service.get_booking(pending_booking.booking_id, STRANGER)

    async def test_active_and_history(self, service):
        first = await service.request_booking(PROVIDER, REQUESTER, at(2, 9), at(2, 11))
        second = await service.request_booking(PROVIDER, REQUESTER, at(1, 9), at(1, 11))
        done = await service.request_booking(PROVIDER, REQUESTER, at(3, 9), at(3, 11))
        await service.cancel_booking(done.booking_id, PROVIDER)

        active = await service.list_active_bookings(REQUESTER, Role.REQUESTER)
        history = await service.list_booking_history(REQUESTER, Role.REQUESTER)
        everything = await service.list_bookings(PROVIDER, Role.PROVIDER)

        assert [b.booking_id for b in active] == [second.booking_id, first.booking_id]
        assert [b.booking_id for b in history] == [done.booking_id]
        assert len(everything) == 3

    async def test_check_availability(self, service, pending_booking):
        report = await service.check_availability(PROVIDER, at(1, 15), at(1, 17))
        assert report.conflicting_ids == [pending_booking.booking_id]

        report = await service.check_availability(
            PROVIDER, at(1, 15), at(1, 17), exclude_booking_id=pending_booking.booking_id
        )
        assert not report.has_conflict

    async def test_check_availability_rejects_reversed_window(self, service):
        with pytest.raises(InvalidOrderError):
            await service.check_availability(PROVIDER, at(1, 17), at(1, 15))

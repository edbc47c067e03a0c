import logging

from .conflicts import ConflictReport, detect_conflicts
from .enums import ACTIVE_STATUSES, TERMINAL_STATUSES, BookingStatus, Role
from .errors import ConflictError, InvalidOrderError, NotAParticipantError, SelfBookingError
from .models import utcnow
from .outbox import OutboxRelay
from .repository import BookingDraft, BookingRepository
from .state_machine import check_transition, resolve_role
from .timewindow import DEFAULT_POLICY, TimeWindow, WindowPolicy, as_utc, validate_message, validate_window

logger = logging.getLogger(__name__)


class BookingService:
    """
    Entry points for requesting bookings and moving them through their lifecycle.

    Every call takes the acting user explicitly. Failures are raised as
    BookingError subclasses; nothing is mutated when a call fails.

    ``system_actor_id`` is the identity allowed to act in the system role.
    Leave it unset for services that serve end users.
    """

    def __init__(
        self,
        repository: BookingRepository,
        relay: OutboxRelay | None = None,
        clock=utcnow,
        policy: WindowPolicy = DEFAULT_POLICY,
        system_actor_id: str | None = None,
    ):
        self.repository = repository
        self.relay = relay
        self.clock = clock
        self.policy = policy
        self.system_actor_id = system_actor_id

    # ---- requests ----

    async def request_booking(
        self,
        provider_id: str,
        requester_id: str,
        start_time,
        end_time,
        message: str | None = None,
    ):
        now = self.clock()
        window = validate_window(start_time, end_time, now, self.policy)
        message = validate_message(message)
        if provider_id == requester_id:
            raise SelfBookingError()

        existing = await self.repository.list_for_provider(provider_id, ACTIVE_STATUSES)
        report = detect_conflicts(provider_id, window, existing)
        if report.has_conflict:
            logger.info(
                "booking request for provider %s rejected: conflicts with %s",
                provider_id, report.conflicting_ids,
            )
            raise ConflictError(report.conflicting)

        # the repository re-checks under a provider lock before inserting
        booking = await self.repository.create(
            BookingDraft(
                provider_id=provider_id,
                requester_id=requester_id,
                window=window,
                message=message,
                requested_at=now,
            )
        )
        logger.info(
            "booking %s created for provider %s by %s (%s - %s)",
            booking.booking_id, provider_id, requester_id,
            window.start.isoformat(), window.end.isoformat(),
        )
        await self._publish_committed()
        return booking

    async def check_availability(
        self,
        provider_id: str,
        start_time,
        end_time,
        exclude_booking_id: str | None = None,
    ) -> ConflictReport:
        window = TimeWindow(start=as_utc(start_time), end=as_utc(end_time))
        if window.end <= window.start:
            raise InvalidOrderError(details=window.to_dict())
        existing = await self.repository.list_for_provider(provider_id, ACTIVE_STATUSES)
        return detect_conflicts(provider_id, window, existing, exclude_booking_id=exclude_booking_id)

    # ---- lifecycle ----

    async def transition_booking(self, booking_id: str, target_status, actor_id: str):
        target_status = BookingStatus(target_status)
        booking = await self.repository.get_by_id(booking_id)
        role = resolve_role(booking, actor_id, self.system_actor_id)
        check_transition(booking.status, target_status, role)

        updated = await self.repository.update_status(
            booking_id,
            target_status,
            actor_id,
            expected_current_status=booking.status,
            at=self.clock(),
        )
        logger.info(
            "booking %s %s -> %s by %s (%s)",
            booking_id, booking.status.value, target_status.value, actor_id, role.value,
        )
        await self._publish_committed()
        return updated

    async def confirm_booking(self, booking_id: str, actor_id: str):
        return await self.transition_booking(booking_id, BookingStatus.CONFIRMED, actor_id)

    async def cancel_booking(self, booking_id: str, actor_id: str):
        return await self.transition_booking(booking_id, BookingStatus.CANCELLED, actor_id)

    async def complete_booking(self, booking_id: str, actor_id: str):
        return await self.transition_booking(booking_id, BookingStatus.COMPLETED, actor_id)

    # ---- reads ----

    async def get_booking(self, booking_id: str, actor_id: str):
        booking = await self.repository.get_by_id(booking_id)
        if actor_id not in (booking.provider_id, booking.requester_id):
            raise NotAParticipantError(booking_id, actor_id)
        return booking

    async def list_bookings(
        self,
        user_id: str,
        role: Role,
        statuses=None,
        limit: int | None = 20,
        offset: int = 0,
    ):
        return await self.repository.list_for_user(
            user_id, role, statuses=statuses, limit=limit, offset=offset
        )

    async def list_active_bookings(self, user_id: str, role: Role):
        return await self.repository.list_for_user(
            user_id, role, statuses=ACTIVE_STATUSES, soonest_first=True
        )

    async def list_booking_history(self, user_id: str, role: Role, limit: int = 20, offset: int = 0):
        return await self.repository.list_for_user(
            user_id, role, statuses=TERMINAL_STATUSES, limit=limit, offset=offset
        )

    # ---- events ----

    async def flush_outbox(self, limit: int = 100) -> int:
        """
        Push pending lifecycle events to the broker.

        The booking change is already committed together with its event row,
        so a broker outage never fails the request; the event waits in the
        outbox for the next flush.
        """
        if self.relay is None:
            return 0
        return await self.relay.flush(limit)

    async def _publish_committed(self):
        try:
            await self.flush_outbox()
        except Exception:
            logger.warning("outbox flush after commit failed; events stay pending", exc_info=True)

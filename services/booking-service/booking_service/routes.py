import logging
from typing import Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from .config import SYSTEM_ACTOR_ID
from .enums import BookingStatus, Role
from .errors import (
    BookingError,
    BookingNotFoundError,
    ConflictError,
    InvalidTransitionError,
    NotAParticipantError,
    RetryableRepositoryError,
    ValidationError,
)
from .orchestrator import BookingService
from .outbox import OutboxRelay
from .repository import SqlBookingRepository
from .schemas import (
    AvailabilityRequest,
    AvailabilityResponse,
    BookingListResponse,
    BookingResponse,
    ConflictWindow,
    CreateBookingRequest,
    OutboxFlushResponse,
    TransitionRequest,
)

logger = logging.getLogger(__name__)

HTTP_422_UNPROCESSABLE = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)

router = APIRouter()

_service: BookingService | None = None
_trigger_service: BookingService | None = None


def build_booking_service(session_factory, publisher, system_actor_id: str | None = None, **kwargs) -> BookingService:
    return BookingService(
        SqlBookingRepository(session_factory),
        relay=OutboxRelay(session_factory, publisher),
        system_actor_id=system_actor_id,
        **kwargs,
    )


def get_booking_service() -> BookingService:
    # requests act as their X-User-Sub only, never as the system
    global _service
    if _service is None:
        from .db import SessionLocal
        from .publisher import publisher

        _service = build_booking_service(SessionLocal, publisher)
    return _service


def get_trigger_service() -> BookingService:
    global _trigger_service
    if _trigger_service is None:
        from .db import SessionLocal
        from .publisher import publisher

        _trigger_service = build_booking_service(SessionLocal, publisher, system_actor_id=SYSTEM_ACTOR_ID)
    return _trigger_service


def get_actor_id(x_user_sub: str | None = Header(default=None)) -> str:
    if not x_user_sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Sub header")
    return x_user_sub


def http_status_for(error: BookingError) -> int:
    if isinstance(error, ValidationError):
        return HTTP_422_UNPROCESSABLE
    if isinstance(error, (ConflictError, InvalidTransitionError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, NotAParticipantError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(error, BookingNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, RetryableRepositoryError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def booking_error_handler(request: Request, exc: BookingError):
    code = http_status_for(exc)
    if code >= 500:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    headers = {"Retry-After": "1"} if code == status.HTTP_503_SERVICE_UNAVAILABLE else None
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()}, headers=headers)


def to_response(booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.booking_id,
        provider_id=booking.provider_id,
        requester_id=booking.requester_id,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=booking.status,
        message=booking.message,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: CreateBookingRequest,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.request_booking(
        provider_id=data.provider_id,
        requester_id=actor_id,
        start_time=data.start_time,
        end_time=data.end_time,
        message=data.message,
    )
    return to_response(booking)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(await service.get_booking(booking_id, actor_id))


@router.post("/bookings/{booking_id}/transitions", response_model=BookingResponse)
async def transition_booking(
    booking_id: str,
    data: TransitionRequest,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(await service.transition_booking(booking_id, data.status, actor_id))


@router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(await service.transition_booking(booking_id, BookingStatus.CONFIRMED, actor_id))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(await service.transition_booking(booking_id, BookingStatus.CANCELLED, actor_id))


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(await service.transition_booking(booking_id, BookingStatus.COMPLETED, actor_id))


@router.get("/users/{user_id}/bookings", response_model=BookingListResponse)
async def list_user_bookings(
    user_id: str,
    role: Role = Query(...),
    scope: Literal["all", "active", "history"] = Query("all"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    if actor_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot list another user's bookings")
    if role == Role.SYSTEM:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="role must be provider or requester")

    if scope == "active":
        bookings = await service.list_active_bookings(user_id, role)
    elif scope == "history":
        bookings = await service.list_booking_history(user_id, role, limit=limit, offset=offset)
    else:
        bookings = await service.list_bookings(user_id, role, limit=limit, offset=offset)

    return BookingListResponse(user_id=user_id, role=role, bookings=[to_response(b) for b in bookings])


@router.post("/providers/{provider_id}/conflicts", response_model=AvailabilityResponse)
async def check_conflicts(
    provider_id: str,
    data: AvailabilityRequest,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    report = await service.check_availability(
        provider_id, data.start_time, data.end_time, exclude_booking_id=data.exclude_booking_id
    )
    return AvailabilityResponse(
        provider_id=provider_id,
        available=not report.has_conflict,
        conflicts=[
            ConflictWindow(
                booking_id=b.booking_id,
                start_time=b.start_time,
                end_time=b.end_time,
                status=b.status,
            )
            for b in report.conflicting
        ],
    )


# internal: the gateway must not route /internal/* to clients
@router.post("/internal/outbox/flush", response_model=OutboxFlushResponse)
async def flush_outbox(
    limit: int = Query(100, ge=1, le=1000),
    service: BookingService = Depends(get_booking_service),
):
    return OutboxFlushResponse(published=await service.flush_outbox(limit))

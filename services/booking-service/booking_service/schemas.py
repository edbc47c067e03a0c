from datetime import datetime
from typing import List

from pydantic import BaseModel

from .enums import BookingStatus, Role


class CreateBookingRequest(BaseModel):
    provider_id: str
    start_time: datetime
    end_time: datetime
    message: str | None = None


class TransitionRequest(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    booking_id: str
    provider_id: str
    requester_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    message: str | None = None
    created_at: datetime
    updated_at: datetime


class BookingListResponse(BaseModel):
    user_id: str
    role: Role
    bookings: List[BookingResponse]


class AvailabilityRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    exclude_booking_id: str | None = None


class ConflictWindow(BaseModel):
    booking_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus


class AvailabilityResponse(BaseModel):
    provider_id: str
    available: bool
    conflicts: List[ConflictWindow]


class OutboxFlushResponse(BaseModel):
    published: int

import json
import uuid
from datetime import datetime, timezone


def build_event(event_type: str, data: dict, occurred_at: datetime | None = None) -> dict:
    occurred_at = occurred_at or datetime.now(timezone.utc)
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": occurred_at.isoformat(),
        "data": data,
    }


def booking_event(event_type: str, booking, actor_id: str, occurred_at: datetime) -> dict:
    return build_event(
        event_type,
        {
            "booking_id": booking.booking_id,
            "provider_id": booking.provider_id,
            "requester_id": booking.requester_id,
            "timestamp": occurred_at.isoformat(),
            "status": getattr(booking.status, "value", booking.status),
            "actor_id": actor_id,
            "start_time": booking.start_time.isoformat(),
            "end_time": booking.end_time.isoformat(),
        },
        occurred_at=occurred_at,
    )


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False)

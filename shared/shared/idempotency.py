IDEMPOTENCY_TTL = 3600


def processed_key(event_id: str) -> str:
    return f"processed_event:{event_id}"


async def claim_event(redis_client, event_id: str, ttl: int = IDEMPOTENCY_TTL) -> bool:
    """
    Mark an event as being handled. Returns False if another delivery already
    claimed it. Without a Redis client every event is handled.
    """
    if redis_client is None:
        return True
    return bool(await redis_client.set(processed_key(event_id), "1", ex=ttl, nx=True))


async def release_event(redis_client, event_id: str):
    if redis_client is None:
        return
    await redis_client.delete(processed_key(event_id))

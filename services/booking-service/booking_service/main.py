import logging

from fastapi import FastAPI

from .config import LOG_LEVEL, RABBIT_URL, SERVICE_NAME
from .consumer import start_consumer
from .errors import BookingError
from .publisher import publisher
from .redis_client import redis_client
from .routes import booking_error_handler, get_booking_service, get_trigger_service, router

logging.basicConfig(
    level=LOG_LEVEL,
    format=f"[{SERVICE_NAME}] %(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Booking Service")
app.include_router(router)
app.add_exception_handler(BookingError, booking_error_handler)

_consumer_conn = None


@app.get("/health")
async def health():
    return {"status": "ok", "service": SERVICE_NAME, "events_enabled": publisher.enabled}


@app.on_event("startup")
async def startup():
    global _consumer_conn
    # Never crash service if RabbitMQ is temporarily unavailable
    try:
        await publisher.start()
    except Exception as e:
        logger.warning("RabbitMQ connect failed at startup; events stay in the outbox: %s", e)

    if RABBIT_URL:
        try:
            _consumer_conn = await start_consumer(RABBIT_URL, get_trigger_service(), redis_client)
        except Exception as e:
            _consumer_conn = None
            logger.warning("trigger consumer failed to start: %s", e)

    try:
        await get_booking_service().flush_outbox()
    except Exception as e:
        logger.warning("outbox flush at startup failed: %s", e)


@app.on_event("shutdown")
async def shutdown():
    global _consumer_conn
    try:
        if _consumer_conn and not _consumer_conn.is_closed:
            await _consumer_conn.close()
    except Exception as e:
        logger.warning("closing consumer connection failed: %s", e)
    try:
        await publisher.close()
    except Exception as e:
        logger.warning("closing publisher failed: %s", e)

import json
import logging

import aio_pika

from shared.idempotency import claim_event, release_event
from shared.rabbitmq import connect, declare_exchange

from .enums import BookingStatus
from .errors import BookingError, RetryableRepositoryError
from .retry import retry_async

logger = logging.getLogger(__name__)

QUEUE_NAME = "booking_service_triggers"
ROUTING_KEYS = ["booking.complete_requested"]


class TriggerConsumer:
    """
    Applies externally scheduled transitions.

    A scheduler outside this service publishes ``booking.complete_requested``
    once a booking's end_time has passed; the transition runs as the
    configured system actor and goes through the same state machine as any
    user call.
    """

    def __init__(self, service, redis_client=None):
        self.service = service
        self.redis_client = redis_client

    async def handle_payload(self, payload: dict) -> bool:
        """Returns True when a transition was applied."""
        if not isinstance(payload, dict):
            logger.warning("ignoring non-object trigger payload: %r", payload)
            return False

        event_id = payload.get("event_id")
        event_type = payload.get("event_type")
        data = payload.get("data")
        booking_id = data.get("booking_id") if isinstance(data, dict) else None

        if event_type not in ROUTING_KEYS or not event_id or not booking_id:
            logger.warning("ignoring malformed trigger: %s", payload)
            return False

        if not await claim_event(self.redis_client, event_id):
            logger.info("trigger %s already processed", event_id)
            return False

        try:
            await retry_async(
                self.service.transition_booking,
                booking_id,
                BookingStatus.COMPLETED,
                self.service.system_actor_id,
            )
        except RetryableRepositoryError:
            # let the redelivery try again
            await release_event(self.redis_client, event_id)
            raise
        except BookingError as e:
            logger.info("trigger %s for %s dropped: %s (%s)", event_id, booking_id, e.message, e.code)
            return False

        logger.info("booking %s auto-completed", booking_id)
        return True

    async def handle_message(self, message: aio_pika.IncomingMessage):
        # only RetryableRepositoryError escapes, which requeues the message
        async with message.process(requeue=True):
            try:
                payload = json.loads(message.body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning("dropping undecodable trigger message")
                return
            try:
                await self.handle_payload(payload)
            except RetryableRepositoryError:
                raise
            except Exception:
                logger.exception("dropping trigger message after unexpected failure")


async def start_consumer(rabbit_url: str, service, redis_client=None):
    conn = await connect(rabbit_url)
    channel = await conn.channel()
    await channel.set_qos(prefetch_count=50)

    exchange = await declare_exchange(channel)

    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    for rk in ROUTING_KEYS:
        await queue.bind(exchange, routing_key=rk)

    consumer = TriggerConsumer(service, redis_client)
    await queue.consume(consumer.handle_message)
    logger.info("trigger consumer started")
    return conn

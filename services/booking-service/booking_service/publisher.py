import logging

import aio_pika

from shared.rabbitmq import connect, declare_exchange

from .config import RABBIT_URL

logger = logging.getLogger(__name__)


class Publisher:
    """
    Topic-exchange publisher for booking events.

    Disabled when no broker URL is configured. Unlike a fire-and-forget
    publisher, failures propagate so the outbox can keep the event for retry.
    """

    def __init__(self, rabbit_url: str | None = RABBIT_URL):
        self._rabbit_url = rabbit_url
        self.enabled = bool(rabbit_url)
        self._conn = None
        self._channel = None
        self._exchange = None

    async def start(self):
        if not self.enabled:
            return
        if self._conn and not self._conn.is_closed:
            return
        try:
            self._conn = await connect(self._rabbit_url)
            self._channel = await self._conn.channel()
            self._exchange = await declare_exchange(self._channel)
        except Exception:
            self._reset()
            raise

    async def publish(self, routing_key: str, body: str):
        if not self.enabled:
            return
        await self.start()
        msg = aio_pika.Message(
            body=body.encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        try:
            await self._exchange.publish(msg, routing_key=routing_key)
        except Exception:
            # force a reconnect on the next attempt
            self._reset()
            raise

    async def close(self):
        try:
            if self._conn and not self._conn.is_closed:
                await self._conn.close()
        finally:
            self._reset()

    def _reset(self):
        self._conn = None
        self._channel = None
        self._exchange = None


publisher = Publisher()

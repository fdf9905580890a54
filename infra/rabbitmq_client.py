"""
RabbitMQ client for booking notifications.

Purpose:
- Publish confirmation/cancellation events after a transaction commits
- Consume them in the notification worker and hand each to a delivery callback

Events (queue "notifications"):
- reservation.confirmed: ConfirmationNotice payload
- trip.cancelled: CancellationNotice payload (one message per reservation)

Production notes:
- Durable queue and persistent messages survive a broker restart
- Messages are acked after the callback returns; a raising callback rejects
  the message without requeue (add a dead-letter exchange to keep them)
"""
import json
import logging
from typing import Awaitable, Callable, Optional

import aio_pika  # async RabbitMQ client

logger = logging.getLogger(__name__)

NOTIFICATIONS_QUEUE = "notifications"
EVENT_CONFIRMATION = "reservation.confirmed"
EVENT_CANCELLATION = "trip.cancelled"


class RabbitMQClient:
    """Async publisher/consumer over one robust connection and channel."""

    def __init__(self, url: str, queue_name: str = NOTIFICATIONS_QUEUE):
        self.url = url
        self.queue_name = queue_name
        self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._queue: Optional[aio_pika.abc.AbstractQueue] = None

    async def _ensure_connection(self):
        """
        Lazily connect to RabbitMQ and open a channel.
        """
        if self._connection and not self._connection.is_closed:
            return
        logger.info("[RabbitMQClient] Connecting to %s", self.url)
        self._connection = await aio_pika.connect_robust(self.url)
        self._channel = await self._connection.channel()
        # Idempotent
        self._queue = await self._channel.declare_queue(self.queue_name, durable=True)
        logger.info("[RabbitMQClient] Connected and queue '%s' declared", self.queue_name)

    async def connect(self):
        await self._ensure_connection()

    async def publish_event(self, event_type: str, payload: dict) -> bool:
        """
        Publish one event to the notifications queue.

        Body shape: {"type": "<event_type>", "payload": {...}}
        """
        await self._ensure_connection()
        assert self._channel is not None
        body = json.dumps({"type": event_type, "payload": payload}, default=str).encode("utf-8")
        logger.info("[RabbitMQClient] Publishing %s to %s", event_type, payload.get("customer_email"))
        await self._channel.default_exchange.publish(
            aio_pika.Message(
                body=body,
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            ),
            routing_key=self.queue_name,
        )
        return True

    async def consume(self, handler: Callable[[dict], Awaitable[bool]]):
        """
        Feed every message to ``handler`` until the connection closes.
        """
        await self._ensure_connection()
        assert self._channel is not None and self._queue is not None
        await self._channel.set_qos(prefetch_count=10)
        async with self._queue.iterator() as queue_iter:
            async for message in queue_iter:
                async with message.process(requeue=False):
                    await handler(json.loads(message.body))

    async def disconnect(self):
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
            logger.info("[RabbitMQClient] Connection closed")
        self._connection = None
        self._channel = None
        self._queue = None

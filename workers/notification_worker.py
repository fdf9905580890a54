"""
Notification delivery worker.

Purpose:
- Consume booking notification events from the RabbitMQ "notifications" queue
- Deliver each one through the mail notifier (SMTP, or console log without SMTP)
- Run as a separate process (scale horizontally)

Usage:
- python -m workers.notification_worker

Production notes:
- Run multiple worker instances for load distribution
- Failed deliveries are logged and counted, then acked; they are not redelivered
- Only a crash while handling a message rejects it (without requeue)
"""
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError as PayloadError

from config.settings import settings
from core.logging import configure_logging
from infra.rabbitmq_client import EVENT_CANCELLATION, EVENT_CONFIRMATION, RabbitMQClient
from models.booking import CancellationNotice, ConfirmationNotice
from tools.notifier import MailNotifier

logger = logging.getLogger(__name__)


class NotificationDeliveryWorker:
    """Worker to deliver booking notifications from the RabbitMQ queue."""

    def __init__(self, notifier: MailNotifier, client: Optional[RabbitMQClient] = None):
        self.notifier = notifier
        self.client = client
        self.delivered = 0
        self.failed = 0

    async def deliver(self, event: dict) -> bool:
        """
        Deliver a single event.

        Args:
            event: {"type": "reservation.confirmed" | "trip.cancelled", "payload": {...}}

        Returns:
            True if delivered, False otherwise
        """
        event_type = event.get("type")
        payload = event.get("payload") or {}
        try:
            if event_type == EVENT_CONFIRMATION:
                await self.notifier.send_confirmation(ConfirmationNotice.model_validate(payload))
            elif event_type == EVENT_CANCELLATION:
                await self.notifier.send_cancellation(CancellationNotice.model_validate(payload))
            else:
                logger.error("Unknown event type: %s", event_type)
                self.failed += 1
                return False
        except PayloadError as e:
            logger.error("Malformed %s payload: %s", event_type, e)
            self.failed += 1
            return False
        except Exception as e:
            logger.error("Delivery of %s to %s failed: %s", event_type, payload.get("customer_email"), e)
            self.failed += 1
            return False

        self.delivered += 1
        return True

    async def run(self):
        """
        Start consuming and delivering notifications.
        Call this in a separate asyncio task or process.
        """
        assert self.client is not None
        logger.info("Notification worker started")
        await self.client.connect()
        try:
            await self.client.consume(self.deliver)
        except asyncio.CancelledError:
            logger.info("Worker interrupted")
        finally:
            await self.client.disconnect()
            logger.info("Worker stopped. Delivered: %d, Failed: %d", self.delivered, self.failed)


async def main():
    """Entry point for running the worker."""
    configure_logging(settings.LOG_LEVEL)
    worker = NotificationDeliveryWorker(
        MailNotifier.from_settings(settings),
        RabbitMQClient(settings.RABBITMQ_URL),
    )
    await worker.run()


if __name__ == "__main__":
    # Run worker: python -m workers.notification_worker
    asyncio.run(main())

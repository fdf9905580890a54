# services/notification_service.py
"""
Booking notifications, sent after the transaction that caused them commits.

- Preferred: publish to RabbitMQ (the notification worker delivers)
- Fallback: deliver in-process through the mail notifier

dispatch_* calls return immediately; delivery runs in a detached task whose
failures are logged and never reach the request that triggered it.
"""
import asyncio
import logging
from typing import Iterable, List, Optional, Set

from infra.rabbitmq_client import EVENT_CANCELLATION, EVENT_CONFIRMATION, RabbitMQClient
from models.booking import CancellationNotice, ConfirmationNotice
from tools.notifier import MailNotifier

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, notifier: MailNotifier, publisher: Optional[RabbitMQClient] = None):
        self.notifier = notifier
        self.publisher = publisher
        self._tasks: Set[asyncio.Task] = set()

    async def _publish(self, event_type: str, payload: dict) -> Optional[dict]:
        if not self.publisher:
            return None
        try:
            ok = await self.publisher.publish_event(event_type, payload)
            return {"to": payload.get("customer_email"), "channel": "queue", "published": ok}
        except Exception as e:
            logger.error("RabbitMQ publish of %s failed: %s; delivering in-process", event_type, e)
            return None

    async def notify_confirmation(self, notice: ConfirmationNotice) -> dict:
        published = await self._publish(EVENT_CONFIRMATION, notice.model_dump(mode="json"))
        if published:
            return published
        return await self.notifier.send_confirmation(notice)

    async def notify_cancellation(self, notice: CancellationNotice) -> dict:
        published = await self._publish(EVENT_CANCELLATION, notice.model_dump(mode="json"))
        if published:
            return published
        return await self.notifier.send_cancellation(notice)

    # ---------------- detached dispatch ----------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        # Strong reference until done, otherwise the task may be collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _confirmation_job(self, notice: ConfirmationNotice) -> bool:
        try:
            await self.notify_confirmation(notice)
            return True
        except Exception as e:
            logger.warning(
                "Confirmation notice failed: code=%s to=%s error=%s",
                notice.visual_code, notice.customer_email, e,
            )
            return False

    async def _cancellation_job(self, notices: List[CancellationNotice]) -> int:
        results = await asyncio.gather(
            *(self.notify_cancellation(n) for n in notices),
            return_exceptions=True,
        )
        delivered = 0
        for notice, result in zip(notices, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Cancellation notice failed: route=%s to=%s error=%s",
                    notice.route_name, notice.customer_email, result,
                )
            else:
                delivered += 1
        logger.info("Cancellation notices delivered: %d/%d", delivered, len(notices))
        return delivered

    def dispatch_confirmation(self, notice: ConfirmationNotice) -> asyncio.Task:
        return self._spawn(self._confirmation_job(notice))

    def dispatch_cancellations(self, notices: Iterable[CancellationNotice]) -> asyncio.Task:
        return self._spawn(self._cancellation_job(list(notices)))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched notification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self.publisher:
            await self.publisher.disconnect()

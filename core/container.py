"""
Application wiring.

Everything with a lifecycle (DB engine, RabbitMQ connection, pending
notification tasks) hangs off one BookingContainer built at start-up and
closed at shutdown. Services receive their collaborators through it instead
of importing module-level singletons.
"""
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

from fastapi import Request

from config.settings import Settings
from core.dates import today_in
from core.db import create_database
from core.signing import ReservationSigner
from infra.rabbitmq_client import RabbitMQClient
from services.cancellation_service import CancellationService
from services.notification_service import NotificationService
from services.reservation_service import ReservationService
from services.trip_materializer import TripMaterializer
from services.trip_search_service import TripSearchService
from services.validation_service import ValidationService
from stores.base import BookingStore
from stores.memory import MemoryBookingStore
from stores.sql import SqlBookingStore
from tools.notifier import MailNotifier

logger = logging.getLogger(__name__)


@dataclass
class BookingContainer:
    store: BookingStore
    notifications: NotificationService
    search: TripSearchService
    materializer: TripMaterializer
    reservations: ReservationService
    cancellations: CancellationService
    validations: ValidationService

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: Optional[BookingStore] = None,
        notifications: Optional[NotificationService] = None,
    ) -> "BookingContainer":
        if store is None:
            store = cls._build_store(settings)
        if notifications is None:
            publisher = RabbitMQClient(settings.RABBITMQ_URL) if settings.USE_QUEUE else None
            notifications = NotificationService(MailNotifier.from_settings(settings), publisher)

        materializer = TripMaterializer(store)
        return cls(
            store=store,
            notifications=notifications,
            search=TripSearchService(store, today=partial(today_in, settings.TIMEZONE)),
            materializer=materializer,
            reservations=ReservationService(
                store, materializer, ReservationSigner(settings.RESERVATION_SECRET), notifications
            ),
            cancellations=CancellationService(store, notifications),
            validations=ValidationService(store),
        )

    @staticmethod
    def _build_store(settings: Settings) -> BookingStore:
        if settings.db_enabled:
            database = create_database(settings.MYSQL_ASYNC_URL, echo=settings.DEBUG)
            if database is not None:
                logger.info("Using SQL booking store")
                return SqlBookingStore(database)
        logger.info("Using in-memory booking store seeded from %s", settings.ROUTES_FILE)
        return MemoryBookingStore.from_json(settings.ROUTES_FILE)

    async def close(self) -> None:
        await self.notifications.close()
        await self.store.close()
        logger.info("Booking container closed")


def get_container(request: Request) -> BookingContainer:
    """FastAPI dependency: the container attached to app.state at start-up."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Booking container is not initialised")
    return container

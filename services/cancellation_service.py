# services/cancellation_service.py
"""
Trip cancellation: flip the trip to cancelled, then tell every passenger.

Reservations are left as they are; the fan-out of notices happens after
commit and one failed notice never stops the others.
"""
import logging
from typing import Optional

from core.dates import format_long_date
from core.errors import BookingError, InternalError, NotFound
from models.booking import CancellationNotice, CancellationResult
from models.db_models import TRIP_CANCELLED
from services.notification_service import NotificationService
from stores.base import BookingStore

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Por motivos operativos"


class CancellationService:
    def __init__(self, store: BookingStore, notifications: NotificationService):
        self.store = store
        self.notifications = notifications

    async def cancel_trip(self, trip_id: int, reason: Optional[str] = None) -> CancellationResult:
        async with self.store.unit_of_work() as uow:
            try:
                trip = await uow.trips.get(trip_id, for_update=True)
                if trip is None:
                    raise NotFound("Trip not found", {"trip_id": trip_id})
                reservations = await uow.reservations.list_by_trip(trip_id)
                await uow.trips.set_status(trip_id, TRIP_CANCELLED)
                await uow.commit()
            except BookingError:
                await uow.rollback()
                raise
            except Exception as e:
                await uow.rollback()
                logger.exception("Trip cancellation failed: trip_id=%s", trip_id)
                raise InternalError("Could not cancel trip", {"trip_id": trip_id}) from e

        logger.info(
            "Trip cancelled: trip_id=%s previous_status=%s reservations=%d",
            trip_id, trip.status, len(reservations),
        )

        route_name = f"{trip.origin} → {trip.destination}"
        trip_date = format_long_date(trip.departure_date)
        message = (reason or "").strip() or DEFAULT_REASON
        if reservations:
            self.notifications.dispatch_cancellations(
                CancellationNotice(
                    customer_name=r.customer_name,
                    customer_email=r.customer_email,
                    route_name=route_name,
                    trip_date=trip_date,
                    reason=message,
                )
                for r in reservations
            )

        return CancellationResult(trip_id=trip_id, affected_reservations=len(reservations))

# services/trip_materializer.py
"""
Trip materialization: (route, date, time) -> exactly one persisted Trip.

The (route_id, departure_date, departure_time) slot is unique in the store,
so concurrent callers converge on the same row: the loser of an insert race
re-reads the winner's trip instead of creating a second one.
"""
import datetime as dt
import logging
from decimal import Decimal
from typing import Optional, Tuple

from core.errors import BookingError, InternalError, NotFound
from models.booking import NewTrip, TripRecord
from stores.base import BookingStore, UnitOfWork

logger = logging.getLogger(__name__)


class TripMaterializer:
    def __init__(self, store: BookingStore):
        self.store = store

    async def materialize(
        self,
        uow: UnitOfWork,
        route_id: int,
        departure_date: dt.date,
        departure_time: dt.time,
        fare: Optional[Decimal] = None,
    ) -> Tuple[TripRecord, bool]:
        """
        Find or create the trip inside ``uow`` (caller commits).
        Returns (trip, created). Must run before any other write in ``uow``.
        """
        departure_time = departure_time.replace(microsecond=0)
        existing = await uow.trips.find_by_slot(route_id, departure_date, departure_time)
        if existing:
            return existing, False

        route = await uow.routes.get(route_id)
        if route is None:
            raise NotFound("Route not found", {"route_id": route_id})

        trip, created = await uow.trips.get_or_create(NewTrip(
            route_id=route.id,
            departure_date=departure_date,
            departure_time=departure_time,
            arrival_time=route.arrival_time,
            fare=fare if fare else route.fare,
            total_seats=route.capacity,
        ))
        if created:
            logger.info(
                "Materialized trip id=%s route=%s date=%s time=%s seats=%s",
                trip.id, route_id, departure_date, departure_time, trip.total_seats,
            )
        return trip, created

    async def ensure_trip(
        self,
        route_id: int,
        departure_date: dt.date,
        departure_time: Optional[dt.time] = None,
        fare: Optional[Decimal] = None,
    ) -> Tuple[TripRecord, bool]:
        """
        Standalone find-or-create in its own transaction (admin trip creation).
        Without a time the route's scheduled departure is used.
        """
        async with self.store.unit_of_work() as uow:
            try:
                if departure_time is None:
                    route = await uow.routes.get(route_id)
                    if route is None:
                        raise NotFound("Route not found", {"route_id": route_id})
                    departure_time = route.departure_time
                trip, created = await self.materialize(uow, route_id, departure_date, departure_time, fare)
                await uow.commit()
                return trip, created
            except BookingError:
                await uow.rollback()
                raise
            except Exception as e:
                await uow.rollback()
                logger.exception("Trip materialization failed for route=%s date=%s", route_id, departure_date)
                raise InternalError("Could not create trip", {"route_id": route_id}) from e

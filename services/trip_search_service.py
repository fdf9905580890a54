# services/trip_search_service.py
"""
Read side of the booking core: routes, persisted trips and search offers.
"""
import datetime as dt
import logging
from typing import Callable, List, Optional

from core.errors import NotFound
from models.booking import RouteSchedule, TripOffer, TripRecord
from services.schedule_expander import expand_route, sort_offers
from stores.base import BookingStore

logger = logging.getLogger(__name__)


class TripSearchService:
    def __init__(self, store: BookingStore, today: Callable[[], dt.date]):
        self.store = store
        self.today = today

    async def list_routes(self, destination: Optional[str] = None) -> List[RouteSchedule]:
        async with self.store.unit_of_work() as uow:
            return await uow.routes.list_active(destination)

    async def get_route(self, route_id: int) -> RouteSchedule:
        async with self.store.unit_of_work() as uow:
            route = await uow.routes.get(route_id)
        if route is None:
            raise NotFound("Route not found", {"route_id": route_id})
        return route

    async def get_trip(self, trip_id: int) -> TripRecord:
        async with self.store.unit_of_work() as uow:
            trip = await uow.trips.get(trip_id)
        if trip is None:
            raise NotFound("Trip not found", {"trip_id": trip_id})
        return trip

    async def search(
        self,
        origin: Optional[str] = None,
        destination: Optional[str] = None,
        departure_date: Optional[dt.date] = None,
    ) -> List[TripOffer]:
        """
        Offers across every active route, ascending by boarding time.
        The only store reads are the route list and, when a date is given,
        one existing-trip lookup per route.
        """
        today = self.today()
        offers: List[TripOffer] = []
        async with self.store.unit_of_work() as uow:
            for route in await uow.routes.list_active(destination):
                existing = None
                if departure_date is not None:
                    trips = await uow.trips.list_by_route_and_date(route.id, departure_date)
                    existing = trips[0] if trips else None
                offers.extend(expand_route(
                    route,
                    today=today,
                    origin=origin,
                    destination=destination,
                    target_date=departure_date,
                    existing_trip=existing,
                ))
        logger.debug(
            "Search origin=%r destination=%r date=%s -> %d offer(s)",
            origin, destination, departure_date, len(offers),
        )
        return sort_offers(offers)

# stores/memory.py
"""
In-memory booking store, used when USE_DB is false and in tests.

Routes are loaded once from a JSON file; trips and reservations live in
dicts. Each trip has an asyncio.Lock standing in for its row lock, and every
write in a unit of work records an undo step so rollback() restores the
previous state.
"""
import asyncio
import datetime as dt
import json
import logging
import os
from typing import Callable, Dict, List, Optional, Tuple

from core.errors import Conflict
from models.booking import NewReservation, NewTrip, ReservationRecord, RouteSchedule, TripRecord
from models.db_models import TRIP_SCHEDULED
from stores.base import BookingStore, ReservationRepository, RouteRepository, TripRepository, UnitOfWork

logger = logging.getLogger(__name__)


class MemoryBookingStore(BookingStore):
    def __init__(self, routes: Optional[List[RouteSchedule]] = None):
        self.routes: Dict[int, RouteSchedule] = {r.id: r for r in routes or []}
        self.trips: Dict[int, TripRecord] = {}
        self.reservations: Dict[int, ReservationRecord] = {}
        self.codes: Dict[str, int] = {}
        self.trip_locks: Dict[int, asyncio.Lock] = {}
        # Guards slot lookup + insert so get_or_create is atomic
        self.slot_lock = asyncio.Lock()
        self._next_trip_id = 1
        self._next_reservation_id = 1

    @classmethod
    def from_json(cls, path: str) -> "MemoryBookingStore":
        routes: List[RouteSchedule] = []
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            items = raw.values() if isinstance(raw, dict) else raw
            routes = [RouteSchedule.model_validate(item) for item in items]
        else:
            logger.warning("Routes file %s not found; starting with no routes", path)
        logger.info("In-memory store loaded %d route(s) from %s", len(routes), path)
        return cls(routes)

    def next_trip_id(self) -> int:
        value = self._next_trip_id
        self._next_trip_id += 1
        return value

    def next_reservation_id(self) -> int:
        value = self._next_reservation_id
        self._next_reservation_id += 1
        return value

    def lock_for(self, trip_id: int) -> asyncio.Lock:
        lock = self.trip_locks.get(trip_id)
        if lock is None:
            lock = self.trip_locks[trip_id] = asyncio.Lock()
        return lock

    def decorate(self, trip: TripRecord) -> TripRecord:
        route = self.routes.get(trip.route_id)
        return trip.model_copy(update={
            "route_name": route.name if route else "",
            "origin": route.origin if route else "",
            "destination": route.destination if route else "",
        })

    def unit_of_work(self) -> "MemoryUnitOfWork":
        return MemoryUnitOfWork(self)


class MemoryRouteRepository(RouteRepository):
    def __init__(self, store: MemoryBookingStore):
        self.store = store

    async def list_active(self, destination: Optional[str] = None) -> List[RouteSchedule]:
        needle = destination.strip().lower() if destination else None
        routes = [
            r for r in self.store.routes.values()
            if r.is_active and (needle is None or needle in r.destination.lower())
        ]
        return sorted(routes, key=lambda r: (r.departure_time, r.id))

    async def get(self, route_id: int) -> Optional[RouteSchedule]:
        return self.store.routes.get(route_id)


class MemoryTripRepository(TripRepository):
    def __init__(self, uow: "MemoryUnitOfWork"):
        self.uow = uow
        self.store = uow.store

    async def get(self, trip_id: int, *, for_update: bool = False, require_available: bool = False) -> Optional[TripRecord]:
        if trip_id not in self.store.trips:
            return None
        if for_update:
            await self.uow.acquire(trip_id)
        # Re-read under the lock; a rolled-back creation may have removed it
        trip = self.store.trips.get(trip_id)
        if trip is None:
            return None
        if require_available and (trip.available_seats <= 0 or trip.status != TRIP_SCHEDULED):
            return None
        return self.store.decorate(trip)

    def _slot_id(self, route_id: int, departure_date: dt.date, departure_time: dt.time) -> Optional[int]:
        wanted = departure_time.replace(microsecond=0)
        for trip in self.store.trips.values():
            if (
                trip.route_id == route_id
                and trip.departure_date == departure_date
                and trip.departure_time == wanted
            ):
                return trip.id
        return None

    async def find_by_slot(
        self,
        route_id: int,
        departure_date: dt.date,
        departure_time: dt.time,
        *,
        for_update: bool = False,
    ) -> Optional[TripRecord]:
        trip_id = self._slot_id(route_id, departure_date, departure_time)
        if trip_id is None:
            return None
        return await self.get(trip_id, for_update=for_update)

    async def list_by_route_and_date(self, route_id: int, departure_date: dt.date) -> List[TripRecord]:
        trips = [
            self.store.decorate(t) for t in self.store.trips.values()
            if t.route_id == route_id and t.departure_date == departure_date
        ]
        return sorted(trips, key=lambda t: (t.departure_time, t.id))

    async def get_or_create(self, trip: NewTrip) -> Tuple[TripRecord, bool]:
        async with self.store.slot_lock:
            existing_id = self._slot_id(trip.route_id, trip.departure_date, trip.departure_time)
            if existing_id is not None:
                return self.store.decorate(self.store.trips[existing_id]), False
            record = TripRecord(
                id=self.store.next_trip_id(),
                route_id=trip.route_id,
                departure_date=trip.departure_date,
                departure_time=trip.departure_time.replace(microsecond=0),
                arrival_time=trip.arrival_time,
                fare=trip.fare,
                total_seats=trip.total_seats,
                available_seats=trip.total_seats,
                status=TRIP_SCHEDULED,
            )
            self.store.trips[record.id] = record
            self.uow.on_rollback(lambda: self.store.trips.pop(record.id, None))
        return self.store.decorate(record), True

    def _replace(self, trip_id: int, **changes) -> None:
        previous = self.store.trips[trip_id]
        self.store.trips[trip_id] = previous.model_copy(update=changes)
        self.uow.on_rollback(lambda: self.store.trips.__setitem__(trip_id, previous))

    async def decrement_available(self, trip_id: int) -> int:
        trip = self.store.trips.get(trip_id)
        if trip is None or trip.available_seats <= 0:
            return 0
        self._replace(trip_id, available_seats=trip.available_seats - 1)
        return 1

    async def set_status(self, trip_id: int, status: str) -> int:
        if trip_id not in self.store.trips:
            return 0
        self._replace(trip_id, status=status)
        return 1


class MemoryReservationRepository(ReservationRepository):
    def __init__(self, uow: "MemoryUnitOfWork"):
        self.uow = uow
        self.store = uow.store

    async def add(self, reservation: NewReservation) -> ReservationRecord:
        if reservation.visual_code in self.store.codes:
            raise Conflict("Reservation code already in use", {"visual_code": reservation.visual_code})
        record = ReservationRecord(id=self.store.next_reservation_id(), **reservation.model_dump())
        self.store.reservations[record.id] = record
        self.store.codes[record.visual_code] = record.id

        def undo():
            self.store.reservations.pop(record.id, None)
            self.store.codes.pop(record.visual_code, None)

        self.uow.on_rollback(undo)
        return record

    async def get(self, reservation_id: int) -> Optional[ReservationRecord]:
        return self.store.reservations.get(reservation_id)

    async def get_by_code(self, visual_code: str) -> Optional[ReservationRecord]:
        reservation_id = self.store.codes.get(visual_code)
        return self.store.reservations.get(reservation_id) if reservation_id else None

    async def code_exists(self, visual_code: str) -> bool:
        return visual_code in self.store.codes

    async def list_by_trip(self, trip_id: int) -> List[ReservationRecord]:
        rows = [r for r in self.store.reservations.values() if r.trip_id == trip_id]
        return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)

    async def mark_validated(self, reservation_id: int, validated_by: Optional[str], at: dt.datetime) -> int:
        previous = self.store.reservations.get(reservation_id)
        if previous is None or previous.validated:
            return 0
        self.store.reservations[reservation_id] = previous.model_copy(
            update={"validated": True, "validated_by": validated_by, "validated_at": at}
        )
        self.uow.on_rollback(lambda: self.store.reservations.__setitem__(reservation_id, previous))
        return 1


class MemoryUnitOfWork(UnitOfWork):
    def __init__(self, store: MemoryBookingStore):
        self.store = store
        self.routes = MemoryRouteRepository(store)
        self.trips = MemoryTripRepository(self)
        self.reservations = MemoryReservationRepository(self)
        self._undo: List[Callable[[], None]] = []
        self._held: Dict[int, asyncio.Lock] = {}

    async def acquire(self, trip_id: int) -> None:
        if trip_id in self._held:
            return
        lock = self.store.lock_for(trip_id)
        await lock.acquire()
        self._held[trip_id] = lock

    def on_rollback(self, step: Callable[[], None]) -> None:
        self._undo.append(step)

    def _release(self) -> None:
        for lock in self._held.values():
            lock.release()
        self._held.clear()

    async def commit(self) -> None:
        self._undo.clear()
        self._release()

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self._release()

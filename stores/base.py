"""
Store interfaces for the booking core.

A unit of work groups the three repositories over one transaction:

    async with store.unit_of_work() as uow:
        trip = await uow.trips.get(trip_id, for_update=True)
        ...
        await uow.commit()

Leaving the block without commit() rolls back, and any row locks taken
through ``for_update=True`` are held until commit or rollback.
"""
from __future__ import annotations

import abc
import datetime as dt
from typing import List, Optional, Tuple

from models.booking import NewReservation, NewTrip, ReservationRecord, RouteSchedule, TripRecord


class RouteRepository(abc.ABC):
    @abc.abstractmethod
    async def list_active(self, destination: Optional[str] = None) -> List[RouteSchedule]:
        """Active routes, optionally those whose destination contains ``destination`` (case-insensitive)."""

    @abc.abstractmethod
    async def get(self, route_id: int) -> Optional[RouteSchedule]:
        ...


class TripRepository(abc.ABC):
    @abc.abstractmethod
    async def get(
        self,
        trip_id: int,
        *,
        for_update: bool = False,
        require_available: bool = False,
    ) -> Optional[TripRecord]:
        """
        Fetch a trip by id. With ``require_available`` only a scheduled trip
        with at least one free seat is returned.
        """

    @abc.abstractmethod
    async def find_by_slot(
        self,
        route_id: int,
        departure_date: dt.date,
        departure_time: dt.time,
        *,
        for_update: bool = False,
    ) -> Optional[TripRecord]:
        """The trip for (route, date, time), compared at whole-second granularity."""

    @abc.abstractmethod
    async def list_by_route_and_date(self, route_id: int, departure_date: dt.date) -> List[TripRecord]:
        ...

    @abc.abstractmethod
    async def get_or_create(self, trip: NewTrip) -> Tuple[TripRecord, bool]:
        """
        Insert ``trip`` unless its (route, date, time) slot already exists.
        Returns (trip, created). Must be called before any other write in
        the unit of work: a lost insert race rolls the transaction back.
        """

    @abc.abstractmethod
    async def decrement_available(self, trip_id: int) -> int:
        """available_seats -= 1 guarded by available_seats > 0; returns affected rows."""

    @abc.abstractmethod
    async def set_status(self, trip_id: int, status: str) -> int:
        ...


class ReservationRepository(abc.ABC):
    @abc.abstractmethod
    async def add(self, reservation: NewReservation) -> ReservationRecord:
        """Insert; raises core.errors.Conflict when the visual code is taken."""

    @abc.abstractmethod
    async def get(self, reservation_id: int) -> Optional[ReservationRecord]:
        ...

    @abc.abstractmethod
    async def get_by_code(self, visual_code: str) -> Optional[ReservationRecord]:
        ...

    @abc.abstractmethod
    async def code_exists(self, visual_code: str) -> bool:
        ...

    @abc.abstractmethod
    async def list_by_trip(self, trip_id: int) -> List[ReservationRecord]:
        """Reservations of a trip, newest first."""

    @abc.abstractmethod
    async def mark_validated(self, reservation_id: int, validated_by: Optional[str], at: dt.datetime) -> int:
        """validated = true guarded by validated = false; returns affected rows."""


class UnitOfWork(abc.ABC):
    routes: RouteRepository
    trips: TripRepository
    reservations: ReservationRepository

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(self, *args):
        await self.rollback()
        await self.close()

    @abc.abstractmethod
    async def commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def rollback(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class BookingStore(abc.ABC):
    """Factory for units of work plus lifecycle hooks."""

    @abc.abstractmethod
    def unit_of_work(self) -> UnitOfWork:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

"""
SQL-backed booking store (MySQL in production, SQLite in tests).

Purpose:
- Route/Trip/Reservation persistence through one AsyncSession per unit of work
- Row locks with SELECT ... FOR UPDATE on trips
- Seat decrement and ticket validation as guarded UPDATEs checked by rowcount

Production notes:
- FOR UPDATE is a no-op on SQLite; the guarded UPDATEs still keep counts right
- A lost (route, date, time) insert race surfaces as IntegrityError on the
  unique index; the unit of work is rolled back and the winner re-read
"""
import datetime as dt
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.db import Database
from core.dates import utcnow
from core.errors import Conflict
from models.booking import NewReservation, NewTrip, ReservationRecord, RouteSchedule, TripRecord
from models.db_models import TRIP_SCHEDULED, Reservation, Route, Trip
from stores.base import BookingStore, ReservationRepository, RouteRepository, TripRepository, UnitOfWork

logger = logging.getLogger(__name__)


def _route_to_schedule(route: Route) -> RouteSchedule:
    return RouteSchedule.model_validate(route, from_attributes=True)


def _reservation_to_record(row: Reservation) -> ReservationRecord:
    return ReservationRecord.model_validate(row, from_attributes=True)


class SqlRouteRepository(RouteRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active(self, destination: Optional[str] = None) -> List[RouteSchedule]:
        stmt = select(Route).where(Route.is_active.is_(True))
        if destination:
            stmt = stmt.where(Route.destination.ilike(f"%{destination.strip()}%"))
        result = await self.session.execute(stmt.order_by(Route.departure_time, Route.id))
        return [_route_to_schedule(r) for r in result.scalars().all()]

    async def get(self, route_id: int) -> Optional[RouteSchedule]:
        route = await self.session.get(Route, route_id)
        return _route_to_schedule(route) if route else None


class SqlTripRepository(TripRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _to_record(self, trip: Trip) -> TripRecord:
        # Route is fetched separately; joining under FOR UPDATE would lock it too
        route = await self.session.get(Route, trip.route_id)
        return TripRecord(
            id=trip.id,
            route_id=trip.route_id,
            departure_date=trip.departure_date,
            departure_time=trip.departure_time,
            arrival_time=trip.arrival_time,
            fare=trip.fare,
            total_seats=trip.total_seats,
            available_seats=trip.available_seats,
            status=trip.status,
            route_name=route.name if route else "",
            origin=route.origin if route else "",
            destination=route.destination if route else "",
        )

    async def _fetch_one(self, stmt, for_update: bool) -> Optional[TripRecord]:
        if for_update:
            stmt = stmt.with_for_update()
        # populate_existing: a locked read must not be served from the identity map
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        trip = result.scalar_one_or_none()
        return await self._to_record(trip) if trip else None

    async def get(self, trip_id: int, *, for_update: bool = False, require_available: bool = False) -> Optional[TripRecord]:
        stmt = select(Trip).where(Trip.id == trip_id)
        if require_available:
            stmt = stmt.where(Trip.available_seats > 0, Trip.status == TRIP_SCHEDULED)
        return await self._fetch_one(stmt, for_update)

    async def find_by_slot(
        self,
        route_id: int,
        departure_date: dt.date,
        departure_time: dt.time,
        *,
        for_update: bool = False,
    ) -> Optional[TripRecord]:
        stmt = select(Trip).where(
            Trip.route_id == route_id,
            Trip.departure_date == departure_date,
            Trip.departure_time == departure_time.replace(microsecond=0),
        )
        return await self._fetch_one(stmt, for_update)

    async def list_by_route_and_date(self, route_id: int, departure_date: dt.date) -> List[TripRecord]:
        result = await self.session.execute(
            select(Trip)
            .where(Trip.route_id == route_id, Trip.departure_date == departure_date)
            .order_by(Trip.departure_time, Trip.id)
        )
        return [await self._to_record(t) for t in result.scalars().all()]

    async def get_or_create(self, trip: NewTrip) -> Tuple[TripRecord, bool]:
        departure_time = trip.departure_time.replace(microsecond=0)
        existing = await self.find_by_slot(trip.route_id, trip.departure_date, departure_time)
        if existing:
            return existing, False

        row = Trip(
            route_id=trip.route_id,
            departure_date=trip.departure_date,
            departure_time=departure_time,
            arrival_time=trip.arrival_time,
            fare=trip.fare,
            total_seats=trip.total_seats,
            available_seats=trip.total_seats,
            status=TRIP_SCHEDULED,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError:
            # Another transaction created the slot first
            await self.session.rollback()
            logger.info(
                "Trip slot route=%s date=%s time=%s created concurrently; reusing it",
                trip.route_id, trip.departure_date, departure_time,
            )
            existing = await self.find_by_slot(trip.route_id, trip.departure_date, departure_time)
            if existing is None:
                raise
            return existing, False
        return await self._to_record(row), True

    async def decrement_available(self, trip_id: int) -> int:
        result = await self.session.execute(
            update(Trip)
            .where(Trip.id == trip_id, Trip.available_seats > 0)
            .values(available_seats=Trip.available_seats - 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def set_status(self, trip_id: int, status: str) -> int:
        result = await self.session.execute(
            update(Trip)
            .where(Trip.id == trip_id)
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class SqlReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, reservation: NewReservation) -> ReservationRecord:
        row = Reservation(**reservation.model_dump(), validated=False)
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise Conflict(
                "Reservation code already in use",
                {"visual_code": reservation.visual_code},
            ) from exc
        return _reservation_to_record(row)

    async def get(self, reservation_id: int) -> Optional[ReservationRecord]:
        row = await self.session.get(Reservation, reservation_id, populate_existing=True)
        return _reservation_to_record(row) if row else None

    async def get_by_code(self, visual_code: str) -> Optional[ReservationRecord]:
        result = await self.session.execute(select(Reservation).where(Reservation.visual_code == visual_code))
        row = result.scalar_one_or_none()
        return _reservation_to_record(row) if row else None

    async def code_exists(self, visual_code: str) -> bool:
        result = await self.session.execute(select(Reservation.id).where(Reservation.visual_code == visual_code))
        return result.first() is not None

    async def list_by_trip(self, trip_id: int) -> List[ReservationRecord]:
        result = await self.session.execute(
            select(Reservation)
            .where(Reservation.trip_id == trip_id)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        )
        return [_reservation_to_record(r) for r in result.scalars().all()]

    async def mark_validated(self, reservation_id: int, validated_by: Optional[str], at: dt.datetime) -> int:
        result = await self.session.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.validated.is_(False))
            .values(validated=True, validated_by=validated_by, validated_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SqlUnitOfWork":
        self.session = self._session_maker()
        self.routes = SqlRouteRepository(self.session)
        self.trips = SqlTripRepository(self.session)
        self.reservations = SqlReservationRepository(self.session)
        return self

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        if self.session is not None:
            await self.session.rollback()

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None


class SqlBookingStore(BookingStore):
    def __init__(self, database: Database):
        self.database = database

    def unit_of_work(self) -> SqlUnitOfWork:
        return SqlUnitOfWork(self.database.session_maker)

    async def ping(self) -> bool:
        return await self.database.ping()

    async def close(self) -> None:
        await self.database.dispose()

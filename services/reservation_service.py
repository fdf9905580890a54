# services/reservation_service.py
"""
Reservation engine.

One reservation is one seat. The whole booking runs in a single unit of
work with the trip row locked from the final availability check through
the seat decrement:

    resolve trip (by id, or materialize the (route, date, time) slot)
    -> lock -> check seats -> code + signature -> insert reservation
    -> guarded decrement -> commit -> detached confirmation notice

Any failure rolls the unit of work back; nothing is retried here.
"""
import logging
from typing import List

from core.dates import format_hhmm, format_long_date, utcnow
from core.errors import BookingError, Conflict, InternalError, NoAvailability, NotFound, ValidationError
from core.signing import ReservationSigner, generate_visual_code
from models.booking import (
    ConfirmationNotice,
    NewReservation,
    ReservationRecord,
    ReservationRequest,
    ReservationResult,
    ReservationTicket,
    TripRecord,
)
from services.notification_service import NotificationService
from services.trip_materializer import TripMaterializer
from stores.base import BookingStore, UnitOfWork

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5


class ReservationService:
    def __init__(
        self,
        store: BookingStore,
        materializer: TripMaterializer,
        signer: ReservationSigner,
        notifications: NotificationService,
        code_attempts: int = CODE_ATTEMPTS,
    ):
        self.store = store
        self.materializer = materializer
        self.signer = signer
        self.notifications = notifications
        self.code_attempts = code_attempts

    @staticmethod
    def _validate(request: ReservationRequest) -> tuple[str, str]:
        name = (request.customer_name or "").strip()
        email = (request.customer_email or "").strip()
        missing = [f for f, v in (("customer_name", name), ("customer_email", email)) if not v]
        if missing:
            raise ValidationError("Missing required customer fields", {"missing": missing})

        has_slot = None not in (request.route_id, request.departure_date, request.departure_time)
        if request.trip_id is None and not has_slot:
            raise ValidationError(
                "Either trip_id or route_id, departure_date and departure_time are required",
                {
                    "trip_id": request.trip_id,
                    "route_id": request.route_id,
                    "departure_date": request.departure_date,
                    "departure_time": request.departure_time,
                },
            )
        return name, email

    async def _resolve_trip(self, uow: UnitOfWork, request: ReservationRequest) -> TripRecord:
        if request.trip_id is not None:
            trip = await uow.trips.get(request.trip_id, for_update=True, require_available=True)
            if trip is None:
                raise NoAvailability("Trip not available", {"trip_id": request.trip_id, "seats": 1})
            return trip

        # Lock only once the row exists; FOR UPDATE on a missing slot takes a gap
        # lock and two first bookings would deadlock on their inserts
        trip, _ = await self.materializer.materialize(
            uow, request.route_id, request.departure_date, request.departure_time, request.fare
        )
        return await uow.trips.get(trip.id, for_update=True)

    async def _new_code(self, uow: UnitOfWork) -> str:
        for _ in range(self.code_attempts):
            code = generate_visual_code()
            if not await uow.reservations.code_exists(code):
                return code
            logger.warning("Visual code %s already taken; drawing another", code)
        raise Conflict("Could not allocate a reservation code", {"attempts": self.code_attempts})

    async def reserve(self, request: ReservationRequest) -> ReservationResult:
        name, email = self._validate(request)

        async with self.store.unit_of_work() as uow:
            try:
                trip = await self._resolve_trip(uow, request)
                if trip is None or not trip.is_scheduled or trip.available_seats <= 0:
                    raise NoAvailability(
                        "No seats available",
                        {"trip_id": trip.id if trip else request.trip_id, "seats": 1},
                    )

                code = await self._new_code(uow)
                created_at = utcnow()
                reservation = await uow.reservations.add(NewReservation(
                    trip_id=trip.id,
                    visual_code=code,
                    customer_name=name,
                    customer_email=email,
                    customer_phone=request.customer_phone or None,
                    fare_paid=request.fare if request.fare else trip.fare,
                    signature=self.signer.sign(code, trip.id, created_at, name, email),
                    boarding_point=request.boarding_point or trip.origin,
                    boarding_time=request.boarding_time or trip.departure_time,
                    created_at=created_at,
                ))

                if await uow.trips.decrement_available(trip.id) == 0:
                    raise Conflict("Seat was taken by a concurrent reservation", {"trip_id": trip.id, "seats": 1})

                await uow.commit()
            except BookingError as e:
                await uow.rollback()
                logger.info("Reservation rejected: kind=%s details=%s", e.code, e.details)
                raise
            except Exception as e:
                await uow.rollback()
                logger.exception("Reservation failed unexpectedly: trip_id=%s route_id=%s", request.trip_id, request.route_id)
                raise InternalError("Could not create reservation", {"trip_id": request.trip_id}) from e

        seats_left = trip.available_seats - 1
        logger.info(
            "Reservation created: id=%s code=%s trip_id=%s seats=%d->%d",
            reservation.id, reservation.visual_code, trip.id, trip.available_seats, seats_left,
        )

        self.notifications.dispatch_confirmation(ConfirmationNotice(
            customer_name=reservation.customer_name,
            customer_email=reservation.customer_email,
            origin=trip.origin,
            destination=trip.destination,
            trip_date=format_long_date(trip.departure_date),
            departure_time=format_hhmm(trip.departure_time),
            visual_code=reservation.visual_code,
            fare=reservation.fare_paid,
            boarding_point=reservation.boarding_point,
            boarding_time=format_hhmm(reservation.boarding_time),
        ))

        return ReservationResult(
            reservation=reservation,
            route_name=trip.route_name,
            origin=trip.origin,
            destination=trip.destination,
            departure_date=trip.departure_date,
            departure_time=trip.departure_time,
            arrival_time=trip.arrival_time,
            available_seats=seats_left,
        )

    async def get_by_code(self, visual_code: str) -> ReservationTicket:
        code = visual_code.strip().upper()
        async with self.store.unit_of_work() as uow:
            reservation = await uow.reservations.get_by_code(code)
            if reservation is None:
                raise NotFound("Reservation not found", {"visual_code": code})
            trip = await uow.trips.get(reservation.trip_id)
        if trip is None:
            raise NotFound("Trip not found", {"trip_id": reservation.trip_id})
        return ReservationTicket(
            reservation=reservation,
            route_name=trip.route_name,
            origin=trip.origin,
            destination=trip.destination,
            departure_date=trip.departure_date,
            departure_time=trip.departure_time,
            trip_status=trip.status,
            signature_valid=self.signer.verify(reservation),
        )

    async def list_for_trip(self, trip_id: int) -> List[ReservationRecord]:
        async with self.store.unit_of_work() as uow:
            if await uow.trips.get(trip_id) is None:
                raise NotFound("Trip not found", {"trip_id": trip_id})
            return await uow.reservations.list_by_trip(trip_id)

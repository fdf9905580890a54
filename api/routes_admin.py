"""
Admin endpoints: trip creation and cancellation, passenger lists and
boarding validation. Admin authentication happens in front of this router.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from core.container import BookingContainer, get_container
from core.response import ok
from models.schemas import CancelTripRequest, CreateTripRequest, ValidateReservationRequest

router = APIRouter()


@router.post("/trips")
async def create_trip(req: CreateTripRequest, container: BookingContainer = Depends(get_container)):
    """
    Create the trip for (route, date, time), or return the existing one.
    Without departure_time the route's scheduled departure is used.
    """
    trip, created = await container.materializer.ensure_trip(
        req.route_id, req.departure_date, req.departure_time, req.fare
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content=ok({"trip": trip.model_dump(mode="json"), "created": created}),
    )


@router.post("/trips/{trip_id}/cancel")
async def cancel_trip(
    trip_id: int,
    req: Optional[CancelTripRequest] = None,
    container: BookingContainer = Depends(get_container),
):
    result = await container.cancellations.cancel_trip(trip_id, req.reason if req else None)
    return ok(result.model_dump(mode="json"))


@router.get("/trips/{trip_id}/reservations")
async def trip_reservations(trip_id: int, container: BookingContainer = Depends(get_container)):
    reservations = await container.reservations.list_for_trip(trip_id)
    return ok([r.model_dump(mode="json") for r in reservations])


@router.post("/reservations/{reservation_id}/validate")
async def validate_reservation(
    reservation_id: int,
    req: Optional[ValidateReservationRequest] = None,
    container: BookingContainer = Depends(get_container),
):
    result = await container.validations.validate(reservation_id, req.validated_by if req else None)
    return ok(result.model_dump(mode="json"))

# api/routes_user.py
"""
Public booking endpoints: route/trip search, reservations and ticket lookup.
"""
import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from core.container import BookingContainer, get_container
from core.response import ok
from models.booking import ReservationRequest

router = APIRouter()


@router.get("/routes")
async def list_routes(
    destination: Optional[str] = None,
    container: BookingContainer = Depends(get_container),
):
    routes = await container.search.list_routes(destination)
    return ok([r.model_dump(mode="json") for r in routes])


@router.get("/routes/{route_id}")
async def get_route(route_id: int, container: BookingContainer = Depends(get_container)):
    route = await container.search.get_route(route_id)
    return ok(route.model_dump(mode="json"))


@router.get("/trips")
async def search_trips(
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    date: Optional[dt.date] = Query(None, description="YYYY-MM-DD; defaults to today without a weekday check"),
    container: BookingContainer = Depends(get_container),
):
    """Bookable offers (full route and per stop), ascending by boarding time."""
    offers = await container.search.search(origin=origin, destination=destination, departure_date=date)
    return ok([o.model_dump(mode="json") for o in offers])


@router.get("/trips/{trip_id}")
async def get_trip(trip_id: int, container: BookingContainer = Depends(get_container)):
    trip = await container.search.get_trip(trip_id)
    return ok(trip.model_dump(mode="json"))


@router.post("/reservations", status_code=201)
async def create_reservation(req: ReservationRequest, container: BookingContainer = Depends(get_container)):
    """
    Reserve one seat, either on an existing trip (trip_id) or on the
    (route_id, departure_date, departure_time) slot of a search offer.
    """
    result = await container.reservations.reserve(req)
    return JSONResponse(status_code=201, content=ok(result.model_dump(mode="json")))


@router.get("/reservations/code/{visual_code}")
async def get_reservation_by_code(visual_code: str, container: BookingContainer = Depends(get_container)):
    ticket = await container.reservations.get_by_code(visual_code)
    return ok(ticket.model_dump(mode="json"))

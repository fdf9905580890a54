# services/schedule_expander.py
"""
Schedule expansion: Route + date -> bookable Trip Offers.

Pure functions, no I/O. The caller supplies "today" and, if one exists,
the persisted Trip for (route, date) whose counters the offers borrow.

A route yields one full-route offer (boarding at its origin) and one offer
per intermediate stop. Stop offers board later and pay less:

    boarding = stop.time, or departure + stop.time_offset (mod 24h)
    elapsed  = minutes from departure to boarding
    fare     = stop.fare_from_here, or round(F * max(0, D - elapsed) / D)
"""
import datetime as dt
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from core.dates import format_hhmmss
from models.booking import RouteSchedule, Stop, TripOffer, TripRecord

MINUTES_PER_DAY = 24 * 60
VIRTUAL_PREFIX = "virtual"

_WHITESPACE = re.compile(r"\s+")


def add_minutes(departure: dt.time, minutes: int) -> dt.time:
    """Departure plus ``minutes``, wrapped to the same clock day. Seconds are dropped."""
    total = departure.hour * 60 + departure.minute + minutes
    return dt.time((total // 60) % 24, total % 60, 0)


def minutes_between(start: dt.time, end: dt.time) -> int:
    """Forward difference in minutes; an earlier ``end`` is read as the next day."""
    diff = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def proportional_fare(fare: Decimal, duration_minutes: int, elapsed_minutes: int) -> Decimal:
    """
    round(fare * remaining / duration) to whole currency units, half up.
    Falls back to the full fare when the duration is not positive.
    """
    if duration_minutes <= 0:
        return Decimal(fare)
    remaining = max(0, duration_minutes - elapsed_minutes)
    value = Decimal(fare) * remaining / duration_minutes
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def stop_boarding(route: RouteSchedule, stop: Stop) -> tuple[dt.time, int]:
    """Return (boarding time, minutes elapsed since the route's departure)."""
    if stop.time is not None:
        return stop.time, minutes_between(route.departure_time, stop.time)
    offset = stop.time_offset or 0
    return add_minutes(route.departure_time, offset), offset


def stop_fare(route: RouteSchedule, stop: Stop, elapsed_minutes: int) -> Decimal:
    if stop.fare_from_here:
        return Decimal(stop.fare_from_here)
    return proportional_fare(route.fare, route.duration_minutes, elapsed_minutes)


def offer_id(route_id: int, stop_name: Optional[str] = None) -> str:
    if stop_name is None:
        return f"{VIRTUAL_PREFIX}-{route_id}"
    return f"{VIRTUAL_PREFIX}-{route_id}-{_WHITESPACE.sub('-', stop_name)}"


def _matches(needle: Optional[str], haystack: str) -> bool:
    return not needle or needle.strip().lower() in haystack.lower()


def expand_route(
    route: RouteSchedule,
    *,
    today: dt.date,
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    target_date: Optional[dt.date] = None,
    existing_trip: Optional[TripRecord] = None,
) -> List[TripOffer]:
    """
    Offers for one route on ``target_date`` (or ``today`` when no date is
    given, in which case the operating-day check is skipped).
    """
    if not route.is_active:
        return []
    if not _matches(destination, route.destination):
        return []
    if target_date is not None:
        if not route.operates_on(target_date):
            return []
        if target_date < today:
            return []

    departure_date = target_date or today
    total_seats = existing_trip.total_seats if existing_trip else route.capacity
    available_seats = existing_trip.available_seats if existing_trip else total_seats
    trip_id = existing_trip.id if existing_trip else None

    offers: List[TripOffer] = []

    if _matches(origin, route.origin):
        offers.append(TripOffer(
            offer_id=str(trip_id) if trip_id else offer_id(route.id),
            trip_id=trip_id,
            route_id=route.id,
            route_name=route.name,
            origin=route.origin,
            destination=route.destination,
            departure_date=departure_date,
            boarding_time=route.departure_time,
            arrival_time=route.arrival_time,
            fare=Decimal(route.fare),
            total_seats=total_seats,
            available_seats=available_seats,
            boarding_point=route.origin,
            is_intermediate_stop=False,
            duration_minutes=route.duration_minutes,
            stops=route.stops,
        ))

    for stop in route.stops:
        if not _matches(origin, stop.name):
            continue
        boarding_time, elapsed = stop_boarding(route, stop)
        offers.append(TripOffer(
            offer_id=str(trip_id) if trip_id else offer_id(route.id, stop.name),
            trip_id=trip_id,
            route_id=route.id,
            route_name=f"{route.name} (desde {stop.name})",
            origin=stop.name,
            destination=route.destination,
            departure_date=departure_date,
            boarding_time=boarding_time,
            arrival_time=route.arrival_time,
            fare=stop_fare(route, stop, elapsed),
            total_seats=total_seats,
            available_seats=available_seats,
            boarding_point=stop.name,
            is_intermediate_stop=True,
            duration_minutes=max(0, route.duration_minutes - elapsed),
            stops=route.stops,
        ))

    return sort_offers(offers)


def sort_offers(offers: Iterable[TripOffer]) -> List[TripOffer]:
    """Ascending by zero-padded HH:MM:SS boarding time; stable for ties."""
    return sorted(offers, key=lambda o: format_hhmmss(o.boarding_time))

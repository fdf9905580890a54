import asyncio
import datetime as dt
from decimal import Decimal

import pytest

from conftest import make_route
from core.errors import NotFound
from services.trip_materializer import TripMaterializer
from services.trip_search_service import TripSearchService
from stores.memory import MemoryBookingStore

TODAY = dt.date(2026, 10, 19)
SATURDAY = dt.date(2026, 10, 24)


def two_route_store():
    return MemoryBookingStore([
        make_route(),
        make_route(
            id=2,
            name="Texcoco - Templo",
            origin="Texcoco",
            departure_time="07:00:00",
            operating_days=["Sab"],
            stops=[],
        ),
        make_route(id=3, name="Chalco - Puebla", destination="Puebla", is_active=False),
    ])


@pytest.mark.asyncio
async def test_search_merges_routes_sorted_by_boarding_time():
    search = TripSearchService(two_route_store(), today=lambda: TODAY)
    offers = await search.search(departure_date=SATURDAY)
    assert [(o.route_id, o.boarding_point) for o in offers] == [
        (2, "Texcoco"),
        (1, "Chalco"),
        (1, "Ixtapaluca"),
    ]


@pytest.mark.asyncio
async def test_search_borrows_existing_trip_counters():
    store = two_route_store()
    trip, created = await TripMaterializer(store).ensure_trip(1, SATURDAY)
    assert created
    store.trips[trip.id] = store.trips[trip.id].model_copy(update={"available_seats": 9})

    offers = await TripSearchService(store, today=lambda: TODAY).search(origin="chalco", departure_date=SATURDAY)
    assert len(offers) == 1
    assert offers[0].trip_id == trip.id
    assert offers[0].offer_id == str(trip.id)
    assert offers[0].available_seats == 9


@pytest.mark.asyncio
async def test_list_routes_only_active_and_filtered():
    search = TripSearchService(two_route_store(), today=lambda: TODAY)
    assert [r.id for r in await search.list_routes()] == [2, 1]
    assert await search.list_routes("puebla") == []


@pytest.mark.asyncio
async def test_get_route_and_trip_not_found():
    search = TripSearchService(two_route_store(), today=lambda: TODAY)
    assert (await search.get_route(1)).origin == "Chalco"
    with pytest.raises(NotFound):
        await search.get_route(77)
    with pytest.raises(NotFound):
        await search.get_trip(77)


@pytest.mark.asyncio
async def test_materializer_is_idempotent_under_concurrency():
    store = two_route_store()
    materializer = TripMaterializer(store)

    results = await asyncio.gather(*(materializer.ensure_trip(1, SATURDAY, dt.time(8, 0)) for _ in range(5)))

    assert len({trip.id for trip, _ in results}) == 1
    assert sum(created for _, created in results) == 1
    trip = results[0][0]
    assert trip.total_seats == trip.available_seats == 14
    assert trip.fare == Decimal("120")
    assert trip.route_name == "Chalco - Templo"


@pytest.mark.asyncio
async def test_materializer_fare_override_and_unknown_route():
    materializer = TripMaterializer(two_route_store())
    trip, _ = await materializer.ensure_trip(1, SATURDAY, dt.time(8, 20), fare=Decimal("93"))
    assert trip.fare == Decimal("93")
    assert trip.departure_time == dt.time(8, 20)

    with pytest.raises(NotFound):
        await materializer.ensure_trip(99, SATURDAY, dt.time(8, 0))

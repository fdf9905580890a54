import datetime as dt
from decimal import Decimal

from conftest import make_route
from models.booking import TripRecord
from services.schedule_expander import (
    add_minutes,
    expand_route,
    minutes_between,
    offer_id,
    proportional_fare,
)

TODAY = dt.date(2026, 10, 19)  # Monday
SATURDAY = dt.date(2026, 10, 24)
TUESDAY = dt.date(2026, 10, 27)


def test_saturday_yields_full_route_and_stop_offers():
    offers = expand_route(make_route(), today=TODAY, target_date=SATURDAY)

    assert [o.boarding_point for o in offers] == ["Chalco", "Ixtapaluca"]
    full, stop = offers
    assert full.boarding_time == dt.time(8, 0, 0)
    assert full.fare == Decimal("120")
    assert full.offer_id == "virtual-1"
    assert full.is_virtual and not full.is_intermediate_stop
    assert full.available_seats == full.total_seats == 14

    assert stop.boarding_time == dt.time(8, 20, 0)
    assert stop.fare == Decimal("93")  # round(120 * 70 / 90)
    assert stop.duration_minutes == 70
    assert stop.offer_id == "virtual-1-Ixtapaluca"
    assert stop.route_name == "Chalco - Templo (desde Ixtapaluca)"
    assert stop.origin == "Ixtapaluca"
    assert stop.departure_date == SATURDAY


def test_non_operating_weekday_yields_nothing():
    assert expand_route(make_route(), today=TODAY, target_date=TUESDAY) == []


def test_full_weekday_names_are_accepted():
    route = make_route(operating_days=["Sábado"])
    assert len(expand_route(route, today=TODAY, target_date=SATURDAY)) == 2
    assert expand_route(route, today=TODAY, target_date=TUESDAY) == []


def test_empty_operating_days_means_every_day():
    route = make_route(operating_days=[])
    assert len(expand_route(route, today=TODAY, target_date=TUESDAY)) == 2


def test_past_dates_are_skipped():
    assert expand_route(make_route(), today=TODAY, target_date=dt.date(2026, 10, 17)) == []


def test_no_date_means_today_without_weekday_check():
    offers = expand_route(make_route(), today=TODAY)  # Monday, route runs weekends only
    assert len(offers) == 2
    assert all(o.departure_date == TODAY for o in offers)


def test_origin_and_destination_filters_are_case_insensitive_substrings():
    route = make_route()
    only_stop = expand_route(route, today=TODAY, target_date=SATURDAY, origin="ixta")
    assert [o.boarding_point for o in only_stop] == ["Ixtapaluca"]

    only_full = expand_route(route, today=TODAY, target_date=SATURDAY, origin="CHAL")
    assert [o.boarding_point for o in only_full] == ["Chalco"]

    assert expand_route(route, today=TODAY, target_date=SATURDAY, destination="temp")
    assert expand_route(route, today=TODAY, target_date=SATURDAY, destination="Puebla") == []


def test_absolute_stop_time_and_fixed_fare():
    route = make_route(
        fare=100,
        duration_minutes=100,
        departure_time="07:00:00",
        stops=[
            {"name": "Los Reyes La Paz", "time": "07:25:00"},
            {"name": "Santa Martha", "timeOffset": 45, "precio_desde_aqui": 60},
        ],
    )
    offers = expand_route(route, today=TODAY, target_date=SATURDAY)
    by_point = {o.boarding_point: o for o in offers}

    reyes = by_point["Los Reyes La Paz"]
    assert reyes.boarding_time == dt.time(7, 25)
    assert reyes.fare == Decimal("75")
    assert reyes.duration_minutes == 75

    martha = by_point["Santa Martha"]
    assert martha.boarding_time == dt.time(7, 45)
    assert martha.fare == Decimal("60")
    assert martha.offer_id == "virtual-1-Santa-Martha"

    assert [o.boarding_time for o in offers] == sorted(o.boarding_time for o in offers)


def test_offers_sorted_by_boarding_time_even_when_stop_wraps_past_midnight():
    route = make_route(departure_time="23:30:00", stops=[{"name": "Late Stop", "timeOffset": 45}])
    offers = expand_route(route, today=TODAY, target_date=SATURDAY)
    assert [o.boarding_time for o in offers] == [dt.time(0, 15), dt.time(23, 30)]


def test_existing_trip_counters_are_borrowed():
    trip = TripRecord(
        id=42,
        route_id=1,
        departure_date=SATURDAY,
        departure_time=dt.time(8, 0),
        fare=Decimal("120"),
        total_seats=14,
        available_seats=5,
    )
    offers = expand_route(make_route(), today=TODAY, target_date=SATURDAY, existing_trip=trip)
    assert all(o.trip_id == 42 and o.available_seats == 5 and o.total_seats == 14 for o in offers)
    assert not any(o.is_virtual for o in offers)


def test_zero_duration_falls_back_to_full_fare():
    route = make_route(duration_minutes=0)
    stop = expand_route(route, today=TODAY, target_date=SATURDAY, origin="Ixtapaluca")[0]
    assert stop.fare == Decimal("120")
    assert stop.duration_minutes == 0


def test_proportional_fare_matches_rounded_formula():
    fare, duration = Decimal("120"), 90
    for elapsed in range(0, duration + 1):
        expected = (fare * (duration - elapsed) / duration).quantize(Decimal("1"), rounding="ROUND_HALF_UP")
        assert proportional_fare(fare, duration, elapsed) == expected
    assert proportional_fare(fare, duration, 200) == 0


def test_time_helpers():
    assert add_minutes(dt.time(8, 0, 30), 20) == dt.time(8, 20, 0)
    assert add_minutes(dt.time(23, 50), 30) == dt.time(0, 20)
    assert minutes_between(dt.time(8, 0), dt.time(8, 20)) == 20
    assert minutes_between(dt.time(23, 0), dt.time(1, 0)) == 120
    assert offer_id(3, "Villa  de  Guadalupe") == "virtual-3-Villa-de-Guadalupe"


def test_stored_stop_fare_key_is_used_verbatim():
    route = make_route(stops=[{"name": "Ixtapaluca", "timeOffset": 20, "precio_desde_aqui": 50}])
    assert route.stops[0].fare_from_here == Decimal("50")

    offers = expand_route(route, today=TODAY, target_date=SATURDAY)
    assert offers[1].boarding_point == "Ixtapaluca"
    assert offers[1].fare == Decimal("50")

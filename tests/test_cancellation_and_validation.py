import datetime as dt

import pytest

from conftest import FakeNotifier
from core.errors import AlreadyValidated, Conflict, NotFound
from core.signing import ReservationSigner
from models.booking import ReservationRequest
from models.db_models import TRIP_CANCELLED
from services.cancellation_service import DEFAULT_REASON, CancellationService
from services.notification_service import NotificationService
from services.reservation_service import ReservationService
from services.trip_materializer import TripMaterializer
from services.validation_service import ValidationService


async def book(store, notifications, day, people):
    service = ReservationService(
        store, TripMaterializer(store), ReservationSigner("cancel-test-secret-abcdefgh"), notifications
    )
    results = []
    for name, email in people:
        results.append(await service.reserve(ReservationRequest(
            customer_name=name,
            customer_email=email,
            route_id=1,
            departure_date=day,
            departure_time=dt.time(8, 0),
        )))
    return results


PEOPLE = [("Ana", "ana@example.com"), ("Beto", "beto@example.com"), ("Carla", "carla@example.com")]


@pytest.mark.asyncio
async def test_cancel_counts_all_reservations_even_if_a_notice_fails(store, saturday):
    notifier = FakeNotifier(fail_for={"beto@example.com"})
    notifications = NotificationService(notifier)
    booked = await book(store, notifications, saturday, PEOPLE)
    await notifications.drain()
    trip_id = booked[0].reservation.trip_id
    before = {r.id: r for r in store.reservations.values()}

    result = await CancellationService(store, notifications).cancel_trip(trip_id)
    await notifications.drain()

    assert result.trip_id == trip_id
    assert result.affected_reservations == 3
    assert store.trips[trip_id].status == TRIP_CANCELLED
    assert {r.id: r for r in store.reservations.values()} == before
    assert sorted(n.customer_email for n in notifier.cancellations) == ["ana@example.com", "carla@example.com"]
    assert all(n.reason == DEFAULT_REASON for n in notifier.cancellations)
    assert all(n.route_name == "Chalco → Templo" for n in notifier.cancellations)


@pytest.mark.asyncio
async def test_cancel_uses_given_reason(store, saturday, notifier):
    notifications = NotificationService(notifier)
    booked = await book(store, notifications, saturday, PEOPLE[:1])

    await CancellationService(store, notifications).cancel_trip(booked[0].reservation.trip_id, "Lluvia intensa")
    await notifications.drain()

    assert [n.reason for n in notifier.cancellations] == ["Lluvia intensa"]


@pytest.mark.asyncio
async def test_cancel_unknown_trip_is_not_found(store, notifier):
    with pytest.raises(NotFound):
        await CancellationService(store, NotificationService(notifier)).cancel_trip(404)


@pytest.mark.asyncio
async def test_cancel_trip_without_reservations(store, saturday, notifier):
    trip, _ = await TripMaterializer(store).ensure_trip(1, saturday)
    result = await CancellationService(store, NotificationService(notifier)).cancel_trip(trip.id)
    assert result.affected_reservations == 0
    assert store.trips[trip.id].status == TRIP_CANCELLED


@pytest.mark.asyncio
async def test_validate_once_then_conflict(store, saturday, notifier):
    notifications = NotificationService(notifier)
    booked = await book(store, notifications, saturday, PEOPLE[:1])
    reservation_id = booked[0].reservation.id
    gate = ValidationService(store)

    first = await gate.validate(reservation_id, "driver-7")
    stored = store.reservations[reservation_id]
    assert stored.validated is True
    assert stored.validated_by == "driver-7"
    assert stored.validated_at == first.validated_at

    with pytest.raises(AlreadyValidated) as exc:
        await gate.validate(reservation_id, "driver-8")
    assert isinstance(exc.value, Conflict)
    assert exc.value.status_code == 409

    again = store.reservations[reservation_id]
    assert again.validated_at == first.validated_at
    assert again.validated_by == "driver-7"
    await notifications.drain()


@pytest.mark.asyncio
async def test_validate_missing_reservation_reports_conflict(store):
    with pytest.raises(AlreadyValidated):
        await ValidationService(store).validate(999)


@pytest.mark.asyncio
async def test_validation_keeps_seat_counts(store, saturday, notifier):
    notifications = NotificationService(notifier)
    booked = await book(store, notifications, saturday, PEOPLE)
    trip_id = booked[0].reservation.trip_id

    for result in booked:
        await ValidationService(store).validate(result.reservation.id)

    trip = store.trips[trip_id]
    assert trip.available_seats == 11
    assert 0 <= trip.available_seats <= trip.total_seats
    await notifications.drain()

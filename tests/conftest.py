import datetime as dt
import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# Ensure project root is on sys.path so `services.*`, `stores.*` imports work
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# settings are built on import and refuse to start without a signing secret
os.environ.setdefault("RESERVATION_SECRET", "test-reservation-secret-0123456789")
os.environ.setdefault("USE_DB", "false")
os.environ.setdefault("USE_QUEUE", "false")
os.environ.setdefault("SMTP_HOST", "")


# Explicitly enable pytest-asyncio plugin for async tests/fixtures
pytest_plugins = ("pytest_asyncio",)


from config.settings import settings
from core.container import BookingContainer
from core.signing import ReservationSigner
from models.booking import RouteSchedule
from services.notification_service import NotificationService
from stores.memory import MemoryBookingStore

SECRET = os.environ["RESERVATION_SECRET"]


def next_weekday(weekday: int, after: dt.date | None = None) -> dt.date:
    """The first date strictly after ``after`` (default: today) falling on ``weekday``."""
    after = after or dt.date.today()
    days = (weekday - after.weekday()) % 7 or 7
    return after + dt.timedelta(days=days)


def make_route(**overrides) -> RouteSchedule:
    data = {
        "id": 1,
        "name": "Chalco - Templo",
        "origin": "Chalco",
        "destination": "Templo",
        "stops": [{"name": "Ixtapaluca", "timeOffset": 20}],
        "operating_days": ["Sab", "Dom"],
        "fare": 120,
        "duration_minutes": 90,
        "capacity": 14,
        "departure_time": "08:00:00",
        "arrival_time": "09:30:00",
    }
    data.update(overrides)
    return RouteSchedule.model_validate(data)


class FakeNotifier:
    """Records what would have been mailed; raises for addresses in ``fail_for``."""

    channel = "console"

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.confirmations = []
        self.cancellations = []

    async def send_confirmation(self, notice):
        if notice.customer_email in self.fail_for:
            raise ConnectionError("smtp down")
        self.confirmations.append(notice)
        return {"to": notice.customer_email, "channel": "console", "published": False}

    async def send_cancellation(self, notice):
        if notice.customer_email in self.fail_for:
            raise ConnectionError("smtp down")
        self.cancellations.append(notice)
        return {"to": notice.customer_email, "channel": "console", "published": False}


@pytest.fixture()
def saturday() -> dt.date:
    return next_weekday(5)


@pytest.fixture()
def tuesday() -> dt.date:
    return next_weekday(1)


@pytest.fixture()
def route() -> RouteSchedule:
    return make_route()


@pytest.fixture()
def store(route) -> MemoryBookingStore:
    return MemoryBookingStore([route])


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def signer() -> ReservationSigner:
    return ReservationSigner(SECRET)


@pytest.fixture()
def container(store, notifier) -> BookingContainer:
    return BookingContainer.build(settings, store=store, notifications=NotificationService(notifier))


@pytest_asyncio.fixture()
async def client(container):
    """Async test client for the booking API, wired to the in-memory container."""
    from main import create_app

    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    await container.notifications.drain()


FARE_120 = Decimal("120")

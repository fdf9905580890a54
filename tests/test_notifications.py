from decimal import Decimal

import pytest

from conftest import FakeNotifier
from infra.rabbitmq_client import EVENT_CANCELLATION, EVENT_CONFIRMATION
from models.booking import CancellationNotice, ConfirmationNotice
from services.notification_service import NotificationService
from tools import notifier as notifier_module
from tools.notifier import MailNotifier, render_cancellation, render_confirmation
from workers.notification_worker import NotificationDeliveryWorker


def confirmation(email="ana@example.com", boarding_point="Ixtapaluca"):
    return ConfirmationNotice(
        customer_name="Ana",
        customer_email=email,
        origin="Chalco",
        destination="Templo",
        trip_date="sábado, 24 de octubre de 2026",
        departure_time="08:00",
        visual_code="RES-AB12CD",
        fare=Decimal("93"),
        boarding_point=boarding_point,
        boarding_time="08:20",
    )


def cancellation(email="ana@example.com"):
    return CancellationNotice(
        customer_name="Ana",
        customer_email=email,
        route_name="Chalco → Templo",
        trip_date="sábado, 24 de octubre de 2026",
        reason="Por motivos operativos",
    )


class FakePublisher:
    def __init__(self, fail=False):
        self.fail = fail
        self.events = []
        self.closed = False

    async def publish_event(self, event_type, payload):
        if self.fail:
            raise ConnectionError("broker down")
        self.events.append((event_type, payload))
        return True

    async def disconnect(self):
        self.closed = True


def test_render_confirmation_mentions_code_and_boarding_stop():
    subject, text, body = render_confirmation(confirmation())
    assert "Chalco → Templo" in subject
    assert "RES-AB12CD" in text and "RES-AB12CD" in body
    assert "Punto de abordaje: Ixtapaluca" in text
    assert "$93 MXN" in text

    _, text, _ = render_confirmation(confirmation(boarding_point="Chalco"))
    assert "Punto de abordaje" not in text


def test_render_cancellation_includes_reason_and_refund():
    subject, text, body = render_cancellation(cancellation())
    assert subject == "Viaje cancelado - Chalco → Templo"
    assert "Motivo: Por motivos operativos" in text
    assert "reembolso" in body


@pytest.mark.asyncio
async def test_mail_notifier_without_smtp_logs_only():
    result = await MailNotifier().send_confirmation(confirmation())
    assert result == {"to": "ana@example.com", "subject": result["subject"], "channel": "console", "published": False}


@pytest.mark.asyncio
async def test_mail_notifier_sends_over_smtp(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host, self.port = host, port

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self, context=None):
            sent.append("starttls")

        def login(self, user, password):
            sent.append(("login", user))

        def send_message(self, msg):
            sent.append(msg)

    monkeypatch.setattr(notifier_module.smtplib, "SMTP", FakeSMTP)
    mailer = MailNotifier(host="smtp.example.com", user="bot", password="pw", mail_from="Bot <bot@example.com>")

    result = await mailer.send_cancellation(cancellation())

    assert result["published"] is True and result["channel"] == "email"
    assert sent[0] == "starttls"
    assert sent[1] == ("login", "bot")
    assert sent[2]["To"] == "ana@example.com"
    assert sent[2]["Subject"].startswith("Viaje cancelado")


@pytest.mark.asyncio
async def test_publisher_is_preferred_and_falls_back_to_mail():
    mail = FakeNotifier()
    publisher = FakePublisher()
    service = NotificationService(mail, publisher)

    result = await service.notify_confirmation(confirmation())
    assert result["channel"] == "queue"
    assert publisher.events[0][0] == EVENT_CONFIRMATION
    assert publisher.events[0][1]["visual_code"] == "RES-AB12CD"
    assert mail.confirmations == []

    service = NotificationService(mail, FakePublisher(fail=True))
    await service.notify_cancellation(cancellation())
    assert len(mail.cancellations) == 1


@pytest.mark.asyncio
async def test_cancellation_fan_out_counts_deliveries():
    mail = FakeNotifier(fail_for={"b@example.com"})
    service = NotificationService(mail)

    task = service.dispatch_cancellations([cancellation("a@example.com"), cancellation("b@example.com"), cancellation("c@example.com")])
    assert await task == 2
    await service.drain()
    assert service.pending == 0


@pytest.mark.asyncio
async def test_close_drains_and_disconnects():
    publisher = FakePublisher()
    service = NotificationService(FakeNotifier(), publisher)
    service.dispatch_confirmation(confirmation())
    await service.close()
    assert service.pending == 0
    assert publisher.closed is True
    assert len(publisher.events) == 1


@pytest.mark.asyncio
async def test_worker_delivers_known_events_and_counts_failures():
    mail = FakeNotifier(fail_for={"down@example.com"})
    worker = NotificationDeliveryWorker(mail)

    assert await worker.deliver({"type": EVENT_CONFIRMATION, "payload": confirmation().model_dump(mode="json")})
    assert await worker.deliver({"type": EVENT_CANCELLATION, "payload": cancellation().model_dump(mode="json")})
    assert not await worker.deliver({"type": "bus.delayed", "payload": {}})
    assert not await worker.deliver({"type": EVENT_CONFIRMATION, "payload": {"customer_email": "x@example.com"}})
    assert not await worker.deliver(
        {"type": EVENT_CANCELLATION, "payload": cancellation("down@example.com").model_dump(mode="json")}
    )

    assert worker.delivered == 2
    assert worker.failed == 3
    assert mail.confirmations[0].fare == Decimal("93")

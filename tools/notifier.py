import asyncio
import html
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

from models.booking import CancellationNotice, ConfirmationNotice

logger = logging.getLogger(__name__)

BRAND = "Boletera Templo"
REFUND_NOTE = "Tu reembolso será procesado en las próximas 24-48 horas."


def render_confirmation(notice: ConfirmationNotice) -> tuple[str, str, str]:
    """Return (subject, text, html) for a booking confirmation."""
    subject = f"Boleto confirmado - {notice.origin} → {notice.destination}"
    lines = [
        f"Hola {notice.customer_name},",
        "",
        f"Tu boleto para el viaje {notice.origin} → {notice.destination} ha sido confirmado.",
        "",
    ]
    if notice.boarding_point and notice.boarding_point != notice.origin:
        lines.append(f"Punto de abordaje: {notice.boarding_point}")
        lines.append(f"Hora de abordaje: {notice.boarding_time}")
    lines += [
        f"Fecha: {notice.trip_date}",
        f"Hora de salida/abordaje: {notice.departure_time}",
        f"Precio pagado: ${notice.fare} MXN",
        "",
        f"Tu código de reserva: {notice.visual_code}",
        "Presenta este código al abordar y llega 10 minutos antes de la hora de salida.",
        "",
        BRAND,
    ]
    text = "\n".join(lines)

    esc = html.escape
    rows = ""
    if notice.boarding_point and notice.boarding_point != notice.origin:
        rows += f"<p><strong>Punto de abordaje:</strong> {esc(notice.boarding_point)}</p>"
        rows += f"<p><strong>Hora de abordaje:</strong> {esc(notice.boarding_time)}</p>"
    body = (
        f"<h1>¡Boleto Confirmado!</h1>"
        f"<p>Hola <strong>{esc(notice.customer_name)}</strong>,</p>"
        f"<p>Tu boleto para el viaje <strong>{esc(notice.origin)}</strong> → "
        f"<strong>{esc(notice.destination)}</strong> ha sido confirmado.</p>"
        f"{rows}"
        f"<p><strong>Fecha:</strong> {esc(notice.trip_date)}</p>"
        f"<p><strong>Hora de salida/abordaje:</strong> {esc(notice.departure_time)}</p>"
        f"<p><strong>Precio pagado:</strong> ${notice.fare} MXN</p>"
        f"<p>Tu código de reserva</p><h2>{esc(notice.visual_code)}</h2>"
        f"<p>{BRAND}</p>"
    )
    return subject, text, body


def render_cancellation(notice: CancellationNotice) -> tuple[str, str, str]:
    """Return (subject, text, html) for a trip cancellation."""
    subject = f"Viaje cancelado - {notice.route_name}"
    text = "\n".join([
        f"Hola {notice.customer_name},",
        "",
        "Lamentamos informarte que el siguiente viaje ha sido cancelado:",
        f"Ruta: {notice.route_name}",
        f"Fecha: {notice.trip_date}",
        f"Motivo: {notice.reason}",
        "",
        REFUND_NOTE,
        "",
        f"Equipo {BRAND}",
    ])
    esc = html.escape
    body = (
        f"<h1>Viaje Cancelado</h1>"
        f"<p>Hola <strong>{esc(notice.customer_name)}</strong>,</p>"
        f"<p>Lamentamos informarte que el siguiente viaje ha sido cancelado:</p>"
        f"<p><strong>Ruta:</strong> {esc(notice.route_name)}</p>"
        f"<p><strong>Fecha:</strong> {esc(notice.trip_date)}</p>"
        f"<p><strong>Motivo:</strong> {esc(notice.reason)}</p>"
        f"<p>{REFUND_NOTE}</p>"
        f"<p><strong>Equipo {BRAND}</strong></p>"
    )
    return subject, text, body


class MailNotifier:
    """
    Deliver booking mails.

    - SMTP configured: send through smtplib (STARTTLS) in a worker thread
    - no SMTP_HOST: log the message instead (console channel, dev only)

    Delivery errors are raised; callers decide whether they matter.
    """

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        mail_from: str = f"{BRAND} <no-reply@example.com>",
        timeout: float = 15.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.mail_from = mail_from
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "MailNotifier":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            mail_from=settings.MAIL_FROM,
        )

    @property
    def channel(self) -> str:
        return "email" if self.host else "console"

    def _send_smtp(self, to: str, subject: str, text: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.mail_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        msg.add_alternative(body, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls(context=ssl.create_default_context())
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def send(self, to: str, subject: str, text: str, body: str) -> dict:
        if not self.host:
            logger.info("[NOTIFY][console] To %s: %s\n%s", to, subject, text)
            return {"to": to, "subject": subject, "channel": "console", "published": False}

        await asyncio.to_thread(self._send_smtp, to, subject, text, body)
        logger.info("[NOTIFY][email] Sent '%s' to %s", subject, to)
        return {"to": to, "subject": subject, "channel": "email", "published": True}

    async def send_confirmation(self, notice: ConfirmationNotice) -> dict:
        return await self.send(notice.customer_email, *render_confirmation(notice))

    async def send_cancellation(self, notice: CancellationNotice) -> dict:
        return await self.send(notice.customer_email, *render_cancellation(notice))

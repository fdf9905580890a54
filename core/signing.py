"""
Reservation codes and tamper-evident signatures.

The visual code is what passengers read out and what the QR encodes; the
signature lets the boarding scanner tell a real ticket from a made-up code.
"""
import datetime as dt
import hashlib
import hmac
import json
import secrets
import string

CODE_PREFIX = "RES-"
CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_visual_code() -> str:
    """RES-XXXXXX with X in A-Z0-9. Unique in practice, not guaranteed."""
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def epoch_millis(value: dt.datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return int(value.timestamp() * 1000)


class ReservationSigner:
    def __init__(self, secret: str):
        if not secret:
            raise ValueError("a signing secret is required")
        self._key = secret.encode("utf-8")

    @staticmethod
    def canonical_payload(code: str, trip_id: int, created_at: dt.datetime, name: str, email: str) -> bytes:
        payload = {
            "code": code,
            "trip_id": trip_id,
            "timestamp": epoch_millis(created_at),
            "name": name,
            "email": email,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def sign(self, code: str, trip_id: int, created_at: dt.datetime, name: str, email: str) -> str:
        message = self.canonical_payload(code, trip_id, created_at, name, email)
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def verify(self, reservation) -> bool:
        """Recompute the signature of a stored reservation and compare in constant time."""
        expected = self.sign(
            reservation.visual_code,
            reservation.trip_id,
            reservation.created_at,
            reservation.customer_name,
            reservation.customer_email,
        )
        return hmac.compare_digest(expected, reservation.signature)

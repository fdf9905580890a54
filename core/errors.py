"""
Booking error taxonomy.

Every failure the booking core reports is one of these. Each carries an
HTTP status so the API layer can render it without knowing the cause, and a
``details`` dict with enough context (trip id, reservation id, ...) for the
client to show a specific message.
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(BookingError):
    """Malformed or missing required input. Never retried."""
    code = "validation_error"
    status_code = 400


class NotFound(BookingError):
    code = "not_found"
    status_code = 404


class NoAvailability(BookingError):
    """No seats left (or the trip is not bookable) at check time."""
    code = "no_availability"
    status_code = 409


class Conflict(BookingError):
    """Lost a race: seat decrement or unique code insert affected nothing."""
    code = "conflict"
    status_code = 409


class AlreadyValidated(Conflict):
    code = "already_validated"


class InternalError(BookingError):
    code = "internal_error"
    status_code = 500

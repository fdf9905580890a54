# services/validation_service.py
"""
Boarding validation gate: a reservation can be checked in exactly once.
"""
import logging
from typing import Optional

from core.dates import utcnow
from core.errors import AlreadyValidated, BookingError, InternalError
from models.booking import ValidationResult
from stores.base import BookingStore

logger = logging.getLogger(__name__)


class ValidationService:
    def __init__(self, store: BookingStore):
        self.store = store

    async def validate(self, reservation_id: int, validated_by: Optional[str] = None) -> ValidationResult:
        """
        Single guarded update (validated = false -> true). Zero affected rows
        means already validated or no such reservation; both are reported as
        AlreadyValidated without a follow-up read.
        """
        at = utcnow()
        async with self.store.unit_of_work() as uow:
            try:
                if await uow.reservations.mark_validated(reservation_id, validated_by, at) == 0:
                    raise AlreadyValidated(
                        "Reservation already validated or not found",
                        {"reservation_id": reservation_id},
                    )
                await uow.commit()
            except BookingError:
                await uow.rollback()
                raise
            except Exception as e:
                await uow.rollback()
                logger.exception("Validation failed: reservation_id=%s", reservation_id)
                raise InternalError("Could not validate reservation", {"reservation_id": reservation_id}) from e

        logger.info("Reservation validated: id=%s by=%s at=%s", reservation_id, validated_by, at.isoformat())
        return ValidationResult(reservation_id=reservation_id, validated_by=validated_by, validated_at=at)

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CreateTripRequest(BaseModel):
    route_id: int
    departure_date: dt.date
    departure_time: Optional[dt.time] = None
    fare: Optional[Decimal] = Field(None, ge=0)


class CancelTripRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ValidateReservationRequest(BaseModel):
    validated_by: Optional[str] = Field(None, max_length=100)

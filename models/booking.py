# models/booking.py
"""
Typed booking models shared by services, stores and the API.

Routes arrive from the store with their stop list and operating days already
decoded into these types; nothing downstream looks at raw JSON again.
"""
import datetime as dt
import json
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from core.dates import WEEKDAY_NAMES, weekday_names
from models.db_models import TRIP_SCHEDULED


def _decode_json_list(value):
    """Accept a JSON-encoded list (as some MySQL drivers return JSON columns) or a list."""
    if value is None or value == "":
        return []
    if isinstance(value, (str, bytes)):
        value = json.loads(value)
    return value


def _whole_second(value: Optional[dt.time]) -> Optional[dt.time]:
    return value.replace(microsecond=0) if value is not None else None


class Stop(BaseModel):
    """
    Intermediate boarding point.

    Either an absolute boarding time or a minute offset from the route's
    departure; with neither, the offset is 0. A zero/empty fare_from_here
    means the fare is computed proportionally.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    time: Optional[dt.time] = None
    time_offset: Optional[int] = Field(None, validation_alias=AliasChoices("time_offset", "timeOffset"))
    fare_from_here: Optional[Decimal] = Field(
        None, validation_alias=AliasChoices("fare_from_here", "precio_desde_aqui", "fareFromHere")
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("stop name must not be empty")
        return v

    @field_validator("time")
    @classmethod
    def _drop_microseconds(cls, v):
        return _whole_second(v)

    @model_validator(mode="after")
    def _one_time_source(self):
        if self.time is not None and self.time_offset:
            raise ValueError(f"stop {self.name!r} has both an absolute time and an offset")
        return self


class RouteSchedule(BaseModel):
    """A route as the booking core sees it (read-only)."""
    id: int
    name: str
    origin: str
    destination: str
    stops: List[Stop] = Field(default_factory=list)
    operating_days: List[str] = Field(default_factory=list)
    fare: Decimal
    duration_minutes: int = Field(0, ge=0)
    capacity: int = Field(14, gt=0)
    departure_time: dt.time
    arrival_time: Optional[dt.time] = None
    is_active: bool = True

    @field_validator("stops", "operating_days", mode="before")
    @classmethod
    def _decode_lists(cls, v):
        return _decode_json_list(v)

    @field_validator("operating_days")
    @classmethod
    def _known_weekdays(cls, days: List[str]) -> List[str]:
        unknown = [d for d in days if d not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"unknown operating days: {unknown}")
        return days

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def _drop_microseconds(cls, v):
        return _whole_second(v)

    def operates_on(self, day: dt.date) -> bool:
        """No operating days means the route runs every day."""
        if not self.operating_days:
            return True
        short, full = weekday_names(day)
        return short in self.operating_days or full in self.operating_days


class NewTrip(BaseModel):
    route_id: int
    departure_date: dt.date
    departure_time: dt.time
    arrival_time: Optional[dt.time] = None
    fare: Decimal
    total_seats: int = Field(..., gt=0)


class TripRecord(BaseModel):
    id: int
    route_id: int
    departure_date: dt.date
    departure_time: dt.time
    arrival_time: Optional[dt.time] = None
    fare: Decimal
    total_seats: int
    available_seats: int
    status: str = TRIP_SCHEDULED
    route_name: str = ""
    origin: str = ""
    destination: str = ""

    @property
    def is_scheduled(self) -> bool:
        return self.status == TRIP_SCHEDULED


class NewReservation(BaseModel):
    trip_id: int
    visual_code: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    fare_paid: Decimal
    signature: str
    boarding_point: str
    boarding_time: dt.time
    created_at: dt.datetime


class ReservationRecord(NewReservation):
    id: int
    validated: bool = False
    validated_by: Optional[str] = None
    validated_at: Optional[dt.datetime] = None


class TripOffer(BaseModel):
    """An unpersisted, bookable candidate produced by the schedule expander."""
    offer_id: str
    trip_id: Optional[int] = None
    route_id: int
    route_name: str
    origin: str
    destination: str
    departure_date: dt.date
    boarding_time: dt.time
    arrival_time: Optional[dt.time] = None
    fare: Decimal
    total_seats: int
    available_seats: int
    boarding_point: str
    is_intermediate_stop: bool = False
    duration_minutes: int
    stops: List[Stop] = Field(default_factory=list)

    @property
    def is_virtual(self) -> bool:
        return self.trip_id is None


class ReservationRequest(BaseModel):
    """
    Input to the reservation engine.

    Everything is optional at the type level; the engine reports missing
    fields as a ValidationError so callers get one error shape.
    """
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    boarding_point: Optional[str] = None
    boarding_time: Optional[dt.time] = None
    fare: Optional[Decimal] = None
    trip_id: Optional[int] = None
    route_id: Optional[int] = None
    departure_date: Optional[dt.date] = None
    departure_time: Optional[dt.time] = None


class ReservationResult(BaseModel):
    reservation: ReservationRecord
    route_name: str
    origin: str
    destination: str
    departure_date: dt.date
    departure_time: dt.time
    arrival_time: Optional[dt.time] = None
    available_seats: int


class ReservationTicket(BaseModel):
    """A stored reservation as shown on the ticket page and to the boarding scanner."""
    reservation: ReservationRecord
    route_name: str
    origin: str
    destination: str
    departure_date: dt.date
    departure_time: dt.time
    trip_status: str
    signature_valid: bool


class CancellationResult(BaseModel):
    trip_id: int
    affected_reservations: int


class ValidationResult(BaseModel):
    reservation_id: int
    validated_by: Optional[str] = None
    validated_at: dt.datetime


class ConfirmationNotice(BaseModel):
    customer_name: str
    customer_email: str
    origin: str
    destination: str
    trip_date: str
    departure_time: str
    visual_code: str
    fare: Decimal
    boarding_point: str
    boarding_time: str


class CancellationNotice(BaseModel):
    customer_name: str
    customer_email: str
    route_name: str
    trip_date: str
    reason: str

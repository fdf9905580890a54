"""
SQLAlchemy ORM models for the booking database.

Purpose:
- Define Route, Trip and Reservation tables
- Use SQLAlchemy async-compatible models
- Support migrations via Alembic

Integrity rules enforced by the database itself:
- one trip per (route_id, departure_date, departure_time)
- 0 <= available_seats <= total_seats
- reservation visual codes are unique
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from core.db import Base
from datetime import datetime

TRIP_SCHEDULED = "scheduled"
TRIP_CANCELLED = "cancelled"


class Route(Base):
    """
    A scheduled service template.

    Columns:
    - origin/destination: terminal names
    - stops: JSON array of intermediate stops [{name, time | time_offset, fare_from_here}, ...]
    - operating_days: JSON array of weekday names (["Sab", "Dom"]); empty means every day
    - fare: full-route fare
    - duration_minutes: scheduled origin -> destination duration
    - capacity: seats per trip
    - departure_time/arrival_time: scheduled time of day
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False, index=True)
    stops = Column(JSON, nullable=True)
    operating_days = Column(JSON, nullable=True)
    fare = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=False, default=14)
    departure_time = Column(Time, nullable=False)
    arrival_time = Column(Time, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_route_capacity_positive"),
        CheckConstraint("duration_minutes >= 0", name="ck_route_duration_non_negative"),
    )

    # --- relationships ---
    # One Route -> many Trips (one per date/time)
    trips = relationship("Trip", back_populates="route", lazy="noload")


class Trip(Base):
    """
    A bookable, seat-counted instance of a Route on one date.

    available_seats is only ever changed by a guarded decrement inside a
    transaction that holds the row lock.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    arrival_time = Column(Time, nullable=True)
    fare = Column(Numeric(10, 2), nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=TRIP_SCHEDULED, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("route_id", "departure_date", "departure_time", name="ux_trip_route_date_time"),
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_trip_available_seats",
        ),
    )

    # --- relationships ---
    route = relationship("Route", back_populates="trips", lazy="noload")
    reservations = relationship("Reservation", back_populates="trip", lazy="noload")


class Reservation(Base):
    """
    One seat held by one customer on one Trip.

    signature is an HMAC over (visual_code, trip_id, created_at, name, email);
    created_at is written explicitly (whole seconds) so it can be verified.
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    visual_code = Column(String(20), unique=True, index=True, nullable=False)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(30), nullable=True)
    fare_paid = Column(Numeric(10, 2), nullable=False)
    signature = Column(String(64), nullable=False)
    boarding_point = Column(String(255), nullable=False)
    boarding_time = Column(Time, nullable=False)
    validated = Column(Boolean, nullable=False, default=False)
    validated_by = Column(String(100), nullable=True)
    validated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)

    # --- relationships ---
    trip = relationship("Trip", back_populates="reservations", lazy="noload")

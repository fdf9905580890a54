"""
Initial database schema: routes, trips, reservations.

Revision ID: 001
"""
from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create initial tables."""
    # Routes: service templates, read-only to the booking core
    op.create_table(
        "routes",
        sa.Column("id", sa.Integer(), nullable=False, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("stops", sa.JSON(), nullable=True),
        sa.Column("operating_days", sa.JSON(), nullable=True),
        sa.Column("fare", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("departure_time", sa.Time(), nullable=False),
        sa.Column("arrival_time", sa.Time(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("capacity > 0", name="ck_route_capacity_positive"),
        sa.CheckConstraint("duration_minutes >= 0", name="ck_route_duration_non_negative"),
    )
    op.create_index("ix_routes_destination", "routes", ["destination"])
    op.create_index("ix_routes_is_active", "routes", ["is_active"])

    # Trips: one per (route, date, time); seat counters live here
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), nullable=False, autoincrement=True),
        sa.Column("route_id", sa.Integer(), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("departure_date", sa.Date(), nullable=False),
        sa.Column("departure_time", sa.Time(), nullable=False),
        sa.Column("arrival_time", sa.Time(), nullable=True),
        sa.Column("fare", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id", "departure_date", "departure_time", name="ux_trip_route_date_time"),
        sa.CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_trip_available_seats",
        ),
    )
    op.create_index("ix_trips_route_id", "trips", ["route_id"])
    op.create_index("ix_trips_departure_date", "trips", ["departure_date"])
    op.create_index("ix_trips_status", "trips", ["status"])

    # Reservations: one seat each, signed
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), nullable=False, autoincrement=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("visual_code", sa.String(20), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(30), nullable=True),
        sa.Column("fare_paid", sa.Numeric(10, 2), nullable=False),
        sa.Column("signature", sa.String(64), nullable=False),
        sa.Column("boarding_point", sa.String(255), nullable=False),
        sa.Column("boarding_time", sa.Time(), nullable=False),
        sa.Column("validated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("validated_by", sa.String(100), nullable=True),
        sa.Column("validated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reservations_visual_code", "reservations", ["visual_code"], unique=True)
    op.create_index("ix_reservations_trip_id", "reservations", ["trip_id"])


def downgrade() -> None:
    """Drop all tables (reverse order of creation)."""
    op.drop_table("reservations")
    op.drop_table("trips")
    op.drop_table("routes")

"""Initial schema: users, trips and the pricing settings row.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

TRIP_STATUSES = (
    "REQUESTED",
    "SCHEDULED",
    "ACCEPTED",
    "DRIVER_ARRIVED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
)
VEHICLE_CLASSES = ("REGULAR", "AC", "PUBLIC", "VIP", "MICROBUS", "MOTORCYCLE")


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), unique=True, nullable=False),
        sa.Column(
            "role",
            sa.Enum("CUSTOMER", "DRIVER", "ADMIN", name="userrole"),
            nullable=False,
        ),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.Enum(*TRIP_STATUSES, name="tripstatus"), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(512), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(512), nullable=False),
        sa.Column("route_geometry", sa.JSON, nullable=False),
        sa.Column("distance_meters", sa.Float, nullable=False),
        sa.Column("duration_seconds", sa.Float, nullable=False),
        sa.Column(
            "route_used_fallback", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "vehicle_class", sa.Enum(*VEHICLE_CLASSES, name="vehicleclass"), nullable=False
        ),
        sa.Column("quoted_price", sa.Integer, nullable=False),
        sa.Column("final_price", sa.Integer, nullable=True),
        sa.Column(
            "cancellation_reason",
            sa.Enum("CUSTOMER", "DRIVER", "TIMEOUT", name="cancellationreason"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_customer", "trips", ["customer_id"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])

    # ── pricing_settings ──────────────────────────────────────────────
    op.create_table(
        "pricing_settings",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("schema_version", sa.Integer, nullable=False),
        sa.Column("base_fare", sa.Numeric(12, 2), nullable=False),
        sa.Column("per_km_fare", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("vehicle_multipliers", sa.JSON, nullable=False),
        sa.Column("manager_contact", sa.String(32), nullable=False, server_default=""),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("pricing_settings")
    op.drop_index("idx_trips_driver", table_name="trips")
    op.drop_index("idx_trips_customer", table_name="trips")
    op.drop_index("idx_trips_status", table_name="trips")
    op.drop_table("trips")
    op.drop_table("users")
    sa.Enum(name="cancellationreason").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="vehicleclass").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="tripstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)

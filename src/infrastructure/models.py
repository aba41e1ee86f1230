"""
SQLAlchemy ORM models.

Tables
------
* ``users``             -- customers, drivers and admins
* ``trips``             -- one row per trip, mirrors ``domain.entities.Trip``
* ``pricing_settings``  -- single row (id=1) holding the fare parameters

Indexes
-------
* **B-Tree** on ``status``, ``customer_id`` and ``driver_id`` for the
  per-user trip lookups used by the API.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)

from .database import Base
from src.domain.enums import CancellationReason, TripStatus, UserRole, VehicleClass


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), unique=True, nullable=False)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(String(36), primary_key=True)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    status = Column(Enum(TripStatus), default=TripStatus.REQUESTED, nullable=False)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(512), nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(512), nullable=False)

    # [[lat, lng], ...] as resolved; never patched, replaced on re-resolution
    route_geometry = Column(JSON, nullable=False)
    distance_meters = Column(Float, nullable=False)
    duration_seconds = Column(Float, nullable=False)
    route_used_fallback = Column(Boolean, default=False, nullable=False)

    vehicle_class = Column(Enum(VehicleClass), nullable=False)
    quoted_price = Column(Integer, nullable=False)
    final_price = Column(Integer, nullable=True)
    cancellation_reason = Column(Enum(CancellationReason), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_customer", "customer_id"),
        Index("idx_trips_driver", "driver_id"),
    )


class PricingSettingsModel(Base):
    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, default=1)
    schema_version = Column(Integer, nullable=False)
    base_fare = Column(Numeric(12, 2), nullable=False)
    per_km_fare = Column(Numeric(12, 2), nullable=False)
    commission_percent = Column(Numeric(5, 2), nullable=False)
    # {"REGULAR": "1", "VIP": "2.0", ...}
    vehicle_multipliers = Column(JSON, nullable=False)
    manager_contact = Column(String(32), nullable=False, default="")
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

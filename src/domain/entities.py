"""
Domain entities and value objects.

``Location``, ``Place`` and ``RouteResult`` are immutable values.  A new
route resolution supersedes the old ``RouteResult``; it is never patched.

``Trip`` is a plain record.  Its status is only changed through
:class:`src.domain.state_machine.TripStateMachine`, which owns it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import CancellationReason, TripStatus, VehicleClass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lng}")

    @classmethod
    def from_lng_lat(cls, pair) -> "Location":
        """Build from a ``[lng, lat]`` pair as sent by OSRM / GeoJSON."""
        lng, lat = pair[0], pair[1]
        return cls(lat=float(lat), lng=float(lng))


def format_coordinates(point: Location) -> str:
    """Coordinate-literal address used when geocoding gives nothing."""
    return f"{point.lat:.5f}, {point.lng:.5f}"


@dataclass(frozen=True)
class Place:
    location: Location
    address: str


@dataclass(frozen=True)
class PlaceSuggestion:
    label: str
    location: Location


@dataclass(frozen=True)
class RouteResult:
    geometry: tuple[Location, ...]
    distance_meters: float
    duration_seconds: float
    used_fallback: bool = False

    def __post_init__(self) -> None:
        if len(self.geometry) < 2:
            raise ValueError("Route geometry needs at least two points")
        if self.distance_meters < 0:
            raise ValueError("distance_meters must be >= 0")
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Trip:
    customer_id: str
    pickup: Place
    dropoff: Place
    route: RouteResult
    vehicle_class: VehicleClass
    quoted_price: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    driver_id: Optional[str] = None
    status: TripStatus = TripStatus.REQUESTED
    final_price: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    scheduled_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[CancellationReason] = None

    @property
    def distance_meters(self) -> float:
        return self.route.distance_meters

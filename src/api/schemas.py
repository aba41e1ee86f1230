"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities import Location, RouteResult, Trip
from src.domain.enums import CancellationReason, OfferOutcome, VehicleClass
from src.domain.pricing import PricingConfig


# ── Shared ────────────────────────────────────────────────────────────


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_location(self) -> Location:
        return Location(lat=self.lat, lng=self.lng)


class RouteOut(BaseModel):
    geometry: list[tuple[float, float]]
    distance_meters: float
    duration_seconds: float
    used_fallback: bool

    @classmethod
    def from_route(cls, route: RouteResult) -> "RouteOut":
        return cls(
            geometry=[(p.lat, p.lng) for p in route.geometry],
            distance_meters=route.distance_meters,
            duration_seconds=route.duration_seconds,
            used_fallback=route.used_fallback,
        )


# ── Requests ──────────────────────────────────────────────────────────


class QuoteRequest(BaseModel):
    pickup: LatLng
    dropoff: LatLng
    pickup_address: Optional[str] = Field(None, max_length=512)
    dropoff_address: Optional[str] = Field(None, max_length=512)


class TripCreateRequest(QuoteRequest):
    customer_id: str
    vehicle_class: VehicleClass
    scheduled_at: Optional[datetime] = Field(
        None, description="Book for later; the trip starts out SCHEDULED."
    )


class DispatchRequest(BaseModel):
    candidate_driver_ids: list[str] = Field(..., min_length=1)


class AcceptRequest(BaseModel):
    driver_id: str = Field(..., min_length=1)


class CompleteRequest(BaseModel):
    final_price: Optional[int] = Field(None, ge=0)


class CancelRequest(BaseModel):
    reason: CancellationReason = CancellationReason.CUSTOMER


class SettingsUpdateRequest(BaseModel):
    base_fare: Optional[Decimal] = Field(None, ge=0)
    per_km_fare: Optional[Decimal] = Field(None, ge=0)
    commission_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    vehicle_multipliers: Optional[dict[VehicleClass, Decimal]] = None
    manager_contact: Optional[str] = Field(None, max_length=32)


# ── Responses ─────────────────────────────────────────────────────────


class QuoteResponse(BaseModel):
    pickup_address: str
    dropoff_address: str
    route: RouteOut
    quotes: dict[VehicleClass, int]
    manager_contact: str


class TripResponse(BaseModel):
    id: str
    customer_id: str
    driver_id: Optional[str] = None
    status: str
    pickup: LatLng
    pickup_address: str
    dropoff: LatLng
    dropoff_address: str
    route: RouteOut
    vehicle_class: VehicleClass
    quoted_price: int
    final_price: Optional[int] = None
    cancellation_reason: Optional[CancellationReason] = None
    created_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripResponse":
        return cls(
            id=trip.id,
            customer_id=trip.customer_id,
            driver_id=trip.driver_id,
            status=trip.status.value,
            pickup=LatLng(lat=trip.pickup.location.lat, lng=trip.pickup.location.lng),
            pickup_address=trip.pickup.address,
            dropoff=LatLng(
                lat=trip.dropoff.location.lat, lng=trip.dropoff.location.lng
            ),
            dropoff_address=trip.dropoff.address,
            route=RouteOut.from_route(trip.route),
            vehicle_class=trip.vehicle_class,
            quoted_price=trip.quoted_price,
            final_price=trip.final_price,
            cancellation_reason=trip.cancellation_reason,
            created_at=trip.created_at,
            scheduled_at=trip.scheduled_at,
            completed_at=trip.completed_at,
        )


class DispatchResponse(BaseModel):
    outcome: OfferOutcome
    driver_id: Optional[str] = None
    trip: TripResponse


class SuggestionOut(BaseModel):
    label: str
    lat: float
    lng: float


class AddressResponse(BaseModel):
    address: str


class SettingsResponse(BaseModel):
    base_fare: Decimal
    per_km_fare: Decimal
    commission_percent: Decimal
    vehicle_multipliers: dict[VehicleClass, Decimal]
    manager_contact: str

    @classmethod
    def from_config(cls, config: PricingConfig) -> "SettingsResponse":
        return cls(
            base_fare=config.base_fare,
            per_km_fare=config.per_km_fare,
            commission_percent=config.commission_percent,
            vehicle_multipliers=dict(config.vehicle_multipliers),
            manager_contact=config.manager_contact,
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    pricing_loaded: bool = False


class ErrorResponse(BaseModel):
    detail: str

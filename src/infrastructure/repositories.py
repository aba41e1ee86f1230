"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Rows are translated to and from domain
objects here; nothing above this layer sees an ORM model.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import PricingSettingsModel, TripModel, UserModel
from src.domain.entities import Location, Place, RouteResult, Trip
from src.domain.exceptions import ConfigSchemaOutdated, ConfigUnavailable
from src.domain.pricing import PricingConfig

SETTINGS_ROW_ID = 1


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, trip: Trip) -> TripModel:
        model = TripModel(id=trip.id)
        _write_trip(model, trip)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get(self, trip_id: str, refresh: bool = False) -> Optional[Trip]:
        """Load a trip; ``refresh`` re-reads the row even if already loaded."""
        model = await self.session.get(
            TripModel, trip_id, populate_existing=refresh
        )
        return _read_trip(model) if model else None

    async def save(self, trip: Trip) -> None:
        model = await self.session.get(TripModel, trip.id)
        if model is None:
            await self.add(trip)
            return
        _write_trip(model, trip)
        await self.session.flush()

    async def list_for_customer(self, customer_id: str) -> list[Trip]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.customer_id == customer_id)
            .order_by(TripModel.created_at.desc())
        )
        return [_read_trip(m) for m in result.scalars().all()]


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)


class PricingSettingsRepository:
    """Reads and writes the single pricing settings row."""

    def __init__(self, session: AsyncSession, schema_version: int):
        self.session = session
        self.schema_version = schema_version

    async def get(self) -> PricingConfig:
        return _read_config(await self._row())

    async def update(self, changes: Mapping[str, Any]) -> PricingConfig:
        """Apply a partial update; all values are validated before writing."""
        row = await self._row()
        merged = _config_values(row)
        for key, value in changes.items():
            if value is None:
                continue
            if key == "vehicle_multipliers":
                # Per-class merge; classes not mentioned keep their multiplier
                merged[key].update({getattr(k, "value", k): v for k, v in value.items()})
            else:
                merged[key] = value
        config = PricingConfig.from_mapping(merged)

        row.base_fare = config.base_fare
        row.per_km_fare = config.per_km_fare
        row.commission_percent = config.commission_percent
        row.vehicle_multipliers = _dump_multipliers(config)
        row.manager_contact = config.manager_contact
        await self.session.flush()
        return config

    async def ensure_defaults(self, defaults: Mapping[str, Any]) -> PricingConfig:
        """Create the settings row from *defaults* if it does not exist yet."""
        row = await self.session.get(PricingSettingsModel, SETTINGS_ROW_ID)
        if row is not None:
            return _read_config(row)
        config = PricingConfig.from_mapping(defaults)
        self.session.add(
            PricingSettingsModel(
                id=SETTINGS_ROW_ID,
                schema_version=self.schema_version,
                base_fare=config.base_fare,
                per_km_fare=config.per_km_fare,
                commission_percent=config.commission_percent,
                vehicle_multipliers=_dump_multipliers(config),
                manager_contact=config.manager_contact,
            )
        )
        await self.session.flush()
        return config

    async def _row(self) -> PricingSettingsModel:
        try:
            row = await self.session.get(PricingSettingsModel, SETTINGS_ROW_ID)
        except SQLAlchemyError as exc:
            raise ConfigUnavailable(
                "Pricing settings could not be read. Check the database connection "
                "and that migrations have been applied."
            ) from exc
        if row is None:
            raise ConfigUnavailable(
                "Pricing settings are missing. Run the seed script to create them."
            )
        if row.schema_version != self.schema_version:
            raise ConfigSchemaOutdated(
                f"Settings schema is version {row.schema_version}, expected "
                f"{self.schema_version}. Run the database migrations."
            )
        return row


class PricingSettingsProvider:
    """``PricingConfigProvider`` that opens its own session per fetch."""

    def __init__(self, session_factory: async_sessionmaker, schema_version: int):
        self.session_factory = session_factory
        self.schema_version = schema_version

    async def get(self) -> PricingConfig:
        async with self.session_factory() as session:
            return await PricingSettingsRepository(session, self.schema_version).get()


# ── Row <-> domain ────────────────────────────────────────────────────


def _config_values(row: PricingSettingsModel) -> dict[str, Any]:
    return {
        "base_fare": row.base_fare,
        "per_km_fare": row.per_km_fare,
        "commission_percent": row.commission_percent,
        "vehicle_multipliers": dict(row.vehicle_multipliers or {}),
        "manager_contact": row.manager_contact,
    }


def _read_config(row: PricingSettingsModel) -> PricingConfig:
    return PricingConfig.from_mapping(_config_values(row))


def _dump_multipliers(config: PricingConfig) -> dict[str, str]:
    return {vc.value: str(m) for vc, m in config.vehicle_multipliers.items()}


def _write_trip(model: TripModel, trip: Trip) -> None:
    model.customer_id = trip.customer_id
    model.driver_id = trip.driver_id
    model.status = trip.status
    model.pickup_lat = trip.pickup.location.lat
    model.pickup_lng = trip.pickup.location.lng
    model.pickup_address = trip.pickup.address
    model.dropoff_lat = trip.dropoff.location.lat
    model.dropoff_lng = trip.dropoff.location.lng
    model.dropoff_address = trip.dropoff.address
    model.route_geometry = [[p.lat, p.lng] for p in trip.route.geometry]
    model.distance_meters = trip.route.distance_meters
    model.duration_seconds = trip.route.duration_seconds
    model.route_used_fallback = trip.route.used_fallback
    model.vehicle_class = trip.vehicle_class
    model.quoted_price = trip.quoted_price
    model.final_price = trip.final_price
    model.cancellation_reason = trip.cancellation_reason
    model.created_at = trip.created_at
    model.scheduled_at = trip.scheduled_at
    model.accepted_at = trip.accepted_at
    model.arrived_at = trip.arrived_at
    model.started_at = trip.started_at
    model.completed_at = trip.completed_at
    model.cancelled_at = trip.cancelled_at


def _read_trip(model: TripModel) -> Trip:
    return Trip(
        id=model.id,
        customer_id=model.customer_id,
        driver_id=model.driver_id,
        status=model.status,
        pickup=Place(Location(model.pickup_lat, model.pickup_lng), model.pickup_address),
        dropoff=Place(
            Location(model.dropoff_lat, model.dropoff_lng), model.dropoff_address
        ),
        route=RouteResult(
            geometry=tuple(Location(lat, lng) for lat, lng in model.route_geometry),
            distance_meters=model.distance_meters,
            duration_seconds=model.duration_seconds,
            used_fallback=model.route_used_fallback,
        ),
        vehicle_class=model.vehicle_class,
        quoted_price=model.quoted_price,
        final_price=model.final_price,
        cancellation_reason=model.cancellation_reason,
        created_at=model.created_at,
        scheduled_at=model.scheduled_at,
        accepted_at=model.accepted_at,
        arrived_at=model.arrived_at,
        started_at=model.started_at,
        completed_at=model.completed_at,
        cancelled_at=model.cancelled_at,
    )

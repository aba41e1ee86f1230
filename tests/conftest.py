"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The routing and geocoding collaborators are
replaced by scripted fakes that record every call.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.entities import Location, Place, PlaceSuggestion, Trip
from src.domain.enums import VehicleClass
from src.domain.exceptions import GeocodingUnavailable
from src.domain.pricing import PricingConfig
from src.domain.routing import (
    CoordinateOrder,
    RouteResolver,
    RouteResponse,
    build_route_result,
)
from src.infrastructure import models  # noqa: F401  (registers tables)
from src.infrastructure.database import Base

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

DAMASCUS = Location(33.5138, 36.2765)
MEZZEH = Location(33.5000, 36.2500)

DEFAULT_MULTIPLIERS = {
    "REGULAR": 1,
    "AC": 1.2,
    "PUBLIC": 0.8,
    "VIP": 2.0,
    "MICROBUS": 1.5,
    "MOTORCYCLE": 0.6,
}


# ── Fakes ─────────────────────────────────────────────────────────────


def route_response(
    pickup: Location,
    dropoff: Location,
    distance_meters: float = 5000.0,
    duration_seconds: float = 600.0,
) -> RouteResponse:
    """Two-point route in OSRM wire order ([lng, lat])."""
    return RouteResponse(
        coordinates=[(pickup.lng, pickup.lat), (dropoff.lng, dropoff.lat)],
        distance_meters=distance_meters,
        duration_seconds=duration_seconds,
        coordinate_order=CoordinateOrder.LNG_LAT,
    )


class FakeRoutingClient:
    """
    Scripted routing collaborator.

    ``route_outcomes`` is consumed in order (a ``RouteResponse`` or an
    exception instance); when empty, a 5 km route is returned.
    ``snaps`` maps a point to its snapped location or an exception.
    """

    def __init__(self, route_outcomes=None, snaps=None, delay: float = 0.0):
        self.route_outcomes = list(route_outcomes or [])
        self.snaps = dict(snaps or {})
        self.delay = delay
        self.route_calls: list[tuple[Location, Location]] = []
        self.nearest_calls: list[Location] = []

    async def route(self, pickup: Location, dropoff: Location) -> RouteResponse:
        self.route_calls.append((pickup, dropoff))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.route_outcomes.pop(0) if self.route_outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or route_response(pickup, dropoff)

    async def nearest(self, point: Location) -> Location:
        self.nearest_calls.append(point)
        outcome = self.snaps.get(point, point)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeGeocoder:
    def __init__(self, fail: bool = False, suggestions=None):
        self.fail = fail
        self.suggestions = suggestions or {}
        self.reverse_calls: list[Location] = []
        self.autocomplete_calls: list[tuple[str, Optional[Location]]] = []

    async def reverse(self, point: Location) -> Optional[str]:
        self.reverse_calls.append(point)
        if self.fail:
            raise GeocodingUnavailable("geocoder down")
        return f"Street at {point.lat:.3f},{point.lng:.3f}"

    async def autocomplete(
        self, text: str, focus: Optional[Location] = None
    ) -> list[PlaceSuggestion]:
        self.autocomplete_calls.append((text, focus))
        if self.fail:
            raise GeocodingUnavailable("geocoder down")
        return list(self.suggestions.get(text, []))


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def notify(self, user_id: str, message: str) -> None:
        self.sent.append((user_id, message))


class InProcessTripLocks:
    """Stand-in for the redis trip lock: one ``asyncio.Lock`` per trip id."""

    def __init__(self):
        self._locks = defaultdict(asyncio.Lock)

    def __call__(self, trip_id: str) -> asyncio.Lock:
        return self._locks[trip_id]


# ── Builders ──────────────────────────────────────────────────────────


def make_config(**overrides) -> PricingConfig:
    values = {
        "base_fare": 2000,
        "per_km_fare": 500,
        "commission_percent": 15,
        "vehicle_multipliers": DEFAULT_MULTIPLIERS,
        "manager_contact": "0912345678",
    }
    values.update(overrides)
    return PricingConfig.from_mapping(values)


def make_trip(**overrides) -> Trip:
    fields = dict(
        customer_id="customer-1",
        pickup=Place(DAMASCUS, "Umayyad Square"),
        dropoff=Place(MEZZEH, "Mezzeh Highway"),
        route=make_route(),
        vehicle_class=VehicleClass.REGULAR,
        quoted_price=4500,
    )
    fields.update(overrides)
    return Trip(**fields)


def make_route():
    return build_route_result(route_response(DAMASCUS, MEZZEH), DAMASCUS, MEZZEH)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def pricing_config() -> PricingConfig:
    return make_config()


@pytest.fixture
def routing_client() -> FakeRoutingClient:
    return FakeRoutingClient()


@pytest.fixture
def resolver(routing_client: FakeRoutingClient) -> RouteResolver:
    return RouteResolver(routing_client)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database with all tables for each test."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session

"""
Route Resolution  (Strategy Pattern)
====================================

1. **Direct attempt**   -- ask the routing collaborator for a route between
   the raw pickup / dropoff pair.
2. **Snap fallback**    -- only if (1) reported *no route*: snap both points
   to the road network concurrently, and retry once with the snapped pair
   if at least one of them moved.  Snapping is best-effort per point; a
   failed snap keeps the original coordinate.

Bounds per ``resolve`` call: at most 2 route calls, at most 2 snap calls.

Transport failures (timeouts, 5xx) surface as
``RoutingServiceUnavailable`` and never trigger the fallback.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from typing import Optional, Protocol

from pydantic import BaseModel

from .distance import haversine_m, same_point
from .entities import Location, RouteResult
from .exceptions import NoRouteFound

logger = logging.getLogger(__name__)


class CoordinateOrder(str, enum.Enum):
    LNG_LAT = "LNG_LAT"  # OSRM / ORS / GeoJSON wire order
    LAT_LNG = "LAT_LNG"


class RouteResponse(BaseModel):
    """Raw answer of the routing collaborator, in its own wire order."""

    coordinates: list[tuple[float, float]]
    distance_meters: float
    duration_seconds: float
    coordinate_order: CoordinateOrder = CoordinateOrder.LNG_LAT


class RoutingClient(Protocol):
    async def route(self, pickup: Location, dropoff: Location) -> RouteResponse:
        """Raise ``NoRouteFound`` or ``RoutingServiceUnavailable`` on failure."""
        ...

    async def nearest(self, point: Location) -> Location: ...


# ── Strategy hierarchy ────────────────────────────────────────────────


class RouteAttempt(ABC):
    @abstractmethod
    async def run(
        self, client: RoutingClient, pickup: Location, dropoff: Location
    ) -> RouteResponse: ...


class DirectAttempt(RouteAttempt):
    async def run(
        self, client: RoutingClient, pickup: Location, dropoff: Location
    ) -> RouteResponse:
        return await client.route(pickup, dropoff)


class SnapToRoadAttempt(RouteAttempt):
    """Snap both endpoints to the network, then retry once if anything moved."""

    async def run(
        self, client: RoutingClient, pickup: Location, dropoff: Location
    ) -> RouteResponse:
        snapped_pickup, snapped_dropoff = await asyncio.gather(
            self._snap(client, pickup), self._snap(client, dropoff)
        )

        moved_pickup = not same_point(pickup, snapped_pickup)
        moved_dropoff = not same_point(dropoff, snapped_dropoff)
        if not (moved_pickup or moved_dropoff):
            raise NoRouteFound("No route found and snapping did not move either point")

        logger.warning(
            "No direct route; retrying with snapped points "
            "(pickup moved %.1fm, dropoff moved %.1fm)",
            haversine_m(pickup, snapped_pickup),
            haversine_m(dropoff, snapped_dropoff),
        )
        return await client.route(snapped_pickup, snapped_dropoff)

    @staticmethod
    async def _snap(client: RoutingClient, point: Location) -> Location:
        try:
            return await client.nearest(point)
        except Exception as exc:
            logger.warning("Snap-to-road failed for %s: %s", point, exc)
            return point


# ── Resolver facade ───────────────────────────────────────────────────


class RouteResolver:
    def __init__(
        self,
        client: RoutingClient,
        primary: Optional[RouteAttempt] = None,
        fallback: Optional[RouteAttempt] = None,
    ):
        self.client = client
        self.primary = primary or DirectAttempt()
        self.fallback = fallback or SnapToRoadAttempt()

    async def resolve(self, pickup: Location, dropoff: Location) -> RouteResult:
        used_fallback = False
        try:
            response = await self.primary.run(self.client, pickup, dropoff)
        except NoRouteFound:
            used_fallback = True
            response = await self.fallback.run(self.client, pickup, dropoff)

        return build_route_result(response, pickup, dropoff, used_fallback)


def build_route_result(
    response: RouteResponse,
    pickup: Location,
    dropoff: Location,
    used_fallback: bool = False,
) -> RouteResult:
    """Normalise the collaborator's coordinates to (lat, lng) ``Location``s."""
    if response.coordinate_order is CoordinateOrder.LNG_LAT:
        geometry = tuple(Location.from_lng_lat(pair) for pair in response.coordinates)
    else:
        geometry = tuple(Location(lat=a, lng=b) for a, b in response.coordinates)

    if len(geometry) < 2:
        # Degenerate route (pickup == dropoff): keep a two-point polyline
        geometry = (pickup, dropoff)

    return RouteResult(
        geometry=geometry,
        distance_meters=max(0.0, float(response.distance_meters)),
        duration_seconds=max(0.0, float(response.duration_seconds)),
        used_fallback=used_fallback,
    )

"""
OSRM routing client.

* ``route``   -- ``GET /route/v1/driving/{lng},{lat};{lng},{lat}`` with
  GeoJSON geometry.  OSRM answers ``code == "NoRoute"`` (HTTP 400) when
  the points cannot be connected; that maps to ``NoRouteFound``.  Every
  other failure maps to ``RoutingServiceUnavailable``.
* ``nearest`` -- ``GET /nearest/v1/driving/{lng},{lat}``; returns the
  snapped waypoint.

An answer with missing fields or out-of-range coordinates is treated as a
service failure (``RoutingServiceUnavailable``).

Every request is bounded by ``timeout`` seconds.
"""

from __future__ import annotations

from typing import Optional

import httpx

from src.domain.entities import Location
from src.domain.exceptions import NoRouteFound, RoutingServiceUnavailable
from src.domain.routing import CoordinateOrder, RouteResponse

NO_ROUTE_CODES = frozenset({"NoRoute", "NoSegment"})


class OSRMClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 8.0,
        profile: str = "driving",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.profile = profile
        self._http = http_client

    async def route(self, pickup: Location, dropoff: Location) -> RouteResponse:
        url = (
            f"{self.base_url}/route/v1/{self.profile}/"
            f"{pickup.lng},{pickup.lat};{dropoff.lng},{dropoff.lat}"
        )
        data = await self._get_json(url, {"overview": "full", "geometries": "geojson"})

        code = data.get("code")
        if code in NO_ROUTE_CODES or (code == "Ok" and not data.get("routes")):
            raise NoRouteFound("No route found between coordinates")
        if code != "Ok":
            raise RoutingServiceUnavailable(f"OSRM answered {code}")

        route = data["routes"][0]
        try:
            coordinates = [tuple(c) for c in route["geometry"]["coordinates"]]
            for pair in coordinates:
                Location.from_lng_lat(pair)  # range check
            return RouteResponse(
                coordinates=coordinates,
                distance_meters=float(route["distance"]),
                duration_seconds=float(route["duration"]),
                coordinate_order=CoordinateOrder.LNG_LAT,
            )
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise RoutingServiceUnavailable(f"Malformed OSRM route: {exc}") from exc

    async def nearest(self, point: Location) -> Location:
        url = f"{self.base_url}/nearest/v1/{self.profile}/{point.lng},{point.lat}"
        data = await self._get_json(url, {"number": 1})

        waypoints = data.get("waypoints") or []
        if data.get("code") != "Ok" or not waypoints:
            raise RoutingServiceUnavailable(
                f"OSRM nearest answered {data.get('code')}"
            )
        try:
            return Location.from_lng_lat(waypoints[0]["location"])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise RoutingServiceUnavailable(f"Malformed OSRM waypoint: {exc}") from exc

    # ── Internals ─────────────────────────────────────────────────────

    async def _get_json(self, url: str, params: dict) -> dict:
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise RoutingServiceUnavailable(
                f"Routing request timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise RoutingServiceUnavailable(f"Network error: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        # OSRM reports NoRoute with a 400; let the caller see the code
        if response.status_code == 400 and data.get("code") in NO_ROUTE_CODES:
            return data
        if response.status_code >= 400:
            raise RoutingServiceUnavailable(
                f"OSRM server error: {response.status_code}"
            )
        return data

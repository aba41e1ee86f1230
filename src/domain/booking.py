"""
Customer booking session.

Holds one customer's pickup / dropoff while they choose a ride, keeps the
route and fare quote in step with the markers, and turns the chosen
vehicle class into a ``Trip``.

Route recomputation and address suggestions run through
``LatestRequestGate`` so a slow, outdated answer can never overwrite a
newer one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from .entities import Location, Place, PlaceSuggestion, RouteResult, Trip
from .enums import VehicleClass
from .exceptions import (
    GeocodingUnavailable,
    NoRouteFound,
    RideHailingError,
    RoutingServiceUnavailable,
)
from .geocoding import GeocodingClient, resolve_address
from .notifications import NotificationDispatcher
from .pricing import FareCalculator, PricingConfigCache
from .routing import RouteResolver
from .state_machine import TripRegistry, TripStateMachine
from .supersede import LatestRequestGate

logger = logging.getLogger(__name__)

PICKUP = "pickup"
DROPOFF = "dropoff"


class BookingSession:
    def __init__(
        self,
        customer_id: str,
        resolver: RouteResolver,
        geocoder: GeocodingClient,
        pricing: PricingConfigCache,
        registry: TripRegistry,
        notifications: Optional[NotificationDispatcher] = None,
        route_debounce_seconds: float = 0.0,
        suggestion_debounce_seconds: float = 0.0,
    ):
        self.customer_id = customer_id
        self.resolver = resolver
        self.geocoder = geocoder
        self.pricing = pricing
        self.registry = registry
        self.notifications = notifications or NotificationDispatcher()

        self.pickup: Optional[Place] = None
        self.dropoff: Optional[Place] = None
        self.route: Optional[RouteResult] = None
        self.route_error: Optional[RideHailingError] = None
        # markers the committed route / route_error were resolved for
        self._routed_markers: Optional[tuple[Location, Location]] = None
        self.suggestions: dict[str, list[PlaceSuggestion]] = {PICKUP: [], DROPOFF: []}

        self._route_gate = LatestRequestGate("route", route_debounce_seconds)
        self._marker_gates = {
            field: LatestRequestGate(f"{field}-marker") for field in (PICKUP, DROPOFF)
        }
        self._suggestion_gates = {
            field: LatestRequestGate(f"{field}-suggestions", suggestion_debounce_seconds)
            for field in (PICKUP, DROPOFF)
        }

    # ── Markers ───────────────────────────────────────────────────────

    async def set_pickup(self, location: Location, address: Optional[str] = None) -> bool:
        return await self._move_marker(PICKUP, location, address)

    async def set_dropoff(self, location: Location, address: Optional[str] = None) -> bool:
        return await self._move_marker(DROPOFF, location, address)

    async def _move_marker(
        self, field: str, location: Location, address: Optional[str]
    ) -> bool:
        """Place a marker, then recompute the route.  False if superseded."""

        async def fetch() -> Place:
            label = address or await resolve_address(self.geocoder, location)
            return Place(location=location, address=label)

        def commit(place: Place) -> None:
            setattr(self, field, place)
            self.suggestions[field] = []

        if not await self._marker_gates[field].run(fetch, commit):
            return False
        return await self.refresh_route()

    # ── Route ─────────────────────────────────────────────────────────

    async def refresh_route(self) -> bool:
        """Recompute the route for the current markers; True if committed."""
        markers = self._markers()
        if markers is None:
            return False

        async def fetch():
            try:
                return markers, await self.resolver.resolve(*markers), None
            except (NoRouteFound, RoutingServiceUnavailable) as exc:
                return markers, None, exc

        return await self._route_gate.run(fetch, self._commit_route)

    @property
    def route_is_current(self) -> bool:
        """True when the committed route belongs to the markers placed now."""
        return self.route is not None and self._routed_markers == self._markers()

    def _markers(self) -> Optional[tuple[Location, Location]]:
        if self.pickup is None or self.dropoff is None:
            return None
        return self.pickup.location, self.dropoff.location

    def _commit_route(self, outcome) -> None:
        self._routed_markers, self.route, self.route_error = outcome
        if self.route_error is not None:
            logger.warning(
                "Route unavailable for %s: %s", self.customer_id, self.route_error
            )

    # ── Suggestions ───────────────────────────────────────────────────

    async def suggest(
        self, field: str, text: str, focus: Optional[Location] = None
    ) -> bool:
        gate = self._suggestion_gates[field]

        async def fetch():
            try:
                return await self.geocoder.autocomplete(text, focus)
            except GeocodingUnavailable as exc:
                logger.warning("Address suggestions unavailable: %s", exc)
                return []

        def commit(results: list[PlaceSuggestion]) -> None:
            self.suggestions[field] = results

        return await gate.run(fetch, commit)

    # ── Quotes / request ──────────────────────────────────────────────

    def quotes(self) -> dict[VehicleClass, int]:
        """Fare per offered class; empty while the route is missing or outdated."""
        if not self.route_is_current:
            return {}
        return FareCalculator.quote_all(self.route.distance_meters, self.pricing.current())

    async def request_trip(
        self,
        vehicle_class: VehicleClass,
        scheduled_at: Optional[datetime] = None,
    ) -> TripStateMachine:
        if not self.route_is_current:
            markers = self._markers()
            if markers is None:
                raise NoRouteFound("Pick a pickup and a dropoff first")
            if self.route_error is not None and self._routed_markers == markers:
                raise self.route_error
            # a marker moved and its route has not landed yet
            raise NoRouteFound("Route is still being computed for the new markers")

        config = self.pricing.current()
        trip = Trip(
            customer_id=self.customer_id,
            pickup=self.pickup,
            dropoff=self.dropoff,
            route=self.route,
            vehicle_class=vehicle_class,
            quoted_price=FareCalculator.quote(
                self.route.distance_meters, vehicle_class, config
            ),
        )
        machine = self.registry.register(trip)
        logger.info(
            "Trip %s requested by %s (%s, %d)",
            trip.id,
            self.customer_id,
            vehicle_class.value,
            trip.quoted_price,
        )
        if scheduled_at is not None:
            self.notifications.publish(await machine.schedule(scheduled_at))
        return machine

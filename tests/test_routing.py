"""Unit tests for route resolution and the snap-to-road fallback."""

import pytest

from src.domain.distance import haversine_m, same_point
from src.domain.entities import Location
from src.domain.exceptions import NoRouteFound, RoutingServiceUnavailable
from src.domain.routing import (
    CoordinateOrder,
    DirectAttempt,
    RouteResolver,
    RouteResponse,
    SnapToRoadAttempt,
)
from tests.conftest import DAMASCUS, MEZZEH, FakeRoutingClient, route_response

# ~12 m north of DAMASCUS
SNAPPED_PICKUP = Location(DAMASCUS.lat + 0.000108, DAMASCUS.lng)


class TestDirectRoute:
    @pytest.mark.asyncio
    async def test_direct_success(self):
        client = FakeRoutingClient([route_response(DAMASCUS, MEZZEH, 5000, 600)])
        result = await RouteResolver(client).resolve(DAMASCUS, MEZZEH)

        assert result.distance_meters == 5000
        assert result.duration_seconds == 600
        assert result.used_fallback is False
        assert client.nearest_calls == []
        assert len(client.route_calls) == 1

    @pytest.mark.asyncio
    async def test_geometry_normalised_to_lat_lng(self):
        client = FakeRoutingClient([route_response(DAMASCUS, MEZZEH)])
        result = await RouteResolver(client).resolve(DAMASCUS, MEZZEH)
        assert result.geometry == (DAMASCUS, MEZZEH)

    @pytest.mark.asyncio
    async def test_lat_lng_wire_order_kept(self):
        response = RouteResponse(
            coordinates=[(DAMASCUS.lat, DAMASCUS.lng), (MEZZEH.lat, MEZZEH.lng)],
            distance_meters=10,
            duration_seconds=2,
            coordinate_order=CoordinateOrder.LAT_LNG,
        )
        result = await RouteResolver(FakeRoutingClient([response])).resolve(
            DAMASCUS, MEZZEH
        )
        assert result.geometry == (DAMASCUS, MEZZEH)

    @pytest.mark.asyncio
    async def test_degenerate_geometry_padded(self):
        response = RouteResponse(
            coordinates=[(DAMASCUS.lng, DAMASCUS.lat)],
            distance_meters=0,
            duration_seconds=0,
        )
        result = await RouteResolver(FakeRoutingClient([response])).resolve(
            DAMASCUS, DAMASCUS
        )
        assert result.geometry == (DAMASCUS, DAMASCUS)
        assert result.distance_meters == 0

    @pytest.mark.asyncio
    async def test_transport_failure_does_not_fall_back(self):
        client = FakeRoutingClient([RoutingServiceUnavailable("timeout")])
        with pytest.raises(RoutingServiceUnavailable):
            await RouteResolver(client).resolve(DAMASCUS, MEZZEH)
        assert client.nearest_calls == []
        assert len(client.route_calls) == 1


class TestSnapFallback:
    @pytest.mark.asyncio
    async def test_retry_with_snapped_pickup(self):
        """No route; pickup snaps ~12 m, dropoff stays; retry succeeds."""
        client = FakeRoutingClient(
            route_outcomes=[NoRouteFound("off network"), None],
            snaps={DAMASCUS: SNAPPED_PICKUP, MEZZEH: MEZZEH},
        )
        result = await RouteResolver(client).resolve(DAMASCUS, MEZZEH)

        assert result.used_fallback is True
        assert client.route_calls == [(DAMASCUS, MEZZEH), (SNAPPED_PICKUP, MEZZEH)]
        assert sorted(client.nearest_calls, key=lambda p: p.lat) == sorted(
            [DAMASCUS, MEZZEH], key=lambda p: p.lat
        )
        assert 10 < haversine_m(DAMASCUS, SNAPPED_PICKUP) < 14

    @pytest.mark.asyncio
    async def test_unchanged_snap_fails_without_retry(self):
        client = FakeRoutingClient(
            route_outcomes=[NoRouteFound("off network")],
            snaps={DAMASCUS: DAMASCUS, MEZZEH: MEZZEH},
        )
        with pytest.raises(NoRouteFound):
            await RouteResolver(client).resolve(DAMASCUS, MEZZEH)

        assert len(client.route_calls) == 1
        assert len(client.nearest_calls) == 2

    @pytest.mark.asyncio
    async def test_retry_no_route_is_terminal(self):
        client = FakeRoutingClient(
            route_outcomes=[NoRouteFound("first"), NoRouteFound("second")],
            snaps={DAMASCUS: SNAPPED_PICKUP},
        )
        with pytest.raises(NoRouteFound):
            await RouteResolver(client).resolve(DAMASCUS, MEZZEH)

        assert len(client.route_calls) == 2
        assert len(client.nearest_calls) == 2

    @pytest.mark.asyncio
    async def test_failed_snap_keeps_original_point(self):
        snapped_dropoff = Location(MEZZEH.lat, MEZZEH.lng + 0.0002)
        client = FakeRoutingClient(
            route_outcomes=[NoRouteFound("off network"), None],
            snaps={
                DAMASCUS: RoutingServiceUnavailable("nearest down"),
                MEZZEH: snapped_dropoff,
            },
        )
        result = await RouteResolver(client).resolve(DAMASCUS, MEZZEH)

        assert result.used_fallback is True
        assert client.route_calls[1] == (DAMASCUS, snapped_dropoff)

    @pytest.mark.asyncio
    async def test_both_snaps_fail_means_no_route(self):
        client = FakeRoutingClient(
            route_outcomes=[NoRouteFound("off network")],
            snaps={
                DAMASCUS: RoutingServiceUnavailable("down"),
                MEZZEH: RoutingServiceUnavailable("down"),
            },
        )
        with pytest.raises(NoRouteFound):
            await RouteResolver(client).resolve(DAMASCUS, MEZZEH)
        assert len(client.route_calls) == 1

    @pytest.mark.asyncio
    async def test_retry_transport_failure_surfaces(self):
        client = FakeRoutingClient(
            route_outcomes=[NoRouteFound("off network"), RoutingServiceUnavailable("5xx")],
            snaps={DAMASCUS: SNAPPED_PICKUP},
        )
        with pytest.raises(RoutingServiceUnavailable):
            await RouteResolver(client).resolve(DAMASCUS, MEZZEH)

    @pytest.mark.asyncio
    async def test_call_budget_never_exceeded(self):
        outcomes = [NoRouteFound("a"), NoRouteFound("b"), NoRouteFound("c")]
        client = FakeRoutingClient(outcomes, snaps={DAMASCUS: SNAPPED_PICKUP})
        with pytest.raises(NoRouteFound):
            await RouteResolver(client).resolve(DAMASCUS, MEZZEH)
        assert len(client.route_calls) <= 2
        assert len(client.nearest_calls) <= 2


class TestStrategies:
    @pytest.mark.asyncio
    async def test_custom_strategies_are_used(self):
        client = FakeRoutingClient([NoRouteFound("x")])

        class Straight(SnapToRoadAttempt):
            async def run(self, client, pickup, dropoff):
                return route_response(pickup, dropoff, 42, 7)

        resolver = RouteResolver(client, primary=DirectAttempt(), fallback=Straight())
        result = await resolver.resolve(DAMASCUS, MEZZEH)
        assert result.distance_meters == 42
        assert result.used_fallback is True


class TestDistanceHelpers:
    def test_same_point_tolerance(self):
        assert same_point(DAMASCUS, Location(DAMASCUS.lat + 1e-9, DAMASCUS.lng))
        assert not same_point(DAMASCUS, SNAPPED_PICKUP)

    def test_haversine_zero(self):
        assert haversine_m(DAMASCUS, DAMASCUS) == 0.0

    def test_haversine_symmetric(self):
        assert abs(haversine_m(DAMASCUS, MEZZEH) - haversine_m(MEZZEH, DAMASCUS)) < 1e-6

"""
Quote and place-lookup endpoints
================================

POST /api/v1/quotes                   -- route + fare per offered vehicle class
GET  /api/v1/places/autocomplete      -- address suggestions near a focus point
GET  /api/v1/places/reverse           -- address for a point (placeholder on failure)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import Services, get_services
from src.api.middleware import limiter
from src.api.schemas import (
    AddressResponse,
    QuoteRequest,
    QuoteResponse,
    RouteOut,
    SuggestionOut,
)
from src.domain.booking import BookingSession
from src.domain.entities import Location
from src.domain.exceptions import NoRouteFound
from src.domain.geocoding import resolve_address
from src.domain.state_machine import TripRegistry

router = APIRouter(tags=["quotes"])


async def open_session(
    services: Services, customer_id: str, body: QuoteRequest
) -> BookingSession:
    """Place both markers and resolve the route; raise if no route came back."""
    await services.pricing.load()
    session = BookingSession(
        customer_id=customer_id,
        resolver=services.resolver,
        geocoder=services.geocoder,
        pricing=services.pricing,
        registry=TripRegistry(),
        notifications=services.notifications,
        route_debounce_seconds=services.route_debounce_seconds,
        suggestion_debounce_seconds=services.suggestion_debounce_seconds,
    )
    await session.set_pickup(body.pickup.to_location(), body.pickup_address)
    await session.set_dropoff(body.dropoff.to_location(), body.dropoff_address)
    if not session.route_is_current:
        raise session.route_error or NoRouteFound("No route found")
    return session


@router.post(
    "/quotes",
    response_model=QuoteResponse,
    summary="Resolve a route and quote every offered vehicle class",
)
@limiter.limit("100/minute")
async def create_quote(
    request: Request,
    body: QuoteRequest,
    services: Services = Depends(get_services),
):
    session = await open_session(services, "anonymous", body)
    return QuoteResponse(
        pickup_address=session.pickup.address,
        dropoff_address=session.dropoff.address,
        route=RouteOut.from_route(session.route),
        quotes=session.quotes(),
        manager_contact=services.pricing.current().manager_contact,
    )


@router.get(
    "/places/autocomplete",
    response_model=list[SuggestionOut],
    summary="Address suggestions",
)
@limiter.limit("100/minute")
async def autocomplete(
    request: Request,
    text: str = Query(..., min_length=1, max_length=200),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    services: Services = Depends(get_services),
):
    focus = Location(lat, lng) if lat is not None and lng is not None else None
    suggestions = await services.geocoder.autocomplete(text, focus)
    return [
        SuggestionOut(label=s.label, lat=s.location.lat, lng=s.location.lng)
        for s in suggestions
    ]


@router.get(
    "/places/reverse",
    response_model=AddressResponse,
    summary="Address for a point",
)
@limiter.limit("100/minute")
async def reverse(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    services: Services = Depends(get_services),
):
    address = await resolve_address(services.geocoder, Location(lat, lng))
    return AddressResponse(address=address)

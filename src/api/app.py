"""
FastAPI application factory.

* Registers routes for quotes, trips and admin.
* Builds the long-lived collaborators (routing / geocoding clients, pricing
  cache, dispatcher) and starts / stops the pricing refresher via lifespan.
* Maps domain errors to HTTP responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.dependencies import Services
from src.api.middleware import limiter
from src.api.routes import admin, quotes, trips
from src.config import settings
from src.domain.dispatch import DispatchCoordinator, SimulatedDriverResponder
from src.domain.exceptions import (
    ConfigSchemaOutdated,
    ConfigUnavailable,
    GeocodingUnavailable,
    InvalidConfig,
    InvalidTransition,
    NoDriversAvailable,
    NoRouteFound,
    RoutingServiceUnavailable,
    TripNotFound,
    UnknownVehicleClass,
)
from src.domain.notifications import NotificationDispatcher
from src.domain.pricing import PricingConfigCache
from src.domain.routing import RouteResolver
from src.infrastructure.database import async_session_factory, dispose_engine
from src.infrastructure.geocoding_client import ORSGeocodingClient
from src.infrastructure.locks import LockNotAcquired, trip_lock
from src.infrastructure.notifier import RedisNotifier
from src.infrastructure.redis_client import close_redis, get_redis
from src.infrastructure.repositories import PricingSettingsProvider
from src.infrastructure.routing_client import OSRMClient
from src.workers import pricing_refresher as _refresher

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def build_services(http: httpx.AsyncClient) -> Services:
    redis = await get_redis()
    notifications = NotificationDispatcher(RedisNotifier(redis))
    return Services(
        resolver=RouteResolver(
            OSRMClient(
                settings.osrm_base_url,
                timeout=settings.http_timeout_seconds,
                http_client=http,
            )
        ),
        geocoder=ORSGeocodingClient(
            settings.ors_base_url,
            settings.ors_api_key,
            timeout=settings.http_timeout_seconds,
            language=settings.geocoding_language,
            http_client=http,
        ),
        pricing=PricingConfigCache(
            PricingSettingsProvider(
                async_session_factory, settings.settings_schema_version
            )
        ),
        notifications=notifications,
        dispatcher=DispatchCoordinator(
            SimulatedDriverResponder(settings.simulated_accept_delay_seconds),
            offer_timeout_seconds=settings.offer_timeout_seconds,
            notifications=notifications,
        ),
        trip_lock=lambda trip_id: trip_lock(
            redis, trip_id, ttl_seconds=settings.trip_lock_ttl_seconds
        ),
        settings_schema_version=settings.settings_schema_version,
        route_debounce_seconds=settings.route_debounce_seconds,
        suggestion_debounce_seconds=settings.suggestion_debounce_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build collaborators and start the refresher; tear down on shutdown."""
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        if getattr(app.state, "services", None) is None:
            app.state.services = await build_services(http)
        services: Services = app.state.services
        await _refresher.start_refresh_loop(
            services.pricing, settings.pricing_refresh_interval_seconds
        )
        yield
        await _refresher.stop_refresh_loop()
        await services.notifications.drain()
    await close_redis()
    await dispose_engine()


# ── Error mapping ─────────────────────────────────────────────────────

_STATUS_BY_ERROR: list[tuple[type, int]] = [
    (TripNotFound, 404),
    (InvalidTransition, 409),
    (NoDriversAvailable, 409),
    (LockNotAcquired, 409),
    (NoRouteFound, 422),
    (UnknownVehicleClass, 422),
    (InvalidConfig, 422),
    (RoutingServiceUnavailable, 503),
    (GeocodingUnavailable, 503),
    (ConfigUnavailable, 503),
]


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = next(code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls))
    detail = str(exc)
    if isinstance(exc, InvalidTransition):
        # Normal clients never send these; a stale client or a race does
        logger.error("Rejected trip transition on %s: %s", request.url.path, exc)
    elif isinstance(exc, ConfigSchemaOutdated):
        detail = f"SCHEMA_OUTDATED: {exc}"
    elif isinstance(exc, ConfigUnavailable):
        detail = f"SETUP_REQUIRED: {exc}"
    return JSONResponse(status_code=status, content={"detail": detail})


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="Ride Hailing Trip API",
        description=(
            "Resolves routes between pickup and dropoff, quotes fares per "
            "vehicle class from the configured pricing, and drives trips "
            "from request to completion."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    for error_cls, _ in _STATUS_BY_ERROR:
        app.add_exception_handler(error_cls, _domain_error_handler)

    # Routers
    app.include_router(quotes.router, prefix="/api/v1")
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app

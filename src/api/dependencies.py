"""FastAPI dependency injection helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncContextManager, Callable

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.dispatch import DispatchCoordinator
from src.domain.geocoding import GeocodingClient
from src.domain.notifications import NotificationDispatcher
from src.domain.pricing import PricingConfigCache
from src.domain.routing import RouteResolver
from src.infrastructure.database import async_session_factory


@dataclass
class Services:
    """Long-lived collaborators built once per process in the app lifespan."""

    resolver: RouteResolver
    geocoder: GeocodingClient
    pricing: PricingConfigCache
    notifications: NotificationDispatcher
    dispatcher: DispatchCoordinator
    trip_lock: Callable[[str], AsyncContextManager]
    settings_schema_version: int
    route_debounce_seconds: float = 0.0
    suggestion_debounce_seconds: float = 0.0


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_services(request: Request) -> Services:
    return request.app.state.services

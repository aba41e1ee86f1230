"""
Admin / observability endpoints
===============================

GET   /api/v1/admin/settings -- current pricing settings (refreshes the cache)
PATCH /api/v1/admin/settings -- partial update; the cache is swapped on success
GET   /api/v1/admin/health   -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import Services, get_db, get_services
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, SettingsResponse, SettingsUpdateRequest
from src.domain.exceptions import ConfigUnavailable
from src.infrastructure.repositories import PricingSettingsRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/settings",
    response_model=SettingsResponse,
    summary="Current pricing settings",
)
@limiter.limit("100/minute")
async def get_settings(
    request: Request,
    services: Services = Depends(get_services),
):
    config = await services.pricing.refresh()
    return SettingsResponse.from_config(config)


@router.patch(
    "/settings",
    response_model=SettingsResponse,
    summary="Update pricing settings",
)
@limiter.limit("100/minute")
async def update_settings(
    request: Request,
    body: SettingsUpdateRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    repo = PricingSettingsRepository(db, services.settings_schema_version)
    config = await repo.update(body.model_dump(exclude_none=True))
    await db.commit()
    services.pricing.replace(config)
    return SettingsResponse.from_config(config)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(services: Services = Depends(get_services)):
    try:
        services.pricing.current()
    except ConfigUnavailable:
        return HealthResponse(pricing_loaded=False)
    return HealthResponse(pricing_loaded=True)

"""Geocoding API endpoints — address resolution, cache statistics and coverage monitoring."""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from facility_geocoder.core.config import Settings, get_settings
from facility_geocoder.core.dependencies import get_async_session, get_resolution_service
from facility_geocoder.lib.geocoder import FailureKind
from facility_geocoder.schemas.geocoding import (
    CacheStatsResponse,
    CoverageStatsResponse,
    FacilityFailureResponse,
    ResolutionResponse,
    ResolveAddressRequest,
    StateCoverageResponse,
)
from facility_geocoder.services import monitor_service
from facility_geocoder.services.geocoding_service import ResolutionService

geocoding_router = APIRouter(prefix="/geocoding", tags=["geocoding"])

_FAILURE_STATUS = {
    FailureKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    FailureKind.EXHAUSTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@geocoding_router.post(
    "/resolve",
    response_model=ResolutionResponse,
    responses={
        400: {"model": ResolutionResponse, "description": "Missing or invalid address/record reference"},
        422: {"model": ResolutionResponse, "description": "Every fallback strategy failed"},
    },
)
async def resolve_address(
    request: ResolveAddressRequest,
    service: ResolutionService = Depends(get_resolution_service),  # noqa: B008
) -> ResolutionResponse | JSONResponse:
    """Resolve an address or a facility/location record to coordinates."""
    result = await service.resolve_address(request.to_query())
    response = ResolutionResponse.from_result(result)
    if result.success:
        return response

    status_code = _FAILURE_STATUS.get(result.error_type, status.HTTP_422_UNPROCESSABLE_ENTITY)
    return JSONResponse(status_code=status_code, content=response.model_dump(exclude_none=True))


@geocoding_router.get(
    "/cache/stats",
    response_model=CacheStatsResponse,
)
async def get_cache_stats(
    service: ResolutionService = Depends(get_resolution_service),  # noqa: B008
) -> CacheStatsResponse:
    """Return aggregate statistics over the geocode cache."""
    stats = await service.cache_stats()
    return CacheStatsResponse.from_stats(stats)


@geocoding_router.get(
    "/stats",
    response_model=CoverageStatsResponse,
)
async def get_coverage_stats(
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> CoverageStatsResponse:
    """Return how many facilities have coordinates."""
    stats = await monitor_service.get_coverage_stats(session, settings.backfill_max_attempts)
    return CoverageStatsResponse.model_validate(stats)


@geocoding_router.get(
    "/distribution",
    response_model=list[StateCoverageResponse],
)
async def get_state_distribution(
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> list[StateCoverageResponse]:
    """Return geocoding coverage grouped by state."""
    distribution = await monitor_service.get_state_distribution(session)
    return [StateCoverageResponse.model_validate(row) for row in distribution]


@geocoding_router.get(
    "/failures",
    response_model=list[FacilityFailureResponse],
)
async def get_recent_failures(
    limit: int = Query(50, ge=1, le=500, description="Maximum facilities returned"),  # noqa: B008
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> list[FacilityFailureResponse]:
    """Return facilities attempted by the backfill that still have no coordinates."""
    failures = await monitor_service.list_recent_failures(session, limit=limit)
    return [FacilityFailureResponse.model_validate(failure) for failure in failures]

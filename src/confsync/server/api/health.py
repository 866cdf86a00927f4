"""Health, liveness and readiness API routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from confsync.client.api import ListingClient
from confsync.client.status import HealthState
from confsync.core.config import SyncConfig
from confsync.server.api.deps import get_config, get_health, get_listing_client
from confsync.server.schemas import HealthResponse, ReadinessResponse, health_to_response

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
@router.get("/health/live", response_model=HealthResponse)
def health_check(
    response: Response,
    health: Annotated[HealthState, Depends(get_health)],
    config: Annotated[SyncConfig, Depends(get_config)],
) -> HealthResponse:
    """Report daemon health; 503 when unhealthy, 200 when healthy or degraded."""
    report = health.report(config.poll_interval)
    if not report.is_available:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return health_to_response(report, config.summary())


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    response_model_exclude_none=True,
)
def readiness_check(
    response: Response,
    client: Annotated[ListingClient, Depends(get_listing_client)],
) -> ReadinessResponse:
    """Check that the remote server is reachable right now."""
    error = client.check_ready()
    if error is not None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not ready", error=error)
    return ReadinessResponse(status="ready")

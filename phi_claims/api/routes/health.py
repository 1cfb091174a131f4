"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
Verified: 2026-10-01
"""

from typing import Any

from fastapi import APIRouter, Depends

from phi_claims.api.deps import get_container
from phi_claims.core.container import ServiceContainer
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)) -> dict[str, Any]:
    """
    Basic health check endpoint.

    Evidence: Health check pattern for load balancers and monitoring
    Source: https://docs.docker.com/engine/reference/builder/#healthcheck
    """
    return {
        "status": "ok",
        "service": container.settings.SERVICE_NAME,
    }


@router.get("/health/detailed")
async def detailed_health_check(
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """
    Detailed health check with dependency status.

    Evidence: Comprehensive health checks for production monitoring
    Source: https://microservices.io/patterns/observability/health-check-api.html
    """
    store_healthy = await container.store.check_health()
    if not store_healthy:
        logger.warning("Detailed health check: data store unhealthy")

    return {
        "status": "ok" if store_healthy else "degraded",
        "service": container.settings.SERVICE_NAME,
        "mode": container.settings.INTEGRATION_MODE.value,
        "checks": {
            "database": "healthy" if store_healthy else "unhealthy",
        },
    }

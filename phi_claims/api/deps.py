"""
FastAPI Dependencies
Resolve services from the container attached to the running app
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
Verified: 2026-10-01
"""

from typing import Optional

from fastapi import Depends, Header, Request

from phi_claims.core.container import ServiceContainer
from phi_claims.services.identity_service import IdentityResolver
from phi_claims.services.intake_service import IntakeService


def get_container(request: Request) -> ServiceContainer:
    """Container built at startup and stored on ``app.state``."""
    return request.app.state.container


def get_intake_service(container: ServiceContainer = Depends(get_container)) -> IntakeService:
    return container.intake_service


def get_identity_resolver(
    container: ServiceContainer = Depends(get_container),
) -> IdentityResolver:
    return container.identity_resolver


async def get_tenant_header(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
) -> Optional[str]:
    """Tenant id from the X-Tenant-ID header, if sent."""
    return x_tenant_id

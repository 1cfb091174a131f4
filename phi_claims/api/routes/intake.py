"""
Claims Intake Routes
Accept raw claim submissions and report their processing status
Source: https://fastapi.tiangolo.com/tutorial/body/
Verified: 2026-10-01
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from phi_claims.api.deps import get_intake_service, get_tenant_header
from phi_claims.schemas.intake import (
    InsuranceCardURLResponse,
    IntakeCreate,
    IntakeReceipt,
    IntakeStatusResponse,
)
from phi_claims.services.intake_service import IntakeService

router = APIRouter(prefix="/claims/intake", tags=["Claims Intake"])


@router.post("", response_model=IntakeReceipt, status_code=status.HTTP_201_CREATED)
async def submit_intake(
    request: IntakeCreate,
    tenant_header: Optional[str] = Depends(get_tenant_header),
    service: IntakeService = Depends(get_intake_service),
) -> IntakeReceipt:
    """
    Record a raw claim submission and queue it for processing.

    The tenant comes from the body (``tenant_id`` or ``tenant_user_id``) or
    the ``X-Tenant-ID`` header.
    """
    return await service.submit(request, header_tenant_id=tenant_header)


@router.get("/{intake_id}", response_model=IntakeStatusResponse)
async def get_intake_status(
    intake_id: str,
    tenant_header: Optional[str] = Depends(get_tenant_header),
    service: IntakeService = Depends(get_intake_service),
) -> IntakeStatusResponse:
    """Processing status of an intake owned by the ``X-Tenant-ID`` tenant."""
    return await service.get_status(tenant_header or "", intake_id)


@router.get("/{intake_id}/insurance-card", response_model=InsuranceCardURLResponse)
async def get_insurance_card_url(
    intake_id: str,
    tenant_header: Optional[str] = Depends(get_tenant_header),
    service: IntakeService = Depends(get_intake_service),
) -> InsuranceCardURLResponse:
    """Short-lived download link for the intake's insurance-card image."""
    return await service.insurance_card_url(tenant_header or "", intake_id)

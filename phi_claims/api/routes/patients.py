"""
Patient Link Routes
Resolve demographics to an opaque patient reference
"""

from fastapi import APIRouter, Depends, Response, status

from phi_claims.api.deps import get_identity_resolver
from phi_claims.schemas.intake import PatientLinkRequest, PatientLinkResponse
from phi_claims.services.identity_service import IdentityResolver
from phi_claims.utils.errors import ValidationError

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.post("/link", response_model=PatientLinkResponse)
async def link_patient(
    request: PatientLinkRequest,
    response: Response,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> PatientLinkResponse:
    """
    Find or create the identity for a set of demographics.

    Returns 201 when a new identity was created, 200 when an existing one
    matched. Only the external reference is returned.
    """
    try:
        resolved = await resolver.resolve_for_tenant(
            request.tenant_id,
            request.first_name,
            request.last_name,
            request.dob,
            request.gender,
        )
    except ValueError as e:
        raise ValidationError("Invalid demographics", errors=[str(e)]) from e

    response.status_code = status.HTTP_201_CREATED if resolved.created else status.HTTP_200_OK
    return PatientLinkResponse(patient_ref_id=resolved.external_ref_id, created=resolved.created)

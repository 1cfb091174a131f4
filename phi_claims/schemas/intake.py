"""
Request/Response schemas for the intake API.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from phi_claims.core.enums import IntakeStatus
from phi_claims.models.base import TENANT_ID_MAX_LENGTH


class IntakeCreate(BaseModel):
    """
    Raw claim submission.

    ``tenant_user_id`` is accepted as an alias of ``tenant_id``. Demographics
    may be omitted when ``patient_ref_id`` identifies an existing patient;
    resolution is deferred to the worker either way.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tenant_id: Optional[str] = Field(
        None,
        min_length=1,
        max_length=TENANT_ID_MAX_LENGTH,
        validation_alias=AliasChoices("tenant_id", "tenant_user_id"),
    )
    patient_ref_id: Optional[str] = Field(None, min_length=1, max_length=128)
    insurance_card: Optional[dict[str, Any]] = None
    service_date: Optional[date] = None
    raw_payload: dict[str, Any]


class IntakeReceipt(BaseModel):
    """Response for an accepted submission."""

    intake_id: str
    status: IntakeStatus = IntakeStatus.PENDING


class IntakeStatusResponse(BaseModel):
    """Intake status lookup."""

    intake_id: str
    status: IntakeStatus
    created_at: datetime


class InsuranceCardURLResponse(BaseModel):
    """Short-lived download link for a stored insurance card image."""

    download_url: str
    expires_in: int


class PatientLinkRequest(BaseModel):
    """Demographics to resolve or create a patient identity."""

    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(
        ...,
        min_length=1,
        max_length=TENANT_ID_MAX_LENGTH,
        validation_alias=AliasChoices("tenant_id", "tenant_user_id"),
    )
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    dob: date
    gender: Optional[str] = Field(None, max_length=20)


class PatientLinkResponse(BaseModel):
    """Opaque patient reference; the internal id is never returned."""

    patient_ref_id: str
    created: bool

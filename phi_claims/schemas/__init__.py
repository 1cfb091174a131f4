"""
Schemas for the intake pipeline.

Domain records shared by every store backend, queue/event payloads and the
HTTP request/response models.
"""

from phi_claims.schemas.intake import (
    InsuranceCardURLResponse,
    IntakeCreate,
    IntakeReceipt,
    IntakeStatusResponse,
    PatientLinkRequest,
    PatientLinkResponse,
)
from phi_claims.schemas.messages import DomainEvent, IntakeMessage
from phi_claims.schemas.records import CanonicalClaim, IntakeRecord, PatientIdentity

__all__ = [
    # Records
    "CanonicalClaim",
    "IntakeRecord",
    "PatientIdentity",
    # Messages
    "DomainEvent",
    "IntakeMessage",
    # API
    "InsuranceCardURLResponse",
    "IntakeCreate",
    "IntakeReceipt",
    "IntakeStatusResponse",
    "PatientLinkRequest",
    "PatientLinkResponse",
]

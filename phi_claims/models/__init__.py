"""
SQLAlchemy models for the tenant-scoped data store.
"""

from phi_claims.models.base import Base, TenantOwnedModel, TimeStampedModel
from phi_claims.models.claim import Claim
from phi_claims.models.intake import ClaimIntake
from phi_claims.models.patient import Patient
from phi_claims.models.tenant import Tenant

__all__ = [
    "Base",
    "TenantOwnedModel",
    "TimeStampedModel",
    "Claim",
    "ClaimIntake",
    "Patient",
    "Tenant",
]

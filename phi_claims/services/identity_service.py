"""
Identity Resolution Service.

Maps patient demographics to a canonical identity within one tenant:
- Exact matching on normalised first name, last name, date of birth and gender
- Stable opaque external reference (``pat_<hex>``) generated once per identity
- Reference-only identities for intakes that carry just an external reference

The internal id never leaves the trust boundary; callers outside it only
ever see ``patient_ref_id``.
"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from phi_claims.db.tenant_manager import TenantScopedStore, TenantSession
from phi_claims.schemas.records import PatientIdentity
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

PATIENT_REF_PREFIX = "pat_"


# =============================================================================
# Data Transfer Objects
# =============================================================================


@dataclass(frozen=True)
class Demographics:
    """Normalised demographic key."""

    first_name: str
    last_name: str
    dob: date
    gender: Optional[str] = None

    @classmethod
    def normalise(
        cls,
        first_name: str,
        last_name: str,
        dob: date | str,
        gender: Optional[str] = None,
    ) -> "Demographics":
        """Trim and case-fold names and gender; parse an ISO date of birth.

        Raises:
            ValueError: If a name is blank or the date of birth is not an ISO date
        """
        first = (first_name or "").strip().casefold()
        last = (last_name or "").strip().casefold()
        if not first or not last:
            raise ValueError("first_name and last_name are required")
        if isinstance(dob, str):
            dob = date.fromisoformat(dob.strip())
        elif not isinstance(dob, date):
            raise ValueError("dob must be an ISO date")
        normalised_gender = (gender or "").strip().casefold() or None
        return cls(first_name=first, last_name=last, dob=dob, gender=normalised_gender)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Optional["Demographics"]:
        """Demographics carried in a raw intake payload, if any.

        Returns None when none of the demographic fields are present.

        Raises:
            ValueError: If the fields are present but incomplete or malformed
        """
        first = payload.get("first_name")
        last = payload.get("last_name")
        dob = payload.get("dob", payload.get("date_of_birth"))
        if first is None and last is None and dob is None:
            return None
        if not isinstance(first, str) or not isinstance(last, str) or dob is None:
            raise ValueError("first_name, last_name and dob must all be provided")
        gender = payload.get("gender")
        return cls.normalise(first, last, dob, gender if isinstance(gender, str) else None)

    def fingerprint(self, tenant_id: str) -> str:
        """Tenant-salted SHA-256 of the normalised fields."""
        material = "\x1f".join(
            [tenant_id, self.first_name, self.last_name, self.dob.isoformat(), self.gender or ""]
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ResolvedIdentity:
    """Result of resolving demographics to a canonical identity."""

    internal_id: str
    external_ref_id: str
    created: bool


def new_patient_ref() -> str:
    return f"{PATIENT_REF_PREFIX}{uuid.uuid4().hex}"


# =============================================================================
# Resolver
# =============================================================================


class IdentityResolver:
    """Resolves demographics to canonical identities inside tenant transactions."""

    def __init__(self, store: TenantScopedStore):
        self._store = store

    async def resolve(
        self,
        session: TenantSession,
        first_name: str,
        last_name: str,
        dob: date | str,
        gender: Optional[str] = None,
    ) -> ResolvedIdentity:
        """
        Find or create the identity for a demographic key in the session's tenant.

        The same tenant and fields always yield the same ids. A concurrent
        creation of the same identity surfaces as a ConflictError at commit.

        Raises:
            ValueError: If the demographics are malformed
        """
        demographics = Demographics.normalise(first_name, last_name, dob, gender)
        fingerprint = demographics.fingerprint(session.tenant_id)

        existing = await session.get_patient_by_fingerprint(fingerprint)
        if existing is not None:
            return ResolvedIdentity(existing.id, existing.patient_ref_id, created=False)

        identity = PatientIdentity(
            id=str(uuid.uuid4()),
            tenant_id=session.tenant_id,
            patient_ref_id=new_patient_ref(),
            fingerprint=fingerprint,
            first_name=demographics.first_name,
            last_name=demographics.last_name,
            date_of_birth=demographics.dob,
            gender=demographics.gender,
        )
        await session.add_patient(identity)
        logger.info(f"Created patient identity {identity.patient_ref_id}")
        return ResolvedIdentity(identity.id, identity.patient_ref_id, created=True)

    async def link_reference(self, session: TenantSession, patient_ref_id: str) -> ResolvedIdentity:
        """
        Identity owning an external reference, creating a reference-only
        identity when the reference is new to this tenant.

        Raises:
            ValueError: If the reference is blank
        """
        ref = (patient_ref_id or "").strip()
        if not ref:
            raise ValueError("patient_ref_id is required")

        existing = await session.get_patient_by_ref(ref)
        if existing is not None:
            return ResolvedIdentity(existing.id, existing.patient_ref_id, created=False)

        identity = PatientIdentity(id=str(uuid.uuid4()), tenant_id=session.tenant_id, patient_ref_id=ref)
        await session.add_patient(identity)
        logger.info(f"Created reference-only patient identity {ref}")
        return ResolvedIdentity(identity.id, identity.patient_ref_id, created=True)

    async def resolve_for_tenant(
        self,
        tenant_id: str,
        first_name: str,
        last_name: str,
        dob: date | str,
        gender: Optional[str] = None,
    ) -> ResolvedIdentity:
        """``resolve`` in its own transaction bound to ``tenant_id``."""
        async with self._store.transaction(tenant_id) as session:
            await session.ensure_tenant()
            return await self.resolve(session, first_name, last_name, dob, gender)

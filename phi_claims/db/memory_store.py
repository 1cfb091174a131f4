"""
In-memory tenant-scoped store for demo mode and tests.

Writes made inside a transaction are staged on the session and applied to the
shared tables only when the transaction block exits cleanly. Uniqueness rules
mirror the PostgreSQL constraints and are checked again at commit so two
overlapping transactions cannot both land a duplicate.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Optional

from phi_claims.core.enums import ClaimStatus, IntakeStatus
from phi_claims.db.tenant_manager import TenantScopedStore, TenantSession
from phi_claims.schemas.records import CanonicalClaim, IntakeRecord, PatientIdentity, utcnow
from phi_claims.utils.errors import ConflictError, NotFoundError, TransientInfraError
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)


class MemoryTenantSession(TenantSession):
    """Tenant session staging writes over the store's committed tables."""

    def __init__(self, store: "MemoryTenantScopedStore", tenant_id: str):
        super().__init__(tenant_id)
        self._store = store
        self._intakes: dict[str, IntakeRecord] = {}
        self._patients: dict[str, PatientIdentity] = {}
        self._claims: dict[str, CanonicalClaim] = {}
        self._register_tenant = False

    # -- views ---------------------------------------------------------------

    def _visible_patients(self) -> list[PatientIdentity]:
        merged = {
            pid: p for pid, p in self._store.patients.items() if p.tenant_id == self.tenant_id
        }
        merged.update(self._patients)
        return list(merged.values())

    def _visible_claims(self) -> list[CanonicalClaim]:
        merged = {
            cid: c for cid, c in self._store.claims.items() if c.tenant_id == self.tenant_id
        }
        merged.update(self._claims)
        return list(merged.values())

    def _visible_intakes(self) -> list[IntakeRecord]:
        merged = {
            iid: i
            for (tenant_id, iid), i in self._store.intakes.items()
            if tenant_id == self.tenant_id
        }
        merged.update(self._intakes)
        return list(merged.values())

    # -- tenants -------------------------------------------------------------

    async def ensure_tenant(self) -> None:
        self._register_tenant = True

    # -- intakes -------------------------------------------------------------

    async def get_intake(self, intake_id: str) -> Optional[IntakeRecord]:
        if intake_id in self._intakes:
            return self._intakes[intake_id]
        return self._store.intakes.get((self.tenant_id, intake_id))

    async def add_intake(self, intake: IntakeRecord) -> None:
        self._check_owner(intake.tenant_id)
        if await self.get_intake(intake.id) is not None:
            raise ConflictError(f"Intake {intake.id} already exists")
        self._intakes[intake.id] = intake

    async def update_intake(
        self,
        intake_id: str,
        *,
        status: IntakeStatus,
        patient_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> IntakeRecord:
        current = await self.get_intake(intake_id)
        if current is None:
            raise NotFoundError(f"Intake {intake_id} not found")
        updated = replace(
            current,
            status=status,
            patient_id=patient_id if patient_id is not None else current.patient_id,
            failure_reason=failure_reason if failure_reason is not None else current.failure_reason,
            updated_at=utcnow(),
        )
        self._intakes[intake_id] = updated
        return updated

    async def list_stale_pending_intakes(
        self, older_than: datetime, limit: int
    ) -> list[IntakeRecord]:
        stale = [
            i
            for i in self._visible_intakes()
            if i.status == IntakeStatus.PENDING and i.created_at < older_than
        ]
        stale.sort(key=lambda i: i.created_at)
        return stale[:limit]

    # -- patients ------------------------------------------------------------

    async def get_patient_by_fingerprint(self, fingerprint: str) -> Optional[PatientIdentity]:
        for patient in self._visible_patients():
            if patient.fingerprint is not None and patient.fingerprint == fingerprint:
                return patient
        return None

    async def get_patient_by_ref(self, patient_ref_id: str) -> Optional[PatientIdentity]:
        for patient in self._visible_patients():
            if patient.patient_ref_id == patient_ref_id:
                return patient
        return None

    async def add_patient(self, patient: PatientIdentity) -> None:
        self._check_owner(patient.tenant_id)
        if patient.fingerprint and await self.get_patient_by_fingerprint(patient.fingerprint):
            raise ConflictError("Duplicate patient fingerprint")
        if await self.get_patient_by_ref(patient.patient_ref_id):
            raise ConflictError("Duplicate patient reference")
        self._patients[patient.id] = patient

    # -- claims --------------------------------------------------------------

    async def add_claim(self, claim: CanonicalClaim) -> None:
        self._check_owner(claim.tenant_id)
        if await self.get_claim_for_intake(claim.intake_id) is not None:
            raise ConflictError(f"Claim for intake {claim.intake_id} already exists")
        if not any(p.id == claim.patient_id for p in self._visible_patients()):
            raise ConflictError(f"Patient {claim.patient_id} does not exist")
        self._claims[claim.id] = claim

    async def get_claim(self, claim_id: str) -> Optional[CanonicalClaim]:
        for claim in self._visible_claims():
            if claim.id == claim_id:
                return claim
        return None

    async def get_claim_for_intake(self, intake_id: str) -> Optional[CanonicalClaim]:
        for claim in self._visible_claims():
            if claim.intake_id == intake_id:
                return claim
        return None

    async def mark_claim_published(self, claim_id: str, published_at: datetime) -> None:
        claim = await self.get_claim(claim_id)
        if claim is None or claim.event_published_at is not None:
            return
        self._claims[claim_id] = replace(
            claim, event_published_at=published_at, updated_at=utcnow()
        )

    async def list_unpublished_claims(
        self, older_than: datetime, limit: int
    ) -> list[CanonicalClaim]:
        pending = [
            c
            for c in self._visible_claims()
            if c.status == ClaimStatus.SUBMITTED
            and c.event_published_at is None
            and c.created_at < older_than
        ]
        pending.sort(key=lambda c: c.created_at)
        return pending[:limit]


class MemoryTenantScopedStore(TenantScopedStore):
    """
    Process-local store with the same isolation and atomicity contract as
    the PostgreSQL backend.

    The committed tables are public so tests can inspect them directly.
    ``intakes`` is keyed by ``(tenant_id, intake_id)``.
    """

    def __init__(self) -> None:
        self.tenants: set[str] = set()
        self.intakes: dict[tuple[str, str], IntakeRecord] = {}
        self.patients: dict[str, PatientIdentity] = {}
        self.claims: dict[str, CanonicalClaim] = {}
        self.available = True
        self._commit_lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self, tenant_id: str) -> AsyncIterator[TenantSession]:
        self._require_tenant(tenant_id)
        if not self.available:
            raise TransientInfraError("Data store unavailable")

        session = MemoryTenantSession(self, tenant_id)
        yield session
        # Exceptions from the block propagate past the yield and skip the commit
        async with self._commit_lock:
            self._commit(session)

    def _commit(self, session: MemoryTenantSession) -> None:
        tenant_id = session.tenant_id
        for patient in session._patients.values():
            for existing in self.patients.values():
                if existing.tenant_id != tenant_id or existing.id == patient.id:
                    continue
                if patient.fingerprint and existing.fingerprint == patient.fingerprint:
                    raise ConflictError("Duplicate patient fingerprint")
                if existing.patient_ref_id == patient.patient_ref_id:
                    raise ConflictError("Duplicate patient reference")
        for claim in session._claims.values():
            for existing in self.claims.values():
                if (
                    existing.tenant_id == tenant_id
                    and existing.intake_id == claim.intake_id
                    and existing.id != claim.id
                ):
                    raise ConflictError(f"Claim for intake {claim.intake_id} already exists")

        if session._register_tenant:
            self.tenants.add(tenant_id)
        for intake_id, intake in session._intakes.items():
            self.intakes[(tenant_id, intake_id)] = intake
        self.patients.update(session._patients)
        self.claims.update(session._claims)

    async def list_tenants(self) -> list[str]:
        return sorted(self.tenants)

    async def check_health(self) -> bool:
        return self.available

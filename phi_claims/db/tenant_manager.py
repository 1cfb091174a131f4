"""
Tenant-Scoped Data Store.
Source: https://www.postgresql.org/docs/current/ddl-rowsecurity.html
Verified: 2026-10-01

Every transaction is bound to exactly one tenant for its whole lifetime. The
PostgreSQL backend binds the tenant with a transaction-local
``set_config('app.tenant_id', ..., true)``; row-level security policies on
every tenant-owned table filter by that setting, so a query that forgets a
tenant predicate still cannot see another tenant's rows. Because the setting
is transaction-local, a pooled connection never carries a binding into its
next transaction.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from phi_claims.core.enums import ClaimStatus, IntakeStatus
from phi_claims.db.connection import check_db_connection, create_session_maker
from phi_claims.db.converters import (
    claim_to_row,
    intake_to_row,
    patient_to_row,
    row_to_claim,
    row_to_intake,
    row_to_patient,
)
from phi_claims.models.claim import Claim
from phi_claims.models.intake import ClaimIntake
from phi_claims.models.patient import Patient
from phi_claims.models.tenant import Tenant
from phi_claims.schemas.records import CanonicalClaim, IntakeRecord, PatientIdentity, utcnow
from phi_claims.utils.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    TransientInfraError,
)
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Contracts
# =============================================================================


class TenantSession(ABC):
    """
    Unit of work bound to one tenant.

    Obtained only from ``TenantScopedStore.transaction``; all writes commit
    together when the transaction block exits cleanly and are discarded if it
    raises.
    """

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id

    def _check_owner(self, record_tenant_id: str) -> None:
        if record_tenant_id != self.tenant_id:
            raise ValueError(
                f"Record belongs to tenant {record_tenant_id}, session is bound to {self.tenant_id}"
            )

    # Tenants
    @abstractmethod
    async def ensure_tenant(self) -> None:
        """Register the bound tenant id in the tenant registry."""

    # Intakes
    @abstractmethod
    async def get_intake(self, intake_id: str) -> Optional[IntakeRecord]:
        """Load an intake visible to the bound tenant."""

    @abstractmethod
    async def add_intake(self, intake: IntakeRecord) -> None:
        """Insert a new intake row."""

    @abstractmethod
    async def update_intake(
        self,
        intake_id: str,
        *,
        status: IntakeStatus,
        patient_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> IntakeRecord:
        """Transition an intake's status.

        Raises:
            NotFoundError: If the intake is not visible to the bound tenant
        """

    @abstractmethod
    async def list_stale_pending_intakes(
        self, older_than: datetime, limit: int
    ) -> list[IntakeRecord]:
        """Pending intakes created before ``older_than``, oldest first."""

    # Patients
    @abstractmethod
    async def get_patient_by_fingerprint(self, fingerprint: str) -> Optional[PatientIdentity]:
        """Find the identity matching a demographic fingerprint."""

    @abstractmethod
    async def get_patient_by_ref(self, patient_ref_id: str) -> Optional[PatientIdentity]:
        """Find the identity owning an external reference."""

    @abstractmethod
    async def add_patient(self, patient: PatientIdentity) -> None:
        """Insert a new identity."""

    # Claims
    @abstractmethod
    async def add_claim(self, claim: CanonicalClaim) -> None:
        """Insert a new canonical claim."""

    @abstractmethod
    async def get_claim(self, claim_id: str) -> Optional[CanonicalClaim]:
        """Load a claim by internal id."""

    @abstractmethod
    async def get_claim_for_intake(self, intake_id: str) -> Optional[CanonicalClaim]:
        """Load the claim created from an intake, if any."""

    @abstractmethod
    async def mark_claim_published(self, claim_id: str, published_at: datetime) -> None:
        """Record the publish acknowledgment of a claim's ClaimCreated event."""

    @abstractmethod
    async def list_unpublished_claims(
        self, older_than: datetime, limit: int
    ) -> list[CanonicalClaim]:
        """Submitted claims without a publish acknowledgment, oldest first."""


class TenantScopedStore(ABC):
    """Relational store whose every transaction is bound to one tenant."""

    @staticmethod
    def _require_tenant(tenant_id: str) -> None:
        if not tenant_id or not tenant_id.strip():
            raise ValueError("No tenant specified for tenant-scoped transaction")

    @abstractmethod
    def transaction(self, tenant_id: str) -> AbstractAsyncContextManager[TenantSession]:
        """Open an all-or-nothing transaction bound to ``tenant_id``."""

    @abstractmethod
    async def list_tenants(self) -> list[str]:
        """All registered tenant ids."""

    @abstractmethod
    async def check_health(self) -> bool:
        """Whether the store is reachable."""

    async def close(self) -> None:
        """Release pooled resources."""


# =============================================================================
# PostgreSQL backend
# =============================================================================


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class SQLTenantSession(TenantSession):
    """Tenant session over an AsyncSession whose transaction carries app.tenant_id."""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(tenant_id)
        self._session = session

    async def ensure_tenant(self) -> None:
        stmt = pg_insert(Tenant).values(id=self.tenant_id).on_conflict_do_nothing()
        await self._session.execute(stmt)

    async def _get_intake_row(self, intake_id: str) -> Optional[ClaimIntake]:
        if not _is_uuid(intake_id):
            return None
        result = await self._session.execute(
            select(ClaimIntake).where(
                ClaimIntake.id == intake_id,
                ClaimIntake.tenant_id == self.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_intake(self, intake_id: str) -> Optional[IntakeRecord]:
        row = await self._get_intake_row(intake_id)
        return row_to_intake(row) if row else None

    async def add_intake(self, intake: IntakeRecord) -> None:
        self._check_owner(intake.tenant_id)
        self._session.add(intake_to_row(intake))
        await self._session.flush()

    async def update_intake(
        self,
        intake_id: str,
        *,
        status: IntakeStatus,
        patient_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> IntakeRecord:
        row = await self._get_intake_row(intake_id)
        if row is None:
            raise NotFoundError(f"Intake {intake_id} not found")

        row.status = status.value
        if patient_id is not None:
            row.patient_id = patient_id
        if failure_reason is not None:
            row.failure_reason = failure_reason
        row.updated_at = utcnow()
        await self._session.flush()
        return row_to_intake(row)

    async def list_stale_pending_intakes(
        self, older_than: datetime, limit: int
    ) -> list[IntakeRecord]:
        result = await self._session.execute(
            select(ClaimIntake)
            .where(
                ClaimIntake.tenant_id == self.tenant_id,
                ClaimIntake.status == IntakeStatus.PENDING.value,
                ClaimIntake.created_at < older_than,
            )
            .order_by(ClaimIntake.created_at)
            .limit(limit)
        )
        return [row_to_intake(row) for row in result.scalars().all()]

    async def get_patient_by_fingerprint(self, fingerprint: str) -> Optional[PatientIdentity]:
        result = await self._session.execute(
            select(Patient).where(
                Patient.tenant_id == self.tenant_id,
                Patient.fingerprint == fingerprint,
            )
        )
        row = result.scalar_one_or_none()
        return row_to_patient(row) if row else None

    async def get_patient_by_ref(self, patient_ref_id: str) -> Optional[PatientIdentity]:
        result = await self._session.execute(
            select(Patient).where(
                Patient.tenant_id == self.tenant_id,
                Patient.patient_ref_id == patient_ref_id,
            )
        )
        row = result.scalar_one_or_none()
        return row_to_patient(row) if row else None

    async def add_patient(self, patient: PatientIdentity) -> None:
        self._check_owner(patient.tenant_id)
        self._session.add(patient_to_row(patient))
        await self._session.flush()

    async def add_claim(self, claim: CanonicalClaim) -> None:
        self._check_owner(claim.tenant_id)
        self._session.add(claim_to_row(claim))
        await self._session.flush()

    async def get_claim(self, claim_id: str) -> Optional[CanonicalClaim]:
        if not _is_uuid(claim_id):
            return None
        result = await self._session.execute(
            select(Claim).where(Claim.id == claim_id, Claim.tenant_id == self.tenant_id)
        )
        row = result.scalar_one_or_none()
        return row_to_claim(row) if row else None

    async def get_claim_for_intake(self, intake_id: str) -> Optional[CanonicalClaim]:
        if not _is_uuid(intake_id):
            return None
        result = await self._session.execute(
            select(Claim).where(Claim.intake_id == intake_id, Claim.tenant_id == self.tenant_id)
        )
        row = result.scalar_one_or_none()
        return row_to_claim(row) if row else None

    async def mark_claim_published(self, claim_id: str, published_at: datetime) -> None:
        await self._session.execute(
            update(Claim)
            .where(
                Claim.id == claim_id,
                Claim.tenant_id == self.tenant_id,
                Claim.event_published_at.is_(None),
            )
            .values(event_published_at=published_at, updated_at=utcnow())
        )

    async def list_unpublished_claims(
        self, older_than: datetime, limit: int
    ) -> list[CanonicalClaim]:
        result = await self._session.execute(
            select(Claim)
            .where(
                Claim.tenant_id == self.tenant_id,
                Claim.status == ClaimStatus.SUBMITTED.value,
                Claim.event_published_at.is_(None),
                Claim.created_at < older_than,
            )
            .order_by(Claim.created_at)
            .limit(limit)
        )
        return [row_to_claim(row) for row in result.scalars().all()]


class SQLTenantScopedStore(TenantScopedStore):
    """
    PostgreSQL tenant-scoped store.

    The connection pool is shared by every concurrent handler in the process;
    each transaction checks out one connection and returns it on commit or
    rollback.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self._engine = engine
        self._session_maker = session_maker or create_session_maker(engine)

    @asynccontextmanager
    async def transaction(self, tenant_id: str) -> AsyncIterator[TenantSession]:
        self._require_tenant(tenant_id)
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    await session.execute(
                        text("SELECT set_config('app.tenant_id', :tenant_id, true)"),
                        {"tenant_id": tenant_id},
                    )
                    yield SQLTenantSession(session, tenant_id)
        except IntegrityError as e:
            logger.warning(f"Constraint violation for tenant {tenant_id}: {e.orig}")
            raise ConflictError("Concurrent write conflict", original_error=e) from e
        except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
            logger.error(f"Data store unavailable: {e}")
            raise TransientInfraError("Data store unavailable", original_error=e) from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise TransientInfraError("Data store connection lost", original_error=e) from e
            logger.error(f"Data store rejected statement: {e.orig}")
            raise PersistenceError("Data store rejected statement", original_error=e) from e
        except SQLAlchemyError as e:
            logger.error(f"Data store error: {e}")
            raise PersistenceError("Data store error", original_error=e) from e

    async def list_tenants(self) -> list[str]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(Tenant.id).order_by(Tenant.id))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise TransientInfraError("Failed to list tenants", original_error=e) from e

    async def check_health(self) -> bool:
        return await check_db_connection(self._engine)

    async def close(self) -> None:
        logger.info("Closing database connection pool...")
        await self._engine.dispose()
        logger.info("Database connection pool closed")

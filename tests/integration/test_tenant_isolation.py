"""
Integration Tests for row-level tenant isolation.
Requires a PostgreSQL database; set TEST_DATABASE_URL (asyncpg URL of a role
allowed to create tables and roles) to run them.
"""

import os
import uuid
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError

from phi_claims.db import SQLTenantScopedStore, create_engine
from phi_claims.models import Base
from phi_claims.schemas.records import PatientIdentity
from phi_claims.utils.errors import ConflictError
from tests.helpers import make_intake

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")
APP_ROLE = "phi_claims_app"
ROW_FILTERED_TABLES = ("claims_intake", "patients", "claims")
TENANT_PREDICATE = "tenant_id = current_setting('app.tenant_id', true)"

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]


async def _prepare_schema(settings) -> None:
    admin = create_engine(settings, database_url=TEST_DATABASE_URL)
    try:
        async with admin.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(
                text(
                    f"DO $$ BEGIN IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{APP_ROLE}') "
                    f"THEN CREATE ROLE {APP_ROLE} NOLOGIN; END IF; END $$"
                )
            )
            await conn.execute(
                text(
                    "GRANT SELECT, INSERT, UPDATE ON tenants, claims_intake, patients, claims "
                    f"TO {APP_ROLE}"
                )
            )
            await conn.execute(text(f"GRANT {APP_ROLE} TO CURRENT_USER"))
            for table in ROW_FILTERED_TABLES:
                await conn.execute(text(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY"))
                await conn.execute(text(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY"))
                await conn.execute(text(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table}"))
                await conn.execute(
                    text(
                        f"CREATE POLICY {table}_tenant_isolation ON {table} "
                        f"USING ({TENANT_PREDICATE}) WITH CHECK ({TENANT_PREDICATE})"
                    )
                )
    finally:
        await admin.dispose()


@asynccontextmanager
async def app_store(settings):
    """Store whose connections run as the unprivileged application role."""
    await _prepare_schema(settings)
    engine = create_engine(settings, database_url=TEST_DATABASE_URL)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_role(dbapi_connection, connection_record):
        dbapi_connection.run_async(lambda conn: conn.execute(f"SET ROLE {APP_ROLE}"))

    store = SQLTenantScopedStore(engine)
    try:
        yield store, engine
    finally:
        await store.close()


async def _visible_intake_count(engine, tenant_id) -> int:
    async with engine.begin() as conn:
        if tenant_id is not None:
            await conn.execute(
                text("SELECT set_config('app.tenant_id', :tenant_id, true)"),
                {"tenant_id": tenant_id},
            )
        result = await conn.execute(text("SELECT count(*) FROM claims_intake"))
        return result.scalar_one()


def _tenants() -> tuple[str, str]:
    suffix = uuid.uuid4().hex[:8]
    return f"tenant-a-{suffix}", f"tenant-b-{suffix}"


class TestRowLevelSecurity:
    """Policies filter rows even for queries without a tenant predicate."""

    @pytest.mark.asyncio
    async def test_colliding_intake_ids_stay_separate(self, settings):
        tenant_a, tenant_b = _tenants()
        shared_id = str(uuid.uuid4())

        async with app_store(settings) as (store, _):
            for tenant_id in (tenant_a, tenant_b):
                async with store.transaction(tenant_id) as session:
                    await session.ensure_tenant()
                    await session.add_intake(
                        make_intake(tenant_id, shared_id, patient_ref_id=f"ref-{tenant_id}")
                    )

            async with store.transaction(tenant_a) as session:
                seen_by_a = await session.get_intake(shared_id)
            async with store.transaction(tenant_b) as session:
                seen_by_b = await session.get_intake(shared_id)

        assert seen_by_a.tenant_id == tenant_a
        assert seen_by_a.patient_ref_id == f"ref-{tenant_a}"
        assert seen_by_b.tenant_id == tenant_b

    @pytest.mark.asyncio
    async def test_unfiltered_query_sees_only_current_tenant(self, settings):
        tenant_a, tenant_b = _tenants()

        async with app_store(settings) as (store, engine):
            async with store.transaction(tenant_a) as session:
                await session.ensure_tenant()
                await session.add_intake(make_intake(tenant_a, str(uuid.uuid4())))
                await session.add_intake(make_intake(tenant_a, str(uuid.uuid4())))

            assert await _visible_intake_count(engine, tenant_a) == 2
            assert await _visible_intake_count(engine, tenant_b) == 0
            assert await _visible_intake_count(engine, None) == 0

    @pytest.mark.asyncio
    async def test_insert_for_another_tenant_is_refused(self, settings):
        tenant_a, tenant_b = _tenants()

        async with app_store(settings) as (_, engine):
            with pytest.raises(DBAPIError):
                async with engine.begin() as conn:
                    await conn.execute(
                        text("SELECT set_config('app.tenant_id', :tenant_id, true)"),
                        {"tenant_id": tenant_a},
                    )
                    await conn.execute(
                        text(
                            "INSERT INTO patients (id, tenant_id, patient_ref_id) "
                            "VALUES (:id, :tenant_id, 'ref-x')"
                        ),
                        {"id": str(uuid.uuid4()), "tenant_id": tenant_b},
                    )


class TestConstraintTranslation:
    """Unique violations surface as retryable conflicts."""

    @pytest.mark.asyncio
    async def test_duplicate_reference_is_conflict(self, settings):
        tenant_a, _ = _tenants()

        async with app_store(settings) as (store, _):
            async with store.transaction(tenant_a) as session:
                await session.ensure_tenant()
                await session.add_patient(
                    PatientIdentity(id=str(uuid.uuid4()), tenant_id=tenant_a, patient_ref_id="dup")
                )

            with pytest.raises(ConflictError):
                async with store.transaction(tenant_a) as session:
                    await session.add_patient(
                        PatientIdentity(
                            id=str(uuid.uuid4()), tenant_id=tenant_a, patient_ref_id="dup"
                        )
                    )

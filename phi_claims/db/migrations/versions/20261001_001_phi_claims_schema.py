"""Create tenant-scoped intake, patient and claim tables with row-level security.

Revision ID: 20261001_001
Revises:
Create Date: 2026-10-01

Source: https://www.postgresql.org/docs/current/ddl-rowsecurity.html
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers
revision = "20261001_001"
down_revision = None
branch_labels = None
depends_on = None

ROW_FILTERED_TABLES = ("claims_intake", "patients", "claims")
TENANT_PREDICATE = "tenant_id = current_setting('app.tenant_id', true)"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    """Create tables, then enable and force tenant isolation policies."""

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    op.create_table(
        "claims_intake",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("patient_ref_id", sa.String(128), nullable=True),
        sa.Column("patient_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("insurance_card", postgresql.JSONB, nullable=True),
        sa.Column("insurance_card_key", sa.String(512), nullable=True),
        sa.Column("raw_payload", postgresql.JSONB, nullable=False),
        sa.Column("service_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("failure_reason", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_claims_intake_tenant_status_created",
        "claims_intake",
        ["tenant_id", "status", "created_at"],
    )

    op.create_table(
        "patients",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("patient_ref_id", sa.String(128), nullable=False),
        sa.Column("fingerprint", sa.String(64), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "fingerprint", name="uq_patients_tenant_fingerprint"),
        sa.UniqueConstraint("tenant_id", "patient_ref_id", name="uq_patients_tenant_ref"),
    )

    op.create_table(
        "claims",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("claim_ref_id", sa.String(64), nullable=False, unique=True),
        sa.Column("intake_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column(
            "patient_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("patients.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("payer_code", sa.String(50), nullable=False),
        sa.Column("service_date", sa.Date, nullable=False),
        sa.Column("diagnosis_codes", postgresql.ARRAY(sa.String(20)), nullable=False),
        sa.Column("procedure_codes", postgresql.ARRAY(sa.String(20)), nullable=False),
        sa.Column("amount_billed", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("amount_allowed", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column(
            "amount_patient_responsibility", sa.BigInteger, nullable=False, server_default="0"
        ),
        sa.Column("status", sa.String(30), nullable=False, index=True),
        sa.Column("event_published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "intake_id", name="uq_claims_tenant_intake"),
        sa.CheckConstraint("amount_billed >= 0", name="ck_claims_amount_billed"),
        sa.CheckConstraint("amount_allowed >= 0", name="ck_claims_amount_allowed"),
        sa.CheckConstraint(
            "amount_patient_responsibility >= 0", name="ck_claims_amount_patient_resp"
        ),
    )
    op.create_index(
        "ix_claims_unpublished", "claims", ["tenant_id", "status", "event_published_at"]
    )

    # FORCE applies the policies to the table owner as well
    for table in ROW_FILTERED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY {table}_tenant_isolation ON {table} "
            f"USING ({TENANT_PREDICATE}) WITH CHECK ({TENANT_PREDICATE})"
        )


def downgrade() -> None:
    """Drop policies and tables."""
    for table in reversed(ROW_FILTERED_TABLES):
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table}")

    op.drop_index("ix_claims_unpublished", table_name="claims")
    op.drop_table("claims")
    op.drop_table("patients")
    op.drop_index("ix_claims_intake_tenant_status_created", table_name="claims_intake")
    op.drop_table("claims_intake")
    op.drop_table("tenants")

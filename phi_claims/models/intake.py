"""
Claim Intake Model.

Raw, unvalidated submissions. Rows are never deleted; the status column is
the audit trail of worker processing.
"""

from datetime import date
from typing import Any, Optional

from sqlalchemy import Date, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from phi_claims.core.enums import IntakeStatus
from phi_claims.models.base import TENANT_ID_MAX_LENGTH, Base, TenantOwnedModel, TimeStampedModel


class ClaimIntake(Base, TenantOwnedModel, TimeStampedModel):
    """Pending intake row written by the ingest boundary."""

    __tablename__ = "claims_intake"
    __table_args__ = (
        Index("ix_claims_intake_tenant_status_created", "tenant_id", "status", "created_at"),
    )

    # Composite key: ids may collide across tenants
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_MAX_LENGTH), primary_key=True)
    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)

    patient_ref_id: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True, comment="Opaque external patient reference"
    )
    patient_id: Mapped[Optional[str]] = mapped_column(
        PG_UUID(as_uuid=False), nullable=True, comment="Internal patient id, set by the worker"
    )
    insurance_card: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    insurance_card_key: Mapped[Optional[str]] = mapped_column(
        String(512), nullable=True, comment="Object store key of the card image"
    )
    raw_payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IntakeStatus.PENDING.value
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ClaimIntake(id={self.id}, status={self.status})>"

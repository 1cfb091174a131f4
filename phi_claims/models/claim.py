"""
Canonical Claim Model.
"""

from datetime import date, datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from phi_claims.core.enums import ClaimStatus
from phi_claims.models.base import Base, TenantOwnedModel, TimeStampedModel

PAYER_CODE_MAX_LENGTH = 50
CLINICAL_CODE_MAX_LENGTH = 20


class Claim(Base, TenantOwnedModel, TimeStampedModel):
    """
    Validated, billable claim.

    Created once per intake: ``(tenant_id, intake_id)`` is unique and the
    insert shares a transaction with the intake status update.
    """

    __tablename__ = "claims"
    __table_args__ = (
        UniqueConstraint("tenant_id", "intake_id", name="uq_claims_tenant_intake"),
        CheckConstraint("amount_billed >= 0", name="ck_claims_amount_billed"),
        CheckConstraint("amount_allowed >= 0", name="ck_claims_amount_allowed"),
        CheckConstraint(
            "amount_patient_responsibility >= 0", name="ck_claims_amount_patient_resp"
        ),
        Index("ix_claims_unpublished", "tenant_id", "status", "event_published_at"),
    )

    id: Mapped[str] = mapped_column(
        PG_UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    claim_ref_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, comment="Opaque id exported to consumers"
    )
    intake_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), nullable=False)
    patient_id: Mapped[str] = mapped_column(
        PG_UUID(as_uuid=False),
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
    )
    payer_code: Mapped[str] = mapped_column(String(PAYER_CODE_MAX_LENGTH), nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    diagnosis_codes: Mapped[list[str]] = mapped_column(
        ARRAY(String(CLINICAL_CODE_MAX_LENGTH)), nullable=False, default=list
    )
    procedure_codes: Mapped[list[str]] = mapped_column(
        ARRAY(String(CLINICAL_CODE_MAX_LENGTH)), nullable=False, default=list
    )

    # Integer minor-currency units
    amount_billed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    amount_allowed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    amount_patient_responsibility: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ClaimStatus.SUBMITTED.value, index=True
    )
    event_published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set once the ClaimCreated event was accepted by the bus",
    )

    def __repr__(self) -> str:
        return f"<Claim(claim_ref_id={self.claim_ref_id}, status={self.status})>"

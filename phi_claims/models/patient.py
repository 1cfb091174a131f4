"""
Patient Identity Model.
"""

from datetime import date
from typing import Optional
from uuid import uuid4

from sqlalchemy import Date, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from phi_claims.models.base import Base, TenantOwnedModel, TimeStampedModel


class Patient(Base, TenantOwnedModel, TimeStampedModel):
    """
    Canonical demographic record.

    One row per (tenant, demographic fingerprint); ``patient_ref_id`` is the
    immutable external alias of ``id``.
    """

    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("tenant_id", "fingerprint", name="uq_patients_tenant_fingerprint"),
        UniqueConstraint("tenant_id", "patient_ref_id", name="uq_patients_tenant_ref"),
    )

    id: Mapped[str] = mapped_column(
        PG_UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    patient_ref_id: Mapped[str] = mapped_column(String(128), nullable=False)
    fingerprint: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="SHA-256 of normalised demographics"
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        # Never include demographics
        return f"<Patient(ref={self.patient_ref_id})>"

"""
Domain records for intakes, patient identities and canonical claims.

Store backends exchange these immutable records rather than ORM instances,
so a transaction's writes are explicit calls on the tenant session and the
in-memory backend can stage and discard them atomically.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from phi_claims.core.enums import ClaimStatus, IntakeStatus


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IntakeRecord:
    """Raw, unvalidated claim submission."""

    id: str
    tenant_id: str
    raw_payload: dict[str, Any]
    service_date: date
    status: IntakeStatus = IntakeStatus.PENDING
    patient_ref_id: Optional[str] = None
    patient_id: Optional[str] = None
    insurance_card: Optional[dict[str, Any]] = None
    insurance_card_key: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PatientIdentity:
    """Canonical demographic record.

    ``id`` never leaves the trust boundary; ``patient_ref_id`` is the stable
    opaque alias handed to non-PHI systems.
    """

    id: str
    tenant_id: str
    patient_ref_id: str
    fingerprint: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CanonicalClaim:
    """Validated, billable claim derived from exactly one intake."""

    id: str
    claim_ref_id: str
    intake_id: str
    patient_id: str
    tenant_id: str
    payer_code: str
    service_date: date
    diagnosis_codes: tuple[str, ...] = ()
    procedure_codes: tuple[str, ...] = ()
    amount_billed: int = 0
    amount_allowed: int = 0
    amount_patient_responsibility: int = 0
    # Billing states written by other services are kept as plain strings
    status: Union[ClaimStatus, str] = ClaimStatus.SUBMITTED
    event_published_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        for name in ("amount_billed", "amount_allowed", "amount_patient_responsibility"):
            amount = getattr(self, name)
            # bool is an int subclass; reject it explicitly
            if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {amount!r}")

    @property
    def status_value(self) -> str:
        return self.status.value if isinstance(self.status, ClaimStatus) else self.status

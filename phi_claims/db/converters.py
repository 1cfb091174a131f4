"""Converters between ORM rows and domain records."""

from typing import Union

from phi_claims.core.enums import ClaimStatus, IntakeStatus
from phi_claims.models.claim import Claim
from phi_claims.models.intake import ClaimIntake
from phi_claims.models.patient import Patient
from phi_claims.schemas.records import CanonicalClaim, IntakeRecord, PatientIdentity


def row_to_intake(row: ClaimIntake) -> IntakeRecord:
    """Convert a claims_intake row to an IntakeRecord."""
    return IntakeRecord(
        id=str(row.id),
        tenant_id=row.tenant_id,
        raw_payload=dict(row.raw_payload or {}),
        service_date=row.service_date,
        status=IntakeStatus(row.status),
        patient_ref_id=row.patient_ref_id,
        patient_id=str(row.patient_id) if row.patient_id else None,
        insurance_card=dict(row.insurance_card) if row.insurance_card is not None else None,
        insurance_card_key=row.insurance_card_key,
        failure_reason=row.failure_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def intake_to_row(record: IntakeRecord) -> ClaimIntake:
    """Convert an IntakeRecord to a new claims_intake row."""
    return ClaimIntake(
        id=record.id,
        tenant_id=record.tenant_id,
        patient_ref_id=record.patient_ref_id,
        patient_id=record.patient_id,
        insurance_card=record.insurance_card,
        insurance_card_key=record.insurance_card_key,
        raw_payload=record.raw_payload,
        service_date=record.service_date,
        status=record.status.value,
        failure_reason=record.failure_reason,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def row_to_patient(row: Patient) -> PatientIdentity:
    """Convert a patients row to a PatientIdentity."""
    return PatientIdentity(
        id=str(row.id),
        tenant_id=row.tenant_id,
        patient_ref_id=row.patient_ref_id,
        fingerprint=row.fingerprint,
        first_name=row.first_name,
        last_name=row.last_name,
        date_of_birth=row.date_of_birth,
        gender=row.gender,
        created_at=row.created_at,
    )


def patient_to_row(identity: PatientIdentity) -> Patient:
    """Convert a PatientIdentity to a new patients row."""
    return Patient(
        id=identity.id,
        tenant_id=identity.tenant_id,
        patient_ref_id=identity.patient_ref_id,
        fingerprint=identity.fingerprint,
        first_name=identity.first_name,
        last_name=identity.last_name,
        date_of_birth=identity.date_of_birth,
        gender=identity.gender,
        created_at=identity.created_at,
        updated_at=identity.created_at,
    )


def _claim_status(value: str) -> Union[ClaimStatus, str]:
    try:
        return ClaimStatus(value)
    except ValueError:
        return value


def row_to_claim(row: Claim) -> CanonicalClaim:
    """Convert a claims row to a CanonicalClaim."""
    return CanonicalClaim(
        id=str(row.id),
        claim_ref_id=row.claim_ref_id,
        intake_id=str(row.intake_id),
        patient_id=str(row.patient_id),
        tenant_id=row.tenant_id,
        payer_code=row.payer_code,
        service_date=row.service_date,
        diagnosis_codes=tuple(row.diagnosis_codes or ()),
        procedure_codes=tuple(row.procedure_codes or ()),
        amount_billed=int(row.amount_billed),
        amount_allowed=int(row.amount_allowed),
        amount_patient_responsibility=int(row.amount_patient_responsibility),
        status=_claim_status(row.status),
        event_published_at=row.event_published_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def claim_to_row(claim: CanonicalClaim) -> Claim:
    """Convert a CanonicalClaim to a new claims row."""
    return Claim(
        id=claim.id,
        claim_ref_id=claim.claim_ref_id,
        intake_id=claim.intake_id,
        patient_id=claim.patient_id,
        tenant_id=claim.tenant_id,
        payer_code=claim.payer_code,
        service_date=claim.service_date,
        diagnosis_codes=list(claim.diagnosis_codes),
        procedure_codes=list(claim.procedure_codes),
        amount_billed=claim.amount_billed,
        amount_allowed=claim.amount_allowed,
        amount_patient_responsibility=claim.amount_patient_responsibility,
        status=claim.status_value,
        event_published_at=claim.event_published_at,
        created_at=claim.created_at,
        updated_at=claim.updated_at,
    )

"""
Intake Service for raw claim submissions.

Provides:
- Request validation at the HTTP boundary
- Insurance-card image upload to the PHI bucket
- Pending intake persistence under the submitting tenant
- Queue notification after commit
- Status and insurance-card lookups

The service never resolves identities or creates claims; that work belongs
to the intake worker.
"""

import base64
import binascii
import uuid
from datetime import date
from typing import Any, Optional

from phi_claims.api.config import Settings
from phi_claims.db.tenant_manager import TenantScopedStore
from phi_claims.models.base import TENANT_ID_MAX_LENGTH
from phi_claims.schemas.intake import (
    InsuranceCardURLResponse,
    IntakeCreate,
    IntakeReceipt,
    IntakeStatusResponse,
)
from phi_claims.schemas.messages import IntakeMessage
from phi_claims.schemas.records import IntakeRecord
from phi_claims.services.identity_service import Demographics
from phi_claims.services.messaging.queue import DurableQueue
from phi_claims.services.storage import ObjectStore
from phi_claims.utils.errors import (
    NotFoundError,
    PersistenceError,
    TransientInfraError,
    ValidationError,
)
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

CARD_IMAGE_FIELD = "image_base64"
CARD_CONTENT_TYPE_FIELD = "content_type"


def insurance_card_key(tenant_id: str, intake_id: str) -> str:
    return f"intake/{tenant_id}/{intake_id}/insurance-card"


def _parse_service_date(request: IntakeCreate) -> date:
    if request.service_date is not None:
        return request.service_date
    value = request.raw_payload.get("service_date")
    if value is None:
        raise ValidationError("service_date is required", errors=["service_date: missing"])
    if not isinstance(value, str):
        raise ValidationError(
            "service_date must be an ISO date", errors=["service_date: not a string"]
        )
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(
            "service_date must be an ISO date", errors=["service_date: invalid date"]
        ) from e


def _validate_payload(request: IntakeCreate) -> None:
    payload = request.raw_payload
    errors: list[str] = []

    try:
        demographics = Demographics.from_payload(payload)
    except ValueError:
        demographics = None
        errors.append("demographics: first_name, last_name and an ISO dob are required together")
    else:
        if demographics is None and not request.patient_ref_id:
            errors.append("patient: patient_ref_id or demographics required")

    amount = payload.get("amount_billed")
    if amount is not None and (isinstance(amount, bool) or not isinstance(amount, int) or amount < 0):
        errors.append("amount_billed: must be a non-negative integer")

    if errors:
        raise ValidationError("Invalid intake request", errors=errors)


class IntakeService:
    """
    Ingest boundary for raw claim submissions.

    Collaborators are injected; the service holds no clients of its own.
    """

    def __init__(
        self,
        settings: Settings,
        store: TenantScopedStore,
        queue: DurableQueue,
        object_store: ObjectStore,
    ):
        self._settings = settings
        self._store = store
        self._queue = queue
        self._object_store = object_store

    @staticmethod
    def _resolve_tenant(body_tenant: Optional[str], header_tenant: Optional[str]) -> str:
        body_tenant = (body_tenant or "").strip() or None
        header_tenant = (header_tenant or "").strip() or None
        if body_tenant and header_tenant and body_tenant != header_tenant:
            raise ValidationError(
                "Tenant mismatch", errors=["tenant_id: body and X-Tenant-ID header disagree"]
            )
        tenant_id = body_tenant or header_tenant
        if not tenant_id:
            raise ValidationError("tenant_id is required", errors=["tenant_id: missing"])
        if len(tenant_id) > TENANT_ID_MAX_LENGTH:
            raise ValidationError(
                "tenant_id is too long",
                errors=[f"tenant_id: exceeds {TENANT_ID_MAX_LENGTH} characters"],
            )
        return tenant_id

    async def _store_card(
        self, tenant_id: str, intake_id: str, card: Optional[dict[str, Any]]
    ) -> tuple[Optional[dict[str, Any]], Optional[str]]:
        """Upload an embedded card image; returns the card JSON without it and the key."""
        if not card or CARD_IMAGE_FIELD not in card:
            return card, None

        encoded = card[CARD_IMAGE_FIELD]
        if not isinstance(encoded, str):
            raise ValidationError(
                "Invalid insurance card image", errors=["insurance_card.image_base64: not a string"]
            )
        try:
            image = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(
                "Invalid insurance card image",
                errors=["insurance_card.image_base64: not valid base64"],
            ) from e

        content_type = card.get(CARD_CONTENT_TYPE_FIELD) or "application/octet-stream"
        key = await self._object_store.put(
            self._settings.PHI_BUCKET,
            insurance_card_key(tenant_id, intake_id),
            image,
            content_type=str(content_type),
        )
        stored = {k: v for k, v in card.items() if k != CARD_IMAGE_FIELD}
        return stored, key

    async def submit(
        self, request: IntakeCreate, header_tenant_id: Optional[str] = None
    ) -> IntakeReceipt:
        """
        Accept a raw submission and queue it for processing.

        Args:
            request: Validated request body
            header_tenant_id: Value of the X-Tenant-ID header, if sent

        Returns:
            Receipt with the new intake id and status ``pending``

        Raises:
            ValidationError: If the request is malformed
            PersistenceError: If the pending intake could not be recorded
        """
        tenant_id = self._resolve_tenant(request.tenant_id, header_tenant_id)
        service_date = _parse_service_date(request)
        _validate_payload(request)

        intake_id = str(uuid.uuid4())
        card, card_key = await self._store_card(tenant_id, intake_id, request.insurance_card)

        record = IntakeRecord(
            id=intake_id,
            tenant_id=tenant_id,
            raw_payload=request.raw_payload,
            service_date=service_date,
            patient_ref_id=request.patient_ref_id,
            insurance_card=card,
            insurance_card_key=card_key,
        )
        try:
            async with self._store.transaction(tenant_id) as session:
                await session.ensure_tenant()
                await session.add_intake(record)
        except (TransientInfraError, PersistenceError) as e:
            logger.error(f"Failed to record intake {intake_id}: {e}")
            raise PersistenceError("Failed to record intake", original_error=e) from e

        logger.info(f"Accepted intake {intake_id} for tenant {tenant_id}")

        message = IntakeMessage(intake_id=intake_id, tenant_id=tenant_id)
        try:
            await self._queue.enqueue(message.to_body())
        except Exception as e:
            # The pending-intake sweeper re-enqueues it
            logger.error(f"Failed to enqueue intake {intake_id}; left for reconciliation: {e}")

        return IntakeReceipt(intake_id=intake_id)

    async def _get_visible(self, tenant_id: str, intake_id: str) -> IntakeRecord:
        if not tenant_id or not tenant_id.strip():
            raise ValidationError("X-Tenant-ID header is required", errors=["tenant_id: missing"])
        async with self._store.transaction(tenant_id.strip()) as session:
            intake = await session.get_intake(intake_id)
        if intake is None:
            raise NotFoundError("Intake not found")
        return intake

    async def get_status(self, tenant_id: str, intake_id: str) -> IntakeStatusResponse:
        """
        Status of an intake as seen by ``tenant_id``.

        Raises:
            NotFoundError: If no such intake is visible to the tenant
        """
        intake = await self._get_visible(tenant_id, intake_id)
        return IntakeStatusResponse(
            intake_id=intake.id, status=intake.status, created_at=intake.created_at
        )

    async def insurance_card_url(self, tenant_id: str, intake_id: str) -> InsuranceCardURLResponse:
        """
        Presigned download link for an intake's insurance-card image.

        Raises:
            NotFoundError: If the intake is not visible or has no stored card
        """
        intake = await self._get_visible(tenant_id, intake_id)
        if not intake.insurance_card_key:
            raise NotFoundError("Insurance card not found")

        ttl = self._settings.PRESIGN_TTL_SECONDS
        url = await self._object_store.presigned_get(
            self._settings.PHI_BUCKET, intake.insurance_card_key, ttl
        )
        return InsuranceCardURLResponse(download_url=url, expires_in=ttl)

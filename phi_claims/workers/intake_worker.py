"""
Intake Processing Worker.
Source: https://docs.aws.amazon.com/AWSSimpleQueueService/latest/SQSDeveloperGuide/sqs-short-and-long-polling.html
Verified: 2026-10-01

Turns pending intakes into canonical claims:

1. Decode the queue message (malformed bodies are dead-lettered)
2. In one transaction bound to the message's tenant: load the intake,
   resolve the patient, insert the claim, mark the intake validated
3. After commit, announce ClaimCreated with bounded retries
4. Acknowledge the message

Redelivery is safe: a validated intake short-circuits, and the unique
constraint on (tenant_id, intake_id) stops a concurrent duplicate claim.
"""

import asyncio
import json
import uuid
from typing import Any, Optional

from phi_claims.api.config import Settings
from phi_claims.core.enums import IntakeStatus, MessageOutcome
from phi_claims.db.tenant_manager import TenantScopedStore, TenantSession
from phi_claims.models.claim import CLINICAL_CODE_MAX_LENGTH, PAYER_CODE_MAX_LENGTH
from phi_claims.schemas.messages import IntakeMessage
from phi_claims.schemas.records import CanonicalClaim, IntakeRecord
from phi_claims.services.claim_events import ClaimAnnouncer
from phi_claims.services.identity_service import Demographics, IdentityResolver
from phi_claims.services.messaging.queue import DurableQueue, QueueMessage
from phi_claims.services.security.phi_protection import redact_text
from phi_claims.utils.errors import IntakeRejectedError, PipelineError, PoisonMessageError
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

CLAIM_REF_PREFIX = "clm_"
DEFAULT_PAYER_CODE = "UNKNOWN"
IDLE_POLL_SECONDS = 1.0


def _amount(payload: dict[str, Any], field: str) -> int:
    value = payload.get(field, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise IntakeRejectedError(f"{field} must be a non-negative integer")
    return value


def _codes(payload: dict[str, Any], field: str) -> tuple[str, ...]:
    value = payload.get(field) or []
    if not isinstance(value, list) or not all(isinstance(code, str) for code in value):
        raise IntakeRejectedError(f"{field} must be a list of codes")
    codes = tuple(code.strip() for code in value if code.strip())
    if any(len(code) > CLINICAL_CODE_MAX_LENGTH for code in codes):
        raise IntakeRejectedError(f"{field} entries exceed {CLINICAL_CODE_MAX_LENGTH} characters")
    return codes


def _payer_code(payload: dict[str, Any]) -> str:
    value = payload.get("payer_code")
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_PAYER_CODE
    if len(value.strip()) > PAYER_CODE_MAX_LENGTH:
        raise IntakeRejectedError(f"payer_code exceeds {PAYER_CODE_MAX_LENGTH} characters")
    return value.strip()


class IntakeWorker:
    """
    Queue consumer for pending intakes.

    One poll loop per process; the messages of one receive are handled
    concurrently, at most ``WORKER_CONCURRENCY`` at a time.
    """

    def __init__(
        self,
        settings: Settings,
        store: TenantScopedStore,
        queue: DurableQueue,
        resolver: IdentityResolver,
        announcer: ClaimAnnouncer,
        dead_letter_queue: Optional[DurableQueue] = None,
    ):
        self._settings = settings
        self._store = store
        self._queue = queue
        self._resolver = resolver
        self._announcer = announcer
        self._dead_letter_queue = dead_letter_queue
        self._poll_backoff = settings.POLL_ERROR_BACKOFF_SECONDS

    # =========================================================================
    # Message handling
    # =========================================================================

    async def handle_message(self, message: QueueMessage) -> MessageOutcome:
        """Process one delivery and acknowledge it unless a retry is wanted."""
        try:
            intake_message = IntakeMessage.from_body(message.body)
        except PoisonMessageError as e:
            outcome = await self._dead_letter(message, str(e))
        else:
            try:
                outcome = await self.process(intake_message)
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
                if message.receive_count >= self._settings.MAX_RECEIVE_COUNT:
                    outcome = await self._dead_letter(message, reason)
                    if outcome is MessageOutcome.DEAD_LETTERED:
                        outcome = await self._fail_dead_lettered(intake_message, message)
                else:
                    logger.warning(
                        f"Intake {intake_message.intake_id} failed on delivery "
                        f"{message.receive_count}/{self._settings.MAX_RECEIVE_COUNT}; "
                        f"leaving for redelivery: {reason}"
                    )
                    outcome = MessageOutcome.RETRY_SCHEDULED

        if outcome.acknowledges:
            await self._acknowledge(message)
        return outcome

    async def _acknowledge(self, message: QueueMessage) -> None:
        try:
            acknowledged = await self._queue.acknowledge(message.receipt_handle)
        except PipelineError as e:
            # Redelivery short-circuits on the intake status
            logger.warning(f"Failed to acknowledge message {message.message_id}: {e}")
            return
        if not acknowledged:
            logger.warning(f"Stale receipt handle for message {message.message_id}")

    async def _dead_letter(self, message: QueueMessage, reason: str) -> MessageOutcome:
        record = {
            "message_id": message.message_id,
            "receive_count": message.receive_count,
            "reason": redact_text(reason),
            "body": redact_text(message.body),
        }
        logger.error(f"Dead-lettering message {message.message_id}: {record['reason']}")
        if self._dead_letter_queue is None:
            return MessageOutcome.DEAD_LETTERED
        try:
            await self._dead_letter_queue.enqueue(json.dumps(record))
        except PipelineError as e:
            logger.error(f"Dead-letter queue unavailable for {message.message_id}: {e}")
            return MessageOutcome.RETRY_SCHEDULED
        return MessageOutcome.DEAD_LETTERED

    async def _fail_dead_lettered(
        self, intake_message: IntakeMessage, message: QueueMessage
    ) -> MessageOutcome:
        """Mark the intake failed so reconciliation stops re-enqueueing it."""
        try:
            await self._reject(
                intake_message, f"Dead-lettered after {message.receive_count} deliveries"
            )
        except Exception as e:
            # Unacknowledged, the next delivery retries the status write
            logger.error(
                f"Failed to mark dead-lettered intake {intake_message.intake_id} failed: {e}"
            )
            return MessageOutcome.RETRY_SCHEDULED
        return MessageOutcome.DEAD_LETTERED

    # =========================================================================
    # Intake processing
    # =========================================================================

    async def process(self, message: IntakeMessage) -> MessageOutcome:
        """
        Turn one pending intake into a canonical claim.

        Raises:
            TransientInfraError: If the store is unavailable or a concurrent
                writer won a uniqueness race; the caller leaves the message
                for redelivery
        """
        announce: Optional[CanonicalClaim] = None
        try:
            async with self._store.transaction(message.tenant_id) as session:
                intake = await session.get_intake(message.intake_id)
                if intake is None:
                    logger.warning(f"Intake {message.intake_id} not found; acknowledging")
                    return MessageOutcome.NOT_FOUND

                if intake.status == IntakeStatus.VALIDATED:
                    existing = await session.get_claim_for_intake(intake.id)
                    if existing is not None and existing.event_published_at is None:
                        announce = existing
                    outcome = MessageOutcome.ALREADY_PROCESSED
                elif intake.status == IntakeStatus.FAILED:
                    logger.info(f"Intake {intake.id} already failed; acknowledging")
                    return MessageOutcome.ALREADY_PROCESSED
                else:
                    announce = await self._create_claim(session, intake)
                    outcome = MessageOutcome.CLAIM_CREATED
        except IntakeRejectedError as e:
            await self._reject(message, str(e))
            return MessageOutcome.REJECTED

        if outcome is MessageOutcome.ALREADY_PROCESSED:
            logger.info(f"Intake {message.intake_id} already validated; skipping")
        if announce is not None:
            await self._announcer.announce(announce)
        return outcome

    async def _resolve_patient(self, session: TenantSession, intake: IntakeRecord) -> str:
        if intake.patient_id:
            return intake.patient_id

        try:
            demographics = Demographics.from_payload(intake.raw_payload)
        except ValueError as e:
            raise IntakeRejectedError("Invalid patient demographics", original_error=e) from e

        if demographics is not None:
            resolved = await self._resolver.resolve(
                session,
                demographics.first_name,
                demographics.last_name,
                demographics.dob,
                demographics.gender,
            )
        elif intake.patient_ref_id:
            resolved = await self._resolver.link_reference(session, intake.patient_ref_id)
        else:
            raise IntakeRejectedError("Intake has neither patient reference nor demographics")
        return resolved.internal_id

    async def _create_claim(self, session: TenantSession, intake: IntakeRecord) -> CanonicalClaim:
        payload = intake.raw_payload
        patient_id = await self._resolve_patient(session, intake)

        claim = CanonicalClaim(
            id=str(uuid.uuid4()),
            claim_ref_id=f"{CLAIM_REF_PREFIX}{uuid.uuid4().hex}",
            intake_id=intake.id,
            patient_id=patient_id,
            tenant_id=intake.tenant_id,
            payer_code=_payer_code(payload),
            service_date=intake.service_date,
            diagnosis_codes=_codes(payload, "diagnosis_codes"),
            procedure_codes=_codes(payload, "procedure_codes"),
            amount_billed=_amount(payload, "amount_billed"),
        )
        await session.add_claim(claim)
        await session.update_intake(intake.id, status=IntakeStatus.VALIDATED, patient_id=patient_id)
        logger.info(f"Created claim {claim.claim_ref_id} from intake {intake.id}")
        return claim

    async def _reject(self, message: IntakeMessage, reason: str) -> None:
        async with self._store.transaction(message.tenant_id) as session:
            intake = await session.get_intake(message.intake_id)
            if intake is None or intake.status != IntakeStatus.PENDING:
                return
            await session.update_intake(
                intake.id, status=IntakeStatus.FAILED, failure_reason=redact_text(reason)
            )
        logger.warning(f"Rejected intake {message.intake_id}: {reason}")

    # =========================================================================
    # Polling
    # =========================================================================

    async def run_once(self) -> list[MessageOutcome]:
        """Receive one batch and handle it with bounded concurrency."""
        messages = await self._queue.receive(
            max_messages=self._settings.QUEUE_MAX_MESSAGES,
            wait_seconds=self._settings.QUEUE_WAIT_SECONDS,
            visibility_timeout_seconds=self._settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS,
        )
        if not messages:
            return []

        semaphore = asyncio.Semaphore(self._settings.WORKER_CONCURRENCY)

        async def bounded(message: QueueMessage) -> MessageOutcome:
            async with semaphore:
                return await self.handle_message(message)

        return list(await asyncio.gather(*(bounded(m) for m in messages)))

    async def poll(self) -> tuple[list[MessageOutcome], Optional[float]]:
        """
        One poll-loop iteration.

        Returns:
            The outcomes handled, and the delay to wait before the next poll
            when the receive failed (None after a successful receive)
        """
        try:
            outcomes = await self.run_once()
        except PipelineError as e:
            delay = self._poll_backoff
            self._poll_backoff = min(
                self._poll_backoff * 2, self._settings.POLL_ERROR_BACKOFF_MAX_SECONDS
            )
            logger.error(f"Queue poll failed; backing off {delay:.1f}s: {e}")
            return [], delay

        self._poll_backoff = self._settings.POLL_ERROR_BACKOFF_SECONDS
        return outcomes, None

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set."""
        logger.info("Intake worker started")
        while not stop_event.is_set():
            outcomes, delay = await self.poll()
            if delay is None and not outcomes and self._settings.QUEUE_WAIT_SECONDS == 0:
                delay = IDLE_POLL_SECONDS
            if delay is not None:
                await _wait_or_stop(stop_event, delay)
        logger.info("Intake worker stopped")


async def _wait_or_stop(stop_event: asyncio.Event, seconds: float) -> None:
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass

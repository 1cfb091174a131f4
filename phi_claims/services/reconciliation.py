"""
Reconciliation jobs.

Recover work that the happy path could not finish:
- PendingIntakeSweeper: intakes committed but never enqueued (or whose
  message was lost) are re-enqueued once they are old enough
- EventReconciler: claims committed without a ClaimCreated acknowledgment
  are announced again

Both visit tenants through the tenant registry, one tenant-scoped
transaction at a time, and are safe to run repeatedly.
"""

from dataclasses import dataclass
from datetime import timedelta

from phi_claims.api.config import Settings
from phi_claims.db.tenant_manager import TenantScopedStore
from phi_claims.schemas.messages import IntakeMessage
from phi_claims.schemas.records import utcnow
from phi_claims.services.claim_events import ClaimAnnouncer
from phi_claims.services.messaging.queue import DurableQueue
from phi_claims.utils.errors import PipelineError
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ReconcileReport:
    """Counts from one reconciliation pass."""

    examined: int = 0
    recovered: int = 0
    failed: int = 0


class PendingIntakeSweeper:
    """Re-enqueues stale pending intakes."""

    def __init__(self, settings: Settings, store: TenantScopedStore, queue: DurableQueue):
        self._settings = settings
        self._store = store
        self._queue = queue

    async def sweep(self) -> ReconcileReport:
        report = ReconcileReport()
        cutoff = utcnow() - timedelta(seconds=self._settings.INTAKE_RECONCILE_AFTER_SECONDS)

        for tenant_id in await self._store.list_tenants():
            try:
                async with self._store.transaction(tenant_id) as session:
                    stale = await session.list_stale_pending_intakes(
                        cutoff, self._settings.RECONCILE_BATCH_SIZE
                    )
            except PipelineError as e:
                logger.error(f"Pending sweep skipped tenant {tenant_id}: {e}")
                report.failed += 1
                continue

            report.examined += len(stale)
            if not stale:
                continue

            bodies = [
                IntakeMessage(intake_id=intake.id, tenant_id=tenant_id).to_body()
                for intake in stale
            ]
            try:
                await self._queue.enqueue_batch(bodies)
            except PipelineError as e:
                logger.error(f"Failed to re-enqueue {len(bodies)} intakes for {tenant_id}: {e}")
                report.failed += len(bodies)
                continue
            report.recovered += len(bodies)

        if report.recovered or report.failed:
            logger.info(
                f"Pending sweep: examined={report.examined} "
                f"re-enqueued={report.recovered} failed={report.failed}"
            )
        return report


class EventReconciler:
    """Announces submitted claims whose ClaimCreated was never acknowledged."""

    def __init__(self, settings: Settings, store: TenantScopedStore, announcer: ClaimAnnouncer):
        self._settings = settings
        self._store = store
        self._announcer = announcer

    async def reconcile(self) -> ReconcileReport:
        report = ReconcileReport()
        cutoff = utcnow() - timedelta(seconds=self._settings.EVENT_RECONCILE_AFTER_SECONDS)

        for tenant_id in await self._store.list_tenants():
            try:
                async with self._store.transaction(tenant_id) as session:
                    claims = await session.list_unpublished_claims(
                        cutoff, self._settings.RECONCILE_BATCH_SIZE
                    )
            except PipelineError as e:
                logger.error(f"Event reconciliation skipped tenant {tenant_id}: {e}")
                report.failed += 1
                continue

            report.examined += len(claims)
            for claim in claims:
                if await self._announcer.announce(claim):
                    report.recovered += 1
                else:
                    report.failed += 1

        if report.recovered or report.failed:
            logger.info(
                f"Event reconciliation: examined={report.examined} "
                f"published={report.recovered} failed={report.failed}"
            )
        return report

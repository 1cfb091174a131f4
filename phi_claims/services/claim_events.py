"""
ClaimCreated announcement.

Publishes the PHI-free ClaimCreated event for a committed claim with bounded
retries, then records the publish acknowledgment on the claim. Used by the
intake worker right after commit and by the event reconciler for claims
whose announcement never got through.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from phi_claims.api.config import Settings
from phi_claims.db.tenant_manager import TenantScopedStore
from phi_claims.schemas.messages import DomainEvent
from phi_claims.schemas.records import CanonicalClaim, utcnow
from phi_claims.services.messaging.events import EventBusPublisher
from phi_claims.utils.errors import PipelineError, TransientInfraError
from phi_claims.utils.logging import get_logger
from phi_claims.utils.retry import retry_async

logger = get_logger(__name__)


class ClaimAnnouncer:
    """Publishes ClaimCreated and records the acknowledgment."""

    def __init__(
        self,
        settings: Settings,
        store: TenantScopedStore,
        event_bus: EventBusPublisher,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self._settings = settings
        self._store = store
        self._event_bus = event_bus
        self._sleep = sleep

    async def announce(self, claim: CanonicalClaim) -> bool:
        """
        Publish ClaimCreated for ``claim``.

        Returns:
            True once the bus accepted the event, False if every attempt failed.
            A committed claim is never rolled back for a failed announcement.
        """
        event = DomainEvent.claim_created(
            claim, source=self._settings.EVENT_SOURCE, timestamp=claim.created_at
        )
        bus_name = self._settings.EVENT_BUS_NAME
        retry_kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep

        try:
            await retry_async(
                lambda: self._event_bus.publish(bus_name, event),
                max_attempts=self._settings.EVENT_PUBLISH_MAX_ATTEMPTS,
                delay=self._settings.EVENT_PUBLISH_BACKOFF_SECONDS,
                exceptions=(TransientInfraError,),
                operation=f"publish ClaimCreated {claim.claim_ref_id}",
                **retry_kwargs,
            )
        except TransientInfraError as e:
            logger.error(
                f"Delivery failure for ClaimCreated {claim.claim_ref_id}; "
                f"left for event reconciliation: {e}"
            )
            return False

        try:
            async with self._store.transaction(claim.tenant_id) as session:
                await session.mark_claim_published(claim.id, utcnow())
        except PipelineError as e:
            # The reconciler will publish again; consumers see at-least-once delivery
            logger.warning(f"Could not record publish of {claim.claim_ref_id}: {e}")

        logger.info(f"Published ClaimCreated {claim.claim_ref_id}")
        return True

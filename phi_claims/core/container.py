"""
Service wiring.

``build_container`` constructs every client explicitly from settings and
hands them to the services that use them. Nothing here is a module-level
singleton; the API app and the worker process each build their own
container.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

import boto3
from minio import Minio

from phi_claims.api.config import Settings
from phi_claims.core.enums import IntegrationMode
from phi_claims.db.connection import create_engine
from phi_claims.db.memory_store import MemoryTenantScopedStore
from phi_claims.db.tenant_manager import SQLTenantScopedStore, TenantScopedStore
from phi_claims.services.claim_events import ClaimAnnouncer
from phi_claims.services.identity_service import IdentityResolver
from phi_claims.services.intake_service import IntakeService
from phi_claims.services.messaging.events import (
    EventBridgePublisher,
    EventBusPublisher,
    InMemoryEventBus,
)
from phi_claims.services.messaging.queue import DurableQueue, InMemoryQueue, SQSQueue
from phi_claims.services.reconciliation import EventReconciler, PendingIntakeSweeper
from phi_claims.services.storage import InMemoryObjectStore, MinioObjectStore, ObjectStore
from phi_claims.utils.logging import get_logger
from phi_claims.workers.intake_worker import IntakeWorker

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Clients and services for one process."""

    settings: Settings
    store: TenantScopedStore
    queue: DurableQueue
    dead_letter_queue: Optional[DurableQueue]
    event_bus: EventBusPublisher
    object_store: ObjectStore
    identity_resolver: IdentityResolver
    announcer: ClaimAnnouncer
    intake_service: IntakeService

    def intake_worker(self) -> IntakeWorker:
        return IntakeWorker(
            self.settings,
            self.store,
            self.queue,
            self.identity_resolver,
            self.announcer,
            dead_letter_queue=self.dead_letter_queue,
        )

    def pending_sweeper(self) -> PendingIntakeSweeper:
        return PendingIntakeSweeper(self.settings, self.store, self.queue)

    def event_reconciler(self) -> EventReconciler:
        return EventReconciler(self.settings, self.store, self.announcer)

    async def close(self) -> None:
        await self.store.close()


def _build_live_clients(
    settings: Settings,
) -> tuple[TenantScopedStore, DurableQueue, Optional[DurableQueue], EventBusPublisher, ObjectStore]:
    store = SQLTenantScopedStore(create_engine(settings))

    sqs = boto3.client("sqs", region_name=settings.AWS_REGION)
    queue = SQSQueue(sqs, settings.SQS_QUEUE_URL)
    dead_letter_queue = (
        SQSQueue(sqs, settings.DEAD_LETTER_QUEUE_URL) if settings.DEAD_LETTER_QUEUE_URL else None
    )

    event_bus = EventBridgePublisher(boto3.client("events", region_name=settings.AWS_REGION))

    minio_client = Minio(
        settings.OBJECT_STORE_ENDPOINT,
        access_key=settings.OBJECT_STORE_ACCESS_KEY,
        secret_key=settings.OBJECT_STORE_SECRET_KEY,
        secure=settings.OBJECT_STORE_SECURE,
        region=settings.AWS_REGION,
    )
    object_store = MinioObjectStore(minio_client)
    return store, queue, dead_letter_queue, event_bus, object_store


def build_container(
    settings: Settings,
    clock: Callable[[], float] = time.monotonic,
) -> ServiceContainer:
    """
    Build the clients and services for the configured integration mode.

    Args:
        settings: Application settings
        clock: Time source for the in-memory queue (demo mode only)
    """
    if settings.INTEGRATION_MODE == IntegrationMode.LIVE:
        store, queue, dead_letter_queue, event_bus, object_store = _build_live_clients(settings)
    else:
        store = MemoryTenantScopedStore()
        queue = InMemoryQueue(clock=clock)
        dead_letter_queue = InMemoryQueue(clock=clock, name="dead-letter")
        event_bus = InMemoryEventBus()
        object_store = InMemoryObjectStore()

    logger.info(f"Built service container (mode={settings.INTEGRATION_MODE.value})")

    resolver = IdentityResolver(store)
    announcer = ClaimAnnouncer(settings, store, event_bus)
    return ServiceContainer(
        settings=settings,
        store=store,
        queue=queue,
        dead_letter_queue=dead_letter_queue,
        event_bus=event_bus,
        object_store=object_store,
        identity_resolver=resolver,
        announcer=announcer,
        intake_service=IntakeService(settings, store, queue, object_store),
    )

"""Queue and event bus adapters."""

from phi_claims.services.messaging.events import (
    EventBridgePublisher,
    EventBusPublisher,
    InMemoryEventBus,
)
from phi_claims.services.messaging.queue import (
    DurableQueue,
    InMemoryQueue,
    QueueMessage,
    SQSQueue,
)

__all__ = [
    "DurableQueue",
    "QueueMessage",
    "SQSQueue",
    "InMemoryQueue",
    "EventBusPublisher",
    "EventBridgePublisher",
    "InMemoryEventBus",
]

"""
Event Bus Publishers
Source: https://docs.aws.amazon.com/eventbridge/latest/APIReference/API_PutEvents.html
Verified: 2026-10-01

Every event passes through the redaction boundary before it leaves the
process, whichever backend is configured.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from anyio import to_thread
from botocore.exceptions import BotoCoreError, ClientError

from phi_claims.schemas.messages import DomainEvent
from phi_claims.utils.errors import TransientInfraError
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

# PutEvents accepts at most ten entries per call
EVENTBRIDGE_MAX_BATCH = 10


class EventBusPublisher(ABC):
    """Publishes domain events to a named bus."""

    async def publish(self, bus_name: str, event: DomainEvent) -> None:
        """Publish one redacted event.

        Raises:
            TransientInfraError: If the bus rejects or cannot accept the event
        """
        await self._send(bus_name, [event.redacted()])

    async def publish_batch(self, bus_name: str, events: Sequence[DomainEvent]) -> None:
        """Publish several redacted events, chunked to the bus batch limit."""
        safe = [event.redacted() for event in events]
        for start in range(0, len(safe), EVENTBRIDGE_MAX_BATCH):
            await self._send(bus_name, safe[start : start + EVENTBRIDGE_MAX_BATCH])

    @abstractmethod
    async def _send(self, bus_name: str, events: list[DomainEvent]) -> None:
        """Deliver already-redacted events."""


class EventBridgePublisher(EventBusPublisher):
    """Amazon EventBridge publisher over a blocking boto3 client."""

    def __init__(self, client: Any):
        self._client = client

    async def _send(self, bus_name: str, events: list[DomainEvent]) -> None:
        entries = [event.to_entry(bus_name) for event in events]
        try:
            response = await to_thread.run_sync(lambda: self._client.put_events(Entries=entries))
        except (BotoCoreError, ClientError) as e:
            logger.error(f"EventBridge put_events failed: {e}")
            raise TransientInfraError("Event bus unavailable", original_error=e) from e

        failed = response.get("FailedEntryCount", 0)
        if failed:
            codes = {
                entry.get("ErrorCode")
                for entry in response.get("Entries", [])
                if entry.get("ErrorCode")
            }
            raise TransientInfraError(
                f"EventBridge rejected {failed} of {len(entries)} entries: {sorted(codes)}"
            )
        logger.debug(f"Published {len(entries)} event(s) to {bus_name}")


class InMemoryEventBus(EventBusPublisher):
    """
    Records published events per bus.

    ``fail_times`` makes the next N sends raise ``TransientInfraError``;
    set it to a negative number to fail every send.
    """

    def __init__(self) -> None:
        self.published: list[tuple[str, DomainEvent]] = []
        self.attempts = 0
        self.fail_times = 0

    def events_for(self, bus_name: str) -> list[DomainEvent]:
        return [event for bus, event in self.published if bus == bus_name]

    async def _send(self, bus_name: str, events: list[DomainEvent]) -> None:
        self.attempts += 1
        if self.fail_times:
            if self.fail_times > 0:
                self.fail_times -= 1
            raise TransientInfraError("Event bus unavailable")
        self.published.extend((bus_name, event) for event in events)

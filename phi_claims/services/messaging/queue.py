"""
Durable Queue Adapters
Source: https://docs.aws.amazon.com/AWSSimpleQueueService/latest/SQSDeveloperGuide/sqs-visibility-timeout.html
Verified: 2026-10-01

At-least-once delivery with a visibility timeout: a received message is
hidden until it is acknowledged or the timeout passes, after which it is
delivered again with a fresh receipt handle and a higher receive count.
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from anyio import to_thread
from botocore.exceptions import BotoCoreError, ClientError

from phi_claims.utils.errors import TransientInfraError
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

# SQS rejects batches larger than ten entries
SQS_MAX_BATCH = 10


@dataclass(frozen=True)
class QueueMessage:
    """A delivered message and the handle needed to acknowledge it."""

    message_id: str
    body: str
    receipt_handle: str
    receive_count: int = 1


class DurableQueue(ABC):
    """Queue contract used by the ingest boundary and the worker."""

    @abstractmethod
    async def enqueue(self, body: str) -> str:
        """Send one message and return its message id."""

    async def enqueue_batch(self, bodies: Sequence[str]) -> list[str]:
        """Send several messages; returns their ids in order."""
        return [await self.enqueue(body) for body in bodies]

    @abstractmethod
    async def receive(
        self,
        max_messages: int,
        wait_seconds: int,
        visibility_timeout_seconds: int,
    ) -> list[QueueMessage]:
        """Receive up to ``max_messages``, waiting at most ``wait_seconds``."""

    @abstractmethod
    async def acknowledge(self, receipt_handle: str) -> bool:
        """Delete a received message. Returns False for a stale handle."""


# =============================================================================
# Amazon SQS
# =============================================================================


class SQSQueue(DurableQueue):
    """
    SQS-backed queue.

    The boto3 client is blocking, so every call runs in a worker thread.
    """

    def __init__(self, client: Any, queue_url: str):
        if not queue_url:
            raise ValueError("SQS queue URL is required")
        self._client = client
        self.queue_url = queue_url

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await to_thread.run_sync(lambda: method(**kwargs))
        except (BotoCoreError, ClientError) as e:
            logger.error(f"SQS {operation} failed: {e}")
            raise TransientInfraError(f"SQS {operation} failed", original_error=e) from e

    async def enqueue(self, body: str) -> str:
        response = await self._call("send_message", QueueUrl=self.queue_url, MessageBody=body)
        return response["MessageId"]

    async def enqueue_batch(self, bodies: Sequence[str]) -> list[str]:
        message_ids: list[str] = []
        for start in range(0, len(bodies), SQS_MAX_BATCH):
            chunk = bodies[start : start + SQS_MAX_BATCH]
            entries = [{"Id": str(i), "MessageBody": body} for i, body in enumerate(chunk)]
            response = await self._call(
                "send_message_batch", QueueUrl=self.queue_url, Entries=entries
            )
            failed = response.get("Failed") or []
            if failed:
                codes = ", ".join(f.get("Code", "unknown") for f in failed)
                raise TransientInfraError(f"SQS batch send rejected {len(failed)} entries: {codes}")
            by_id = {entry["Id"]: entry["MessageId"] for entry in response.get("Successful", [])}
            message_ids.extend(by_id[str(i)] for i in range(len(chunk)))
        return message_ids

    async def receive(
        self,
        max_messages: int,
        wait_seconds: int,
        visibility_timeout_seconds: int,
    ) -> list[QueueMessage]:
        response = await self._call(
            "receive_message",
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
            VisibilityTimeout=visibility_timeout_seconds,
            AttributeNames=["ApproximateReceiveCount"],
        )
        return [
            QueueMessage(
                message_id=m["MessageId"],
                body=m["Body"],
                receipt_handle=m["ReceiptHandle"],
                receive_count=int(m.get("Attributes", {}).get("ApproximateReceiveCount", 1)),
            )
            for m in response.get("Messages", [])
        ]

    async def acknowledge(self, receipt_handle: str) -> bool:
        try:
            await self._call(
                "delete_message", QueueUrl=self.queue_url, ReceiptHandle=receipt_handle
            )
        except TransientInfraError as e:
            original = e.original_error
            if isinstance(original, ClientError) and original.response.get("Error", {}).get(
                "Code"
            ) in ("ReceiptHandleIsInvalid", "AWS.SimpleQueueService.ReceiptHandleIsInvalid"):
                return False
            raise
        return True


# =============================================================================
# In-memory
# =============================================================================


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    visible_at: float
    receive_count: int = 0
    receipt_handle: Optional[str] = None


class InMemoryQueue(DurableQueue):
    """
    Process-local queue with SQS visibility semantics.

    ``clock`` returns seconds and drives visibility; tests pass a controllable
    clock to move time forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, name: str = "intake"):
        self._clock = clock
        self.name = name
        self._messages: dict[str, _StoredMessage] = {}
        self._arrival = asyncio.Event()
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise TransientInfraError(f"Queue {self.name} unavailable")

    @property
    def depth(self) -> int:
        """Messages not yet acknowledged, visible or in flight."""
        return len(self._messages)

    @property
    def bodies(self) -> list[str]:
        return [m.body for m in self._messages.values()]

    async def enqueue(self, body: str) -> str:
        self._check_available()
        message_id = str(uuid.uuid4())
        self._messages[message_id] = _StoredMessage(
            message_id=message_id, body=body, visible_at=self._clock()
        )
        self._arrival.set()
        return message_id

    def _take_visible(self, max_messages: int, visibility_timeout_seconds: int) -> list[QueueMessage]:
        now = self._clock()
        delivered: list[QueueMessage] = []
        for stored in self._messages.values():
            if len(delivered) >= max_messages:
                break
            if stored.visible_at > now:
                continue
            stored.receive_count += 1
            stored.receipt_handle = uuid.uuid4().hex
            stored.visible_at = now + visibility_timeout_seconds
            delivered.append(
                QueueMessage(
                    message_id=stored.message_id,
                    body=stored.body,
                    receipt_handle=stored.receipt_handle,
                    receive_count=stored.receive_count,
                )
            )
        return delivered

    async def receive(
        self,
        max_messages: int,
        wait_seconds: int,
        visibility_timeout_seconds: int,
    ) -> list[QueueMessage]:
        self._check_available()
        delivered = self._take_visible(max_messages, visibility_timeout_seconds)
        if delivered or wait_seconds <= 0:
            return delivered

        self._arrival.clear()
        try:
            await asyncio.wait_for(self._arrival.wait(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            pass
        return self._take_visible(max_messages, visibility_timeout_seconds)

    async def acknowledge(self, receipt_handle: str) -> bool:
        self._check_available()
        for message_id, stored in self._messages.items():
            if stored.receipt_handle == receipt_handle:
                del self._messages[message_id]
                return True
        return False

"""
Unit Tests for the durable queue adapters.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from phi_claims.services.messaging.queue import InMemoryQueue, SQSQueue
from phi_claims.utils.errors import TransientInfraError
from tests.helpers import FakeClock


@pytest.mark.unit
class TestInMemoryQueueVisibility:
    """Received messages are hidden until acknowledged or timed out."""

    @pytest.mark.asyncio
    async def test_received_message_is_hidden_until_timeout(self):
        clock = FakeClock()
        queue = InMemoryQueue(clock=clock)
        await queue.enqueue('{"n": 1}')

        first = await queue.receive(1, 0, visibility_timeout_seconds=30)
        assert len(first) == 1
        assert first[0].receive_count == 1

        clock.advance(29)
        assert await queue.receive(1, 0, visibility_timeout_seconds=30) == []

        clock.advance(2)
        second = await queue.receive(1, 0, visibility_timeout_seconds=30)
        assert len(second) == 1
        assert second[0].message_id == first[0].message_id
        assert second[0].receive_count == 2
        assert second[0].receipt_handle != first[0].receipt_handle

    @pytest.mark.asyncio
    async def test_stale_receipt_handle_does_not_delete(self):
        clock = FakeClock()
        queue = InMemoryQueue(clock=clock)
        await queue.enqueue("body")

        stale = (await queue.receive(1, 0, 10))[0]
        clock.advance(11)
        current = (await queue.receive(1, 0, 10))[0]

        assert await queue.acknowledge(stale.receipt_handle) is False
        assert queue.depth == 1
        assert await queue.acknowledge(current.receipt_handle) is True
        assert queue.depth == 0

    @pytest.mark.asyncio
    async def test_acknowledged_message_is_never_redelivered(self):
        clock = FakeClock()
        queue = InMemoryQueue(clock=clock)
        await queue.enqueue("body")
        message = (await queue.receive(1, 0, 10))[0]
        assert await queue.acknowledge(message.receipt_handle) is True

        clock.advance(60)
        assert await queue.receive(1, 0, 10) == []

    @pytest.mark.asyncio
    async def test_receive_respects_max_messages(self):
        queue = InMemoryQueue(clock=FakeClock())
        ids = await queue.enqueue_batch(["a", "b", "c"])
        assert len(ids) == 3

        batch = await queue.receive(2, 0, 10)
        assert [m.body for m in batch] == ["a", "b"]
        rest = await queue.receive(10, 0, 10)
        assert [m.body for m in rest] == ["c"]

    @pytest.mark.asyncio
    async def test_unavailable_queue_raises_transient_error(self):
        queue = InMemoryQueue(clock=FakeClock())
        queue.available = False
        with pytest.raises(TransientInfraError):
            await queue.enqueue("body")
        with pytest.raises(TransientInfraError):
            await queue.receive(1, 0, 10)


@pytest.mark.unit
class TestSQSQueue:
    """SQS adapter over a mocked boto3 client."""

    QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/claims-intake"

    @pytest.mark.asyncio
    async def test_receive_maps_messages_and_receive_count(self):
        client = MagicMock()
        client.receive_message.return_value = {
            "Messages": [
                {
                    "MessageId": "m-1",
                    "Body": "{}",
                    "ReceiptHandle": "rh-1",
                    "Attributes": {"ApproximateReceiveCount": "3"},
                }
            ]
        }
        queue = SQSQueue(client, self.QUEUE_URL)

        messages = await queue.receive(5, 20, 60)

        assert len(messages) == 1
        assert messages[0].receipt_handle == "rh-1"
        assert messages[0].receive_count == 3
        client.receive_message.assert_called_once_with(
            QueueUrl=self.QUEUE_URL,
            MaxNumberOfMessages=5,
            WaitTimeSeconds=20,
            VisibilityTimeout=60,
            AttributeNames=["ApproximateReceiveCount"],
        )

    @pytest.mark.asyncio
    async def test_enqueue_returns_message_id(self):
        client = MagicMock()
        client.send_message.return_value = {"MessageId": "m-9"}
        queue = SQSQueue(client, self.QUEUE_URL)

        assert await queue.enqueue('{"intake_id": "x"}') == "m-9"

    @pytest.mark.asyncio
    async def test_enqueue_batch_chunks_by_ten(self):
        client = MagicMock()

        def send_batch(QueueUrl, Entries):
            return {
                "Successful": [{"Id": e["Id"], "MessageId": f"id-{e['MessageBody']}"} for e in Entries],
                "Failed": [],
            }

        client.send_message_batch.side_effect = send_batch
        queue = SQSQueue(client, self.QUEUE_URL)

        ids = await queue.enqueue_batch([str(i) for i in range(12)])

        assert ids == [f"id-{i}" for i in range(12)]
        assert client.send_message_batch.call_count == 2

    @pytest.mark.asyncio
    async def test_client_errors_become_transient(self):
        client = MagicMock()
        client.send_message.side_effect = EndpointConnectionError(endpoint_url="https://sqs")
        queue = SQSQueue(client, self.QUEUE_URL)

        with pytest.raises(TransientInfraError):
            await queue.enqueue("body")

    @pytest.mark.asyncio
    async def test_invalid_receipt_handle_returns_false(self):
        client = MagicMock()
        client.delete_message.side_effect = ClientError(
            {"Error": {"Code": "ReceiptHandleIsInvalid", "Message": "stale"}}, "DeleteMessage"
        )
        queue = SQSQueue(client, self.QUEUE_URL)

        assert await queue.acknowledge("rh-old") is False

    def test_queue_url_is_required(self):
        with pytest.raises(ValueError):
            SQSQueue(MagicMock(), "")

"""
Unit Tests for event bus publishers.
"""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from phi_claims.schemas.messages import DomainEvent
from phi_claims.services.messaging.events import EventBridgePublisher, InMemoryEventBus
from phi_claims.utils.errors import TransientInfraError


def _event(**detail) -> DomainEvent:
    return DomainEvent(source="advancia.phi.claims", detail_type="ClaimCreated", detail=detail)


@pytest.mark.unit
class TestEventBridgePublisher:
    """EventBridge adapter over a mocked boto3 client."""

    @pytest.mark.asyncio
    async def test_publish_sends_redacted_entry(self):
        client = MagicMock()
        client.put_events.return_value = {"FailedEntryCount": 0, "Entries": [{"EventId": "e"}]}
        publisher = EventBridgePublisher(client)

        await publisher.publish("health-events-bus", _event(claim_ref_id="clm_1", ssn="123-45-6789"))

        [entry] = client.put_events.call_args.kwargs["Entries"]
        assert entry["EventBusName"] == "health-events-bus"
        assert entry["Source"] == "advancia.phi.claims"
        assert json.loads(entry["Detail"]) == {"claim_ref_id": "clm_1", "ssn": "[REDACTED]"}

    @pytest.mark.asyncio
    async def test_failed_entries_are_transient(self):
        client = MagicMock()
        client.put_events.return_value = {
            "FailedEntryCount": 1,
            "Entries": [{"ErrorCode": "InternalFailure", "ErrorMessage": "try again"}],
        }
        publisher = EventBridgePublisher(client)

        with pytest.raises(TransientInfraError):
            await publisher.publish("bus", _event(claim_ref_id="clm_1"))

    @pytest.mark.asyncio
    async def test_connection_errors_are_transient(self):
        client = MagicMock()
        client.put_events.side_effect = EndpointConnectionError(endpoint_url="https://events")
        publisher = EventBridgePublisher(client)

        with pytest.raises(TransientInfraError):
            await publisher.publish("bus", _event(claim_ref_id="clm_1"))

    @pytest.mark.asyncio
    async def test_publish_batch_chunks_by_ten(self):
        client = MagicMock()
        client.put_events.return_value = {"FailedEntryCount": 0, "Entries": []}
        publisher = EventBridgePublisher(client)

        await publisher.publish_batch("bus", [_event(n=i) for i in range(23)])

        sizes = [len(call.kwargs["Entries"]) for call in client.put_events.call_args_list]
        assert sizes == [10, 10, 3]


@pytest.mark.unit
class TestInMemoryEventBus:
    """Recording bus used in demo mode."""

    @pytest.mark.asyncio
    async def test_records_redacted_events_per_bus(self):
        bus = InMemoryEventBus()
        await bus.publish("a", _event(first_name="Jane", claim_ref_id="clm_1"))
        await bus.publish("b", _event(claim_ref_id="clm_2"))

        [event] = bus.events_for("a")
        assert event.detail == {"first_name": "[REDACTED]", "claim_ref_id": "clm_1"}
        assert len(bus.events_for("b")) == 1

    @pytest.mark.asyncio
    async def test_fail_times_counts_down(self):
        bus = InMemoryEventBus()
        bus.fail_times = 2
        for _ in range(2):
            with pytest.raises(TransientInfraError):
                await bus.publish("a", _event())
        await bus.publish("a", _event())
        assert bus.attempts == 3
        assert len(bus.events_for("a")) == 1

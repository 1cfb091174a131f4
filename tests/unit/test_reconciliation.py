"""
Unit Tests for the reconciliation jobs.
"""

import json
import uuid
from dataclasses import replace
from datetime import timedelta

import pytest

from phi_claims.core.enums import IntakeStatus, MessageOutcome
from phi_claims.schemas.messages import IntakeMessage
from tests.helpers import make_intake, seed_intake


@pytest.mark.unit
class TestPendingIntakeSweeper:
    """Stale pending intakes are re-enqueued."""

    @pytest.mark.asyncio
    async def test_only_stale_pending_intakes_are_reenqueued(self, container, settings):
        stale_a = str(uuid.uuid4())
        stale_b = str(uuid.uuid4())
        fresh = str(uuid.uuid4())
        done = str(uuid.uuid4())
        age = settings.INTAKE_RECONCILE_AFTER_SECONDS + 60
        await seed_intake(container, make_intake("tenant-a", stale_a, age_seconds=age))
        await seed_intake(container, make_intake("tenant-b", stale_b, age_seconds=age))
        await seed_intake(container, make_intake("tenant-a", fresh, age_seconds=5))
        await seed_intake(
            container,
            make_intake("tenant-a", done, age_seconds=age, status=IntakeStatus.VALIDATED),
        )

        report = await container.pending_sweeper().sweep()

        assert report.recovered == 2
        queued = {(m["tenant_id"], m["intake_id"]) for m in map(json.loads, container.queue.bodies)}
        assert queued == {("tenant-a", stale_a), ("tenant-b", stale_b)}

    @pytest.mark.asyncio
    async def test_reenqueued_intake_is_processed(self, container, worker, settings):
        intake_id = str(uuid.uuid4())
        age = settings.INTAKE_RECONCILE_AFTER_SECONDS + 1
        await seed_intake(container, make_intake("tenant-a", intake_id, age_seconds=age))

        await container.pending_sweeper().sweep()
        await worker.run_once()

        assert container.store.intakes[("tenant-a", intake_id)].status == IntakeStatus.VALIDATED

    @pytest.mark.asyncio
    async def test_dead_lettered_intake_is_not_swept_again(
        self, container, worker, clock, settings, monkeypatch
    ):
        intake_id = str(uuid.uuid4())
        age = settings.INTAKE_RECONCILE_AFTER_SECONDS + 1
        await seed_intake(container, make_intake("tenant-a", intake_id, age_seconds=age))

        async def always_fails(session, patient_ref_id):
            raise RuntimeError("identity lookup crashed")

        monkeypatch.setattr(container.identity_resolver, "link_reference", always_fails)

        await container.pending_sweeper().sweep()
        outcomes = []
        for _ in range(settings.MAX_RECEIVE_COUNT):
            outcomes.extend(await worker.run_once())
            clock.advance(settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS + 1)

        assert outcomes[-1] == MessageOutcome.DEAD_LETTERED
        intake = container.store.intakes[("tenant-a", intake_id)]
        assert intake.status == IntakeStatus.FAILED
        assert "Dead-lettered" in intake.failure_reason

        report = await container.pending_sweeper().sweep()

        assert report.recovered == 0
        assert container.queue.depth == 0
        assert len(container.dead_letter_queue.bodies) == 1

    @pytest.mark.asyncio
    async def test_queue_outage_is_reported_not_raised(self, container, settings):
        age = settings.INTAKE_RECONCILE_AFTER_SECONDS + 1
        await seed_intake(container, make_intake("tenant-a", str(uuid.uuid4()), age_seconds=age))
        container.queue.available = False

        report = await container.pending_sweeper().sweep()

        assert report.recovered == 0
        assert report.failed == 1


@pytest.mark.unit
class TestEventReconciler:
    """Claims without a publish acknowledgment are announced again."""

    async def _claim_with_failed_publish(self, container, worker, age_seconds: int):
        intake_id = str(uuid.uuid4())
        await seed_intake(container, make_intake("tenant-a", intake_id))
        container.event_bus.fail_times = -1
        await worker.process(IntakeMessage(intake_id=intake_id, tenant_id="tenant-a"))
        container.event_bus.fail_times = 0

        [claim] = [c for c in container.store.claims.values() if c.intake_id == intake_id]
        backdated = replace(claim, created_at=claim.created_at - timedelta(seconds=age_seconds))
        container.store.claims[claim.id] = backdated
        return backdated

    @pytest.mark.asyncio
    async def test_unpublished_claim_is_republished_once(self, container, worker, settings):
        claim = await self._claim_with_failed_publish(
            container, worker, settings.EVENT_RECONCILE_AFTER_SECONDS + 30
        )

        first = await container.event_reconciler().reconcile()
        second = await container.event_reconciler().reconcile()

        assert first.recovered == 1
        assert second.examined == 0
        [event] = container.event_bus.events_for(settings.EVENT_BUS_NAME)
        assert event.detail["claim_ref_id"] == claim.claim_ref_id
        assert container.store.claims[claim.id].event_published_at is not None

    @pytest.mark.asyncio
    async def test_recent_claims_are_left_alone(self, container, worker, settings):
        await self._claim_with_failed_publish(container, worker, 0)

        report = await container.event_reconciler().reconcile()

        assert report.examined == 0
        assert container.event_bus.events_for(settings.EVENT_BUS_NAME) == []

    @pytest.mark.asyncio
    async def test_bus_outage_counts_as_failed(self, container, worker, settings):
        await self._claim_with_failed_publish(
            container, worker, settings.EVENT_RECONCILE_AFTER_SECONDS + 30
        )
        container.event_bus.fail_times = -1

        report = await container.event_reconciler().reconcile()

        assert report.failed == 1
        assert report.recovered == 0

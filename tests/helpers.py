"""Test helpers shared across test packages."""

from datetime import timedelta
from typing import Any

from phi_claims.core.container import ServiceContainer
from phi_claims.schemas.records import IntakeRecord, utcnow


class FakeClock:
    """Controllable monotonic clock for the in-memory queue."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_intake(
    tenant_id: str,
    intake_id: str,
    payload: dict[str, Any] | None = None,
    age_seconds: float = 0,
    **overrides: Any,
) -> IntakeRecord:
    """Build a pending intake record, optionally back-dated."""
    created = utcnow() - timedelta(seconds=age_seconds)
    fields: dict[str, Any] = {
        "id": intake_id,
        "tenant_id": tenant_id,
        "raw_payload": payload if payload is not None else {"service_date": "2026-09-30"},
        "service_date": utcnow().date(),
        "patient_ref_id": "ref-1",
        "created_at": created,
        "updated_at": created,
    }
    fields.update(overrides)
    return IntakeRecord(**fields)


async def seed_intake(container: ServiceContainer, intake: IntakeRecord) -> None:
    """Commit an intake and register its tenant."""
    async with container.store.transaction(intake.tenant_id) as session:
        await session.ensure_tenant()
        await session.add_intake(intake)

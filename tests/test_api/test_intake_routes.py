"""
Intake Routes Tests.
End-to-end coverage: HTTP ingest, worker processing, status lookup.
"""

import asyncio
import base64

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from phi_claims.api.main import create_app
from phi_claims.core.enums import MessageOutcome


@pytest.fixture
def client(container):
    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client


def _drain(worker) -> list[MessageOutcome]:
    return asyncio.run(worker.run_once())


@pytest.mark.api
class TestIntakeEndToEnd:
    """Submit, process, observe."""

    def test_submit_process_and_status(self, client, container, worker, settings):
        response = client.post(
            "/claims/intake",
            json={
                "tenant_id": "t1",
                "patient_ref_id": "ref-1",
                "raw_payload": {"service_date": "2026-09-30"},
            },
        )
        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["status"] == "pending"
        intake_id = body["intake_id"]

        assert _drain(worker) == [MessageOutcome.CLAIM_CREATED]

        status_response = client.get(f"/claims/intake/{intake_id}", headers={"X-Tenant-ID": "t1"})
        assert status_response.status_code == status.HTTP_200_OK
        assert status_response.json()["status"] == "validated"
        assert status_response.json()["intake_id"] == intake_id

        claims = [c for c in container.store.claims.values() if c.intake_id == intake_id]
        assert len(claims) == 1

        [event] = container.event_bus.events_for(settings.EVENT_BUS_NAME)
        assert event.to_dict()["detailType"] == "ClaimCreated"
        assert event.detail["claim_ref_id"] == claims[0].claim_ref_id
        assert event.detail["tenant_id"] == "t1"

    def test_status_is_hidden_from_other_tenants(self, client):
        intake_id = client.post(
            "/claims/intake",
            json={"tenant_id": "t1", "patient_ref_id": "ref-1", "raw_payload": {"service_date": "2026-09-30"}},
        ).json()["intake_id"]

        response = client.get(f"/claims/intake/{intake_id}", headers={"X-Tenant-ID": "t2"})
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_tenant_header_is_accepted_on_submit(self, client, container):
        response = client.post(
            "/claims/intake",
            headers={"X-Tenant-ID": "t9"},
            json={"patient_ref_id": "ref-1", "raw_payload": {"service_date": "2026-09-30"}},
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert ("t9", response.json()["intake_id"]) in container.store.intakes


@pytest.mark.api
class TestIntakeErrors:
    """Caller errors and infrastructure failures."""

    def test_malformed_body_is_422_without_echo(self, client):
        response = client.post(
            "/claims/intake", json={"tenant_id": "t1", "ssn": "123-45-6789", "raw_payload": "x"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "123-45-6789" not in response.text
        assert "input" not in response.json()["errors"][0]

    def test_domain_validation_is_422(self, client):
        response = client.post(
            "/claims/intake",
            json={"tenant_id": "t1", "raw_payload": {"service_date": "2026-09-30"}},
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["detail"] == "Invalid intake request"

    def test_store_outage_is_generic_500(self, client, container):
        container.store.available = False
        response = client.post(
            "/claims/intake",
            json={"tenant_id": "t1", "patient_ref_id": "ref-1", "raw_payload": {"service_date": "2026-09-30"}},
        )
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"detail": "Failed to record intake"}

    def test_status_store_outage_is_503(self, client, container):
        container.store.available = False
        response = client.get("/claims/intake/abc", headers={"X-Tenant-ID": "t1"})
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    def test_status_without_tenant_header_is_422(self, client):
        response = client.get("/claims/intake/abc")
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.api
class TestInsuranceCardRoute:
    """Presigned card downloads."""

    def test_card_url_round_trip(self, client, settings):
        card = {"image_base64": base64.b64encode(b"card").decode(), "content_type": "image/jpeg"}
        intake_id = client.post(
            "/claims/intake",
            json={
                "tenant_id": "t1",
                "patient_ref_id": "ref-1",
                "insurance_card": card,
                "raw_payload": {"service_date": "2026-09-30"},
            },
        ).json()["intake_id"]

        response = client.get(
            f"/claims/intake/{intake_id}/insurance-card", headers={"X-Tenant-ID": "t1"}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["expires_in"] == settings.PRESIGN_TTL_SECONDS

        other = client.get(
            f"/claims/intake/{intake_id}/insurance-card", headers={"X-Tenant-ID": "t2"}
        )
        assert other.status_code == status.HTTP_404_NOT_FOUND

"""
Patient Link Routes Tests.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from phi_claims.api.main import create_app


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.mark.api
class TestPatientLink:
    """POST /patients/link returns only the opaque reference."""

    def test_create_then_match(self, client):
        body = {"tenant_id": "t1", "first_name": "Jane", "last_name": "Doe", "dob": "1980-04-12"}

        created = client.post("/patients/link", json=body)
        matched = client.post("/patients/link", json={**body, "first_name": " JANE "})

        assert created.status_code == status.HTTP_201_CREATED
        assert matched.status_code == status.HTTP_200_OK
        assert created.json()["created"] is True
        assert matched.json() == {"patient_ref_id": created.json()["patient_ref_id"], "created": False}
        assert set(created.json()) == {"patient_ref_id", "created"}

    def test_tenant_user_id_alias(self, client):
        response = client.post(
            "/patients/link",
            json={"tenant_user_id": "t1", "first_name": "A", "last_name": "B", "dob": "2000-01-01"},
        )
        assert response.status_code == status.HTTP_201_CREATED

    def test_invalid_dob_is_422(self, client):
        response = client.post(
            "/patients/link",
            json={"tenant_id": "t1", "first_name": "A", "last_name": "B", "dob": "01/02/2000"},
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "01/02/2000" not in response.text

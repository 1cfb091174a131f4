"""
Health Routes Tests.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from phi_claims.api.main import create_app


@pytest.mark.api
class TestHealthEndpoints:
    def test_health(self, container, settings):
        with TestClient(create_app(container)) as client:
            response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok", "service": settings.SERVICE_NAME}

    def test_detailed_health_reports_store(self, container):
        with TestClient(create_app(container)) as client:
            healthy = client.get("/health/detailed").json()
            container.store.available = False
            degraded = client.get("/health/detailed").json()

        assert healthy["checks"]["database"] == "healthy"
        assert degraded["status"] == "degraded"
        assert degraded["checks"]["database"] == "unhealthy"

"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from typing import Any

import pytest

from phi_claims.api.config import Settings
from phi_claims.core.container import ServiceContainer, build_container
from tests.helpers import FakeClock


@pytest.fixture
def settings() -> Settings:
    """Testing settings with demo integrations and no real waits."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        INTEGRATION_MODE="demo",
        QUEUE_WAIT_SECONDS=0,
        QUEUE_VISIBILITY_TIMEOUT_SECONDS=30,
        QUEUE_MAX_MESSAGES=10,
        WORKER_CONCURRENCY=4,
        MAX_RECEIVE_COUNT=3,
        EVENT_PUBLISH_MAX_ATTEMPTS=3,
        EVENT_PUBLISH_BACKOFF_SECONDS=0,
        POLL_ERROR_BACKOFF_SECONDS=1.0,
        POLL_ERROR_BACKOFF_MAX_SECONDS=8.0,
        INTAKE_RECONCILE_AFTER_SECONDS=300,
        EVENT_RECONCILE_AFTER_SECONDS=120,
        EVENT_BUS_NAME="health-events-bus",
        PHI_BUCKET="phi-test-bucket",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def container(settings: Settings, clock: FakeClock) -> ServiceContainer:
    """Demo-mode container sharing the fake clock."""
    return build_container(settings, clock=clock)


@pytest.fixture
def worker(container: ServiceContainer):
    return container.intake_worker()


@pytest.fixture
def demographics_payload() -> dict[str, Any]:
    """Raw payload carrying demographics and billing data."""
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "dob": "1980-04-12",
        "gender": "F",
        "service_date": "2026-09-30",
        "payer_code": "AETNA",
        "diagnosis_codes": ["E11.9"],
        "procedure_codes": ["99213"],
        "amount_billed": 12500,
    }


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "security: mark test as security-related")

"""
Component Test Layer Configuration

Services are built with in-memory mocks; no database, NATS or network.

Usage:
    pytest tests/component -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from core.config import FreightConfig  # noqa: E402
from tests.component.mocks import (  # noqa: E402
    FakeGeocoder,
    MockEventBus,
    MockPositionRepository,
    MockPostgresClient,
    MockShipmentRepository,
)


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "component: marks tests as component tests")


@pytest.fixture
def mock_db() -> MockPostgresClient:
    """Mock PostgreSQL client"""
    return MockPostgresClient()


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_shipment_repo() -> MockShipmentRepository:
    return MockShipmentRepository()


@pytest.fixture
def mock_position_repo() -> MockPositionRepository:
    return MockPositionRepository()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    """Geocoder that knows nothing (every lookup fails)"""
    return FakeGeocoder()


@pytest.fixture
def freight_config() -> FreightConfig:
    return FreightConfig(public_base_url="https://app.braticargas.com.br")

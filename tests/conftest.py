"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - component/  : Component tests (mocked dependencies, in-process API)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys
from datetime import datetime, timezone
from typing import Dict, List

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.fixtures import (  # noqa: E402
    FIXED_NOW,
    make_create_request,
    make_fix,
    make_route_point,
    make_shipment,
    make_tracked_shipment,
)


# =============================================================================
# Test Configuration
# =============================================================================

class TestConfig:
    """Centralized test configuration"""

    SERVICES = {
        "shipment_service": 8240,
        "tracking_service": 8241,
    }

    POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT = int(os.getenv("POSTGRES_PORT", "5432"))
    NATS_URL = os.getenv("NATS_URL", "nats://localhost:4222")

    @classmethod
    def get_service_url(cls, service_name: str) -> str:
        port = cls.SERVICES.get(service_name)
        if not port:
            raise ValueError(f"Unknown service: {service_name}")
        return f"http://localhost:{port}"


@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    """Provide test configuration"""
    return TestConfig()


@pytest.fixture
def fixed_now() -> datetime:
    """Frozen 'now' shared by clock-driven tests"""
    return FIXED_NOW


@pytest.fixture
def clock(fixed_now):
    """Injectable clock returning fixed_now"""
    return lambda: fixed_now


# =============================================================================
# Assertion Helpers
# =============================================================================

class AssertionHelpers:
    """Custom assertion helpers for tests"""

    @staticmethod
    def assert_http_success(response, expected_status: int = 200):
        """Assert HTTP response is successful"""
        assert response.status_code == expected_status, \
            f"Expected {expected_status}, got {response.status_code}: {response.text}"

    @staticmethod
    def assert_has_fields(data: Dict, fields: List[str]):
        """Assert dict has required fields"""
        missing = [f for f in fields if f not in data]
        assert not missing, f"Missing fields: {missing}"

    @staticmethod
    def assert_event_published(events: List[Dict], event_type: str, **kwargs):
        """Assert an event was published with expected data"""
        matching = [e for e in events if e.get("type") == event_type]
        assert matching, f"Event '{event_type}' not found in {events}"

        if kwargs:
            for event in matching:
                if all(event.get("data", {}).get(k) == v for k, v in kwargs.items()):
                    return event
            assert False, f"No event matched criteria: {kwargs}"

        return matching[0]


@pytest.fixture
def assertions() -> AssertionHelpers:
    """Provide assertion helpers"""
    return AssertionHelpers()


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: In-process HTTP tests")

"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (database, NATS, geocoding,
device geolocation).
"""

from .db_mock import MockPostgresClient
from .geolocation_mock import FakeGeolocation, FakeTrackingApi
from .nats_mock import MockEventBus
from .position_repository_mock import MockPositionRepository
from .shipment_repository_mock import FakeGeocoder, MockShipmentRepository

__all__ = [
    'FakeGeocoder',
    'FakeGeolocation',
    'FakeTrackingApi',
    'MockEventBus',
    'MockPositionRepository',
    'MockPostgresClient',
    'MockShipmentRepository',
]

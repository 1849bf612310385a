"""
Shipment Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_shipment_service
    service = create_shipment_service(config, event_bus)
"""
from typing import Optional

from core.config_manager import ConfigManager

from .shipment_service import ShipmentService


def create_shipment_service(
    config: Optional[ConfigManager] = None,
    event_bus=None,
) -> ShipmentService:
    """
    Create ShipmentService with real dependencies.

    This function imports the real repository and geocoder (which have I/O
    dependencies). Use this in production, NOT in tests.

    Args:
        config: Configuration manager
        event_bus: Event bus for publishing events

    Returns:
        ShipmentService instance with real dependencies
    """
    # Import real I/O classes here (not at module level)
    from .clients.geocoding_client import GeocodingClient
    from .shipment_repository import ShipmentRepository

    if config is None:
        config = ConfigManager("shipment_service")

    settings = config.settings
    repository = ShipmentRepository(config=config)
    geocoder = GeocodingClient(
        base_url=settings.services.geocoding_url,
        access_token=settings.services.geocoding_token,
    )

    return ShipmentService(
        repository=repository,
        event_bus=event_bus,
        geocoder=geocoder,
        freight_config=settings.freight,
    )


def create_address_lookup(config: Optional[ConfigManager] = None):
    """Create the ViaCEP client"""
    from .clients.address_client import AddressLookupClient

    if config is None:
        config = ConfigManager("shipment_service")

    return AddressLookupClient(base_url=config.settings.services.address_lookup_url)

"""
Tracking Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.
"""
from typing import Optional

from core.config_manager import ConfigManager

from .models import GeolocationOptions
from .tracking_service import TrackingService
from .tracking_session import DriverTracker


def create_tracking_service(
    config: Optional[ConfigManager] = None,
    event_bus=None,
) -> TrackingService:
    """
    Create TrackingService with real dependencies.

    Use this in production, NOT in tests.
    """
    # Import real repository here (not at module level)
    from .position_repository import PositionRepository

    if config is None:
        config = ConfigManager("tracking_service")

    return TrackingService(
        repository=PositionRepository(config=config),
        event_bus=event_bus,
        freight_config=config.settings.freight,
    )


def create_driver_tracker(
    geolocation,
    config: Optional[ConfigManager] = None,
    base_url: Optional[str] = None,
) -> DriverTracker:
    """
    Create the driver-side tracker talking to the tracking API over HTTP.

    Args:
        geolocation: Device geolocation provider
        config: Configuration manager
        base_url: Tracking service URL (defaults to settings)
    """
    from .clients.tracking_client import TrackingServiceClient

    if config is None:
        config = ConfigManager("tracking_service")

    freight = config.settings.freight
    api = TrackingServiceClient(base_url=base_url or config.settings.services.tracking_service_url)
    return DriverTracker(
        api=api,
        geolocation=geolocation,
        interval_seconds=freight.tracking_interval_seconds,
        options=GeolocationOptions(timeout_ms=freight.geolocation_timeout_ms),
    )

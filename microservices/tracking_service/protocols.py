"""
Tracking Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from datetime import datetime
from typing import Any, List, Optional, Protocol, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    FixRecordRequest,
    GeolocationOptions,
    GeolocationReading,
    PermissionState,
    PositionFix,
    TrackedShipment,
)


# Custom exceptions - defined here to avoid importing repository
class TrackingServiceError(Exception):
    """Base exception for tracking errors"""
    pass


class InvalidTokenError(TrackingServiceError):
    """Unknown token, or its shipment is no longer trackable"""
    pass


class TrackingValidationError(TrackingServiceError):
    """Rejected position fix"""
    pass


class GeolocationError(Exception):
    """Base class for device-side geolocation failures"""
    pass


class GeolocationUnsupportedError(GeolocationError):
    """Device has no geolocation capability"""
    pass


class LocationPermissionDeniedError(GeolocationError):
    """User denied (or revoked) location permission"""
    pass


class GeolocationTimeoutError(GeolocationError):
    """A single position request did not answer in time"""
    pass


@runtime_checkable
class PositionRepositoryProtocol(Protocol):
    """Interface for the position-fix store"""

    async def resolve_token(self, token: str) -> Optional[TrackedShipment]:
        """Non-deleted, in-transit shipment carrying this token"""
        ...

    async def insert_fix(self, fix: PositionFix) -> PositionFix:
        """Append a fix"""
        ...

    async def get_latest_fix(self, shipment_id: str) -> Optional[PositionFix]:
        """Most recent fix by captured_at"""
        ...

    async def get_fix_history(
        self,
        shipment_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[PositionFix]:
        """Fixes in a time window, newest first"""
        ...


@runtime_checkable
class GeolocationProviderProtocol(Protocol):
    """Device geolocation capability (driver side)"""

    def is_supported(self) -> bool:
        ...

    async def permission_state(self) -> PermissionState:
        ...

    async def get_current_position(self, options: GeolocationOptions) -> GeolocationReading:
        """Raises GeolocationError subclasses on failure"""
        ...


@runtime_checkable
class TrackingApiProtocol(Protocol):
    """Tracking API as seen from the driver's device"""

    async def resolve(self, token: str) -> TrackedShipment:
        """Raises InvalidTokenError"""
        ...

    async def submit_fix(self, token: str, request: FixRecordRequest) -> PositionFix:
        """Raises InvalidTokenError"""
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> None:
        """Publish an event"""
        ...

    async def close(self) -> None:
        """Close the event bus connection"""
        ...

"""
Shipment Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    Address,
    DeadlineStatus,
    DeliveryAlert,
    PositionFix,
    Shipment,
    ShipmentFilters,
    ShipmentStatus,
    StatusHistoryEntry,
)


# Custom exceptions - defined here to avoid importing repository
class ShipmentServiceError(Exception):
    """Base exception for shipment service errors"""
    pass


class ShipmentValidationError(ShipmentServiceError):
    """Invalid shipment draft or edit; the message is shown to the user as is"""
    pass


class ShipmentNotFoundError(ShipmentServiceError):
    """Shipment does not exist or was soft-deleted"""
    pass


class AlreadyTerminalError(ShipmentServiceError):
    """Transition attempted on a delivered or cancelled shipment"""

    def __init__(self, shipment_id: str, status: Optional[ShipmentStatus] = None):
        self.shipment_id = shipment_id
        self.status = status
        label = status.value if status else "terminal"
        super().__init__(f"Shipment {shipment_id} is already {label}")


class ShipmentCreationTimeoutError(ShipmentServiceError):
    """Geocoding + persistence did not finish in time; safe to retry"""
    retryable = True


class GeocodingError(Exception):
    """City/state could not be resolved to coordinates"""
    pass


@runtime_checkable
class ShipmentRepositoryProtocol(Protocol):
    """
    Interface for Shipment Repository.

    Status-changing methods are compare-and-set on status = in_transit and
    return None when no row matched.
    """

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        """Insert a new shipment"""
        ...

    async def get_shipment(self, shipment_id: str, include_deleted: bool = False) -> Optional[Shipment]:
        """Get shipment by id"""
        ...

    async def list_shipments(
        self,
        shipper_id: Optional[str] = None,
        filters: Optional[ShipmentFilters] = None,
    ) -> List[Shipment]:
        """Non-deleted shipments, newest first (deadline filter not applied)"""
        ...

    async def transition_status(
        self,
        shipment_id: str,
        new_status: ShipmentStatus,
        deadline_status: DeadlineStatus,
        delivered_at: Optional[datetime] = None,
    ) -> Optional[Shipment]:
        """Move an in-transit shipment to a terminal status"""
        ...

    async def update_schedule(
        self,
        shipment_id: str,
        departure_at: datetime,
        promised_arrival_at: datetime,
        deadline_status: DeadlineStatus,
    ) -> Optional[Shipment]:
        """Change dates of an in-transit shipment"""
        ...

    async def soft_delete(self, shipment_id: str) -> bool:
        """Flag shipment as deleted"""
        ...

    async def set_tracking_token(
        self, shipment_id: str, token: str, driver_phone: Optional[str] = None
    ) -> Optional[Shipment]:
        """Store the tracking token (and driver phone) on a shipment"""
        ...

    async def add_history_entry(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        """Append a status history entry"""
        ...

    async def get_history(self, shipment_id: str) -> List[StatusHistoryEntry]:
        """History entries, oldest first"""
        ...

    async def create_delivery_alert(self, alert: DeliveryAlert) -> DeliveryAlert:
        """Persist a delivery alert"""
        ...

    async def get_latest_fixes(self, shipment_ids: List[str]) -> Dict[str, PositionFix]:
        """Most recent fix (by captured_at) per shipment id"""
        ...


@runtime_checkable
class GeocoderProtocol(Protocol):
    """City/state -> (latitude, longitude)"""

    async def geocode(self, city: str, state: str) -> Tuple[float, float]:
        """Raises GeocodingError when the place cannot be resolved"""
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class AddressLookupProtocol(Protocol):
    """Postal code -> address"""

    async def lookup(self, postal_code: str) -> Optional[Address]:
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> None:
        """Publish an event"""
        ...

    async def subscribe_to_events(self, pattern: str, handler: Any) -> None:
        """Subscribe to events matching pattern"""
        ...

    async def close(self) -> None:
        """Close the event bus connection"""
        ...

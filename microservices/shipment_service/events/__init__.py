"""
Shipment Service Events

Standard Structure:
- models.py: Event data models (Pydantic)
- handlers.py: Event handlers (dashboard push refresh)
- publishers.py: Event publishers
"""

from .handlers import ShipmentEventHandlers
from .models import (
    ScheduleUpdatedEventData,
    ShipmentCancelledEventData,
    ShipmentCreatedEventData,
    ShipmentDeletedEventData,
    ShipmentDeliveredEventData,
    ShipmentEventType,
    ShipmentSubscribedEventType,
    TrackingLinkIssuedEventData,
)
from .publishers import (
    publish_schedule_updated,
    publish_shipment_cancelled,
    publish_shipment_created,
    publish_shipment_deleted,
    publish_shipment_delivered,
    publish_tracking_link_issued,
)

__all__ = [
    # Handlers
    "ShipmentEventHandlers",
    # Models
    "ShipmentEventType",
    "ShipmentSubscribedEventType",
    "ShipmentCreatedEventData",
    "ShipmentDeliveredEventData",
    "ShipmentCancelledEventData",
    "ShipmentDeletedEventData",
    "ScheduleUpdatedEventData",
    "TrackingLinkIssuedEventData",
    # Publishers
    "publish_shipment_created",
    "publish_shipment_delivered",
    "publish_shipment_cancelled",
    "publish_shipment_deleted",
    "publish_schedule_updated",
    "publish_tracking_link_issued",
]

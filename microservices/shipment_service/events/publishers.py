"""
Shipment Service Event Publishers

All events published by shipment_service are defined here.
Every publisher returns False instead of raising so lifecycle
transitions never depend on the bus.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from core.nats_client import Event, EventType, ServiceSource

from ..models import Shipment, TrackingLink
from .models import (
    ScheduleUpdatedEventData,
    ShipmentCancelledEventData,
    ShipmentCreatedEventData,
    ShipmentDeletedEventData,
    ShipmentDeliveredEventData,
    TrackingLinkIssuedEventData,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, data, shipment_id: str) -> bool:
    try:
        event = Event(
            event_type=event_type,
            source=ServiceSource.SHIPMENT_SERVICE,
            data=data.model_dump(mode="json"),
            subject=shipment_id,
        )
        result = await event_bus.publish_event(event)

        if result is False:
            logger.error(f"Failed to publish {event.type} event for shipment {shipment_id}")
            return False

        logger.info(f"Published {event.type} event for shipment {shipment_id}")
        return True

    except Exception as e:
        logger.error(f"Error publishing {event_type.value} event: {e}", exc_info=True)
        return False


async def publish_shipment_created(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.created"""
    data = ShipmentCreatedEventData(
        shipment_id=shipment.shipment_id,
        shipper_id=shipment.shipper_id,
        invoice_number=shipment.invoice_number,
        origin_city=shipment.origin.city,
        origin_state=shipment.origin.state,
        destination_city=shipment.destination.city,
        destination_state=shipment.destination.state,
        weight_tons=shipment.weight_tons,
        promised_arrival_at=shipment.promised_arrival_at,
        timestamp=datetime.now(timezone.utc),
    )
    return await _publish(event_bus, EventType.SHIPMENT_CREATED, data, shipment.shipment_id)


async def publish_shipment_delivered(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.delivered"""
    data = ShipmentDeliveredEventData(
        shipment_id=shipment.shipment_id,
        shipper_id=shipment.shipper_id,
        invoice_number=shipment.invoice_number,
        delivered_at=shipment.delivered_at,
        deadline_status=shipment.deadline_status.value,
        timestamp=datetime.now(timezone.utc),
    )
    return await _publish(event_bus, EventType.SHIPMENT_DELIVERED, data, shipment.shipment_id)


async def publish_shipment_cancelled(
    event_bus, shipment: Shipment, reason: Optional[str] = None
) -> bool:
    """Publish shipment.cancelled"""
    data = ShipmentCancelledEventData(
        shipment_id=shipment.shipment_id,
        shipper_id=shipment.shipper_id,
        reason=reason,
        timestamp=datetime.now(timezone.utc),
    )
    return await _publish(event_bus, EventType.SHIPMENT_CANCELLED, data, shipment.shipment_id)


async def publish_shipment_deleted(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.deleted"""
    data = ShipmentDeletedEventData(
        shipment_id=shipment.shipment_id,
        shipper_id=shipment.shipper_id,
        timestamp=datetime.now(timezone.utc),
    )
    return await _publish(event_bus, EventType.SHIPMENT_DELETED, data, shipment.shipment_id)


async def publish_schedule_updated(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.schedule.updated"""
    data = ScheduleUpdatedEventData(
        shipment_id=shipment.shipment_id,
        departure_at=shipment.departure_at,
        promised_arrival_at=shipment.promised_arrival_at,
        timestamp=datetime.now(timezone.utc),
    )
    return await _publish(event_bus, EventType.SHIPMENT_SCHEDULE_UPDATED, data, shipment.shipment_id)


async def publish_tracking_link_issued(event_bus, link: TrackingLink) -> bool:
    """Publish shipment.tracking_link.issued"""
    data = TrackingLinkIssuedEventData(
        shipment_id=link.shipment_id,
        token=link.token,
        url=link.url,
        timestamp=datetime.now(timezone.utc),
    )
    return await _publish(event_bus, EventType.TRACKING_LINK_ISSUED, data, link.shipment_id)


__all__ = [
    "publish_shipment_created",
    "publish_shipment_delivered",
    "publish_shipment_cancelled",
    "publish_shipment_deleted",
    "publish_schedule_updated",
    "publish_tracking_link_issued",
]

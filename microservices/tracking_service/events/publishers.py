"""
Tracking Service Event Publishers
"""

import logging

from core.nats_client import Event, EventType, ServiceSource

from ..models import PositionFix
from .models import FixRecordedEventData

logger = logging.getLogger(__name__)


async def publish_fix_recorded(event_bus, fix: PositionFix) -> bool:
    """
    Publish tracking.fix.recorded

    Returns:
        True if event published successfully, False otherwise
    """
    try:
        data = FixRecordedEventData(
            fix_id=fix.fix_id,
            shipment_id=fix.shipment_id,
            latitude=fix.latitude,
            longitude=fix.longitude,
            speed=fix.speed,
            accuracy_m=fix.accuracy_m,
            captured_at=fix.captured_at,
            source=fix.source,
        )
        event = Event(
            event_type=EventType.POSITION_FIX_RECORDED,
            source=ServiceSource.TRACKING_SERVICE,
            data=data.model_dump(mode="json"),
            subject=fix.shipment_id,
        )
        result = await event_bus.publish_event(event)

        if result is False:
            logger.error(f"Failed to publish tracking.fix.recorded for shipment {fix.shipment_id}")
            return False
        return True

    except Exception as e:
        logger.error(f"Error publishing tracking.fix.recorded event: {e}", exc_info=True)
        return False


__all__ = ["publish_fix_recorded"]

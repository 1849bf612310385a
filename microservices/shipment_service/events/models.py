"""
Shipment Service Event Data Models

Payloads of the events published on the freight stream
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ShipmentEventType(str, Enum):
    """
    Events published by shipment_service.

    Stream: freight-stream
    Subjects: shipment.>
    """
    SHIPMENT_CREATED = "shipment.created"
    SHIPMENT_DELIVERED = "shipment.delivered"
    SHIPMENT_CANCELLED = "shipment.cancelled"
    SHIPMENT_DELETED = "shipment.deleted"
    SHIPMENT_SCHEDULE_UPDATED = "shipment.schedule.updated"
    TRACKING_LINK_ISSUED = "shipment.tracking_link.issued"


class ShipmentSubscribedEventType(str, Enum):
    """Events that shipment_service subscribes to (dashboard push refresh)."""
    FIX_RECORDED = "tracking.fix.recorded"


class ShipmentCreatedEventData(BaseModel):
    """
    NATS Subject: shipment.created
    Subscribers: dashboards
    """
    shipment_id: str = Field(..., description="Shipment ID")
    shipper_id: str = Field(..., description="Owning shipper")
    invoice_number: str = Field(..., description="Invoice (NF) number")
    origin_city: str
    origin_state: str
    destination_city: str
    destination_state: str
    weight_tons: float = 0.0
    promised_arrival_at: datetime
    timestamp: datetime


class ShipmentDeliveredEventData(BaseModel):
    """
    NATS Subject: shipment.delivered
    Subscribers: dashboards, shipper notifications
    """
    shipment_id: str
    shipper_id: str
    invoice_number: str
    delivered_at: datetime
    deadline_status: str
    timestamp: datetime


class ShipmentCancelledEventData(BaseModel):
    """NATS Subject: shipment.cancelled"""
    shipment_id: str
    shipper_id: str
    reason: Optional[str] = None
    timestamp: datetime


class ShipmentDeletedEventData(BaseModel):
    """NATS Subject: shipment.deleted"""
    shipment_id: str
    shipper_id: str
    timestamp: datetime


class ScheduleUpdatedEventData(BaseModel):
    """NATS Subject: shipment.schedule.updated"""
    shipment_id: str
    departure_at: datetime
    promised_arrival_at: datetime
    timestamp: datetime


class TrackingLinkIssuedEventData(BaseModel):
    """
    NATS Subject: shipment.tracking_link.issued

    The link is constructed, not sent; downstream messaging decides delivery.
    """
    shipment_id: str
    token: str
    url: str
    timestamp: datetime

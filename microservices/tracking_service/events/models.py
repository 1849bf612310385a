"""
Tracking Service Event Data Models
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TrackingEventType(str, Enum):
    """
    Events published by tracking_service.

    Stream: freight-stream
    Subjects: tracking.>
    """
    FIX_RECORDED = "tracking.fix.recorded"


class FixRecordedEventData(BaseModel):
    """
    NATS Subject: tracking.fix.recorded
    Subscribers: shipment_service (dashboard push refresh)
    """
    fix_id: str = Field(..., description="Fix ID")
    shipment_id: str = Field(..., description="Shipment ID")
    latitude: float
    longitude: float
    speed: Optional[float] = None
    accuracy_m: Optional[float] = None
    captured_at: datetime
    source: str

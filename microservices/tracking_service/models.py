"""
Tracking Service - Data Models

Position fixes, tracking-token resolution and the driver-side
geolocation contract.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class FixSource(str, Enum):
    """Ingestion channel tag"""
    BROWSER_GEOLOCATION = "browser_geolocation"
    TRACKING_API = "api_rastreamento"


class PermissionState(str, Enum):
    """Device location permission"""
    GRANTED = "granted"
    PROMPT = "prompt"
    DENIED = "denied"


# ==================== Core Models ====================

class PositionFix(BaseModel):
    """GPS fix reported by a driver's device (append-only)"""
    fix_id: str
    shipment_id: str
    latitude: float
    longitude: float
    speed: Optional[float] = None  # m/s as reported by the device
    accuracy_m: Optional[float] = None
    captured_at: datetime
    source: str = FixSource.BROWSER_GEOLOCATION.value
    received_at: Optional[datetime] = None


class TrackedShipment(BaseModel):
    """What the driver page needs to know about the shipment behind a token"""
    shipment_id: str
    invoice_number: str
    origin_city: str
    origin_state: str
    destination_city: str
    destination_state: str
    driver_name: Optional[str] = None
    promised_arrival_at: datetime
    status: str


class SharingStatus(BaseModel):
    shipment_id: str
    active: bool
    last_fix_at: Optional[datetime] = None
    minutes_since_last_fix: Optional[float] = None


# ==================== Request Models ====================

class FixRecordRequest(BaseModel):
    """Fix submitted through a tracking link"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[float] = Field(None, ge=0)
    accuracy_m: float = Field(..., gt=0)
    captured_at: Optional[datetime] = None  # server time when omitted
    source: str = Field(FixSource.BROWSER_GEOLOCATION.value, max_length=50)

    @field_validator("captured_at")
    @classmethod
    def _utc_captured_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ==================== Driver-side Models ====================

class GeolocationOptions(BaseModel):
    """Options passed to every position request"""
    high_accuracy: bool = True
    timeout_ms: int = Field(10000, gt=0)
    maximum_age_ms: int = Field(0, ge=0)


class GeolocationReading(BaseModel):
    """Position returned by the device"""
    latitude: float
    longitude: float
    speed: Optional[float] = None
    accuracy: float


class SessionStats(BaseModel):
    """Counters shown on the driver page ("last update at ...")"""
    captures_ok: int = 0
    captures_failed: int = 0
    ticks_skipped: int = 0
    last_fix_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str

"""
Shipment Service - Data Models

Shipments (cargas), route points, status history, delivery alerts,
ETA progress and dashboard metrics.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .geo import is_valid_coordinate


class ShipmentStatus(str, Enum):
    """Lifecycle status"""
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DeadlineStatus(str, Enum):
    """Delivery-deadline classification"""
    ON_TIME = "on_time"
    LATE = "late"
    EARLY = "early"


class HistoryEvent(str, Enum):
    """Status history entry tag"""
    CREATED = "created"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    SCHEDULE_UPDATED = "schedule_updated"


class AlertKind(str, Enum):
    DELIVERY = "delivery"


class AlertRecipient(str, Enum):
    SHIPPER = "shipper"


TERMINAL_STATUSES = (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED)

DEFAULT_CARGO_TYPE = "Carga Geral"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ==================== Core Models ====================

class RoutePoint(BaseModel):
    """Origin or destination of a shipment"""
    city: str = Field(..., min_length=1, max_length=120)
    state: str = Field(..., min_length=2, max_length=2, description="UF")
    address: Optional[str] = Field(None, max_length=300)
    postal_code: Optional[str] = Field(None, max_length=9)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("state")
    @classmethod
    def _upper_state(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def has_coordinates(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return is_valid_coordinate(self.latitude, self.longitude)


class Shipment(BaseModel):
    """Shipment record (carga)"""
    shipment_id: str
    shipper_id: str
    invoice_number: str
    origin: RoutePoint
    destination: RoutePoint
    weight_tons: float = 0.0
    cargo_type: str = DEFAULT_CARGO_TYPE
    description: Optional[str] = None
    departure_at: datetime
    promised_arrival_at: datetime
    delivered_at: Optional[datetime] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    vehicle_plate: Optional[str] = None
    average_speed_kmh: float = 60.0
    total_distance_km: Optional[float] = None
    status: ShipmentStatus = ShipmentStatus.IN_TRANSIT
    deadline_status: DeadlineStatus = DeadlineStatus.ON_TIME
    is_deleted: bool = False
    tracking_token: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PositionFix(BaseModel):
    """Latest GPS fix attached to a shipment view (read-only here)"""
    fix_id: str
    shipment_id: str
    latitude: float
    longitude: float
    speed: Optional[float] = None
    accuracy_m: Optional[float] = None
    captured_at: datetime
    source: str = "browser_geolocation"


class StatusHistoryEntry(BaseModel):
    entry_id: str
    shipment_id: str
    previous_status: Optional[ShipmentStatus] = None
    new_status: ShipmentStatus
    event: HistoryEvent
    note: Optional[str] = None
    created_at: datetime


class DeliveryAlert(BaseModel):
    """Alert written for the shipper when a shipment is delivered"""
    alert_id: str
    shipment_id: str
    kind: AlertKind = AlertKind.DELIVERY
    recipient: AlertRecipient = AlertRecipient.SHIPPER
    message: str
    sent: bool = False
    created_at: datetime


# ==================== Request Models ====================

class DriverContactRequest(BaseModel):
    """Driver phone capture (DDD + 9-digit mobile)"""
    ddd: str = Field(..., min_length=2, max_length=4)
    phone: str = Field(..., min_length=1, max_length=20)
    phone_is_whatsapp: bool = True
    whatsapp_ddd: Optional[str] = Field(None, max_length=4)
    whatsapp_phone: Optional[str] = Field(None, max_length=20)


class ShipmentCreateRequest(BaseModel):
    """Shipment draft submitted by a shipper or the dispatcher"""
    shipper_id: Optional[str] = None
    invoice_number: Optional[str] = Field(None, max_length=60)
    origin: RoutePoint
    destination: RoutePoint
    weight_tons: float = Field(0.0, ge=0)
    cargo_type: str = Field(DEFAULT_CARGO_TYPE, max_length=80)
    description: Optional[str] = Field(None, max_length=2000)
    departure_at: Optional[datetime] = None
    promised_arrival_at: Optional[datetime] = None
    driver_name: Optional[str] = Field(None, max_length=120)
    driver_contact: Optional[DriverContactRequest] = None
    vehicle_plate: Optional[str] = Field(None, max_length=10)
    average_speed_kmh: float = Field(60.0, gt=0, le=200)

    @field_validator("departure_at", "promised_arrival_at")
    @classmethod
    def _utc_schedule(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class ScheduleUpdateRequest(BaseModel):
    departure_at: datetime
    promised_arrival_at: datetime

    @field_validator("departure_at", "promised_arrival_at")
    @classmethod
    def _utc_schedule(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TrackingLinkRequest(BaseModel):
    driver_phone: str = Field(..., min_length=1, max_length=20)
    sms_phone: Optional[str] = Field(None, max_length=20)


class ShipmentFilters(BaseModel):
    """Dashboard listing filters (any combination)"""
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[List[ShipmentStatus]] = None
    deadline_status: Optional[List[DeadlineStatus]] = Field(None, alias="status_prazo")
    invoice_number: Optional[str] = None
    origin_state: Optional[str] = None
    destination_state: Optional[str] = None
    driver_name: Optional[str] = None
    vehicle_plate: Optional[str] = None
    departure_from: Optional[datetime] = None
    departure_to: Optional[datetime] = None
    arrival_from: Optional[datetime] = None
    arrival_to: Optional[datetime] = None

    @field_validator("departure_from", "departure_to", "arrival_from", "arrival_to")
    @classmethod
    def _utc_ranges(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


# ==================== Response Models ====================

class TrackingLink(BaseModel):
    """Tracking link plus constructed (never sent) share targets"""
    shipment_id: str
    token: str
    url: str
    message: str
    whatsapp_url: str
    sms_url: str


class ShipmentCreateResult(BaseModel):
    shipment: Shipment
    tracking_link: Optional[TrackingLink] = None


class ShipmentProgress(BaseModel):
    """Recomputed ETA view of one shipment"""
    percent_complete: Optional[int] = Field(None, ge=0, le=100)
    time_remaining_seconds: int
    time_remaining_label: str
    projected_arrival_at: Optional[datetime] = None
    deadline_status: DeadlineStatus
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None


class ShipmentView(BaseModel):
    shipment: Shipment
    latest_fix: Optional[PositionFix] = None
    progress: ShipmentProgress


class DashboardMetrics(BaseModel):
    """Aggregated dashboard numbers (Portuguese aliases on the wire)"""
    model_config = ConfigDict(populate_by_name=True)

    total_shipments: int = Field(0, alias="total_cargas")
    in_transit_count: int = Field(0, alias="cargas_em_transito")
    delivered_count: int = Field(0, alias="cargas_entregues")
    cancelled_count: int = Field(0, alias="cargas_canceladas")
    on_time_count: int = Field(0, alias="cargas_no_prazo")
    late_count: int = Field(0, alias="cargas_atrasadas")
    early_count: int = Field(0, alias="cargas_adiantadas")
    total_tons_in_transport: float = Field(0.0, alias="total_toneladas_transporte")
    total_tons_delivered: float = Field(0.0, alias="total_toneladas_entregues")
    on_time_delivery_pct: float = Field(0.0, alias="percentual_entrega_prazo")
    early_delivery_pct: float = Field(0.0, alias="percentual_entrega_adiantada")
    late_delivery_pct: float = Field(0.0, alias="percentual_entrega_atrasada")


class DashboardSnapshot(BaseModel):
    shipments: List[ShipmentView]
    metrics: DashboardMetrics
    refreshed_at: datetime


class Address(BaseModel):
    """Postal-code lookup result"""
    postal_code: str
    street: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str

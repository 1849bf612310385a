"""
Status / ETA engine

Pure functions over (shipment, latest fix or None, now). Nothing here does
I/O; the service and the dashboard aggregation call these on every read so
the stored deadline status is only a cache.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from .geo import haversine_distance_km, is_valid_coordinate, route_progress
from .models import (
    DeadlineStatus,
    PositionFix,
    Shipment,
    ShipmentProgress,
    ShipmentStatus,
)

EARLY_MARGIN = timedelta(hours=12)
DEFAULT_AVERAGE_SPEED_KMH = 60.0


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _current_position(shipment: Shipment, fix: Optional[PositionFix]) -> Tuple:
    if fix is not None:
        return (fix.latitude, fix.longitude)
    return (shipment.origin.latitude, shipment.origin.longitude)


def compute_percent_complete(shipment: Shipment, fix: Optional[PositionFix]) -> Optional[int]:
    """
    Percentage of the route covered, 0..100.

    Delivered shipments are always 100. Returns None when the route or the
    fix has unusable coordinates.
    """
    if shipment.status == ShipmentStatus.DELIVERED:
        return 100

    origin = (shipment.origin.latitude, shipment.origin.longitude)
    destination = (shipment.destination.latitude, shipment.destination.longitude)
    current = (fix.latitude, fix.longitude) if fix is not None else None

    fraction = route_progress(origin, destination, current)
    if fraction is None:
        return None
    return max(0, min(100, int(round(fraction * 100))))


def compute_time_remaining(promised_arrival_at: datetime, now: datetime) -> int:
    """Signed seconds until the promised arrival (negative when overdue)"""
    return int((_aware(promised_arrival_at) - _aware(now)).total_seconds())


def format_duration(seconds: int) -> str:
    """Render a duration as "2d 5h", "3h 20min" or "45min"; overdue gets a "-" prefix"""
    sign = "-" if seconds < 0 else ""
    remaining = abs(int(seconds))

    days, remaining = divmod(remaining, 86400)
    hours, remaining = divmod(remaining, 3600)
    minutes = remaining // 60

    if days:
        return f"{sign}{days}d {hours}h"
    if hours:
        return f"{sign}{hours}h {minutes}min"
    if minutes == 0:
        return "0min"
    return f"{sign}{minutes}min"


def estimate_arrival(
    shipment: Shipment,
    fix: Optional[PositionFix],
    now: datetime,
    default_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
) -> Optional[datetime]:
    """
    Projected arrival from the remaining straight-line distance and the
    shipment's average speed.

    Delivered shipments return their delivery time, cancelled ones None.
    Without a fix the truck is assumed at the origin, leaving no earlier
    than the scheduled departure.
    """
    if shipment.status == ShipmentStatus.DELIVERED:
        return _aware(shipment.delivered_at)
    if shipment.status == ShipmentStatus.CANCELLED:
        return None

    current = _current_position(shipment, fix)
    destination = (shipment.destination.latitude, shipment.destination.longitude)
    if not (is_valid_coordinate(*current) and is_valid_coordinate(*destination)):
        return None

    speed = shipment.average_speed_kmh or default_speed_kmh
    if speed <= 0:
        return None

    remaining_km = haversine_distance_km(current[0], current[1], destination[0], destination[1])

    now = _aware(now)
    start = now
    if fix is None:
        start = max(now, _aware(shipment.departure_at))

    return start + timedelta(hours=remaining_km / speed)


def classify_deadline(
    shipment: Shipment,
    now: datetime,
    projected_arrival: Optional[datetime] = None,
    early_margin: timedelta = EARLY_MARGIN,
) -> DeadlineStatus:
    """On-time / late / early classification for the current state"""
    promised = _aware(shipment.promised_arrival_at)

    if shipment.status == ShipmentStatus.CANCELLED:
        return shipment.deadline_status

    if shipment.status == ShipmentStatus.DELIVERED:
        delivered_at = _aware(shipment.delivered_at)
        if delivered_at is None:
            return shipment.deadline_status
        if delivered_at > promised:
            return DeadlineStatus.LATE
        if promised - delivered_at >= early_margin:
            return DeadlineStatus.EARLY
        return DeadlineStatus.ON_TIME

    if _aware(now) > promised:
        return DeadlineStatus.LATE
    if projected_arrival is not None and promised - _aware(projected_arrival) >= early_margin:
        return DeadlineStatus.EARLY
    return DeadlineStatus.ON_TIME


def compute_progress(
    shipment: Shipment,
    fix: Optional[PositionFix],
    now: datetime,
    early_margin: timedelta = EARLY_MARGIN,
    default_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
) -> ShipmentProgress:
    """Bundle percent complete, time remaining, projection and classification"""
    projected = estimate_arrival(shipment, fix, now, default_speed_kmh=default_speed_kmh)
    remaining = compute_time_remaining(shipment.promised_arrival_at, now)
    current = _current_position(shipment, fix)

    return ShipmentProgress(
        percent_complete=compute_percent_complete(shipment, fix),
        time_remaining_seconds=remaining,
        time_remaining_label=format_duration(remaining),
        projected_arrival_at=projected,
        deadline_status=classify_deadline(shipment, now, projected, early_margin),
        current_latitude=current[0] if is_valid_coordinate(*current) else None,
        current_longitude=current[1] if is_valid_coordinate(*current) else None,
    )

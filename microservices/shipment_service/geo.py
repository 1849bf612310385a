"""
Geo primitives

Great-circle distance, route progress and coordinate sanity checks.
Points are (latitude, longitude) tuples in degrees.
"""

import math
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0

Coordinate = Tuple[float, float]


def _is_finite(*values) -> bool:
    try:
        return all(math.isfinite(v) for v in values)
    except TypeError:
        return False


def is_valid_coordinate(latitude, longitude) -> bool:
    """True when both values are finite and inside the WGS84 ranges"""
    if latitude is None or longitude is None:
        return False
    if not _is_finite(latitude, longitude):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points in kilometers.

    Raises:
        ValueError: if any coordinate is not a finite number
    """
    if not _is_finite(lat1, lng1, lat2, lng2):
        raise ValueError("coordinates must be finite numbers")

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push the term slightly outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def route_progress(
    origin: Coordinate,
    destination: Coordinate,
    current: Optional[Coordinate],
) -> Optional[float]:
    """
    Fraction of the straight-line route covered by the current position.

    Returns 0.0 without a current position, 1.0 on a zero-length route with
    a position, the clamped ratio otherwise, and None when any coordinate
    is not finite.
    """
    points = [origin, destination] + ([current] if current is not None else [])
    for point in points:
        if point is None or not _is_finite(*point):
            return None

    if current is None:
        return 0.0

    total = haversine_distance_km(origin[0], origin[1], destination[0], destination[1])
    if total == 0:
        return 1.0

    covered = haversine_distance_km(origin[0], origin[1], current[0], current[1])
    return min(1.0, max(0.0, covered / total))

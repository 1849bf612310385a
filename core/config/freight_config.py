#!/usr/bin/env python3
"""Freight business configuration

Constants for the tracking and dashboard pipeline. All values can be
overridden through the environment; the defaults are the product values.
"""
import os
from dataclasses import dataclass

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class FreightConfig:
    """Tracking, ETA and dashboard settings"""

    # Public origin used to build driver tracking links
    public_base_url: str = "http://localhost:5173"

    # Driver-side ingestion loop
    tracking_interval_seconds: float = 300.0
    geolocation_timeout_ms: int = 10000

    # Dispatcher map auto-refresh
    dashboard_refresh_seconds: float = 30.0

    # Shipment creation (geocoding + persistence) overall bound
    creation_timeout_seconds: float = 15.0

    # Promised arrival may be at most this many days after departure
    max_delivery_window_days: int = 8

    # Used when geocoding fails (centre of Brazil, Brasilia)
    default_latitude: float = -15.7942
    default_longitude: float = -47.8822

    default_average_speed_kmh: float = 60.0

    # A delivery (or projection) this far ahead of the promise counts as early
    early_margin_hours: float = 12.0

    # A driver counts as actively sharing while the last fix is this recent
    sharing_window_minutes: int = 10

    @classmethod
    def from_env(cls) -> 'FreightConfig':
        """Load freight settings from environment variables"""
        return cls(
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5173").rstrip("/"),
            tracking_interval_seconds=_float(os.getenv("TRACKING_INTERVAL_SECONDS", "300"), 300.0),
            geolocation_timeout_ms=_int(os.getenv("GEOLOCATION_TIMEOUT_MS", "10000"), 10000),
            dashboard_refresh_seconds=_float(os.getenv("DASHBOARD_REFRESH_SECONDS", "30"), 30.0),
            creation_timeout_seconds=_float(os.getenv("CREATION_TIMEOUT_SECONDS", "15"), 15.0),
            max_delivery_window_days=_int(os.getenv("MAX_DELIVERY_WINDOW_DAYS", "8"), 8),
            default_latitude=_float(os.getenv("DEFAULT_LATITUDE", "-15.7942"), -15.7942),
            default_longitude=_float(os.getenv("DEFAULT_LONGITUDE", "-47.8822"), -47.8822),
            default_average_speed_kmh=_float(os.getenv("DEFAULT_AVERAGE_SPEED_KMH", "60"), 60.0),
            early_margin_hours=_float(os.getenv("EARLY_MARGIN_HOURS", "12"), 12.0),
            sharing_window_minutes=_int(os.getenv("SHARING_WINDOW_MINUTES", "10"), 10),
        )

#!/usr/bin/env python3
"""Service configuration for peer and external services

Peer freight services (shipment, tracking) plus the third-party HTTP
collaborators used at shipment creation (geocoding, postal-code lookup).
"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServiceConfig:
    """Peer and external service endpoints"""

    # ===========================================
    # Peer freight services
    # ===========================================
    shipment_service_url: str = "http://localhost:8240"
    tracking_service_url: str = "http://localhost:8241"

    # ===========================================
    # External collaborators
    # ===========================================
    # Mapbox forward geocoding (city/state -> lat/lng)
    geocoding_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    geocoding_token: Optional[str] = None

    # ViaCEP postal code lookup
    address_lookup_url: str = "https://viacep.com.br/ws"

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        """Load service configuration from environment variables"""
        return cls(
            shipment_service_url=os.getenv("SHIPMENT_SERVICE_URL", "http://localhost:8240"),
            tracking_service_url=os.getenv("TRACKING_SERVICE_URL", "http://localhost:8241"),
            geocoding_url=os.getenv("GEOCODING_URL", "https://api.mapbox.com/geocoding/v5/mapbox.places"),
            geocoding_token=os.getenv("MAPBOX_TOKEN") or os.getenv("GEOCODING_TOKEN"),
            address_lookup_url=os.getenv("VIACEP_URL", "https://viacep.com.br/ws"),
        )

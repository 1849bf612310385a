"""
Shipment Service Clients

HTTP clients for the external collaborators used at shipment creation.
"""

from .address_client import AddressLookupClient, format_postal_code
from .geocoding_client import GeocodingClient

__all__ = [
    "AddressLookupClient",
    "GeocodingClient",
    "format_postal_code",
]

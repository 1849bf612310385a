"""
Shipment Service

Shipment lifecycle, ETA engine, dashboard aggregation and tracking links.
"""

__version__ = "1.0.0"

"""
Tracking Service

Tracking-link resolution, GPS fix ingestion and the driver-side tracking loop.
"""

__version__ = "1.0.0"

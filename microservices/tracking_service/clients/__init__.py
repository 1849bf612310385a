"""
Tracking Service Clients
"""

from .tracking_client import TrackingServiceClient

__all__ = ["TrackingServiceClient"]

"""
Tracking Service Events

- models.py: Event data models (Pydantic)
- publishers.py: Event publishers
"""

from .models import FixRecordedEventData, TrackingEventType
from .publishers import publish_fix_recorded

__all__ = [
    "FixRecordedEventData",
    "TrackingEventType",
    "publish_fix_recorded",
]

"""
Shared test data factories.

Usage:
    from tests.fixtures import make_shipment, make_fix
"""
from .freight_fixtures import (
    BRASILIA,
    FIXED_NOW,
    RIO,
    SAO_PAULO,
    make_create_request,
    make_fix,
    make_route_point,
    make_shipment,
    make_tracked_shipment,
    make_shipment_id,
)

__all__ = [
    "BRASILIA",
    "FIXED_NOW",
    "RIO",
    "SAO_PAULO",
    "make_create_request",
    "make_fix",
    "make_route_point",
    "make_shipment",
    "make_shipment_id",
    "make_tracked_shipment",
]

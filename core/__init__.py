#!/usr/bin/env python3
"""
Core Module for the freight microservices

Shared infrastructure used by shipment_service and tracking_service.

COMPONENTS:
    - config/: Dataclass settings loaded from the environment
    - config_manager.py: Per-service runtime config and endpoint resolution
    - logger.py: Process-wide logging setup
    - postgres_client.py: asyncpg pool wrapper
    - nats_client.py: NATS JetStream event bus
    - service_client_base.py: Base class for peer-service HTTP clients

USAGE:
    from core.config_manager import ConfigManager

    config = ConfigManager("shipment_service")
"""

from .config_manager import ConfigManager, ServiceRuntimeConfig

__all__ = [
    "ConfigManager",
    "ServiceRuntimeConfig",
]

__version__ = "1.0.0"

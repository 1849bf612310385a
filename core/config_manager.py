#!/usr/bin/env python3
"""
Per-service configuration access

Wraps the global AppConfig and adds the per-service runtime settings
(bind host/port) plus environment-based endpoint resolution.

Usage:
    from core.config_manager import ConfigManager

    config = ConfigManager("shipment_service")
    service_config = config.get_service_config()
    host, port = config.discover_service(
        service_name="postgres",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from core.config import AppConfig, get_settings

logger = logging.getLogger(__name__)

# Port registry for freight services
SERVICE_PORTS = {
    "shipment_service": 8240,
    "tracking_service": 8241,
}


@dataclass
class ServiceRuntimeConfig:
    """Runtime settings of one microservice"""
    service_name: str
    service_host: str
    service_port: int
    debug: bool = False


class ConfigManager:
    """Configuration facade for a single microservice"""

    def __init__(self, service_name: str, settings: Optional[AppConfig] = None):
        self.service_name = service_name
        self.settings = settings or get_settings()

    def get_service_config(self) -> ServiceRuntimeConfig:
        """Get bind host/port for this service (env overrides registry)"""
        prefix = self.service_name.upper()
        default_port = SERVICE_PORTS.get(self.service_name, self.settings.default_port)
        port_value = os.getenv(f"{prefix}_PORT") or os.getenv("PORT")
        try:
            port = int(port_value) if port_value else default_port
        except ValueError:
            logger.warning(f"Invalid port '{port_value}' for {self.service_name}, using {default_port}")
            port = default_port

        return ServiceRuntimeConfig(
            service_name=self.service_name,
            service_host=os.getenv(f"{prefix}_HOST", self.settings.default_host),
            service_port=port,
            debug=self.settings.debug,
        )

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve a service endpoint.

        Priority: environment variables -> default fallback.

        Returns:
            (host, port) tuple
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port_value = os.getenv(env_port_key) if env_port_key else None

        port = default_port
        if port_value:
            try:
                port = int(port_value)
            except ValueError:
                logger.warning(f"Invalid port '{port_value}' for {service_name}, using {default_port}")

        resolved_host = host or default_host
        logger.debug(f"Resolved {service_name} for {self.service_name}: {resolved_host}:{port}")
        return resolved_host, port

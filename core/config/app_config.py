#!/usr/bin/env python3
"""Freight platform main configuration

Combines all sub-configs.
"""
import os
from dataclasses import dataclass, field

from .freight_config import FreightConfig
from .infra_config import InfraConfig
from .logging_config import LoggingConfig
from .service_config import ServiceConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class AppConfig:
    """Main freight platform configuration with all sub-configs"""

    # Environment
    environment: str = "development"
    debug: bool = False

    # Default service settings (each microservice overrides these)
    default_host: str = "0.0.0.0"
    default_port: int = 8000

    # Sub-configurations
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    freight: FreightConfig = field(default_factory=FreightConfig)

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            environment=env,
            debug=_bool(os.getenv("DEBUG", "true" if env == "development" else "false")),
            default_host=os.getenv("HOST", "0.0.0.0"),
            default_port=_int(os.getenv("PORT", "8000"), 8000),
            logging=LoggingConfig.from_env(),
            infrastructure=InfraConfig.from_env(),
            services=ServiceConfig.from_env(),
            freight=FreightConfig.from_env(),
        )

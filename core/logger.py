#!/usr/bin/env python3
"""
Service logger setup

Configures the root logger once per process from LoggingConfig and returns
the named service logger. Modules keep using logging.getLogger(__name__).
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig, get_settings

_configured = False


def setup_service_logger(
    service_name: str,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure logging for a microservice.

    Args:
        service_name: Logger name, e.g. "shipment_service"
        config: Optional logging config (defaults to global settings)

    Returns:
        Logger for the service
    """
    global _configured
    config = config or get_settings().logging

    if not _configured:
        root = logging.getLogger()
        root.setLevel(config.log_level.upper())
        formatter = logging.Formatter(config.log_format)

        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        # Chatty third-party loggers
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("nats").setLevel(logging.WARNING)

        _configured = True

    return logging.getLogger(service_name)

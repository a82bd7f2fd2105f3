"""
eventdigest Core Module

This module provides core utilities including path management,
configuration, errors, logging and retry helpers.
"""

from .errors import (
    ConfigError,
    ConsolidationError,
    DeliveryError,
    DigestError,
    StoreError,
    SummarizerError,
)
from .paths import (
    CONFIG_PATH,
    DATA_ROOT,
    DB_DIR,
    DB_PATH,
    LOG_DIR,
    ensure_data_directories,
)

__all__ = [
    # Directory paths
    "DATA_ROOT",
    "DB_DIR",
    "DB_PATH",
    "LOG_DIR",
    "CONFIG_PATH",
    # Functions
    "ensure_data_directories",
    # Errors
    "DigestError",
    "ConfigError",
    "StoreError",
    "SummarizerError",
    "ConsolidationError",
    "DeliveryError",
]

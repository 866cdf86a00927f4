"""Core module - Configuration, logging setup, and shared types."""

from confsync.core.config import (
    OPTIONS,
    ConfigError,
    ConfigOption,
    SyncConfig,
    format_duration,
    load_config,
    parse_bool,
    parse_duration,
)
from confsync.core.log_setup import setup_logging
from confsync.core.types import HealthStatus, SyncPhase

__all__ = [
    # Config
    "OPTIONS",
    "ConfigError",
    "ConfigOption",
    "SyncConfig",
    "format_duration",
    "load_config",
    "parse_bool",
    "parse_duration",
    # Logging
    "setup_logging",
    # Types
    "HealthStatus",
    "SyncPhase",
]

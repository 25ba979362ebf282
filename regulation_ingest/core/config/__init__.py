"""
Configuration management for the regulation ingestion pipeline.

Configuration is loaded from:
1. Environment variables (.env file)
2. System environment
3. Default values (fallback)

Usage:
    >>> from regulation_ingest.core.config import settings
    >>> settings.DATABASE_URL
    'sqlite+aiosqlite:///./regulations.db'
"""

from regulation_ingest.core.config.settings import (
    Settings,
    get_settings,
    settings,
)
from regulation_ingest.core.config.logging import (
    LoggingConfig,
    configure_logging,
    get_logger,
    logging_config,
)

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "LoggingConfig",
    "logging_config",
    "configure_logging",
    "get_logger",
]

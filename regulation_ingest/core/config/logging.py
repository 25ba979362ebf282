"""
Logging configuration for the regulation ingestion pipeline.

This module provides:
- Structured logging through structlog bound loggers
- JSON output (python-json-logger) for files and ``LOG_FORMAT=json``
- Human-readable text output for development
- Log rotation
- Context injection (job_id, source file) through contextvars

Log Structure (JSON):
    {
        "timestamp": "2026-01-30T12:00:00Z",
        "level": "info",
        "logger": "regulation_ingest.services.regulation_importer",
        "message": "Edition imported",
        "job_id": "import-20260130-120000",
        "edition_number": 3
    }

Event keyword arguments become top-level JSON fields, so they must not use
names reserved by ``logging.LogRecord`` (``message``, ``name``, ``lineno``,
``filename``, ``module``, ``args``, ``created`` ...).
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog
from pythonjsonlogger.json import JsonFormatter

from regulation_ingest.core.config.settings import settings
from regulation_ingest.core.constants import (
    LOG_LEVEL_CRITICAL,
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_ERROR,
    LOG_LEVEL_INFO,
    LOG_LEVEL_WARNING,
)


class LoggingConfig:
    """
    Logging configuration and setup.

    Configures the standard library root logger (handlers and formatters) and
    structlog on top of it. Safe to call ``configure`` more than once.
    """

    def __init__(self) -> None:
        """Initialize logging configuration."""
        self._configured = False

    # =========================================================================
    # SETUP
    # =========================================================================

    def configure(self) -> None:
        """
        Configure application logging.

        Example:
            >>> from regulation_ingest.core.config.logging import logging_config
            >>> logging_config.configure()
        """
        if self._configured:
            return

        self._configure_standard_logging()
        self._configure_structlog()

        self._configured = True

    def _configure_standard_logging(self) -> None:
        """Configure Python's standard logging module."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self._get_log_level())

        root_logger.handlers.clear()
        root_logger.addHandler(self._create_console_handler())

        if settings.LOG_FILE_ENABLED:
            file_handler = self._create_file_handler()
            if file_handler:
                root_logger.addHandler(file_handler)

        self._configure_third_party_loggers()

    def _configure_structlog(self) -> None:
        """Configure structlog to hand events to stdlib handlers."""
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            # job_id and friends bound with set_log_context
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # event dict -> LogRecord msg + extra, rendered by the formatters below
            structlog.stdlib.render_to_log_kwargs,
        ]

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _create_console_handler(self) -> logging.StreamHandler:
        """
        Create console (stderr) handler.

        Returns:
            logging.StreamHandler: Configured console handler
        """
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(self._get_log_level())

        if settings.LOG_FORMAT == "json":
            formatter = self._create_json_formatter()
        else:
            formatter = self._create_text_formatter()

        handler.setFormatter(formatter)
        return handler

    def _create_file_handler(self) -> logging.Handler | None:
        """
        Create rotating file handler.

        Returns:
            logging.Handler | None: Configured file handler or None if failed
        """
        try:
            log_path = Path(settings.LOG_FILE_PATH)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            handler = logging.handlers.RotatingFileHandler(
                filename=str(log_path),
                maxBytes=settings.LOG_FILE_MAX_BYTES,
                backupCount=settings.LOG_FILE_BACKUP_COUNT,
                encoding="utf-8",
            )
            handler.setLevel(self._get_log_level())

            # Always JSON for file logs
            handler.setFormatter(self._create_json_formatter())
            return handler
        except OSError as e:
            print(f"Failed to create log file handler: {e}", file=sys.stderr)
            return None

    # =========================================================================
    # FORMATTERS
    # =========================================================================

    def _create_json_formatter(self) -> JsonFormatter:
        """
        Create JSON log formatter.

        Returns:
            JsonFormatter: JSON formatter
        """
        return JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "levelname": "level",
                "name": "logger",
                "asctime": "logged_at",
            },
            json_ensure_ascii=False,
        )

    def _create_text_formatter(self) -> logging.Formatter:
        """
        Create human-readable text formatter.

        Returns:
            logging.Formatter: Text formatter
        """
        return _KeyValueFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    # =========================================================================
    # THIRD-PARTY LOGGERS
    # =========================================================================

    def _configure_third_party_loggers(self) -> None:
        """Configure log levels for third-party libraries."""
        noisy_loggers = {
            "asyncio": logging.WARNING,
            "aiosqlite": logging.WARNING,
            "sqlalchemy.engine": logging.WARNING,
            "sqlalchemy.pool": logging.WARNING,
        }

        for logger_name, level in noisy_loggers.items():
            logging.getLogger(logger_name).setLevel(level)

    # =========================================================================
    # UTILITIES
    # =========================================================================

    def _get_log_level(self) -> int:
        """
        Get numeric log level from settings.

        Returns:
            int: Logging level constant
        """
        level_map = {
            LOG_LEVEL_DEBUG: logging.DEBUG,
            LOG_LEVEL_INFO: logging.INFO,
            LOG_LEVEL_WARNING: logging.WARNING,
            LOG_LEVEL_ERROR: logging.ERROR,
            LOG_LEVEL_CRITICAL: logging.CRITICAL,
        }

        return level_map.get(settings.LOG_LEVEL, logging.INFO)

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """
        Get a structured logger.

        Args:
            name: Logger name (usually __name__)

        Returns:
            structlog.stdlib.BoundLogger: Configured logger

        Example:
            >>> logger = logging_config.get_logger(__name__)
            >>> logger.info("Edition imported", edition_number=1)
        """
        if not self._configured:
            self.configure()

        return structlog.get_logger(name)

    def set_context(self, **kwargs: Any) -> None:
        """
        Set context variables for all subsequent logs.

        Context is preserved across async boundaries.

        Args:
            **kwargs: Context key-value pairs
        """
        structlog.contextvars.bind_contextvars(**kwargs)

    def clear_context(self) -> None:
        """Clear all context variables."""
        structlog.contextvars.clear_contextvars()


class _KeyValueFormatter(logging.Formatter):
    """Text formatter that appends structlog event fields as ``key=value`` pairs."""

    _RESERVED = frozenset(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED and key not in ("level", "timestamp")
        }
        if not extras:
            return base
        pairs = " ".join(f"{key}={value!r}" for key, value in extras.items())
        return f"{base} | {pairs}"


# =============================================================================
# GLOBAL LOGGING CONFIG INSTANCE
# =============================================================================

logging_config = LoggingConfig()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def configure_logging() -> None:
    """
    Configure application logging.

    Example:
        >>> from regulation_ingest.core.config.logging import configure_logging
        >>> configure_logging()
    """
    logging_config.configure()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger.

    Args:
        name: Logger name (defaults to the package name)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger

    Example:
        >>> from regulation_ingest.core.config.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Parsing started", file_path="regs.txt")
    """
    return logging_config.get_logger(name or "regulation_ingest")


def set_log_context(**kwargs: Any) -> None:
    """
    Set logging context variables.

    Example:
        >>> set_log_context(job_id="import-1")
    """
    logging_config.set_context(**kwargs)


def clear_log_context() -> None:
    """Clear all logging context variables."""
    logging_config.clear_context()


__all__ = [
    "LoggingConfig",
    "logging_config",
    "configure_logging",
    "get_logger",
    "set_log_context",
    "clear_log_context",
]

"""
Logging utilities for the regulation ingestion pipeline.

The base logging configuration is in regulation_ingest.core.config.logging.
This module re-exports it and adds helpers built on top of it.

Usage:
    >>> from regulation_ingest.core.logging import get_logger, log_execution_time
    >>>
    >>> logger = get_logger(__name__)
    >>>
    >>> @log_execution_time
    ... async def import_file(path):
    ...     ...
"""
import functools
import inspect
import time
from typing import Any, Callable, TypeVar

from regulation_ingest.core.config.logging import (
    clear_log_context,
    configure_logging,
    get_logger,
    logging_config,
    set_log_context,
)

F = TypeVar("F", bound=Callable[..., Any])


def log_execution_time(func: F) -> F:
    """
    Log how long the decorated function (sync or async) took.

    The duration is logged at debug level on success and at warning level
    when the function raises; the exception is re-raised unchanged.
    """
    logger = get_logger(func.__module__)

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception:
                logger.warning(
                    "Call failed",
                    function=func.__qualname__,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )
                raise
            logger.debug(
                "Call finished",
                function=func.__qualname__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return result

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception:
            logger.warning(
                "Call failed",
                function=func.__qualname__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        logger.debug(
            "Call finished",
            function=func.__qualname__,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return result

    return sync_wrapper  # type: ignore[return-value]


__all__ = [
    "configure_logging",
    "get_logger",
    "set_log_context",
    "clear_log_context",
    "logging_config",
    "log_execution_time",
]

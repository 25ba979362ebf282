"""
Progress Tracker - parse/import job progress reporting.

Progress is pushed to a caller-supplied sink:

    sink(percentage, message, status, elapsed_seconds, data)

Sinks are best-effort. A sink that raises is logged and ignored; a sink that
returns a coroutine is scheduled on the running event loop and not awaited.
Neither can slow down or fail the pipeline.

Long phases (parsing, importing) report through ``PhaseProgress``, which maps
``done / total`` onto a percentage window (e.g. 30-60 %) and only emits when
the integer percentage changes.

Cancellation is cooperative: ``CancellationToken`` is polled between edition
transactions by the importer.

Usage:
    >>> from regulation_ingest.core.queue.progress_tracker import (
    ...     ProgressReporter, ProgressStatus,
    ... )
    >>>
    >>> reporter = ProgressReporter(sink=print_progress)
    >>> reporter.report(0, "Import started", ProgressStatus.STARTED)
    >>> phase = reporter.phase(30, 60, ProgressStatus.PARSING)
    >>> phase.update(5000, 10000, "Parsing lines")  # reports 45 %
"""

import asyncio
import inspect
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from regulation_ingest.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class ProgressStatus(str, Enum):
    """Job phase reported with every progress update."""
    STARTED = "started"
    LOADING = "loading"
    ANALYZING = "analyzing"
    PARSING = "parsing"
    PARSING_COMPLETE = "parsing_complete"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ProgressSink = Callable[[int, str, str, float, Optional[dict[str, Any]]], Any]


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class ProgressUpdate:
    """Single progress update event."""
    percentage: int
    message: str
    status: ProgressStatus
    elapsed_seconds: float
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentage": self.percentage,
            "message": self.message,
            "status": self.status.value,
            "elapsed_time": round(self.elapsed_seconds, 3),
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


# =============================================================================
# CANCELLATION
# =============================================================================


class CancellationToken:
    """Thread-safe cooperative cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# =============================================================================
# REPORTER
# =============================================================================


class ProgressReporter:
    """
    Emits progress updates to an optional sink and keeps a short history.

    Args:
        sink: Callable receiving ``(percentage, message, status, elapsed, data)``
        clock: Monotonic clock used for elapsed time
        history_size: Number of updates kept in ``history``
    """

    def __init__(
        self,
        sink: ProgressSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        history_size: int = 100,
    ) -> None:
        self.sink = sink
        self._clock = clock
        self._started = clock()
        self.history: deque[ProgressUpdate] = deque(maxlen=history_size)
        self._pending: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def last(self) -> ProgressUpdate | None:
        return self.history[-1] if self.history else None

    def report(
        self,
        percentage: int,
        message: str,
        status: ProgressStatus,
        data: dict[str, Any] | None = None,
    ) -> ProgressUpdate:
        """
        Record an update and forward it to the sink.

        Args:
            percentage: 0-100
            message: Human-readable message
            status: Current phase
            data: Optional phase data (line counts, stats ...)

        Returns:
            ProgressUpdate: The recorded update
        """
        update = ProgressUpdate(
            percentage=max(0, min(100, int(percentage))),
            message=message,
            status=status,
            elapsed_seconds=self.elapsed,
            timestamp=datetime.now(timezone.utc),
            data=data or {},
        )
        self.history.append(update)

        logger.debug(
            "Progress",
            percentage=update.percentage,
            progress_message=message,
            status=status.value,
        )

        if self.sink is not None:
            self._deliver(update)

        return update

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Deliver async sink results to ``loop`` when reporting from worker threads."""
        self._loop = loop

    def phase(self, start: int, end: int, status: ProgressStatus) -> "PhaseProgress":
        """Create a reporter for a phase spanning ``start``-``end`` percent."""
        return PhaseProgress(self, start, end, status)

    def _deliver(self, update: ProgressUpdate) -> None:
        try:
            outcome = self.sink(
                update.percentage,
                update.message,
                update.status.value,
                update.elapsed_seconds,
                update.data or None,
            )
        except Exception as e:
            logger.warning(
                "Progress sink failed",
                error=str(e),
                error_type=type(e).__name__,
                percentage=update.percentage,
            )
            return

        if inspect.isawaitable(outcome):
            self._schedule(outcome)

    def _schedule(self, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            if (
                self._loop is not None
                and self._loop.is_running()
                and inspect.iscoroutine(awaitable)
            ):
                future = asyncio.run_coroutine_threadsafe(awaitable, self._loop)
                future.add_done_callback(self._on_sink_done)
                return
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning("Async progress sink called outside an event loop; update dropped")
            return

        task = loop.create_task(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_sink_done)

    def _on_sink_done(self, task: Any) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "Async progress sink failed",
                error=str(error),
                error_type=type(error).__name__,
            )


class PhaseProgress:
    """
    Maps ``done / total`` inside a phase onto a percentage window.

    Only reports when the integer percentage changes, so it is safe to call
    once per line.
    """

    def __init__(
        self,
        reporter: ProgressReporter,
        start: int,
        end: int,
        status: ProgressStatus,
    ) -> None:
        self.reporter = reporter
        self.start = start
        self.end = end
        self.status = status
        self._last_percentage: int | None = None

    def update(
        self,
        done: int,
        total: int,
        message: str = "",
        data: dict[str, Any] | None = None,
    ) -> None:
        if total <= 0:
            fraction = 1.0
        else:
            fraction = max(0.0, min(1.0, done / total))
        percentage = self.start + int((self.end - self.start) * fraction)

        if percentage == self._last_percentage:
            return
        self._last_percentage = percentage
        self.reporter.report(percentage, message or self.status.value, self.status, data)


__all__ = [
    "ProgressStatus",
    "ProgressSink",
    "ProgressUpdate",
    "CancellationToken",
    "ProgressReporter",
    "PhaseProgress",
]

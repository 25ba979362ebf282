"""
Job progress reporting and cancellation.
"""
from regulation_ingest.core.queue.progress_tracker import (
    CancellationToken,
    PhaseProgress,
    ProgressReporter,
    ProgressStatus,
    ProgressUpdate,
)

__all__ = [
    "CancellationToken",
    "PhaseProgress",
    "ProgressReporter",
    "ProgressStatus",
    "ProgressUpdate",
]

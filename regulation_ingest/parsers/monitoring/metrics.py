"""Pipeline Metrics
Prometheus metrics for the regulation parse / import / retry pipeline

- Parse throughput and duration
- Parse errors by type
- Import outcomes per hierarchy level
- Edition transaction outcomes
- Retry attempts and permanent failures
"""
from typing import Optional
import time
import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ============================================================================
# METRIC DEFINITIONS
# ============================================================================

LINES_PROCESSED_TOTAL = Counter(
    'regulation_parser_lines_processed_total',
    'Total number of source lines processed by the parser'
)

PARSE_ERRORS_TOTAL = Counter(
    'regulation_parser_errors_total',
    'Parse errors recorded by the builder',
    ['error_type']  # structural_error, validation_error, fatal
)

PARSE_DURATION_SECONDS = Histogram(
    'regulation_parser_parse_duration_seconds',
    'Duration of a full document parse in seconds',
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0]
)

PARSE_THROUGHPUT = Gauge(
    'regulation_parser_lines_per_second',
    'Lines per second of the most recent parse'
)

IMPORT_NODES_TOTAL = Counter(
    'regulation_import_nodes_total',
    'Hierarchy nodes handled by the importer',
    ['level', 'outcome']  # outcome: created, updated, failed
)

IMPORT_EDITIONS_TOTAL = Counter(
    'regulation_import_edition_transactions_total',
    'Edition transactions by outcome',
    ['outcome']  # committed, rolled_back
)

RETRY_ATTEMPTS_TOTAL = Counter(
    'regulation_retry_attempts_total',
    'Retry attempts by record type and outcome',
    ['record_type', 'outcome']  # outcome: success, failure
)

RETRY_PERMANENT_FAILURES_TOTAL = Counter(
    'regulation_retry_permanent_failures_total',
    'Records classified as permanent failures',
    ['record_type']
)


# ============================================================================
# RECORDING HELPERS
# ============================================================================

def record_parse_run(lines: int, duration_seconds: float, lines_per_second: float) -> None:
    """Record a finished parse

    Args:
        lines: Lines processed
        duration_seconds: Wall time of the parse
        lines_per_second: Throughput
    """
    LINES_PROCESSED_TOTAL.inc(lines)
    PARSE_DURATION_SECONDS.observe(duration_seconds)
    PARSE_THROUGHPUT.set(lines_per_second)


def record_parse_error(error_type: str) -> None:
    PARSE_ERRORS_TOTAL.labels(error_type=error_type).inc()


def record_import_node(level: str, outcome: str, count: int = 1) -> None:
    """Record importer outcomes for one level

    Args:
        level: edition, chapter, regulation, article, clause
        outcome: created, updated, failed
        count: Number of nodes
    """
    if count:
        IMPORT_NODES_TOTAL.labels(level=level, outcome=outcome).inc(count)


def record_edition_transaction(committed: bool) -> None:
    IMPORT_EDITIONS_TOTAL.labels(outcome="committed" if committed else "rolled_back").inc()


def record_retry_attempt(record_type: str, success: bool) -> None:
    RETRY_ATTEMPTS_TOTAL.labels(
        record_type=record_type,
        outcome="success" if success else "failure"
    ).inc()


def record_permanent_failure(record_type: str) -> None:
    RETRY_PERMANENT_FAILURES_TOTAL.labels(record_type=record_type).inc()


# ============================================================================
# METRICS CONTEXT MANAGER
# ============================================================================

class ParsingMetricsContext:
    """Context manager timing a parse and counting fatal failures"""

    def __init__(self) -> None:
        self.start_time: Optional[float] = None
        self.duration: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time
        PARSE_DURATION_SECONDS.observe(self.duration)

        if exc_type is not None:
            record_parse_error("fatal")
            logger.error(f"Parse failed after {self.duration:.2f}s: {exc_type.__name__}")

        # Don't suppress exceptions
        return False


__all__ = [
    'record_parse_run',
    'record_parse_error',
    'record_import_node',
    'record_edition_transaction',
    'record_retry_attempt',
    'record_permanent_failure',
    'ParsingMetricsContext',
]

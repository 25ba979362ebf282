"""Parser Benchmark Harness
Wraps a parse run and measures throughput, memory and error rate.

Usage:
    >>> benchmark = ParserBenchmark()
    >>> benchmark.start()
    >>> parser = RegulationStructuralParser(
    ...     on_line=lambda _: benchmark.record_line_processed(),
    ...     on_error=lambda error: benchmark.record_error(error["message"]),
    ... )
    >>> result = parser.parse_file("regulations.txt")
    >>> metrics = benchmark.finish()
    >>> print(benchmark.generate_report())

Checkpoints are taken every ``checkpoint_interval`` lines and on every
recorded error. Memory is the resident set size from psutil; a failed sample
counts as 0 and never fails the benchmark.

Grades (lower bound inclusive):
    speed    (lines/s):    >=2000 A+, >=1000 A, >=500 B, >=100 C, else D
    memory   (bytes/line): <100 A+, <500 A, <1000 B, <2000 C, else D
    accuracy (success %):  >=99 A+, >=95 A, >=90 B, >=80 C, else D
    overall:               rounded mean of the three (A+=5 ... D=1)
"""
import csv
import io
import json
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

import psutil

from regulation_ingest.core.constants import (
    ACCURACY_GRADE_BANDS,
    DEFAULT_CHECKPOINT_INTERVAL,
    GRADE_SCORES,
    MEMORY_GRADE_BANDS,
    SPEED_GRADE_BANDS,
)
from regulation_ingest.parsers.monitoring.metrics import record_parse_error, record_parse_run

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024
_SCORE_GRADES = {score: grade for grade, score in GRADE_SCORES.items()}


# ============================================================================
# MEMORY SAMPLING
# ============================================================================


def current_memory_usage() -> int:
    """Resident set size of this process in bytes, 0 if it cannot be read."""
    try:
        return int(psutil.Process().memory_info().rss)
    except (psutil.Error, OSError) as e:
        logger.debug(f"Memory sample failed: {e}")
        return 0


# ============================================================================
# GRADING
# ============================================================================


def speed_grade(lines_per_second: float) -> str:
    for lower_bound, grade in SPEED_GRADE_BANDS:
        if lines_per_second >= lower_bound:
            return grade
    return "D"


def memory_grade(memory_per_line_bytes: float) -> str:
    for upper_bound, inclusive, grade in MEMORY_GRADE_BANDS:
        if memory_per_line_bytes < upper_bound or (inclusive and memory_per_line_bytes == upper_bound):
            return grade
    return "D"


def accuracy_grade(success_rate: float) -> str:
    for lower_bound, grade in ACCURACY_GRADE_BANDS:
        if success_rate >= lower_bound:
            return grade
    return "D"


def overall_grade(*grades: str) -> str:
    """Rounded (half up) mean of the component grade scores."""
    scores = [GRADE_SCORES[grade] for grade in grades]
    mean = sum(scores) / len(scores)
    return _SCORE_GRADES[int(math.floor(mean + 0.5))]


# ============================================================================
# DATA MODELS
# ============================================================================


@dataclass
class Checkpoint:
    message: str
    timestamp_offset: float
    memory_bytes: int
    lines_processed: int


@dataclass
class BenchmarkMetrics:
    """Derived metrics of a finished benchmark."""
    total_duration: float
    lines_per_second: float
    average_line_time: float
    start_memory_bytes: int
    peak_memory_bytes: int
    end_memory_bytes: int
    memory_used_bytes: int
    memory_per_line_bytes: float
    total_lines: int
    total_errors: int
    error_rate: float
    success_rate: float
    checkpoints: List[Checkpoint] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def start_memory_mb(self) -> float:
        return round(self.start_memory_bytes / _BYTES_PER_MB, 2)

    @property
    def peak_memory_mb(self) -> float:
        return round(self.peak_memory_bytes / _BYTES_PER_MB, 2)

    @property
    def memory_used_mb(self) -> float:
        return round(self.memory_used_bytes / _BYTES_PER_MB, 2)

    @property
    def speed_grade(self) -> str:
        return speed_grade(self.lines_per_second)

    @property
    def memory_grade(self) -> str:
        return memory_grade(self.memory_per_line_bytes)

    @property
    def accuracy_grade(self) -> str:
        return accuracy_grade(self.success_rate)

    @property
    def overall_grade(self) -> str:
        return overall_grade(self.speed_grade, self.memory_grade, self.accuracy_grade)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(
            start_memory_mb=self.start_memory_mb,
            peak_memory_mb=self.peak_memory_mb,
            memory_used_mb=self.memory_used_mb,
            grades={
                "speed": self.speed_grade,
                "memory": self.memory_grade,
                "accuracy": self.accuracy_grade,
                "overall": self.overall_grade,
            },
        )
        return data


# ============================================================================
# BENCHMARK
# ============================================================================


class ParserBenchmark:
    """
    Throughput / memory / accuracy harness for a parse run.

    Args:
        checkpoint_interval: Lines between automatic checkpoints
        clock: Monotonic clock in seconds
        memory_sampler: Returns resident memory in bytes
    """

    CSV_COLUMNS = (
        "total_duration",
        "lines_per_second",
        "memory_used_mb",
        "total_lines",
        "total_errors",
        "error_rate",
        "success_rate",
    )

    def __init__(
        self,
        checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
        clock: Callable[[], float] = time.perf_counter,
        memory_sampler: Callable[[], int] = current_memory_usage,
    ):
        if checkpoint_interval < 1:
            raise ValueError("checkpoint_interval must be positive")
        self.checkpoint_interval = checkpoint_interval
        self._clock = clock
        self._memory_sampler = memory_sampler

        self.start_time: Optional[float] = None
        self.start_memory = 0
        self.peak_memory = 0
        self.lines_processed = 0
        self.errors: List[Dict[str, Any]] = []
        self.checkpoints: List[Checkpoint] = []
        self.metrics: Optional[BenchmarkMetrics] = None

    # ------------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------------

    def start(self) -> None:
        self.start_time = self._clock()
        self.start_memory = self._sample_memory()
        self.peak_memory = self.start_memory
        self.lines_processed = 0
        self.errors = []
        self.checkpoints = []
        self.metrics = None
        logger.info(f"Benchmark started (memory {self.start_memory / _BYTES_PER_MB:.2f} MB)")

    def record_line_processed(self) -> None:
        self.lines_processed += 1
        if self.lines_processed % self.checkpoint_interval == 0:
            self.log_checkpoint(f"Processed {self.lines_processed} lines")

    def record_error(
        self,
        message: str,
        line_number: Optional[int] = None,
        error_type: str = "structural_error",
    ) -> None:
        self.errors.append({
            "message": message,
            "line_number": line_number,
            "timestamp_offset": round(self._elapsed(), 6),
            "lines_processed": self.lines_processed,
        })
        record_parse_error(error_type)
        self.log_checkpoint(f"Error: {message}")

    def log_checkpoint(self, message: str) -> Checkpoint:
        checkpoint = Checkpoint(
            message=message,
            timestamp_offset=round(self._elapsed(), 6),
            memory_bytes=self._sample_memory(),
            lines_processed=self.lines_processed,
        )
        self.checkpoints.append(checkpoint)
        logger.debug(f"[{checkpoint.timestamp_offset:.2f}s] {message}")
        return checkpoint

    def finish(self) -> BenchmarkMetrics:
        """
        Stop the benchmark and compute derived metrics.

        Raises:
            RuntimeError: ``start()`` was not called
        """
        if self.start_time is None:
            raise RuntimeError("Benchmark was not started")

        duration = self._elapsed()
        end_memory = self._sample_memory()
        lines = self.lines_processed
        total_errors = len(self.errors)

        memory_used = max(0, end_memory - self.start_memory)
        error_rate = round(total_errors / lines * 100, 2) if lines else 0.0
        success_rate = round((lines - total_errors) / lines * 100, 2) if lines else 100.0

        self.metrics = BenchmarkMetrics(
            total_duration=round(duration, 6),
            lines_per_second=round(lines / duration, 2) if duration > 0 else 0.0,
            average_line_time=duration / lines if lines else 0.0,
            start_memory_bytes=self.start_memory,
            peak_memory_bytes=self.peak_memory,
            end_memory_bytes=end_memory,
            memory_used_bytes=memory_used,
            memory_per_line_bytes=round(memory_used / lines, 2) if lines else 0.0,
            total_lines=lines,
            total_errors=total_errors,
            error_rate=error_rate,
            success_rate=success_rate,
            checkpoints=list(self.checkpoints),
            errors=list(self.errors),
        )

        record_parse_run(lines, duration, self.metrics.lines_per_second)
        logger.info(
            f"Benchmark finished: {lines} lines in {duration:.2f}s "
            f"({self.metrics.lines_per_second} lines/s, grade {self.metrics.overall_grade})"
        )
        return self.metrics

    # ------------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------------

    def generate_report(self) -> str:
        if self.metrics is None:
            return "Benchmark not completed"
        m = self.metrics

        lines = [
            "=" * 60,
            "REGULATION PARSER BENCHMARK REPORT",
            "=" * 60,
            "",
            "PROCESSING SUMMARY",
            "-" * 30,
            f"Total Lines Processed: {m.total_lines:,}",
            f"Total Duration: {_format_duration(m.total_duration)}",
            f"Processing Speed: {m.lines_per_second:.2f} lines/sec",
            f"Average Time per Line: {m.average_line_time * 1000:.4f} ms",
            "",
            "MEMORY USAGE",
            "-" * 30,
            f"Start Memory: {m.start_memory_mb} MB",
            f"Peak Memory: {m.peak_memory_mb} MB",
            f"Memory Used: {m.memory_used_mb} MB",
            f"Memory per Line: {m.memory_per_line_bytes} bytes",
            "",
            "ERROR STATISTICS",
            "-" * 30,
            f"Total Errors: {m.total_errors}",
            f"Error Rate: {m.error_rate}%",
            f"Success Rate: {m.success_rate}%",
            "",
            "PERFORMANCE GRADE",
            "-" * 30,
            f"Speed Grade: {m.speed_grade}",
            f"Memory Grade: {m.memory_grade}",
            f"Accuracy Grade: {m.accuracy_grade}",
            f"Overall Grade: {m.overall_grade}",
            "",
        ]

        if m.checkpoints:
            lines += ["RECENT CHECKPOINTS", "-" * 30]
            for checkpoint in m.checkpoints[-5:]:
                lines.append(
                    f"[{checkpoint.timestamp_offset:.2f}s] {checkpoint.message} "
                    f"({checkpoint.memory_bytes / _BYTES_PER_MB:.2f} MB)"
                )
            lines.append("")

        if m.errors:
            lines += ["RECENT ERRORS", "-" * 30]
            for error in m.errors[-5:]:
                lines.append(f"[{error['timestamp_offset']:.2f}s] {error['message']}")
            lines.append("")

        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return self.metrics.to_dict() if self.metrics else {}

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    def to_csv(self) -> str:
        if self.metrics is None:
            return ""
        data = self.metrics.to_dict()
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(self.CSV_COLUMNS)
        writer.writerow([data[column] for column in self.CSV_COLUMNS])
        return buffer.getvalue()

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    def _elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return self._clock() - self.start_time

    def _sample_memory(self) -> int:
        try:
            sample = int(self._memory_sampler())
        except Exception as e:
            logger.debug(f"Memory sampling failed: {e}")
            sample = 0
        self.peak_memory = max(self.peak_memory, sample)
        return sample


def _format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.2f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    minutes, remainder = divmod(seconds, 60)
    return f"{int(minutes)}m {remainder:.2f}s"


__all__ = [
    'Checkpoint',
    'BenchmarkMetrics',
    'ParserBenchmark',
    'current_memory_usage',
    'speed_grade',
    'memory_grade',
    'accuracy_grade',
    'overall_grade',
]

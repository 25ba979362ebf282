"""
Parser Benchmark Tests.

Clock and memory sampler are injected so every metric and grade is
deterministic.

Usage:
    pytest regulation_ingest/tests/test_benchmark.py -v
"""

import csv
import io
import json

import pytest

from regulation_ingest.parsers.monitoring.benchmark import (
    ParserBenchmark,
    accuracy_grade,
    memory_grade,
    overall_grade,
    speed_grade,
)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMemory:
    """Memory sampler returning queued samples, repeating the last one."""

    def __init__(self, *samples: int):
        self.samples = list(samples)

    def __call__(self) -> int:
        if len(self.samples) > 1:
            return self.samples.pop(0)
        return self.samples[0]


def failing_sampler() -> int:
    raise OSError("no /proc")


def run_lines(benchmark: ParserBenchmark, clock: FakeClock, lines: int, seconds: float) -> None:
    benchmark.start()
    for _ in range(lines):
        benchmark.record_line_processed()
    clock.advance(seconds)


# =============================================================================
# GRADES
# =============================================================================


class TestGrades:
    """Grade bands are inclusive at their lower bound."""

    @pytest.mark.parametrize("speed,expected", [
        (2000, "A+"), (1999.99, "A"), (1000, "A"), (500, "B"), (100, "C"), (99.9, "D"), (0, "D"),
    ])
    def test_speed(self, speed, expected):
        assert speed_grade(speed) == expected

    @pytest.mark.parametrize("per_line,expected", [
        (0, "A+"), (99.9, "A+"), (100, "A"), (499, "A"), (500, "A"), (500.01, "B"),
        (1000, "B"), (1000.5, "C"), (2000, "C"), (2000.01, "D"),
    ])
    def test_memory(self, per_line, expected):
        assert memory_grade(per_line) == expected

    @pytest.mark.parametrize("rate,expected", [
        (100, "A+"), (99, "A+"), (98.9, "A"), (95, "A"), (90, "B"), (80, "C"), (79.99, "D"),
    ])
    def test_accuracy(self, rate, expected):
        assert accuracy_grade(rate) == expected

    @pytest.mark.parametrize("grades,expected", [
        (("A+", "A+", "A+"), "A+"),
        (("A", "A", "A+"), "A"),
        (("A+", "A+", "A"), "A+"),
        (("B", "A", "C"), "B"),
        (("D", "D", "C"), "D"),
        (("B", "C"), "B"),
    ])
    def test_overall_rounds_half_up(self, grades, expected):
        assert overall_grade(*grades) == expected


# =============================================================================
# METRICS
# =============================================================================


class TestMetrics:
    """Derived metrics of a finished run."""

    def test_throughput_and_memory(self):
        clock = FakeClock()
        benchmark = ParserBenchmark(clock=clock, memory_sampler=FakeMemory(1_000_000, 1_400_000))

        run_lines(benchmark, clock, 2000, 2.0)
        metrics = benchmark.finish()

        assert metrics.total_lines == 2000
        assert metrics.total_duration == 2.0
        assert metrics.lines_per_second == 1000.0
        assert metrics.average_line_time == pytest.approx(0.001)
        assert metrics.memory_used_bytes == 400_000
        assert metrics.memory_per_line_bytes == 200.0
        assert metrics.success_rate == 100.0
        assert metrics.error_rate == 0.0
        assert metrics.speed_grade == "A"
        assert metrics.memory_grade == "A"
        assert metrics.accuracy_grade == "A+"
        assert metrics.overall_grade == "A"

    def test_memory_never_negative(self):
        clock = FakeClock()
        benchmark = ParserBenchmark(clock=clock, memory_sampler=FakeMemory(5_000_000, 1_000_000))

        run_lines(benchmark, clock, 10, 1.0)

        assert benchmark.finish().memory_used_bytes == 0

    def test_failing_sampler_counts_as_zero(self):
        clock = FakeClock()
        benchmark = ParserBenchmark(clock=clock, memory_sampler=failing_sampler)

        run_lines(benchmark, clock, 10, 1.0)
        metrics = benchmark.finish()

        assert metrics.start_memory_bytes == 0
        assert metrics.memory_used_bytes == 0

    def test_errors_lower_accuracy(self):
        clock = FakeClock()
        benchmark = ParserBenchmark(clock=clock, memory_sampler=FakeMemory(0))

        run_lines(benchmark, clock, 10, 1.0)
        benchmark.record_error("Chapter without parent (edition): 제1장 목적", line_number=3)
        metrics = benchmark.finish()

        assert metrics.total_errors == 1
        assert metrics.error_rate == 10.0
        assert metrics.success_rate == 90.0
        assert metrics.accuracy_grade == "B"
        assert metrics.errors[0]["line_number"] == 3

    def test_empty_run(self):
        clock = FakeClock()
        benchmark = ParserBenchmark(clock=clock, memory_sampler=FakeMemory(0))

        benchmark.start()
        metrics = benchmark.finish()

        assert metrics.total_lines == 0
        assert metrics.lines_per_second == 0.0
        assert metrics.success_rate == 100.0

    def test_finish_without_start(self):
        with pytest.raises(RuntimeError):
            ParserBenchmark().finish()

    def test_invalid_checkpoint_interval(self):
        with pytest.raises(ValueError):
            ParserBenchmark(checkpoint_interval=0)

    def test_peak_memory_tracks_checkpoints(self):
        clock = FakeClock()
        sampler = FakeMemory(1_000_000, 9_000_000, 2_000_000)
        benchmark = ParserBenchmark(checkpoint_interval=5, clock=clock, memory_sampler=sampler)

        run_lines(benchmark, clock, 5, 1.0)
        metrics = benchmark.finish()

        assert metrics.peak_memory_bytes == 9_000_000
        assert metrics.end_memory_bytes == 2_000_000


# =============================================================================
# CHECKPOINTS AND REPORTS
# =============================================================================


class TestReports:
    """Checkpoints, text report and exports."""

    @pytest.fixture
    def finished(self):
        clock = FakeClock()
        benchmark = ParserBenchmark(checkpoint_interval=100, clock=clock, memory_sampler=FakeMemory(0))
        run_lines(benchmark, clock, 250, 0.25)
        benchmark.record_error("bad heading")
        benchmark.finish()
        return benchmark

    def test_checkpoints_every_interval_and_on_error(self, finished):
        messages = [checkpoint.message for checkpoint in finished.metrics.checkpoints]

        assert messages == ["Processed 100 lines", "Processed 200 lines", "Error: bad heading"]

    def test_report_text(self, finished):
        report = finished.generate_report()

        assert "REGULATION PARSER BENCHMARK REPORT" in report
        assert "Total Lines Processed: 250" in report
        assert "Total Errors: 1" in report
        assert "Overall Grade:" in report
        assert "bad heading" in report

    def test_report_before_finish(self):
        assert ParserBenchmark().generate_report() == "Benchmark not completed"

    def test_json_export(self, finished):
        data = json.loads(finished.to_json())

        assert data["total_lines"] == 250
        assert data["grades"]["speed"] == "A"
        assert set(data["grades"]) == {"speed", "memory", "accuracy", "overall"}

    def test_csv_export(self, finished):
        rows = list(csv.reader(io.StringIO(finished.to_csv())))

        assert rows[0] == list(ParserBenchmark.CSV_COLUMNS)
        assert rows[1][ParserBenchmark.CSV_COLUMNS.index("total_lines")] == "250"

    def test_restart_clears_previous_run(self, finished):
        finished.start()

        assert finished.lines_processed == 0
        assert finished.errors == []
        assert finished.metrics is None

"""
Progress reporter tests.

Usage:
    pytest regulation_ingest/tests/test_progress_tracker.py -v
"""

import asyncio

from regulation_ingest.core.queue.progress_tracker import (
    CancellationToken,
    ProgressReporter,
    ProgressStatus,
)


class StepClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestProgressReporter:
    """Updates, phases and sink delivery."""

    def test_percentage_is_clamped(self):
        reporter = ProgressReporter()

        assert reporter.report(150, "done", ProgressStatus.COMPLETED).percentage == 100
        assert reporter.report(-5, "start", ProgressStatus.STARTED).percentage == 0

    def test_elapsed_and_payload(self):
        clock = StepClock()
        reporter = ProgressReporter(clock=clock)
        clock.now = 2.5

        update = reporter.report(10, "Loading file", ProgressStatus.LOADING, {"line_count": 24})

        assert update.elapsed_seconds == 2.5
        assert update.to_dict()["status"] == "loading"
        assert update.to_dict()["data"] == {"line_count": 24}

    def test_history_is_bounded(self):
        reporter = ProgressReporter(history_size=3)

        for percentage in range(10):
            reporter.report(percentage, "step", ProgressStatus.PARSING)

        assert [update.percentage for update in reporter.history] == [7, 8, 9]
        assert reporter.last.percentage == 9

    def test_phase_only_reports_changes(self):
        reporter = ProgressReporter()
        phase = reporter.phase(30, 60, ProgressStatus.PARSING)

        for line in range(1, 1001):
            phase.update(line, 1000)

        percentages = [update.percentage for update in reporter.history]
        assert percentages == list(range(30, 61))

    def test_phase_with_empty_total(self):
        reporter = ProgressReporter()

        reporter.phase(70, 99, ProgressStatus.IMPORTING).update(0, 0)

        assert reporter.last.percentage == 99

    def test_sink_errors_are_swallowed(self):
        def sink(*args):
            raise ValueError("sink down")

        reporter = ProgressReporter(sink=sink)

        assert reporter.report(50, "half", ProgressStatus.PARSING).percentage == 50

    def test_async_sink_without_loop_is_dropped(self):
        received = []

        async def sink(percentage, message, status, elapsed, data):
            received.append(percentage)

        ProgressReporter(sink=sink).report(10, "Loading", ProgressStatus.LOADING)

        assert received == []

    async def test_async_sink_inside_loop(self):
        received = []

        async def sink(percentage, message, status, elapsed, data):
            received.append((percentage, status))

        reporter = ProgressReporter(sink=sink)
        reporter.report(10, "Loading", ProgressStatus.LOADING)
        await asyncio.sleep(0)

        assert received == [(10, "loading")]

    async def test_async_sink_from_worker_thread(self):
        received = []

        async def sink(percentage, message, status, elapsed, data):
            received.append(percentage)

        reporter = ProgressReporter(sink=sink)
        reporter.attach_loop(asyncio.get_running_loop())

        await asyncio.to_thread(reporter.report, 40, "Parsing", ProgressStatus.PARSING)
        for _ in range(3):
            await asyncio.sleep(0)

        assert received == [40]


class TestCancellationToken:
    def test_cancel(self):
        token = CancellationToken()
        assert not token.cancelled

        token.cancel()

        assert token.cancelled

"""
Regulation Import Job Tests.

Runs the parse-then-import job end to end against the sample file and a
SQLite database, recording progress through sync and async sinks.

Usage:
    pytest regulation_ingest/tests/test_import_job.py -v
"""

import asyncio
import json

from regulation_ingest.core.queue.progress_tracker import CancellationToken, ProgressStatus
from regulation_ingest.services.regulation_import_job import RegulationImportJob
from regulation_ingest.services.regulation_importer import read_error_log

from .test_regulation_importer import FailingRegulationRepository, count_rows

MILESTONES = [
    (0, "started"),
    (10, "loading"),
    (20, "analyzing"),
    (60, "parsing_complete"),
    (70, "importing"),
    (100, "completed"),
]


class RecordingSink:
    """Sync progress sink collecting ``(percentage, status)`` pairs."""

    def __init__(self):
        self.updates = []

    def __call__(self, percentage, message, status, elapsed_seconds, data=None):
        self.updates.append((percentage, status))


class AsyncRecordingSink(RecordingSink):
    async def __call__(self, percentage, message, status, elapsed_seconds, data=None):
        self.updates.append((percentage, status))


def raising_sink(percentage, message, status, elapsed_seconds, data=None):
    raise ConnectionError("progress channel closed")


# =============================================================================
# SUCCESSFUL RUNS
# =============================================================================


class TestImportJob:
    """Full job runs."""

    async def test_completed_run(self, sample_file, session_factory):
        sink = RecordingSink()
        job = RegulationImportJob(session_factory, sink=sink, job_id="job-1")

        outcome = await job.run(str(sample_file))

        assert outcome.status == ProgressStatus.COMPLETED
        assert outcome.job_id == "job-1"
        assert outcome.error is None
        assert outcome.file_info["line_count"] == 24
        assert outcome.parse_result.statistics.regulations == 3
        assert outcome.parse_result.benchmark.total_lines == 24
        assert outcome.import_result.total_processed == 18
        assert await count_rows(session_factory) == {
            "editions": 2, "chapters": 3, "regulations": 3, "articles": 5, "clauses": 5,
        }

    async def test_progress_milestones(self, sample_file, session_factory):
        sink = RecordingSink()

        await RegulationImportJob(session_factory, sink=sink).run(str(sample_file))

        percentages = [percentage for percentage, _ in sink.updates]
        assert percentages == sorted(percentages)
        for milestone in MILESTONES:
            assert milestone in sink.updates

        parsing = [p for p, status in sink.updates if status == "parsing"]
        importing = [p for p, status in sink.updates if status == "importing"]
        assert parsing and all(30 <= p <= 60 for p in parsing)
        assert importing[-1] == 99

    async def test_async_sink(self, sample_file, session_factory):
        sink = AsyncRecordingSink()

        outcome = await RegulationImportJob(session_factory, sink=sink).run(str(sample_file))
        for _ in range(3):
            await asyncio.sleep(0)

        assert outcome.status == ProgressStatus.COMPLETED
        assert (0, "started") in sink.updates
        assert (100, "completed") in sink.updates
        assert any(status == "parsing" for _, status in sink.updates)

    async def test_failing_sink_does_not_fail_the_job(self, sample_file, session_factory):
        outcome = await RegulationImportJob(session_factory, sink=raising_sink).run(str(sample_file))

        assert outcome.status == ProgressStatus.COMPLETED

    async def test_result_file(self, sample_file, session_factory, tmp_path):
        result_path = tmp_path / "out" / "result.json"

        outcome = await RegulationImportJob(session_factory).run(
            str(sample_file), result_path=result_path
        )
        saved = json.loads(result_path.read_text(encoding="utf-8"))

        assert outcome.result_path == result_path
        assert saved["status"] == "completed"
        assert saved["parse"]["statistics"]["total_lines"] == 24
        assert saved["benchmark"]["grades"]["accuracy"] == "A+"
        assert saved["import"]["total_processed"] == 18
        assert saved["error_log_path"] is None

    async def test_node_errors_are_logged(self, tmp_path, session_factory):
        source = tmp_path / "regulations.txt"
        source.write_text(
            "제1편 학칙\n제1장 총칙\n학칙 1-1-1A\n제1조(목적) 목적\n학사규정 1-1-2\n제1조(목적) 목적\n",
            encoding="utf-8",
        )
        error_log = tmp_path / "errors.csv"

        outcome = await RegulationImportJob(session_factory).run(
            str(source), error_log_path=error_log
        )

        assert outcome.status == ProgressStatus.COMPLETED
        assert outcome.error_log_path == error_log
        records = read_error_log(error_log)
        assert [record["type"] for record in records] == ["regulation"]
        assert records[0]["data"]["code"] == "1-1-1A"


# =============================================================================
# FAILED AND CANCELLED RUNS
# =============================================================================


class TestImportJobFailures:
    """Failures and cancellation end at 100 with the matching status."""

    async def test_missing_file(self, tmp_path, session_factory):
        sink = RecordingSink()

        outcome = await RegulationImportJob(session_factory, sink=sink).run(
            str(tmp_path / "missing.txt")
        )

        assert outcome.status == ProgressStatus.FAILED
        assert "Cannot read regulation file" in outcome.error
        assert outcome.parse_result is None
        assert sink.updates[-1] == (100, "failed")

    async def test_cancel_before_run(self, sample_file, session_factory):
        token = CancellationToken()
        token.cancel()
        sink = RecordingSink()

        outcome = await RegulationImportJob(session_factory, sink=sink, cancel_token=token).run(
            str(sample_file)
        )

        assert outcome.status == ProgressStatus.CANCELLED
        assert outcome.import_result is None
        assert sink.updates[-1] == (100, "cancelled")
        assert (await count_rows(session_factory))["editions"] == 0

    async def test_cancel_method(self, sample_file, session_factory):
        job = RegulationImportJob(session_factory)
        job.cancel()

        outcome = await job.run(str(sample_file))

        assert outcome.status == ProgressStatus.CANCELLED

    async def test_rolled_back_edition_fails_the_job(self, sample_file, session_factory, tmp_path):
        error_log = tmp_path / "errors.csv"
        result_path = tmp_path / "result.json"
        job = RegulationImportJob(session_factory, repository_factory=FailingRegulationRepository)

        outcome = await job.run(str(sample_file), result_path=result_path, error_log_path=error_log)

        assert outcome.status == ProgressStatus.FAILED
        assert outcome.error == "One or more edition transactions were rolled back"
        assert outcome.import_result.stats["editions"].failed == 1
        assert [record["type"] for record in read_error_log(error_log)] == ["transaction_error"]
        assert json.loads(result_path.read_text(encoding="utf-8"))["status"] == "failed"

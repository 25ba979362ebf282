"""
Regulation Import Job.

End-to-end import of one regulation text file with progress reporting:

    0   started
    10  loading          file opened
    20  analyzing        line count and file size known
    30-60 parsing        per-line progress
    60  parsing_complete parse statistics
    70-99 importing      per-edition progress
    100 completed / failed / cancelled

Parsing is CPU bound and runs in a worker thread; the import runs on the
event loop. Every log line of a run carries its ``job_id``.

Example:
    >>> job = RegulationImportJob(session_factory, sink=print_progress)
    >>> outcome = await job.run("regulations.txt", error_log_path="tmp/errors.csv")
    >>> outcome.status
    <ProgressStatus.COMPLETED: 'completed'>
"""
import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from regulation_ingest.core.config.logging import clear_log_context, set_log_context
from regulation_ingest.core.config.settings import Settings, settings as default_settings
from regulation_ingest.core.database.repositories.regulation import RegulationRepository
from regulation_ingest.core.exceptions import BaseAppException, ImportCancelledError
from regulation_ingest.core.logging import get_logger
from regulation_ingest.core.queue.progress_tracker import (
    CancellationToken,
    ProgressReporter,
    ProgressSink,
    ProgressStatus,
)
from regulation_ingest.parsers.core.exceptions import ParserError
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import ParseResult
from regulation_ingest.services.regulation_importer import ImportResult, RegulationImporter
from regulation_ingest.services.regulation_parser_service import RegulationParserService

logger = get_logger(__name__)


@dataclass
class ImportJobOutcome:
    """Final state of an import job."""
    job_id: str
    file_path: str
    status: ProgressStatus = ProgressStatus.STARTED
    file_info: dict[str, Any] = field(default_factory=dict)
    parse_result: ParseResult | None = None
    import_result: ImportResult | None = None
    error: str | None = None
    error_log_path: Path | None = None
    result_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        benchmark = self.parse_result.benchmark if self.parse_result else None
        return {
            "job_id": self.job_id,
            "file_path": self.file_path,
            "status": self.status.value,
            "file_info": self.file_info,
            "parse": {
                "statistics": self.parse_result.statistics.to_dict(),
                "metadata": self.parse_result.metadata,
                "errors": len(self.parse_result.errors),
            } if self.parse_result else None,
            "benchmark": benchmark.to_dict() if benchmark else None,
            "import": self.import_result.summary() if self.import_result else None,
            "error": self.error,
            "error_log_path": str(self.error_log_path) if self.error_log_path else None,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }


class RegulationImportJob:
    """
    Parse-then-import job for a single file.

    Args:
        session_factory: Async session factory for the import
        sink: Progress sink ``(percentage, message, status, elapsed, data)``
        parser_service: Parser service (built from ``config`` when omitted)
        repository_factory: Repository builder passed to the importer
        cancel_token: Cooperative cancellation token
        config: Settings (defaults to the global settings)
        job_id: Identifier bound to every log line of the run
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sink: ProgressSink | None = None,
        parser_service: RegulationParserService | None = None,
        repository_factory: Callable[[AsyncSession], RegulationRepository] = RegulationRepository,
        cancel_token: CancellationToken | None = None,
        config: Settings | None = None,
        job_id: str | None = None,
    ) -> None:
        self.config = config or default_settings
        self.session_factory = session_factory
        self.parser_service = parser_service or RegulationParserService(self.config)
        self.repository_factory = repository_factory
        self.cancel_token = cancel_token or CancellationToken()
        self.job_id = job_id or uuid.uuid4().hex[:12]
        self.reporter = ProgressReporter(sink=sink)

    def cancel(self) -> None:
        self.cancel_token.cancel()

    async def run(
        self,
        file_path: str,
        result_path: str | Path | None = None,
        error_log_path: str | Path | None = None,
    ) -> ImportJobOutcome:
        """
        Run the job. Never raises for pipeline failures; inspect ``status``.

        Args:
            file_path: Regulation text file
            result_path: Optional JSON file for the job outcome
            error_log_path: Optional CSV file for node failures
        """
        outcome = ImportJobOutcome(job_id=self.job_id, file_path=str(file_path))
        self.reporter.attach_loop(asyncio.get_running_loop())
        set_log_context(job_id=self.job_id)

        try:
            await self._execute(outcome, file_path)

            # Partial results are kept for cancelled and failed runs too
            if outcome.import_result is not None and error_log_path is not None:
                outcome.error_log_path = outcome.import_result.save_error_log(error_log_path)
            if result_path is not None:
                outcome.result_path = self._save_result(outcome, result_path)
        finally:
            clear_log_context()

        return outcome

    async def _execute(self, outcome: ImportJobOutcome, file_path: str) -> None:
        try:
            self.reporter.report(0, "Import started", ProgressStatus.STARTED, {"file_path": str(file_path)})
            await self._run_phases(outcome, file_path)
        except ImportCancelledError as e:
            outcome.status = ProgressStatus.CANCELLED
            outcome.error = e.message
            self.reporter.report(100, "Import cancelled", ProgressStatus.CANCELLED)
            logger.warning("Import job cancelled", file_path=str(file_path))
        except (ParserError, BaseAppException) as e:
            outcome.status = ProgressStatus.FAILED
            outcome.error = e.message
            self.reporter.report(100, f"Import failed: {e.message}", ProgressStatus.FAILED)
            logger.error("Import job failed", file_path=str(file_path), error=e.message)

    async def _run_phases(self, outcome: ImportJobOutcome, file_path: str) -> None:
        reporter = self.reporter

        reporter.report(10, "Loading file", ProgressStatus.LOADING)
        outcome.file_info = await asyncio.to_thread(self.parser_service.analyze_file, file_path)
        line_count = outcome.file_info["line_count"]
        reporter.report(
            20,
            f"Analyzed {line_count} lines",
            ProgressStatus.ANALYZING,
            outcome.file_info,
        )
        self._check_cancelled()

        parse_progress = reporter.phase(30, 60, ProgressStatus.PARSING)
        parse_result = await asyncio.to_thread(
            self.parser_service.parse_file_with_benchmark,
            file_path,
            parse_progress,
            line_count,
        )
        outcome.parse_result = parse_result
        reporter.report(
            60,
            "Parsing complete",
            ProgressStatus.PARSING_COMPLETE,
            parse_result.statistics.to_dict(),
        )
        self._check_cancelled()

        reporter.report(70, "Importing", ProgressStatus.IMPORTING)
        importer = RegulationImporter(
            self.session_factory,
            repository_factory=self.repository_factory,
            progress=reporter.phase(70, 99, ProgressStatus.IMPORTING),
            max_concurrent_editions=self.config.IMPORT_MAX_CONCURRENT_EDITIONS,
        )
        import_result = await importer.import_parsed_data(parse_result, cancel_token=self.cancel_token)
        outcome.import_result = import_result

        if import_result.cancelled:
            raise ImportCancelledError(details=import_result.summary())

        if import_result.success:
            outcome.status = ProgressStatus.COMPLETED
            reporter.report(100, "Import completed", ProgressStatus.COMPLETED, import_result.summary())
        else:
            outcome.status = ProgressStatus.FAILED
            outcome.error = "One or more edition transactions were rolled back"
            reporter.report(100, outcome.error, ProgressStatus.FAILED, import_result.summary())

        logger.info(
            "Import job finished",
            status=outcome.status.value,
            total_processed=import_result.total_processed,
            total_errors=import_result.total_errors,
        )

    def _check_cancelled(self) -> None:
        if self.cancel_token.cancelled:
            raise ImportCancelledError()

    def _save_result(self, outcome: ImportJobOutcome, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )
        logger.info("Import result saved", path=str(path))
        return path


__all__ = ["ImportJobOutcome", "RegulationImportJob"]

"""
Regulation Parser Service.

Builds a configured parser (noise rules from settings, placeholder title),
runs it over a file and, optionally, wraps the run in a ParserBenchmark.

Example:
    >>> service = RegulationParserService()
    >>> result = service.parse_file_with_benchmark("regulations.txt")
    >>> result.benchmark.overall_grade
    'A'
"""
from pathlib import Path
from typing import Any

from regulation_ingest.core.config.settings import Settings, settings as default_settings
from regulation_ingest.core.logging import get_logger
from regulation_ingest.core.queue.progress_tracker import PhaseProgress
from regulation_ingest.parsers.classifiers.line_classifier import LineClassifier, NoiseRuleSet
from regulation_ingest.parsers.core.exceptions import InputFileError
from regulation_ingest.parsers.monitoring.benchmark import ParserBenchmark
from regulation_ingest.parsers.monitoring.metrics import ParsingMetricsContext
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import (
    ParseResult,
    RegulationStructuralParser,
)

logger = get_logger(__name__)


class RegulationParserService:
    """
    Parser factory and runner.

    Args:
        config: Settings (defaults to the global settings)
        noise_rules: Explicit noise rule set; built from settings when omitted
    """

    def __init__(
        self,
        config: Settings | None = None,
        noise_rules: NoiseRuleSet | None = None,
    ) -> None:
        self.config = config or default_settings
        self.noise_rules = noise_rules or NoiseRuleSet.from_settings(
            extra_patterns=self.config.PARSER_EXTRA_NOISE_PATTERNS,
            patterns_file=self.config.PARSER_NOISE_PATTERNS_FILE,
        )

    def build_parser(self, **hooks: Any) -> RegulationStructuralParser:
        """Create a fresh parser; ``hooks`` are passed through (on_line, on_error)."""
        return RegulationStructuralParser(
            classifier=LineClassifier(self.noise_rules),
            placeholder_title=self.config.PARSER_PLACEHOLDER_TITLE,
            **hooks,
        )

    def analyze_file(self, file_path: str) -> dict[str, Any]:
        """
        Count lines and measure the file.

        Raises:
            InputFileError: File is missing or not decodable
        """
        path = Path(file_path)
        try:
            with path.open(encoding=self.config.PARSER_FILE_ENCODING) as handle:
                line_count = sum(1 for _ in handle)
            file_size = path.stat().st_size
        except (OSError, UnicodeDecodeError) as e:
            raise InputFileError(str(path), str(e), original_exception=e) from e

        return {
            "file_path": str(path),
            "line_count": line_count,
            "file_size": file_size,
            "file_size_mb": round(file_size / (1024 * 1024), 2),
        }

    def parse_file(
        self,
        file_path: str,
        progress: PhaseProgress | None = None,
        total_lines: int | None = None,
    ) -> ParseResult:
        parser = self.build_parser()
        with ParsingMetricsContext():
            return parser.parse_file(
                file_path,
                encoding=self.config.PARSER_FILE_ENCODING,
                progress=progress,
                total_lines=total_lines,
            )

    def parse_text(self, text: str) -> ParseResult:
        return self.build_parser().parse_text(text)

    def parse_file_with_benchmark(
        self,
        file_path: str,
        progress: PhaseProgress | None = None,
        total_lines: int | None = None,
        benchmark: ParserBenchmark | None = None,
    ) -> ParseResult:
        """
        Parse a file inside a benchmark run.

        The finished BenchmarkMetrics are attached as ``result.benchmark``.
        An unreadable file is recorded in the benchmark before the
        InputFileError propagates.
        """
        benchmark = benchmark or ParserBenchmark(
            checkpoint_interval=self.config.BENCHMARK_CHECKPOINT_INTERVAL,
        )
        parser = self.build_parser(
            on_line=lambda _line_number: benchmark.record_line_processed(),
            on_error=lambda error: benchmark.record_error(
                error["message"],
                line_number=error.get("line_number"),
                error_type=error.get("type", "structural_error"),
            ),
        )

        logger.info("Parsing with benchmark", file_path=str(file_path))
        benchmark.start()
        try:
            result = parser.parse_file(
                file_path,
                encoding=self.config.PARSER_FILE_ENCODING,
                progress=progress,
                total_lines=total_lines,
            )
        except InputFileError as e:
            benchmark.record_error(e.message, error_type="fatal")
            benchmark.finish()
            logger.error("Parsing failed", file_path=str(file_path), error=e.message)
            raise

        result.benchmark = benchmark.finish()
        logger.info(
            "Parsing finished",
            file_path=str(file_path),
            total_lines=result.statistics.total_lines,
            regulations=result.statistics.regulations,
            parse_errors=len(result.errors),
            lines_per_second=result.benchmark.lines_per_second,
            overall_grade=result.benchmark.overall_grade,
        )
        return result


__all__ = ["RegulationParserService"]

"""
Concurrent parsing tests.

Parser instances hold per-document state, so each thread builds its own;
the classifier and noise rules are shared read-only.

Usage:
    pytest regulation_ingest/tests/test_concurrency.py -v
"""

from concurrent.futures import ThreadPoolExecutor

from regulation_ingest.parsers.classifiers.line_classifier import LineClassifier, NoiseRuleSet
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import (
    RegulationStructuralParser,
)
from regulation_ingest.services.regulation_parser_service import RegulationParserService


class TestConcurrentParsing:
    """Parsing the same text from several threads gives identical trees."""

    def test_threads_with_own_parsers(self, sample_text):
        classifier = LineClassifier(NoiseRuleSet.default())

        def parse(_):
            return RegulationStructuralParser(classifier=classifier).parse_text(sample_text)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(parse, range(8)))

        expected = results[0].to_dict()["data"]
        for result in results:
            assert result.to_dict()["data"] == expected
            assert result.statistics.to_dict() == results[0].statistics.to_dict()

    def test_service_files_in_parallel(self, sample_file):
        service = RegulationParserService()

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(
                lambda _: service.parse_file_with_benchmark(str(sample_file)),
                range(4),
            ))

        assert {result.statistics.total_lines for result in results} == {24}
        assert all(result.benchmark.total_lines == 24 for result in results)

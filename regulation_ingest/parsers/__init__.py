"""
Regulation text parsing: line classification, tree building and benchmarking.

Usage:
    >>> from regulation_ingest.parsers import RegulationStructuralParser
    >>> result = RegulationStructuralParser().parse_file("regulations.txt")
    >>> result.statistics.regulations
    412
"""
from regulation_ingest.parsers.classifiers.line_classifier import (
    LineClassifier,
    LineKind,
    LineToken,
    NoiseRuleSet,
    normalize_line,
)
from regulation_ingest.parsers.core.parse_tree import NodeLevel, ParseTree, TreeNode
from regulation_ingest.parsers.monitoring.benchmark import BenchmarkMetrics, ParserBenchmark
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import (
    ParseResult,
    ParseStatistics,
    ParserState,
    RegulationStructuralParser,
)

__all__ = [
    "LineClassifier",
    "LineKind",
    "LineToken",
    "NoiseRuleSet",
    "normalize_line",
    "NodeLevel",
    "ParseTree",
    "TreeNode",
    "BenchmarkMetrics",
    "ParserBenchmark",
    "ParseResult",
    "ParseStatistics",
    "ParserState",
    "RegulationStructuralParser",
]

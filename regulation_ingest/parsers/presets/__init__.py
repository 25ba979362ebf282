"""Regex presets for regulation compendium text."""
from regulation_ingest.parsers.presets.regulation_patterns import NOISE_PATTERNS, PATTERNS

__all__ = ["PATTERNS", "NOISE_PATTERNS"]

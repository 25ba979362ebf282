"""
Global constants for the regulation ingestion pipeline.

Constants are organized by category:
- Application metadata
- Logging
- Hierarchy levels
- Parser defaults
- Benchmark grading bands
- Import / retry defaults
"""
from typing import Final

from regulation_ingest.core.version import __version__

# =============================================================================
# APPLICATION METADATA
# =============================================================================

APP_NAME: Final[str] = "Regulation Ingest"
"""Application display name."""

APP_SLUG: Final[str] = "regulation-ingest"
"""Application slug used in identifiers and file names."""

APP_VERSION: Final[str] = __version__

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL_DEBUG: Final[str] = "DEBUG"
LOG_LEVEL_INFO: Final[str] = "INFO"
LOG_LEVEL_WARNING: Final[str] = "WARNING"
LOG_LEVEL_ERROR: Final[str] = "ERROR"
LOG_LEVEL_CRITICAL: Final[str] = "CRITICAL"

# =============================================================================
# HIERARCHY
# =============================================================================

LEVEL_EDITION: Final[str] = "edition"
LEVEL_CHAPTER: Final[str] = "chapter"
LEVEL_REGULATION: Final[str] = "regulation"
LEVEL_ARTICLE: Final[str] = "article"
LEVEL_CLAUSE: Final[str] = "clause"

HIERARCHY_LEVELS: Final[tuple[str, ...]] = (
    LEVEL_EDITION,
    LEVEL_CHAPTER,
    LEVEL_REGULATION,
    LEVEL_ARTICLE,
    LEVEL_CLAUSE,
)
"""Hierarchy levels from root to leaf."""

CLAUSE_TYPES: Final[tuple[str, ...]] = ("paragraph", "subparagraph", "item", "subitem")

REGULATION_CODE_PATTERN: Final[str] = r"^\d+-\d+-\d+$"
"""Shape every persisted regulation code must match (edition-chapter-ordinal)."""

# =============================================================================
# PARSER DEFAULTS
# =============================================================================

PLACEHOLDER_NUMBER: Final[int] = 0
"""Number given to synthesized parents for orphaned nodes."""

DEFAULT_PLACEHOLDER_TITLE: Final[str] = "Uncategorized"

APPENDIX_TITLE: Final[str] = "부칙"
"""Title of the article opened by an appendix (supplementary provisions) marker."""

SUB_CLAUSE_STRIDE: Final[int] = 100
"""Sub-level clause numbers are ``paragraph_ordinal * stride + k``."""

CONTENT_SEPARATOR: Final[str] = "\n"

# =============================================================================
# BENCHMARK
# =============================================================================

DEFAULT_CHECKPOINT_INTERVAL: Final[int] = 1000
"""Lines between automatic benchmark checkpoints."""

GRADE_SCORES: Final[dict[str, int]] = {"A+": 5, "A": 4, "B": 3, "C": 2, "D": 1}

SPEED_GRADE_BANDS: Final[tuple[tuple[float, str], ...]] = (
    (2000.0, "A+"),
    (1000.0, "A"),
    (500.0, "B"),
    (100.0, "C"),
)
"""Lines/second lower bounds, checked top-down. Below the last band is D."""

MEMORY_GRADE_BANDS: Final[tuple[tuple[float, bool, str], ...]] = (
    (100.0, False, "A+"),
    (500.0, True, "A"),
    (1000.0, True, "B"),
    (2000.0, True, "C"),
)
"""Bytes/line upper bounds with an inclusive flag, checked bottom-up. Above the last band is D.

A+ stops short of 100 bytes/line; A covers 100 through 500 inclusive."""

ACCURACY_GRADE_BANDS: Final[tuple[tuple[float, str], ...]] = (
    (99.0, "A+"),
    (95.0, "A"),
    (90.0, "B"),
    (80.0, "C"),
)
"""Success-rate lower bounds (percent), checked top-down. Below the last band is D."""

# =============================================================================
# IMPORT / RETRY
# =============================================================================

DEFAULT_MAX_RETRY_ATTEMPTS: Final[int] = 3
DEFAULT_RETRY_DELAY_BASE: Final[float] = 2.0
DEFAULT_MAX_CONCURRENT_EDITIONS: Final[int] = 1

FALLBACK_CHAPTER_TITLE: Final[str] = "기타"
"""Title of the chapter created when a retried regulation has no chapter."""

ERROR_LOG_COLUMNS: Final[tuple[str, ...]] = ("type", "timestamp", "errors", "data")
ERROR_JOIN_SEPARATOR: Final[str] = "; "

# Default DB pool sizing (ignored by SQLite)
DEFAULT_DB_POOL_SIZE: Final[int] = 5
DEFAULT_DB_MAX_OVERFLOW: Final[int] = 10

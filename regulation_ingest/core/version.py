"""
Version information for the regulation ingestion pipeline.

Usage:
    >>> from regulation_ingest.core.version import __version__, PARSER_VERSION
    >>> __version__
    '1.0.0'
"""
from typing import Final

# =============================================================================
# VERSION - SINGLE SOURCE OF TRUTH
# =============================================================================

__version__: Final[str] = "1.0.0"
"""
Package version in semantic versioning format.

Must be kept in sync with pyproject.toml.
"""

__version_info__: Final[tuple[int, int, int]] = (1, 0, 0)
"""Version as a tuple of integers (major, minor, patch)."""

PARSER_VERSION: Final[str] = "2.0"
"""
Version of the parse output format.

Written into ``metadata.parser_version`` of every parse result. Bump when the
shape of the parser output changes.
"""


def get_version() -> str:
    """Return the package version string."""
    return __version__


__all__ = [
    "__version__",
    "__version_info__",
    "PARSER_VERSION",
    "get_version",
]

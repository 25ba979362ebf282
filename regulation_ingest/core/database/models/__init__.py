"""
Database models.

Usage:
    >>> from regulation_ingest.core.database.models import Edition, Regulation
"""
from regulation_ingest.core.database.models.regulation import (
    Article,
    Chapter,
    Clause,
    ClauseType,
    Edition,
    Regulation,
    RegulationStatus,
)

__all__ = [
    "Edition",
    "Chapter",
    "Regulation",
    "Article",
    "Clause",
    "ClauseType",
    "RegulationStatus",
]

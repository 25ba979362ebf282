"""
Repositories (data access layer).

Usage:
    >>> from regulation_ingest.core.database.repositories import RegulationRepository
"""
from regulation_ingest.core.database.repositories.regulation import RegulationRepository

__all__ = ["RegulationRepository"]

"""
Regulation compendium ingestion.

Parses a loosely formatted regulation compendium (editions, chapters,
regulations, articles, clauses) into a hierarchical tree, imports it into a
relational store with per-edition transactions, and retries failed branches.
"""
from regulation_ingest.core.version import __version__

__all__ = ["__version__"]

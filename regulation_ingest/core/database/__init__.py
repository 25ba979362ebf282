"""
Database layer: declarative base, models, sessions and repositories.
"""
from regulation_ingest.core.database.base import Base
from regulation_ingest.core.database.session import (
    create_all_tables,
    create_engine,
    create_session_factory,
    get_session_factory,
)

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "get_session_factory",
    "create_all_tables",
]

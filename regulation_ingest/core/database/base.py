"""
SQLAlchemy Base and model mixins.

This module provides:
- Declarative Base for all models
- Integer primary key mixin
- Timestamp mixin (created_at / updated_at)
- Active flag mixin

Example:
    >>> from regulation_ingest.core.database.base import Base, IdMixin, TimestampMixin
    >>>
    >>> class Edition(Base, IdMixin, TimestampMixin):
    ...     __tablename__ = "editions"
"""
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# =============================================================================
# DECLARATIVE BASE
# =============================================================================

class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    """

    id: Any

    def dict(self) -> dict[str, Any]:
        """
        Convert model to dictionary.

        Returns:
            dict: Column values keyed by column name
        """
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }

    def __repr__(self) -> str:
        columns = ", ".join(
            f"{col.name}={getattr(self, col.name)!r}"
            for col in self.__table__.columns
        )
        return f"{self.__class__.__name__}({columns})"


# =============================================================================
# MODEL MIXINS
# =============================================================================

class IdMixin:
    """Integer autoincrement primary key named ``id``."""

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Automatically tracks record creation and update times.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class ActiveMixin:
    """Mixin for the ``is_active`` visibility flag."""

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )


__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "ActiveMixin",
]

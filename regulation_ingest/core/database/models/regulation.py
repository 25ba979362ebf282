"""
Regulation hierarchy models.

Five levels, each owned by its parent:

    Edition (편) -> Chapter (장) -> Regulation (규정) -> Article (조) -> Clause (항/호/목)

Natural keys:
    - Edition:    number
    - Chapter:    (edition_id, number)
    - Regulation: code ("edition-chapter-ordinal"), globally unique
    - Article:    (regulation_id, number)
    - Clause:     (article_id, number)

Deleting a parent deletes its children.

Example:
    >>> edition = Edition(number=3, title="학칙", sort_order=3)
    >>> chapter = Chapter(edition=edition, number=1, title="총칙", sort_order=1)
"""
import enum

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from regulation_ingest.core.constants import CLAUSE_TYPES
from regulation_ingest.core.database.base import ActiveMixin, Base, IdMixin, TimestampMixin


# =============================================================================
# ENUMS
# =============================================================================

class ClauseType(str, enum.Enum):
    """Kind of clause inside an article."""

    PARAGRAPH = "paragraph"        # 항 (①)
    SUBPARAGRAPH = "subparagraph"  # 단서 (다만 ...)
    ITEM = "item"                  # 호/목 (1. / 가.)
    SUBITEM = "subitem"            # 세목 ((가) / (1))


class RegulationStatus(str, enum.Enum):
    """Lifecycle status of a regulation."""

    ACTIVE = "active"
    ABOLISHED = "abolished"
    DRAFT = "draft"


# =============================================================================
# EDITION
# =============================================================================

class Edition(Base, IdMixin, TimestampMixin, ActiveMixin):
    """Top-level volume of the compendium (제N편)."""

    __tablename__ = "editions"

    number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    chapters: Mapped[list["Chapter"]] = relationship(
        back_populates="edition",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chapter.sort_order",
    )

    __table_args__ = (
        CheckConstraint("number >= 0", name="ck_editions_number_non_negative"),
        Index("ix_editions_sort_order", "sort_order"),
    )


# =============================================================================
# CHAPTER
# =============================================================================

class Chapter(Base, IdMixin, TimestampMixin, ActiveMixin):
    """Chapter inside an edition (제N장)."""

    __tablename__ = "chapters"

    edition_id: Mapped[int] = mapped_column(
        ForeignKey("editions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    edition: Mapped[Edition] = relationship(back_populates="chapters")
    regulations: Mapped[list["Regulation"]] = relationship(
        back_populates="chapter",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Regulation.sort_order",
    )

    __table_args__ = (
        UniqueConstraint("edition_id", "number", name="uq_chapters_edition_number"),
        CheckConstraint("number >= 0", name="ck_chapters_number_non_negative"),
    )


# =============================================================================
# REGULATION
# =============================================================================

class Regulation(Base, IdMixin, TimestampMixin, ActiveMixin):
    """A single regulation identified by its code (e.g. ``3-1-2``)."""

    __tablename__ = "regulations"

    chapter_id: Mapped[int] = mapped_column(
        ForeignKey("chapters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RegulationStatus.ACTIVE.value,
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    chapter: Mapped[Chapter] = relationship(back_populates="regulations")
    articles: Mapped[list["Article"]] = relationship(
        back_populates="regulation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Article.sort_order",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'abolished', 'draft')",
            name="ck_regulations_status",
        ),
    )

    @validates("code")
    def validate_code(self, key: str, value: str) -> str:
        """Strip whitespace around the code."""
        return value.strip() if isinstance(value, str) else value


# =============================================================================
# ARTICLE
# =============================================================================

class Article(Base, IdMixin, TimestampMixin, ActiveMixin):
    """Article of a regulation (제N조)."""

    __tablename__ = "articles"

    regulation_id: Mapped[int] = mapped_column(
        ForeignKey("regulations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    regulation: Mapped[Regulation] = relationship(back_populates="articles")
    clauses: Mapped[list["Clause"]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Clause.sort_order",
    )

    __table_args__ = (
        UniqueConstraint("regulation_id", "number", name="uq_articles_regulation_number"),
    )


# =============================================================================
# CLAUSE
# =============================================================================

class Clause(Base, IdMixin, TimestampMixin, ActiveMixin):
    """Clause of an article (항, 호, 목 or 단서)."""

    __tablename__ = "clauses"

    article_id: Mapped[int] = mapped_column(
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    clause_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ClauseType.PARAGRAPH.value,
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    article: Mapped[Article] = relationship(back_populates="clauses")

    __table_args__ = (
        UniqueConstraint("article_id", "number", name="uq_clauses_article_number"),
        CheckConstraint(
            "clause_type IN ({})".format(", ".join(f"'{t}'" for t in CLAUSE_TYPES)),
            name="ck_clauses_clause_type",
        ),
    )


__all__ = [
    "ClauseType",
    "RegulationStatus",
    "Edition",
    "Chapter",
    "Regulation",
    "Article",
    "Clause",
]

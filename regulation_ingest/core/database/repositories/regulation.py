"""
Regulation Repository.

Data access for the five-level regulation hierarchy. Every ``upsert_*``
method looks the row up by its natural key, creates or updates it, flushes,
and returns ``(row, created)``. Transactions are owned by the caller.

Example:
    >>> async with session_factory() as session:
    ...     async with session.begin():
    ...         repo = RegulationRepository(session)
    ...         edition, created = await repo.upsert_edition(
    ...             number=3, title="학칙", sort_order=3
    ...         )
    ...         chapter, _ = await repo.upsert_chapter(
    ...             edition_id=edition.id, number=1, title="총칙", sort_order=1
    ...         )
"""
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from regulation_ingest.core.database.base import Base
from regulation_ingest.core.database.models.regulation import (
    Article,
    Chapter,
    Clause,
    Edition,
    Regulation,
)
from regulation_ingest.core.logging import get_logger

# =============================================================================
# LOGGER
# =============================================================================

logger = get_logger(__name__)


# =============================================================================
# REGULATION REPOSITORY
# =============================================================================


class RegulationRepository:
    """
    Repository for editions, chapters, regulations, articles and clauses.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize repository.

        Args:
            db: Async database session
        """
        self.db = db

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def find_edition(self, number: int) -> Edition | None:
        result = await self.db.execute(select(Edition).where(Edition.number == number))
        return result.scalar_one_or_none()

    async def find_chapter(self, edition_id: int, number: int) -> Chapter | None:
        result = await self.db.execute(
            select(Chapter).where(
                Chapter.edition_id == edition_id,
                Chapter.number == number,
            )
        )
        return result.scalar_one_or_none()

    async def find_chapter_by_numbers(
        self,
        edition_number: int,
        chapter_number: int,
    ) -> Chapter | None:
        """Find a chapter by its edition number and chapter number."""
        result = await self.db.execute(
            select(Chapter)
            .join(Edition, Chapter.edition_id == Edition.id)
            .where(
                Edition.number == edition_number,
                Chapter.number == chapter_number,
            )
        )
        return result.scalar_one_or_none()

    async def find_regulation(self, code: str) -> Regulation | None:
        result = await self.db.execute(select(Regulation).where(Regulation.code == code))
        return result.scalar_one_or_none()

    async def find_article(self, regulation_id: int, number: int) -> Article | None:
        result = await self.db.execute(
            select(Article).where(
                Article.regulation_id == regulation_id,
                Article.number == number,
            )
        )
        return result.scalar_one_or_none()

    async def find_article_by_code(self, code: str, number: int) -> Article | None:
        """Find an article by its regulation code and article number."""
        result = await self.db.execute(
            select(Article)
            .join(Regulation, Article.regulation_id == Regulation.id)
            .where(
                Regulation.code == code,
                Article.number == number,
            )
        )
        return result.scalar_one_or_none()

    async def find_clause(self, article_id: int, number: int) -> Clause | None:
        result = await self.db.execute(
            select(Clause).where(
                Clause.article_id == article_id,
                Clause.number == number,
            )
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # UPSERTS
    # =========================================================================

    async def upsert_edition(
        self,
        number: int,
        title: str,
        sort_order: int,
        description: str | None = None,
    ) -> tuple[Edition, bool]:
        edition = await self.find_edition(number)
        created = edition is None
        if edition is None:
            edition = Edition(number=number)
            self.db.add(edition)

        edition.title = title
        edition.description = description
        edition.sort_order = sort_order
        edition.is_active = True

        await self.db.flush()
        return edition, created

    async def upsert_chapter(
        self,
        edition_id: int,
        number: int,
        title: str,
        sort_order: int,
        description: str | None = None,
    ) -> tuple[Chapter, bool]:
        chapter = await self.find_chapter(edition_id, number)
        created = chapter is None
        if chapter is None:
            chapter = Chapter(edition_id=edition_id, number=number)
            self.db.add(chapter)

        chapter.title = title
        chapter.description = description
        chapter.sort_order = sort_order
        chapter.is_active = True

        await self.db.flush()
        return chapter, created

    async def upsert_regulation(
        self,
        chapter_id: int,
        code: str,
        number: int,
        title: str,
        sort_order: int,
        content: str | None = None,
    ) -> tuple[Regulation, bool]:
        """
        Create or update a regulation by code.

        An existing regulation is moved under ``chapter_id`` when the parsed
        document places it there.
        """
        regulation = await self.find_regulation(code)
        created = regulation is None
        if regulation is None:
            regulation = Regulation(code=code)
            self.db.add(regulation)
        elif regulation.chapter_id != chapter_id:
            logger.info(
                "Regulation moved to another chapter",
                code=code,
                from_chapter_id=regulation.chapter_id,
                to_chapter_id=chapter_id,
            )

        regulation.chapter_id = chapter_id
        regulation.number = number
        regulation.title = title
        regulation.content = content
        regulation.sort_order = sort_order
        regulation.is_active = True

        await self.db.flush()
        return regulation, created

    async def upsert_article(
        self,
        regulation_id: int,
        number: int,
        content: str,
        sort_order: int,
        title: str | None = None,
    ) -> tuple[Article, bool]:
        article = await self.find_article(regulation_id, number)
        created = article is None
        if article is None:
            article = Article(regulation_id=regulation_id, number=number)
            self.db.add(article)

        article.title = title
        article.content = content
        article.sort_order = sort_order
        article.is_active = True

        await self.db.flush()
        return article, created

    async def upsert_clause(
        self,
        article_id: int,
        number: int,
        content: str,
        clause_type: str,
        sort_order: int,
    ) -> tuple[Clause, bool]:
        clause = await self.find_clause(article_id, number)
        created = clause is None
        if clause is None:
            clause = Clause(article_id=article_id, number=number)
            self.db.add(clause)

        clause.content = content
        clause.clause_type = clause_type
        clause.sort_order = sort_order
        clause.is_active = True

        await self.db.flush()
        return clause, created

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def count(self, model: type[Base]) -> int:
        """Count rows of a model."""
        result = await self.db.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())

    async def count_all(self) -> dict[str, Any]:
        """
        Count rows at every level.

        Returns:
            dict: ``{"editions": n, "chapters": n, ...}``
        """
        return {
            "editions": await self.count(Edition),
            "chapters": await self.count(Chapter),
            "regulations": await self.count(Regulation),
            "articles": await self.count(Article),
            "clauses": await self.count(Clause),
        }

    async def list_regulation_codes(self) -> list[str]:
        result = await self.db.execute(select(Regulation.code).order_by(Regulation.code))
        return list(result.scalars().all())


__all__ = ["RegulationRepository"]

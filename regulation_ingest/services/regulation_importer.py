"""
Regulation Importer.

Persists a parsed regulation tree into the relational hierarchy.

Transaction model:
    - One transaction per edition and its whole subtree. A failing edition
      is rolled back without touching editions already committed.
    - Each node is written inside a SAVEPOINT. A node that fails validation
      or violates a constraint is rolled back alone, recorded, counted as
      ``failed`` and its children are skipped; its siblings continue.

Nodes are upserted by natural key (edition number, chapter number within
edition, regulation code, article number within regulation, clause number
within article), so re-importing the same document updates rows instead of
duplicating them.

Example:
    >>> importer = RegulationImporter(session_factory)
    >>> result = await importer.import_parsed_data(parse_result)
    >>> result.stats["regulations"].created
    412
    >>> result.save_error_log("tmp/import_errors.csv")
"""
import asyncio
import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from regulation_ingest.core.constants import (
    CLAUSE_TYPES,
    ERROR_JOIN_SEPARATOR,
    ERROR_LOG_COLUMNS,
    LEVEL_ARTICLE,
    LEVEL_CHAPTER,
    LEVEL_CLAUSE,
    LEVEL_EDITION,
    LEVEL_REGULATION,
    REGULATION_CODE_PATTERN,
)
from regulation_ingest.core.database.repositories.regulation import RegulationRepository
from regulation_ingest.core.exceptions import InvalidParsedDocumentError, RecordValidationError
from regulation_ingest.core.logging import get_logger
from regulation_ingest.core.queue.progress_tracker import CancellationToken, PhaseProgress
from regulation_ingest.parsers.monitoring.metrics import (
    record_edition_transaction,
    record_import_node,
)
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import ParseResult

logger = get_logger(__name__)

# Stats buckets use the plural level names
STAT_KEYS: dict[str, str] = {
    LEVEL_EDITION: "editions",
    LEVEL_CHAPTER: "chapters",
    LEVEL_REGULATION: "regulations",
    LEVEL_ARTICLE: "articles",
    LEVEL_CLAUSE: "clauses",
}

NODE_ERRORS = (PydanticValidationError, RecordValidationError, IntegrityError, DataError)
"""Errors that fail a single node; anything else fails the edition."""


# =============================================================================
# NODE RECORDS (boundary validation)
# =============================================================================


class _NodeRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class EditionRecord(_NodeRecord):
    number: int = Field(ge=0)
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    chapters: list[Any] = Field(default_factory=list)


class ChapterRecord(_NodeRecord):
    number: int = Field(ge=0)
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    regulations: list[Any] = Field(default_factory=list)


class RegulationRecord(_NodeRecord):
    code: str = Field(pattern=REGULATION_CODE_PATTERN)
    title: str = Field(min_length=1, max_length=500)
    content: str | None = None
    articles: list[Any] = Field(default_factory=list)

    @property
    def segments(self) -> tuple[int, int, int]:
        edition, chapter, ordinal = (int(part) for part in self.code.split("-"))
        return edition, chapter, ordinal


class ArticleRecord(_NodeRecord):
    number: int = Field(ge=0)
    title: str | None = Field(default=None, max_length=500)
    content: str = ""
    clauses: list[Any] = Field(default_factory=list)


class ClauseRecord(_NodeRecord):
    number: int = Field(ge=0)
    content: str = ""
    clause_type: Literal[CLAUSE_TYPES] = Field(default="paragraph", alias="type")  # type: ignore[valid-type]
    sort_order: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class LevelStats:
    created: int = 0
    updated: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"created": self.created, "updated": self.updated, "failed": self.failed}


def _empty_stats() -> dict[str, LevelStats]:
    return {key: LevelStats() for key in STAT_KEYS.values()}


@dataclass
class ImportOutcome:
    """Counters and errors of one unit of work, merged into the result on commit."""
    stats: dict[str, LevelStats] = field(default_factory=_empty_stats)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def record_success(self, level: str, created: bool) -> None:
        bucket = self.stats[STAT_KEYS[level]]
        if created:
            bucket.created += 1
        else:
            bucket.updated += 1

    def record_failure(
        self,
        level: str,
        raw: Any,
        parent_keys: dict[str, Any],
        messages: list[str],
    ) -> None:
        self.stats[STAT_KEYS[level]].failed += 1
        data = dict(raw) if isinstance(raw, dict) else {"value": raw}
        data.update(parent_keys)
        self.errors.append(error_record(level, data, messages))


@dataclass
class ImportResult:
    """
    Outcome of an import run.

    ``success`` is False only when an edition transaction was rolled back;
    node failures are reported in ``errors`` without flipping it.
    """
    success: bool = True
    stats: dict[str, LevelStats] = field(default_factory=_empty_stats)
    errors: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def total_processed(self) -> int:
        return sum(bucket.created + bucket.updated for bucket in self.stats.values())

    @property
    def total_failed(self) -> int:
        return sum(bucket.failed for bucket in self.stats.values())

    @property
    def total_errors(self) -> int:
        return len(self.errors)

    @property
    def success_rate(self) -> float:
        attempted = self.total_processed + self.total_failed
        if not attempted:
            return 100.0
        return round(self.total_processed / attempted * 100, 2)

    def merge(self, outcome: ImportOutcome) -> None:
        for key, bucket in outcome.stats.items():
            target = self.stats[key]
            target.created += bucket.created
            target.updated += bucket.updated
            target.failed += bucket.failed
        self.errors.extend(outcome.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "stats": {key: bucket.to_dict() for key, bucket in self.stats.items()},
            "total_processed": self.total_processed,
            "total_errors": self.total_errors,
            "errors": list(self.errors),
            "cancelled": self.cancelled,
        }

    def summary(self) -> dict[str, Any]:
        """Import summary without the individual error records."""
        return {
            "success": self.success,
            "cancelled": self.cancelled,
            "stats": {key: bucket.to_dict() for key, bucket in self.stats.items()},
            "total_records": self.total_processed + self.total_failed,
            "total_processed": self.total_processed,
            "total_errors": self.total_errors,
            "success_rate": self.success_rate,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.summary(), ensure_ascii=False, indent=indent)

    def save_error_log(self, path: str | Path) -> Path | None:
        """Write errors as CSV; returns None when there is nothing to write."""
        if not self.errors:
            return None
        return write_error_log(self.errors, path)


# =============================================================================
# ERROR LOG
# =============================================================================


def error_record(record_type: str, data: Any, messages: list[str]) -> dict[str, Any]:
    return {
        "type": record_type,
        "data": data,
        "errors": list(messages),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def error_messages(error: Exception) -> list[str]:
    """Flatten an exception into human-readable messages."""
    if isinstance(error, PydanticValidationError):
        return [
            f"{'.'.join(str(part) for part in item['loc']) or 'record'}: {item['msg']}"
            for item in error.errors()
        ]
    if isinstance(error, RecordValidationError):
        return list(error.errors)
    if isinstance(error, (IntegrityError, DataError)):
        return [f"{type(error).__name__}: {error.orig}"]
    return [f"{type(error).__name__}: {error}"]


def write_error_log(errors: list[dict[str, Any]], path: str | Path) -> Path:
    """
    Write error records as CSV with columns ``type, timestamp, errors, data``.

    ``errors`` are joined with ``"; "`` and ``data`` is serialized as JSON.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(ERROR_LOG_COLUMNS)
        for record in errors:
            writer.writerow([
                record.get("type", ""),
                record.get("timestamp", ""),
                ERROR_JOIN_SEPARATOR.join(str(message) for message in record.get("errors", [])),
                json.dumps(record.get("data", {}), ensure_ascii=False, default=str),
            ])

    logger.info("Error log saved", path=str(path), records=len(errors))
    return path


def read_error_log(path: str | Path) -> list[dict[str, Any]]:
    """
    Read a CSV written by ``write_error_log`` back into error records.

    Raises:
        InvalidParsedDocumentError: Header does not match the error log columns
    """
    path = Path(path)
    records: list[dict[str, Any]] = []

    with path.open(encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        if tuple(reader.fieldnames or ()) != ERROR_LOG_COLUMNS:
            raise InvalidParsedDocumentError(
                "Not an import error log",
                details={"path": str(path), "columns": reader.fieldnames},
            )
        for row in reader:
            errors = row["errors"].split(ERROR_JOIN_SEPARATOR) if row["errors"] else []
            records.append({
                "type": row["type"],
                "timestamp": row["timestamp"],
                "errors": errors,
                "data": json.loads(row["data"]) if row["data"] else {},
            })

    return records


# =============================================================================
# INPUT COERCION
# =============================================================================


def coerce_parsed_document(parsed: Any) -> list[Any]:
    """
    Return the edition list from a ParseResult or a parsed-document dict.

    Accepts ``ParseResult``, ``{"data": {"editions": [...]}}`` and
    ``{"editions": [...]}``. Editions themselves are validated per node
    during the import.

    Raises:
        InvalidParsedDocumentError: Input has neither shape
    """
    if isinstance(parsed, ParseResult):
        return parsed.tree.to_dict()["editions"]

    if isinstance(parsed, dict):
        container = parsed.get("data", parsed)
        if isinstance(container, dict) and isinstance(container.get("editions"), list):
            return container["editions"]

    raise InvalidParsedDocumentError(
        "Expected a ParseResult or a mapping with data.editions",
        details={"received": type(parsed).__name__},
    )


# =============================================================================
# IMPORTER
# =============================================================================

NodeWriter = Callable[[Any], Awaitable[tuple[Any, bool]]]


class RegulationImporter:
    """
    Imports parsed editions with per-edition transactions.

    Args:
        session_factory: Async session factory
        repository_factory: Builds the repository for a session
        progress: Progress window for the import phase
        max_concurrent_editions: Editions imported at once (1 = sequential)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_factory: Callable[[AsyncSession], RegulationRepository] = RegulationRepository,
        progress: PhaseProgress | None = None,
        max_concurrent_editions: int = 1,
    ) -> None:
        if max_concurrent_editions < 1:
            raise ValueError("max_concurrent_editions must be at least 1")
        self.session_factory = session_factory
        self.repository_factory = repository_factory
        self.progress = progress
        self.max_concurrent_editions = max_concurrent_editions

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def import_parsed_data(
        self,
        parsed: Any,
        cancel_token: CancellationToken | None = None,
    ) -> ImportResult:
        """
        Import every edition of a parsed document.

        Args:
            parsed: ParseResult or parsed-document dict
            cancel_token: Polled before each edition transaction

        Returns:
            ImportResult: Per-level counters and error records
        """
        editions = coerce_parsed_document(parsed)
        result = ImportResult()
        total = len(editions)
        done = 0

        logger.info(
            "Import started",
            editions=total,
            max_concurrent_editions=self.max_concurrent_editions,
        )

        def edition_finished() -> None:
            nonlocal done
            done += 1
            if self.progress is not None:
                self.progress.update(
                    done,
                    total,
                    f"Imported {done}/{total} editions",
                    data={key: bucket.to_dict() for key, bucket in result.stats.items()},
                )

        if self.max_concurrent_editions == 1:
            for raw_edition in editions:
                if cancel_token is not None and cancel_token.cancelled:
                    result.cancelled = True
                    break
                await self._import_edition(raw_edition, result)
                edition_finished()
        else:
            semaphore = asyncio.Semaphore(self.max_concurrent_editions)

            async def run(raw_edition: Any) -> None:
                async with semaphore:
                    if cancel_token is not None and cancel_token.cancelled:
                        result.cancelled = True
                        return
                    await self._import_edition(raw_edition, result)
                    edition_finished()

            await asyncio.gather(*(run(raw_edition) for raw_edition in editions))

        result.finished_at = datetime.now(timezone.utc)
        if result.cancelled:
            logger.warning("Import cancelled", editions_done=done, editions_total=total)

        logger.info(
            "Import finished",
            success=result.success,
            total_processed=result.total_processed,
            total_errors=result.total_errors,
            cancelled=result.cancelled,
        )
        return result

    async def import_children(
        self,
        level: str,
        row_id: int,
        raw_node: dict[str, Any],
        parent_keys: dict[str, Any],
    ) -> ImportResult:
        """
        Import the children of an already persisted node in one transaction.

        Used after a failed node has been retried successfully.

        Args:
            level: Level of the persisted node
            row_id: Primary key of the persisted node
            raw_node: Raw node (its children are imported)
            parent_keys: Natural keys of the node and its ancestors
        """
        result = ImportResult()
        outcome = ImportOutcome()

        async with self.session_factory() as session:
            async with session.begin():
                repo = self.repository_factory(session)
                if level == LEVEL_EDITION:
                    await self._import_chapters(repo, row_id, raw_node, parent_keys, outcome)
                elif level == LEVEL_CHAPTER:
                    await self._import_regulations(repo, row_id, raw_node, parent_keys, outcome)
                elif level == LEVEL_REGULATION:
                    await self._import_articles(repo, row_id, raw_node, parent_keys, outcome)
                elif level == LEVEL_ARTICLE:
                    await self._import_clauses(repo, row_id, raw_node, parent_keys, outcome)

        result.merge(outcome)
        result.finished_at = datetime.now(timezone.utc)
        self._publish_metrics(outcome)
        return result

    # =========================================================================
    # EDITION TRANSACTION
    # =========================================================================

    async def _import_edition(self, raw_edition: Any, result: ImportResult) -> None:
        outcome = ImportOutcome()
        edition_number = raw_edition.get("number") if isinstance(raw_edition, dict) else None

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = self.repository_factory(session)
                    await self._import_edition_node(repo, raw_edition, outcome)
        except (MemoryError, OSError):
            raise
        except Exception as e:
            # Rolled back: discard this edition's counters
            result.success = False
            result.stats[STAT_KEYS[LEVEL_EDITION]].failed += 1
            data = dict(raw_edition) if isinstance(raw_edition, dict) else {"value": raw_edition}
            result.errors.append(
                error_record("transaction_error", data, [f"{type(e).__name__}: {e}"])
            )
            record_edition_transaction(committed=False)
            logger.error(
                "Edition transaction rolled back",
                edition_number=edition_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        result.merge(outcome)
        record_edition_transaction(committed=True)
        self._publish_metrics(outcome)
        logger.info(
            "Edition imported",
            edition_number=edition_number,
            node_failures=len(outcome.errors),
        )

    # =========================================================================
    # NODE WRITES
    # =========================================================================

    async def _guarded(
        self,
        repo: RegulationRepository,
        level: str,
        model: type[_NodeRecord],
        raw: Any,
        parent_keys: dict[str, Any],
        outcome: ImportOutcome,
        write: NodeWriter,
    ) -> tuple[int, Any] | None:
        """
        Validate and write one node inside a SAVEPOINT.

        Returns:
            (row id, validated record), or None when the node failed
        """
        try:
            record = model.model_validate(raw)
            async with repo.db.begin_nested():
                row, created = await write(record)
                row_id = row.id
        except NODE_ERRORS as e:
            messages = error_messages(e)
            outcome.record_failure(level, raw, parent_keys, messages)
            logger.warning(
                "Node import failed",
                level=level,
                parent_keys=parent_keys,
                errors=messages,
            )
            return None

        outcome.record_success(level, created)
        return row_id, record

    async def _import_edition_node(
        self,
        repo: RegulationRepository,
        raw: Any,
        outcome: ImportOutcome,
    ) -> None:
        async def write(record: EditionRecord) -> tuple[Any, bool]:
            return await repo.upsert_edition(
                number=record.number,
                title=record.title,
                sort_order=record.number,
                description=record.description,
            )

        written = await self._guarded(repo, LEVEL_EDITION, EditionRecord, raw, {}, outcome, write)
        if written is None:
            return
        edition_id, record = written
        await self._import_chapters(
            repo, edition_id, raw, {"edition_number": record.number}, outcome
        )

    async def _import_chapters(
        self,
        repo: RegulationRepository,
        edition_id: int,
        raw_edition: dict[str, Any],
        keys: dict[str, Any],
        outcome: ImportOutcome,
    ) -> None:
        for raw in raw_edition.get("chapters") or []:
            async def write(record: ChapterRecord) -> tuple[Any, bool]:
                return await repo.upsert_chapter(
                    edition_id=edition_id,
                    number=record.number,
                    title=record.title,
                    sort_order=record.number,
                    description=record.description,
                )

            written = await self._guarded(repo, LEVEL_CHAPTER, ChapterRecord, raw, keys, outcome, write)
            if written is None:
                continue
            chapter_id, record = written
            await self._import_regulations(
                repo, chapter_id, raw, {**keys, "chapter_number": record.number}, outcome
            )

    async def _import_regulations(
        self,
        repo: RegulationRepository,
        chapter_id: int,
        raw_chapter: dict[str, Any],
        keys: dict[str, Any],
        outcome: ImportOutcome,
    ) -> None:
        for raw in raw_chapter.get("regulations") or []:
            async def write(record: RegulationRecord) -> tuple[Any, bool]:
                edition_number, chapter_number, ordinal = record.segments
                mismatches = []
                if edition_number != keys.get("edition_number"):
                    mismatches.append(
                        f"code {record.code} does not belong to edition {keys.get('edition_number')}"
                    )
                if chapter_number != keys.get("chapter_number"):
                    mismatches.append(
                        f"code {record.code} does not belong to chapter {keys.get('chapter_number')}"
                    )
                if mismatches:
                    raise RecordValidationError(
                        "Regulation code does not match its hierarchy",
                        errors=mismatches,
                        details={"code": record.code},
                    )
                return await repo.upsert_regulation(
                    chapter_id=chapter_id,
                    code=record.code,
                    number=ordinal,
                    title=record.title,
                    sort_order=ordinal,
                    content=record.content or None,
                )

            written = await self._guarded(
                repo, LEVEL_REGULATION, RegulationRecord, raw, keys, outcome, write
            )
            if written is None:
                continue
            regulation_id, record = written
            await self._import_articles(
                repo, regulation_id, raw, {**keys, "regulation_code": record.code}, outcome
            )

    async def _import_articles(
        self,
        repo: RegulationRepository,
        regulation_id: int,
        raw_regulation: dict[str, Any],
        keys: dict[str, Any],
        outcome: ImportOutcome,
    ) -> None:
        for raw in raw_regulation.get("articles") or []:
            async def write(record: ArticleRecord) -> tuple[Any, bool]:
                return await repo.upsert_article(
                    regulation_id=regulation_id,
                    number=record.number,
                    content=record.content,
                    sort_order=record.number,
                    title=record.title or None,
                )

            written = await self._guarded(repo, LEVEL_ARTICLE, ArticleRecord, raw, keys, outcome, write)
            if written is None:
                continue
            article_id, record = written
            await self._import_clauses(
                repo, article_id, raw, {**keys, "article_number": record.number}, outcome
            )

    async def _import_clauses(
        self,
        repo: RegulationRepository,
        article_id: int,
        raw_article: dict[str, Any],
        keys: dict[str, Any],
        outcome: ImportOutcome,
    ) -> None:
        for raw in raw_article.get("clauses") or []:
            async def write(record: ClauseRecord) -> tuple[Any, bool]:
                return await repo.upsert_clause(
                    article_id=article_id,
                    number=record.number,
                    content=record.content,
                    clause_type=record.clause_type,
                    sort_order=record.sort_order if record.sort_order is not None else record.number,
                )

            await self._guarded(repo, LEVEL_CLAUSE, ClauseRecord, raw, keys, outcome, write)

    # =========================================================================
    # METRICS
    # =========================================================================

    @staticmethod
    def _publish_metrics(outcome: ImportOutcome) -> None:
        for level, key in STAT_KEYS.items():
            bucket = outcome.stats[key]
            record_import_node(level, "created", bucket.created)
            record_import_node(level, "updated", bucket.updated)
            record_import_node(level, "failed", bucket.failed)


__all__ = [
    "EditionRecord",
    "ChapterRecord",
    "RegulationRecord",
    "ArticleRecord",
    "ClauseRecord",
    "LevelStats",
    "ImportOutcome",
    "ImportResult",
    "RegulationImporter",
    "coerce_parsed_document",
    "error_record",
    "error_messages",
    "write_error_log",
    "read_error_log",
]

"""
Regulation Retry Handler.

Re-attempts nodes the importer could not persist.

Policy:
    - Records are keyed by ``"{type}_{hash}"`` where the hash is a SHA-256
      of the canonical JSON of ``data``, so the key survives the error log
      round trip.
    - Before every attempt after the first: ``await sleep(delay_base ** attempts)``.
    - After ``max_attempts`` failed attempts the record is a permanent
      failure and is never attempted again by this handler.
    - Each attempt cleans the data first (integer coercion, trimming,
      regulation code sanitising, parent re-resolution with placeholder
      parents) and runs in its own transaction.
    - A successful retry imports the node's children through the importer.

Error categorisation (validation / constraint / data_format / unknown)
only feeds the report recommendations; it never changes the retry policy.

Example:
    >>> handler = RegulationRetryHandler(session_factory)
    >>> records = handler.load_error_log("tmp/import_errors.csv")
    >>> report = await handler.retry_failed_imports(records)
    >>> report["retry_stats"]["permanent_failures"]
    0
"""
import asyncio
import hashlib
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from regulation_ingest.core.config.settings import settings
from regulation_ingest.core.constants import (
    CLAUSE_TYPES,
    DEFAULT_MAX_RETRY_ATTEMPTS,
    DEFAULT_PLACEHOLDER_TITLE,
    DEFAULT_RETRY_DELAY_BASE,
    ERROR_JOIN_SEPARATOR,
    FALLBACK_CHAPTER_TITLE,
    LEVEL_ARTICLE,
    LEVEL_CHAPTER,
    LEVEL_CLAUSE,
    LEVEL_EDITION,
    LEVEL_REGULATION,
    PLACEHOLDER_NUMBER,
)
from regulation_ingest.core.database.repositories.regulation import RegulationRepository
from regulation_ingest.core.exceptions import RecordValidationError
from regulation_ingest.core.logging import get_logger, log_execution_time
from regulation_ingest.parsers.monitoring.metrics import (
    record_permanent_failure,
    record_retry_attempt,
)
from regulation_ingest.services.regulation_importer import (
    ArticleRecord,
    ChapterRecord,
    ClauseRecord,
    EditionRecord,
    RegulationImporter,
    RegulationRecord,
    error_messages,
    error_record,
    read_error_log,
)

logger = get_logger(__name__)

TRANSACTION_ERROR = "transaction_error"

ERROR_CATEGORIES: tuple[str, ...] = ("validation", "constraint", "data_format", "unknown")

# Checked in order; the first category with a matching keyword wins
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("validation", ("validation", "required", "missing", "should", "must", "not found")),
    ("constraint", ("constraint", "unique", "duplicate", "integrity")),
    ("data_format", ("format", "invalid", "parse", "pattern", "json")),
)

RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    "validation": (
        "Strengthen data cleaning before import",
        "Check for missing required fields (number, title, code)",
    ),
    "constraint": (
        "Review duplicate handling for natural keys",
        "Check unique constraints on regulation codes and numbering",
    ),
    "data_format": (
        "Improve the parser for the affected line shapes",
        "Standardise regulation codes to the E-C-R form",
    ),
    "unknown": (
        "Inspect the error log manually; the failure did not match a known pattern",
    ),
}


# =============================================================================
# CLEANING HELPERS
# =============================================================================


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, ensure_ascii=False, default=str)


def generate_record_id(record: dict[str, Any]) -> str:
    """Stable identifier of an error record: type plus structural hash of data."""
    digest = hashlib.sha256(canonical_json(record.get("data")).encode("utf-8")).hexdigest()
    return f"{record.get('type')}_{digest[:16]}"


def to_int(value: Any, default: int = PLACEHOLDER_NUMBER) -> int:
    """
    Lenient integer coercion.

    Takes the leading digits of strings like ``" 3편"``; anything without
    digits returns ``default``.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"\d+", value)
        if match:
            return int(match.group())
    return default


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clean_regulation_code(
    code: Any,
    edition_number: int = PLACEHOLDER_NUMBER,
    chapter_number: int = PLACEHOLDER_NUMBER,
    seed: Any = None,
) -> str:
    """
    Sanitise a regulation code to the ``E-C-R`` shape.

    Non-digit, non-dash characters are dropped. When the remainder still
    does not have three numeric segments, a fallback code is built from the
    parent numbers and an ordinal derived from the hash of ``seed``, so the
    same record always gets the same fallback.

    Examples:
        >>> clean_regulation_code(" 3-1-2a ")
        '3-1-2'
        >>> clean_regulation_code("n/a", 3, 1, seed={"title": "x"}).startswith("3-1-")
        True
    """
    if code is not None:
        cleaned = re.sub(r"[^\d-]", "", str(code).strip())
        parts = cleaned.split("-")
        if len(parts) == 3 and all(part.isdigit() for part in parts):
            return "-".join(str(int(part)) for part in parts)

    digest = hashlib.sha256(canonical_json(seed if seed is not None else code).encode("utf-8"))
    ordinal = 1000 + int(digest.hexdigest()[:8], 16) % 9000
    return f"{edition_number}-{chapter_number}-{ordinal}"


def categorize_error(message: str | Iterable[str] | None) -> str:
    """Classify an error message into one of ``ERROR_CATEGORIES``."""
    if message is None:
        return "unknown"
    if not isinstance(message, str):
        message = ERROR_JOIN_SEPARATOR.join(str(part) for part in message)

    lowered = message.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "unknown"


def recommendations(categories: Iterable[str]) -> list[str]:
    """Human-readable recommendations for the given error categories."""
    seen = set(categories)
    advice: list[str] = []
    for category in ERROR_CATEGORIES:
        if category in seen:
            advice.extend(RECOMMENDATIONS[category])
    return advice


def analyze_failure_patterns(path: str | Path) -> dict[str, Any]:
    """
    Group the records of an error log by error category.

    Returns:
        dict: ``counts`` per category, up to three ``examples`` per
        category and the matching ``recommendations``
    """
    records = read_error_log(path)
    grouped: dict[str, list[dict[str, Any]]] = {category: [] for category in ERROR_CATEGORIES}
    for record in records:
        grouped[categorize_error(record["errors"])].append(record)

    analysis = {
        "total_records": len(records),
        "counts": {category: len(items) for category, items in grouped.items()},
        "examples": {
            category: [
                {"type": item["type"], "errors": item["errors"]}
                for item in items[:3]
            ]
            for category, items in grouped.items()
            if items
        },
        "recommendations": recommendations(
            category for category, items in grouped.items() if items
        ),
    }
    logger.info("Failure patterns analyzed", path=str(path), **analysis["counts"])
    return analysis


# =============================================================================
# RETRY HANDLER
# =============================================================================


class RegulationRetryHandler:
    """
    Retries failed import records with backoff and permanent-failure bookkeeping.

    Attempt counters persist across calls for the lifetime of the handler.

    Args:
        session_factory: Async session factory
        repository_factory: Builds the repository for a session
        max_attempts: Attempts before a record becomes permanent
        delay_base: Backoff base in seconds
        sleep: Awaitable sleep (injectable for tests)
        importer: Importer used for the children of a retried node
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_factory: Callable[[AsyncSession], RegulationRepository] = RegulationRepository,
        max_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
        delay_base: float = DEFAULT_RETRY_DELAY_BASE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        importer: RegulationImporter | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session_factory = session_factory
        self.repository_factory = repository_factory
        self.max_attempts = max_attempts
        self.delay_base = delay_base
        self._sleep = sleep
        self.importer = importer or RegulationImporter(session_factory, repository_factory)

        self.retry_stats: dict[str, int] = {
            "total_retries": 0,
            "successful_retries": 0,
            "failed_retries": 0,
            "permanent_failures": 0,
        }
        self.retry_attempts: dict[str, int] = {}
        self.permanent_failure_records: list[dict[str, Any]] = []
        self.child_errors: list[dict[str, Any]] = []
        self._permanent_ids: set[str] = set()
        self._last_errors: dict[str, list[str]] = {}
        self._categories: list[str] = []

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def is_permanent(self, record: dict[str, Any]) -> bool:
        return generate_record_id(record) in self._permanent_ids

    async def retry_single_record(self, record: dict[str, Any]) -> bool:
        """
        Make one retry attempt for a record.

        Returns:
            bool: True when the node was persisted
        """
        record_id = generate_record_id(record)
        record_type = str(record.get("type"))

        if record_id in self._permanent_ids:
            logger.debug("Skipping permanent failure", record_id=record_id)
            return False

        attempts = self.retry_attempts.get(record_id, 0)
        if attempts > 0:
            delay = self.delay_base ** attempts
            logger.debug("Retry backoff", record_id=record_id, delay_seconds=delay)
            await self._sleep(delay)

        attempts += 1
        self.retry_attempts[record_id] = attempts
        self.retry_stats["total_retries"] += 1

        logger.info(
            "Retrying record",
            record_id=record_id,
            record_type=record_type,
            attempt=attempts,
            max_attempts=self.max_attempts,
        )

        try:
            level, row_id, data, keys = await self._execute(record)
        except (MemoryError, OSError):
            raise
        except Exception as e:
            messages = error_messages(e)
            self._last_errors[record_id] = messages
            self._categories.append(categorize_error(messages))
            self.retry_stats["failed_retries"] += 1
            record_retry_attempt(record_type, success=False)
            logger.warning(
                "Retry failed",
                record_id=record_id,
                attempt=attempts,
                errors=messages,
            )
            if attempts >= self.max_attempts:
                self._mark_permanent(record, record_id, attempts)
            return False

        self.retry_stats["successful_retries"] += 1
        self.retry_attempts.pop(record_id, None)
        self._last_errors.pop(record_id, None)
        record_retry_attempt(record_type, success=True)
        logger.info("Retry succeeded", record_id=record_id, attempt=attempts)

        if level != LEVEL_CLAUSE:
            await self._import_children(level, row_id, data, keys)

        return True

    @log_execution_time
    async def retry_failed_imports(self, records: Iterable[dict[str, Any]]) -> dict[str, Any]:
        """
        Retry each record until it succeeds or becomes permanent.

        Returns:
            dict: The retry report
        """
        records = list(records)
        logger.info("Retry run started", records=len(records))

        for index, record in enumerate(records, start=1):
            record_id = generate_record_id(record)
            while record_id not in self._permanent_ids:
                if await self.retry_single_record(record):
                    break
            logger.debug("Record processed", index=index, total=len(records), record_id=record_id)

        report = self.generate_report()
        logger.info("Retry run finished", **report["retry_stats"])
        return report

    def generate_report(self) -> dict[str, Any]:
        return {
            "retry_stats": dict(self.retry_stats),
            "permanent_failure_records": list(self.permanent_failure_records),
            "retry_attempts": dict(self.retry_attempts),
            "recommendations": recommendations(self._categories),
            "child_errors": len(self.child_errors),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    def save_report(self, path: str | Path | None = None) -> Path:
        """Write the retry report as JSON; defaults to a timestamped file in REPORT_DIR."""
        if path is None:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            path = Path(settings.REPORT_DIR) / f"retry_report_{stamp}.json"
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.generate_report(), ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )
        logger.info("Retry report saved", path=str(path))
        return path

    # =========================================================================
    # ERROR LOG TRIAGE
    # =========================================================================

    @staticmethod
    def load_error_log(path: str | Path) -> list[dict[str, Any]]:
        return read_error_log(path)

    @staticmethod
    def analyze_failure_patterns(path: str | Path) -> dict[str, Any]:
        return analyze_failure_patterns(path)

    # =========================================================================
    # ATTEMPT
    # =========================================================================

    def _mark_permanent(self, record: dict[str, Any], record_id: str, attempts: int) -> None:
        self._permanent_ids.add(record_id)
        self.retry_attempts.pop(record_id, None)
        self.retry_stats["permanent_failures"] += 1
        self.permanent_failure_records.append({
            "record_id": record_id,
            "type": record.get("type"),
            "data": record.get("data"),
            "final_errors": self._last_errors.pop(record_id, record.get("errors", [])),
            "attempts": attempts,
            "marked_permanent_at": datetime.now(timezone.utc).isoformat(),
        })
        record_permanent_failure(str(record.get("type")))
        logger.error("Record marked as permanent failure", record_id=record_id, attempts=attempts)

    async def _import_children(
        self,
        level: str,
        row_id: int,
        data: dict[str, Any],
        keys: dict[str, Any],
    ) -> None:
        try:
            children = await self.importer.import_children(level, row_id, data, keys)
        except (MemoryError, OSError):
            raise
        except Exception as e:
            self.child_errors.append(
                error_record(TRANSACTION_ERROR, data, [f"{type(e).__name__}: {e}"])
            )
            logger.error("Child import failed after retry", level=level, error=str(e))
            return
        self.child_errors.extend(children.errors)

    async def _execute(
        self, record: dict[str, Any]
    ) -> tuple[str, int, dict[str, Any], dict[str, Any]]:
        """
        Clean and persist one record in its own transaction.

        Returns:
            (level, row id, raw data, natural keys of the node and its ancestors)
        """
        record_type = record.get("type")
        data = record.get("data")
        if not isinstance(data, dict):
            raise RecordValidationError("Record data is not an object", details={"type": record_type})

        handlers = {
            LEVEL_EDITION: self._retry_edition,
            TRANSACTION_ERROR: self._retry_edition,
            LEVEL_CHAPTER: self._retry_chapter,
            LEVEL_REGULATION: self._retry_regulation,
            LEVEL_ARTICLE: self._retry_article,
            LEVEL_CLAUSE: self._retry_clause,
        }
        handler = handlers.get(record_type)
        if handler is None:
            raise RecordValidationError(f"Unknown record type: {record_type}")

        async with self.session_factory() as session:
            async with session.begin():
                repo = self.repository_factory(session)
                return await handler(repo, data)

    async def _resolve_edition(self, repo: RegulationRepository, number: int) -> int:
        edition = await repo.find_edition(number)
        if edition is not None:
            return edition.id
        edition, _ = await repo.upsert_edition(
            number=number,
            title=DEFAULT_PLACEHOLDER_TITLE,
            sort_order=number,
        )
        logger.info("Created placeholder edition", edition_number=number)
        return edition.id

    async def _resolve_chapter(
        self, repo: RegulationRepository, edition_number: int, chapter_number: int
    ) -> int:
        edition_id = await self._resolve_edition(repo, edition_number)
        chapter = await repo.find_chapter(edition_id, chapter_number)
        if chapter is not None:
            return chapter.id
        chapter, _ = await repo.upsert_chapter(
            edition_id=edition_id,
            number=chapter_number,
            title=FALLBACK_CHAPTER_TITLE,
            sort_order=chapter_number,
        )
        logger.info(
            "Created placeholder chapter",
            edition_number=edition_number,
            chapter_number=chapter_number,
        )
        return chapter.id

    async def _retry_edition(self, repo: RegulationRepository, data: dict[str, Any]):
        number = to_int(data.get("number"))
        record = EditionRecord.model_validate({
            "number": number,
            "title": clean_text(data.get("title")) or DEFAULT_PLACEHOLDER_TITLE,
            "description": clean_text(data.get("description")),
        })
        edition, _ = await repo.upsert_edition(
            number=record.number,
            title=record.title,
            sort_order=record.number,
            description=record.description,
        )
        return LEVEL_EDITION, edition.id, data, {"edition_number": record.number}

    async def _retry_chapter(self, repo: RegulationRepository, data: dict[str, Any]):
        edition_number = to_int(data.get("edition_number"))
        record = ChapterRecord.model_validate({
            "number": to_int(data.get("number")),
            "title": clean_text(data.get("title")) or FALLBACK_CHAPTER_TITLE,
            "description": clean_text(data.get("description")),
        })
        edition_id = await self._resolve_edition(repo, edition_number)
        chapter, _ = await repo.upsert_chapter(
            edition_id=edition_id,
            number=record.number,
            title=record.title,
            sort_order=record.number,
            description=record.description,
        )
        keys = {"edition_number": edition_number, "chapter_number": record.number}
        return LEVEL_CHAPTER, chapter.id, data, keys

    async def _retry_regulation(self, repo: RegulationRepository, data: dict[str, Any]):
        code = clean_regulation_code(
            data.get("code"),
            edition_number=to_int(data.get("edition_number")),
            chapter_number=to_int(data.get("chapter_number")),
            seed={key: value for key, value in data.items() if key != "articles"},
        )
        edition_number, chapter_number, ordinal = (int(part) for part in code.split("-"))
        record = RegulationRecord.model_validate({
            "code": code,
            "title": clean_text(data.get("title")) or DEFAULT_PLACEHOLDER_TITLE,
            "content": clean_text(data.get("content")),
        })
        chapter_id = await self._resolve_chapter(repo, edition_number, chapter_number)
        regulation, _ = await repo.upsert_regulation(
            chapter_id=chapter_id,
            code=record.code,
            number=ordinal,
            title=record.title,
            sort_order=ordinal,
            content=record.content,
        )
        keys = {
            "edition_number": edition_number,
            "chapter_number": chapter_number,
            "regulation_code": record.code,
        }
        return LEVEL_REGULATION, regulation.id, data, keys

    async def _retry_article(self, repo: RegulationRepository, data: dict[str, Any]):
        regulation_code = clean_text(data.get("regulation_code"))
        regulation = await repo.find_regulation(regulation_code) if regulation_code else None
        if regulation is None:
            raise RecordValidationError(
                f"Parent regulation not found: {regulation_code}",
                details={"regulation_code": regulation_code},
            )
        record = ArticleRecord.model_validate({
            "number": to_int(data.get("number")),
            "title": clean_text(data.get("title")),
            "content": clean_text(data.get("content")) or "",
        })
        article, _ = await repo.upsert_article(
            regulation_id=regulation.id,
            number=record.number,
            content=record.content,
            sort_order=record.number,
            title=record.title,
        )
        keys = {
            "edition_number": data.get("edition_number"),
            "chapter_number": data.get("chapter_number"),
            "regulation_code": regulation_code,
            "article_number": record.number,
        }
        return LEVEL_ARTICLE, article.id, data, keys

    async def _retry_clause(self, repo: RegulationRepository, data: dict[str, Any]):
        regulation_code = clean_text(data.get("regulation_code"))
        article_number = to_int(data.get("article_number"))
        article = (
            await repo.find_article_by_code(regulation_code, article_number)
            if regulation_code else None
        )
        if article is None:
            raise RecordValidationError(
                f"Parent article not found: {regulation_code} article {article_number}",
                details={"regulation_code": regulation_code, "article_number": article_number},
            )
        clause_type = clean_text(data.get("type") or data.get("clause_type"))
        number = to_int(data.get("number"))
        record = ClauseRecord.model_validate({
            "number": number,
            "content": clean_text(data.get("content")) or "",
            "type": clause_type if clause_type in CLAUSE_TYPES else "paragraph",
            "sort_order": to_int(data.get("sort_order"), default=number),
        })
        clause, _ = await repo.upsert_clause(
            article_id=article.id,
            number=record.number,
            content=record.content,
            clause_type=record.clause_type,
            sort_order=record.sort_order if record.sort_order is not None else record.number,
        )
        return LEVEL_CLAUSE, clause.id, data, {}


__all__ = [
    "RegulationRetryHandler",
    "generate_record_id",
    "to_int",
    "clean_text",
    "clean_regulation_code",
    "categorize_error",
    "recommendations",
    "analyze_failure_patterns",
    "ERROR_CATEGORIES",
]

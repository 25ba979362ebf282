"""Regulation Structural Parser
Builds the Edition → Chapter → Regulation → Article → Clause tree from flat,
noisy compendium text with a line-driven state machine.

States:
    INITIAL → EDITION → CHAPTER → REGULATION → ARTICLE → CLAUSE, plus SKIP.

Transition rule:
    A heading of level L is accepted in state S when L <= level(S) + 1, i.e.
    it is the next level down or a sibling/ancestor level. A deeper heading
    sends the machine to SKIP, where every heading is accepted (highest level
    first) once its parents are resolved. A heading whose parents are not open
    gets placeholder parents (number 0, "Uncategorized"), a structural error
    is recorded and the machine stays in SKIP.

Content:
    Unrecognised lines are appended to the deepest open regulation, article
    or clause. Before any regulation is open they are counted as skipped.

Every line is accounted for exactly once:
    heading_lines + content_lines == total_lines - skipped_lines
where skipped_lines includes blank and noise lines.
"""
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from regulation_ingest.core.constants import (
    APPENDIX_TITLE,
    DEFAULT_PLACEHOLDER_TITLE,
    PLACEHOLDER_NUMBER,
    SUB_CLAUSE_STRIDE,
)
from regulation_ingest.core.queue.progress_tracker import PhaseProgress
from regulation_ingest.core.version import PARSER_VERSION
from regulation_ingest.parsers.classifiers.line_classifier import (
    LineClassifier,
    LineKind,
    LineToken,
    MarkerStyle,
    infer_clause_type,
)
from regulation_ingest.parsers.core.exceptions import (
    InputFileError,
    RegulationCodeError,
    StructuralError,
)
from regulation_ingest.parsers.core.parse_tree import NodeLevel, ParseTree, TreeNode
from regulation_ingest.parsers.presets.regulation_patterns import PATTERNS

logger = logging.getLogger(__name__)

_CODE_ORDINAL_RE = re.compile(r'^\d+-\d+-(\d+)')


class ParserState(str, Enum):
    """Builder state; the heading level it expects next is one deeper."""
    INITIAL = "INITIAL"
    EDITION = "EDITION"
    CHAPTER = "CHAPTER"
    REGULATION = "REGULATION"
    ARTICLE = "ARTICLE"
    CLAUSE = "CLAUSE"
    SKIP = "SKIP"


STATE_LEVELS: Dict[ParserState, int] = {
    ParserState.INITIAL: 0,
    ParserState.EDITION: 1,
    ParserState.CHAPTER: 2,
    ParserState.REGULATION: 3,
    ParserState.ARTICLE: 4,
    ParserState.CLAUSE: 5,
}

LEVEL_STATES: Dict[NodeLevel, ParserState] = {
    NodeLevel.EDITION: ParserState.EDITION,
    NodeLevel.CHAPTER: ParserState.CHAPTER,
    NodeLevel.REGULATION: ParserState.REGULATION,
    NodeLevel.ARTICLE: ParserState.ARTICLE,
    NodeLevel.CLAUSE: ParserState.CLAUSE,
}

CONTENT_STATES = frozenset({
    ParserState.REGULATION,
    ParserState.ARTICLE,
    ParserState.CLAUSE,
    ParserState.SKIP,
})


# ============================================================================
# RESULT TYPES
# ============================================================================


@dataclass(frozen=True)
class ParentLookup:
    """Outcome of resolving the parent for a new node: a node or an error."""
    node: Optional[TreeNode] = None
    error: Optional[StructuralError] = None
    missing: Tuple[NodeLevel, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ParseStatistics:
    """Line and node counters for one parse."""
    total_lines: int = 0
    editions: int = 0
    chapters: int = 0
    regulations: int = 0
    articles: int = 0
    clauses: int = 0
    skipped_lines: int = 0
    error_lines: int = 0
    noise_lines: int = 0
    blank_lines: int = 0
    heading_lines: int = 0
    content_lines: int = 0
    placeholders: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ParseResult:
    """
    Parsed document: tree, statistics, errors and metadata.

    ``to_dict()`` gives the serialisable form consumed by the importer.
    """
    tree: ParseTree
    statistics: ParseStatistics
    errors: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    benchmark: Optional[Any] = None

    @property
    def success_rate(self) -> float:
        return self.metadata.get("success_rate", 100.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.tree.to_dict(),
            "statistics": self.statistics.to_dict(),
            "errors": list(self.errors),
            "metadata": dict(self.metadata),
        }


@dataclass
class _ClauseCounter:
    last_paragraph: int = 0
    sub_count: int = 0
    used: set = field(default_factory=set)


# ============================================================================
# PARSER
# ============================================================================


class RegulationStructuralParser:
    """
    Line-driven builder for the regulation hierarchy.

    One instance parses one document at a time; ``parse_*`` resets state, so
    an instance can be reused sequentially but must not be shared between
    threads.

    Args:
        classifier: Line classifier (defaults to the built-in noise rules)
        placeholder_title: Title of synthesized parents
        on_line: Called with the line number after every processed line
        on_error: Called with every recorded error dict
    """

    def __init__(
        self,
        classifier: Optional[LineClassifier] = None,
        placeholder_title: str = DEFAULT_PLACEHOLDER_TITLE,
        on_line: Optional[Callable[[int], None]] = None,
        on_error: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.classifier = classifier or LineClassifier()
        self.placeholder_title = placeholder_title
        self.on_line = on_line
        self.on_error = on_error
        self._reset()

    def _reset(self) -> None:
        self.tree = ParseTree()
        self.stats = ParseStatistics()
        self.errors: List[Dict[str, Any]] = []
        self.state = ParserState.INITIAL
        self._open: Dict[NodeLevel, Optional[TreeNode]] = {level: None for level in NodeLevel}
        self._clause_counters: Dict[int, _ClauseCounter] = {}
        self._appendix_mode = False
        self._pending_title: Optional[LineToken] = None

    # ------------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------------

    def parse_file(
        self,
        file_path: str,
        encoding: str = "utf-8",
        progress: Optional[PhaseProgress] = None,
        total_lines: Optional[int] = None,
    ) -> ParseResult:
        """
        Parse a regulation text file, streaming it line by line.

        Raises:
            InputFileError: File is missing, unreadable or not decodable
        """
        path = Path(file_path)
        try:
            with path.open(encoding=encoding) as handle:
                return self.parse_lines(
                    handle,
                    source=str(path),
                    progress=progress,
                    total_lines=total_lines,
                )
        except (OSError, UnicodeDecodeError) as e:
            raise InputFileError(str(path), str(e), original_exception=e) from e

    def parse_text(self, text: str, progress: Optional[PhaseProgress] = None) -> ParseResult:
        lines = text.splitlines()
        return self.parse_lines(lines, progress=progress, total_lines=len(lines))

    def parse_lines(
        self,
        lines: Iterable[str],
        source: Optional[str] = None,
        progress: Optional[PhaseProgress] = None,
        total_lines: Optional[int] = None,
    ) -> ParseResult:
        """Parse an iterable of raw lines."""
        self._reset()

        for line_number, raw_line in enumerate(lines, start=1):
            token = self.classifier.classify(raw_line, line_number)
            self._process(token)

            if self.on_line is not None:
                self.on_line(line_number)
            if progress is not None and total_lines:
                progress.update(line_number, total_lines, "Parsing lines")

        if self._pending_title is not None:
            self._handle_content(self._pending_title)
            self._pending_title = None

        self._validate_hierarchy()
        result = self._build_result(source)

        logger.info(
            f"Parsed {self.stats.total_lines} lines: "
            f"{self.stats.editions} editions, {self.stats.chapters} chapters, "
            f"{self.stats.regulations} regulations, {self.stats.articles} articles, "
            f"{self.stats.clauses} clauses ({len(self.errors)} errors)"
        )
        return result

    # ------------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------------

    def _process(self, token: LineToken) -> None:
        self.stats.total_lines += 1

        if token.kind == LineKind.BLANK:
            self.stats.blank_lines += 1
            self.stats.skipped_lines += 1
            return

        if token.kind == LineKind.NOISE:
            self.stats.noise_lines += 1
            self.stats.skipped_lines += 1
            return

        if self._pending_title is not None:
            self._resolve_pending_title(token)
        if token.kind == LineKind.REGULATION_TITLE:
            self._pending_title = token
            return

        if token.kind == LineKind.APPENDIX:
            self._handle_appendix(token)
        elif token.is_heading and not self._demoted_to_content(token):
            self._handle_heading(token)
        else:
            self._handle_content(token)

    def _resolve_pending_title(self, token: LineToken) -> None:
        """
        Decide what a held bare regulation title was, given the next line.

        An article opens the titled regulation; a chapter keeps it waiting
        for the regulation's first article. Anything else makes it content.
        """
        if token.kind == LineKind.CHAPTER:
            return

        pending = self._pending_title
        self._pending_title = None
        if token.kind == LineKind.ARTICLE:
            self._open_titled_regulation(pending)
        else:
            self._handle_content(pending)

    def _open_titled_regulation(self, pending: LineToken) -> None:
        """Open a regulation for a bare title line as the next ordinal in its chapter."""
        edition = self._open[NodeLevel.EDITION]
        chapter = self._open[NodeLevel.CHAPTER]
        prefix = (
            f"{edition.number if edition is not None else PLACEHOLDER_NUMBER}-"
            f"{chapter.number if chapter is not None else PLACEHOLDER_NUMBER}-"
        )

        last_ordinal = 0
        for regulation in self.tree.iter_level(NodeLevel.REGULATION):
            match = _CODE_ORDINAL_RE.match(regulation.code or "")
            if match and regulation.code.startswith(prefix):
                last_ordinal = max(last_ordinal, int(match.group(1)))

        self._handle_heading(LineToken(
            kind=LineKind.REGULATION,
            text=pending.text,
            line_number=pending.line_number,
            code=f"{prefix}{last_ordinal + 1}",
            title=pending.title,
        ))

    def _demoted_to_content(self, token: LineToken) -> bool:
        """Headings that read as body text where they appear."""
        if token.kind == LineKind.ARTICLE and self._appendix_mode:
            return True
        # Enumerated lists before any article belong to the regulation text
        if (
            token.kind == LineKind.CLAUSE
            and token.marker_style != MarkerStyle.CIRCLED
            and self._open[NodeLevel.ARTICLE] is None
        ):
            return True
        return False

    # ------------------------------------------------------------------------
    # Headings
    # ------------------------------------------------------------------------

    def _handle_heading(self, token: LineToken) -> None:
        level = NodeLevel(token.level)
        entry_state = self.state

        if self.state != ParserState.SKIP and level > STATE_LEVELS[self.state] + 1:
            self.state = ParserState.SKIP

        lookup = self._require_parent(level, token, entry_state)
        if lookup.ok:
            parent = lookup.node
        else:
            self._record_error(lookup.error)
            parent = self._synthesize_parents(level, lookup.missing)

        node = self._open_node(level, token, parent)
        self.stats.heading_lines += 1

        if level <= NodeLevel.REGULATION:
            self._appendix_mode = False

        self.state = LEVEL_STATES[level] if lookup.ok else ParserState.SKIP
        logger.debug(f"Line {token.line_number}: opened {level.label} {node.natural_key} ({self.state.value})")

    def _require_parent(
        self,
        level: NodeLevel,
        token: LineToken,
        entry_state: ParserState,
    ) -> ParentLookup:
        """Resolve the open parent for a node at ``level``."""
        if level == NodeLevel.EDITION:
            return ParentLookup(node=None)

        missing = tuple(
            NodeLevel(depth)
            for depth in range(NodeLevel.EDITION, level)
            if self._open[NodeLevel(depth)] is None
        )
        if not missing:
            return ParentLookup(node=self._open[NodeLevel(level - 1)])

        labels = ", ".join(missing_level.label for missing_level in missing)
        error = StructuralError(
            message=f"{level.label.capitalize()} without parent ({labels}): {token.text}",
            line_number=token.line_number,
            state=entry_state.value,
        )
        return ParentLookup(error=error, missing=missing)

    def _synthesize_parents(self, level: NodeLevel, missing: Tuple[NodeLevel, ...]) -> TreeNode:
        """Open (or reuse) placeholder nodes for every missing ancestor."""
        for missing_level in missing:
            parent = self._open[NodeLevel(missing_level - 1)] if missing_level > NodeLevel.EDITION else None
            parent_index = parent.index if parent is not None else None

            if missing_level == NodeLevel.REGULATION:
                code = self._placeholder_code()
                node = self.tree.find_regulation(code)
            else:
                code = None
                node = self.tree.find_child(parent_index, missing_level, PLACEHOLDER_NUMBER)

            if node is None:
                node = self.tree.add(
                    missing_level,
                    parent_index,
                    number=PLACEHOLDER_NUMBER,
                    title=self.placeholder_title,
                    code=code,
                    placeholder=True,
                )
                self.stats.placeholders += 1
            self._set_open(missing_level, node)

        return self._open[NodeLevel(level - 1)]

    def _placeholder_code(self) -> str:
        edition = self._open[NodeLevel.EDITION]
        chapter = self._open[NodeLevel.CHAPTER]
        return f"{edition.number}-{chapter.number}-{PLACEHOLDER_NUMBER}"

    def _open_node(self, level: NodeLevel, token: LineToken, parent: Optional[TreeNode]) -> TreeNode:
        parent_index = parent.index if parent is not None else None

        if level == NodeLevel.REGULATION:
            node = self.tree.find_regulation(token.code)
            if node is None:
                node = self.tree.add(
                    level,
                    parent_index,
                    number=self._regulation_ordinal(token.code, parent),
                    title=token.title,
                    code=token.code,
                    line_number=token.line_number,
                )
            elif node.parent != parent_index:
                if self._relocate_from_placeholders(node, parent):
                    logger.info(
                        f"Line {token.line_number}: regulation {token.code} moved from "
                        f"placeholder parents to chapter {parent.number}"
                    )
                else:
                    logger.warning(
                        f"Line {token.line_number}: regulation {token.code} repeated under "
                        f"another chapter; continuing the first occurrence"
                    )
                    for ancestor in self.tree.ancestors(node.index):
                        self._set_open(ancestor.level, ancestor)
            self._set_open(level, node)
            return node

        if level == NodeLevel.CLAUSE:
            clause_type = infer_clause_type(token.content)
            if token.marker_style == MarkerStyle.PAREN and clause_type == "paragraph":
                clause_type = "subitem"
            node = self.tree.add(
                level,
                parent_index,
                number=self._next_clause_number(parent, token),
                clause_type=clause_type,
                content=token.content,
                line_number=token.line_number,
            )
            self._set_open(level, node)
            return node

        node = self.tree.find_child(parent_index, level, token.number)
        if node is None:
            node = self.tree.add(
                level,
                parent_index,
                number=token.number,
                title=token.title,
                content=token.content,
                line_number=token.line_number,
            )
        else:
            logger.debug(f"Line {token.line_number}: re-opened {level.label} {token.number}")
            node.append_content(token.content)
        self._set_open(level, node)
        return node

    def _relocate_from_placeholders(self, node: TreeNode, chapter: Optional[TreeNode]) -> bool:
        """
        Move a regulation first seen under placeholder parents (e.g. a
        table-of-contents line) to the real chapter it reappears in.

        Placeholder ancestors left empty are dropped.
        """
        if chapter is None:
            return False
        old_ancestors = self.tree.ancestors(node.index)
        if not any(ancestor.placeholder for ancestor in old_ancestors):
            return False
        if chapter.placeholder or any(a.placeholder for a in self.tree.ancestors(chapter.index)):
            return False

        self.tree.move(node.index, chapter.index)
        for ancestor in reversed(old_ancestors):
            if ancestor.placeholder and not ancestor.children:
                self.tree.remove(ancestor.index)
                self.stats.placeholders -= 1
        return True

    def _set_open(self, level: NodeLevel, node: TreeNode) -> None:
        self._open[level] = node
        for deeper in NodeLevel:
            if deeper > level:
                self._open[deeper] = None

    def _regulation_ordinal(self, code: str, chapter: TreeNode) -> int:
        match = _CODE_ORDINAL_RE.match(code or "")
        if match:
            return int(match.group(1))
        return len(chapter.children) + 1

    def _next_clause_number(self, article: TreeNode, token: LineToken) -> int:
        """
        Clause number unique within the article.

        Circled markers use their ordinal; sub-level markers use
        ``paragraph * 100 + k``. A collision falls back to ``max + 1``.
        """
        counter = self._clause_counters.setdefault(article.index, _ClauseCounter())

        if token.marker_style == MarkerStyle.CIRCLED:
            number = token.number
            counter.last_paragraph = token.number
            counter.sub_count = 0
        else:
            counter.sub_count += 1
            number = counter.last_paragraph * SUB_CLAUSE_STRIDE + counter.sub_count

        if number in counter.used:
            number = max(counter.used) + 1
        counter.used.add(number)
        return number

    # ------------------------------------------------------------------------
    # Appendix and content
    # ------------------------------------------------------------------------

    def _handle_appendix(self, token: LineToken) -> None:
        regulation = self._open[NodeLevel.REGULATION]
        if regulation is None:
            self._handle_content(token)
            return

        numbers = [child.number for child in self.tree.children_of(regulation.index)]
        article = self.tree.add(
            NodeLevel.ARTICLE,
            regulation.index,
            number=max(numbers, default=0) + 1,
            title=APPENDIX_TITLE,
            line_number=token.line_number,
        )
        self._set_open(NodeLevel.ARTICLE, article)
        self._appendix_mode = True
        self.state = ParserState.ARTICLE
        self.stats.heading_lines += 1

    def _handle_content(self, token: LineToken) -> None:
        target = (
            self._open[NodeLevel.CLAUSE]
            or self._open[NodeLevel.ARTICLE]
            or self._open[NodeLevel.REGULATION]
        )

        if self.state in CONTENT_STATES and target is not None:
            target.append_content(token.text)
            self.stats.content_lines += 1
            return

        if self.state != ParserState.SKIP:
            self.state = ParserState.SKIP
        self.stats.skipped_lines += 1

    # ------------------------------------------------------------------------
    # Errors, validation, result
    # ------------------------------------------------------------------------

    def _record_error(self, error: StructuralError) -> None:
        record = {
            "type": "structural_error",
            "message": error.message,
            "line_number": error.line_number,
            "state": error.state,
            "timestamp": error.timestamp.isoformat(),
        }
        self.errors.append(record)
        self.stats.error_lines += 1
        logger.warning(f"Line {error.line_number}: {error.message}")

        if self.on_error is not None:
            self.on_error(record)

    def _validate_hierarchy(self) -> None:
        """Flag regulation codes that do not have the E-C-R shape."""
        for regulation in self.tree.iter_level(NodeLevel.REGULATION):
            if regulation.code and PATTERNS['regulation_code'].match(regulation.code):
                continue
            error = RegulationCodeError(regulation.code or "")
            record = {
                "type": "validation_error",
                "message": error.message,
                "line_number": regulation.line_number,
                "state": "VALIDATION",
                "timestamp": error.timestamp.isoformat(),
            }
            self.errors.append(record)
            if self.on_error is not None:
                self.on_error(record)

    def _build_result(self, source: Optional[str]) -> ParseResult:
        self.stats.editions = self.tree.count(NodeLevel.EDITION)
        self.stats.chapters = self.tree.count(NodeLevel.CHAPTER)
        self.stats.regulations = self.tree.count(NodeLevel.REGULATION)
        self.stats.articles = self.tree.count(NodeLevel.ARTICLE)
        self.stats.clauses = self.tree.count(NodeLevel.CLAUSE)

        total = self.stats.total_lines
        success_rate = (
            round((total - self.stats.error_lines) / total * 100, 2) if total else 100.0
        )
        metadata = {
            "parsed_at": datetime.now(timezone.utc).isoformat(),
            "parser_version": PARSER_VERSION,
            "total_errors": len(self.errors),
            "success_rate": success_rate,
        }
        if source:
            metadata["source"] = source

        return ParseResult(
            tree=self.tree,
            statistics=self.stats,
            errors=self.errors,
            metadata=metadata,
        )


__all__ = [
    'ParserState',
    'ParentLookup',
    'ParseStatistics',
    'ParseResult',
    'RegulationStructuralParser',
]

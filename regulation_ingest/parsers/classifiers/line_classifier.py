"""
Line Classifier - single-line tokenizer for regulation compendium text.

Pure and stateless: a line goes in, a ``LineToken`` comes out. Whether a
heading is acceptable where it appears is the document builder's decision,
not the classifier's.

Classification order:
    1. BLANK       - empty after normalization
    2. NOISE       - matches a named rule in the NoiseRuleSet
    3. EDITION     - 제N편 title
    4. CHAPTER     - 제N장 title
    5. APPENDIX    - 부칙
    6. ARTICLE     - 제N조 내지 제M조 / 제N조(title) / 제N조
    7. CLAUSE      - ① / (가) / 1. / 가.
    8. REGULATION  - title E-C-R / E-C-R title
    9. REGULATION_TITLE - a bare title ending in 규정/정관/학칙/세칙/기준
   10. ATTACHMENT  - <별표 1>, [별지 제1호 서식]
   11. CONTENT     - anything else

Noise rules are data: the default set lives in presets.regulation_patterns
and can be extended from settings or a patterns file, or replaced outright.

Example:
    >>> classifier = LineClassifier()
    >>> token = classifier.classify("제1조(목적) 이 규정은 ...", line_number=12)
    >>> token.kind, token.number, token.title
    (<LineKind.ARTICLE: 'article'>, 1, '목적')
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from regulation_ingest.parsers.core.exceptions import NoisePatternError
from regulation_ingest.parsers.presets.regulation_patterns import (
    CIRCLED_DIGITS,
    HANGUL_ENUMERATORS,
    NOISE_PATTERNS,
    PATTERNS,
)

logger = logging.getLogger(__name__)


# ============================================================================
# TOKEN TYPES
# ============================================================================


class LineKind(str, Enum):
    """Classification of a single line."""
    EDITION = "edition"
    CHAPTER = "chapter"
    REGULATION = "regulation"
    REGULATION_TITLE = "regulation_title"
    ARTICLE = "article"
    CLAUSE = "clause"
    APPENDIX = "appendix"
    ATTACHMENT = "attachment"
    NOISE = "noise"
    CONTENT = "content"
    BLANK = "blank"


class MarkerStyle(str, Enum):
    """Enumerator style of a clause marker."""
    CIRCLED = "circled"      # ①
    PAREN = "paren"          # (가) / (1)
    DIGIT = "digit"          # 1.
    HANGUL = "hangul"        # 가.


HEADING_LEVELS: Dict[LineKind, int] = {
    LineKind.EDITION: 1,
    LineKind.CHAPTER: 2,
    LineKind.REGULATION: 3,
    LineKind.ARTICLE: 4,
    LineKind.CLAUSE: 5,
}
"""Hierarchy level of each heading kind (edition = 1 ... clause = 5)."""


@dataclass(frozen=True)
class LineToken:
    """
    Result of classifying one line.

    Only the fields relevant to ``kind`` are set.

    Attributes:
        kind: Line classification
        text: Normalized line
        line_number: 1-based line number in the source
        number: Edition/chapter/article number or clause marker ordinal
        end_number: Last article number of a ``내지`` range
        title: Heading title
        code: Regulation code as written (may be malformed)
        content: Body text following a heading or clause marker
        marker: Clause marker as written (``①``, ``가``, ``1``)
        marker_style: Clause marker style
        noise_rule: Name of the matching noise rule
    """
    kind: LineKind
    text: str
    line_number: int = 0
    number: Optional[int] = None
    end_number: Optional[int] = None
    title: Optional[str] = None
    code: Optional[str] = None
    content: str = ""
    marker: Optional[str] = None
    marker_style: Optional[MarkerStyle] = None
    noise_rule: Optional[str] = None

    @property
    def level(self) -> Optional[int]:
        """Hierarchy level for heading kinds, None otherwise."""
        return HEADING_LEVELS.get(self.kind)

    @property
    def is_heading(self) -> bool:
        return self.kind in HEADING_LEVELS


# ============================================================================
# NORMALIZATION
# ============================================================================

_WHITESPACE_RE = re.compile(r'\s+')
_SPACE_TRANSLATION = str.maketrans({
    "\u00a0": " ",   # no-break space
    "\u3000": " ",   # ideographic space
    "\u200b": "",    # zero-width space
    "\ufeff": "",    # BOM
    "\u201c": "\"",
    "\u201d": "\"",
    "\u2018": "'",
    "\u2019": "'",
})


def normalize_line(line: str) -> str:
    """
    Normalize a raw line.

    Strips the line, maps NBSP and ideographic spaces to ASCII spaces, drops
    zero-width characters, straightens smart quotes and collapses whitespace.
    """
    return _WHITESPACE_RE.sub(' ', line.translate(_SPACE_TRANSLATION)).strip()


# ============================================================================
# NOISE RULES
# ============================================================================


@dataclass(frozen=True)
class NoiseRule:
    """A named noise regex."""
    name: str
    pattern: Pattern[str]

    @classmethod
    def compile(cls, name: str, pattern: str) -> "NoiseRule":
        try:
            return cls(name=name, pattern=re.compile(pattern))
        except re.error as e:
            raise NoisePatternError(pattern, str(e)) from e


@dataclass
class NoiseRuleSet:
    """
    Ordered, named set of noise rules.

    Only lines matching one of these rules are dropped as noise; every other
    line is either a heading or content.
    """
    rules: List[NoiseRule] = field(default_factory=list)

    @classmethod
    def default(cls) -> "NoiseRuleSet":
        return cls.from_patterns(NOISE_PATTERNS.items())

    @classmethod
    def from_patterns(cls, patterns: Iterable[Tuple[str, str]]) -> "NoiseRuleSet":
        return cls([NoiseRule.compile(name, pattern) for name, pattern in patterns])

    @classmethod
    def from_settings(
        cls,
        extra_patterns: Optional[Iterable[str]] = None,
        patterns_file: Optional[str] = None,
    ) -> "NoiseRuleSet":
        """
        Build the default set extended with configured patterns.

        Args:
            extra_patterns: Additional regexes (named ``custom_1`` ...)
            patterns_file: File with one regex per line; ``#`` starts a comment

        Raises:
            NoisePatternError: A pattern does not compile
        """
        rule_set = cls.default()
        for index, pattern in enumerate(extra_patterns or [], start=1):
            rule_set.add(f"custom_{index}", pattern)
        if patterns_file:
            rule_set.extend_from_file(patterns_file)
        return rule_set

    def add(self, name: str, pattern: str) -> None:
        self.rules.append(NoiseRule.compile(name, pattern))

    def remove(self, name: str) -> None:
        self.rules = [rule for rule in self.rules if rule.name != name]

    def extend_from_file(self, path: str) -> None:
        file_path = Path(path)
        loaded = 0
        for index, raw in enumerate(file_path.read_text(encoding='utf-8').splitlines(), start=1):
            pattern = raw.strip()
            if not pattern or pattern.startswith('#'):
                continue
            self.add(f"{file_path.stem}_{index}", pattern)
            loaded += 1
        logger.info(f"Loaded {loaded} noise patterns from {file_path}")

    @property
    def names(self) -> List[str]:
        return [rule.name for rule in self.rules]

    def match(self, line: str) -> Optional[str]:
        """Return the name of the first matching rule, or None."""
        for rule in self.rules:
            if rule.pattern.search(line):
                return rule.name
        return None


# ============================================================================
# CLAUSE HELPERS
# ============================================================================


def circled_ordinal(marker: str) -> int:
    """Ordinal of a circled digit (``①`` -> 1). Unknown glyphs map to 1."""
    index = CIRCLED_DIGITS.find(marker)
    return index + 1 if index >= 0 else 1


def hangul_ordinal(marker: str) -> int:
    """Ordinal of a hangul enumerator (``가`` -> 1). Unknown syllables map to 1."""
    index = HANGUL_ENUMERATORS.find(marker)
    return index + 1 if index >= 0 else 1


def infer_clause_type(content: str) -> str:
    """
    Infer clause type from clause text.

    - Mentions a proviso (다만 / 단서): ``subparagraph``
    - Starts with a digit or hangul enumerator: ``item``
    - Otherwise: ``paragraph``
    """
    if PATTERNS['proviso'].search(content):
        return "subparagraph"
    if PATTERNS['enumerated_content'].match(content):
        return "item"
    return "paragraph"


# ============================================================================
# CLASSIFIER
# ============================================================================


class LineClassifier:
    """
    Stateless line classifier.

    Args:
        noise_rules: Noise rule set (defaults to ``NoiseRuleSet.default()``)
    """

    def __init__(self, noise_rules: Optional[NoiseRuleSet] = None):
        self.noise_rules = noise_rules if noise_rules is not None else NoiseRuleSet.default()

    def classify(self, raw_line: str, line_number: int = 0) -> LineToken:
        """Normalize and classify a raw line."""
        text = normalize_line(raw_line)

        if not text:
            return LineToken(kind=LineKind.BLANK, text=text, line_number=line_number)

        noise_rule = self.noise_rules.match(text)
        if noise_rule is not None:
            return LineToken(
                kind=LineKind.NOISE,
                text=text,
                line_number=line_number,
                noise_rule=noise_rule,
            )

        for matcher in (
            self._match_edition,
            self._match_chapter,
            self._match_appendix,
            self._match_article,
            self._match_clause,
            self._match_regulation,
            self._match_regulation_title,
            self._match_attachment,
        ):
            token = matcher(text, line_number)
            if token is not None:
                return token

        return LineToken(kind=LineKind.CONTENT, text=text, line_number=line_number, content=text)

    # ------------------------------------------------------------------------
    # Matchers
    # ------------------------------------------------------------------------

    def _match_edition(self, text: str, line_number: int) -> Optional[LineToken]:
        match = PATTERNS['edition'].match(text)
        if not match:
            return None
        return LineToken(
            kind=LineKind.EDITION,
            text=text,
            line_number=line_number,
            number=int(match.group(1)),
            title=match.group(2).strip(),
        )

    def _match_chapter(self, text: str, line_number: int) -> Optional[LineToken]:
        match = PATTERNS['chapter'].match(text)
        if not match:
            return None
        return LineToken(
            kind=LineKind.CHAPTER,
            text=text,
            line_number=line_number,
            number=int(match.group(1)),
            title=match.group(2).strip(),
        )

    def _match_appendix(self, text: str, line_number: int) -> Optional[LineToken]:
        if not PATTERNS['appendix'].match(text):
            return None
        return LineToken(kind=LineKind.APPENDIX, text=text, line_number=line_number)

    def _match_article(self, text: str, line_number: int) -> Optional[LineToken]:
        match = PATTERNS['article_range'].match(text)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            return LineToken(
                kind=LineKind.ARTICLE,
                text=text,
                line_number=line_number,
                number=start,
                end_number=end,
                title=f"제{start}조 내지 제{end}조",
                content=match.group(3).strip(),
            )

        match = PATTERNS['article_with_title'].match(text)
        if match:
            return LineToken(
                kind=LineKind.ARTICLE,
                text=text,
                line_number=line_number,
                number=int(match.group(1)),
                title=match.group(2).strip(),
                content=match.group(3).strip(),
            )

        match = PATTERNS['article_simple'].match(text)
        if match:
            return LineToken(
                kind=LineKind.ARTICLE,
                text=text,
                line_number=line_number,
                number=int(match.group(1)),
                content=match.group(2).strip(),
            )
        return None

    def _match_clause(self, text: str, line_number: int) -> Optional[LineToken]:
        match = PATTERNS['clause_circled'].match(text)
        if match:
            marker = match.group(1)
            return LineToken(
                kind=LineKind.CLAUSE,
                text=text,
                line_number=line_number,
                number=circled_ordinal(marker),
                marker=marker,
                marker_style=MarkerStyle.CIRCLED,
                content=match.group(2).strip(),
            )

        # Sub-level markers keep the enumerator in the content
        match = PATTERNS['clause_paren'].match(text)
        if match:
            marker = match.group(1)
            number = int(marker) if marker.isdigit() else hangul_ordinal(marker)
            return self._sub_clause(text, line_number, marker, MarkerStyle.PAREN, number)

        match = PATTERNS['clause_number'].match(text)
        if match:
            marker = match.group(1)
            return self._sub_clause(text, line_number, marker, MarkerStyle.DIGIT, int(marker))

        match = PATTERNS['clause_hangul'].match(text)
        if match:
            marker = match.group(1)
            return self._sub_clause(
                text, line_number, marker, MarkerStyle.HANGUL, hangul_ordinal(marker)
            )
        return None

    @staticmethod
    def _sub_clause(
        text: str,
        line_number: int,
        marker: str,
        style: MarkerStyle,
        number: int,
    ) -> LineToken:
        return LineToken(
            kind=LineKind.CLAUSE,
            text=text,
            line_number=line_number,
            number=number,
            marker=marker,
            marker_style=style,
            content=text,
        )

    def _match_regulation(self, text: str, line_number: int) -> Optional[LineToken]:
        for key in ('regulation_title_code', 'regulation_code_title'):
            match = PATTERNS[key].match(text)
            if match and PATTERNS['title_letter'].search(match.group('title')):
                return LineToken(
                    kind=LineKind.REGULATION,
                    text=text,
                    line_number=line_number,
                    code=match.group('code'),
                    title=match.group('title').strip(),
                )
        return None

    def _match_regulation_title(self, text: str, line_number: int) -> Optional[LineToken]:
        match = PATTERNS['regulation_title_only'].match(text)
        if not match:
            return None
        return LineToken(
            kind=LineKind.REGULATION_TITLE,
            text=text,
            line_number=line_number,
            title=match.group('title').strip(),
        )

    def _match_attachment(self, text: str, line_number: int) -> Optional[LineToken]:
        if not PATTERNS['attachment'].match(text):
            return None
        return LineToken(kind=LineKind.ATTACHMENT, text=text, line_number=line_number, content=text)


__all__ = [
    'LineKind',
    'MarkerStyle',
    'LineToken',
    'HEADING_LEVELS',
    'NoiseRule',
    'NoiseRuleSet',
    'LineClassifier',
    'normalize_line',
    'infer_clause_type',
    'circled_ordinal',
    'hangul_ordinal',
]

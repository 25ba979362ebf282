"""
Line Classifier Tests.

Covers normalization, every heading shape, clause marker styles, the named
noise rules and noise rule configuration.

Usage:
    pytest regulation_ingest/tests/test_line_classifier.py -v
"""

import pytest

from regulation_ingest.parsers.classifiers.line_classifier import (
    LineClassifier,
    LineKind,
    MarkerStyle,
    NoiseRuleSet,
    circled_ordinal,
    hangul_ordinal,
    infer_clause_type,
    normalize_line,
)
from regulation_ingest.parsers.core.exceptions import NoisePatternError


@pytest.fixture
def classifier():
    return LineClassifier()


# =============================================================================
# NORMALIZATION
# =============================================================================


class TestNormalization:
    """Whitespace and character normalization."""

    def test_collapses_whitespace_and_strips(self):
        assert normalize_line("  제1편\u3000\u3000총칙  ") == "제1편 총칙"

    def test_no_break_space_and_zero_width(self):
        assert normalize_line("\ufeff학칙\u00a01-1-1\u200b") == "학칙 1-1-1"

    def test_smart_quotes_are_straightened(self):
        assert normalize_line("\u201c학생\u201d") == '"학생"'

    def test_blank_line(self, classifier):
        assert classifier.classify("   \t ").kind == LineKind.BLANK


# =============================================================================
# HEADINGS
# =============================================================================


class TestHeadings:
    """Edition, chapter, regulation and article headings."""

    def test_edition(self, classifier):
        token = classifier.classify("제3편 학칙", line_number=7)

        assert token.kind == LineKind.EDITION
        assert token.number == 3
        assert token.title == "학칙"
        assert token.line_number == 7
        assert token.level == 1

    def test_chapter_with_spaces(self, classifier):
        token = classifier.classify("제 2 장 학사")

        assert token.kind == LineKind.CHAPTER
        assert token.number == 2
        assert token.title == "학사"

    def test_regulation_title_then_code(self, classifier):
        token = classifier.classify("학칙 3-1-1")

        assert token.kind == LineKind.REGULATION
        assert token.code == "3-1-1"
        assert token.title == "학칙"

    def test_regulation_code_then_title(self, classifier):
        token = classifier.classify("3-1-2 학위수여규정")

        assert token.kind == LineKind.REGULATION
        assert token.code == "3-1-2"
        assert token.title == "학위수여규정"

    def test_regulation_needs_letters_in_title(self, classifier):
        assert classifier.classify("2020 3-1-1").kind != LineKind.REGULATION

    @pytest.mark.parametrize("line", [
        "시행일 2020-03-01",
        "전화 051-890-1234",
        "학칙 01-1-1",
        "학칙 1000-1-1",
    ])
    def test_dates_and_phone_numbers_are_not_codes(self, classifier, line):
        assert classifier.classify(line).kind == LineKind.CONTENT

    def test_bare_regulation_title(self, classifier):
        token = classifier.classify("장학규정", 7)

        assert token.kind == LineKind.REGULATION_TITLE
        assert token.title == "장학규정"
        assert token.code is None
        assert token.line_number == 7
        assert not token.is_heading

    @pytest.mark.parametrize("line", ["학교법인 정관", "대학원 학칙", "등록금 환불 기준", "학위수여 시행세칙"])
    def test_bare_title_suffixes(self, classifier, line):
        assert classifier.classify(line).kind == LineKind.REGULATION_TITLE

    def test_sentence_ending_in_title_word_is_content(self, classifier):
        assert classifier.classify("이 규정은 총장이 정하는 기준.").kind == LineKind.CONTENT

    def test_article_with_title(self, classifier):
        token = classifier.classify("제1조(목적) 이 규정은 학칙의 시행에 관하여 정한다.")

        assert token.kind == LineKind.ARTICLE
        assert token.number == 1
        assert token.title == "목적"
        assert token.content == "이 규정은 학칙의 시행에 관하여 정한다."

    def test_article_with_space_before_title(self, classifier):
        token = classifier.classify("제1조 (목적) 이 규정의 목적을 정한다.")

        assert token.kind == LineKind.ARTICLE
        assert token.title == "목적"

    def test_article_without_title(self, classifier):
        token = classifier.classify("제2조 이 규정은 모든 학생에게 적용한다.")

        assert token.kind == LineKind.ARTICLE
        assert token.number == 2
        assert token.title is None
        assert token.content == "이 규정은 모든 학생에게 적용한다."

    def test_article_range(self, classifier):
        token = classifier.classify("제5조 내지 제7조 삭제")

        assert token.kind == LineKind.ARTICLE
        assert token.number == 5
        assert token.end_number == 7
        assert token.content == "삭제"

    def test_article_branch_is_content(self, classifier):
        assert classifier.classify("제2조의2(특례) 특례를 둔다.").kind == LineKind.CONTENT

    def test_appendix(self, classifier):
        assert classifier.classify("부칙").kind == LineKind.APPENDIX
        assert classifier.classify("부 칙 <2020. 3. 1.>").kind == LineKind.APPENDIX

    def test_attachment(self, classifier):
        token = classifier.classify("<별표 1> 수업료 기준")

        assert token.kind == LineKind.ATTACHMENT
        assert not token.is_heading


# =============================================================================
# CLAUSES
# =============================================================================


class TestClauses:
    """Clause markers and clause type inference."""

    def test_circled_marker(self, classifier):
        token = classifier.classify("① 학생은 학칙을 준수하여야 한다.")

        assert token.kind == LineKind.CLAUSE
        assert token.marker_style == MarkerStyle.CIRCLED
        assert token.number == 1
        assert token.content == "학생은 학칙을 준수하여야 한다."

    def test_circled_marker_above_ten(self, classifier):
        assert classifier.classify("⑪ 기타 사항").number == 11

    def test_digit_marker_keeps_enumerator(self, classifier):
        token = classifier.classify("1. 입학")

        assert token.kind == LineKind.CLAUSE
        assert token.marker_style == MarkerStyle.DIGIT
        assert token.number == 1
        assert token.content == "1. 입학"

    def test_hangul_marker(self, classifier):
        token = classifier.classify("나. 대학원")

        assert token.marker_style == MarkerStyle.HANGUL
        assert token.number == 2

    def test_paren_marker(self, classifier):
        token = classifier.classify("(다) 연구소")

        assert token.marker_style == MarkerStyle.PAREN
        assert token.number == 3

    def test_ordinals(self):
        assert circled_ordinal("③") == 3
        assert circled_ordinal("㉑") == 21
        assert circled_ordinal("㉟") == 35
        assert hangul_ordinal("가") == 1
        assert hangul_ordinal("하") == 14

    @pytest.mark.parametrize("content,expected", [
        ("학생은 학칙을 준수한다.", "paragraph"),
        ("다만, 휴학생은 제외한다.", "subparagraph"),
        ("1. 입학에 관한 사항", "item"),
        ("가. 학부", "item"),
    ])
    def test_infer_clause_type(self, content, expected):
        assert infer_clause_type(content) == expected


# =============================================================================
# NOISE
# =============================================================================


class TestNoise:
    """Named noise rules and their configuration."""

    @pytest.mark.parametrize("line,rule", [
        ("- 12 -", "page_number"),
        ("12", "page_number"),
        ("3 / 120", "page_range"),
        ("대학규정집 - 15 -", "running_header"),
        ("구분 내용 비고", "table_header"),
        ("2020. 3. 1.", "date_only"),
        ("<개정 2020. 3. 1.>", "revision_history"),
        ("-----", "separator"),
        ("※ 참고 사항", "reference_mark"),
        ("목차", "table_of_contents"),
    ])
    def test_default_rules(self, classifier, line, rule):
        token = classifier.classify(line)

        assert token.kind == LineKind.NOISE
        assert token.noise_rule == rule

    def test_regulation_text_is_not_noise(self, classifier):
        assert classifier.classify("이 규정은 2020년 3월 1일부터 시행한다.").kind == LineKind.CONTENT

    def test_extra_patterns_from_settings(self):
        rules = NoiseRuleSet.from_settings(extra_patterns=[r"^학생처$"])
        classifier = LineClassifier(rules)

        token = classifier.classify("학생처")

        assert "custom_1" in rules.names
        assert token.kind == LineKind.NOISE
        assert token.noise_rule == "custom_1"
        assert LineClassifier().classify("학생처").kind == LineKind.CONTENT

    def test_patterns_file(self, tmp_path):
        patterns_file = tmp_path / "department.txt"
        patterns_file.write_text("# departments\n^학생처$\n\n^교무처$\n", encoding="utf-8")

        rules = NoiseRuleSet.from_settings(patterns_file=str(patterns_file))

        assert "department_2" in rules.names
        assert "department_4" in rules.names
        assert LineClassifier(rules).classify("교무처").kind == LineKind.NOISE

    def test_remove_rule(self):
        rules = NoiseRuleSet.default()
        rules.remove("page_number")

        assert "page_number" not in rules.names
        assert LineClassifier(rules).classify("12").kind == LineKind.CONTENT

    def test_invalid_pattern_raises(self):
        with pytest.raises(NoisePatternError):
            NoiseRuleSet.from_settings(extra_patterns=["(unclosed"])

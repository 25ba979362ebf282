"""
Regulation Structural Parser Tests.

Covers the document builder end to end: hierarchy construction, placeholder
parents for orphaned headings, clause numbering, appendix handling, line
accounting and the parser service with its benchmark.

Usage:
    pytest regulation_ingest/tests/test_regulation_parser.py -v
"""

import pytest

from regulation_ingest.core.config.settings import Settings
from regulation_ingest.core.queue.progress_tracker import ProgressReporter, ProgressStatus
from regulation_ingest.parsers.core.exceptions import InputFileError, ParsingError
from regulation_ingest.parsers.core.parse_tree import NodeLevel
from regulation_ingest.parsers.monitoring.benchmark import ParserBenchmark
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import (
    RegulationStructuralParser,
)
from regulation_ingest.services.regulation_parser_service import RegulationParserService

from .conftest import SINGLE_EDITION_TEXT


def assert_lines_accounted(stats):
    assert stats.heading_lines + stats.content_lines == stats.total_lines - stats.skipped_lines


def generate_compendium(editions, chapters=5, regulations=10, articles=4):
    """Lines of a synthetic compendium in document order."""
    for e in range(1, editions + 1):
        yield f"제{e}편 학칙"
        yield f"- {e} -"
        for c in range(1, chapters + 1):
            yield f"제{c}장 총칙"
            yield ""
            for r in range(1, regulations + 1):
                yield ""
                yield f"운영규정 {e}-{c}-{r}"
                for a in range(1, articles + 1):
                    yield f"제{a}조(목적) 이 규정은 위원회 운영에 관하여 정한다."
                    yield "① 위원회는 위원장을 둔다."
                    yield "1. 위원장 1명"
                    yield "② 다만, 필요한 경우 부위원장을 둘 수 있다."
                    yield "위원장은 회의를 소집한다."


# =============================================================================
# HIERARCHY
# =============================================================================


class TestHierarchy:
    """Edition → Chapter → Regulation → Article → Clause construction."""

    def test_single_edition(self, parser):
        result = parser.parse_text(SINGLE_EDITION_TEXT)
        stats = result.statistics

        assert (stats.editions, stats.chapters, stats.regulations, stats.articles, stats.clauses) == (
            1, 1, 1, 1, 1,
        )
        assert result.errors == []

        edition = result.to_dict()["data"]["editions"][0]
        regulation = edition["chapters"][0]["regulations"][0]
        article = regulation["articles"][0]

        assert edition["number"] == 1
        assert edition["title"] == "총칙"
        assert regulation["code"] == "1-1-1"
        assert regulation["title"] == "학교규정"
        assert article["number"] == 1
        assert article["title"] == "목적"
        assert article["content"] == "이 규정의 목적을 정한다."
        assert article["clauses"] == [
            {"number": 1, "content": "세부사항은 따로 정한다.", "type": "paragraph", "sort_order": 1},
        ]

    def test_sample_file_counts(self, sample_result):
        stats = sample_result.statistics

        assert stats.total_lines == 24
        assert stats.editions == 2
        assert stats.chapters == 3
        assert stats.regulations == 3
        assert stats.articles == 5
        assert stats.clauses == 5
        assert sample_result.errors == []
        assert sample_result.success_rate == 100.0

    def test_sample_file_line_accounting(self, sample_result):
        stats = sample_result.statistics

        assert stats.blank_lines == 1
        assert stats.noise_lines == 3
        assert stats.skipped_lines == 4
        assert stats.heading_lines == 18
        assert stats.content_lines == 2
        assert_lines_accounted(stats)

    def test_sibling_and_ancestor_headings(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제1조(목적) 목적",
            "제2장 학사",
            "학사규정 1-2-1",
            "제2편 행정",
            "제1장 조직",
        ])

        result = parser.parse_text(text)
        editions = result.tree.editions

        assert [edition.number for edition in editions] == [1, 2]
        assert [chapter.number for chapter in result.tree.children_of(editions[0].index)] == [1, 2]
        assert result.errors == []

    def test_repeated_edition_is_reopened(self, parser):
        text = "제1편 학칙\n제1장 총칙\n제1편 학칙\n제2장 학사"

        result = parser.parse_text(text)

        assert result.statistics.editions == 1
        assert result.statistics.chapters == 2

    def test_sort_order_follows_document_order(self, parser):
        text = "제1편 학칙\n제1장 총칙\n학칙 1-1-1\n제3조(셋) 가\n제1조(하나) 나"

        result = parser.parse_text(text)
        articles = list(result.tree.iter_level(NodeLevel.ARTICLE))

        assert [(article.number, article.sort_order) for article in articles] == [(3, 1), (1, 2)]

    def test_ancestors(self, sample_result):
        tree = sample_result.tree
        clause = next(tree.iter_level(NodeLevel.CLAUSE))

        chain = tree.ancestors(clause.index)

        assert [node.level for node in chain] == [
            NodeLevel.EDITION, NodeLevel.CHAPTER, NodeLevel.REGULATION, NodeLevel.ARTICLE,
        ]
        assert chain[2].code == "1-1-1"


# =============================================================================
# CONTENT
# =============================================================================


class TestContent:
    """Content attachment and skipped lines."""

    def test_regulation_content_before_articles(self, sample_result):
        regulation = sample_result.tree.find_regulation("1-2-1")

        assert regulation.content == "이 규정은 학사 운영에 관하여 정한다."

    def test_continuation_lines_join_the_clause(self, parser):
        text = "제1편 학칙\n제1장 총칙\n학칙 1-1-1\n제1조(목적) 목적\n① 첫째 줄\n둘째 줄"

        result = parser.parse_text(text)
        clause = next(result.tree.iter_level(NodeLevel.CLAUSE))

        assert clause.content == "첫째 줄\n둘째 줄"
        assert result.statistics.content_lines == 1

    def test_content_before_any_regulation_is_skipped(self, parser):
        text = "제1편 학칙\n이 편은 학칙을 담는다.\n제1장 총칙"

        result = parser.parse_text(text)
        stats = result.statistics

        assert stats.skipped_lines == 1
        assert stats.content_lines == 0
        assert stats.chapters == 1
        assert_lines_accounted(stats)

    def test_enumerated_list_before_articles_is_content(self, parser):
        text = "제1편 학칙\n제1장 총칙\n학칙 1-1-1\n1. 학부\n2. 대학원"

        result = parser.parse_text(text)

        assert result.statistics.clauses == 0
        assert result.tree.find_regulation("1-1-1").content == "1. 학부\n2. 대학원"

    def test_dates_and_phone_numbers_are_content(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제1조(시행) 이 학칙은 다음 날부터 시행한다.",
            "시행일 2020-03-01",
            "전화 051-890-1234",
        ])

        result = parser.parse_text(text)
        article = result.tree.get(result.tree.find_regulation("1-1-1").children[0])

        assert result.statistics.regulations == 1
        assert result.statistics.content_lines == 2
        assert article.content.endswith("시행일 2020-03-01\n전화 051-890-1234")
        assert result.errors == []

    def test_noise_is_dropped(self, sample_result):
        article = sample_result.to_dict()["data"]["editions"][0]["chapters"][0]["regulations"][0]["articles"][1]

        assert all("개정" not in clause["content"] for clause in article["clauses"])


# =============================================================================
# CLAUSES
# =============================================================================


class TestClauseNumbering:
    """Clause numbers are unique within their article."""

    def test_sub_level_markers(self, sample_result):
        article = sample_result.to_dict()["data"]["editions"][0]["chapters"][0]["regulations"][0]["articles"][1]

        assert [(clause["number"], clause["type"]) for clause in article["clauses"]] == [
            (1, "paragraph"),
            (101, "item"),
            (102, "item"),
            (2, "subparagraph"),
        ]
        assert [clause["sort_order"] for clause in article["clauses"]] == [1, 2, 3, 4]

    def test_paren_marker_is_subitem(self, parser):
        text = "제1편 학칙\n제1장 총칙\n학칙 1-1-1\n제1조(목적) 목적\n① 항\n(가) 세목"

        result = parser.parse_text(text)
        clauses = list(result.tree.iter_level(NodeLevel.CLAUSE))

        assert [(clause.number, clause.clause_type) for clause in clauses] == [
            (1, "paragraph"),
            (101, "subitem"),
        ]

    def test_duplicate_marker_gets_next_free_number(self, parser):
        text = "제1편 학칙\n제1장 총칙\n학칙 1-1-1\n제1조(목적) 목적\n① 하나\n② 둘\n① 다시"

        result = parser.parse_text(text)

        assert [clause.number for clause in result.tree.iter_level(NodeLevel.CLAUSE)] == [1, 2, 3]


# =============================================================================
# APPENDIX
# =============================================================================


class TestAppendix:
    """부칙 opens a trailing article."""

    def test_appendix_article(self, sample_result):
        regulation = sample_result.to_dict()["data"]["editions"][0]["chapters"][1]["regulations"][0]
        appendix = regulation["articles"][-1]

        assert len(regulation["articles"]) == 2
        assert appendix["number"] == 2
        assert appendix["title"] == "부칙"
        assert appendix["content"] == "제1조(시행일) 이 규정은 2020년 3월 1일부터 시행한다."

    def test_appendix_ends_at_next_regulation(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제1조(목적) 목적",
            "부칙",
            "제1조(시행일) 시행한다.",
            "시행규칙 1-1-2",
            "제1조(목적) 목적",
        ])

        result = parser.parse_text(text)

        assert result.statistics.articles == 3
        assert result.tree.find_regulation("1-1-2").children


# =============================================================================
# BARE REGULATION TITLES
# =============================================================================


class TestBareTitles:
    """A title line without a code waits for the next line to decide."""

    def test_title_before_article_opens_regulation(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제1조(목적) 목적",
            "장학규정",
            "제1조(목적) 장학금 지급에 관하여 정한다.",
        ])

        result = parser.parse_text(text)
        regulation = result.tree.find_regulation("1-1-2")

        assert result.statistics.regulations == 2
        assert regulation.title == "장학규정"
        assert regulation.number == 2
        assert regulation.line_number == 5
        assert len(regulation.children) == 1
        assert result.errors == []
        assert_lines_accounted(result.statistics)

    def test_title_waits_through_chapter(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제1조(목적) 목적",
            "장학규정",
            "제2장 장학",
            "제1조(목적) 장학금",
        ])

        result = parser.parse_text(text)
        regulation = result.tree.find_regulation("1-2-1")

        assert regulation.title == "장학규정"
        assert result.tree.parent_of(regulation.index).number == 2
        assert result.tree.find_regulation("1-1-1").children == [3]
        assert_lines_accounted(result.statistics)

    def test_title_followed_by_text_is_content(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제1조(목적) 다음에 정하는",
            "시설관리 기준",
            "에 따라 운영한다.",
        ])

        result = parser.parse_text(text)
        article = result.tree.get(result.tree.find_regulation("1-1-1").children[0])

        assert result.statistics.regulations == 1
        assert article.content == "다음에 정하는\n시설관리 기준\n에 따라 운영한다."
        assert_lines_accounted(result.statistics)

    def test_title_on_last_line_is_content(self, parser):
        result = parser.parse_text("제1편 학칙\n제1장 총칙\n학칙 1-1-1\n제1조(목적) 목적\n장학규정")

        assert result.statistics.regulations == 1
        assert result.statistics.content_lines == 1
        assert_lines_accounted(result.statistics)

    def test_title_without_open_chapter_uses_placeholders(self, parser):
        result = parser.parse_text("장학규정\n제1조(목적) 목적")

        assert result.tree.find_regulation("0-0-1").title == "장학규정"
        assert result.statistics.placeholders == 2
        assert [error["type"] for error in result.errors] == ["structural_error"]


# =============================================================================
# ERRORS AND PLACEHOLDERS
# =============================================================================


class TestStructuralErrors:
    """Orphaned headings get placeholder parents and a structural error."""

    def test_chapter_before_edition(self, parser):
        text = "제1장 목적\n학교규정 1-1-1\n제1조(목적) 목적을 정한다."

        result = parser.parse_text(text)
        edition = result.tree.editions[0]

        assert len(result.errors) == 1
        assert result.errors[0]["type"] == "structural_error"
        assert result.errors[0]["state"] == "INITIAL"
        assert result.errors[0]["line_number"] == 1
        assert edition.number == 0
        assert edition.title == "Uncategorized"
        assert edition.placeholder
        assert result.statistics.placeholders == 1
        assert result.statistics.error_lines == 1
        assert result.statistics.articles == 1

    def test_article_directly_under_edition(self, parser):
        text = "제1편 학칙\n제1조(목적) 목적을 정한다."

        result = parser.parse_text(text)

        assert result.statistics.placeholders == 2
        assert result.tree.find_regulation("1-0-0") is not None
        assert result.statistics.articles == 1

    def test_placeholders_are_reused(self, parser):
        text = "제1편 학칙\n제1조(목적) 하나\n제2조(정의) 둘"

        result = parser.parse_text(text)

        assert result.statistics.placeholders == 2
        assert result.statistics.regulations == 1
        assert result.statistics.articles == 2

    def test_contents_listing_moves_under_real_chapter(self, parser):
        text = "\n".join([
            "학교규정 1-1-1",
            "제1편 총칙",
            "제1장 목적",
            "학교규정 1-1-1",
            "제1조(목적) 목적을 정한다.",
        ])

        result = parser.parse_text(text)
        regulation = result.tree.find_regulation("1-1-1")
        chapter = result.tree.parent_of(regulation.index)

        assert [error["type"] for error in result.errors] == ["structural_error"]
        assert result.statistics.placeholders == 0
        assert (result.statistics.editions, result.statistics.chapters) == (1, 1)
        assert [edition.number for edition in result.tree.editions] == [1]
        assert (chapter.number, chapter.placeholder) == (1, False)
        assert regulation.sort_order == 1
        assert len(regulation.children) == 1
        assert_lines_accounted(result.statistics)

        edition = result.to_dict()["data"]["editions"][0]
        assert edition["chapters"][0]["regulations"][0]["articles"][0]["title"] == "목적"

    def test_repeated_regulation_under_real_chapter_stays(self, parser):
        text = "\n".join([
            "제1편 학칙",
            "제1장 총칙",
            "학칙 1-1-1",
            "제2장 학사",
            "학칙 1-1-1",
            "제1조(목적) 목적",
        ])

        result = parser.parse_text(text)
        regulation = result.tree.find_regulation("1-1-1")

        assert result.tree.parent_of(regulation.index).number == 1
        assert len(regulation.children) == 1
        assert result.statistics.chapters == 2

    def test_custom_placeholder_title(self):
        parser = RegulationStructuralParser(placeholder_title="미분류")

        result = parser.parse_text("제1장 목적")

        assert result.tree.editions[0].title == "미분류"

    def test_malformed_code_is_a_validation_error(self, parser):
        text = "제1편 학칙\n제1장 총칙\n학칙 1-1-1A"

        result = parser.parse_text(text)

        assert [error["type"] for error in result.errors] == ["validation_error"]
        assert result.statistics.error_lines == 0

    def test_error_callback(self):
        recorded = []
        parser = RegulationStructuralParser(on_error=recorded.append)

        parser.parse_text("제1장 목적")

        assert len(recorded) == 1
        assert recorded[0]["type"] == "structural_error"

    def test_line_accounting_with_errors(self, parser):
        text = "제1장 목적\n\n- 3 -\n학교규정 1-1-1\n내용\n제1조(목적) 목적"

        assert_lines_accounted(parser.parse_text(text).statistics)

    def test_missing_file(self, parser, tmp_path):
        with pytest.raises(InputFileError) as exc_info:
            parser.parse_file(str(tmp_path / "missing.txt"))

        assert isinstance(exc_info.value, ParsingError)
        assert "missing.txt" in exc_info.value.message

    def test_undecodable_file(self, parser, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"\xff\xfe\xfa broken")

        with pytest.raises(InputFileError):
            parser.parse_file(str(path))

    def test_parser_is_reusable(self, parser, sample_file):
        first = parser.parse_file(str(sample_file))
        second = parser.parse_file(str(sample_file))

        assert first.to_dict()["data"] == second.to_dict()["data"]
        assert second.statistics.total_lines == 24


# =============================================================================
# PARSER SERVICE
# =============================================================================


class TestParserService:
    """File analysis and benchmarked parsing."""

    def test_analyze_file(self, sample_file):
        info = RegulationParserService().analyze_file(str(sample_file))

        assert info["line_count"] == 24
        assert info["file_size"] == sample_file.stat().st_size
        assert info["file_path"] == str(sample_file)

    def test_parse_with_benchmark(self, sample_file):
        result = RegulationParserService().parse_file_with_benchmark(str(sample_file))

        assert result.benchmark is not None
        assert result.benchmark.total_lines == 24
        assert result.benchmark.total_errors == 0
        assert result.benchmark.success_rate == 100.0

    def test_parse_progress_window(self, sample_file):
        reporter = ProgressReporter()
        phase = reporter.phase(30, 60, ProgressStatus.PARSING)

        RegulationParserService().parse_file_with_benchmark(str(sample_file), phase, 24)

        percentages = [update.percentage for update in reporter.history]
        assert percentages == sorted(percentages)
        assert percentages[-1] == 60
        assert all(30 <= percentage <= 60 for percentage in percentages)

    def test_missing_file_is_recorded_in_benchmark(self, tmp_path):
        benchmark = ParserBenchmark()

        with pytest.raises(InputFileError):
            RegulationParserService().parse_file_with_benchmark(
                str(tmp_path / "missing.txt"), benchmark=benchmark
            )

        assert benchmark.metrics is not None
        assert benchmark.metrics.total_errors == 1

    def test_noise_patterns_from_config(self):
        config = Settings(PARSER_EXTRA_NOISE_PATTERNS=["^학생처$"])
        service = RegulationParserService(config)

        result = service.parse_text("제1편 학칙\n학생처\n제1장 총칙")

        assert result.statistics.noise_lines == 1
        assert result.statistics.skipped_lines == 1

    def test_large_document(self, tmp_path):
        path = tmp_path / "compendium.txt"
        path.write_text("\n".join(generate_compendium(editions=18)), encoding="utf-8")
        benchmark = ParserBenchmark(checkpoint_interval=1000)

        result = RegulationParserService().parse_file_with_benchmark(str(path), benchmark=benchmark)
        stats = result.statistics

        assert stats.total_lines == 20016
        assert (stats.editions, stats.chapters, stats.regulations, stats.articles, stats.clauses) == (
            18, 90, 900, 3600, 10800,
        )
        assert (stats.heading_lines, stats.content_lines, stats.skipped_lines) == (15408, 3600, 1008)
        assert_lines_accounted(stats)
        assert result.errors == []
        assert stats.placeholders == 0

        assert result.benchmark.total_lines == 20016
        assert result.benchmark.success_rate == 100.0
        assert len(result.benchmark.checkpoints) == stats.total_lines // 1000 + len(result.errors)
        assert result.benchmark.checkpoints[-1].lines_processed == 20000

        last_chapter = result.to_dict()["data"]["editions"][-1]["chapters"][-1]
        assert [regulation["code"] for regulation in last_chapter["regulations"]][-1] == "18-5-10"
        assert last_chapter["regulations"][-1]["articles"][-1]["clauses"][-1]["content"] == (
            "다만, 필요한 경우 부위원장을 둘 수 있다.\n위원장은 회의를 소집한다."
        )

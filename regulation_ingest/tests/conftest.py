"""
Shared pytest fixtures.

Every test that touches the database gets its own SQLite file under
``tmp_path`` so transactions, SAVEPOINTs and foreign keys behave as in a
real deployment.
"""

from pathlib import Path

import pytest

from regulation_ingest.core.database.session import (
    create_all_tables,
    create_engine,
    create_session_factory,
)
from regulation_ingest.parsers.structural_parsers.regulation_struct_parser import (
    RegulationStructuralParser,
)


FIXTURES_DIR = Path(__file__).parent / "fixtures"

SINGLE_EDITION_TEXT = (
    "제1편 총칙\n\n제1장 목적\n\n학교규정 1-1-1\n\n"
    "제1조 (목적) 이 규정의 목적을 정한다.\n① 세부사항은 따로 정한다."
)


# =============================================================================
# PARSER FIXTURES
# =============================================================================


@pytest.fixture
def sample_file() -> Path:
    """Two-edition regulation file (24 lines)."""
    return FIXTURES_DIR / "sample_regulations.txt"


@pytest.fixture
def sample_text(sample_file) -> str:
    return sample_file.read_text(encoding="utf-8")


@pytest.fixture
def parser() -> RegulationStructuralParser:
    return RegulationStructuralParser()


@pytest.fixture
def sample_result(parser, sample_file):
    return parser.parse_file(str(sample_file))


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database with all tables."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'regulations.db'}")
    await create_all_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)

"""
Exam Session Engine - Test Configuration
Pytest fixtures and configuration for testing
"""
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from examcore.core.database import Base
from examcore.main import app
from examcore.schemas.exam import TestDefinition
from examcore.services.attempts import AttemptRepository
from examcore.services.drafts import DraftStore
from examcore.services.session_manager import SessionManager


# Test database URL (use SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
)

test_session_maker = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def physics_chemistry_data() -> dict[str, Any]:
    """Two sections, mixed question types, 4/-1 marking on the choice questions."""
    return {
        "test_id": "mock-jee-1",
        "title": "Mock JEE 1",
        "duration_seconds": 600,
        "sections": [
            {"section_id": "physics", "title": "Physics", "question_ids": ["p1", "p2", "p3"]},
            {"section_id": "chemistry", "title": "Chemistry", "question_ids": ["c1", "c2"]},
        ],
        "questions": [
            {
                "question_id": "p1",
                "question_type": "single",
                "text": "Unit of force?",
                "options": ["joule", "watt", "newton", "pascal"],
                "correct_options": [2],
                "marks": 4,
                "negative_marks": -1,
                "subject": "Physics",
            },
            {
                "question_id": "p2",
                "question_type": "numerical",
                "text": "g in m/s^2",
                "numerical_answer": {"exact_value": 10.0, "min_value": 9.8, "max_value": 10.2},
                "marks": 4,
                "subject": "Physics",
            },
            {
                "question_id": "p3",
                "question_type": "multiple",
                "text": "Vector quantities",
                "options": ["mass", "velocity", "force", "time"],
                "correct_options": [1, 2],
                "marks": 4,
                "negative_marks": -2,
                "subject": "Physics",
            },
            {
                "question_id": "c1",
                "question_type": "single",
                "text": "Symbol of sodium",
                "options": ["S", "Na", "So"],
                "correct_options": [1],
                "marks": 4,
                "negative_marks": -1,
                "subject": "Chemistry",
            },
            {
                "question_id": "c2",
                "question_type": "single",
                "text": "Noble gas",
                "options": ["argon", "oxygen"],
                "correct_options": [0],
                "marks": 4,
                "negative_marks": -1,
                "subject": "Chemistry",
            },
        ],
    }


@pytest.fixture
def physics_chemistry_test(physics_chemistry_data: dict[str, Any]) -> TestDefinition:
    return TestDefinition.model_validate(physics_chemistry_data)


@pytest.fixture
def ten_question_test() -> TestDefinition:
    """Ten one-mark single choice questions in one section, 300 seconds."""
    questions = [
        {
            "question_id": f"q{i}",
            "question_type": "single",
            "options": ["a", "b", "c", "d"],
            "correct_options": [0],
            "subject": "General",
        }
        for i in range(1, 11)
    ]
    return TestDefinition.model_validate(
        {
            "test_id": "drill-10",
            "duration_seconds": 300,
            "sections": [{"section_id": "main", "question_ids": [q["question_id"] for q in questions]}],
            "questions": questions,
        }
    )


@pytest.fixture
def sectioned_test() -> TestDefinition:
    """Two sections with their own time allowances inside a 600 second test."""
    return TestDefinition.model_validate(
        {
            "test_id": "sectioned",
            "duration_seconds": 600,
            "sections": [
                {"section_id": "s1", "question_ids": ["a1", "a2"], "duration_seconds": 60},
                {"section_id": "s2", "question_ids": ["b1"], "duration_seconds": 120},
            ],
            "questions": [
                {"question_id": qid, "question_type": "single", "options": ["x", "y"], "correct_options": [0]}
                for qid in ("a1", "a2", "b1")
            ],
        }
    )


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session_maker() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def repository(db_session: AsyncSession) -> AttemptRepository:
    return AttemptRepository(test_session_maker)


@pytest.fixture
def drafts() -> DraftStore:
    return DraftStore(backend="memory", ttl_seconds=3600)


@pytest_asyncio.fixture(scope="function")
async def manager(
    repository: AttemptRepository,
    drafts: DraftStore,
    clock: FakeClock,
    physics_chemistry_test: TestDefinition,
) -> AsyncGenerator[SessionManager, None]:
    """Session manager on the test database with a hand-driven clock."""
    await repository.save_test_definition(physics_chemistry_test)
    session_manager = SessionManager(repository, drafts, clock=clock, auto_tick=False)
    yield session_manager
    await session_manager.shutdown()


@pytest_asyncio.fixture(scope="function")
async def client(manager: SessionManager) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client wired to the test session manager."""
    app.state.session_manager = manager

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Student-Id": "student-1"},
    ) as ac:
        yield ac

    del app.state.session_manager

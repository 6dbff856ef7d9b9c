"""
Exam Session Engine - Attempt Repository
Database-backed fetch-test, submit-attempt and history collaborators.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from examcore.core.database import async_session_maker
from examcore.models.attempt import AttemptRecord
from examcore.models.test_definition import TestDefinitionRecord
from examcore.schemas.attempt import AttemptResult, HistoricalAttempt
from examcore.schemas.exam import TestDefinition
from examcore.services.errors import (
    AttemptNotFound,
    AttemptPersistenceError,
    TestDefinitionNotFound,
)

logger = logging.getLogger(__name__)


def to_summary(record: AttemptRecord) -> HistoricalAttempt:
    return HistoricalAttempt(
        attempt_id=record.id,
        attempt_number=record.attempt_number,
        session_id=record.session_id,
        score=record.score,
        max_score=record.max_score,
        percentage=record.percentage,
        time_spent_seconds=record.time_spent_seconds,
        submitted_at=record.submitted_at,
    )


def to_result(record: AttemptRecord) -> AttemptResult:
    return AttemptResult.model_validate(record.payload)


class AttemptRepository:
    """
    Owns its database sessions so it can be used outside a request, e.g.
    when an expired session is persisted in the background.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self.session_factory = session_factory

    # --- Test definitions ---

    async def save_test_definition(self, definition: TestDefinition) -> None:
        async with self.session_factory() as db:
            await db.merge(
                TestDefinitionRecord(
                    test_id=definition.test_id,
                    title=definition.title,
                    duration_seconds=definition.duration_seconds,
                    payload=definition.model_dump(mode="json"),
                )
            )
            await db.commit()

    async def fetch_test_definition(self, test_id: str) -> TestDefinition:
        async with self.session_factory() as db:
            record = await db.get(TestDefinitionRecord, test_id)
        if record is None:
            raise TestDefinitionNotFound(test_id)
        return TestDefinition.model_validate(record.payload)

    # --- Attempts ---

    async def submit_attempt(self, result: AttemptResult) -> str:
        """
        Store a scored attempt and return its id.

        Safe to call repeatedly for the same session: the first stored row
        wins and its id is returned every time.
        """
        try:
            existing = await self._find_by_session(result.session_id)
            if existing is not None:
                return existing.id
            try:
                return await self._insert(result)
            except IntegrityError:
                # Lost a race with another writer for the same session
                existing = await self._find_by_session(result.session_id)
                if existing is None:
                    raise
                return existing.id
        except SQLAlchemyError as e:
            raise AttemptPersistenceError(f"Could not store attempt for session {result.session_id}: {e}") from e

    async def _find_by_session(self, session_id: str) -> Optional[AttemptRecord]:
        async with self.session_factory() as db:
            return await db.scalar(select(AttemptRecord).where(AttemptRecord.session_id == session_id))

    async def _insert(self, result: AttemptResult) -> str:
        async with self.session_factory() as db:
            last_number = await db.scalar(
                select(func.max(AttemptRecord.attempt_number)).where(
                    AttemptRecord.student_id == result.student_id,
                    AttemptRecord.test_id == result.test_id,
                )
            )
            record = AttemptRecord(
                session_id=result.session_id,
                test_id=result.test_id,
                student_id=result.student_id,
                attempt_number=(last_number or 0) + 1,
                score=result.total_score,
                max_score=result.max_score,
                percentage=result.percentage,
                time_spent_seconds=result.total_time_seconds,
                reason=result.reason.value,
                payload=result.model_dump(mode="json"),
                submitted_at=result.submitted_at,
            )
            db.add(record)
            await db.commit()
            logger.info(f"Stored attempt {record.attempt_number} of test {result.test_id} for {result.student_id}")
            return record.id

    async def fetch_history(self, student_id: str, test_id: str) -> list[HistoricalAttempt]:
        async with self.session_factory() as db:
            records = await db.scalars(
                select(AttemptRecord)
                .where(AttemptRecord.student_id == student_id, AttemptRecord.test_id == test_id)
                .order_by(AttemptRecord.attempt_number)
            )
            return [to_summary(r) for r in records]

    async def get_attempt(self, attempt_id: str, student_id: Optional[str] = None) -> AttemptRecord:
        async with self.session_factory() as db:
            record = await db.get(AttemptRecord, attempt_id)
        if record is None or (student_id is not None and record.student_id != student_id):
            raise AttemptNotFound(attempt_id)
        return record

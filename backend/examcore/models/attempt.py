"""
Exam Session Engine - Attempt Models
SQLAlchemy model for persisted, scored test attempts
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from examcore.core.database import Base


class AttemptRecord(Base):
    """One submitted attempt. ``session_id`` is the idempotency key."""

    __tablename__ = "test_attempts"
    __table_args__ = (
        UniqueConstraint("student_id", "test_id", "attempt_number", name="uq_attempt_number"),
    )

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=lambda: uuid.uuid4().hex
    )
    session_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    test_id: Mapped[str] = mapped_column(String(64), index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True)

    # 1 for the student's first attempt of this test, then +1 each time
    attempt_number: Mapped[int] = mapped_column(Integer)

    # Score details
    score: Mapped[float] = mapped_column(Float)
    max_score: Mapped[float] = mapped_column(Float)
    percentage: Mapped[float] = mapped_column(Float)
    time_spent_seconds: Mapped[float] = mapped_column(Float)
    reason: Mapped[str] = mapped_column(String(16))

    # Full AttemptResult as JSON
    payload: Mapped[dict] = mapped_column(JSON)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

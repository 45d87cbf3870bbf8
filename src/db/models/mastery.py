"""
Objective Mastery Models.

SQLAlchemy models for course structure, practice attempts and the
per-objective mastery record:
- Course modules and their generated learning objectives
- Practice attempts (one per answered question) with short-answer evaluations
- Objective mastery (last evaluated status, counts and flags per objective)

Column types are kept portable so the same models run on PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _uuid() -> str:
    return str(uuid4())


class CourseModule(Base):
    """A module (week/chapter) of a course. ``position`` gives course order."""

    __tablename__ = "course_modules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    objective_set: Mapped[LearningObjectiveSet | None] = relationship(
        back_populates="module", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<CourseModule {self.name!r} course={self.course_id} position={self.position}>"


class LearningObjectiveSet(Base):
    """Ordered objective texts generated for one module."""

    __tablename__ = "learning_objectives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    module_id: Mapped[str] = mapped_column(
        ForeignKey("course_modules.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    objectives: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    module: Mapped[CourseModule] = relationship(back_populates="objective_set")


class PracticeAttemptRecord(Base):
    """
    One answered practice-test question.

    Tagged with every module of the test and the question's objective
    indices; the mastery history of an objective is the set of attempts
    whose tags contain both its module and its index.
    """

    __tablename__ = "practice_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    practice_test_id: Mapped[str | None] = mapped_column(String(64))
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[str] = mapped_column(String(128), nullable=False)
    question_text: Mapped[str] = mapped_column(Text, default="")
    question_format: Mapped[str] = mapped_column(String(32), nullable=False)
    objective_indices: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    module_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    student_answer: Mapped[str] = mapped_column(Text, default="")
    correct_answer: Mapped[str] = mapped_column(Text, default="")
    was_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    evaluation: Mapped[ShortAnswerEvaluationRecord | None] = relationship(
        back_populates="attempt", uselist=False, cascade="all, delete-orphan", lazy="joined"
    )

    __table_args__ = (
        Index("idx_practice_attempts_student_time", "student_id", "attempted_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PracticeAttemptRecord student={self.student_id} format={self.question_format} "
            f"correct={self.was_correct}>"
        )


class ShortAnswerEvaluationRecord(Base):
    """Reasoning-quality judgment for a short-answer attempt."""

    __tablename__ = "short_answer_evaluations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attempt_id: Mapped[int] = mapped_column(
        ForeignKey("practice_attempts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    reasoning_quality_score: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-2
    has_major_mistake: Mapped[bool] = mapped_column(Boolean, nullable=False)
    evaluation_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    attempt: Mapped[PracticeAttemptRecord] = relationship(back_populates="evaluation")


class ObjectiveMasteryRecord(Base):
    """
    Stored mastery state per student per objective.

    ``status`` and the flags are whatever the evaluator returned for the
    full attempt history at the last update.
    """

    __tablename__ = "objective_mastery"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    module_id: Mapped[str] = mapped_column(String(36), nullable=False)
    objective_index: Mapped[int] = mapped_column(Integer, nullable=False)
    objective_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="developing")
    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    distinct_formats_correct: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    has_recent_major_mistake: Mapped[bool] = mapped_column(Boolean, default=False)
    reasoning_quality_satisfied: Mapped[bool] = mapped_column(Boolean, default=True)

    last_encountered: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_status_change: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("student_id", "module_id", "objective_index", name="uq_student_objective"),
        Index("idx_objective_mastery_course", "student_id", "course_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ObjectiveMasteryRecord student={self.student_id} module={self.module_id} "
            f"objective={self.objective_index} status={self.status}>"
        )


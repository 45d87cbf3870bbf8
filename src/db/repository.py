"""Repository interface and SQLAlchemy implementation for mastery data.

The MasteryService depends on the MasteryRepository abstraction rather than
on a concrete database, so tests and tools can supply their own storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from src.core.mastery import Attempt, MasteryResult, ObjectiveRef, ShortAnswerEvaluation
from src.db.database import get_session_factory, session_scope
from src.db.models import (
    CourseModule,
    LearningObjectiveSet,
    ObjectiveMasteryRecord,
    PracticeAttemptRecord,
    ShortAnswerEvaluationRecord,
)


@dataclass(frozen=True)
class ModuleOutline:
    """A course module with its objectives (None when not generated yet)."""

    module_id: str
    name: str
    position: int
    objectives: list[str] | None


class MasteryRepository(ABC):
    """Abstract storage for attempts, course structure and mastery records.

    All student-scoped methods take student_id for multi-tenant filtering.
    """

    @abstractmethod
    def course_outline(self, course_id: str) -> list[ModuleOutline]:
        """Modules of a course in course order."""

    @abstractmethod
    def add_attempt(
        self,
        student_id: str,
        course_id: str,
        attempt: Attempt,
        *,
        question_id: str,
        objective_indices: Sequence[int],
        module_ids: Sequence[str],
        question_text: str = "",
        student_answer: str = "",
        correct_answer: str = "",
        practice_test_id: str | None = None,
    ) -> int:
        """Store one attempt (and its evaluation, if any). Returns the attempt ID."""

    @abstractmethod
    def add_evaluation(self, attempt_id: int, evaluation: ShortAnswerEvaluation) -> None:
        """Attach (or replace) the reasoning evaluation of a stored attempt."""

    @abstractmethod
    def attempts_for_objective(
        self, student_id: str, module_id: str, objective_index: int
    ) -> list[Attempt]:
        """Attempts tagged with the objective, most recent first."""

    @abstractmethod
    def get_mastery(
        self, student_id: str, module_id: str, objective_index: int
    ) -> ObjectiveMasteryRecord | None:
        """Stored mastery record for one objective."""

    @abstractmethod
    def list_mastery(self, student_id: str, course_id: str) -> list[ObjectiveMasteryRecord]:
        """All stored mastery records of a student in a course."""

    @abstractmethod
    def save_mastery(
        self,
        student_id: str,
        course_id: str,
        objective: ObjectiveRef,
        was_correct: bool,
        result: MasteryResult,
    ) -> tuple[ObjectiveMasteryRecord, bool]:
        """Upsert the mastery record. Returns the record and whether the status changed."""

    def course_module_ids(self, course_id: str) -> list[str]:
        return [module.module_id for module in self.course_outline(course_id)]

    def objectives_by_module(self, course_id: str) -> dict[str, list[str]]:
        return {
            module.module_id: module.objectives
            for module in self.course_outline(course_id)
            if module.objectives is not None
        }


class SqlAlchemyMasteryRepository(MasteryRepository):
    """MasteryRepository backed by the SQLAlchemy models in src.db.models."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory or get_session_factory()

    def _scope(self):
        return session_scope(self._session_factory)

    # ------------------------------------------------------------------
    # Course structure
    # ------------------------------------------------------------------

    def add_module(
        self,
        course_id: str,
        name: str,
        position: int,
        objectives: Sequence[str] | None = None,
    ) -> str:
        """Create a course module, optionally with its objectives."""
        with self._scope() as session:
            module = CourseModule(course_id=course_id, name=name, position=position)
            if objectives is not None:
                module.objective_set = LearningObjectiveSet(objectives=list(objectives))
            session.add(module)
            session.flush()
            return module.id

    def set_objectives(self, module_id: str, objectives: Sequence[str]) -> None:
        """Replace the objectives of a module."""
        with self._scope() as session:
            module = session.get(CourseModule, module_id)
            if module is None:
                raise LookupError(f"Unknown module: {module_id}")
            if module.objective_set is None:
                module.objective_set = LearningObjectiveSet(objectives=list(objectives))
            else:
                module.objective_set.objectives = list(objectives)

    def course_outline(self, course_id: str) -> list[ModuleOutline]:
        with self._scope() as session:
            modules = session.scalars(
                select(CourseModule)
                .where(CourseModule.course_id == course_id)
                .order_by(CourseModule.position, CourseModule.name)
            ).all()
            return [
                ModuleOutline(
                    module_id=module.id,
                    name=module.name,
                    position=module.position,
                    objectives=(
                        list(module.objective_set.objectives)
                        if module.objective_set is not None
                        else None
                    ),
                )
                for module in modules
            ]

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def add_attempt(
        self,
        student_id: str,
        course_id: str,
        attempt: Attempt,
        *,
        question_id: str,
        objective_indices: Sequence[int],
        module_ids: Sequence[str],
        question_text: str = "",
        student_answer: str = "",
        correct_answer: str = "",
        practice_test_id: str | None = None,
    ) -> int:
        with self._scope() as session:
            record = PracticeAttemptRecord(
                practice_test_id=practice_test_id,
                student_id=student_id,
                course_id=course_id,
                question_id=question_id,
                question_text=question_text,
                question_format=attempt.question_format,
                objective_indices=list(objective_indices),
                module_ids=list(module_ids),
                student_answer=student_answer,
                correct_answer=correct_answer,
                was_correct=attempt.was_correct,
                attempted_at=attempt.attempted_at or datetime.now(UTC),
            )
            if attempt.evaluation is not None:
                record.evaluation = ShortAnswerEvaluationRecord(
                    reasoning_quality_score=attempt.evaluation.reasoning_quality_score,
                    has_major_mistake=attempt.evaluation.has_major_mistake,
                    evaluation_notes=attempt.evaluation.evaluation_notes,
                )
            session.add(record)
            session.flush()
            return record.id

    def add_evaluation(self, attempt_id: int, evaluation: ShortAnswerEvaluation) -> None:
        with self._scope() as session:
            record = session.get(PracticeAttemptRecord, attempt_id)
            if record is None:
                raise LookupError(f"Unknown attempt: {attempt_id}")
            if record.evaluation is None:
                record.evaluation = ShortAnswerEvaluationRecord()
            record.evaluation.reasoning_quality_score = evaluation.reasoning_quality_score
            record.evaluation.has_major_mistake = evaluation.has_major_mistake
            record.evaluation.evaluation_notes = evaluation.evaluation_notes

    def attempts_for_objective(
        self, student_id: str, module_id: str, objective_index: int
    ) -> list[Attempt]:
        with self._scope() as session:
            records = session.scalars(
                select(PracticeAttemptRecord)
                .where(PracticeAttemptRecord.student_id == student_id)
                .order_by(PracticeAttemptRecord.attempted_at.desc(), PracticeAttemptRecord.id.desc())
            ).all()

            # Tag lists are JSON, filter in Python to stay portable
            return [
                _to_attempt(record)
                for record in records
                if module_id in record.module_ids and objective_index in record.objective_indices
            ]

    # ------------------------------------------------------------------
    # Mastery records
    # ------------------------------------------------------------------

    def get_mastery(
        self, student_id: str, module_id: str, objective_index: int
    ) -> ObjectiveMasteryRecord | None:
        with self._scope() as session:
            return _find_mastery(session, student_id, module_id, objective_index)

    def list_mastery(self, student_id: str, course_id: str) -> list[ObjectiveMasteryRecord]:
        with self._scope() as session:
            return list(
                session.scalars(
                    select(ObjectiveMasteryRecord).where(
                        ObjectiveMasteryRecord.student_id == student_id,
                        ObjectiveMasteryRecord.course_id == course_id,
                    )
                ).all()
            )

    def save_mastery(
        self,
        student_id: str,
        course_id: str,
        objective: ObjectiveRef,
        was_correct: bool,
        result: MasteryResult,
    ) -> tuple[ObjectiveMasteryRecord, bool]:
        now = datetime.now(UTC)
        with self._scope() as session:
            record = _find_mastery(session, student_id, objective.module_id, objective.objective_index)

            if record is None:
                record = ObjectiveMasteryRecord(
                    student_id=student_id,
                    course_id=course_id,
                    module_id=objective.module_id,
                    objective_index=objective.objective_index,
                    objective_text=objective.objective_text,
                    correct_count=0,
                    total_count=0,
                )
                session.add(record)
                status_changed = False
            else:
                status_changed = record.status != result.status.value
                if status_changed:
                    record.last_status_change = now

            record.correct_count += 1 if was_correct else 0
            record.total_count += 1
            record.last_encountered = now
            record.status = result.status.value
            record.streak_count = result.streak_count
            record.distinct_formats_correct = sorted(result.distinct_formats_correct)
            record.has_recent_major_mistake = result.has_recent_major_mistake
            record.reasoning_quality_satisfied = result.reasoning_quality_satisfied
            session.flush()

            logger.debug(
                f"Saved mastery {record.status} for {student_id} "
                f"{objective.module_id}#{objective.objective_index}"
            )
            return record, status_changed


def _find_mastery(
    session: Session, student_id: str, module_id: str, objective_index: int
) -> ObjectiveMasteryRecord | None:
    return session.scalars(
        select(ObjectiveMasteryRecord).where(
            ObjectiveMasteryRecord.student_id == student_id,
            ObjectiveMasteryRecord.module_id == module_id,
            ObjectiveMasteryRecord.objective_index == objective_index,
        )
    ).first()


def _to_attempt(record: PracticeAttemptRecord) -> Attempt:
    evaluation = None
    if record.evaluation is not None:
        evaluation = ShortAnswerEvaluation(
            reasoning_quality_score=record.evaluation.reasoning_quality_score,
            has_major_mistake=record.evaluation.has_major_mistake,
            evaluation_notes=record.evaluation.evaluation_notes,
        )
    return Attempt(
        question_format=record.question_format,
        was_correct=record.was_correct,
        evaluation=evaluation,
        attempted_at=record.attempted_at,
    )

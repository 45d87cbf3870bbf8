"""
Mastery Service.

Orchestrates objective mastery tracking around the pure evaluator:
- record_submission: grade a practice test, store attempts, apply the
  waterfall policy and persist the re-evaluated mastery of each target
- student_progress: per-module, per-objective standing for dashboards
- analytics_summary: mastered-objective totals for the professor view
- tutor_context: compact standing lines for tutoring prompts

Every evaluation runs on the complete stored history of the objective.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from config import get_settings
from src.core.expiring_cache import ExpiringCache
from src.core.mastery import (
    NO_ATTEMPTS_EXPLANATION,
    NO_ATTEMPTS_RECOMMENDATION,
    MasteryResult,
    MasteryStatus,
    ObjectiveMasteryEvaluator,
    ObjectiveRef,
    QuestionFormat,
)
from src.db.repository import MasteryRepository
from src.learning.grading import (
    QuizQuestion,
    ShortAnswerJudge,
    grade_submission,
    percentage,
)
from src.learning.waterfall import build_candidate_objectives, select_waterfall_target


@dataclass(frozen=True)
class ObjectiveProgress:
    """Standing of one objective as shown on the progress dashboard."""

    module_id: str
    objective_index: int
    objective_text: str
    status: str
    explanation: str
    recommendation: str
    correct_count: int = 0
    total_count: int = 0
    last_encountered: datetime | None = None

    @property
    def mastery_percentage(self) -> int:
        return percentage(self.correct_count, self.total_count)

    @property
    def attempted(self) -> bool:
        return self.total_count > 0


@dataclass(frozen=True)
class ModuleProgress:
    module_id: str
    module_name: str
    objectives_defined: bool
    objectives: tuple[ObjectiveProgress, ...] = ()


@dataclass(frozen=True)
class ProgressSummary:
    total_objectives: int
    mastered_objectives: int

    @property
    def mastery_percentage(self) -> int:
        return percentage(self.mastered_objectives, self.total_objectives)


@dataclass(frozen=True)
class QuestionUpdate:
    """Which objective (if any) one answered question advanced."""

    question_index: int
    was_correct: bool
    target: ObjectiveRef | None = None
    status: MasteryStatus | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    score: int
    updates: list[QuestionUpdate]

    @property
    def correct_count(self) -> int:
        return sum(1 for update in self.updates if update.was_correct)


class MasteryService:
    """
    Track objective mastery for students.

    Progress reports are cached per (student, course) and dropped whenever a
    submission for that pair is recorded.
    """

    def __init__(
        self,
        repository: MasteryRepository,
        evaluator: ObjectiveMasteryEvaluator | None = None,
        cache: ExpiringCache | None = None,
    ):
        self.repository = repository
        self.evaluator = evaluator if evaluator is not None else ObjectiveMasteryEvaluator()
        if cache is None:
            cache = ExpiringCache(get_settings().progress_cache_ttl_seconds)
        self.cache = cache

    def evaluate_objective(self, student_id: str, objective: ObjectiveRef) -> MasteryResult:
        """Evaluate one objective on its full stored history."""
        attempts = self.repository.attempts_for_objective(
            student_id, objective.module_id, objective.objective_index
        )
        return self.evaluator.evaluate(attempts)

    def record_submission(
        self,
        student_id: str,
        course_id: str,
        selected_module_ids: Sequence[str],
        questions: Sequence[QuizQuestion | dict[str, Any]],
        answers: Sequence[Any],
        test_mode: str = QuestionFormat.MULTIPLE_CHOICE,
        judge: ShortAnswerJudge | None = None,
        practice_test_id: str | None = None,
    ) -> SubmissionOutcome:
        """
        Grade a submitted practice test and update objective mastery.

        For each question the attempt is stored first, then at most one
        objective (the waterfall target) is re-evaluated and saved.

        Args:
            student_id: Student submitting the test
            course_id: Course the test belongs to
            selected_module_ids: Modules the test was generated from
            questions: Test questions in order
            answers: Student answers by position
            test_mode: Format for questions without an explicit type
            judge: Optional short-answer reasoning judge
            practice_test_id: Used to build per-question IDs

        Returns:
            SubmissionOutcome with the score and per-question updates

        Raises:
            SubmissionError: If the test has no questions
        """
        graded = grade_submission(list(questions), list(answers), test_mode, judge)
        course_module_ids = self.repository.course_module_ids(course_id)
        objectives_by_module = self.repository.objectives_by_module(course_id)
        test_prefix = practice_test_id or "practice"

        updates: list[QuestionUpdate] = []
        for answer in graded.answers:
            self.repository.add_attempt(
                student_id,
                course_id,
                answer.attempt,
                question_id=f"{test_prefix}-q{answer.question_index}",
                objective_indices=answer.objective_indices,
                module_ids=selected_module_ids,
                question_text=answer.question.question,
                student_answer=answer.answer,
                correct_answer=answer.question.correct_answer,
                practice_test_id=practice_test_id,
            )

            candidates = build_candidate_objectives(
                selected_module_ids,
                course_module_ids,
                objectives_by_module,
                answer.objective_indices,
            )
            target = select_waterfall_target(
                candidates, lambda ref: self._stored_status(student_id, ref)
            )
            if target is None:
                logger.debug(f"Question {answer.question_index} matches no defined objective")
                updates.append(QuestionUpdate(answer.question_index, answer.attempt.was_correct))
                continue

            logger.debug(
                f"Question {answer.question_index} -> {target.module_id}#{target.objective_index} "
                f"({len(candidates)} candidates)"
            )
            result = self.evaluate_objective(student_id, target)
            record, status_changed = self.repository.save_mastery(
                student_id, course_id, target, answer.attempt.was_correct, result
            )
            if status_changed:
                logger.info(
                    f"Objective {target.module_id}#{target.objective_index} for {student_id} "
                    f"is now {record.status}"
                )
            updates.append(
                QuestionUpdate(
                    answer.question_index,
                    answer.attempt.was_correct,
                    target=target,
                    status=result.status,
                )
            )

        self.cache.invalidate_prefix(student_id, course_id)
        return SubmissionOutcome(score=graded.score, updates=updates)

    def _stored_status(self, student_id: str, objective: ObjectiveRef) -> str | None:
        record = self.repository.get_mastery(
            student_id, objective.module_id, objective.objective_index
        )
        return record.status if record is not None else None

    def student_progress(self, student_id: str, course_id: str) -> tuple[ModuleProgress, ...]:
        """
        Progress for every module of the course, in course order.

        Objectives that were never attempted report the empty-history
        status and texts.
        """
        key = (student_id, course_id, "progress")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        records = {
            (record.module_id, record.objective_index): record
            for record in self.repository.list_mastery(student_id, course_id)
        }

        progress: list[ModuleProgress] = []
        for module in self.repository.course_outline(course_id):
            if module.objectives is None:
                progress.append(ModuleProgress(module.module_id, module.name, objectives_defined=False))
                continue

            objectives = []
            for index, text in enumerate(module.objectives):
                record = records.get((module.module_id, index))
                if record is None:
                    objectives.append(
                        ObjectiveProgress(
                            module_id=module.module_id,
                            objective_index=index,
                            objective_text=text,
                            status=MasteryStatus.DEVELOPING.value,
                            explanation=NO_ATTEMPTS_EXPLANATION,
                            recommendation=NO_ATTEMPTS_RECOMMENDATION,
                        )
                    )
                    continue

                result = self.evaluate_objective(student_id, ObjectiveRef(module.module_id, index, text))
                objectives.append(
                    ObjectiveProgress(
                        module_id=module.module_id,
                        objective_index=index,
                        objective_text=text,
                        status=result.status.value,
                        explanation=result.explanation,
                        recommendation=result.recommendation,
                        correct_count=record.correct_count,
                        total_count=record.total_count,
                        last_encountered=record.last_encountered,
                    )
                )

            progress.append(ModuleProgress(module.module_id, module.name, True, tuple(objectives)))

        report = tuple(progress)
        self.cache.set(key, report)
        return report

    def analytics_summary(self, student_id: str, course_id: str) -> ProgressSummary:
        """Count defined and mastered objectives across the course."""
        modules = self.student_progress(student_id, course_id)
        objectives = [obj for module in modules for obj in module.objectives]
        return ProgressSummary(
            total_objectives=len(objectives),
            mastered_objectives=sum(
                1 for obj in objectives if obj.status == MasteryStatus.MASTERED.value
            ),
        )

    def tutor_context(self, student_id: str, course_id: str) -> str:
        """Describe the student's standing on each practiced objective."""
        lines = []
        for module in self.student_progress(student_id, course_id):
            for obj in module.objectives:
                if not obj.attempted:
                    continue
                lines.append(
                    f"- {module.module_name}, objective {obj.objective_index + 1} "
                    f'"{obj.objective_text}": {MasteryStatus(obj.status).display_name} '
                    f"({obj.correct_count}/{obj.total_count} correct). {obj.recommendation}"
                )

        if not lines:
            return "The student has not practiced any learning objectives yet."
        return "Student progress on learning objectives:\n" + "\n".join(lines)

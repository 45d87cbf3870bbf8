"""
Quiz Grading.

Turns a submitted practice test into Attempt records:
- Exact answer matching (case- and whitespace-insensitive)
- Short-answer reasoning pre-checks for blank or very short answers
- Optional reasoning judge for everything else (LLM-backed, supplied by caller)

A failing judge never fails the submission: the attempt is recorded without
an evaluation and the mastery rules fall back to correctness alone.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.core.mastery import Attempt, QuestionFormat, ShortAnswerEvaluation

MIN_SHORT_ANSWER_CHARS = 10


class SubmissionError(ValueError):
    """Raised when a practice test submission cannot be graded."""
    pass


class QuizQuestion(BaseModel):
    """A generated practice-test question as stored with the test."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    question: str = ""
    correct_answer: str = Field("", alias="correctAnswer")
    type: str | None = None
    objective_indices: list[int] = Field(default_factory=list, alias="objectiveIndices")


class ShortAnswerJudge(Protocol):
    """Scores the reasoning behind a short answer."""

    def judge(self, question: str, correct_answer: str, answer: str) -> ShortAnswerEvaluation:
        ...


@dataclass(frozen=True)
class GradedAnswer:
    """One graded question of a submission."""

    question_index: int
    question: QuizQuestion
    answer: str
    attempt: Attempt

    @property
    def objective_indices(self) -> list[int]:
        return self.question.objective_indices


@dataclass(frozen=True)
class GradedSubmission:
    answers: list[GradedAnswer]
    score: int  # percentage, rounded

    @property
    def correct_count(self) -> int:
        return sum(1 for graded in self.answers if graded.attempt.was_correct)


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage, halves rounded up. Zero when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return math.floor(part * 100 / whole + 0.5)


def normalize_answer(value: Any) -> str:
    """Canonical form used for answer comparison."""
    if value is None:
        return ""
    return str(value).strip().lower()


def is_answer_correct(student_answer: Any, correct_answer: Any) -> bool:
    """
    Compare a student answer with the expected one.

    Both sides must be non-empty; comparison ignores case and surrounding
    whitespace.
    """
    given = normalize_answer(student_answer)
    expected = normalize_answer(correct_answer)
    return bool(given) and bool(expected) and given == expected


def precheck_short_answer(answer: str) -> ShortAnswerEvaluation | None:
    """
    Judge answers that are obviously insufficient without calling the judge.

    Returns:
        An evaluation for blank or too-brief answers, None otherwise
    """
    stripped = (answer or "").strip()
    if not stripped:
        return ShortAnswerEvaluation(
            reasoning_quality_score=0,
            has_major_mistake=True,
            evaluation_notes="No answer provided.",
        )
    if len(stripped) < MIN_SHORT_ANSWER_CHARS:
        return ShortAnswerEvaluation(
            reasoning_quality_score=0,
            has_major_mistake=True,
            evaluation_notes="Answer is too brief to demonstrate understanding.",
        )
    return None


def evaluate_short_answer(
    question: QuizQuestion,
    answer: str,
    judge: ShortAnswerJudge | None,
) -> ShortAnswerEvaluation | None:
    """Pre-check, then defer to the judge. Judge failures yield None."""
    evaluation = precheck_short_answer(answer)
    if evaluation is not None or judge is None:
        return evaluation

    try:
        return judge.judge(question.question, question.correct_answer, answer)
    except Exception as e:  # Intentionally broad - the judge is a remote model call
        logger.error(f"Error evaluating short answer: {e}")
        return None


def grade_submission(
    questions: list[QuizQuestion | dict[str, Any]],
    answers: list[Any],
    test_mode: str = QuestionFormat.MULTIPLE_CHOICE,
    judge: ShortAnswerJudge | None = None,
    attempted_at: datetime | None = None,
) -> GradedSubmission:
    """
    Grade every question of a practice test.

    Args:
        questions: Questions in test order (models or raw dicts)
        answers: Student answers by position; missing entries count as blank
        test_mode: Format used when a question has no explicit type
        judge: Optional short-answer reasoning judge
        attempted_at: Submission time stamped on every attempt (default: now)

    Returns:
        GradedSubmission with one GradedAnswer per question and the score

    Raises:
        SubmissionError: If the test has no questions
    """
    if not questions:
        raise SubmissionError("Practice test has no questions")

    if len(answers) != len(questions):
        logger.warning(f"Got {len(answers)} answers for {len(questions)} questions")

    stamp = attempted_at or datetime.now(UTC)
    graded: list[GradedAnswer] = []

    for idx, raw in enumerate(questions):
        question = raw if isinstance(raw, QuizQuestion) else QuizQuestion.model_validate(raw)
        answer = "" if idx >= len(answers) or answers[idx] is None else str(answers[idx])
        question_format = question.type or test_mode

        evaluation = None
        if question_format == QuestionFormat.SHORT_ANSWER:
            evaluation = evaluate_short_answer(question, answer, judge)

        graded.append(
            GradedAnswer(
                question_index=idx,
                question=question,
                answer=answer,
                attempt=Attempt(
                    question_format=question_format,
                    was_correct=is_answer_correct(answer, question.correct_answer),
                    evaluation=evaluation,
                    attempted_at=stamp,
                ),
            )
        )

    correct = sum(1 for g in graded if g.attempt.was_correct)
    return GradedSubmission(answers=graded, score=percentage(correct, len(graded)))

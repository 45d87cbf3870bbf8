"""
Core Mastery Module.

Rules-based evaluation of a student's standing on a single learning objective.

Design:
- MasteryStatus: Ordered tri-state (developing < approaching < mastered)
- Attempt / ShortAnswerEvaluation: Immutable input records
- AttemptHistory: Reverse-chronological wrapper around a student's attempts
- MasteryResult: Status plus the metrics and texts that explain it
- ObjectiveMasteryEvaluator: Fixed-threshold classifier (pure, never raises)

The evaluator holds no state. Callers pass the complete history for one
(student, objective) pair every time and persist the returned status.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger


class MasteryStatus(str, Enum):
    """
    Mastery status of one objective.

    Ordered: developing < approaching < mastered.
    """

    DEVELOPING = "developing"
    APPROACHING = "approaching"
    MASTERED = "mastered"

    @property
    def rank(self) -> int:
        """Position in the progression (0 = developing)."""
        return _STATUS_ORDER.index(self)

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryStatus.DEVELOPING: "yellow",
            MasteryStatus.APPROACHING: "cyan",
            MasteryStatus.MASTERED: "green",
        }[self]


_STATUS_ORDER = (MasteryStatus.DEVELOPING, MasteryStatus.APPROACHING, MasteryStatus.MASTERED)


class QuestionFormat:
    """Known question formats. Other strings are accepted as-is."""

    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_ANSWER = "short_answer"
    FILL_BLANK = "fill_blank"
    TRUE_FALSE = "true_false"


@dataclass(frozen=True)
class ShortAnswerEvaluation:
    """Reasoning-quality judgment attached to a short-answer attempt."""

    reasoning_quality_score: int  # 0 = shallow/memorized, 2 = strong
    has_major_mistake: bool
    evaluation_notes: str | None = None


@dataclass(frozen=True)
class Attempt:
    """One answered question tagged against an objective."""

    question_format: str
    was_correct: bool
    evaluation: ShortAnswerEvaluation | None = None
    attempted_at: datetime | None = None

    @property
    def is_short_answer(self) -> bool:
        return self.question_format == QuestionFormat.SHORT_ANSWER


@dataclass(frozen=True)
class ObjectiveRef:
    """Identifies one learning objective: a module plus its 0-based index."""

    module_id: str
    objective_index: int
    objective_text: str = ""

    @property
    def key(self) -> tuple[str, int]:
        return (self.module_id, self.objective_index)


class AttemptHistory(Sequence[Attempt]):
    """
    Attempts for one (student, objective) pair, most recent first.

    Use ``from_attempts`` rather than the constructor when the order of the
    input is not already known to be reverse-chronological.
    """

    __slots__ = ("_attempts",)

    def __init__(self, attempts: Iterable[Attempt] = ()):
        self._attempts = tuple(attempts)

    @classmethod
    def from_attempts(cls, attempts: Iterable[Attempt]) -> AttemptHistory:
        """
        Build a history, sorting by timestamp when every attempt has one.

        Args:
            attempts: Attempts in any order

        Returns:
            AttemptHistory ordered most-recent-first. Without a complete set
            of comparable timestamps (all timezone-aware or all naive) the
            caller's order is kept as given.
        """
        if isinstance(attempts, AttemptHistory):
            return attempts

        items = list(attempts)
        stamped = [a for a in items if a.attempted_at is not None]

        if items and len(stamped) == len(items):
            aware = {_is_aware(a.attempted_at) for a in stamped}
            if len(aware) == 1:
                # sorted() is stable, ties keep caller order
                return cls(sorted(items, key=lambda a: a.attempted_at, reverse=True))
            logger.debug("Attempts mix naive and timezone-aware timestamps - keeping caller order")
            return cls(items)

        if stamped:
            logger.debug(
                f"{len(stamped)}/{len(items)} attempts carry timestamps - keeping caller order"
            )
        return cls(items)

    def __getitem__(self, index):
        return self._attempts[index]

    def __len__(self) -> int:
        return len(self._attempts)

    def __repr__(self) -> str:
        return f"<AttemptHistory attempts={len(self._attempts)}>"

    @property
    def most_recent(self) -> Attempt | None:
        return self._attempts[0] if self._attempts else None


@dataclass(frozen=True)
class MasteryResult:
    """Outcome of evaluating one objective."""

    status: MasteryStatus
    explanation: str
    recommendation: str
    streak_count: int = 0
    distinct_formats_correct: frozenset[str] = field(default_factory=frozenset)
    has_recent_major_mistake: bool = False
    reasoning_quality_satisfied: bool = True

    @property
    def is_mastered(self) -> bool:
        return self.status is MasteryStatus.MASTERED

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "status": self.status.value,
            "explanation": self.explanation,
            "recommendation": self.recommendation,
            "streak_count": self.streak_count,
            "distinct_formats_correct": sorted(self.distinct_formats_correct),
            "has_recent_major_mistake": self.has_recent_major_mistake,
            "reasoning_quality_satisfied": self.reasoning_quality_satisfied,
        }


NO_ATTEMPTS_EXPLANATION = "No attempts recorded yet. Start practicing to track your progress."
NO_ATTEMPTS_RECOMMENDATION = "Take a practice test to begin demonstrating your understanding."


class ObjectiveMasteryEvaluator:
    """
    Classify an attempt history as developing, approaching or mastered.

    Rules (first match wins):
    - mastered: >=3 correct across >=2 formats, clean last two attempts,
      and no correct short answer scored 0 for reasoning anywhere in history
    - approaching: >=2 correct and clean last two attempts
    - developing: everything else
    """

    MASTERY_MIN_CORRECT = 3
    MASTERY_MIN_FORMATS = 2
    APPROACHING_MIN_CORRECT = 2
    RECENT_WINDOW = 2
    LOW_REASONING_SCORE = 0

    def evaluate(self, attempts: Iterable[Attempt]) -> MasteryResult:
        """
        Evaluate mastery for one objective.

        Args:
            attempts: Attempt history, most recent first (or an AttemptHistory)

        Returns:
            MasteryResult with status, explanation and supporting metrics
        """
        history = AttemptHistory.from_attempts(attempts)

        if not history:
            return MasteryResult(
                status=MasteryStatus.DEVELOPING,
                explanation=NO_ATTEMPTS_EXPLANATION,
                recommendation=NO_ATTEMPTS_RECOMMENDATION,
            )

        correct_count = sum(1 for a in history if a.was_correct)
        formats = frozenset(a.question_format for a in history if a.was_correct)
        streak = self.streak_length(history)
        recent_mistake = self.has_recent_major_mistake(history)
        low_reasoning = self.has_low_reasoning_quality(history)

        if (
            correct_count >= self.MASTERY_MIN_CORRECT
            and len(formats) >= self.MASTERY_MIN_FORMATS
            and not recent_mistake
            and not low_reasoning
        ):
            return MasteryResult(
                status=MasteryStatus.MASTERED,
                explanation=(
                    f"You have demonstrated mastery with {correct_count} correct demonstrations "
                    f"across {len(formats)} different question formats. Your answers show "
                    "consistent understanding with strong reasoning quality and no major "
                    "conceptual mistakes in recent attempts."
                ),
                recommendation=(
                    "Excellent work! Continue practicing other objectives or challenge "
                    "yourself with more advanced topics."
                ),
                streak_count=streak,
                distinct_formats_correct=formats,
                has_recent_major_mistake=False,
                reasoning_quality_satisfied=True,
            )

        # len(formats) >= 1 holds whenever correct_count >= 2; kept as observed
        if (
            correct_count >= self.APPROACHING_MIN_CORRECT
            and (len(formats) >= 1 or correct_count >= self.MASTERY_MIN_CORRECT)
            and not recent_mistake
        ):
            narrow = len(formats) < self.MASTERY_MIN_FORMATS
            follow_up = (
                "Try practicing with different question types to demonstrate deeper understanding."
                if narrow
                else "Your understanding is improving but needs more consistency."
            )
            return MasteryResult(
                status=MasteryStatus.APPROACHING,
                explanation=(
                    f"You're making progress with {correct_count} "
                    f"{_plural('correct answer', correct_count)} so far. {follow_up}"
                ),
                recommendation=(
                    "Practice with different question formats (multiple choice, short answer, "
                    "fill-in-blank) to show versatile understanding."
                    if narrow
                    else "Keep practicing to build consistency. Aim for a few more correct "
                    "answers to demonstrate mastery."
                ),
                streak_count=streak,
                distinct_formats_correct=formats,
                has_recent_major_mistake=False,
                reasoning_quality_satisfied=not low_reasoning,
            )

        if correct_count > 0:
            blocker = (
                "your recent attempts show conceptual mistakes that need attention."
                if recent_mistake
                else "need more consistent correct demonstrations to show mastery."
            )
            explanation = (
                f"You have {correct_count} {_plural('correct answer', correct_count)} but {blocker}"
            )
        else:
            explanation = "No correct answers yet. Keep practicing and learning from the material."

        return MasteryResult(
            status=MasteryStatus.DEVELOPING,
            explanation=explanation,
            recommendation=(
                "Review the course materials carefully and focus on understanding key "
                "concepts rather than memorization."
                if recent_mistake
                else "Take more practice tests and use the AI tutor if you need help "
                "understanding specific topics."
            ),
            streak_count=streak,
            distinct_formats_correct=formats,
            has_recent_major_mistake=recent_mistake,
            reasoning_quality_satisfied=not low_reasoning,
        )

    @staticmethod
    def streak_length(history: Sequence[Attempt]) -> int:
        """Count leading correct attempts before the first incorrect one."""
        streak = 0
        for attempt in history:
            if not attempt.was_correct:
                break
            streak += 1
        return streak

    def has_recent_major_mistake(self, history: Sequence[Attempt]) -> bool:
        """
        Check the most recent attempts for a major mistake.

        An attempt counts when it was incorrect, or when it is a short answer
        whose evaluation flagged a major mistake.
        """
        return any(
            not attempt.was_correct
            or (
                attempt.is_short_answer
                and attempt.evaluation is not None
                and attempt.evaluation.has_major_mistake
            )
            for attempt in history[: self.RECENT_WINDOW]
        )

    def has_low_reasoning_quality(self, history: Sequence[Attempt]) -> bool:
        """Any correct short answer in the full history with the lowest reasoning score."""
        return any(
            attempt.is_short_answer
            and attempt.evaluation is not None
            and attempt.was_correct
            and attempt.evaluation.reasoning_quality_score == self.LOW_REASONING_SCORE
            for attempt in history
        )


def _plural(noun: str, count: int) -> str:
    return noun if count == 1 else f"{noun}s"


def _is_aware(moment: datetime) -> bool:
    return moment.tzinfo is not None and moment.utcoffset() is not None


_default_evaluator = ObjectiveMasteryEvaluator()


def evaluate_objective_mastery(attempts: Iterable[Attempt]) -> MasteryResult:
    """Evaluate an attempt history with the default thresholds."""
    return _default_evaluator.evaluate(attempts)

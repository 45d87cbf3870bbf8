"""
Unit tests for ObjectiveMasteryEvaluator.

Tests:
- Empty history result
- Streak, format set and recent-mistake metrics
- Mastered / approaching / developing classification and texts
- Lifetime reasoning-quality blocker vs. two-attempt recency window
- Missing short-answer evaluations
"""

from itertools import product

import pytest

from src.core.mastery import (
    Attempt,
    MasteryStatus,
    ObjectiveMasteryEvaluator,
    evaluate_objective_mastery,
)
from tests.factories import FB, MC, SA, fb, mc, sa


@pytest.fixture
def evaluator():
    return ObjectiveMasteryEvaluator()


class TestEmptyHistory:
    def test_empty_history_is_developing(self):
        result = evaluate_objective_mastery([])

        assert result.status is MasteryStatus.DEVELOPING
        assert result.streak_count == 0
        assert result.distinct_formats_correct == frozenset()
        assert result.has_recent_major_mistake is False
        assert result.reasoning_quality_satisfied is True
        assert result.explanation == (
            "No attempts recorded yet. Start practicing to track your progress."
        )
        assert result.recommendation == (
            "Take a practice test to begin demonstrating your understanding."
        )

    def test_empty_iterator_is_developing(self):
        assert evaluate_objective_mastery(iter(())).status is MasteryStatus.DEVELOPING


class TestScenarios:
    """Reference histories, most recent attempt first."""

    def test_three_correct_across_two_formats_is_mastered(self):
        result = evaluate_objective_mastery([mc(), mc(), sa(score=2)])

        assert result.status is MasteryStatus.MASTERED
        assert result.distinct_formats_correct == {MC, SA}
        assert result.streak_count == 3
        assert result.has_recent_major_mistake is False
        assert result.reasoning_quality_satisfied is True
        assert "3 correct demonstrations across 2 different question formats" in result.explanation
        assert result.recommendation.startswith("Excellent work!")

    def test_three_correct_single_format_is_approaching(self):
        result = evaluate_objective_mastery([mc(), mc(), mc()])

        assert result.status is MasteryStatus.APPROACHING
        assert result.distinct_formats_correct == {MC}
        assert result.explanation == (
            "You're making progress with 3 correct answers so far. "
            "Try practicing with different question types to demonstrate deeper understanding."
        )
        assert result.recommendation.startswith("Practice with different question formats")

    def test_most_recent_incorrect_is_developing(self):
        result = evaluate_objective_mastery([mc(False), mc(), mc()])

        assert result.status is MasteryStatus.DEVELOPING
        assert result.streak_count == 0
        assert result.has_recent_major_mistake is True
        assert result.explanation == (
            "You have 2 correct answers but your recent attempts show conceptual "
            "mistakes that need attention."
        )
        assert result.recommendation.startswith("Review the course materials carefully")

    def test_shallow_correct_short_answer_blocks_mastery(self):
        result = evaluate_objective_mastery([sa(score=0), sa(score=2), mc()])

        assert result.status is MasteryStatus.APPROACHING
        assert result.distinct_formats_correct == {SA, MC}
        assert result.reasoning_quality_satisfied is False
        assert result.has_recent_major_mistake is False
        assert result.explanation.endswith(
            "Your understanding is improving but needs more consistency."
        )
        assert result.recommendation.startswith("Keep practicing to build consistency.")


class TestMetrics:
    def test_streak_stops_at_first_incorrect(self, evaluator):
        result = evaluator.evaluate([mc(), fb(), mc(False), mc(), mc()])
        assert result.streak_count == 2

    def test_streak_covers_all_correct_history(self, evaluator):
        assert evaluator.evaluate([mc(), mc(), fb(), sa(score=1)]).streak_count == 4

    def test_formats_only_from_correct_attempts(self, evaluator):
        result = evaluator.evaluate([mc(False), sa(False, score=1), fb(False)])

        assert result.distinct_formats_correct == frozenset()
        assert result.status is MasteryStatus.DEVELOPING
        assert result.explanation == (
            "No correct answers yet. Keep practicing and learning from the material."
        )

    def test_unknown_format_joins_format_set(self, evaluator):
        result = evaluator.evaluate([Attempt("diagram_label", True), mc(), mc()])

        assert result.distinct_formats_correct == {"diagram_label", MC}
        assert result.status is MasteryStatus.MASTERED

    def test_recent_window_is_two_attempts(self, evaluator):
        result = evaluator.evaluate([mc(), sa(score=2), mc(False), fb()])

        assert result.has_recent_major_mistake is False
        assert result.status is MasteryStatus.MASTERED
        assert result.streak_count == 2

    def test_mistake_in_second_position_counts(self, evaluator):
        result = evaluator.evaluate([mc(), fb(False), mc(), sa(score=2)])

        assert result.status is MasteryStatus.DEVELOPING
        assert result.has_recent_major_mistake is True
        assert result.streak_count == 1

    def test_correct_short_answer_with_major_mistake_is_recent_mistake(self, evaluator):
        result = evaluator.evaluate([sa(score=2, major=True), mc(), mc()])

        assert result.status is MasteryStatus.DEVELOPING
        assert result.has_recent_major_mistake is True
        assert "recent attempts show conceptual mistakes" in result.explanation

    def test_incorrect_short_answer_without_major_flag_is_recent_mistake(self, evaluator):
        result = evaluator.evaluate([sa(False, score=1, major=False), mc(), fb()])

        assert result.has_recent_major_mistake is True
        assert result.status is MasteryStatus.DEVELOPING

    def test_old_shallow_answer_blocks_mastery_for_life(self, evaluator):
        history = [mc(), fb(), sa(score=2), mc(), mc(), sa(score=0)]
        result = evaluator.evaluate(history)

        assert result.status is MasteryStatus.APPROACHING
        assert result.reasoning_quality_satisfied is False

    def test_incorrect_low_score_answer_is_not_low_reasoning(self, evaluator):
        result = evaluator.evaluate([mc(), sa(score=2), mc(), sa(False, score=0, major=True)])

        assert result.reasoning_quality_satisfied is True
        assert result.status is MasteryStatus.MASTERED

    def test_partial_reasoning_score_does_not_block(self, evaluator):
        assert evaluator.evaluate([sa(score=1), mc(), mc()]).status is MasteryStatus.MASTERED


class TestMissingEvaluation:
    def test_correct_short_answer_without_evaluation(self, evaluator):
        result = evaluator.evaluate([sa(), mc(), mc()])

        assert result.status is MasteryStatus.MASTERED
        assert result.reasoning_quality_satisfied is True

    def test_incorrect_short_answer_without_evaluation(self, evaluator):
        result = evaluator.evaluate([sa(False), mc(), mc()])

        assert result.has_recent_major_mistake is True
        assert result.status is MasteryStatus.DEVELOPING


class TestClassificationTexts:
    def test_two_correct_is_approaching(self, evaluator):
        result = evaluator.evaluate([mc(), mc()])

        assert result.status is MasteryStatus.APPROACHING
        assert result.explanation.startswith("You're making progress with 2 correct answers so far.")

    def test_single_correct_is_developing(self, evaluator):
        result = evaluator.evaluate([mc()])

        assert result.status is MasteryStatus.DEVELOPING
        assert result.has_recent_major_mistake is False
        assert result.explanation == (
            "You have 1 correct answer but need more consistent correct "
            "demonstrations to show mastery."
        )
        assert result.recommendation == (
            "Take more practice tests and use the AI tutor if you need help "
            "understanding specific topics."
        )

    def test_developing_reports_reasoning_flag(self, evaluator):
        result = evaluator.evaluate([mc(False), sa(score=0)])

        assert result.status is MasteryStatus.DEVELOPING
        assert result.reasoning_quality_satisfied is False

    def test_to_dict_sorts_formats(self, evaluator):
        data = evaluator.evaluate([sa(score=2), mc(), fb()]).to_dict()

        assert data["status"] == "mastered"
        assert data["distinct_formats_correct"] == sorted([SA, MC, FB])
        assert data["streak_count"] == 3


class TestStatusOrdering:
    def test_rank_order(self):
        assert (
            MasteryStatus.DEVELOPING.rank
            < MasteryStatus.APPROACHING.rank
            < MasteryStatus.MASTERED.rank
        )

    def test_status_is_string_valued(self):
        assert MasteryStatus("approaching") is MasteryStatus.APPROACHING
        assert MasteryStatus.MASTERED.display_name == "Mastered"


def _histories(max_len=4):
    kinds = [mc(), mc(False), sa(score=2), sa(score=0), sa(False, score=1, major=True), fb()]
    for length in range(max_len + 1):
        yield from (list(combo) for combo in product(kinds, repeat=length))


class TestProperties:
    def test_streak_counts_leading_correct(self, evaluator):
        for history in _histories(3):
            expected = 0
            for attempt in history:
                if not attempt.was_correct:
                    break
                expected += 1

            result = evaluator.evaluate(history)
            assert result.streak_count == expected
            assert evaluator.evaluate([mc()] + history).streak_count == expected + 1
            assert evaluator.evaluate([mc(False)] + history).streak_count == 0

    def test_formats_match_correct_attempts(self, evaluator):
        for history in _histories(3):
            expected = {a.question_format for a in history if a.was_correct}
            assert evaluator.evaluate(history).distinct_formats_correct == expected

    def test_clean_evidence_never_demotes(self, evaluator):
        for history in _histories(3):
            before = evaluator.evaluate(history).status
            after = evaluator.evaluate([mc()] + history).status
            assert after.rank >= before.rank, history

    def test_evaluation_is_deterministic(self, evaluator):
        history = [sa(score=0), mc(False), fb(), mc()]
        assert evaluator.evaluate(history) == evaluator.evaluate(list(history))

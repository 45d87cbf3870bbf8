"""
Unit tests for quiz grading.

Tests:
- Case/whitespace-insensitive answer matching
- Short-answer pre-checks (blank, too brief)
- Judge failures degrade to attempts without evaluation
- Submission scoring and format fallback
"""

from datetime import datetime

import pytest

from src.core.mastery import QuestionFormat, ShortAnswerEvaluation
from src.learning.grading import (
    QuizQuestion,
    SubmissionError,
    grade_submission,
    is_answer_correct,
    normalize_answer,
    percentage,
    precheck_short_answer,
)


class StubJudge:
    """Judge returning a fixed evaluation and recording its calls."""

    def __init__(self, evaluation=None, error=None):
        self.evaluation = evaluation or ShortAnswerEvaluation(2, False, "Clear explanation.")
        self.error = error
        self.calls = []

    def judge(self, question, correct_answer, answer):
        self.calls.append((question, correct_answer, answer))
        if self.error:
            raise self.error
        return self.evaluation


class TestAnswerMatching:
    @pytest.mark.parametrize(
        "given, expected",
        [
            ("Paris", "paris"),
            ("  PARIS\n", "Paris "),
            ("B", "b"),
        ],
    )
    def test_matches_ignoring_case_and_whitespace(self, given, expected):
        assert is_answer_correct(given, expected) is True

    def test_different_answer_is_wrong(self):
        assert is_answer_correct("Lyon", "Paris") is False

    def test_blank_answer_is_never_correct(self):
        assert is_answer_correct("", "") is False
        assert is_answer_correct(None, "Paris") is False
        assert is_answer_correct("   ", "   ") is False

    def test_missing_expected_answer_is_never_correct(self):
        assert is_answer_correct("Paris", None) is False

    def test_normalize_non_string(self):
        assert normalize_answer(True) == "true"
        assert normalize_answer(42) == "42"
        assert normalize_answer(None) == ""


class TestShortAnswerPrecheck:
    def test_blank_answer(self):
        evaluation = precheck_short_answer("   ")

        assert evaluation.reasoning_quality_score == 0
        assert evaluation.has_major_mistake is True
        assert evaluation.evaluation_notes == "No answer provided."

    def test_brief_answer(self):
        evaluation = precheck_short_answer("mitosis")

        assert evaluation.reasoning_quality_score == 0
        assert evaluation.has_major_mistake is True
        assert "too brief" in evaluation.evaluation_notes

    def test_long_enough_answer_defers_to_judge(self):
        assert precheck_short_answer("cells divide by mitosis") is None


class TestGradeSubmission:
    def test_scores_and_formats(self):
        questions = [
            {"question": "Capital of France?", "correctAnswer": "Paris", "type": "multiple_choice"},
            {"question": "2 + 2 = __", "correctAnswer": "4", "type": "fill_blank"},
            {"question": "Largest ocean?", "correctAnswer": "Pacific"},
        ]

        graded = grade_submission(questions, ["paris", "5", "pacific"], test_mode="true_false")

        assert graded.score == 67
        assert graded.correct_count == 2
        assert [g.attempt.question_format for g in graded.answers] == [
            "multiple_choice",
            "fill_blank",
            "true_false",
        ]
        assert [g.attempt.was_correct for g in graded.answers] == [True, False, True]

    def test_objective_indices_are_carried(self):
        questions = [QuizQuestion(question="Q", correct_answer="a", objective_indices=[0, 2])]

        graded = grade_submission(questions, ["a"])

        assert graded.answers[0].objective_indices == [0, 2]

    def test_camel_case_fields_are_accepted(self):
        question = QuizQuestion.model_validate(
            {"question": "Q", "correctAnswer": "x", "objectiveIndices": [1]}
        )
        assert question.correct_answer == "x"
        assert question.objective_indices == [1]

    def test_missing_answers_count_as_blank(self):
        questions = [{"question": "Q1", "correctAnswer": "a"}, {"question": "Q2", "correctAnswer": "b"}]

        graded = grade_submission(questions, ["a"])

        assert graded.answers[1].answer == ""
        assert graded.answers[1].attempt.was_correct is False
        assert graded.score == 50

    def test_no_questions_raises(self):
        with pytest.raises(SubmissionError):
            grade_submission([], [])

    def test_attempts_share_submission_timestamp(self):
        stamp = datetime(2025, 5, 1, 12, 0)
        questions = [{"question": "Q1", "correctAnswer": "a"}, {"question": "Q2", "correctAnswer": "b"}]

        graded = grade_submission(questions, ["a", "b"], attempted_at=stamp)

        assert {g.attempt.attempted_at for g in graded.answers} == {stamp}


class TestShortAnswerJudging:
    QUESTION = {
        "question": "Explain osmosis.",
        "correctAnswer": "water moves across a membrane",
        "type": QuestionFormat.SHORT_ANSWER,
    }

    def test_judge_evaluation_is_attached(self):
        judge = StubJudge()

        graded = grade_submission([self.QUESTION], ["Water moves across a membrane"], judge=judge)

        attempt = graded.answers[0].attempt
        assert attempt.was_correct is True
        assert attempt.evaluation == judge.evaluation
        assert judge.calls == [
            ("Explain osmosis.", "water moves across a membrane", "Water moves across a membrane")
        ]

    def test_brief_answer_skips_judge(self):
        judge = StubJudge()

        graded = grade_submission([self.QUESTION], ["water"], judge=judge)

        assert judge.calls == []
        assert graded.answers[0].attempt.evaluation.has_major_mistake is True

    def test_judge_failure_records_attempt_without_evaluation(self):
        judge = StubJudge(error=RuntimeError("model unavailable"))

        graded = grade_submission([self.QUESTION], ["water moves across a membrane"], judge=judge)

        attempt = graded.answers[0].attempt
        assert attempt.evaluation is None
        assert attempt.was_correct is True

    def test_no_judge_leaves_long_answers_unevaluated(self):
        graded = grade_submission([self.QUESTION], ["something long and wrong"])

        assert graded.answers[0].attempt.evaluation is None

    def test_non_short_answer_formats_are_not_judged(self):
        judge = StubJudge()
        question = dict(self.QUESTION, type="multiple_choice")

        graded = grade_submission([question], ["water moves across a membrane"], judge=judge)

        assert judge.calls == []
        assert graded.answers[0].attempt.evaluation is None


class TestPercentage:
    @pytest.mark.parametrize(
        "part, whole, expected",
        [(1, 8, 13), (1, 3, 33), (2, 3, 67), (0, 5, 0), (3, 0, 0)],
    )
    def test_rounds_half_up(self, part, whole, expected):
        assert percentage(part, whole) == expected

"""
Learning: Orchestration around the mastery evaluator.

This package contains:
- grading: Answer matching and short-answer reasoning pre-checks
- waterfall: Earliest-unmastered-objective progression policy
- mastery_service: Submission recording and progress reporting
"""

from src.learning.grading import QuizQuestion, ShortAnswerJudge, SubmissionError, grade_submission
from src.learning.mastery_service import MasteryService, ModuleProgress, ObjectiveProgress
from src.learning.waterfall import build_candidate_objectives, select_waterfall_target

__all__ = [
    # Grading
    "QuizQuestion",
    "ShortAnswerJudge",
    "SubmissionError",
    "grade_submission",
    # Waterfall
    "build_candidate_objectives",
    "select_waterfall_target",
    # Service
    "MasteryService",
    "ModuleProgress",
    "ObjectiveProgress",
]

"""
Core Module - Shared domain models.

Components:
- mastery: Objective mastery evaluation (Attempt, MasteryResult, ObjectiveMasteryEvaluator)
- expiring_cache: TTL key-value store injected into services

Design Principle:
Everything under src/core/ is free of I/O. Persistence lives in src/db/,
orchestration in src/learning/.
"""

from src.core.expiring_cache import ExpiringCache
from src.core.mastery import (
    Attempt,
    AttemptHistory,
    MasteryResult,
    MasteryStatus,
    ObjectiveMasteryEvaluator,
    ObjectiveRef,
    QuestionFormat,
    ShortAnswerEvaluation,
    evaluate_objective_mastery,
)

__all__ = [
    # Mastery
    "Attempt",
    "AttemptHistory",
    "MasteryResult",
    "MasteryStatus",
    "ObjectiveMasteryEvaluator",
    "ObjectiveRef",
    "QuestionFormat",
    "ShortAnswerEvaluation",
    "evaluate_objective_mastery",
    # Cache
    "ExpiringCache",
]

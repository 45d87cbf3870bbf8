# SQLAlchemy models
from .base import Base
from .mastery import (
    CourseModule,
    LearningObjectiveSet,
    ObjectiveMasteryRecord,
    PracticeAttemptRecord,
    ShortAnswerEvaluationRecord,
)

__all__ = [
    # Base
    "Base",
    # Course structure
    "CourseModule",
    "LearningObjectiveSet",
    # Attempts
    "PracticeAttemptRecord",
    "ShortAnswerEvaluationRecord",
    # Mastery
    "ObjectiveMasteryRecord",
]

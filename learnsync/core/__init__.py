"""
Core engine: difficulty ordering, mastery state, recommendation policy
and progress statistics. Everything here is pure and storage-agnostic.
"""

from learnsync.core.difficulty import DifficultyLevel
from learnsync.core.mastery import MasteryState, OutcomeRecord, record_outcome, rolling_accuracy
from learnsync.core.recommendation import (
    Recommendation,
    RecommendationType,
    apply_outcome,
    evaluate_recommendation,
    session_start_recommendation,
)

__all__ = [
    "DifficultyLevel",
    "MasteryState",
    "OutcomeRecord",
    "Recommendation",
    "RecommendationType",
    "apply_outcome",
    "record_outcome",
    "evaluate_recommendation",
    "rolling_accuracy",
    "session_start_recommendation",
]

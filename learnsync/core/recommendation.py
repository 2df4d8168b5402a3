"""
Difficulty recommendation policy.

Runs after every recorded outcome. Checks are evaluated in a fixed
sequence and each one that fires overwrites the previous suggestion:

    bump up / bump down  ->  streak-farming guard  ->  oscillation guard

so at most one recommendation comes back per answer, and the oscillation
warning beats the streak warning, which beats a difficulty bump.

The session-start recommendation is separate: it runs once when a
practice session begins, not per answer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from learnsync.core.constants import (
    BUMP_DOWN_THRESHOLD,
    BUMP_UP_THRESHOLD,
    MIN_QUESTIONS_TO_JUDGE,
    OSCILLATION_LIMIT,
    STREAK_FARMING_ACCURACY,
    STREAK_FARMING_THRESHOLD,
)
from learnsync.core.difficulty import DifficultyLevel
from learnsync.core.mastery import MasteryState, OutcomeRecord, record_outcome, rolling_accuracy


class RecommendationType(str, Enum):
    SUGGEST_UP = "suggest_up"
    AUTO_DOWN = "auto_down"
    STREAK_WARNING = "streak_warning"
    OSCILLATION_WARNING = "oscillation_warning"
    SESSION_START = "session_start"


@dataclass(frozen=True)
class Recommendation:
    """Advice returned to the caller; never applied by the engine itself."""

    type: RecommendationType
    message: str
    accuracy: int | None = None  # Rounded percent
    new_difficulty: DifficultyLevel | None = None
    suggest_lock: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "accuracy": self.accuracy,
            "new_difficulty": self.new_difficulty.value if self.new_difficulty else None,
            "suggest_lock": self.suggest_lock,
        }


def _percent(value: float) -> int:
    # Half-up, not banker's rounding
    return int(value * 100 + 0.5)


def evaluate_recommendation(state: MasteryState) -> tuple[MasteryState, Recommendation | None]:
    """
    Apply the recommendation policy to a freshly updated state.

    Args:
        state: State that already includes the latest outcome

    Returns:
        (state with recommended difficulty and streak flag applied,
         the winning recommendation or None)
    """
    difficulty = state.current_difficulty
    recommended = state.recommended_difficulty
    streak_eligible = state.streak_eligible
    recommendation: Recommendation | None = None

    recent = state.recent(MIN_QUESTIONS_TO_JUDGE)
    if len(recent) >= MIN_QUESTIONS_TO_JUDGE:
        recent_accuracy = rolling_accuracy(recent)

        if recent_accuracy >= BUMP_UP_THRESHOLD and not difficulty.is_hardest:
            recommended = difficulty.harder()
            recommendation = Recommendation(
                type=RecommendationType.SUGGEST_UP,
                message=f"You're crushing it! Try {recommended.value} mode?",
                accuracy=_percent(recent_accuracy),
                new_difficulty=recommended,
            )
        elif recent_accuracy <= BUMP_DOWN_THRESHOLD and not difficulty.is_easiest:
            recommended = difficulty.easier()
            recommendation = Recommendation(
                type=RecommendationType.AUTO_DOWN,
                message=f"Dropping to {recommended.value} to build foundations.",
                accuracy=_percent(recent_accuracy),
                new_difficulty=recommended,
            )

    # Streak farming: sticky once tripped
    full_accuracy = state.rolling_accuracy
    if (
        difficulty is DifficultyLevel.EASY
        and state.questions_at_current_difficulty >= STREAK_FARMING_THRESHOLD
        and full_accuracy >= STREAK_FARMING_ACCURACY
    ):
        streak_eligible = False
        recommendation = Recommendation(
            type=RecommendationType.STREAK_WARNING,
            message=(
                "You've mastered Easy mode! Questions here won't count "
                "toward your streak anymore."
            ),
            accuracy=_percent(full_accuracy),
        )

    if state.difficulty_changes_this_session >= OSCILLATION_LIMIT:
        recommendation = Recommendation(
            type=RecommendationType.OSCILLATION_WARNING,
            message=(
                "Finding your level? Stick with one difficulty for 10 questions "
                "to get accurate feedback."
            ),
            suggest_lock=True,
        )

    updated = replace(state, recommended_difficulty=recommended, streak_eligible=streak_eligible)
    return updated, recommendation


def apply_outcome(
    state: MasteryState, outcome: OutcomeRecord
) -> tuple[MasteryState, Recommendation | None]:
    """Record an outcome and run the policy on the result."""
    return evaluate_recommendation(record_outcome(state, outcome))


def session_start_recommendation(
    state: MasteryState, chosen: DifficultyLevel
) -> Recommendation | None:
    """
    Compare the stored recommendation with the difficulty about to be used.

    Fires only for a known topic whose recommended level differs from
    ``chosen``.
    """
    if state.is_new or state.recommended_difficulty == chosen:
        return None

    target = state.recommended_difficulty
    direction = "up" if target > chosen else "down"
    return Recommendation(
        type=RecommendationType.SESSION_START,
        message=(
            f"Last time you were ready to move {direction}. "
            f"Practice {target.value} instead of {chosen.value}?"
        ),
        accuracy=_percent(state.rolling_accuracy),
        new_difficulty=target,
    )

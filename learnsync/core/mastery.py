"""
Mastery state per (subject, topic).

Design:
- OutcomeRecord: immutable result of one answered (or skipped) question
- MasteryState: rolling history plus difficulty bookkeeping for a topic
- rolling_accuracy: mean score over a window, 0.5 when empty
- record_outcome: pure bookkeeping step; the recommendation policy runs
  on its output (see recommendation.apply_outcome)

States travel as plain records (dicts) between the engine and the
stores; rolling accuracy is written alongside for readers of the remote
table but is always recomputed from the history on load.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from learnsync.core.constants import NEUTRAL_ACCURACY, ROLLING_WINDOW_SIZE
from learnsync.core.difficulty import DifficultyLevel
from learnsync.exceptions import OutcomeValidationError


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp (or pass a datetime through)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class OutcomeRecord:
    """A single answered-question outcome fed into the engine."""

    subject: str
    topic: str
    difficulty: DifficultyLevel
    score: float  # 0-1, partial credit allowed
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        subject: str,
        topic: str,
        difficulty: str | DifficultyLevel,
        score: float,
        timestamp: datetime | None = None,
    ) -> OutcomeRecord:
        """
        Validate raw input and build an outcome.

        Raises:
            OutcomeValidationError: On an unknown difficulty or a score
                outside [0, 1]
        """
        try:
            level = DifficultyLevel.parse(difficulty)
        except ValueError as e:
            raise OutcomeValidationError(str(e)) from None

        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise OutcomeValidationError(f"Score must be a number, got {score!r}")
        if math.isnan(score) or not 0.0 <= score <= 1.0:
            raise OutcomeValidationError(f"Score must lie in [0, 1], got {score}")

        return cls(
            subject=subject,
            topic=topic,
            difficulty=level,
            score=float(score),
            timestamp=timestamp or utc_now(),
        )

    def to_record(self) -> dict[str, Any]:
        """History-window entry format."""
        return {
            "score": self.score,
            "difficulty": self.difficulty.value,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_record(cls, subject: str, topic: str, data: Mapping[str, Any]) -> OutcomeRecord:
        return cls(
            subject=subject,
            topic=topic,
            difficulty=DifficultyLevel.parse(data.get("difficulty", DifficultyLevel.MEDIUM)),
            score=float(data.get("score") or 0.0),
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
        )


def rolling_accuracy(outcomes: Iterable[OutcomeRecord]) -> float:
    """Mean score over the given outcomes; neutral prior when empty."""
    scores = [o.score for o in outcomes]
    if not scores:
        return NEUTRAL_ACCURACY
    return sum(scores) / len(scores)


@dataclass(frozen=True)
class MasteryState:
    """Mastery bookkeeping for one topic of one user scope."""

    subject: str
    topic: str
    current_difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    recommended_difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    rolling_history: tuple[OutcomeRecord, ...] = ()
    questions_at_current_difficulty: int = 0
    total_questions: int = 0
    streak_eligible: bool = True
    difficulty_changes_this_session: int = 0
    last_difficulty_change: datetime | None = None
    updated_at: datetime | None = None
    is_new: bool = False

    @classmethod
    def default(cls, subject: str, topic: str) -> MasteryState:
        """State for a topic that has never been persisted."""
        return cls(subject=subject, topic=topic, is_new=True)

    @property
    def rolling_accuracy(self) -> float:
        """Accuracy over the full rolling window."""
        return rolling_accuracy(self.rolling_history)

    def recent(self, count: int) -> tuple[OutcomeRecord, ...]:
        """The last ``count`` outcomes, oldest first."""
        return self.rolling_history[-count:] if count > 0 else ()

    def with_session_reset(self) -> MasteryState:
        return replace(self, difficulty_changes_this_session=0)

    # =========================================================================
    # Record Mapping
    # =========================================================================

    def to_record(self) -> dict[str, Any]:
        """Persisted row layout (shared by the local and remote stores)."""
        return {
            "subject": self.subject,
            "topic": self.topic,
            "current_difficulty": self.current_difficulty.value,
            "recommended_difficulty": self.recommended_difficulty.value,
            "rolling_accuracy": self.rolling_accuracy,
            "questions_at_current": self.questions_at_current_difficulty,
            "total_questions": self.total_questions,
            "last_results": [o.to_record() for o in self.rolling_history],
            "streak_eligible": self.streak_eligible,
            "difficulty_changes_session": self.difficulty_changes_this_session,
            "last_difficulty_change": format_timestamp(self.last_difficulty_change),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> MasteryState:
        """Rebuild a persisted state; stored rolling_accuracy is ignored."""
        subject = data["subject"]
        topic = data["topic"]
        history = tuple(
            OutcomeRecord.from_record(subject, topic, entry)
            for entry in (data.get("last_results") or [])
        )[-ROLLING_WINDOW_SIZE:]
        current = DifficultyLevel.parse(data.get("current_difficulty") or DifficultyLevel.MEDIUM)
        return cls(
            subject=subject,
            topic=topic,
            current_difficulty=current,
            recommended_difficulty=DifficultyLevel.parse(
                data.get("recommended_difficulty") or current
            ),
            rolling_history=history,
            questions_at_current_difficulty=int(data.get("questions_at_current") or 0),
            total_questions=int(data.get("total_questions") or 0),
            streak_eligible=data.get("streak_eligible") is not False,
            difficulty_changes_this_session=int(data.get("difficulty_changes_session") or 0),
            last_difficulty_change=parse_timestamp(data.get("last_difficulty_change")),
            updated_at=parse_timestamp(data.get("updated_at")),
            is_new=False,
        )


def record_outcome(state: MasteryState, outcome: OutcomeRecord) -> MasteryState:
    """
    Fold one outcome into a mastery state.

    Appends to the rolling window (evicting the oldest beyond the window
    size) and updates the difficulty counters. The recommended difficulty
    is reset to the answered difficulty; the policy may raise or lower it.
    Streak eligibility and the session counter reset are left to the
    policy and to explicit session starts respectively.
    """
    history = (state.rolling_history + (outcome,))[-ROLLING_WINDOW_SIZE:]

    changed = outcome.difficulty != state.current_difficulty
    if changed:
        questions_at_current = 1
        changes = state.difficulty_changes_this_session + 1
        last_change = outcome.timestamp
    else:
        questions_at_current = state.questions_at_current_difficulty + 1
        changes = state.difficulty_changes_this_session
        last_change = state.last_difficulty_change

    return replace(
        state,
        current_difficulty=outcome.difficulty,
        recommended_difficulty=outcome.difficulty,
        rolling_history=history,
        questions_at_current_difficulty=questions_at_current,
        total_questions=state.total_questions + 1,
        difficulty_changes_this_session=changes,
        last_difficulty_change=last_change,
        updated_at=outcome.timestamp,
        is_new=False,
    )

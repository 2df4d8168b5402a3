"""
Unit tests for difficulty ordering and mastery bookkeeping.

Tests:
- Bounded difficulty stepping
- Outcome validation
- Rolling window FIFO eviction and accuracy
- Difficulty counters
- Record round-trip through the persisted layout
"""

from datetime import UTC, datetime, timedelta

import pytest

from learnsync.core.constants import ROLLING_WINDOW_SIZE
from learnsync.core.difficulty import DifficultyLevel
from learnsync.core.mastery import MasteryState, OutcomeRecord, record_outcome, rolling_accuracy
from learnsync.exceptions import OutcomeValidationError

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def outcome(score, difficulty=DifficultyLevel.MEDIUM, offset=0):
    return OutcomeRecord.create(
        "math", "fractions", difficulty, score, timestamp=BASE_TIME + timedelta(minutes=offset)
    )


def feed(scores, difficulty=DifficultyLevel.MEDIUM, state=None):
    state = state or MasteryState.default("math", "fractions")
    for i, score in enumerate(scores):
        state = record_outcome(state, outcome(score, difficulty, offset=state.total_questions + i))
    return state


class TestDifficultyLevel:
    """Tests for the ordered difficulty enum."""

    def test_total_order(self):
        assert DifficultyLevel.EASY < DifficultyLevel.MEDIUM < DifficultyLevel.HARD < DifficultyLevel.EXTREME
        assert DifficultyLevel.EXTREME >= DifficultyLevel.HARD

    @pytest.mark.parametrize("level,harder,easier", [
        (DifficultyLevel.EASY, DifficultyLevel.MEDIUM, DifficultyLevel.EASY),
        (DifficultyLevel.MEDIUM, DifficultyLevel.HARD, DifficultyLevel.EASY),
        (DifficultyLevel.HARD, DifficultyLevel.EXTREME, DifficultyLevel.MEDIUM),
        (DifficultyLevel.EXTREME, DifficultyLevel.EXTREME, DifficultyLevel.HARD),
    ])
    def test_stepping_is_clamped(self, level, harder, easier):
        """Stepping past either end stays put instead of wrapping."""
        assert level.harder() is harder
        assert level.easier() is easier

    def test_parse_accepts_case_and_members(self):
        assert DifficultyLevel.parse(" Hard ") is DifficultyLevel.HARD
        assert DifficultyLevel.parse(DifficultyLevel.EASY) is DifficultyLevel.EASY

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            DifficultyLevel.parse("impossible")


class TestOutcomeRecord:
    """Tests for outcome validation."""

    @pytest.mark.parametrize("score", [-0.1, 1.01, float("nan")])
    def test_rejects_out_of_range_score(self, score):
        with pytest.raises(OutcomeValidationError):
            OutcomeRecord.create("math", "fractions", "medium", score)

    def test_rejects_non_numeric_score(self):
        with pytest.raises(OutcomeValidationError):
            OutcomeRecord.create("math", "fractions", "medium", "1.0")

    def test_rejects_unknown_difficulty(self):
        with pytest.raises(OutcomeValidationError):
            OutcomeRecord.create("math", "fractions", "brutal", 0.5)

    def test_accepts_bounds(self):
        assert OutcomeRecord.create("math", "fractions", "easy", 0).score == 0.0
        assert OutcomeRecord.create("math", "fractions", "easy", 1).score == 1.0

    def test_is_immutable(self):
        record = outcome(0.5)
        with pytest.raises(AttributeError):
            record.score = 1.0


class TestRollingWindow:
    """Tests for rolling history and accuracy."""

    def test_empty_history_is_neutral(self):
        assert rolling_accuracy([]) == 0.5
        assert MasteryState.default("math", "fractions").rolling_accuracy == 0.5

    @pytest.mark.parametrize("count", [1, 5, 10, 11, 25])
    def test_history_length_is_capped(self, count):
        state = feed([1.0] * count)
        assert len(state.rolling_history) == min(count, ROLLING_WINDOW_SIZE)

    def test_oldest_entries_are_evicted_first(self):
        scores = [i / 20 for i in range(14)]
        state = feed(scores)

        assert [o.score for o in state.rolling_history] == scores[-10:]

    def test_accuracy_is_mean_of_window(self):
        state = feed([0.0] * 4 + [1.0, 0.5, 1.0, 0.5, 1.0, 0.5, 1.0, 0.5, 1.0, 0.5])
        assert state.rolling_accuracy == pytest.approx(0.75)

    def test_partial_scores_count(self):
        state = feed([0.5, 0.25])
        assert state.rolling_accuracy == pytest.approx(0.375)


class TestCounters:
    """Tests for difficulty bookkeeping."""

    def test_same_difficulty_increments(self):
        state = feed([1.0, 1.0, 1.0])
        assert state.questions_at_current_difficulty == 3
        assert state.difficulty_changes_this_session == 0
        assert state.total_questions == 3

    def test_difficulty_change_resets_to_one(self):
        state = feed([1.0, 1.0])
        state = feed([0.5], difficulty=DifficultyLevel.HARD, state=state)

        assert state.current_difficulty is DifficultyLevel.HARD
        assert state.questions_at_current_difficulty == 1
        assert state.difficulty_changes_this_session == 1
        assert state.last_difficulty_change is not None

    def test_total_questions_never_resets(self):
        state = feed([1.0] * 3)
        state = feed([1.0] * 2, difficulty=DifficultyLevel.EASY, state=state)
        state = state.with_session_reset()
        assert state.total_questions == 5

    def test_first_answer_clears_is_new(self):
        state = feed([0.0])
        assert state.is_new is False

    def test_record_outcome_does_not_mutate_input(self):
        initial = MasteryState.default("math", "fractions")
        record_outcome(initial, outcome(1.0))
        assert initial.total_questions == 0
        assert initial.rolling_history == ()


class TestRecordMapping:
    """Tests for the persisted record layout."""

    def test_round_trip(self):
        state = feed([1.0, 0.0, 0.5], difficulty=DifficultyLevel.HARD)
        restored = MasteryState.from_record(state.to_record())

        assert restored.current_difficulty is DifficultyLevel.HARD
        assert restored.total_questions == 3
        assert [o.score for o in restored.rolling_history] == [1.0, 0.0, 0.5]
        assert restored.is_new is False

    def test_stored_accuracy_is_ignored(self):
        record = feed([1.0, 1.0]).to_record()
        record["rolling_accuracy"] = 0.1

        assert MasteryState.from_record(record).rolling_accuracy == 1.0

    def test_missing_streak_flag_defaults_true(self):
        record = feed([1.0]).to_record()
        del record["streak_eligible"]

        assert MasteryState.from_record(record).streak_eligible is True

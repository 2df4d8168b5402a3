"""
Unit tests for the recommendation policy.

Tests:
- Bump up / bump down on the recent-5 window
- Streak-farming guard and its stickiness
- Oscillation guard and session resets
- Precedence when several checks fire on the same answer
- Session-start recommendation
"""

from dataclasses import replace

import pytest

from learnsync.core.difficulty import DifficultyLevel
from learnsync.core.mastery import MasteryState, OutcomeRecord
from learnsync.core.recommendation import (
    RecommendationType,
    apply_outcome,
    session_start_recommendation,
)

EASY = DifficultyLevel.EASY
MEDIUM = DifficultyLevel.MEDIUM
HARD = DifficultyLevel.HARD
EXTREME = DifficultyLevel.EXTREME


def answer(state, difficulty, score):
    return apply_outcome(state, OutcomeRecord.create(state.subject, state.topic, difficulty, score))


def run(answers, state=None):
    """Feed (difficulty, score) pairs; return final state and every recommendation."""
    state = state or MasteryState.default("math", "fractions")
    recommendations = []
    for difficulty, score in answers:
        state, recommendation = answer(state, difficulty, score)
        recommendations.append(recommendation)
    return state, recommendations


class TestBumps:
    """Tests for difficulty bump recommendations."""

    def test_five_perfect_answers_suggest_up(self):
        state, recs = run([(MEDIUM, 1.0)] * 5)

        assert recs[:4] == [None] * 4
        assert recs[4].type is RecommendationType.SUGGEST_UP
        assert recs[4].new_difficulty is HARD
        assert recs[4].accuracy == 100
        assert "hard" in recs[4].message
        assert state.recommended_difficulty is HARD

    def test_five_failed_answers_suggest_down(self):
        state, recs = run([(MEDIUM, 0.0)] * 5)

        assert recs[4].type is RecommendationType.AUTO_DOWN
        assert recs[4].new_difficulty is EASY
        assert recs[4].accuracy == 0
        assert state.recommended_difficulty is EASY

    def test_engine_never_changes_current_difficulty(self):
        state, _ = run([(MEDIUM, 0.0)] * 5)
        assert state.current_difficulty is MEDIUM

    def test_fewer_than_five_answers_never_bump(self):
        _, recs = run([(MEDIUM, 1.0)] * 4)
        assert recs == [None] * 4

    def test_threshold_is_inclusive_up(self):
        """Exactly 80% on the recent window counts as a bump up."""
        _, recs = run([(MEDIUM, 1.0)] * 4 + [(MEDIUM, 0.0)])
        assert recs[4].type is RecommendationType.SUGGEST_UP
        assert recs[4].accuracy == 80

    def test_threshold_is_inclusive_down(self):
        """Exactly 40% on the recent window counts as a bump down."""
        _, recs = run([(MEDIUM, 1.0)] * 2 + [(MEDIUM, 0.0)] * 3)
        assert recs[4].type is RecommendationType.AUTO_DOWN

    def test_middle_band_is_quiet(self):
        state, recs = run([(MEDIUM, 0.6)] * 5)
        assert recs[4] is None
        assert state.recommended_difficulty is MEDIUM

    def test_no_bump_above_extreme(self):
        _, recs = run([(EXTREME, 1.0)] * 5)
        assert recs[4] is None

    def test_no_bump_below_easy(self):
        _, recs = run([(EASY, 0.0)] * 5)
        assert recs[4] is None

    def test_uses_only_last_five(self):
        """Old failures outside the recent window do not block a bump up."""
        _, recs = run([(MEDIUM, 0.0)] * 5 + [(MEDIUM, 1.0)] * 5)
        assert recs[-1].type is RecommendationType.SUGGEST_UP

    def test_recommendation_resets_when_performance_normalizes(self):
        state, _ = run([(MEDIUM, 1.0)] * 5)
        state, rec = answer(state, MEDIUM, 0.0)
        state, rec = answer(state, MEDIUM, 0.0)

        assert rec is None
        assert state.recommended_difficulty is MEDIUM


class TestStreakFarming:
    """Tests for the streak-farming guard."""

    def test_fifteen_easy_answers_trip_the_guard(self):
        state, recs = run([(EASY, 1.0)] * 15)

        assert state.questions_at_current_difficulty == 15
        assert state.streak_eligible is False
        assert recs[14].type is RecommendationType.STREAK_WARNING
        assert recs[14].accuracy == 100

    def test_fourteen_easy_answers_do_not(self):
        state, recs = run([(EASY, 1.0)] * 14)

        assert state.streak_eligible is True
        assert recs[13].type is RecommendationType.SUGGEST_UP

    def test_low_accuracy_on_easy_does_not_trip(self):
        state, _ = run([(EASY, 0.8)] * 20)
        assert state.streak_eligible is True

    def test_flag_is_sticky(self):
        state, _ = run([(EASY, 1.0)] * 15)
        state, _ = run([(EASY, 0.0)] * 10, state=state)
        assert state.streak_eligible is False

        state, _ = run([(MEDIUM, 1.0)] * 3, state=state)
        assert state.streak_eligible is False

        assert state.with_session_reset().streak_eligible is False


class TestOscillation:
    """Tests for the oscillation guard."""

    def test_third_change_warns(self):
        _, recs = run([(EASY, 0.5), (MEDIUM, 0.5), (EASY, 0.5)])

        assert recs[0] is None
        assert recs[1] is None
        assert recs[2].type is RecommendationType.OSCILLATION_WARNING
        assert recs[2].suggest_lock is True

    def test_warning_repeats_until_session_reset(self):
        state, _ = run([(EASY, 0.5), (MEDIUM, 0.5), (EASY, 0.5)])
        state, rec = answer(state, EASY, 0.5)
        assert rec.type is RecommendationType.OSCILLATION_WARNING

        state = state.with_session_reset()
        assert state.difficulty_changes_this_session == 0
        _, rec = answer(state, EASY, 0.5)
        assert rec is None

    def test_normal_updates_never_reset_counter(self):
        state, _ = run([(EASY, 0.5), (MEDIUM, 0.5)] + [(MEDIUM, 0.5)] * 20)
        assert state.difficulty_changes_this_session == 2


class TestPrecedence:
    """Only one recommendation per answer; later checks overwrite earlier ones."""

    def test_oscillation_beats_bump_up(self):
        state = replace(
            MasteryState.default("math", "fractions"), difficulty_changes_this_session=2
        )
        state, _ = run([(MEDIUM, 1.0)] * 4, state=state)

        state, rec = answer(state, HARD, 1.0)

        assert rec.type is RecommendationType.OSCILLATION_WARNING
        assert state.recommended_difficulty is EXTREME  # Bump still recorded

    def test_streak_beats_bump(self):
        state, recs = run([(EASY, 1.0)] * 15)
        assert recs[14].type is RecommendationType.STREAK_WARNING
        assert state.recommended_difficulty is MEDIUM

    def test_oscillation_beats_streak(self):
        state = replace(
            MasteryState.default("math", "fractions"), difficulty_changes_this_session=2
        )
        state, recs = run([(EASY, 1.0)] * 15, state=state)

        assert state.streak_eligible is False
        assert recs[14].type is RecommendationType.OSCILLATION_WARNING


class TestSessionStart:
    """Tests for the session-start recommendation."""

    def test_fires_when_stored_recommendation_differs(self):
        state, _ = run([(MEDIUM, 1.0)] * 5)
        rec = session_start_recommendation(state, MEDIUM)

        assert rec.type is RecommendationType.SESSION_START
        assert rec.new_difficulty is HARD
        assert "up" in rec.message

    def test_silent_when_matching(self):
        state, _ = run([(MEDIUM, 1.0)] * 5)
        assert session_start_recommendation(state, HARD) is None

    def test_silent_for_new_topic(self):
        state = MasteryState.default("math", "fractions")
        assert session_start_recommendation(state, EASY) is None

    @pytest.mark.parametrize("chosen", [HARD, EXTREME])
    def test_points_down_when_chosen_is_harder(self, chosen):
        state, _ = run([(MEDIUM, 0.0)] * 5)
        rec = session_start_recommendation(state, chosen)
        assert rec.new_difficulty is EASY
        assert "down" in rec.message


def test_recommendation_payload():
    _, recs = run([(EASY, 0.5), (MEDIUM, 0.5), (EASY, 0.5)])

    assert recs[2].to_dict() == {
        "type": "oscillation_warning",
        "message": recs[2].message,
        "accuracy": None,
        "new_difficulty": None,
        "suggest_lock": True,
    }

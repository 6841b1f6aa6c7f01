"""
Tests for emotional trend and goal check-in due calculations.
"""

from datetime import timedelta

from memory.analysis import determine_emotional_trend, is_goal_due_for_check_in


class TestEmotionalTrend:
    """Mean valence of the newest three logs vs the three before them."""

    def test_improving_when_recent_valence_is_higher(self, records):
        rows = records.emotions([0.8, 0.7, 0.6, 0.1, 0.0, -0.1], emotion="hopeful")

        state = determine_emotional_trend(rows)

        assert state.trend == "improving"
        assert state.current == "hopeful"

    def test_declining_when_recent_valence_is_lower(self, records):
        rows = records.emotions([-0.6, -0.5, -0.4, 0.3, 0.4, 0.5])

        assert determine_emotional_trend(rows).trend == "declining"

    def test_small_difference_is_stable(self, records):
        rows = records.emotions([0.3, 0.3, 0.3, 0.2, 0.2, 0.2])

        assert determine_emotional_trend(rows).trend == "stable"

    def test_fewer_than_four_rows_is_stable(self, records):
        rows = records.emotions([0.9, -0.9, 0.9])

        assert determine_emotional_trend(rows).trend == "stable"

    def test_no_rows_is_unknown(self):
        state = determine_emotional_trend([])

        assert state.current == "unknown"
        assert state.trend == "stable"
        assert state.recent_emotions == []

    def test_recent_emotions_capped_at_five_newest_first(self, records):
        rows = [
            records.emotion(id=i, emotion=name, hours_ago=i)
            for i, name in enumerate(["happy", "sad", "anxious", "angry", "hopeful", "lonely"], start=1)
        ]

        state = determine_emotional_trend(rows)

        assert state.recent_emotions == ["happy", "sad", "anxious", "angry", "hopeful"]


class TestGoalDueForCheckIn:
    """A goal is due once its interval has elapsed since the last check-in."""

    def test_weekly_goal_checked_eight_days_ago_is_due(self, records, fixed_now):
        goal = records.goal(last_checked_in_at=fixed_now - timedelta(days=8))

        assert is_goal_due_for_check_in(goal, fixed_now) is True

    def test_weekly_goal_checked_five_days_ago_is_not_due(self, records, fixed_now):
        goal = records.goal(last_checked_in_at=fixed_now - timedelta(days=5))

        assert is_goal_due_for_check_in(goal, fixed_now) is False

    def test_never_checked_in_is_due(self, records, fixed_now):
        goal = records.goal(last_checked_in_at=None)

        assert is_goal_due_for_check_in(goal, fixed_now) is True

    def test_no_interval_is_never_due(self, records, fixed_now):
        goal = records.goal(check_in_interval=None, last_checked_in_at=None)

        assert is_goal_due_for_check_in(goal, fixed_now) is False

    def test_exact_interval_boundary_is_due(self, records, fixed_now):
        goal = records.goal(check_in_interval="daily", last_checked_in_at=fixed_now - timedelta(days=1))

        assert is_goal_due_for_check_in(goal, fixed_now) is True

    def test_unknown_interval_falls_back_to_weekly(self, records, fixed_now):
        due = records.goal(check_in_interval="quarterly", last_checked_in_at=fixed_now - timedelta(days=7))
        not_due = records.goal(check_in_interval="quarterly", last_checked_in_at=fixed_now - timedelta(days=6))

        assert is_goal_due_for_check_in(due, fixed_now) is True
        assert is_goal_due_for_check_in(not_due, fixed_now) is False

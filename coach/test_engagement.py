"""
Engagement Tracker Tests
========================
"""
from datetime import datetime, timedelta

import pytest

import models
from coach.engagement import EngagementState, EngagementTracker, advance
from coach.repository import CoachRepository

NOW = datetime(2025, 3, 10, 12, 0, 0)


def _state(hours_ago, streak=3, longest=5, total=10):
    last = None if hours_ago is None else NOW - timedelta(hours=hours_ago)
    return EngagementState(streak_count=streak, longest_streak=longest, total_sessions=total, last_session_at=last)


class TestTransitions:

    @pytest.mark.parametrize("hours_ago, expected_streak", [
        (None, 1),      # first session ever
        (0.5, 3),       # same day
        (23.9, 3),
        (24, 4),        # next day
        (36, 4),
        (48, 4),
        (48.1, 1),      # streak broken
        (24 * 7, 1),
        (-5, 3),        # clock skew into the future
    ])
    def test_streak_table(self, hours_ago, expected_streak):
        new = advance(_state(hours_ago), NOW)

        assert new.streak_count == expected_streak
        assert new.total_sessions == 11
        assert new.last_session_at == NOW

    def test_longest_streak_is_monotonic(self):
        broken = advance(_state(72, streak=9, longest=9), NOW)
        assert (broken.streak_count, broken.longest_streak) == (1, 9)

        record = advance(_state(30, streak=5, longest=5), NOW)
        assert (record.streak_count, record.longest_streak) == (6, 6)

    def test_consecutive_days(self):
        state = EngagementState()
        for day in range(4):
            state = advance(state, NOW + timedelta(days=day))

        assert (state.streak_count, state.longest_streak, state.total_sessions) == (4, 4, 4)


class TestTracker:

    def test_record_session_updates_profile(self, db, profile):
        tracker = EngagementTracker(CoachRepository(db))
        tracker.record_session("user-1", NOW)
        tracker.record_session("user-1", NOW + timedelta(hours=30))

        row = db.get(models.Profile, "user-1")
        assert (row.streak_count, row.longest_streak, row.total_sessions) == (2, 2, 2)
        assert row.last_session_at == NOW + timedelta(hours=30)

    def test_unknown_user_is_a_no_op(self, db):
        assert EngagementTracker(CoachRepository(db)).record_session("ghost", NOW) is None

"""
Engagement Tracker
Streak and session statistics derived from session timing.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from coach.errors import StoreError

logger = logging.getLogger(__name__)

STREAK_MIN_GAP = timedelta(hours=24)
STREAK_MAX_GAP = timedelta(hours=48)


@dataclass(frozen=True)
class EngagementState:
    streak_count: int = 0
    longest_streak: int = 0
    total_sessions: int = 0
    last_session_at: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile) -> "EngagementState":
        return cls(
            streak_count=profile.streak_count or 0,
            longest_streak=profile.longest_streak or 0,
            total_sessions=profile.total_sessions or 0,
            last_session_at=profile.last_session_at,
        )


def advance(state: EngagementState, now: datetime) -> EngagementState:
    """
    Advance engagement stats for a session starting at `now`.

    gap < 24h (or negative)  -> streak unchanged
    24h <= gap <= 48h        -> streak + 1
    gap > 48h or first ever  -> streak reset to 1
    """
    if state.last_session_at is None:
        streak = 1
    else:
        gap = now - state.last_session_at
        if gap < STREAK_MIN_GAP:
            # Same day, or a clock skewed into the future
            streak = state.streak_count
        elif gap <= STREAK_MAX_GAP:
            streak = state.streak_count + 1
        else:
            streak = 1

    return EngagementState(
        streak_count=streak,
        longest_streak=max(state.longest_streak, streak),
        total_sessions=state.total_sessions + 1,
        last_session_at=now,
    )


class EngagementTracker:
    def __init__(self, repo):
        self.repo = repo

    def record_session(self, user_id: str, now: datetime) -> Optional[EngagementState]:
        """Best-effort: returns the new state, or None when nothing was written."""
        profile = self.repo.get_profile(user_id)
        if profile is None:
            logger.warning(f"record_session: no profile for {user_id}")
            return None

        new_state = advance(EngagementState.from_profile(profile), now)
        try:
            self.repo.update_engagement(
                user_id,
                streak_count=new_state.streak_count,
                longest_streak=new_state.longest_streak,
                total_sessions=new_state.total_sessions,
                last_session_at=new_state.last_session_at,
            )
        except StoreError as e:
            logger.warning(f"record_session: failed to update profile stats: {e}")
            return None

        logger.info(f"Engagement for {user_id}: streak={new_state.streak_count} total={new_state.total_sessions}")
        return new_state

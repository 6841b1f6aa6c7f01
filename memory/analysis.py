"""
Derived memory signals: emotional trend and goal check-in due.

Both are pure functions of rows already fetched, so the chat turn and the
proactive scheduler compute them identically.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

from schemas import EmotionalLogSchema, EmotionalState, GoalSchema


TREND_THRESHOLD = 0.15

CHECK_IN_INTERVALS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "biweekly": timedelta(days=14),
    "monthly": timedelta(days=30),
}
DEFAULT_CHECK_IN_INTERVAL = timedelta(days=7)

_EPOCH = datetime(1970, 1, 1)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def determine_emotional_trend(rows: Sequence[EmotionalLogSchema]) -> EmotionalState:
    """
    Compare the mean valence of the three newest logs against the next three.

    Args:
        rows: Up to six emotional logs, newest first

    Returns:
        EmotionalState with current mood, trend and up to five recent emotions
    """
    if not rows:
        return EmotionalState(current="unknown", trend="stable", recent_emotions=[])

    current = rows[0].dominant_emotion
    recent_emotions = [r.dominant_emotion for r in rows[:5]]

    recent, older = rows[:3], rows[3:6]
    if len(rows) < 4 or not older:
        return EmotionalState(current=current, trend="stable", recent_emotions=recent_emotions)

    diff = _mean([r.valence for r in recent]) - _mean([r.valence for r in older])
    if diff > TREND_THRESHOLD:
        trend = "improving"
    elif diff < -TREND_THRESHOLD:
        trend = "declining"
    else:
        trend = "stable"

    return EmotionalState(current=current, trend=trend, recent_emotions=recent_emotions)


def is_goal_due_for_check_in(goal: GoalSchema, now: Optional[datetime] = None) -> bool:
    """
    A goal is due once its check-in interval has elapsed since the last check-in.

    Goals without an interval are never due; goals never checked in are always due.
    Unknown interval names fall back to weekly.
    """
    if not goal.check_in_interval:
        return False

    now = now or datetime.utcnow()
    last_check = goal.last_checked_in_at or _EPOCH
    required_gap = CHECK_IN_INTERVALS.get(goal.check_in_interval, DEFAULT_CHECK_IN_INTERVAL)
    return now - last_check >= required_gap

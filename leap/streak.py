"""
Streak Tracker.

Pure streak arithmetic over (last action date, today, current streak), plus the
process-wide counter kept in a key-value store. Call exactly once per newly
recorded completion; same-day duplicates must not reach this module.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from leap.clock import Calendar
from leap.config_manager import SystemConfig, config as default_config
from leap.logger import get_logger
from leap.models import Goal
from leap.persistence.kv import KeyValueStore

logger = get_logger("streak")

GLOBAL_STREAK_KEY = "leap_streak"
GLOBAL_LAST_DATE_KEY = "leap_last_completion_date"


@dataclass(frozen=True)
class StreakState:
    current: int
    longest: int
    last_action_date: Optional[date]


def advance(
    last_action_date: Optional[date],
    today: date,
    current_streak: int,
    longest_streak: int = 0,
    calendar: Optional[Calendar] = None,
) -> StreakState:
    """
    Count ``today`` as an action day.

    - same day as the last action -> unchanged
    - last action was yesterday  -> +1
    - gap of 2+ days / first action -> 1
    """
    cal = calendar or Calendar()
    if last_action_date is not None and cal.same_day(last_action_date, today):
        current = current_streak
    elif last_action_date is not None and cal.is_yesterday(last_action_date, today):
        current = current_streak + 1
    else:
        current = 1
    return StreakState(current=current, longest=max(longest_streak, current), last_action_date=today)


def effective_streak(
    last_action_date: Optional[date],
    today: date,
    current_streak: int,
    calendar: Optional[Calendar] = None,
) -> int:
    """Displayed streak: a streak whose last action is 2+ days old has lapsed to 0."""
    if last_action_date is None:
        return 0
    if (calendar or Calendar()).days_between(last_action_date, today) > 1:
        return 0
    return current_streak


def next_milestone(streak: int, cfg: SystemConfig = default_config) -> int:
    for milestone in sorted(cfg.STREAK_MILESTONES):
        if streak < milestone:
            return milestone
    return streak + cfg.MILESTONE_STEP


def days_to_next_milestone(streak: int, cfg: SystemConfig = default_config) -> int:
    return max(0, next_milestone(streak, cfg) - streak)


def streak_dates(streak: int, last_day: date) -> List[date]:
    """Days covered by a streak whose last action was ``last_day``, newest first."""
    return [last_day - timedelta(days=i) for i in range(max(streak, 0))]


def celebration_message(streak: int, cfg: SystemConfig = default_config) -> str:
    if streak >= cfg.SEVEN_DAY_STREAK:
        return f"{cfg.SEVEN_DAY_STREAK} days in a row! You're on fire! 🔥"
    return "You crushed it today!"


class StreakTracker:
    """连续打卡计数器：每个目标一份 + 全局一份（存于 key-value store）"""

    def __init__(self, store: KeyValueStore, calendar: Optional[Calendar] = None):
        self.store = store
        self.calendar = calendar or Calendar()

    def _global_state(self):
        current = int(self.store.get(GLOBAL_STREAK_KEY, 0) or 0)
        raw_last = self.store.get(GLOBAL_LAST_DATE_KEY)
        return current, date.fromisoformat(raw_last) if raw_last else None

    def advance_goal(self, goal: Goal, today: date) -> StreakState:
        """Apply one action day to ``goal`` in place and return the new state."""
        state = advance(
            goal.last_action_date, today, goal.current_streak, goal.longest_streak, self.calendar
        )
        goal.current_streak = state.current
        goal.longest_streak = state.longest
        goal.last_action_date = state.last_action_date
        return state

    def global_snapshot(self) -> Dict[str, Any]:
        return {
            GLOBAL_STREAK_KEY: self.store.get(GLOBAL_STREAK_KEY),
            GLOBAL_LAST_DATE_KEY: self.store.get(GLOBAL_LAST_DATE_KEY),
        }

    def restore_global(self, snapshot: Dict[str, Any]) -> None:
        self.store.set_many(snapshot)
        logger.warning(f"Global streak restored to {snapshot.get(GLOBAL_STREAK_KEY)}")

    def raise_global(self, goal_streak: int, today: date) -> int:
        """
        Advance the process-wide counter for ``today``.

        The counter follows the same day arithmetic on its own state and is then
        raised to ``goal_streak`` if that is larger; a goal update never lowers it.
        Value and date are written in one ``set_many`` call.
        """
        current, last = self._global_state()
        state = advance(last, today, current, calendar=self.calendar)
        value = max(state.current, goal_streak)

        self.store.set_many({GLOBAL_STREAK_KEY: value, GLOBAL_LAST_DATE_KEY: today.isoformat()})
        if value != current:
            logger.info(f"Global streak {current} -> {value}")
        return value

    def global_streak(self, today: Optional[date] = None) -> int:
        today = today or self.calendar.today()
        current, last = self._global_state()
        return effective_streak(last, today, current, self.calendar)

    def global_streak_dates(self, today: Optional[date] = None) -> List[date]:
        """Action days behind the displayed global streak; empty once it has lapsed."""
        today = today or self.calendar.today()
        current, last = self._global_state()
        streak = effective_streak(last, today, current, self.calendar)
        return streak_dates(streak, last) if streak else []

    def goal_streak(self, goal: Goal, today: Optional[date] = None) -> int:
        today = today or self.calendar.today()
        return effective_streak(goal.last_action_date, today, goal.current_streak, self.calendar)

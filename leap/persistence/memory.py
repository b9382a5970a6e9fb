"""
InMemoryGateway: reference Persistence Gateway holding goals and microhabits in dicts.

Reads return deep copies so callers can never mutate stored state outside a
transaction. JsonFileGateway reuses this class and only overrides ``_commit``.
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from leap.exceptions import InvalidStateError, NotFoundError, StorageError
from leap.logger import get_logger
from leap.models import DailyTask, Goal, Microhabit
from leap.persistence.gateway import GoalFilter

logger = get_logger("persistence")


class InMemoryGateway:
    """In-memory goal store with snapshot/rollback transactions."""

    def __init__(self):
        self._goals: Dict[str, Goal] = {}
        self._microhabits: Dict[str, Microhabit] = {}
        self._tx_lock = asyncio.Lock()
        self._tx_owner: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        current = asyncio.current_task()
        if self._tx_owner is not None and self._tx_owner is current:
            # 嵌套调用并入外层事务
            yield
            return

        async with self._tx_lock:
            self._tx_owner = current
            snapshot = copy.deepcopy((self._goals, self._microhabits))
            try:
                yield
                self._commit()
            except BaseException:
                self._goals, self._microhabits = snapshot
                raise
            finally:
                self._tx_owner = None

    def _commit(self) -> None:
        """Durably persist goals and microhabits. Raise StorageError on failure."""

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------
    def _require_goal(self, goal_id: str) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise NotFoundError("Goal", goal_id)
        return goal

    def _require_task(self, task_id: str) -> Tuple[Goal, DailyTask]:
        for goal in self._goals.values():
            task = goal.find_task(task_id)
            if task is not None:
                return goal, task
        raise NotFoundError("DailyTask", task_id)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------
    async def create_goal_with_tasks(self, goal: Goal, tasks: List[DailyTask]) -> str:
        if goal.id in self._goals:
            raise StorageError(f"Goal {goal.id} already exists")
        stored = copy.deepcopy(goal)
        stored.tasks = [copy.deepcopy(t) for t in tasks]
        for task in stored.tasks:
            task.goal_id = stored.id
        async with self.transaction():
            self._goals[stored.id] = stored
        logger.info(f"Stored goal {stored.id} with {len(stored.tasks)} tasks")
        return stored.id

    async def fetch_all_goals(self, filter: Optional[GoalFilter] = None) -> List[Goal]:
        criteria = filter or GoalFilter()
        goals = [copy.deepcopy(g) for g in self._goals.values() if criteria.matches(g)]
        return sorted(goals, key=lambda g: g.created_at, reverse=True)

    async def fetch_goal_by_id(self, goal_id: str) -> Optional[Goal]:
        goal = self._goals.get(goal_id)
        return copy.deepcopy(goal) if goal is not None else None

    async def delete_goal(self, goal_id: str) -> None:
        async with self.transaction():
            self._require_goal(goal_id)
            del self._goals[goal_id]

    async def archive_goal(self, goal_id: str) -> None:
        async with self.transaction():
            goal = self._require_goal(goal_id)
            goal.is_archived = True
            goal.archived_at = datetime.now(timezone.utc)

    async def unarchive_goal(self, goal_id: str) -> None:
        async with self.transaction():
            goal = self._require_goal(goal_id)
            goal.is_archived = False
            goal.archived_at = None

    async def update_goal_streak(
        self, goal_id: str, current_streak: int, last_action_date: date
    ) -> None:
        async with self.transaction():
            goal = self._require_goal(goal_id)
            goal.current_streak = current_streak
            goal.last_action_date = last_action_date
            if current_streak > goal.longest_streak:
                goal.longest_streak = current_streak

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    async def append_task_completion(self, task_id: str, day: date) -> bool:
        async with self.transaction():
            _, task = self._require_task(task_id)
            if task.is_completed_on(day):
                return False
            task.completed_dates.append(day)
            return True

    async def remove_task_completion(self, task_id: str, day: date) -> None:
        async with self.transaction():
            _, task = self._require_task(task_id)
            task.completed_dates = [d for d in task.completed_dates if d != day]

    async def set_task_unlocked(self, task_id: str, unlocked: bool) -> None:
        async with self.transaction():
            _, task = self._require_task(task_id)
            if task.is_unlocked and not unlocked:
                raise InvalidStateError(f"Task {task_id} is unlocked and cannot be re-locked")
            task.is_unlocked = unlocked

    # ------------------------------------------------------------------
    # Microhabits
    # ------------------------------------------------------------------
    def _require_microhabit(self, habit_id: str) -> Microhabit:
        habit = self._microhabits.get(habit_id)
        if habit is None:
            raise NotFoundError("Microhabit", habit_id)
        return habit

    async def save_microhabit(self, habit: Microhabit) -> None:
        async with self.transaction():
            self._microhabits[habit.id] = copy.deepcopy(habit)

    async def fetch_microhabits(self) -> List[Microhabit]:
        habits = [copy.deepcopy(h) for h in self._microhabits.values()]
        return sorted(habits, key=lambda h: h.created_at, reverse=True)

    async def delete_microhabit(self, habit_id: str) -> None:
        async with self.transaction():
            self._require_microhabit(habit_id)
            del self._microhabits[habit_id]

    async def add_microhabit_completion(self, habit_id: str, day: date) -> bool:
        async with self.transaction():
            habit = self._require_microhabit(habit_id)
            if habit.is_completed_on(day):
                return False
            habit.completed_dates.append(day)
            return True

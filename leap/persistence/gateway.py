"""
Persistence Gateway interface.

All operations are async and raise StorageError on persistence failure and
NotFoundError for unknown ids. Mutations are atomic per call; ``transaction()``
groups several mutations into one all-or-nothing commit.
"""
from dataclasses import dataclass
from datetime import date
from typing import AsyncContextManager, List, Optional, Protocol

from leap.models import DailyTask, Goal, GoalCategory, Microhabit


@dataclass
class GoalFilter:
    """fetch_all_goals 的过滤条件；None 表示不过滤该字段"""
    archived: Optional[bool] = False
    category: Optional[GoalCategory] = None

    def matches(self, goal: Goal) -> bool:
        if self.archived is not None and goal.is_archived != self.archived:
            return False
        if self.category is not None and goal.category != self.category:
            return False
        return True


class PersistenceGateway(Protocol):
    """Protocol defining the goal storage interface."""

    def transaction(self) -> AsyncContextManager[None]:
        ...

    async def create_goal_with_tasks(self, goal: Goal, tasks: List[DailyTask]) -> str:
        ...

    async def fetch_all_goals(self, filter: Optional[GoalFilter] = None) -> List[Goal]:
        ...

    async def fetch_goal_by_id(self, goal_id: str) -> Optional[Goal]:
        ...

    async def delete_goal(self, goal_id: str) -> None:
        ...

    async def archive_goal(self, goal_id: str) -> None:
        ...

    async def unarchive_goal(self, goal_id: str) -> None:
        ...

    async def append_task_completion(self, task_id: str, day: date) -> bool:
        """Record a completion for ``day``; False if one already exists for that day."""
        ...

    async def remove_task_completion(self, task_id: str, day: date) -> None:
        ...

    async def set_task_unlocked(self, task_id: str, unlocked: bool) -> None:
        ...

    async def update_goal_streak(
        self, goal_id: str, current_streak: int, last_action_date: date
    ) -> None:
        ...

    async def save_microhabit(self, habit: Microhabit) -> None:
        """Insert or replace ``habit`` by id."""
        ...

    async def fetch_microhabits(self) -> List[Microhabit]:
        """All microhabits, newest first."""
        ...

    async def delete_microhabit(self, habit_id: str) -> None:
        ...

    async def add_microhabit_completion(self, habit_id: str, day: date) -> bool:
        """Record ``day`` once; False if that day is already recorded."""
        ...

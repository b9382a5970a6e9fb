"""
Progression Engine.

Owns the Goal/DailyTask state machine:
- create a goal together with its ordered task sequence (task 0 unlocked)
- complete / uncomplete a task; completing order k unlocks order k+1
- read-side queries (progress, current challenge, upcoming, completed)
- archive / unarchive / delete

Unlocking is one-way. Removing a completion never re-locks the next task, so a
goal can temporarily show two unlocked, incomplete tasks after an "undo".
"""
import asyncio
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union

from leap.clock import Calendar
from leap.exceptions import DataIntegrityError, InvalidStateError, NotFoundError, ValidationError
from leap.logger import get_logger
from leap.models import CompletionResult, DailyTask, Goal, GoalCategory, TaskSpec
from leap.persistence.gateway import GoalFilter, PersistenceGateway
from leap.streak import StreakTracker

logger = get_logger("progression")

DayLike = Union[date, datetime]


class ProgressionEngine:
    """目标推进引擎：顺序解锁、完成记录、进度与连胜"""

    def __init__(
        self,
        gateway: PersistenceGateway,
        streaks: StreakTracker,
        calendar: Optional[Calendar] = None,
    ):
        self.gateway = gateway
        self.streaks = streaks
        self.calendar = calendar or streaks.calendar
        self._locks: Dict[str, asyncio.Lock] = {}

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    def _goal_lock(self, goal_id: str) -> asyncio.Lock:
        lock = self._locks.get(goal_id)
        if lock is None:
            lock = self._locks[goal_id] = asyncio.Lock()
        return lock

    def _day(self, on_date: Optional[DayLike]) -> date:
        if on_date is None:
            return self.calendar.today()
        return self.calendar.day_of(on_date)

    async def get_goal(self, goal_id: str) -> Goal:
        goal = await self.gateway.fetch_goal_by_id(goal_id)
        if goal is None:
            raise NotFoundError("Goal", goal_id)
        return goal

    @staticmethod
    def _require_task(goal: Goal, task_id: str) -> DailyTask:
        task = goal.find_task(task_id)
        if task is None:
            raise NotFoundError("DailyTask", task_id)
        return task

    @staticmethod
    def ordered(goal: Goal) -> List[DailyTask]:
        """Tasks sorted by ``order``; duplicate orders are a data-integrity error."""
        tasks = goal.sorted_tasks()
        for prev, cur in zip(tasks, tasks[1:]):
            if prev.order == cur.order:
                logger.error(f"Goal {goal.id} has two tasks with order {cur.order}")
                raise DataIntegrityError(
                    f"Goal {goal.id} has duplicate task order {cur.order}", goal_id=goal.id
                )
        return tasks

    @classmethod
    def check_invariants(cls, goal: Goal, strict: bool = True) -> None:
        """
        Raise DataIntegrityError if the goal's task structure is broken.

        Always checked: orders are exactly 0..N-1, task 0 is unlocked and the
        unlocked tasks form a prefix of the sequence. With ``strict`` the
        "at most one current challenge" rule is checked as well; an undone
        completion can legitimately break it (unlocking is never reversed).
        """
        tasks = cls.ordered(goal)
        if [t.order for t in tasks] != list(range(len(tasks))):
            raise DataIntegrityError(f"Goal {goal.id} task orders are not contiguous", goal.id)
        if tasks and not tasks[0].is_unlocked:
            raise DataIntegrityError(f"Goal {goal.id} first task is locked", goal.id)

        seen_locked = False
        for task in tasks:
            if not task.is_unlocked:
                seen_locked = True
            elif seen_locked:
                raise DataIntegrityError(
                    f"Goal {goal.id} task {task.order} is unlocked after a locked task", goal.id
                )

        if strict:
            current = [t for t in tasks if t.is_current]
            if len(current) > 1:
                raise DataIntegrityError(
                    f"Goal {goal.id} has {len(current)} current challenges", goal.id
                )
            if not current and tasks and not all(t.is_completed for t in tasks):
                raise DataIntegrityError(f"Goal {goal.id} has no current challenge", goal.id)

    # ---------------------------------------------------------------------
    # Query operations
    # ---------------------------------------------------------------------
    @staticmethod
    def progress(goal: Goal) -> float:
        return goal.progress

    def current_challenge(self, goal: Goal) -> Optional[DailyTask]:
        return next((t for t in self.ordered(goal) if t.is_current), None)

    def upcoming(self, goal: Goal) -> List[DailyTask]:
        return [t for t in self.ordered(goal) if not t.is_unlocked]

    def completed(self, goal: Goal) -> List[DailyTask]:
        return [t for t in self.ordered(goal) if t.is_completed]

    def completed_on(self, goal: Goal, on_date: Optional[DayLike] = None) -> List[DailyTask]:
        day = self._day(on_date)
        return [t for t in self.ordered(goal) if t.is_completed_on(day)]

    async def list_goals(
        self,
        include_archived: bool = False,
        category: Optional[GoalCategory] = None,
    ) -> List[Goal]:
        criteria = GoalFilter(archived=None if include_archived else False, category=category)
        return await self.gateway.fetch_all_goals(criteria)

    async def list_archived_goals(self) -> List[Goal]:
        return await self.gateway.fetch_all_goals(GoalFilter(archived=True))

    # ---------------------------------------------------------------------
    # Command operations
    # ---------------------------------------------------------------------
    async def create_goal(
        self,
        category: Union[GoalCategory, str],
        destination: str,
        timeline: str,
        user_story: str,
        task_specs: Sequence[TaskSpec],
        encouragement: str = "",
        due_dates: Optional[Sequence[Optional[date]]] = None,
    ) -> Goal:
        category = GoalCategory.parse(category)
        destination = (destination or "").strip()
        if not destination:
            raise ValidationError("Destination must not be empty")
        if not task_specs:
            raise ValidationError("A goal needs at least one task")
        if due_dates is not None and len(due_dates) != len(task_specs):
            raise ValidationError("due_dates must match task_specs in length")

        goal = Goal(
            category=category,
            destination=destination,
            timeline=(timeline or "").strip(),
            user_story=(user_story or "").strip(),
            encouragement=encouragement or "",
        )

        tasks = []
        for index, spec in enumerate(task_specs):
            try:
                title, description, duration = spec
            except (TypeError, ValueError):
                raise ValidationError(f"Task spec #{index} must be (title, description, duration)")
            title = str(title or "").strip()
            if not title:
                raise ValidationError(f"Task #{index} has an empty title")
            tasks.append(
                DailyTask(
                    goal_id=goal.id,
                    title=title,
                    description=str(description or "").strip(),
                    duration=str(duration or "").strip(),
                    order=index,
                    is_unlocked=index == 0,
                    due_date=due_dates[index] if due_dates is not None else None,
                )
            )

        goal_id = await self.gateway.create_goal_with_tasks(goal, tasks)
        logger.info(
            f"Created goal {goal_id} ({category.value} -> {destination}) with {len(tasks)} tasks"
        )
        return await self.get_goal(goal_id)

    async def complete_task(
        self,
        goal_id: str,
        task_id: str,
        on_date: Optional[DayLike] = None,
    ) -> CompletionResult:
        """
        Record a completion of ``task_id`` for ``on_date`` (default: today).

        The completion, the unlock of the next task, the per-goal streak and the
        process-wide streak commit together; if any write fails none of them is
        kept. A second completion on the same calendar day is a no-op and does
        not advance any streak.
        """
        day = self._day(on_date)

        async with self._goal_lock(goal_id):
            goal = await self.get_goal(goal_id)
            task = self._require_task(goal, task_id)
            if not task.is_unlocked:
                raise InvalidStateError(
                    f"Task '{task.title}' is locked; complete the current challenge first"
                )

            tasks = self.ordered(goal)
            next_task = next((t for t in tasks if t.order == task.order + 1), None)

            unlocked_task_id = None
            goal_streak = goal.current_streak
            global_before = self.streaks.global_snapshot()
            global_written = False
            try:
                async with self.gateway.transaction():
                    newly_recorded = await self.gateway.append_task_completion(task.id, day)
                    if next_task is not None and not next_task.is_unlocked:
                        await self.gateway.set_task_unlocked(next_task.id, True)
                        unlocked_task_id = next_task.id
                    if newly_recorded:
                        state = self.streaks.advance_goal(goal, day)
                        await self.gateway.update_goal_streak(goal.id, state.current, day)
                        goal_streak = state.current
                        # 全局计数写入失败时，上面的目标变更随事务回滚
                        global_streak = self.streaks.raise_global(goal_streak, day)
                        global_written = True
            except Exception:
                if global_written:
                    self.streaks.restore_global(global_before)
                raise

            if not newly_recorded:
                global_streak = self.streaks.global_streak(day)

            updated = await self.get_goal(goal_id)

        if newly_recorded:
            logger.info(
                f"Completed task {task.order} of goal {goal_id} on {day} "
                f"(progress {updated.progress:.0f}%, streak {goal_streak})"
            )
        return CompletionResult(
            goal_id=goal_id,
            task_id=task_id,
            progress=updated.progress,
            is_goal_complete=updated.is_complete,
            newly_recorded=newly_recorded,
            unlocked_task_id=unlocked_task_id,
            goal_streak=goal_streak,
            global_streak=global_streak,
        )

    async def remove_completion(
        self,
        goal_id: str,
        task_id: str,
        on_date: Optional[DayLike] = None,
    ) -> None:
        """Undo the completion recorded for that calendar day. Nothing is re-locked."""
        day = self._day(on_date)
        async with self._goal_lock(goal_id):
            goal = await self.get_goal(goal_id)
            task = self._require_task(goal, task_id)
            await self.gateway.remove_task_completion(task.id, day)
        logger.info(f"Removed completion of task {task.order} of goal {goal_id} on {day}")

    async def archive_goal(self, goal_id: str) -> None:
        await self.gateway.archive_goal(goal_id)
        logger.info(f"Archived goal {goal_id}")

    async def unarchive_goal(self, goal_id: str) -> None:
        await self.gateway.unarchive_goal(goal_id)
        logger.info(f"Unarchived goal {goal_id}")

    async def delete_goal(self, goal_id: str) -> None:
        async with self._goal_lock(goal_id):
            await self.gateway.delete_goal(goal_id)
        self._locks.pop(goal_id, None)
        logger.info(f"Deleted goal {goal_id}")

"""
Goal application service.

Wires the Itinerary Generator to the Progression Engine: entitlement gate ->
generation (remote or fallback) -> atomic goal creation, plus the read models
used by the HTTP API and the CLI.
"""
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from leap.clock import Calendar
from leap.config_manager import SystemConfig, config as default_config
from leap.exceptions import EntitlementError, ValidationError
from leap.itinerary.generator import ItineraryGenerator
from leap.llm_adapter import BaseLLMAdapter, create_llm_adapter
from leap.logger import get_logger
from leap.models import (
    CompletionResult,
    Goal,
    GoalCategory,
    Itinerary,
    Microhabit,
    MicrohabitKind,
    goal_to_dict,
    microhabit_to_dict,
    task_to_dict,
)
from leap.paths import GOALS_PATH, SETTINGS_PATH
from leap.persistence.json_store import JsonFileGateway
from leap.persistence.kv import JsonKeyValueStore
from leap.progression import ProgressionEngine
from leap.streak import StreakTracker, celebration_message, days_to_next_milestone, next_milestone

logger = get_logger("goal_service")

# 入参：当前活跃目标数；返回是否允许再创建一个
EntitlementCheck = Callable[[int], bool]


def free_tier_entitlement(limit: int, is_pro: Callable[[], bool] = lambda: False) -> EntitlementCheck:
    """Free users may hold ``limit`` active goals; pro users are unlimited."""
    def check(active_goal_count: int) -> bool:
        return is_pro() or active_goal_count < limit
    return check


class GoalService:
    """Application service for goal planning and daily progress."""

    def __init__(
        self,
        engine: ProgressionEngine,
        generator: ItineraryGenerator,
        can_create_goal: Optional[EntitlementCheck] = None,
        cfg: SystemConfig = default_config,
    ):
        self.engine = engine
        self.generator = generator
        self.can_create_goal = can_create_goal
        self.config = cfg

    @classmethod
    def from_config(
        cls,
        data_dir: Optional[Path] = None,
        cfg: SystemConfig = default_config,
        adapter: Optional[BaseLLMAdapter] = None,
        calendar: Optional[Calendar] = None,
        can_create_goal: Optional[EntitlementCheck] = None,
    ) -> "GoalService":
        """Build the JSON-backed service stack under ``data_dir`` (default: DATA_DIR)."""
        if data_dir is None:
            goals_path, settings_path = GOALS_PATH, SETTINGS_PATH
        else:
            goals_path, settings_path = data_dir / "goals.json", data_dir / "settings.json"
        calendar = calendar or Calendar.from_name(cfg.TIMEZONE)
        gateway = JsonFileGateway(goals_path)
        streaks = StreakTracker(JsonKeyValueStore(settings_path), calendar)
        engine = ProgressionEngine(gateway, streaks, calendar)
        generator = ItineraryGenerator(adapter or create_llm_adapter(), cfg)
        return cls(engine, generator, can_create_goal=can_create_goal, cfg=cfg)

    @property
    def calendar(self) -> Calendar:
        return self.engine.calendar

    # ---------------------------------------------------------------------
    # Planning
    # ---------------------------------------------------------------------
    async def ensure_can_create(self) -> None:
        if self.can_create_goal is None:
            return
        active = await self.engine.list_goals()
        if not self.can_create_goal(len(active)):
            raise EntitlementError()

    async def preview_itinerary(
        self,
        category: Union[GoalCategory, str],
        destination: str,
        timeline: str = "",
        user_story: str = "",
    ) -> Itinerary:
        category = GoalCategory.parse(category)
        if not (destination or "").strip():
            raise ValidationError("Destination must not be empty")
        return await self.generator.generate(category, destination.strip(), timeline, user_story)

    async def plan_goal(
        self,
        category: Union[GoalCategory, str],
        destination: str,
        timeline: str = "",
        user_story: str = "",
        itinerary: Optional[Itinerary] = None,
    ) -> Goal:
        """
        Create a goal from user input.

        ``itinerary`` lets a caller save a previewed itinerary instead of
        generating a new one.
        """
        category = GoalCategory.parse(category)
        if not (destination or "").strip():
            raise ValidationError("Destination must not be empty")
        await self.ensure_can_create()

        if itinerary is None:
            itinerary = await self.generator.generate(category, destination.strip(), timeline, user_story)

        goal = await self.engine.create_goal(
            category,
            destination,
            timeline,
            user_story,
            itinerary.task_specs(),
            itinerary.encouragement,
        )
        logger.info(f"Planned goal {goal.id} from {itinerary.source} itinerary")
        return goal

    # ---------------------------------------------------------------------
    # Progress
    # ---------------------------------------------------------------------
    async def complete_challenge(
        self, goal_id: str, task_id: str, on_date: Optional[date] = None
    ) -> CompletionResult:
        return await self.engine.complete_task(goal_id, task_id, on_date)

    async def uncomplete_challenge(
        self, goal_id: str, task_id: str, on_date: Optional[date] = None
    ) -> None:
        await self.engine.remove_completion(goal_id, task_id, on_date)

    # ---------------------------------------------------------------------
    # Microhabits
    # ---------------------------------------------------------------------
    async def add_microhabit(
        self,
        title: str,
        description: str = "",
        goal_id: Optional[str] = None,
        focus_minutes: int = 5,
        kind: Union[MicrohabitKind, str] = MicrohabitKind.CREATE,
    ) -> Microhabit:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Microhabit title must not be empty")
        if focus_minutes < 1:
            raise ValidationError("Focus duration must be at least one minute")
        try:
            kind = MicrohabitKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown microhabit type '{kind}' (expected create or replace)")
        if goal_id is not None:
            await self.engine.get_goal(goal_id)

        habit = Microhabit(
            title=title,
            description=(description or "").strip(),
            goal_id=goal_id,
            focus_minutes=focus_minutes,
            kind=kind,
        )
        await self.engine.gateway.save_microhabit(habit)
        logger.info(f"Added microhabit {habit.id} ({kind.value}) '{title}'")
        return habit

    async def list_microhabits(self) -> List[Microhabit]:
        return await self.engine.gateway.fetch_microhabits()

    async def delete_microhabit(self, habit_id: str) -> None:
        await self.engine.gateway.delete_microhabit(habit_id)
        logger.info(f"Deleted microhabit {habit_id}")

    async def complete_microhabit(self, habit_id: str, on_date: Optional[date] = None) -> bool:
        """Mark the habit done for that calendar day; a repeat on the same day returns False."""
        day = self.calendar.today() if on_date is None else self.calendar.day_of(on_date)
        recorded = await self.engine.gateway.add_microhabit_completion(habit_id, day)
        if recorded:
            logger.info(f"Microhabit {habit_id} done on {day}")
        return recorded

    # ---------------------------------------------------------------------
    # Read models
    # ---------------------------------------------------------------------
    def goal_summary(self, goal: Goal, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.calendar.today()
        current = self.engine.current_challenge(goal)
        data = goal_to_dict(goal, include_tasks=False)
        data.update({
            "progress": round(goal.progress, 2),
            "is_complete": goal.is_complete,
            "effective_streak": self.engine.streaks.goal_streak(goal, today),
            "current_challenge": task_to_dict(current) if current else None,
            "completed_today": [t.id for t in self.engine.completed_on(goal, today)],
            "tasks": [
                dict(task_to_dict(t), is_completed=t.is_completed)
                for t in self.engine.ordered(goal)
            ],
        })
        return data

    async def streak_summary(self, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.calendar.today()
        streak = self.engine.streaks.global_streak(today)
        return {
            "streak": streak,
            "next_milestone": next_milestone(streak, self.config),
            "days_to_next_milestone": days_to_next_milestone(streak, self.config),
            "message": celebration_message(streak, self.config) if streak else "",
            "dates": [d.isoformat() for d in self.engine.streaks.global_streak_dates(today)],
        }

    async def dashboard(self, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.calendar.today()
        goals = await self.engine.list_goals()
        return {
            "date": today.isoformat(),
            "goals": [self.goal_summary(g, today) for g in goals],
            "streak": await self.streak_summary(today),
        }

    def microhabit_summary(self, habit: Microhabit, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.calendar.today()
        return dict(microhabit_to_dict(habit), completed_today=habit.is_completed_on(today))

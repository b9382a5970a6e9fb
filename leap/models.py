"""
Core Data Models for Leap.
Defines goals, their sequential daily tasks ("challenges"), microhabits and
generator output.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from leap.exceptions import ValidationError

TaskSpec = Tuple[str, str, str]  # (title, description, duration label)


class GoalCategory(str, Enum):
    TRAVEL = "travel"
    CAREER = "career"
    FINANCE = "finance"
    GROWTH = "growth"
    RELATIONSHIP = "relationship"

    @classmethod
    def parse(cls, value: Any) -> "GoalCategory":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise ValidationError(f"Unknown category '{value}' (expected one of: {allowed})")


def new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DailyTask:
    """目标中的一步（用户侧称为 challenge）"""
    goal_id: str
    title: str
    description: str
    duration: str
    order: int
    is_unlocked: bool = False
    completed_dates: List[date] = field(default_factory=list)
    due_date: Optional[date] = None
    id: str = field(default_factory=new_id)

    @property
    def is_completed(self) -> bool:
        return bool(self.completed_dates)

    @property
    def completed_at(self) -> Optional[date]:
        return min(self.completed_dates) if self.completed_dates else None

    @property
    def is_current(self) -> bool:
        return self.is_unlocked and not self.is_completed

    def is_completed_on(self, day: date) -> bool:
        return day in self.completed_dates


@dataclass
class Goal:
    """用户的目的地：一个按顺序解锁的任务序列"""
    category: GoalCategory
    destination: str
    timeline: str = ""
    user_story: str = ""
    encouragement: str = ""
    tasks: List[DailyTask] = field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0
    last_action_date: Optional[date] = None
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def progress(self) -> float:
        if not self.tasks:
            return 0.0
        done = sum(1 for t in self.tasks if t.is_completed)
        return done / len(self.tasks) * 100

    @property
    def is_complete(self) -> bool:
        return self.progress >= 100

    def sorted_tasks(self) -> List[DailyTask]:
        return sorted(self.tasks, key=lambda t: t.order)

    def find_task(self, task_id: str) -> Optional[DailyTask]:
        return next((t for t in self.tasks if t.id == task_id), None)


class MicrohabitKind(str, Enum):
    CREATE = "create"    # 养成新习惯
    REPLACE = "replace"  # 替换旧习惯


@dataclass
class Microhabit:
    """每日小习惯，可关联到某个目标"""
    title: str
    description: str = ""
    goal_id: Optional[str] = None
    focus_minutes: int = 5
    kind: MicrohabitKind = MicrohabitKind.CREATE
    completed_dates: List[date] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_utcnow)

    def is_completed_on(self, day: date) -> bool:
        return day in self.completed_dates


@dataclass
class CompletionResult:
    """complete_task 的返回值"""
    goal_id: str
    task_id: str
    progress: float
    is_goal_complete: bool
    newly_recorded: bool
    unlocked_task_id: Optional[str] = None
    goal_streak: int = 0
    global_streak: int = 0


@dataclass
class Challenge:
    """Generator-side step before it becomes a DailyTask."""
    id: str
    title: str
    description: str
    estimated_time: str
    unlocked: bool = False
    completed: bool = False


@dataclass
class Itinerary:
    challenges: List[Challenge]
    encouragement: str
    source: str  # "remote" / "fallback"

    def task_specs(self) -> List[TaskSpec]:
        return [(c.title, c.description, c.estimated_time) for c in self.challenges]


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def task_to_dict(task: DailyTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "goal_id": task.goal_id,
        "title": task.title,
        "description": task.description,
        "duration": task.duration,
        "order": task.order,
        "is_unlocked": task.is_unlocked,
        "completed_dates": [d.isoformat() for d in task.completed_dates],
        "due_date": _iso(task.due_date),
    }


def task_from_dict(d: Dict[str, Any]) -> DailyTask:
    return DailyTask(
        id=d["id"],
        goal_id=d["goal_id"],
        title=d["title"],
        description=d.get("description", ""),
        duration=d.get("duration", ""),
        order=int(d["order"]),
        is_unlocked=bool(d.get("is_unlocked", False)),
        completed_dates=[date.fromisoformat(x) for x in d.get("completed_dates", [])],
        due_date=date.fromisoformat(d["due_date"]) if d.get("due_date") else None,
    )


def goal_to_dict(goal: Goal, include_tasks: bool = True) -> Dict[str, Any]:
    data = {
        "id": goal.id,
        "created_at": goal.created_at.isoformat(),
        "category": goal.category.value,
        "destination": goal.destination,
        "timeline": goal.timeline,
        "user_story": goal.user_story,
        "encouragement": goal.encouragement,
        "current_streak": goal.current_streak,
        "longest_streak": goal.longest_streak,
        "last_action_date": _iso(goal.last_action_date),
        "is_archived": goal.is_archived,
        "archived_at": _iso(goal.archived_at),
    }
    if include_tasks:
        data["tasks"] = [task_to_dict(t) for t in goal.sorted_tasks()]
    return data


def goal_from_dict(d: Dict[str, Any]) -> Goal:
    return Goal(
        id=d["id"],
        created_at=datetime.fromisoformat(d["created_at"]),
        category=GoalCategory.parse(d["category"]),
        destination=d["destination"],
        timeline=d.get("timeline", ""),
        user_story=d.get("user_story", ""),
        encouragement=d.get("encouragement", ""),
        tasks=[task_from_dict(t) for t in d.get("tasks", [])],
        current_streak=d.get("current_streak", 0),
        longest_streak=d.get("longest_streak", 0),
        last_action_date=(
            date.fromisoformat(d["last_action_date"]) if d.get("last_action_date") else None
        ),
        is_archived=d.get("is_archived", False),
        archived_at=datetime.fromisoformat(d["archived_at"]) if d.get("archived_at") else None,
    )


def microhabit_to_dict(habit: Microhabit) -> Dict[str, Any]:
    return {
        "id": habit.id,
        "created_at": habit.created_at.isoformat(),
        "title": habit.title,
        "description": habit.description,
        "goal_id": habit.goal_id,
        "focus_minutes": habit.focus_minutes,
        "kind": habit.kind.value,
        "completed_dates": [d.isoformat() for d in habit.completed_dates],
    }


def microhabit_from_dict(d: Dict[str, Any]) -> Microhabit:
    return Microhabit(
        id=d["id"],
        created_at=datetime.fromisoformat(d["created_at"]),
        title=d["title"],
        description=d.get("description", ""),
        goal_id=d.get("goal_id"),
        focus_minutes=int(d.get("focus_minutes", 5)),
        kind=MicrohabitKind(d.get("kind", MicrohabitKind.CREATE.value)),
        completed_dates=[date.fromisoformat(x) for x in d.get("completed_dates", [])],
    )

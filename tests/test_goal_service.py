import asyncio
import json
from datetime import date, timedelta

import pytest

from leap.clock import Calendar
from leap.config_manager import SystemConfig
from leap.exceptions import EntitlementError, NotFoundError, ValidationError
from leap.goal_service import GoalService, free_tier_entitlement
from leap.itinerary import ItineraryGenerator
from leap.llm_adapter import BaseLLMAdapter, LLMResponse, OfflineAdapter
from leap.models import Challenge, Itinerary, MicrohabitKind
from leap.persistence import InMemoryGateway, InMemoryKeyValueStore
from leap.progression import ProgressionEngine
from leap.streak import StreakTracker

TODAY = date(2026, 3, 10)


def _service(can_create_goal=None, today=TODAY, adapter=None):
    calendar = Calendar.fixed(today)
    engine = ProgressionEngine(InMemoryGateway(), StreakTracker(InMemoryKeyValueStore(), calendar), calendar)
    generator = ItineraryGenerator(adapter or OfflineAdapter(), SystemConfig())
    return GoalService(engine, generator, can_create_goal=can_create_goal, cfg=SystemConfig())


def test_plan_goal_uses_fallback_when_offline():
    async def scenario():
        service = _service()
        goal = await service.plan_goal("Travel", " Iceland ", "June 2026", "First solo trip")

        assert goal.destination == "Iceland"
        assert goal.encouragement == "Your flight to Iceland is boarding."
        assert len(goal.tasks) == 7
        tasks = goal.sorted_tasks()
        assert tasks[0].title == "Confirm your dates"
        assert [t.is_unlocked for t in tasks] == [True] + [False] * 6
        service.engine.check_invariants(goal)

    asyncio.run(scenario())


def test_plan_goal_saves_previewed_itinerary():
    async def scenario():
        service = _service()
        itinerary = Itinerary(
            challenges=[
                Challenge(id="challenge_1", title="Open a savings account", description="",
                          estimated_time="15 min", unlocked=True),
                Challenge(id="challenge_2", title="Automate $10/week", description="",
                          estimated_time="10 min"),
            ],
            encouragement="Your path to financial freedom is mapped.",
            source="remote",
        )

        goal = await service.plan_goal("finance", "Emergency fund", itinerary=itinerary)

        assert [t.title for t in goal.sorted_tasks()] == ["Open a savings account", "Automate $10/week"]
        assert goal.encouragement == itinerary.encouragement

    asyncio.run(scenario())


@pytest.mark.parametrize("category,destination", [("travel", "  "), ("space", "Mars")])
def test_plan_goal_rejects_bad_input(category, destination):
    async def scenario():
        service = _service()
        with pytest.raises(ValidationError):
            await service.plan_goal(category, destination)
        with pytest.raises(ValidationError):
            await service.preview_itinerary(category, destination)

    asyncio.run(scenario())


def test_free_tier_allows_one_active_goal():
    async def scenario():
        service = _service(can_create_goal=free_tier_entitlement(1))
        first = await service.plan_goal("travel", "Iceland")

        with pytest.raises(EntitlementError):
            await service.plan_goal("career", "Staff engineer")
        assert len(await service.engine.list_goals()) == 1

        # 归档后释放名额
        await service.engine.archive_goal(first.id)
        await service.plan_goal("career", "Staff engineer")

    asyncio.run(scenario())


def test_pro_users_are_unlimited():
    async def scenario():
        service = _service(can_create_goal=free_tier_entitlement(1, is_pro=lambda: True))
        for destination in ("Iceland", "Japan", "Peru"):
            await service.plan_goal("travel", destination)
        assert len(await service.engine.list_goals()) == 3

    asyncio.run(scenario())


def test_goal_summary_and_dashboard():
    async def scenario():
        service = _service()
        goal = await service.plan_goal("growth", "Confidence")
        first = goal.sorted_tasks()[0]

        await service.complete_challenge(goal.id, first.id)
        goal = await service.engine.get_goal(goal.id)
        summary = service.goal_summary(goal)

        assert summary["id"] == goal.id
        assert summary["category"] == "growth"
        assert summary["progress"] == round(100 / 7, 2)
        assert summary["is_complete"] is False
        assert summary["effective_streak"] == 1
        assert summary["completed_today"] == [first.id]
        assert summary["current_challenge"]["order"] == 1
        assert [t["is_completed"] for t in summary["tasks"]] == [True] + [False] * 6

        dashboard = await service.dashboard()
        assert dashboard["date"] == "2026-03-10"
        assert [g["id"] for g in dashboard["goals"]] == [goal.id]
        assert dashboard["streak"] == {
            "streak": 1,
            "next_milestone": 2,
            "days_to_next_milestone": 1,
            "message": "You crushed it today!",
            "dates": ["2026-03-10"],
        }

        # 两天没有打卡后，展示的连胜归零
        later = TODAY + timedelta(days=3)
        assert service.goal_summary(goal, later)["effective_streak"] == 0
        lapsed = await service.streak_summary(later)
        assert lapsed["streak"] == 0
        assert lapsed["dates"] == []

    asyncio.run(scenario())


def test_uncomplete_challenge_keeps_next_unlocked():
    async def scenario():
        service = _service()
        goal = await service.plan_goal("relationship", "Partnership")
        first, second = goal.sorted_tasks()[:2]

        await service.complete_challenge(goal.id, first.id)
        await service.uncomplete_challenge(goal.id, first.id)

        goal = await service.engine.get_goal(goal.id)
        assert not goal.find_task(first.id).is_completed
        assert goal.find_task(second.id).is_unlocked

    asyncio.run(scenario())


def test_from_config_persists_goals_and_global_streak(tmp_path):
    calendar = Calendar.fixed(TODAY)

    async def first_session():
        service = GoalService.from_config(tmp_path, adapter=OfflineAdapter(), calendar=calendar)
        goal = await service.plan_goal("travel", "Iceland")
        await service.complete_challenge(goal.id, goal.sorted_tasks()[0].id)
        return goal.id

    goal_id = asyncio.run(first_session())

    async def second_session():
        service = GoalService.from_config(tmp_path, adapter=OfflineAdapter(), calendar=calendar)
        goal = await service.engine.get_goal(goal_id)
        return goal, await service.streak_summary()

    goal, streak = asyncio.run(second_session())

    assert goal.progress == pytest.approx(100 / 7)
    assert streak["streak"] == 1
    settings = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert settings == {"leap_streak": 1, "leap_last_completion_date": "2026-03-10"}


class BlankTitleAdapter(BaseLLMAdapter):
    provider = "scripted"

    def __init__(self):
        super().__init__({"model_name": "scripted"})

    async def generate(self, prompt, max_tokens=1500):
        payload = {"challenges": [{"title": "  ", "description": "", "estimatedTime": "5 min"}],
                   "boardingPass": "go"}
        return LLMResponse(content=json.dumps(payload), model=self.model_name)


def test_plan_goal_falls_back_on_blank_remote_titles():
    async def scenario():
        service = _service(adapter=BlankTitleAdapter())
        goal = await service.plan_goal("travel", "Iceland", "June 2026")

        assert len(goal.tasks) == 7
        assert goal.sorted_tasks()[0].title == "Confirm your dates"
        assert goal.encouragement == "Your flight to Iceland is boarding."

    asyncio.run(scenario())


def test_streak_summary_lists_streak_days():
    async def scenario():
        yesterday = TODAY - timedelta(days=1)
        service = _service()
        goal = await service.plan_goal("career", "Staff engineer")
        first, second = goal.sorted_tasks()[:2]

        await service.complete_challenge(goal.id, first.id, yesterday)
        await service.complete_challenge(goal.id, second.id, TODAY)

        summary = await service.streak_summary()
        assert summary["streak"] == 2
        assert summary["dates"] == ["2026-03-10", "2026-03-09"]

        # 昨天打过卡，今天还没打：连胜仍然有效，日期停在昨天
        tomorrow = await service.streak_summary(TODAY + timedelta(days=1))
        assert tomorrow["dates"] == ["2026-03-10", "2026-03-09"]

    asyncio.run(scenario())


def test_microhabits_lifecycle():
    async def scenario():
        service = _service()
        goal = await service.plan_goal("growth", "Confidence")

        first = await service.add_microhabit("  Drink water ", "Stay sharp", focus_minutes=2)
        second = await service.add_microhabit("No phone in bed", goal_id=goal.id, kind="replace")

        habits = {h.id: h for h in await service.list_microhabits()}
        assert set(habits) == {first.id, second.id}
        assert habits[first.id].title == "Drink water"
        assert habits[first.id].focus_minutes == 2
        assert habits[second.id].kind is MicrohabitKind.REPLACE
        assert habits[second.id].goal_id == goal.id

        assert await service.complete_microhabit(first.id) is True
        assert await service.complete_microhabit(first.id) is False
        assert await service.complete_microhabit(first.id, TODAY - timedelta(days=1)) is True

        habits = await service.list_microhabits()
        stored = next(h for h in habits if h.id == first.id)
        assert stored.completed_dates == [TODAY, TODAY - timedelta(days=1)]
        assert service.microhabit_summary(stored)["completed_today"] is True

        await service.delete_microhabit(second.id)
        assert [h.id for h in await service.list_microhabits()] == [first.id]

    asyncio.run(scenario())


def test_microhabit_errors():
    async def scenario():
        service = _service()

        with pytest.raises(ValidationError):
            await service.add_microhabit("   ")
        with pytest.raises(ValidationError):
            await service.add_microhabit("Stretch", focus_minutes=0)
        with pytest.raises(ValidationError):
            await service.add_microhabit("Stretch", kind="maybe")
        with pytest.raises(NotFoundError):
            await service.add_microhabit("Stretch", goal_id="missing")
        with pytest.raises(NotFoundError):
            await service.delete_microhabit("missing")
        with pytest.raises(NotFoundError):
            await service.complete_microhabit("missing")

        assert await service.list_microhabits() == []

    asyncio.run(scenario())

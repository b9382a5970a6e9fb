import asyncio
import json
from datetime import date, datetime, timezone

import pytest

from leap.exceptions import InvalidStateError, NotFoundError, StorageError
from leap.models import DailyTask, Goal, GoalCategory, Microhabit
from leap.persistence import (
    GoalFilter,
    InMemoryGateway,
    InMemoryKeyValueStore,
    JsonFileGateway,
    JsonKeyValueStore,
)

DAY = date(2026, 3, 10)


def _goal(destination="Iceland", category=GoalCategory.TRAVEL, created_at=None, n=3):
    goal = Goal(category=category, destination=destination, encouragement="Boarding now.")
    if created_at is not None:
        goal.created_at = created_at
    tasks = [
        DailyTask(goal_id=goal.id, title=f"Step {i}", description="", duration="5 min",
                  order=i, is_unlocked=i == 0)
        for i in range(n)
    ]
    return goal, tasks


def test_json_gateway_round_trip(tmp_path):
    path = tmp_path / "goals.json"

    async def write():
        gateway = JsonFileGateway(path)
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)
        async with gateway.transaction():
            await gateway.append_task_completion(tasks[0].id, DAY)
            await gateway.set_task_unlocked(tasks[1].id, True)
            await gateway.update_goal_streak(goal.id, 1, DAY)
        return goal, tasks

    goal, tasks = asyncio.run(write())

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["schema_version"] == 1
    assert payload["goals"][0]["tasks"][0]["completed_dates"] == ["2026-03-10"]

    async def read():
        return await JsonFileGateway(path).fetch_goal_by_id(goal.id)

    loaded = asyncio.run(read())
    assert loaded.destination == "Iceland"
    assert loaded.category == GoalCategory.TRAVEL
    assert loaded.encouragement == "Boarding now."
    assert loaded.current_streak == 1
    assert loaded.longest_streak == 1
    assert loaded.last_action_date == DAY
    assert [t.id for t in loaded.sorted_tasks()] == [t.id for t in tasks]
    assert [t.is_unlocked for t in loaded.sorted_tasks()] == [True, True, False]
    assert loaded.find_task(tasks[0].id).completed_dates == [DAY]


def test_failed_transaction_writes_nothing(tmp_path):
    path = tmp_path / "goals.json"

    async def scenario():
        gateway = JsonFileGateway(path)
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)
        before = path.read_text(encoding="utf-8")

        with pytest.raises(RuntimeError):
            async with gateway.transaction():
                await gateway.append_task_completion(tasks[0].id, DAY)
                await gateway.set_task_unlocked(tasks[1].id, True)
                raise RuntimeError("boom")

        stored = await gateway.fetch_goal_by_id(goal.id)
        assert not stored.find_task(tasks[0].id).is_completed
        assert not stored.find_task(tasks[1].id).is_unlocked
        assert path.read_text(encoding="utf-8") == before

    asyncio.run(scenario())


class BrokenDiskGateway(JsonFileGateway):
    def _commit(self):
        raise StorageError("disk full", path=str(self.path))


def test_commit_failure_rolls_back_memory(tmp_path):
    async def scenario():
        gateway = BrokenDiskGateway(tmp_path / "goals.json")
        goal, tasks = _goal()

        with pytest.raises(StorageError):
            await gateway.create_goal_with_tasks(goal, tasks)

        assert await gateway.fetch_goal_by_id(goal.id) is None
        assert await gateway.fetch_all_goals() == []
        assert not (tmp_path / "goals.json").exists()

    asyncio.run(scenario())


def test_corrupted_goals_file_raises_storage_error(tmp_path):
    path = tmp_path / "goals.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError):
        JsonFileGateway(path)


def test_empty_goals_file_loads_as_empty(tmp_path):
    path = tmp_path / "goals.json"
    path.write_text("", encoding="utf-8")

    gateway = JsonFileGateway(path)

    assert asyncio.run(gateway.fetch_all_goals()) == []


def test_append_completion_is_idempotent_per_day():
    async def scenario():
        gateway = InMemoryGateway()
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)

        assert await gateway.append_task_completion(tasks[0].id, DAY) is True
        assert await gateway.append_task_completion(tasks[0].id, DAY) is False
        stored = await gateway.fetch_goal_by_id(goal.id)
        assert stored.find_task(tasks[0].id).completed_dates == [DAY]

        await gateway.remove_task_completion(tasks[0].id, DAY)
        stored = await gateway.fetch_goal_by_id(goal.id)
        assert stored.find_task(tasks[0].id).completed_dates == []

    asyncio.run(scenario())


def test_unlock_is_one_way():
    async def scenario():
        gateway = InMemoryGateway()
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)

        with pytest.raises(InvalidStateError):
            await gateway.set_task_unlocked(tasks[0].id, False)
        # 未解锁的任务可以保持锁定
        await gateway.set_task_unlocked(tasks[2].id, False)

        stored = await gateway.fetch_goal_by_id(goal.id)
        assert stored.find_task(tasks[0].id).is_unlocked

    asyncio.run(scenario())


def test_unknown_ids_raise_not_found():
    async def scenario():
        gateway = InMemoryGateway()
        with pytest.raises(NotFoundError):
            await gateway.append_task_completion("nope", DAY)
        with pytest.raises(NotFoundError):
            await gateway.archive_goal("nope")
        with pytest.raises(NotFoundError):
            await gateway.update_goal_streak("nope", 1, DAY)
        assert await gateway.fetch_goal_by_id("nope") is None

    asyncio.run(scenario())


def test_fetch_all_filters_and_sorts_newest_first():
    async def scenario():
        gateway = InMemoryGateway()
        older, older_tasks = _goal("Iceland", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        newer, newer_tasks = _goal("Promotion", GoalCategory.CAREER,
                                   created_at=datetime(2026, 2, 1, tzinfo=timezone.utc))
        await gateway.create_goal_with_tasks(older, older_tasks)
        await gateway.create_goal_with_tasks(newer, newer_tasks)

        assert [g.id for g in await gateway.fetch_all_goals()] == [newer.id, older.id]
        by_category = await gateway.fetch_all_goals(GoalFilter(category=GoalCategory.TRAVEL))
        assert [g.id for g in by_category] == [older.id]

        await gateway.archive_goal(older.id)
        assert [g.id for g in await gateway.fetch_all_goals()] == [newer.id]
        archived = await gateway.fetch_all_goals(GoalFilter(archived=True))
        assert [g.id for g in archived] == [older.id]
        assert archived[0].archived_at is not None
        assert len(await gateway.fetch_all_goals(GoalFilter(archived=None))) == 2

    asyncio.run(scenario())


def test_reads_are_detached_copies():
    async def scenario():
        gateway = InMemoryGateway()
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)

        fetched = await gateway.fetch_goal_by_id(goal.id)
        fetched.tasks[0].completed_dates.append(DAY)
        fetched.destination = "Elsewhere"

        stored = await gateway.fetch_goal_by_id(goal.id)
        assert stored.destination == "Iceland"
        assert not stored.tasks[0].is_completed

    asyncio.run(scenario())


def test_delete_cascades_tasks():
    async def scenario():
        gateway = InMemoryGateway()
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)

        await gateway.delete_goal(goal.id)

        assert await gateway.fetch_goal_by_id(goal.id) is None
        with pytest.raises(NotFoundError):
            await gateway.append_task_completion(tasks[0].id, DAY)

    asyncio.run(scenario())


def test_update_goal_streak_raises_longest_only():
    async def scenario():
        gateway = InMemoryGateway()
        goal, tasks = _goal()
        await gateway.create_goal_with_tasks(goal, tasks)

        await gateway.update_goal_streak(goal.id, 4, DAY)
        await gateway.update_goal_streak(goal.id, 1, DAY)

        stored = await gateway.fetch_goal_by_id(goal.id)
        assert stored.current_streak == 1
        assert stored.longest_streak == 4

    asyncio.run(scenario())


def test_json_kv_store_persists(tmp_path):
    path = tmp_path / "settings.json"
    store = JsonKeyValueStore(path)
    assert store.get("leap_streak", 0) == 0

    store.set("leap_streak", 3)
    store.set("leap_last_completion_date", "2026-03-10")

    reloaded = JsonKeyValueStore(path)
    assert reloaded.get("leap_streak") == 3
    assert reloaded.get("leap_last_completion_date") == "2026-03-10"
    assert not (tmp_path / "settings.json.tmp").exists()


def test_json_kv_store_corrupted(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[[[", encoding="utf-8")

    with pytest.raises(StorageError):
        JsonKeyValueStore(path)


def test_kv_set_many_writes_every_key(tmp_path):
    path = tmp_path / "settings.json"
    store = JsonKeyValueStore(path)

    store.set_many({"leap_streak": 2, "leap_last_completion_date": "2026-03-10"})

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "leap_streak": 2,
        "leap_last_completion_date": "2026-03-10",
    }
    memory = InMemoryKeyValueStore({"leap_streak": 1})
    memory.set_many({"leap_streak": 5, "other": None})
    assert memory.get("leap_streak") == 5
    assert memory.get("other", "missing") is None


def test_kv_set_many_failure_keeps_old_values(tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("", encoding="utf-8")
    # 父路径是文件，写入必然失败
    store = JsonKeyValueStore(blocker / "settings.json")

    with pytest.raises(StorageError):
        store.set_many({"leap_streak": 2, "leap_last_completion_date": "2026-03-10"})

    assert store.get("leap_streak") is None
    assert store.get("leap_last_completion_date") is None


def _habit(title, created_at):
    habit = Microhabit(title=title)
    habit.created_at = created_at
    return habit


def test_microhabits_newest_first_and_delete():
    async def scenario():
        gateway = InMemoryGateway()
        older = _habit("Drink water", datetime(2026, 1, 1, tzinfo=timezone.utc))
        newer = _habit("Stretch", datetime(2026, 2, 1, tzinfo=timezone.utc))
        await gateway.save_microhabit(older)
        await gateway.save_microhabit(newer)

        assert [h.id for h in await gateway.fetch_microhabits()] == [newer.id, older.id]

        await gateway.delete_microhabit(older.id)
        assert [h.id for h in await gateway.fetch_microhabits()] == [newer.id]
        with pytest.raises(NotFoundError):
            await gateway.delete_microhabit(older.id)

    asyncio.run(scenario())


def test_microhabit_completion_is_idempotent_per_day():
    async def scenario():
        gateway = InMemoryGateway()
        habit = Microhabit(title="Read one page")
        await gateway.save_microhabit(habit)

        assert await gateway.add_microhabit_completion(habit.id, DAY) is True
        assert await gateway.add_microhabit_completion(habit.id, DAY) is False
        with pytest.raises(NotFoundError):
            await gateway.add_microhabit_completion("nope", DAY)

        stored = (await gateway.fetch_microhabits())[0]
        assert stored.completed_dates == [DAY]

    asyncio.run(scenario())


def test_json_gateway_persists_microhabits(tmp_path):
    path = tmp_path / "goals.json"

    async def write():
        gateway = JsonFileGateway(path)
        habit = Microhabit(title="No phone in bed", description="Sleep well", focus_minutes=10)
        await gateway.save_microhabit(habit)
        await gateway.add_microhabit_completion(habit.id, DAY)
        return habit

    habit = asyncio.run(write())

    loaded = asyncio.run(JsonFileGateway(path).fetch_microhabits())
    assert [h.id for h in loaded] == [habit.id]
    assert loaded[0].title == "No phone in bed"
    assert loaded[0].focus_minutes == 10
    assert loaded[0].completed_dates == [DAY]
    assert loaded[0].created_at == habit.created_at


def test_goals_file_without_microhabits_still_loads(tmp_path):
    path = tmp_path / "goals.json"
    path.write_text(json.dumps({"schema_version": 1, "goals": []}), encoding="utf-8")

    assert asyncio.run(JsonFileGateway(path).fetch_microhabits()) == []


def test_failed_transaction_restores_microhabits():
    async def scenario():
        gateway = InMemoryGateway()
        habit = Microhabit(title="Meditate")
        await gateway.save_microhabit(habit)

        with pytest.raises(RuntimeError):
            async with gateway.transaction():
                await gateway.add_microhabit_completion(habit.id, DAY)
                raise RuntimeError("boom")

        assert (await gateway.fetch_microhabits())[0].completed_dates == []

    asyncio.run(scenario())

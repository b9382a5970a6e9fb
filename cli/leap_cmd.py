"""
CLI 命令：leap
Plan goals and check off challenges from the terminal.
"""
import asyncio
import sys
from datetime import date
from functools import wraps
from pathlib import Path
from typing import Optional

import click

# 添加项目根目录到 sys.path，以便导入 leap 模块
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from leap.exceptions import LeapError
from leap.goal_service import GoalService
from leap.llm_adapter import OfflineAdapter
from leap.models import GoalCategory


def _run(coro_fn):
    """Run an async command body and report LeapError as a user message."""
    @wraps(coro_fn)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        try:
            return asyncio.run(coro_fn(*args, **kwargs))
        except LeapError as e:
            click.echo(f"❌ {e.get_user_message()}", err=True)
            ctx.exit(1)
    return wrapper


def _service() -> GoalService:
    return click.get_current_context().obj["service_factory"]()


def _print_goal(summary: dict) -> None:
    click.echo(f"✈️  {summary['destination']} [{summary['category']}]  {summary['id']}")
    if summary.get("timeline"):
        click.echo(f"   Arrival: {summary['timeline']}")
    click.echo(f"   Progress: {summary['progress']:.0f}%   Streak: {summary['effective_streak']} day(s)")
    if summary.get("encouragement"):
        click.echo(f"   🎫 {summary['encouragement']}")
    for task in summary["tasks"]:
        if task["is_completed"]:
            mark = "✅"
        elif task["is_unlocked"]:
            mark = "👉"
        else:
            mark = "🔒"
        click.echo(f"   {mark} {task['order'] + 1}. {task['title']} ({task['duration']})  {task['id']}")


@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), envvar="LEAP_DATA_DIR",
              default=None, help="Directory holding goals.json and settings.json")
@click.option("--offline", is_flag=True, help="Skip the remote model and use built-in itineraries")
@click.pass_context
def leap(ctx, data_dir: Optional[Path], offline: bool):
    """Leap: turn a destination into daily challenges."""
    def factory() -> GoalService:
        return GoalService.from_config(data_dir=data_dir, adapter=OfflineAdapter() if offline else None)

    ctx.ensure_object(dict)
    ctx.obj.setdefault("service_factory", factory)


@leap.command()
@click.argument("category", type=click.Choice([c.value for c in GoalCategory], case_sensitive=False))
@click.argument("destination")
@click.option("--timeline", default="", help='e.g. "June 2026"')
@click.option("--story", "user_story", default="", help="Why this destination matters to you")
@_run
async def plan(category: str, destination: str, timeline: str, user_story: str):
    """生成行程并创建目标"""
    service = _service()
    click.echo("📝 Booking your itinerary...")
    goal = await service.plan_goal(category, destination, timeline, user_story)
    _print_goal(service.goal_summary(goal))


@leap.command(name="list")
@click.option("--archived", is_flag=True, help="Show archived goals instead")
@_run
async def list_goals(archived: bool):
    """列出目标"""
    service = _service()
    if archived:
        goals = await service.engine.list_archived_goals()
    else:
        goals = await service.engine.list_goals()
    if not goals:
        click.echo("ℹ️ No goals yet. Try: leap plan travel Iceland")
        return
    for goal in goals:
        _print_goal(service.goal_summary(goal))


@leap.command()
@click.argument("goal_id")
@_run
async def show(goal_id: str):
    """显示单个目标"""
    service = _service()
    goal = await service.engine.get_goal(goal_id)
    _print_goal(service.goal_summary(goal))


@leap.command()
@click.argument("goal_id")
@click.argument("task_id", required=False)
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@_run
async def complete(goal_id: str, task_id: Optional[str], on_date):
    """完成当前挑战（或指定任务）"""
    service = _service()
    if task_id is None:
        goal = await service.engine.get_goal(goal_id)
        current = service.engine.current_challenge(goal)
        if current is None:
            click.echo("🏁 Every challenge is already complete.")
            return
        task_id = current.id

    day: Optional[date] = on_date.date() if on_date else None
    result = await service.complete_challenge(goal_id, task_id, day)
    if not result.newly_recorded:
        click.echo("ℹ️ Already checked off for that day.")
    else:
        click.echo(f"✅ Progress {result.progress:.0f}%  🔥 {result.global_streak} day streak")
    if result.is_goal_complete:
        click.echo("🛬 You've arrived. Archive it with: leap archive " + goal_id)


@leap.command()
@click.argument("goal_id")
@click.argument("task_id")
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@_run
async def uncomplete(goal_id: str, task_id: str, on_date):
    """撤销某天的完成记录（不会重新锁定后续任务）"""
    service = _service()
    await service.uncomplete_challenge(goal_id, task_id, on_date.date() if on_date else None)
    click.echo("↩️ Completion removed.")


@leap.command()
@click.argument("goal_id")
@_run
async def archive(goal_id: str):
    """归档目标"""
    await _service().engine.archive_goal(goal_id)
    click.echo("🗄️ Archived.")


@leap.command()
@click.argument("goal_id")
@_run
async def unarchive(goal_id: str):
    """取消归档"""
    await _service().engine.unarchive_goal(goal_id)
    click.echo("📤 Restored.")


@leap.command()
@click.argument("goal_id")
@click.confirmation_option(prompt="⚠️ Delete this goal and all of its challenges?")
@_run
async def delete(goal_id: str):
    """删除目标及其全部任务"""
    await _service().engine.delete_goal(goal_id)
    click.echo("🗑️ Deleted.")


@leap.command()
@_run
async def streak():
    """显示全局连续打卡天数"""
    summary = await _service().streak_summary()
    click.echo(f"🔥 {summary['streak']} day streak")
    click.echo(f"   Next milestone: {summary['next_milestone']} days "
               f"({summary['days_to_next_milestone']} to go)")
    if summary["message"]:
        click.echo(f"   {summary['message']}")


@leap.group()
def habit():
    """每日小习惯"""


@habit.command(name="add")
@click.argument("title")
@click.option("--description", default="", help="The grander vision behind the habit")
@click.option("--goal", "goal_id", default=None, help="Link the habit to a goal")
@click.option("--minutes", "focus_minutes", type=int, default=5, show_default=True)
@click.option("--replace", "kind", flag_value="replace", help="Replacing an old habit")
@click.option("--create", "kind", flag_value="create", default=True, help="Building a new habit")
@_run
async def habit_add(title: str, description: str, goal_id: Optional[str], focus_minutes: int, kind: str):
    """添加小习惯"""
    created = await _service().add_microhabit(title, description, goal_id, focus_minutes, kind)
    click.echo(f"🌱 {created.title} ({created.focus_minutes} min)  {created.id}")


@habit.command(name="list")
@_run
async def habit_list():
    """列出小习惯（最新在前）"""
    service = _service()
    habits = await service.list_microhabits()
    if not habits:
        click.echo("ℹ️ No microhabits yet. Try: leap habit add \"Drink water\"")
        return
    for item in habits:
        summary = service.microhabit_summary(item)
        mark = "✅" if summary["completed_today"] else "⬜"
        click.echo(f"{mark} {summary['title']} [{summary['kind']}] {summary['focus_minutes']} min  {summary['id']}")


@habit.command(name="done")
@click.argument("habit_id")
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@_run
async def habit_done(habit_id: str, on_date):
    """记录今天完成"""
    recorded = await _service().complete_microhabit(habit_id, on_date.date() if on_date else None)
    click.echo("✅ Habit checked off." if recorded else "ℹ️ Already checked off for that day.")


@habit.command(name="delete")
@click.argument("habit_id")
@_run
async def habit_delete(habit_id: str):
    """删除小习惯"""
    await _service().delete_microhabit(habit_id)
    click.echo("🗑️ Deleted.")


if __name__ == "__main__":
    leap()

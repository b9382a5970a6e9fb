import json

from click.testing import CliRunner

from cli.leap_cmd import leap


def _invoke(tmp_path, *args, **kwargs):
    runner = CliRunner()
    return runner.invoke(leap, ["--data-dir", str(tmp_path), "--offline", *args], **kwargs)


def _goal_ids(tmp_path):
    payload = json.loads((tmp_path / "goals.json").read_text(encoding="utf-8"))
    return [g["id"] for g in payload["goals"]]


def test_plan_and_list(tmp_path):
    result = _invoke(tmp_path, "plan", "travel", "Iceland", "--timeline", "June 2026")

    assert result.exit_code == 0, result.output
    assert "Iceland [travel]" in result.output
    assert "Arrival: June 2026" in result.output
    assert "👉 1. Confirm your dates" in result.output
    assert "🔒 7. Tell someone" in result.output

    listed = _invoke(tmp_path, "list")
    assert listed.exit_code == 0
    assert "Iceland" in listed.output


def test_list_when_empty(tmp_path):
    result = _invoke(tmp_path, "list")

    assert result.exit_code == 0
    assert "No goals yet" in result.output


def test_complete_current_challenge_and_streak(tmp_path):
    _invoke(tmp_path, "plan", "career", "Staff engineer")
    goal_id = _goal_ids(tmp_path)[0]

    done = _invoke(tmp_path, "complete", goal_id)
    assert done.exit_code == 0, done.output
    assert "1 day streak" in done.output

    shown = _invoke(tmp_path, "show", goal_id)
    assert "✅ 1. Update your headline" in shown.output
    assert "👉 2." in shown.output

    streak = _invoke(tmp_path, "streak")
    assert streak.exit_code == 0
    assert "day streak" in streak.output


def test_locked_task_reports_error(tmp_path):
    _invoke(tmp_path, "plan", "growth", "Confidence")
    goal_id = _goal_ids(tmp_path)[0]
    payload = json.loads((tmp_path / "goals.json").read_text(encoding="utf-8"))
    locked = payload["goals"][0]["tasks"][3]["id"]

    result = _invoke(tmp_path, "complete", goal_id, locked)

    assert result.exit_code == 1
    assert "locked" in result.output


def test_unknown_goal(tmp_path):
    result = _invoke(tmp_path, "show", "nope")

    assert result.exit_code == 1
    assert "Goal not found" in result.output


def test_archive_unarchive_delete(tmp_path):
    _invoke(tmp_path, "plan", "finance", "Freedom fund")
    goal_id = _goal_ids(tmp_path)[0]

    assert "Archived" in _invoke(tmp_path, "archive", goal_id).output
    assert "No goals yet" in _invoke(tmp_path, "list").output
    assert "Freedom fund" in _invoke(tmp_path, "list", "--archived").output

    assert "Restored" in _invoke(tmp_path, "unarchive", goal_id).output

    deleted = _invoke(tmp_path, "delete", goal_id, "--yes")
    assert deleted.exit_code == 0
    assert _goal_ids(tmp_path) == []


def test_delete_requires_confirmation(tmp_path):
    _invoke(tmp_path, "plan", "relationship", "Partnership")
    goal_id = _goal_ids(tmp_path)[0]

    result = _invoke(tmp_path, "delete", goal_id, input="n\n")

    assert result.exit_code == 1
    assert _goal_ids(tmp_path) == [goal_id]


def test_complete_on_date_then_uncomplete(tmp_path):
    _invoke(tmp_path, "plan", "travel", "Lisbon")
    payload = json.loads((tmp_path / "goals.json").read_text(encoding="utf-8"))
    goal_id = payload["goals"][0]["id"]
    first = payload["goals"][0]["tasks"][0]["id"]

    assert _invoke(tmp_path, "complete", goal_id, first, "--date", "2026-03-10").exit_code == 0
    undone = _invoke(tmp_path, "uncomplete", goal_id, first, "--date", "2026-03-10")
    assert undone.exit_code == 0
    assert "Completion removed" in undone.output

    tasks = json.loads((tmp_path / "goals.json").read_text(encoding="utf-8"))["goals"][0]["tasks"]
    assert tasks[0]["completed_dates"] == []
    assert tasks[1]["is_unlocked"] is True


def test_habit_add_done_list_delete(tmp_path):
    added = _invoke(tmp_path, "habit", "add", "Drink water", "--minutes", "2")
    assert added.exit_code == 0, added.output
    habit_id = json.loads((tmp_path / "goals.json").read_text(encoding="utf-8"))["microhabits"][0]["id"]

    assert "Habit checked off" in _invoke(tmp_path, "habit", "done", habit_id, "--date", "2026-03-10").output
    again = _invoke(tmp_path, "habit", "done", habit_id, "--date", "2026-03-10")
    assert "Already checked off" in again.output

    listed = _invoke(tmp_path, "habit", "list")
    assert "Drink water [create] 2 min" in listed.output

    assert _invoke(tmp_path, "habit", "delete", habit_id).exit_code == 0
    assert "No microhabits yet" in _invoke(tmp_path, "habit", "list").output
    assert _invoke(tmp_path, "habit", "delete", habit_id).exit_code == 1

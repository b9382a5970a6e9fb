"""
JsonFileGateway: durable Persistence Gateway backed by one JSON file.
Path: data/goals.json (override with LEAP_DATA_DIR or the ``path`` argument).

Every committed transaction rewrites the whole file through a temp file and
``os.replace``, so readers never observe a half-written goal.
"""
import json
from pathlib import Path
from typing import Optional

from leap.exceptions import StorageError
from leap.logger import get_logger, log_corruption
from leap.models import goal_from_dict, goal_to_dict, microhabit_from_dict, microhabit_to_dict
from leap.paths import GOALS_PATH
from leap.persistence.kv import atomic_write_json
from leap.persistence.memory import InMemoryGateway

logger = get_logger("persistence")

SCHEMA_VERSION = 1


class JsonFileGateway(InMemoryGateway):
    """In-memory gateway with JSON persistence at GOALS_PATH."""

    def __init__(self, path: Optional[Path] = None):
        super().__init__()
        self._path = path if path is not None else GOALS_PATH
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read goals: {e}", path=str(self._path))

        if not raw.strip():
            return
        try:
            data = json.loads(raw)
            items = data.get("goals", []) if isinstance(data, dict) else data
            goals = [goal_from_dict(d) for d in items]
            # 旧文件没有 microhabits 字段
            habit_items = data.get("microhabits", []) if isinstance(data, dict) else []
            habits = [microhabit_from_dict(d) for d in habit_items]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log_corruption(str(self._path), raw, str(e))
            raise StorageError("Goals file is corrupted", path=str(self._path))

        self._goals = {g.id: g for g in goals}
        self._microhabits = {h.id: h for h in habits}
        logger.info(
            f"Loaded {len(self._goals)} goals and {len(self._microhabits)} microhabits from {self._path}"
        )

    def _commit(self) -> None:
        payload = {
            "schema_version": SCHEMA_VERSION,
            "goals": [goal_to_dict(g) for g in self._goals.values()],
            "microhabits": [microhabit_to_dict(h) for h in self._microhabits.values()],
        }
        atomic_write_json(self._path, payload)

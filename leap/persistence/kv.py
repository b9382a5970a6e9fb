"""
Lightweight key-value settings store (process-wide streak counter lives here).
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from leap.exceptions import StorageError
from leap.logger import log_corruption


class KeyValueStore(Protocol):
    """Protocol defining the settings store interface."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def set_many(self, values: Dict[str, Any]) -> None:
        """Write several keys at once; either all of them land or none."""
        ...


class InMemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def set_many(self, values: Dict[str, Any]) -> None:
        self._data.update(values)


class JsonKeyValueStore:
    """Write-through JSON file store."""

    def __init__(self, path: Path):
        self._path = path
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read settings: {e}", path=str(self._path))
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            log_corruption(str(self._path), raw, str(e))
            raise StorageError("Settings file is corrupted", path=str(self._path))
        if isinstance(data, dict):
            self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, Any]) -> None:
        updated = dict(self._data)
        updated.update(values)
        atomic_write_json(self._path, updated)
        self._data = updated


def atomic_write_json(path: Path, payload: Any) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        raise StorageError(f"Failed to write {path.name}: {e}", path=str(path))

# Persistence Gateway: storage interface for goals/tasks/streaks/microhabits plus the key-value store
# used for the process-wide streak counter.

from leap.persistence.gateway import GoalFilter, PersistenceGateway
from leap.persistence.json_store import JsonFileGateway
from leap.persistence.kv import InMemoryKeyValueStore, JsonKeyValueStore, KeyValueStore
from leap.persistence.memory import InMemoryGateway

__all__ = [
    "GoalFilter",
    "PersistenceGateway",
    "InMemoryGateway",
    "JsonFileGateway",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonKeyValueStore",
]

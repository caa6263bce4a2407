"""
GoalOS Record Store

Durable per-entity YAML records under a configured home directory, plus
the JSON index and the advisory store lock.
"""

from goalos.store.lock import StoreLock
from goalos.store.paths import StorePaths
from goalos.store.yaml_store import YamlStore

__all__ = ["StoreLock", "StorePaths", "YamlStore"]

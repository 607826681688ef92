"""
Ephemeral, process-local storage engine.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List

from stageml.storage.base import StorageEngine

logger = logging.getLogger(__name__)


class InMemoryStorageEngine(StorageEngine):
    """
    Storage engine backed by a dict of dicts.

    Values are deep-copied on the way in and out, so a stage mutating the
    parameters it just loaded cannot corrupt what another stage loads later.
    Nothing survives the process.
    """

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Any]] = {}
        self._data_guard = threading.Lock()

    def _get(self, keyspace: str, key: str, default: Any) -> Any:
        space = self._data.get(keyspace)
        if space is None or key not in space:
            return default
        return copy.deepcopy(space[key])

    def _put(self, keyspace: str, key: str, value: Any) -> None:
        logger.debug(f"put {keyspace}/{key}")
        stored = copy.deepcopy(value)
        with self._data_guard:
            self._data.setdefault(keyspace, {})[key] = stored

    def _remove(self, keyspace: str, key: str) -> None:
        space = self._data.get(keyspace)
        if space is None:
            return
        space.pop(key, None)
        if not space:
            with self._data_guard:
                self._data.pop(keyspace, None)

    def _drop_keyspace(self, keyspace: str) -> None:
        logger.debug(f"drop {keyspace}")
        with self._data_guard:
            self._data.pop(keyspace, None)

    def _exists(self, keyspace: str) -> bool:
        return bool(self._data.get(keyspace))

    def _keys(self, keyspace: str) -> List[str]:
        return list(self._data.get(keyspace, {}))

    def keyspaces(self) -> List[str]:
        with self._data_guard:
            return sorted(name for name, space in self._data.items() if space)

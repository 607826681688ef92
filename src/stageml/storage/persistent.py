"""
Disk-backed storage engine.

Layout under the root directory::

    <root>/<keyspace>/<key>.pkl

Keys are loaded lazily on first ``get`` and cached; every ``put`` is flushed
to disk immediately (write to a temporary file, then atomic rename).
"""

from __future__ import annotations

import copy
import logging
import os
import pickle
import re
import shutil
import threading
from pathlib import Path
from typing import Any, Dict, List

from stageml.errors import IOFailure
from stageml.storage.base import StorageEngine

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.=-]*$")
_SUFFIX = ".pkl"


def _check_name(kind: str, name: str) -> str:
    if not isinstance(name, str) or not _SAFE_NAME.match(name) or ".." in name:
        raise ValueError(f"Invalid {kind} name for persistent storage: {name!r}")
    return name


class PersistentStorageEngine(StorageEngine):
    """Storage engine mapping each keyspace to a directory of pickle files."""

    def __init__(self, directory: str | Path):
        super().__init__()
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot create storage directory {self.directory}: {e}") from e
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._cache_guard = threading.Lock()

    def _keyspace_dir(self, keyspace: str) -> Path:
        return self.directory / _check_name("keyspace", keyspace)

    def _key_path(self, keyspace: str, key: str) -> Path:
        return self._keyspace_dir(keyspace) / f"{_check_name('key', key)}{_SUFFIX}"

    def _cached(self, keyspace: str) -> Dict[str, Any]:
        with self._cache_guard:
            return self._cache.setdefault(keyspace, {})

    def _get(self, keyspace: str, key: str, default: Any) -> Any:
        cache = self._cached(keyspace)
        if key not in cache:
            path = self._key_path(keyspace, key)
            if not path.exists():
                return default
            logger.debug(f"loading {path}")
            try:
                with open(path, "rb") as f:
                    cache[key] = pickle.load(f)
            except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError, ValueError) as e:
                raise IOFailure(f"Failed to read {keyspace}/{key}: {e}") from e
        return copy.deepcopy(cache[key])

    def _put(self, keyspace: str, key: str, value: Any) -> None:
        path = self._key_path(keyspace, key)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                pickle.dump(value, f, protocol=pickle.HIGHEST_PROTOCOL)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except (OSError, pickle.PicklingError, TypeError, AttributeError) as e:
            tmp_path.unlink(missing_ok=True)
            raise IOFailure(f"Failed to write {keyspace}/{key}: {e}") from e
        logger.debug(f"flushed {path}")
        self._cached(keyspace)[key] = copy.deepcopy(value)

    def _remove(self, keyspace: str, key: str) -> None:
        path = self._key_path(keyspace, key)
        self._cached(keyspace).pop(key, None)
        try:
            path.unlink(missing_ok=True)
            if path.parent.exists() and not any(path.parent.iterdir()):
                path.parent.rmdir()
        except OSError as e:
            raise IOFailure(f"Failed to remove {keyspace}/{key}: {e}") from e

    def _drop_keyspace(self, keyspace: str) -> None:
        path = self._keyspace_dir(keyspace)
        with self._cache_guard:
            self._cache.pop(keyspace, None)
        if not path.exists():
            return
        logger.debug(f"dropping {path}")
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise IOFailure(f"Failed to drop keyspace {keyspace}: {e}") from e

    def _exists(self, keyspace: str) -> bool:
        return bool(self._keys(keyspace))

    def _keys(self, keyspace: str) -> List[str]:
        path = self._keyspace_dir(keyspace)
        if not path.is_dir():
            return []
        return [p.name[: -len(_SUFFIX)] for p in path.glob(f"*{_SUFFIX}") if not p.name.startswith(".")]

    def keyspaces(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p.name
            for p in self.directory.iterdir()
            if p.is_dir() and any(p.glob(f"*{_SUFFIX}"))
        )

    def close(self) -> None:
        with self._cache_guard:
            self._cache.clear()

    def __repr__(self) -> str:
        return f"PersistentStorageEngine(directory='{self.directory}')"

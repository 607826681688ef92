"""
StorageEngine contract and per-keyspace locking.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List


class StorageEngine(ABC):
    """
    Base class for keyspace-scoped key/value stores.

    Every operation on a keyspace runs under that keyspace's own re-entrant
    lock, so concurrent writers to one keyspace never observe torn state while
    operations on different keyspaces proceed independently.

    Subclasses implement the ``_``-prefixed hooks; the public methods take care
    of locking.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def locked(self, keyspace: str) -> Iterator[None]:
        """
        Hold the lock of a keyspace.

        Callers that need several operations to appear atomic (for example a
        stage writing its parameters and metadata) wrap them in this block.
        """
        with self._locks_guard:
            lock = self._locks.setdefault(keyspace, threading.RLock())
        with lock:
            yield

    def get(self, keyspace: str, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default`` when absent."""
        with self.locked(keyspace):
            return self._get(keyspace, key, default)

    def put(self, keyspace: str, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        with self.locked(keyspace):
            self._put(keyspace, key, value)

    def remove(self, keyspace: str, key: str) -> None:
        """Remove ``key``; absent keys are ignored."""
        with self.locked(keyspace):
            self._remove(keyspace, key)

    def drop_keyspace(self, keyspace: str) -> None:
        """Delete a keyspace and everything in it; absent keyspaces are ignored."""
        with self.locked(keyspace):
            self._drop_keyspace(keyspace)

    def exists(self, keyspace: str) -> bool:
        """Whether anything is stored in ``keyspace``."""
        with self.locked(keyspace):
            return self._exists(keyspace)

    def keys(self, keyspace: str) -> List[str]:
        """Sorted keys stored in ``keyspace``."""
        with self.locked(keyspace):
            return sorted(self._keys(keyspace))

    @abstractmethod
    def keyspaces(self) -> List[str]:
        """Sorted names of all non-empty keyspaces."""

    def close(self) -> None:
        """Release caches and handles. Stored data is not affected."""

    @abstractmethod
    def _get(self, keyspace: str, key: str, default: Any) -> Any:
        ...

    @abstractmethod
    def _put(self, keyspace: str, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def _remove(self, keyspace: str, key: str) -> None:
        ...

    @abstractmethod
    def _drop_keyspace(self, keyspace: str) -> None:
        ...

    @abstractmethod
    def _exists(self, keyspace: str) -> bool:
        ...

    @abstractmethod
    def _keys(self, keyspace: str) -> List[str]:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(keyspaces={len(self.keyspaces())})"

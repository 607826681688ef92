"""
Keyspace-scoped key/value persistence.

Two interchangeable engines implement the StorageEngine contract:
- InMemoryStorageEngine: process-local, nothing survives a restart
- PersistentStorageEngine: one directory per keyspace, one file per key
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from stageml.storage.base import StorageEngine
from stageml.storage.memory import InMemoryStorageEngine
from stageml.storage.persistent import PersistentStorageEngine

if TYPE_CHECKING:
    from stageml.config import Configuration


def create_storage_engine(configuration: "Configuration") -> StorageEngine:
    """Build the storage engine selected by a configuration."""
    from stageml.config import StorageEngineType

    if configuration.storage_engine is StorageEngineType.PERSISTENT:
        return PersistentStorageEngine(configuration.storage_directory)
    return InMemoryStorageEngine()


__all__ = [
    "StorageEngine",
    "InMemoryStorageEngine",
    "PersistentStorageEngine",
    "create_storage_engine",
]

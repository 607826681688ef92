"""
Configuration value object.

YAML layout accepted by ``Configuration.from_yaml``::

    storage_engine: persistent
    storage_directory: ./trained_models
    random_seed: 42
    concurrency_enabled: true
    max_threads_per_task: 4
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml

if TYPE_CHECKING:
    from stageml.rng import RandomContext
    from stageml.storage.base import StorageEngine


class StorageEngineType(str, Enum):
    """Available storage engine implementations."""

    IN_MEMORY = "in-memory"
    PERSISTENT = "persistent"


def _default_max_threads() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class Configuration:
    """Process settings applied to every Stage, Dataframe and Splitter built against it."""

    storage_engine: StorageEngineType = StorageEngineType.IN_MEMORY
    """Which storage engine backs saved stages."""

    storage_directory: Optional[Path] = None
    """Root directory of the persistent engine (ignored for in-memory)."""

    random_seed: Optional[int] = None
    """Seed for splitters and stochastic stages; None draws fresh entropy."""

    concurrency_enabled: bool = True
    """Whether a stage may parallelise work inside its own fit."""

    max_threads_per_task: int = field(default_factory=_default_max_threads)
    """Upper bound on worker threads used by a single fit."""

    _engine: list = field(default_factory=list, init=False, repr=False, compare=False)
    _engine_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        try:
            engine_type = StorageEngineType(self.storage_engine)
        except ValueError:
            available = ", ".join(t.value for t in StorageEngineType)
            raise ValueError(
                f"Unknown storage_engine '{self.storage_engine}'. Available: {available}"
            ) from None
        object.__setattr__(self, "storage_engine", engine_type)

        if self.storage_directory is not None:
            object.__setattr__(self, "storage_directory", Path(self.storage_directory))
        if engine_type is StorageEngineType.PERSISTENT and self.storage_directory is None:
            raise ValueError("storage_directory is required for the persistent storage engine")

        if self.random_seed is not None and not isinstance(self.random_seed, int):
            raise ValueError(f"random_seed must be an int, got {type(self.random_seed).__name__}")
        if int(self.max_threads_per_task) < 1:
            raise ValueError(f"max_threads_per_task must be >= 1, got {self.max_threads_per_task}")
        object.__setattr__(self, "max_threads_per_task", int(self.max_threads_per_task))

    @property
    def storage(self) -> "StorageEngine":
        """
        Storage engine shared by everything built against this configuration.

        Created on first access and reused afterwards.
        """
        with self._engine_lock:
            if not self._engine:
                from stageml.storage import create_storage_engine

                self._engine.append(create_storage_engine(self))
            return self._engine[0]

    def random_context(self) -> "RandomContext":
        """Return a RandomContext for the configured seed."""
        from stageml.rng import RandomContext

        return RandomContext(self.random_seed)

    def close(self) -> None:
        """Close the storage engine if one was created."""
        with self._engine_lock:
            if self._engine:
                self._engine.pop().close()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Configuration":
        """
        Build a Configuration from a plain mapping.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls) if f.init}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Configuration":
        """Load configuration from a YAML file."""
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        return cls.from_dict(data)

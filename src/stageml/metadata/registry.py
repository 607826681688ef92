"""
Registry for stage variants and the model-name naming layer.

Stage classes register themselves under their ``stage_type`` so saved stages
can be rebuilt polymorphically from the type string stored with them, and a
whole pipeline can be rebuilt from its manifest.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Sequence

from stageml.errors import NotFoundError
from stageml.metadata.naming import (
    DATAFRAME_STAGE_TYPE,
    KEYSPACE_SEPARATOR,
    PIPELINE_STAGE_TYPE,
    keyspace_for,
    safe_name,
)

if TYPE_CHECKING:
    from stageml.config import Configuration
    from stageml.pipelines.stage import Stage

logger = logging.getLogger(__name__)

# Global registry mapping stage_type strings to stage classes
STAGE_REGISTRY: Dict[str, type] = {}

_RESERVED = {DATAFRAME_STAGE_TYPE, PIPELINE_STAGE_TYPE}


def register_stage(stage_type: str):
    """
    Decorator registering a stage class under ``stage_type``.

    Usage:
        @register_stage("min_max_scaler")
        class MinMaxScaler(Transformer):
            ...
    """

    def decorator(stage_class: type) -> type:
        if stage_type in _RESERVED or KEYSPACE_SEPARATOR in stage_type:
            raise ValueError(f"Stage type '{stage_type}' is reserved or malformed")
        existing = STAGE_REGISTRY.get(stage_type)
        if existing is not None and existing is not stage_class:
            raise ValueError(
                f"Stage type '{stage_type}' already registered by {existing.__name__}"
            )
        stage_class.stage_type = stage_type
        STAGE_REGISTRY[stage_type] = stage_class
        return stage_class

    return decorator


def get_stage_class(stage_type: str) -> type:
    """
    Get the stage class registered for ``stage_type``.

    Raises:
        ValueError: If no stage is registered for the type.
    """
    import stageml.stages  # noqa: F401  registers the built-in variants

    if stage_type not in STAGE_REGISTRY:
        available = ", ".join(sorted(STAGE_REGISTRY.keys()))
        raise ValueError(
            f"No stage registered for stage_type='{stage_type}'. "
            f"Available types: {available}"
        )
    return STAGE_REGISTRY[stage_type]


class ModelRegistry:
    """
    Naming layer binding a model name to the keyspaces of its stages.

    Deleting one stage never touches its siblings; callers delete each stage
    (or use ``Pipeline.delete``) explicitly.
    """

    MANIFEST_KEY = "stages"

    def __init__(self, configuration: "Configuration"):
        self.configuration = configuration

    @property
    def storage(self):
        return self.configuration.storage

    def saved_stage_types(self, model_name: str) -> List[str]:
        """Stage types with saved state under ``model_name``."""
        prefix = f"{safe_name(model_name)}{KEYSPACE_SEPARATOR}"
        types = [
            name[len(prefix):]
            for name in self.storage.keyspaces()
            if name.startswith(prefix)
        ]
        return sorted(t for t in types if t not in _RESERVED)

    def load_stage(self, model_name: str, stage_type: str) -> "Stage":
        """Load the stage of type ``stage_type`` saved under ``model_name``."""
        return get_stage_class(stage_type).load(model_name, self.configuration)

    def save_manifest(self, model_name: str, stage_types: Sequence[str]) -> None:
        """Record the ordered stage types of a pipeline."""
        keyspace = keyspace_for(model_name, PIPELINE_STAGE_TYPE)
        self.storage.put(keyspace, self.MANIFEST_KEY, list(stage_types))
        logger.debug(f"Saved manifest for '{model_name}': {list(stage_types)}")

    def load_manifest(self, model_name: str) -> List[str]:
        """
        Ordered stage types of the pipeline saved under ``model_name``.

        Raises:
            NotFoundError: If no pipeline was saved under the name.
        """
        manifest = self.storage.get(keyspace_for(model_name, PIPELINE_STAGE_TYPE), self.MANIFEST_KEY)
        if manifest is None:
            raise NotFoundError(f"No pipeline saved under '{model_name}'")
        return list(manifest)

    def drop_manifest(self, model_name: str) -> None:
        self.storage.drop_keyspace(keyspace_for(model_name, PIPELINE_STAGE_TYPE))

    def __repr__(self) -> str:
        return f"ModelRegistry(storage={self.storage!r})"

"""
Model registry: keyspace naming, stage registration and saved-stage metadata.

Usage:
    from stageml.metadata import ModelRegistry

    registry = ModelRegistry(configuration)
    registry.saved_stage_types("Diabetes")
    scaler = registry.load_stage("Diabetes", "min_max_scaler")
"""

from stageml.metadata.naming import keyspace_for, safe_name
from stageml.metadata.registry import (
    STAGE_REGISTRY,
    ModelRegistry,
    get_stage_class,
    register_stage,
)
from stageml.metadata.types import StageMetadata
from stageml.metadata.utils import timestamp_now

__all__ = [
    "ModelRegistry",
    "STAGE_REGISTRY",
    "register_stage",
    "get_stage_class",
    "keyspace_for",
    "safe_name",
    "StageMetadata",
    "timestamp_now",
]

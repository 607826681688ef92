"""
Stage lifecycle and pipeline composition.

This module implements:
- Stage: fit once, replay many times, save/load/close/delete by model name
- Transformer / Estimator: the two stage roles
- Pipeline: transformers replayed in order in front of one estimator

Philosophy:
- Parameters learned on training data are the only ones ever applied
- Illegal lifecycle calls raise instead of silently recomputing
- Stages are swappable variants behind one contract
"""

from stageml.pipelines.stage import Estimator, Stage, StageState, Transformer, TrainingParameters
from stageml.pipelines.pipeline import Pipeline

__all__ = [
    "Stage",
    "StageState",
    "Transformer",
    "Estimator",
    "TrainingParameters",
    "Pipeline",
]

"""
stageml: staged machine-learning pipelines with persistent, named models.

Stages (scalers, encoders, feature selectors, estimators) are fit once on a
training Dataframe, saved under a model name in a pluggable storage engine,
and replayed on other Dataframes after being reloaded.
"""

__version__ = "0.1.0"

from stageml import config, data, evaluation, metadata, pipelines, stages, storage
from stageml.config import Configuration, StorageEngineType
from stageml.data import ColumnType, Dataframe, Record, parse_csv, split
from stageml.pipelines import Estimator, Pipeline, Stage, StageState, Transformer
from stageml.rng import RandomContext

__all__ = [
    "config",
    "data",
    "evaluation",
    "metadata",
    "pipelines",
    "stages",
    "storage",
    "Configuration",
    "StorageEngineType",
    "ColumnType",
    "Dataframe",
    "Record",
    "parse_csv",
    "split",
    "Pipeline",
    "Stage",
    "StageState",
    "Transformer",
    "Estimator",
    "RandomContext",
    "__version__",
]

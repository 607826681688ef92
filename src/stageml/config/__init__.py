"""
Configuration management for stages, dataframes and splitters.

A Configuration is built once and handed explicitly to everything that needs
storage, randomness or a worker pool. There is no process-wide default: two
tests building their own in-memory configurations never share state.
"""

from stageml.config.configuration import Configuration, StorageEngineType

__all__ = [
    "Configuration",
    "StorageEngineType",
]

"""
Pytest configuration and shared fixtures.
"""

import numpy as np
import pytest

from stageml.config import Configuration, StorageEngineType
from stageml.data import ColumnType, Dataframe, Record


@pytest.fixture
def configuration():
    """In-memory configuration with a fixed seed."""
    config = Configuration(random_seed=1234, max_threads_per_task=4)
    yield config
    config.close()


@pytest.fixture
def persistent_configuration(tmp_path):
    """Persistent configuration rooted in a temporary directory."""
    config = Configuration(
        storage_engine=StorageEngineType.PERSISTENT,
        storage_directory=tmp_path / "models",
        random_seed=1234,
        max_threads_per_task=4,
    )
    yield config
    config.close()


@pytest.fixture
def numeric_dataframe(configuration):
    """100 records x 10 numerical columns with a numerical label."""
    rng = np.random.default_rng(0)
    values = rng.normal(loc=5.0, scale=3.0, size=(100, 10))
    schema = {f"f{j}": ColumnType.NUMERICAL for j in range(10)}
    df = Dataframe(schema, ColumnType.NUMERICAL, configuration=configuration)
    for row in values:
        x = {f"f{j}": float(v) for j, v in enumerate(row)}
        df.add(Record(x=x, y=float(row.sum())))
    return df


@pytest.fixture
def classification_dataframe(configuration):
    """
    Two well-separated numeric classes plus a categorical column.

    Class "a" sits around (1, 1), class "b" around (8, 8).
    """
    rng = np.random.default_rng(7)
    schema = {
        "x1": ColumnType.NUMERICAL,
        "x2": ColumnType.NUMERICAL,
        "color": ColumnType.CATEGORICAL,
    }
    df = Dataframe(schema, ColumnType.CATEGORICAL, configuration=configuration)
    for i in range(120):
        label = "a" if i % 2 == 0 else "b"
        center = 1.0 if label == "a" else 8.0
        x1, x2 = rng.normal(center, 0.5, size=2)
        color = ["red", "green", "blue"][i % 3]
        df.add(Record(x={"x1": float(x1), "x2": float(x2), "color": color}, y=label))
    return df

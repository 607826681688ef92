import copy
import pickle

import numpy as np
import pytest

from stageml.data import ColumnType, Dataframe, Record
from stageml.evaluation import (
    METRIC_REGISTRY,
    ClassificationMetrics,
    classification_metrics,
    clustering_metrics,
    compute_validation_metrics,
    regression_metrics,
)


def test_classification_metrics_perfect():
    metrics = classification_metrics(np.array(["a", "b", "a"]), np.array(["a", "b", "a"]))

    assert metrics.accuracy == 1.0
    assert metrics.f1 == 1.0
    assert metrics.per_class["a"]["support"] == 2


def test_classification_metrics_partial():
    metrics = classification_metrics(np.array(["a", "a", "b", "b"]), np.array(["a", "b", "b", "b"]))

    assert metrics.accuracy == pytest.approx(0.75)
    assert metrics.per_class["a"]["recall"] == pytest.approx(0.5)
    assert metrics.per_class["b"]["precision"] == pytest.approx(2 / 3)


def test_regression_metrics():
    metrics = regression_metrics(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0, 5.0]))

    assert metrics.mae == pytest.approx(2 / 3)
    assert metrics.mse == pytest.approx(4 / 3)
    assert metrics.rmse == pytest.approx(np.sqrt(4 / 3))


def test_clustering_metrics():
    metrics = clustering_metrics(np.array(["a", "a", "b", "b"]), np.array([1, 1, 0, 0]))

    assert metrics.purity == 1.0
    assert metrics.nmi == pytest.approx(1.0)
    assert metrics.n_clusters == 2


def test_metrics_are_read_only():
    metrics = classification_metrics(np.array(["a"]), np.array(["a"]))

    with pytest.raises(AttributeError):
        metrics.accuracy = 0.0


def test_compute_validation_metrics_from_dataframe():
    df = Dataframe({"x": ColumnType.NUMERICAL}, ColumnType.CATEGORICAL)
    df.add(Record(x={"x": 1.0}, y="a", y_predicted="a"))
    df.add(Record(x={"x": 2.0}, y="b", y_predicted="a"))

    metrics = compute_validation_metrics("classification", df)

    assert isinstance(metrics, ClassificationMetrics)
    assert metrics.n_records == 2
    assert metrics.accuracy == 0.5
    assert set(METRIC_REGISTRY) >= {"classification", "regression", "clustering"}


def test_compute_validation_metrics_requires_predictions():
    df = Dataframe({"x": ColumnType.NUMERICAL}, ColumnType.CATEGORICAL)
    df.add(Record(x={"x": 1.0}, y="a"))

    with pytest.raises(ValueError, match="without y_predicted"):
        compute_validation_metrics("classification", df)

    with pytest.raises(KeyError, match="No metric registered"):
        compute_validation_metrics("ranking", df)


def test_per_class_is_read_only():
    metrics = classification_metrics(np.array(["a", "b"]), np.array(["a", "a"]))

    with pytest.raises(TypeError):
        metrics.per_class["c"] = {}
    with pytest.raises(TypeError):
        metrics.per_class["a"]["recall"] = 0.0


def test_metrics_survive_pickle_and_to_dict():
    metrics = classification_metrics(np.array(["a", "b"]), np.array(["a", "a"]))

    restored = pickle.loads(pickle.dumps(metrics))
    copied = copy.deepcopy(metrics)

    assert restored == metrics
    assert copied == metrics
    assert metrics.to_dict()["per_class"]["a"]["support"] == 1
    assert isinstance(metrics.to_dict()["per_class"], dict)

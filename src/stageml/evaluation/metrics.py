"""
Validation metrics for classification, regression and clustering.

Provides:
- Read-only ValidationMetrics variants per task
- Metric registry so new tasks can be plugged in by name
- ``compute_validation_metrics`` building metrics from a predicted Dataframe
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Tuple

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    mean_absolute_error,
    mean_squared_error,
    normalized_mutual_info_score,
    precision_recall_fscore_support,
    r2_score,
)
from sklearn.metrics.cluster import contingency_matrix

if TYPE_CHECKING:
    from stageml.data.dataframe import Dataframe


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class ValidationMetrics:
    """Base class of the read-only metric summaries."""

    n_records: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {f.name: _thaw(getattr(self, f.name)) for f in fields(self)}

    def __reduce__(self):
        # mapping proxies do not pickle; rebuild through the constructor
        return (self.__class__, tuple(_thaw(getattr(self, f.name)) for f in fields(self)))


@dataclass(frozen=True)
class ClassificationMetrics(ValidationMetrics):
    accuracy: float
    precision: float
    recall: float
    f1: float
    per_class: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "per_class", _freeze(self.per_class))


@dataclass(frozen=True)
class RegressionMetrics(ValidationMetrics):
    mae: float
    mse: float
    rmse: float
    r2: float


@dataclass(frozen=True)
class ClusteringMetrics(ValidationMetrics):
    n_clusters: int
    purity: float
    nmi: float


MetricFn = Callable[[np.ndarray, np.ndarray], ValidationMetrics]

METRIC_REGISTRY: dict[str, MetricFn] = {}


def register_metric(task: str) -> Callable[[MetricFn], MetricFn]:
    """Decorator to register the metric function of a task."""

    def decorator(fn: MetricFn) -> MetricFn:
        METRIC_REGISTRY[task] = fn
        return fn

    return decorator


@register_metric("classification")
def classification_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> ClassificationMetrics:
    """
    Compute macro-averaged classification metrics.

    Args:
        y_true: True labels.
        y_pred: Predicted labels.
    """
    y_true = np.asarray([str(v) for v in y_true])
    y_pred = np.asarray([str(v) for v in y_pred])
    labels = sorted(set(y_true) | set(y_pred))

    precision, recall, f1, _ = precision_recall_fscore_support(
        y_true, y_pred, labels=labels, average="macro", zero_division=0
    )
    per_class = precision_recall_fscore_support(
        y_true, y_pred, labels=labels, average=None, zero_division=0
    )
    classwise = {
        label: {"precision": float(p), "recall": float(r), "f1": float(f), "support": int(s)}
        for label, p, r, f, s in zip(labels, *per_class)
    }
    return ClassificationMetrics(
        n_records=len(y_true),
        accuracy=float(accuracy_score(y_true, y_pred)),
        precision=float(precision),
        recall=float(recall),
        f1=float(f1),
        per_class=classwise,
    )


@register_metric("regression")
def regression_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> RegressionMetrics:
    """
    Compute regression metrics.

    Args:
        y_true: Ground truth values.
        y_pred: Predicted values.
    """
    y_true = np.asarray(y_true, dtype=np.float64).reshape(-1)
    y_pred = np.asarray(y_pred, dtype=np.float64).reshape(-1)

    mse = mean_squared_error(y_true, y_pred)
    r2 = r2_score(y_true, y_pred) if len(y_true) > 1 else float("nan")
    return RegressionMetrics(
        n_records=len(y_true),
        mae=float(mean_absolute_error(y_true, y_pred)),
        mse=float(mse),
        rmse=float(np.sqrt(mse)),
        r2=float(r2),
    )


@register_metric("clustering")
def clustering_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> ClusteringMetrics:
    """
    Compare cluster assignments with known classes.

    Purity is the share of records belonging to the majority class of their
    cluster.
    """
    y_true = np.asarray([str(v) for v in y_true])
    y_pred = np.asarray([str(v) for v in y_pred])
    contingency = contingency_matrix(y_true, y_pred)
    purity = contingency.max(axis=0).sum() / contingency.sum()
    return ClusteringMetrics(
        n_records=len(y_true),
        n_clusters=int(len(set(y_pred))),
        purity=float(purity),
        nmi=float(normalized_mutual_info_score(y_true, y_pred)),
    )


def _labelled_pairs(dataframe: "Dataframe") -> Tuple[np.ndarray, np.ndarray]:
    records = dataframe.records()
    if not records:
        raise ValueError("Cannot compute metrics on an empty Dataframe")
    missing_y = sum(1 for r in records if r.y is None)
    missing_pred = sum(1 for r in records if r.y_predicted is None)
    if missing_y or missing_pred:
        raise ValueError(
            f"Metrics need y and y_predicted on every record "
            f"({missing_y} without y, {missing_pred} without y_predicted)"
        )
    return (
        np.asarray([r.y for r in records], dtype=object),
        np.asarray([r.y_predicted for r in records], dtype=object),
    )


def compute_validation_metrics(task: str, dataframe: "Dataframe") -> ValidationMetrics:
    """
    Build the ValidationMetrics of ``task`` from a predicted Dataframe.

    Raises:
        KeyError: If no metric is registered for ``task``.
        ValueError: If a record lacks ``y`` or ``y_predicted``.
    """
    if task not in METRIC_REGISTRY:
        raise KeyError(f"No metric registered for task '{task}'. Available: {sorted(METRIC_REGISTRY)}")
    y_true, y_pred = _labelled_pairs(dataframe)
    return METRIC_REGISTRY[task](y_true, y_pred)

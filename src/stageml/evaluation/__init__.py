"""
Validation metrics computed from true and predicted labels.
"""

from stageml.evaluation.metrics import (
    METRIC_REGISTRY,
    ClassificationMetrics,
    ClusteringMetrics,
    RegressionMetrics,
    ValidationMetrics,
    classification_metrics,
    clustering_metrics,
    compute_validation_metrics,
    regression_metrics,
    register_metric,
)

__all__ = [
    "ValidationMetrics",
    "ClassificationMetrics",
    "RegressionMetrics",
    "ClusteringMetrics",
    "METRIC_REGISTRY",
    "register_metric",
    "classification_metrics",
    "regression_metrics",
    "clustering_metrics",
    "compute_validation_metrics",
]

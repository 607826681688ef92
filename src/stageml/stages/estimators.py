"""
Estimator variants backed by scikit-learn.

Every estimator reads its feature matrix from the columns it was fit on, so
predicting a Dataframe replays exactly the fit-time column order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import numpy as np
from sklearn.cluster import KMeans as SklearnKMeans
from sklearn.linear_model import LinearRegression as SklearnLinearRegression
from sklearn.linear_model import LogisticRegression, SGDRegressor
from sklearn.naive_bayes import MultinomialNB

from stageml.data.dataframe import ColumnType
from stageml.errors import SchemaMismatchError
from stageml.metadata.registry import register_stage
from stageml.pipelines.stage import Estimator, TrainingParameters

if TYPE_CHECKING:
    from stageml.data.dataframe import Dataframe

logger = logging.getLogger(__name__)


class SklearnEstimator(Estimator):
    """
    Shared plumbing for estimators wrapping a scikit-learn model.

    Subclasses implement ``_build_model`` and, for supervised tasks, keep
    ``supervised = True`` so missing labels are rejected at fit.
    """

    supervised = True

    def _feature_columns(self, dataframe: "Dataframe") -> List[str]:
        categorical = dataframe.columns_of_type(ColumnType.CATEGORICAL)
        if categorical:
            raise SchemaMismatchError(
                f"{self.__class__.__name__} needs numeric input; encode {categorical} first"
            )
        return dataframe.columns

    def _targets(self, dataframe: "Dataframe") -> np.ndarray:
        labels = dataframe.labels()
        if len(labels) == 0:
            raise ValueError(f"{self.__class__.__name__} cannot be fit on an empty Dataframe")
        missing = sum(1 for y in labels if y is None)
        if missing:
            raise ValueError(f"{self.__class__.__name__} needs a label on every record ({missing} missing)")
        if self.task == "regression":
            return labels.astype(np.float64)
        return labels

    def _build_model(self):
        raise NotImplementedError

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        columns = self._feature_columns(dataframe)
        matrix = dataframe.to_matrix(columns)
        model = self._build_model()
        if self.supervised:
            model.fit(matrix, self._targets(dataframe))
        else:
            if matrix.shape[0] == 0:
                raise ValueError(f"{self.__class__.__name__} cannot be fit on an empty Dataframe")
            model.fit(matrix)
        return {"model": model, "feature_columns": columns}

    def _predict(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        records = dataframe.records()
        if not records:
            return
        model = learned["model"]
        matrix = dataframe.to_matrix(learned["feature_columns"])
        predicted = model.predict(matrix)
        probabilities = model.predict_proba(matrix) if hasattr(model, "predict_proba") else None

        for i, record in enumerate(records):
            record.y_predicted = _to_python(predicted[i])
            if probabilities is not None:
                record.y_predicted_probabilities = {
                    _to_python(label): float(p) for label, p in zip(model.classes_, probabilities[i])
                }


def _to_python(value: Any) -> Any:
    return value.item() if isinstance(value, np.generic) else value


@dataclass(frozen=True)
class SoftmaxRegressionParameters(TrainingParameters):
    regularization: float = 1.0
    """Inverse regularization strength (scikit-learn ``C``)."""

    max_iterations: int = 1000


@register_stage("softmax_regression")
class SoftmaxRegression(SklearnEstimator):
    """Multinomial logistic regression classifier."""

    parameters_class = SoftmaxRegressionParameters
    task = "classification"

    def _build_model(self):
        return LogisticRegression(
            C=self._parameters.regularization,
            max_iter=self._parameters.max_iterations,
            random_state=self.random_context.random_state(),
        )


@dataclass(frozen=True)
class MultinomialNaiveBayesParameters(TrainingParameters):
    smoothing: float = 1.0
    """Additive (Laplace) smoothing."""


@register_stage("multinomial_nb")
class MultinomialNaiveBayes(SklearnEstimator):
    """
    Multinomial naive Bayes classifier.

    Features must be non-negative (counts, booleans or min-max scaled values).
    """

    parameters_class = MultinomialNaiveBayesParameters
    task = "classification"

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        matrix = dataframe.to_matrix(self._feature_columns(dataframe))
        if (matrix < 0).any():
            raise ValueError("MultinomialNaiveBayes needs non-negative features")
        return super()._fit(dataframe)

    def _build_model(self):
        return MultinomialNB(alpha=self._parameters.smoothing)


@dataclass(frozen=True)
class LinearRegressionParameters(TrainingParameters):
    fit_intercept: bool = True


@register_stage("linear_regression")
class LinearRegression(SklearnEstimator):
    """Ordinary least squares regression."""

    parameters_class = LinearRegressionParameters
    task = "regression"

    def _build_model(self):
        return SklearnLinearRegression(fit_intercept=self._parameters.fit_intercept)


@dataclass(frozen=True)
class NLMSParameters(TrainingParameters):
    learning_rate: float = 0.01
    max_iterations: int = 1000
    tolerance: Optional[float] = 1e-4


@register_stage("nlms")
class NLMS(SklearnEstimator):
    """
    Least-mean-squares regression trained by stochastic gradient descent
    with a constant step size.
    """

    parameters_class = NLMSParameters
    task = "regression"

    def _build_model(self):
        return SGDRegressor(
            learning_rate="constant",
            eta0=self._parameters.learning_rate,
            max_iter=self._parameters.max_iterations,
            tol=self._parameters.tolerance,
            random_state=self.random_context.random_state(),
        )


@dataclass(frozen=True)
class KMeansParameters(TrainingParameters):
    k: int = 8
    max_iterations: int = 300
    initialization: str = "kmeans++"
    """``kmeans++`` or ``forgy`` (k records drawn at random as initial centroids)."""

    def __post_init__(self):
        if self.k < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")
        if self.initialization not in ("kmeans++", "forgy"):
            raise ValueError(f"Unknown initialization '{self.initialization}'")


@register_stage("kmeans")
class KMeans(SklearnEstimator):
    """
    K-means clustering.

    Predicted labels are cluster ids. ``clusters`` maps every cluster id to the
    record ids assigned to it at fit time.
    """

    parameters_class = KMeansParameters
    task = "clustering"
    supervised = False

    def _build_model(self):
        params = self._parameters
        return SklearnKMeans(
            n_clusters=params.k,
            init="k-means++" if params.initialization == "kmeans++" else "random",
            n_init=1,
            max_iter=params.max_iterations,
            random_state=self.random_context.random_state(),
        )

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        if len(dataframe) < self._parameters.k:
            raise ValueError(f"KMeans needs at least k={self._parameters.k} records, got {len(dataframe)}")
        learned = super()._fit(dataframe)
        clusters: Dict[int, List[int]] = {i: [] for i in range(self._parameters.k)}
        for rid, label in zip(dataframe.ids(), learned["model"].labels_):
            clusters[int(label)].append(rid)
        learned["clusters"] = clusters
        logger.info(f"KMeans converged after {learned['model'].n_iter_} iterations")
        return learned

    @property
    def clusters(self) -> Dict[int, List[int]]:
        """Cluster id -> record ids of the training Dataframe."""
        return {k: list(v) for k, v in self._require_learned()["clusters"].items()}

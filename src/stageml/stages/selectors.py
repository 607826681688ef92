"""
Feature selection and projection: PCA and chi-square selection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

import numpy as np
from sklearn.decomposition import PCA as SklearnPCA
from sklearn.feature_selection import chi2

from stageml.data.dataframe import ColumnType
from stageml.errors import SchemaMismatchError
from stageml.metadata.registry import register_stage
from stageml.pipelines.stage import TrainingParameters, Transformer

if TYPE_CHECKING:
    from stageml.data.dataframe import Dataframe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PCAParameters(TrainingParameters):
    max_dimensions: Optional[int] = None
    """Upper bound on kept components (None: no bound)."""

    whitened: bool = False
    variance_threshold: float = 0.95
    """Cumulative explained variance the kept components must reach."""

    def __post_init__(self):
        if not 0.0 < self.variance_threshold <= 1.0:
            raise ValueError(f"variance_threshold must be in (0, 1], got {self.variance_threshold}")
        if self.max_dimensions is not None and self.max_dimensions < 1:
            raise ValueError(f"max_dimensions must be >= 1, got {self.max_dimensions}")


@register_stage("pca")
class PCA(Transformer):
    """
    Project all feature columns onto their principal components.

    The output replaces every input column with NUMERICAL columns
    ``pc_0 .. pc_{k-1}``.
    """

    parameters_class = PCAParameters

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        categorical = dataframe.columns_of_type(ColumnType.CATEGORICAL)
        if categorical:
            raise SchemaMismatchError(f"PCA needs numeric input; encode {categorical} first")
        columns = dataframe.columns
        matrix = dataframe.to_matrix(columns)
        if matrix.shape[0] < 2 or not columns:
            raise ValueError("PCA needs at least two records and one column")

        params = self._parameters
        full = SklearnPCA(random_state=self.random_context.random_state()).fit(matrix)
        cumulative = np.cumsum(full.explained_variance_ratio_)
        n_components = int(np.searchsorted(cumulative, params.variance_threshold - 1e-12) + 1)
        n_components = min(n_components, len(cumulative))
        if params.max_dimensions is not None:
            n_components = min(n_components, params.max_dimensions)

        model = SklearnPCA(
            n_components=n_components,
            whiten=params.whitened,
            random_state=self.random_context.random_state(),
        ).fit(matrix)
        logger.info(
            f"PCA keeps {n_components} of {len(columns)} dimensions "
            f"({cumulative[n_components - 1]:.3f} of the variance)"
        )
        return {"model": model, "columns": columns, "n_components": n_components}

    def output_schema(self) -> Dict[str, str]:
        n_components = self._require_learned()["n_components"]
        return {f"pc_{i}": ColumnType.NUMERICAL.value for i in range(n_components)}

    def _transform(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        ids = dataframe.ids()
        projected = learned["model"].transform(dataframe.to_matrix(learned["columns"]))
        names = [f"pc_{i}" for i in range(learned["n_components"])]
        features = {
            rid: {name: float(value) for name, value in zip(names, row)}
            for rid, row in zip(ids, projected)
        }
        dataframe.replace_features({name: ColumnType.NUMERICAL for name in names}, features)


@dataclass(frozen=True)
class ChiSquareSelectParameters(TrainingParameters):
    alpha: float = 0.05
    """Columns with a p-value above alpha are dropped."""

    max_features: Optional[int] = None


@register_stage("chisquare_select")
class ChiSquareSelect(Transformer):
    """
    Keep the BOOLEAN columns most dependent on a categorical label.

    Non-boolean columns pass through untouched.
    """

    parameters_class = ChiSquareSelectParameters

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        if dataframe.label_type not in (ColumnType.CATEGORICAL, ColumnType.BOOLEAN, ColumnType.ORDINAL):
            raise SchemaMismatchError("Chi-square selection needs a categorical label")
        candidates = dataframe.columns_of_type(ColumnType.BOOLEAN)
        if not candidates:
            return {"dropped": [], "scores": {}}

        matrix = dataframe.to_matrix(candidates)
        labels = np.asarray([str(y) for y in dataframe.labels()])
        with np.errstate(divide="ignore", invalid="ignore"):
            scores, p_values = chi2(matrix, labels)
        scores = np.nan_to_num(scores, nan=0.0)
        p_values = np.nan_to_num(p_values, nan=1.0)

        significant = [i for i in range(len(candidates)) if p_values[i] <= self._parameters.alpha]
        significant.sort(key=lambda i: (-scores[i], candidates[i]))
        if self._parameters.max_features is not None:
            significant = significant[: self._parameters.max_features]
        kept = {candidates[i] for i in significant}
        dropped = [c for c in candidates if c not in kept]

        logger.info(f"Chi-square selection keeps {len(kept)} of {len(candidates)} boolean columns")
        return {
            "dropped": dropped,
            "scores": {c: float(s) for c, s in zip(candidates, scores)},
        }

    def output_schema(self) -> Dict[str, str]:
        dropped = set(self._require_learned()["dropped"])
        return {c: k for c, k in (self._input_schema or {}).items() if c not in dropped}

    def _transform(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        dropped = set(learned["dropped"])
        schema = {c: k for c, k in dataframe.schema.items() if c not in dropped}
        features = {
            rid: {c: v for c, v in record.x.items() if c not in dropped}
            for rid, record in dataframe.items()
        }
        dataframe.replace_features(schema, features)

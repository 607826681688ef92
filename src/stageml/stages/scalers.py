"""
Min-max feature scaling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

import numpy as np

from stageml.concurrency import parallel_map
from stageml.data.dataframe import ColumnType
from stageml.errors import SchemaMismatchError
from stageml.metadata.registry import register_stage
from stageml.pipelines.stage import TrainingParameters, Transformer

if TYPE_CHECKING:
    from stageml.data.dataframe import Dataframe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MinMaxScalerParameters(TrainingParameters):
    scale_response: bool = False
    """Also scale a numerical label (``y``) and invert ``y_predicted`` on denormalize."""


def _column_range(values: np.ndarray) -> Tuple[float, float]:
    present = values[~np.isnan(values)]
    if present.size == 0:
        return 0.0, 0.0
    return float(present.min()), float(present.max())


def _scale(value: Optional[float], low: float, high: float) -> Optional[float]:
    if value is None:
        return None
    span = high - low
    if span == 0.0:
        return 0.0
    return (float(value) - low) / span


def _unscale(value: Optional[float], low: float, high: float) -> Optional[float]:
    if value is None:
        return None
    return float(value) * (high - low) + low


@register_stage("min_max_scaler")
class MinMaxScaler(Transformer):
    """
    Rescale every NUMERICAL column to [0, 1] using the training range.

    Constant columns map to 0.0. Test values outside the training range map
    outside [0, 1]; they are never clipped.
    """

    parameters_class = MinMaxScalerParameters

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        columns = dataframe.columns_of_type(ColumnType.NUMERICAL)
        records = dataframe.records()

        def learn(column: str) -> Tuple[float, float]:
            values = np.asarray(
                [np.nan if r.x.get(column) is None else float(r.x[column]) for r in records],
                dtype=np.float64,
            )
            return _column_range(values)

        ranges = dict(zip(columns, parallel_map(learn, columns, self.configuration)))
        learned: Dict[str, Any] = {"ranges": ranges, "response_range": None}

        if self._parameters.scale_response:
            if dataframe.label_type is not ColumnType.NUMERICAL:
                raise SchemaMismatchError("scale_response requires a numerical label")
            labels = np.asarray(
                [np.nan if r.y is None else float(r.y) for r in records], dtype=np.float64
            )
            learned["response_range"] = _column_range(labels)

        logger.debug(f"Learned ranges for {len(ranges)} numerical columns")
        return learned

    def _transform(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        ranges = learned["ranges"]
        response = learned["response_range"]
        for record in dataframe.records():
            for column, (low, high) in ranges.items():
                if column in record.x:
                    record.x[column] = _scale(record.x[column], low, high)
            if response is not None:
                record.y = _scale(record.y, *response)

    def denormalize(self, dataframe: "Dataframe") -> "Dataframe":
        """
        Invert the scaling in place.

        With ``scale_response`` the label and the predicted label are
        restored to the original units as well.
        """
        learned = self._require_learned()
        self._check_schema(dataframe)
        ranges = learned["ranges"]
        response = learned["response_range"]
        for record in dataframe.records():
            for column, (low, high) in ranges.items():
                if column in record.x:
                    record.x[column] = _unscale(record.x[column], low, high)
            if response is not None:
                record.y = _unscale(record.y, *response)
                record.y_predicted = _unscale(record.y_predicted, *response)
        return dataframe

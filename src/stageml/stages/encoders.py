"""
Categorical-to-boolean (one-hot) encoding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List

from stageml.concurrency import parallel_map
from stageml.data.dataframe import ColumnType
from stageml.metadata.registry import register_stage
from stageml.pipelines.stage import TrainingParameters, Transformer

if TYPE_CHECKING:
    from stageml.data.dataframe import Dataframe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DummyEncoderParameters(TrainingParameters):
    separator: str = "="
    """Joins column and level in the generated column names."""


@register_stage("dummy_encoder")
class DummyEncoder(Transformer):
    """
    Expand each CATEGORICAL column into one BOOLEAN column per level seen at fit.

    A level first seen at transform time sets none of the generated columns.
    Missing values are treated like an unseen level.
    """

    parameters_class = DummyEncoderParameters

    def _dummy_name(self, column: str, level: str) -> str:
        return f"{column}{self._parameters.separator}{level}"

    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        columns = dataframe.columns_of_type(ColumnType.CATEGORICAL)
        records = dataframe.records()

        def collect(column: str) -> List[str]:
            return sorted({str(r.x[column]) for r in records if r.x.get(column) is not None})

        levels = dict(zip(columns, parallel_map(collect, columns, self.configuration)))
        logger.debug(f"Encoding {len(columns)} categorical columns into {sum(map(len, levels.values()))} dummies")
        return {"levels": levels}

    def output_schema(self) -> Dict[str, str]:
        levels = self._require_learned()["levels"]
        schema: Dict[str, str] = {}
        for column, kind in (self._input_schema or {}).items():
            if column in levels:
                for level in levels[column]:
                    schema[self._dummy_name(column, level)] = ColumnType.BOOLEAN.value
            else:
                schema[column] = kind
        return schema

    def _transform(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        levels = learned["levels"]
        schema: Dict[str, Any] = {}
        for column, kind in dataframe.schema.items():
            if column in levels:
                for level in levels[column]:
                    schema[self._dummy_name(column, level)] = ColumnType.BOOLEAN
            else:
                schema[column] = kind

        features = {}
        for rid, record in dataframe.items():
            row = {}
            for column, value in record.x.items():
                if column not in levels:
                    row[column] = value
            for column, column_levels in levels.items():
                if column not in dataframe.schema:
                    continue
                value = record.x.get(column)
                observed = None if value is None else str(value)
                for level in column_levels:
                    row[self._dummy_name(column, level)] = observed == level
            features[rid] = row
        dataframe.replace_features(schema, features)

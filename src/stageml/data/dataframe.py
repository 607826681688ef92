"""
Tabular container passed between stages.

A Dataframe maps integer record ids to Records that share one column schema.
Stages mutate Records in place: transformers rewrite features, estimators fill
in predictions.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from stageml.errors import ClosedError, DeletedError, NotFoundError, SchemaMismatchError
from stageml.metadata.naming import DATAFRAME_STAGE_TYPE, keyspace_for

if TYPE_CHECKING:
    from stageml.config import Configuration

logger = logging.getLogger(__name__)


class ColumnType(str, Enum):
    """Data type of a feature or label column."""

    NUMERICAL = "numerical"
    CATEGORICAL = "categorical"
    BOOLEAN = "boolean"
    ORDINAL = "ordinal"

    @property
    def is_numeric(self) -> bool:
        """Whether values of this type can enter a numeric matrix directly."""
        return self in (ColumnType.NUMERICAL, ColumnType.BOOLEAN, ColumnType.ORDINAL)


@dataclass
class Record:
    """One row of a Dataframe."""

    x: Dict[str, Any] = field(default_factory=dict)
    """Feature values keyed by column name."""

    y: Any = None
    """True label, if known."""

    y_predicted: Any = None
    """Label set by an estimator's predict."""

    y_predicted_probabilities: Optional[Dict[Any, float]] = None
    """Per-label probabilities set by classifiers."""


def _freeze_schema(schema: Mapping[str, ColumnType | str]) -> Mapping[str, ColumnType]:
    return MappingProxyType({str(name): ColumnType(kind) for name, kind in schema.items()})


class Dataframe:
    """
    Ordered mapping of record id -> Record with an immutable column schema.

    Records may be added and removed; the schema never changes in place.
    Stages that change the column set swap in a whole new schema together with
    the rewritten features via ``replace_features``.

    Example:
        >>> df = Dataframe({"age": ColumnType.NUMERICAL}, label_type=ColumnType.CATEGORICAL)
        >>> rid = df.add(Record(x={"age": 31.0}, y="yes"))
        >>> df[rid].x["age"]
        31.0
    """

    def __init__(
        self,
        schema: Mapping[str, ColumnType | str],
        label_type: ColumnType | str | None = None,
        records: Iterable[Record] = (),
        *,
        configuration: Optional["Configuration"] = None,
    ):
        """
        Args:
            schema: Column name -> ColumnType of the features.
            label_type: ColumnType of ``Record.y`` (None when unlabeled).
            records: Initial records, assigned ids 0..n-1.
            configuration: Needed only to ``save`` the Dataframe.
        """
        self._schema = _freeze_schema(schema)
        self.label_type = ColumnType(label_type) if label_type is not None else None
        self.configuration = configuration
        self._records: Dict[int, Record] = {}
        self._next_id = 0
        self._name: Optional[str] = None
        self._closed = False
        self._deleted = False
        for record in records:
            self.add(record)

    # ------------------------------------------------------------------
    # schema
    # ------------------------------------------------------------------

    @property
    def schema(self) -> Mapping[str, ColumnType]:
        """Read-only column name -> ColumnType mapping."""
        return self._schema

    @property
    def columns(self) -> List[str]:
        return list(self._schema)

    def columns_of_type(self, *types: ColumnType) -> List[str]:
        """Columns whose type is one of ``types``, in schema order."""
        return [name for name, kind in self._schema.items() if kind in types]

    # ------------------------------------------------------------------
    # records
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._deleted:
            raise DeletedError(f"Dataframe '{self._name or id(self)}' was deleted")
        if self._closed:
            raise ClosedError(f"Dataframe '{self._name or id(self)}' is closed")

    def _check_record(self, record: Record) -> None:
        unknown = [c for c in record.x if c not in self._schema]
        if unknown:
            raise SchemaMismatchError(f"Record uses columns not in the schema: {unknown}")

    def add(self, record: Record, record_id: Optional[int] = None) -> int:
        """
        Add a record and return its id.

        Ids are assigned monotonically unless ``record_id`` is given.

        Raises:
            SchemaMismatchError: If the record uses undeclared columns.
            KeyError: If ``record_id`` is already taken.
        """
        self._check_open()
        self._check_record(record)
        if record_id is None:
            record_id = self._next_id
        elif record_id in self._records:
            raise KeyError(f"Record id {record_id} already exists")
        self._records[int(record_id)] = record
        self._next_id = max(self._next_id, int(record_id) + 1)
        return int(record_id)

    def remove(self, record_id: int) -> Record:
        """Remove and return a record."""
        self._check_open()
        return self._records.pop(record_id)

    def get(self, record_id: int, default: Any = None) -> Optional[Record]:
        self._check_open()
        return self._records.get(record_id, default)

    def __getitem__(self, record_id: int) -> Record:
        self._check_open()
        return self._records[record_id]

    def __contains__(self, record_id: object) -> bool:
        self._check_open()
        return record_id in self._records

    def __iter__(self) -> Iterator[int]:
        self._check_open()
        return iter(list(self._records))

    def __len__(self) -> int:
        self._check_open()
        return len(self._records)

    def ids(self) -> List[int]:
        """Record ids in insertion order."""
        self._check_open()
        return list(self._records)

    def items(self) -> List[Tuple[int, Record]]:
        self._check_open()
        return list(self._records.items())

    def records(self) -> List[Record]:
        self._check_open()
        return list(self._records.values())

    # ------------------------------------------------------------------
    # derived views
    # ------------------------------------------------------------------

    def copy(self) -> Dataframe:
        """Independent deep clone keeping record ids, schema and label type."""
        self._check_open()
        clone = Dataframe(self._schema, self.label_type, configuration=self.configuration)
        clone._records = copy.deepcopy(self._records)
        clone._next_id = self._next_id
        return clone

    def subset(self, record_ids: Iterable[int]) -> Dataframe:
        """Deep copy of the given records, keeping their ids."""
        self._check_open()
        subset = Dataframe(self._schema, self.label_type, configuration=self.configuration)
        for rid in record_ids:
            subset.add(copy.deepcopy(self._records[rid]), record_id=rid)
        return subset

    def to_matrix(self, columns: Optional[Sequence[str]] = None) -> np.ndarray:
        """
        Build a float matrix of shape ``[n_records, n_columns]`` in id order.

        Booleans become 0/1 and missing values 0.0.

        Raises:
            SchemaMismatchError: If a column is unknown or categorical.
        """
        self._check_open()
        columns = list(self._schema) if columns is None else list(columns)
        for name in columns:
            kind = self._schema.get(name)
            if kind is None:
                raise SchemaMismatchError(f"Column '{name}' is not in the schema")
            if not kind.is_numeric:
                raise SchemaMismatchError(
                    f"Column '{name}' is {kind.value}; encode it before building a numeric matrix"
                )

        matrix = np.zeros((len(self._records), len(columns)), dtype=np.float64)
        for i, record in enumerate(self._records.values()):
            for j, name in enumerate(columns):
                value = record.x.get(name)
                if value is None:
                    continue
                try:
                    matrix[i, j] = float(value)
                except (TypeError, ValueError):
                    raise SchemaMismatchError(
                        f"Column '{name}' holds non-numeric value {value!r}"
                    ) from None
        return matrix

    def labels(self) -> np.ndarray:
        """True labels in id order."""
        self._check_open()
        return np.asarray([r.y for r in self._records.values()], dtype=object)

    def predictions(self) -> np.ndarray:
        """Predicted labels in id order."""
        self._check_open()
        return np.asarray([r.y_predicted for r in self._records.values()], dtype=object)

    def replace_features(
        self,
        schema: Mapping[str, ColumnType | str],
        features: Mapping[int, Dict[str, Any]],
    ) -> None:
        """
        Swap in a new schema together with the rewritten feature rows.

        Args:
            schema: New column name -> ColumnType mapping.
            features: New ``x`` for every record id of the Dataframe.

        Raises:
            SchemaMismatchError: If rows are missing or use undeclared columns.
        """
        self._check_open()
        new_schema = _freeze_schema(schema)
        missing = [rid for rid in self._records if rid not in features]
        if missing:
            raise SchemaMismatchError(f"No features given for record ids {missing[:10]}")
        for rid, row in features.items():
            unknown = [c for c in row if c not in new_schema]
            if unknown:
                raise SchemaMismatchError(f"Record {rid} uses columns not in the new schema: {unknown}")
        for rid, record in self._records.items():
            record.x = dict(features[rid])
        self._schema = new_schema

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    @property
    def name(self) -> Optional[str]:
        """Name the Dataframe was saved or loaded under."""
        return self._name

    def save(self, name: Optional[str] = None) -> None:
        """
        Persist the records under ``name`` in the configuration's storage engine.

        Raises:
            ValueError: Without a configuration or a name.
        """
        self._check_open()
        name = name or self._name
        if name is None:
            raise ValueError("Dataframe.save requires a name")
        if self.configuration is None:
            raise ValueError("Dataframe.save requires a configuration")
        storage = self.configuration.storage
        keyspace = keyspace_for(name, DATAFRAME_STAGE_TYPE)
        with storage.locked(keyspace):
            storage.put(keyspace, "schema", {k: v.value for k, v in self._schema.items()})
            storage.put(keyspace, "label_type", self.label_type.value if self.label_type else None)
            storage.put(keyspace, "next_id", self._next_id)
            storage.put(keyspace, "records", self._records)
        self._name = name
        logger.info(f"Saved dataframe '{name}' ({len(self._records)} records)")

    @classmethod
    def load(cls, name: str, configuration: "Configuration") -> Dataframe:
        """
        Restore a Dataframe saved under ``name``.

        Raises:
            NotFoundError: If nothing was saved under ``name``.
        """
        storage = configuration.storage
        keyspace = keyspace_for(name, DATAFRAME_STAGE_TYPE)
        with storage.locked(keyspace):
            schema = storage.get(keyspace, "schema")
            if schema is None:
                raise NotFoundError(f"No dataframe saved under '{name}'")
            df = cls(schema, storage.get(keyspace, "label_type"), configuration=configuration)
            df._records = storage.get(keyspace, "records", {})
            df._next_id = storage.get(keyspace, "next_id", len(df._records))
        df._name = name
        return df

    def close(self) -> None:
        """Evict the records from memory; saved data stays in storage."""
        if self._deleted:
            raise DeletedError(f"Dataframe '{self._name or id(self)}' was deleted")
        self._records = {}
        self._closed = True

    def delete(self) -> None:
        """Purge the records and any saved copy. Calling it twice is a no-op."""
        if self._deleted:
            return
        if self._name is not None and self.configuration is not None:
            self.configuration.storage.drop_keyspace(keyspace_for(self._name, DATAFRAME_STAGE_TYPE))
            logger.info(f"Deleted dataframe '{self._name}'")
        self._records = {}
        self._deleted = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def deleted(self) -> bool:
        return self._deleted

    def __enter__(self) -> Dataframe:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._deleted:
            self.close()

    def __repr__(self) -> str:
        if self._deleted:
            return "Dataframe(deleted)"
        if self._closed:
            return f"Dataframe(name='{self._name}', closed)"
        return (
            f"Dataframe(records={len(self._records)}, columns={list(self._schema)}, "
            f"label_type={self.label_type.value if self.label_type else None})"
        )

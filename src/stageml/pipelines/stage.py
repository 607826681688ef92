"""
Base Stage classes for the pipeline framework.

Philosophy:
- A Stage is fit once on training data and replayed on any other data
- Learned parameters live in memory while the stage is open and in the
  storage engine once saved
- Every lifecycle transition is explicit; illegal calls raise instead of
  silently recomputing anything

Lifecycle::

    UNFITTED --fit--> FITTED --save--> SAVED
        ^               |                |
        |             close            close
      reset             v                v
        +----------- CLOSED <--close-- LOADED <--load(name)--
    (any state) --delete--> DELETED
"""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Mapping, Optional

from stageml.errors import (
    AlreadyFittedError,
    ClosedError,
    DeletedError,
    NotFittedError,
    NotFoundError,
    SchemaMismatchError,
)
from stageml.metadata.naming import keyspace_for
from stageml.metadata.types import StageMetadata
from stageml.metadata.utils import timestamp_now

if TYPE_CHECKING:
    from stageml.config import Configuration
    from stageml.data.dataframe import Dataframe
    from stageml.rng import RandomContext
    from stageml.storage.base import StorageEngine


logger = logging.getLogger(__name__)


class StageState(str, Enum):
    """Lifecycle state of a Stage."""

    UNFITTED = "unfitted"
    FITTED = "fitted"
    SAVED = "saved"
    CLOSED = "closed"
    LOADED = "loaded"
    DELETED = "deleted"


_USABLE = (StageState.FITTED, StageState.SAVED, StageState.LOADED)


@dataclass(frozen=True)
class TrainingParameters:
    """
    Immutable, stage-specific configuration.

    Each Stage variant subclasses this with its own fields.
    """

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrainingParameters:
        """Create from dictionary."""
        return cls(**data)


class Stage(ABC):
    """
    Base class for all pipeline stages.

    A Stage is a unit of computation that:
    - Learns parameters from a training Dataframe (``fit``)
    - Replays them on other Dataframes without learning anything new
    - Saves, loads and deletes those parameters by model name

    Subclasses implement ``_fit`` (return the learned parameters as a picklable
    dict) and the role-specific hook of Transformer or Estimator.

    Stages are context managers: leaving the block closes the stage (soft
    release, saved state is kept) unless it was already deleted.

    Example:
        >>> with MinMaxScaler(configuration) as scaler:
        ...     scaler.fit_transform(train)
        ...     scaler.save("Diabetes")
        >>> scaler = MinMaxScaler.load("Diabetes", configuration)
        >>> scaler.transform(test)
    """

    stage_type: ClassVar[str] = "stage"
    """Registry name; also the suffix of the stage's keyspace."""

    parameters_class: ClassVar[type[TrainingParameters]] = TrainingParameters
    """TrainingParameters subclass accepted by this variant."""

    PARAMETERS_KEY: ClassVar[str] = "parameters"
    METADATA_KEY: ClassVar[str] = "metadata"

    def __init__(
        self,
        configuration: "Configuration",
        parameters: TrainingParameters | Mapping[str, Any] | None = None,
        *,
        model_name: Optional[str] = None,
        random_context: Optional["RandomContext"] = None,
    ):
        """
        Initialize an unfitted stage.

        Args:
            configuration: Supplies the storage engine, seed and worker pool size.
            parameters: Variant TrainingParameters (or a mapping of its fields);
                defaults are used when omitted.
            model_name: Name to save under when ``save`` gets no name.
            random_context: RNG for stochastic fits; derived from the
                configuration seed and the stage type when omitted.

        Raises:
            TypeError: If ``parameters`` belongs to another variant.
        """
        if configuration is None:
            raise ValueError(f"{self.__class__.__name__} requires a configuration")
        self.configuration = configuration
        self._parameters = self._coerce_parameters(parameters)
        self._model_name = model_name
        self._saved_names: set[str] = set()
        self._random_context = random_context
        self._state = StageState.UNFITTED
        self._learned: Optional[Dict[str, Any]] = None
        self._input_schema: Optional[Dict[str, str]] = None
        self._label_type: Optional[str] = None

    @classmethod
    def _coerce_parameters(
        cls, parameters: TrainingParameters | Mapping[str, Any] | None
    ) -> TrainingParameters:
        if parameters is None:
            return cls.parameters_class()
        if isinstance(parameters, Mapping):
            return cls.parameters_class.from_dict(parameters)
        if not isinstance(parameters, cls.parameters_class):
            raise TypeError(
                f"{cls.__name__} expects {cls.parameters_class.__name__}, "
                f"got {type(parameters).__name__}"
            )
        # private copy, instances never share parameter objects
        return dataclasses.replace(parameters)

    # ------------------------------------------------------------------
    # properties
    # ------------------------------------------------------------------

    @property
    def parameters(self) -> TrainingParameters:
        return self._parameters

    @property
    def state(self) -> StageState:
        return self._state

    @property
    def model_name(self) -> Optional[str]:
        return self._model_name

    @property
    def saved_names(self) -> List[str]:
        """Model names this instance saved under or was loaded from."""
        return sorted(self._saved_names)

    @property
    def storage(self) -> "StorageEngine":
        return self.configuration.storage

    @property
    def keyspace(self) -> Optional[str]:
        """Keyspace of this stage, once it is bound to a model name."""
        if self._model_name is None:
            return None
        return keyspace_for(self._model_name, self.stage_type)

    @property
    def input_schema(self) -> Optional[Dict[str, str]]:
        """Column name -> type name seen at fit time."""
        return dict(self._input_schema) if self._input_schema is not None else None

    @property
    def random_context(self) -> "RandomContext":
        if self._random_context is None:
            self._random_context = self.configuration.random_context().spawn(self.stage_type)
        return self._random_context

    @property
    def learned(self) -> Dict[str, Any]:
        """Learned parameters; raises unless the stage is fitted or loaded."""
        return self._require_learned()

    # ------------------------------------------------------------------
    # guards
    # ------------------------------------------------------------------

    def _check_not_deleted(self) -> None:
        if self._state is StageState.DELETED:
            raise DeletedError(f"{self!r} was deleted")

    def _require_learned(self) -> Dict[str, Any]:
        self._check_not_deleted()
        if self._state is StageState.CLOSED:
            raise ClosedError(f"{self!r} is closed; load it again by model name")
        if self._state not in _USABLE or self._learned is None:
            raise NotFittedError(f"{self!r} must be fit or loaded first")
        return self._learned

    def _check_schema(self, dataframe: "Dataframe") -> None:
        expected = self._input_schema or {}
        unknown = [c for c in dataframe.schema if c not in expected]
        if unknown:
            raise SchemaMismatchError(
                f"{self.__class__.__name__} was fit without columns {unknown}"
            )
        changed = [c for c, kind in dataframe.schema.items() if expected[c] != kind.value]
        if changed:
            raise SchemaMismatchError(
                f"{self.__class__.__name__} was fit with different types for columns {changed}"
            )

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def fit(self, dataframe: "Dataframe") -> Stage:
        """
        Learn parameters from a training Dataframe.

        Raises:
            AlreadyFittedError: If the stage holds learned state; call ``reset`` first.
            ClosedError: If the stage was closed; call ``reset`` first.
            DeletedError: If the stage was deleted.
        """
        self._check_not_deleted()
        if self._state is StageState.CLOSED:
            raise ClosedError(f"{self!r} is closed; reset it before fitting again")
        if self._state is not StageState.UNFITTED:
            raise AlreadyFittedError(f"{self!r} is already fitted; reset it before fitting again")

        logger.info(f"Fitting {self.__class__.__name__} on {len(dataframe)} records")
        input_schema = {name: kind.value for name, kind in dataframe.schema.items()}
        learned = self._fit(dataframe)

        self._input_schema = input_schema
        self._label_type = dataframe.label_type.value if dataframe.label_type else None
        self._learned = learned
        self._state = StageState.FITTED
        return self

    @abstractmethod
    def _fit(self, dataframe: "Dataframe") -> Dict[str, Any]:
        """
        Compute learned parameters from the training Dataframe.

        Must not modify ``dataframe``. The returned dict must be picklable.
        """

    def output_schema(self) -> Dict[str, str]:
        """Column name -> type name this stage produces."""
        self._require_learned()
        return dict(self._input_schema or {})

    def save(self, model_name: Optional[str] = None) -> None:
        """
        Persist learned parameters under ``model_name``.

        Saving again under the same name rewrites identical state.

        Raises:
            NotFittedError: If there is nothing to save.
            ClosedError / DeletedError: On a closed or deleted stage.
            ValueError: If no model name is known.
            IOFailure: If the storage engine fails.
        """
        learned = self._require_learned()
        name = model_name or self._model_name
        if name is None:
            raise ValueError(f"{self.__class__.__name__}.save requires a model name")

        keyspace = keyspace_for(name, self.stage_type)
        metadata = StageMetadata(
            stage_type=self.stage_type,
            model_name=name,
            timestamp=timestamp_now(),
            training_parameters=self._parameters.to_dict(),
            input_schema=dict(self._input_schema or {}),
            output_schema=self.output_schema(),
            label_type=self._label_type,
        )
        storage = self.storage
        with storage.locked(keyspace):
            storage.put(keyspace, self.PARAMETERS_KEY, learned)
            self._save_extra(storage, keyspace)
            storage.put(keyspace, self.METADATA_KEY, metadata.to_dict())

        self._model_name = name
        self._saved_names.add(name)
        self._state = StageState.SAVED
        logger.info(f"Saved {self.__class__.__name__} as '{name}'")

    def _save_extra(self, storage: "StorageEngine", keyspace: str) -> None:
        """Hook for variants persisting more than their learned parameters."""

    def _load_extra(self, storage: "StorageEngine", keyspace: str) -> None:
        """Counterpart of ``_save_extra``."""

    @classmethod
    def load(cls, model_name: str, configuration: "Configuration") -> Stage:
        """
        Rebuild a stage saved under ``model_name``.

        Raises:
            NotFoundError: If no stage of this type was saved under the name.
        """
        keyspace = keyspace_for(model_name, cls.stage_type)
        storage = configuration.storage
        with storage.locked(keyspace):
            raw_metadata = storage.get(keyspace, cls.METADATA_KEY)
            learned = storage.get(keyspace, cls.PARAMETERS_KEY)
            if raw_metadata is None or learned is None:
                raise NotFoundError(f"No {cls.stage_type} saved under '{model_name}'")
            metadata = StageMetadata.from_dict(raw_metadata)
            if metadata.stage_type != cls.stage_type:
                raise NotFoundError(
                    f"'{model_name}' holds a {metadata.stage_type}, not a {cls.stage_type}"
                )

            stage = cls(
                configuration,
                cls.parameters_class.from_dict(metadata.training_parameters),
                model_name=model_name,
            )
            stage._learned = learned
            stage._input_schema = dict(metadata.input_schema)
            stage._label_type = metadata.label_type
            stage._saved_names.add(model_name)
            stage._state = StageState.LOADED
            stage._load_extra(storage, keyspace)

        logger.info(f"Loaded {cls.__name__} '{model_name}'")
        return stage

    def close(self) -> None:
        """
        Evict learned parameters from memory; saved state is untouched.

        Closing a fitted stage that was never saved discards its parameters.

        Raises:
            DeletedError: If the stage was deleted.
        """
        self._check_not_deleted()
        if self._state is StageState.CLOSED:
            return
        if self._state is StageState.FITTED:
            logger.warning(
                f"Closing {self.__class__.__name__} with unsaved parameters; they are discarded"
            )
        self._learned = None
        self._state = StageState.CLOSED

    def delete(self) -> None:
        """
        Purge in-memory state and every keyspace this instance saved or loaded.

        A model name only passed to the constructor is not purged, nor are
        sibling stages saved under the same model name. Calling it twice is a
        no-op.
        """
        if self._state is StageState.DELETED:
            return
        for name in sorted(self._saved_names):
            self.storage.drop_keyspace(keyspace_for(name, self.stage_type))
            logger.info(f"Deleted {self.__class__.__name__} '{name}'")
        self._learned = None
        self._state = StageState.DELETED

    def reset(self) -> None:
        """Forget learned state so the stage can be fit again."""
        self._check_not_deleted()
        self._learned = None
        self._input_schema = None
        self._label_type = None
        self._state = StageState.UNFITTED

    def __enter__(self) -> Stage:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._state is not StageState.DELETED:
            self.close()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"model_name={self._model_name!r}, "
            f"state={self._state.value})"
        )


class Transformer(Stage):
    """Stage that rewrites features (scalers, encoders, feature selectors)."""

    def transform(self, dataframe: "Dataframe") -> "Dataframe":
        """
        Apply the learned transformation in place and return the Dataframe.

        Raises:
            NotFittedError / ClosedError / DeletedError: Outside FITTED, SAVED, LOADED.
            SchemaMismatchError: On columns the stage was not fit with.
        """
        learned = self._require_learned()
        self._check_schema(dataframe)
        self._transform(dataframe, learned)
        return dataframe

    def fit_transform(self, dataframe: "Dataframe") -> "Dataframe":
        """Fit on ``dataframe`` and transform it."""
        self.fit(dataframe)
        return self.transform(dataframe)

    @abstractmethod
    def _transform(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        """Rewrite ``dataframe`` in place using only ``learned``."""


class Estimator(Stage):
    """
    Stage that predicts labels (classifiers, regressors, clusterers).

    Validation metrics computed with ``validate`` are kept on the stage,
    saved with it and restored by ``load``.
    """

    task: ClassVar[str] = "classification"
    """Metric family used by ``validate``."""

    VALIDATION_KEY: ClassVar[str] = "validation_metrics"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.validation_metrics = None

    def predict(self, dataframe: "Dataframe") -> "Dataframe":
        """
        Fill ``y_predicted`` (and probabilities where available) in place.

        Raises:
            NotFittedError / ClosedError / DeletedError: Outside FITTED, SAVED, LOADED.
            SchemaMismatchError: On columns the stage was not fit with.
        """
        learned = self._require_learned()
        self._check_schema(dataframe)
        self._predict(dataframe, learned)
        return dataframe

    def validate(self, dataframe: "Dataframe"):
        """
        Predict ``dataframe`` and compute validation metrics against its labels.

        The metrics are also stored as ``validation_metrics``.
        """
        from stageml.evaluation import compute_validation_metrics

        self.predict(dataframe)
        metrics = compute_validation_metrics(self.task, dataframe)
        self.validation_metrics = metrics
        return metrics

    @abstractmethod
    def _predict(self, dataframe: "Dataframe", learned: Dict[str, Any]) -> None:
        """Write predictions into ``dataframe`` using only ``learned``."""

    def _save_extra(self, storage: "StorageEngine", keyspace: str) -> None:
        if self.validation_metrics is not None:
            storage.put(keyspace, self.VALIDATION_KEY, self.validation_metrics)
        else:
            storage.remove(keyspace, self.VALIDATION_KEY)

    def _load_extra(self, storage: "StorageEngine", keyspace: str) -> None:
        self.validation_metrics = storage.get(keyspace, self.VALIDATION_KEY)

    def close(self) -> None:
        super().close()
        self.validation_metrics = None

    def delete(self) -> None:
        super().delete()
        self.validation_metrics = None

    def reset(self) -> None:
        super().reset()
        self.validation_metrics = None

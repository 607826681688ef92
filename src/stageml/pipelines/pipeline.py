"""
Pipeline executor replaying fitted stages in a fixed order.

A Pipeline is zero or more Transformers followed by exactly one Estimator.
Fitting runs ``fit_transform`` on every transformer and ``fit`` on the
estimator; prediction runs ``transform`` on every transformer (never
``fit_transform``) and ``predict`` on the estimator, so statistics are only
ever learned from the training Dataframe.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from stageml.metadata.registry import ModelRegistry
from stageml.pipelines.stage import Estimator, Stage, StageState, Transformer

if TYPE_CHECKING:
    from stageml.config import Configuration
    from stageml.data.dataframe import Dataframe


logger = logging.getLogger(__name__)


class Pipeline:
    """
    Ordered composition of Transformers and one final Estimator.

    Every stage of a pipeline shares one model name, so the whole pipeline can
    be saved, closed, reloaded and deleted by that name.

    Example:
        >>> from stageml.pipelines import Pipeline
        >>> from stageml.stages import MinMaxScaler, SoftmaxRegression
        >>>
        >>> pipeline = Pipeline([
        ...     MinMaxScaler(configuration),
        ...     SoftmaxRegression(configuration),
        ... ])
        >>> pipeline.fit(train)
        >>> pipeline.save("Diabetes")
        >>> pipeline.predict(test)
    """

    def __init__(self, stages: Sequence[Stage], name: str = "pipeline"):
        """
        Initialize pipeline.

        Args:
            stages: Transformers in replay order, then one Estimator.
            name: Pipeline name for logging.

        Raises:
            ValueError: If the composition is invalid.
        """
        self.name = name
        self.stages: List[Stage] = list(stages)
        self.validate()

    def validate(self) -> None:
        """
        Validate pipeline composition.

        Checks:
        - At least one stage
        - Exactly one Estimator, placed last
        - Every other stage is a Transformer
        - No duplicate stage types (they would share a keyspace)

        Raises:
            ValueError: If validation fails.
        """
        if not self.stages:
            raise ValueError("Pipeline needs at least an estimator stage")

        *transformers, estimator = self.stages
        if not isinstance(estimator, Estimator):
            raise ValueError(
                f"Last stage must be an Estimator, got {estimator.__class__.__name__}"
            )
        misplaced = [s.__class__.__name__ for s in transformers if not isinstance(s, Transformer)]
        if misplaced:
            raise ValueError(f"Only Transformers may precede the estimator, got {misplaced}")

        types = [s.stage_type for s in self.stages]
        duplicates = sorted({t for t in types if types.count(t) > 1})
        if duplicates:
            raise ValueError(f"Duplicate stage types: {duplicates}")

    @property
    def transformers(self) -> List[Transformer]:
        return list(self.stages[:-1])

    @property
    def estimator(self) -> Estimator:
        return self.stages[-1]

    def _run(self, action: str, stages: Sequence[Stage], call: Callable[[Stage], None]) -> None:
        total = len(stages)
        for i, stage in enumerate(stages, 1):
            logger.info(f"[{i}/{total}] {action} stage '{stage.stage_type}'")
            try:
                call(stage)
            except Exception as e:
                logger.error(f"[{i}/{total}] Stage '{stage.stage_type}' failed during {action.lower()}: {e}")
                raise

    def fit(self, train: "Dataframe") -> Pipeline:
        """
        Fit every stage on the training Dataframe.

        Transformers are fit and applied in order, each one feeding the next;
        the estimator is fit on the fully transformed data. ``train`` is
        transformed in place. Execution stops at the first failing stage and
        nothing already fit or saved is rolled back.
        """
        logger.info(f"Fitting pipeline '{self.name}' with {len(self.stages)} stages")

        def fit_stage(stage: Stage) -> None:
            if isinstance(stage, Transformer):
                stage.fit_transform(train)
            else:
                stage.fit(train)

        self._run("Fitting", self.stages, fit_stage)
        logger.info(f"Pipeline '{self.name}' fitted")
        return self

    def transform(self, dataframe: "Dataframe") -> "Dataframe":
        """Apply every transformer's learned parameters to ``dataframe`` in place."""
        self._run("Transforming", self.transformers, lambda s: s.transform(dataframe))
        return dataframe

    def predict(self, dataframe: "Dataframe") -> "Dataframe":
        """Transform ``dataframe`` and fill in the estimator's predictions."""
        self.transform(dataframe)
        self._run("Predicting", [self.estimator], lambda s: s.predict(dataframe))
        return dataframe

    def validate_on(self, dataframe: "Dataframe"):
        """Transform ``dataframe``, predict it and return the estimator's metrics."""
        self.transform(dataframe)
        return self.estimator.validate(dataframe)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    @property
    def model_name(self) -> Optional[str]:
        names = {s.model_name for s in self.stages}
        return names.pop() if len(names) == 1 else None

    def save(self, model_name: Optional[str] = None) -> None:
        """Save every stage and the stage order under one model name."""
        name = model_name or self.model_name
        if name is None:
            raise ValueError("Pipeline.save requires a model name")
        for stage in self.stages:
            stage.save(name)
        ModelRegistry(self.stages[0].configuration).save_manifest(
            name, [s.stage_type for s in self.stages]
        )
        logger.info(f"Saved pipeline '{self.name}' as '{name}'")

    def close(self) -> None:
        """Close every stage; saved state is kept."""
        for stage in self.stages:
            stage.close()

    def delete(self) -> None:
        """
        Delete every stage and the stage order of every name they were saved under.

        Calling it twice is a no-op.
        """
        names = sorted({name for stage in self.stages for name in stage.saved_names})
        for stage in self.stages:
            stage.delete()
        registry = ModelRegistry(self.stages[0].configuration)
        for name in names:
            registry.drop_manifest(name)

    @classmethod
    def load(cls, model_name: str, configuration: "Configuration", name: Optional[str] = None) -> Pipeline:
        """
        Rebuild a pipeline saved under ``model_name``.

        Raises:
            NotFoundError: If no pipeline, or one of its stages, is saved under the name.
        """
        registry = ModelRegistry(configuration)
        stages = [registry.load_stage(model_name, t) for t in registry.load_manifest(model_name)]
        return cls(stages, name=name or model_name)

    def __enter__(self) -> Pipeline:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for stage in self.stages:
            if stage.state is not StageState.DELETED:
                stage.close()

    def describe(self) -> str:
        """
        Create a text description of the pipeline.

        Returns:
            One line per stage with its type and lifecycle state.
        """
        lines = [f"Pipeline: {self.name}", "=" * 50]
        for i, stage in enumerate(self.stages, 1):
            role = "estimator" if isinstance(stage, Estimator) else "transformer"
            lines.append(f"{i}. [{stage.state.value}] {stage.stage_type} ({role})")
        return "\n".join(lines)

    def get_stage(self, stage_type: str) -> Optional[Stage]:
        """
        Get stage by type.

        Returns:
            Stage instance or None if not found.
        """
        for stage in self.stages:
            if stage.stage_type == stage_type:
                return stage
        return None

    def __repr__(self) -> str:
        return f"Pipeline(name='{self.name}', stages={[s.stage_type for s in self.stages]})"

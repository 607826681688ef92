"""
End-to-end scenarios across splitting, scaling, estimation and persistence.
"""

import numpy as np

from stageml.data import Record, split
from stageml.pipelines import Pipeline
from stageml.stages import LinearRegression, MinMaxScaler


class TestSplitScale:
    """Split a numeric Dataframe and scale the test set with train statistics."""

    def test_split_then_scale(self, configuration, numeric_dataframe):
        """Test test values are scaled with the train range, not clipped to it."""
        train, test = split(numeric_dataframe, 0.8, seed=1)

        assert len(train) == 80 and len(test) == 20
        assert sorted(train.ids() + test.ids()) == list(range(100))

        outlier = test.add(Record(x={f"f{j}": 1e6 for j in range(10)}, y=0.0))
        scaler = MinMaxScaler(configuration).fit(train)
        scaler.transform(test)

        ranges = scaler.learned["ranges"]
        train_matrix = numeric_dataframe.subset(train.ids()).to_matrix()
        for j in range(10):
            assert ranges[f"f{j}"] == (train_matrix[:, j].min(), train_matrix[:, j].max())
        assert all(v > 1.0 for v in test[outlier].x.values())


class TestReplayAfterReload:
    """Fit, save, close and reload a scaler -> estimator pipeline."""

    def test_predictions_bit_identical(self, configuration, numeric_dataframe):
        """Test predictions are unchanged by a close and reload cycle."""
        train, test = split(numeric_dataframe, 0.8, seed=1)
        scaler = MinMaxScaler(configuration)
        estimator = LinearRegression(configuration)
        pipeline = Pipeline([scaler, estimator])
        pipeline.fit(train)
        pipeline.save("X")
        before = pipeline.predict(test.copy()).predictions().astype(float)

        scaler.close()
        estimator.close()
        reloaded = Pipeline([MinMaxScaler.load("X", configuration), LinearRegression.load("X", configuration)])
        after = reloaded.predict(test.copy()).predictions().astype(float)

        np.testing.assert_array_equal(after, before)

    def test_delete_both_stages(self, configuration, numeric_dataframe):
        """Test scoped ownership: closing on exit, then deleting explicitly."""
        with Pipeline([MinMaxScaler(configuration), LinearRegression(configuration)]) as pipeline:
            pipeline.fit(numeric_dataframe)
            pipeline.save("X")
        pipeline.delete()

        assert configuration.storage.keyspaces() == []

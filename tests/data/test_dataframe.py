"""
Tests for Dataframe and Record.
"""

import numpy as np
import pytest

from stageml.data import ColumnType, Dataframe, Record
from stageml.errors import ClosedError, DeletedError, NotFoundError, SchemaMismatchError


@pytest.fixture
def small_df(configuration):
    df = Dataframe(
        {"age": ColumnType.NUMERICAL, "smoker": ColumnType.BOOLEAN, "city": ColumnType.CATEGORICAL},
        ColumnType.CATEGORICAL,
        configuration=configuration,
    )
    df.add(Record(x={"age": 30.0, "smoker": True, "city": "Oslo"}, y="yes"))
    df.add(Record(x={"age": 45.0, "smoker": False, "city": "Rome"}, y="no"))
    df.add(Record(x={"age": None, "smoker": True, "city": "Oslo"}, y="yes"))
    return df


class TestRecords:
    """Tests for adding, reading and removing records."""

    def test_ids_are_monotonic(self, small_df):
        """Test ids follow insertion order and are never reused."""
        assert small_df.ids() == [0, 1, 2]
        small_df.remove(2)
        assert small_df.add(Record(x={"age": 1.0})) == 3

    def test_explicit_id(self, small_df):
        """Test adding under a chosen id."""
        assert small_df.add(Record(x={"age": 1.0}), record_id=10) == 10
        assert 10 in small_df
        with pytest.raises(KeyError):
            small_df.add(Record(x={}), record_id=10)

    def test_undeclared_column(self, small_df):
        """Test records cannot introduce new columns."""
        with pytest.raises(SchemaMismatchError, match="weight"):
            small_df.add(Record(x={"weight": 70.0}))

    def test_schema_is_read_only(self, small_df):
        """Test the schema mapping cannot be mutated in place."""
        with pytest.raises(TypeError):
            small_df.schema["age"] = ColumnType.CATEGORICAL

    def test_columns_of_type(self, small_df):
        """Test filtering columns by type."""
        assert small_df.columns_of_type(ColumnType.CATEGORICAL) == ["city"]
        assert small_df.columns_of_type(ColumnType.NUMERICAL, ColumnType.BOOLEAN) == ["age", "smoker"]


class TestViews:
    """Tests for derived views of a Dataframe."""

    def test_to_matrix(self, small_df):
        """Test booleans become 0/1 and missing values 0.0."""
        matrix = small_df.to_matrix(["age", "smoker"])

        np.testing.assert_array_equal(matrix, [[30.0, 1.0], [45.0, 0.0], [0.0, 1.0]])

    def test_to_matrix_rejects_categorical(self, small_df):
        """Test categorical columns must be encoded first."""
        with pytest.raises(SchemaMismatchError, match="encode"):
            small_df.to_matrix()

    def test_to_matrix_unknown_column(self, small_df):
        """Test unknown columns are reported."""
        with pytest.raises(SchemaMismatchError, match="not in the schema"):
            small_df.to_matrix(["height"])

    def test_copy_is_independent(self, small_df):
        """Test copies share nothing with the source."""
        clone = small_df.copy()
        clone[0].x["age"] = 99.0

        assert small_df[0].x["age"] == 30.0
        assert clone.ids() == small_df.ids()

    def test_subset_keeps_ids(self, small_df):
        """Test subsets keep the original record ids."""
        subset = small_df.subset([2, 0])

        assert subset.ids() == [2, 0]
        assert subset[2].y == "yes"

    def test_replace_features(self, small_df):
        """Test swapping in a new schema with new rows."""
        features = {rid: {"age": r.x["age"]} for rid, r in small_df.items()}
        small_df.replace_features({"age": ColumnType.NUMERICAL}, features)

        assert small_df.columns == ["age"]
        assert small_df[1].x == {"age": 45.0}

    def test_replace_features_requires_every_row(self, small_df):
        """Test rows cannot be left behind on the old schema."""
        with pytest.raises(SchemaMismatchError, match="No features"):
            small_df.replace_features({"age": ColumnType.NUMERICAL}, {0: {"age": 1.0}})


class TestPersistence:
    """Tests for save, load, close and delete."""

    def test_save_load(self, small_df, configuration):
        """Test a saved Dataframe is restored with ids and schema."""
        small_df.save("patients")
        loaded = Dataframe.load("patients", configuration)

        assert loaded.ids() == [0, 1, 2]
        assert dict(loaded.schema) == dict(small_df.schema)
        assert loaded.label_type is ColumnType.CATEGORICAL
        assert loaded[1].x["city"] == "Rome"
        assert loaded.add(Record(x={})) == 3

    def test_load_missing(self, configuration):
        """Test loading an unknown name."""
        with pytest.raises(NotFoundError):
            Dataframe.load("nobody", configuration)

    def test_close(self, small_df, configuration):
        """Test a closed Dataframe rejects access but stays loadable."""
        small_df.save("patients")
        small_df.close()

        with pytest.raises(ClosedError):
            len(small_df)
        assert len(Dataframe.load("patients", configuration)) == 3

    def test_delete(self, small_df, configuration):
        """Test delete purges the saved copy and is idempotent."""
        small_df.save("patients")
        small_df.delete()
        small_df.delete()

        with pytest.raises(DeletedError):
            small_df.ids()
        with pytest.raises(DeletedError):
            small_df.close()
        with pytest.raises(NotFoundError):
            Dataframe.load("patients", configuration)

    def test_context_manager_closes(self, small_df):
        """Test leaving the block closes the Dataframe."""
        with small_df as df:
            assert len(df) == 3
        assert small_df.closed

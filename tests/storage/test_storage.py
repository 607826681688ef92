"""
Tests for the in-memory and persistent storage engines.
"""

import threading

import pytest

from stageml.errors import IOFailure
from stageml.storage import InMemoryStorageEngine, PersistentStorageEngine


@pytest.fixture(params=["memory", "persistent"])
def engine(request, tmp_path):
    """Each contract test runs against both engines."""
    if request.param == "memory":
        return InMemoryStorageEngine()
    return PersistentStorageEngine(tmp_path / "store")


class TestStorageContract:
    """Behaviour shared by every storage engine."""

    def test_put_get(self, engine):
        """Test storing and reading a value."""
        engine.put("m__scaler", "parameters", {"min": 1.0, "max": 3.0})

        assert engine.get("m__scaler", "parameters") == {"min": 1.0, "max": 3.0}
        assert engine.exists("m__scaler")

    def test_get_missing_returns_default(self, engine):
        """Test absent keys fall back to the default."""
        assert engine.get("m__scaler", "nothing") is None
        assert engine.get("m__scaler", "nothing", default=5) == 5

    def test_put_replaces(self, engine):
        """Test a second put overwrites the value."""
        engine.put("m__scaler", "k", 1)
        engine.put("m__scaler", "k", 2)

        assert engine.get("m__scaler", "k") == 2
        assert engine.keys("m__scaler") == ["k"]

    def test_values_are_copies(self, engine):
        """Test mutating a returned value does not change the stored one."""
        engine.put("m__scaler", "k", {"a": [1, 2]})
        value = engine.get("m__scaler", "k")
        value["a"].append(3)

        assert engine.get("m__scaler", "k") == {"a": [1, 2]}

    def test_remove(self, engine):
        """Test removing keys; removing twice is harmless."""
        engine.put("m__scaler", "a", 1)
        engine.put("m__scaler", "b", 2)
        engine.remove("m__scaler", "a")
        engine.remove("m__scaler", "a")

        assert engine.keys("m__scaler") == ["b"]

    def test_drop_keyspace_leaves_siblings(self, engine):
        """Test dropping one keyspace keeps the others."""
        engine.put("m__scaler", "k", 1)
        engine.put("m__pca", "k", 2)
        engine.drop_keyspace("m__scaler")
        engine.drop_keyspace("m__scaler")

        assert not engine.exists("m__scaler")
        assert engine.get("m__pca", "k") == 2
        assert engine.keyspaces() == ["m__pca"]

    def test_concurrent_writers(self, engine):
        """Test parallel puts into one keyspace all land."""

        def write(i):
            engine.put("m__scaler", f"k{i}", i)

        threads = [threading.Thread(target=write, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(engine.keys("m__scaler")) == 16
        assert engine.get("m__scaler", "k7") == 7


class TestPersistentStorageEngine:
    """Tests specific to the disk-backed engine."""

    def test_survives_reopen(self, tmp_path):
        """Test data written by one engine is read by a fresh one."""
        first = PersistentStorageEngine(tmp_path)
        first.put("Diabetes__min_max_scaler", "parameters", {"ranges": {"age": (0.0, 90.0)}})
        first.close()

        second = PersistentStorageEngine(tmp_path)
        assert second.get("Diabetes__min_max_scaler", "parameters") == {"ranges": {"age": (0.0, 90.0)}}
        assert (tmp_path / "Diabetes__min_max_scaler" / "parameters.pkl").exists()

    def test_remove_last_key_removes_directory(self, tmp_path):
        """Test an emptied keyspace leaves no directory behind."""
        engine = PersistentStorageEngine(tmp_path)
        engine.put("m__pca", "k", 1)
        engine.remove("m__pca", "k")

        assert not (tmp_path / "m__pca").exists()

    @pytest.mark.parametrize("name", ["../escape", "a/b", "", ".hidden"])
    def test_rejects_unsafe_names(self, tmp_path, name):
        """Test keyspace names cannot leave the storage directory."""
        engine = PersistentStorageEngine(tmp_path)

        with pytest.raises(ValueError, match="Invalid keyspace name"):
            engine.put(name, "k", 1)

    def test_unpicklable_value_raises_io_failure(self, tmp_path):
        """Test write failures surface as IOFailure and leave no file."""
        engine = PersistentStorageEngine(tmp_path)

        with pytest.raises(IOFailure):
            engine.put("m__pca", "k", lambda: None)
        assert engine.get("m__pca", "k") is None

    def test_stale_class_reference_raises_io_failure(self, tmp_path):
        """Test pickles naming a module that no longer exists surface as IOFailure."""
        (tmp_path / "m__pca").mkdir()
        (tmp_path / "m__pca" / "k.pkl").write_bytes(b"cstageml_removed_module\nThing\n.")
        engine = PersistentStorageEngine(tmp_path)

        with pytest.raises(IOFailure, match="Failed to read"):
            engine.get("m__pca", "k")

    def test_corrupt_file_raises_io_failure(self, tmp_path):
        """Test unreadable files surface as IOFailure."""
        (tmp_path / "m__pca").mkdir()
        (tmp_path / "m__pca" / "k.pkl").write_bytes(b"not a pickle")
        engine = PersistentStorageEngine(tmp_path)

        with pytest.raises(IOFailure, match="Failed to read"):
            engine.get("m__pca", "k")

"""
Tests for Configuration.
"""

import pytest

from stageml.config import Configuration, StorageEngineType
from stageml.storage import InMemoryStorageEngine, PersistentStorageEngine


class TestConfiguration:
    """Tests for building and validating configurations."""

    def test_defaults(self):
        """Test the default configuration is in-memory and concurrent."""
        config = Configuration()

        assert config.storage_engine is StorageEngineType.IN_MEMORY
        assert config.concurrency_enabled is True
        assert config.max_threads_per_task >= 1
        assert isinstance(config.storage, InMemoryStorageEngine)

    def test_storage_is_shared(self):
        """Test the engine is created once per configuration."""
        config = Configuration()

        assert config.storage is config.storage
        assert Configuration().storage is not config.storage

    def test_persistent_requires_directory(self):
        """Test the persistent engine needs a directory."""
        with pytest.raises(ValueError, match="storage_directory"):
            Configuration(storage_engine="persistent")

    def test_persistent_engine(self, tmp_path):
        """Test string engine names are accepted."""
        config = Configuration(storage_engine="persistent", storage_directory=str(tmp_path))

        assert isinstance(config.storage, PersistentStorageEngine)
        assert config.storage.directory == tmp_path

    def test_invalid_values(self):
        """Test invalid settings are rejected."""
        with pytest.raises(ValueError, match="Unknown storage_engine"):
            Configuration(storage_engine="cloud")
        with pytest.raises(ValueError, match="max_threads_per_task"):
            Configuration(max_threads_per_task=0)

    def test_immutable(self):
        """Test configurations cannot be changed after construction."""
        config = Configuration(random_seed=1)

        with pytest.raises(AttributeError):
            config.random_seed = 2

    def test_random_context_uses_seed(self):
        """Test the configured seed drives the random context."""
        config = Configuration(random_seed=42)

        assert config.random_context().seed == 42
        assert config.random_context().seed == config.random_context().seed

    def test_from_yaml(self, tmp_path):
        """Test loading a configuration file."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "storage_engine: persistent\n"
            f"storage_directory: {tmp_path / 'models'}\n"
            "random_seed: 7\n"
            "concurrency_enabled: false\n"
            "max_threads_per_task: 2\n"
        )

        config = Configuration.from_yaml(path)

        assert config.storage_engine is StorageEngineType.PERSISTENT
        assert config.random_seed == 7
        assert config.concurrency_enabled is False
        assert config.max_threads_per_task == 2

    def test_from_dict_rejects_unknown_keys(self):
        """Test typos in configuration keys are reported."""
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            Configuration.from_dict({"random_sead": 1})

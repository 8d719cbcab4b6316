"""Shared test fixtures for the fabric_doctor test suite."""

import pytest

from fabric_doctor.core.config import MigrationConfig, StoreLayout
from fabric_doctor.storage.memory import MemoryDatabase


@pytest.fixture()
def layout():
    """Return the default column family layout."""
    return StoreLayout.from_overrides()


@pytest.fixture()
def memory_db(layout):
    """Return an empty in-memory database with every known column family."""
    return MemoryDatabase(layout.schema)


@pytest.fixture()
def fast_config():
    """Return a config with no retry delay and a small batch size."""
    return MigrationConfig(batch_size=4, retry_delay=0)


@pytest.fixture()
def config_file(tmp_path):
    """Write a small config YAML and return its path."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "batch_size: 50\n"
        "max_consecutive_empty: 3\n"
        "column_families:\n"
        "  entry: default\n"
    )
    return path

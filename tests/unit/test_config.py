"""Unit tests for the config module."""

import tempfile
from pathlib import Path

import pytest
import yaml

from fabric_doctor.constants import DEFAULT_COLUMN_FAMILIES
from fabric_doctor.core.config import (
    MigrationConfig,
    StoreLayout,
    create_default_config,
    load_config,
)
from fabric_doctor.exceptions import ConfigError


def test_load_config_with_empty_file():
    """Test loading config from an empty file."""
    with tempfile.NamedTemporaryFile(suffix=".yaml") as temp_file:
        config = load_config(Path(temp_file.name))

        # Check replication defaults
        assert config.batch_size == 1000
        assert config.max_retries == 3
        assert config.retry_delay == 0.5

        # Check walk cutoffs
        assert config.max_consecutive_empty == 5
        assert config.max_chain_entries == 1000

        assert config.column_families == {}


def test_load_config_with_values(config_file):
    """Test loading config with specific values."""
    config = load_config(config_file)

    assert config.batch_size == 50
    assert config.max_consecutive_empty == 3
    assert config.column_families == {"entry": "default"}


def test_load_config_missing_file(tmp_path):
    """A missing config file falls back to defaults."""
    config = load_config(tmp_path / "absent.yaml")
    assert config == MigrationConfig()


def test_load_config_unparsable_file(tmp_path):
    """Malformed YAML logs a warning and uses defaults."""
    path = tmp_path / "config.yaml"
    path.write_text("batch_size: [unclosed\n")
    assert load_config(path) == MigrationConfig()


def test_load_config_non_mapping_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


@pytest.mark.parametrize(
    "field,value",
    [
        ("batch_size", 0),
        ("max_consecutive_empty", 0),
        ("max_chain_entries", -1),
        ("max_open_files", 0),
        ("max_retries", -1),
    ],
)
def test_invalid_values_raise(field, value):
    with pytest.raises(ConfigError, match=field):
        MigrationConfig(**{field: value})


@pytest.mark.parametrize(
    "field,value",
    [
        ("batch_size", "abc"),
        ("max_chain_entries", 1.5),
        ("max_open_files", True),
        ("max_retries", None),
        ("retry_delay", "soon"),
        ("column_families", ["entry"]),
    ],
)
def test_wrong_types_raise_config_error(field, value):
    with pytest.raises(ConfigError, match=field):
        MigrationConfig(**{field: value})


def test_load_config_wrong_type(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text('batch_size: "abc"\n')
    with pytest.raises(ConfigError, match="batch_size must be an integer"):
        load_config(path)


def test_create_default_config(tmp_path):
    """Test creating a default config file."""
    path = tmp_path / "config.yaml"
    assert create_default_config(path) is True

    with open(path) as f:
        data = yaml.safe_load(f)

    assert data["batch_size"] == 1000
    assert data["column_families"] == {"entry": "default"}
    # Round trips through load_config
    assert load_config(path).batch_size == 1000


def test_create_default_config_does_not_overwrite(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("batch_size: 7\n")

    assert create_default_config(path) is False
    assert path.read_text() == "batch_size: 7\n"


class TestStoreLayout:
    """Tests for StoreLayout.from_overrides()."""

    def test_defaults(self):
        layout = StoreLayout.from_overrides()
        assert layout.entry == "default"
        assert layout.entry_by_height == DEFAULT_COLUMN_FAMILIES["entry_by_height"]
        assert layout.contractstate == "contractstate"
        assert set(DEFAULT_COLUMN_FAMILIES.values()) <= set(layout.schema)

    def test_override_adds_name_to_schema(self):
        layout = StoreLayout.from_overrides({"contractstate": "state_v2"})
        assert layout.contractstate == "state_v2"
        assert "state_v2" in layout.schema

    def test_unknown_role_raises(self):
        with pytest.raises(ConfigError, match="Unknown column family roles"):
            StoreLayout.from_overrides({"blocks": "b"})

    def test_unknown_schema_version_raises(self):
        with pytest.raises(ConfigError, match="schema_version"):
            StoreLayout.from_overrides(schema_version=99)

    def test_dependent_stores(self):
        layout = StoreLayout.from_overrides()
        assert layout.dependent_stores == (
            "muts",
            "muts_rev",
            DEFAULT_COLUMN_FAMILIES["my_attestation_for_entry"],
            DEFAULT_COLUMN_FAMILIES["consensus_by_entryhash"],
        )

    def test_config_layout_uses_overrides(self):
        config = MigrationConfig(column_families={"sysconf": "sys"})
        assert config.layout.sysconf == "sys"

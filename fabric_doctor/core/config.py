"""
Configuration module for the fabric inspection and migration tool.

This module provides functions for loading configuration settings from YAML
files, creating a default configuration, and resolving the column family
layout a database is expected to have.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from fabric_doctor.constants import (
    COLUMN_FAMILY_TABLES,
    CURRENT_SCHEMA_VERSION,
    DEFAULT_BATCH_SIZE,
    DEFAULT_COLUMN_FAMILIES,
    DEFAULT_MAX_CHAIN_ENTRIES,
    DEFAULT_MAX_CONSECUTIVE_EMPTY,
    DEFAULT_MAX_OPEN_FILES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    MAX_KEY_SIZE,
    MAX_VALUE_SIZE,
)
from fabric_doctor.exceptions import ConfigError
from fabric_doctor.utils.logging import log_with_context


@dataclass(frozen=True)
class StoreLayout:
    """Maps the roles the tool works with to on-disk column family names."""

    entry: str
    entry_by_height: str
    entry_by_slot: str
    contractstate: str
    sysconf: str
    muts: str
    muts_rev: str
    my_attestation_for_entry: str
    consensus: str
    consensus_by_entryhash: str
    schema: tuple[str, ...]

    @classmethod
    def from_overrides(
        cls,
        overrides: dict[str, str] | None = None,
        schema_version: int = CURRENT_SCHEMA_VERSION,
    ) -> StoreLayout:
        if schema_version not in COLUMN_FAMILY_TABLES:
            raise ConfigError(
                f"Unknown schema_version {schema_version}, "
                f"known versions: {sorted(COLUMN_FAMILY_TABLES)}"
            )
        names = {**DEFAULT_COLUMN_FAMILIES, **(overrides or {})}
        unknown = set(overrides or {}) - set(DEFAULT_COLUMN_FAMILIES)
        if unknown:
            raise ConfigError(f"Unknown column family roles: {sorted(unknown)}")

        schema = list(COLUMN_FAMILY_TABLES[schema_version])
        for name in names.values():
            if name not in schema:
                schema.append(name)

        role_fields = {
            f for f in cls.__dataclass_fields__ if f != "schema"
        }
        return cls(
            schema=tuple(schema),
            **{role: names[role] for role in role_fields},
        )

    @property
    def dependent_stores(self) -> tuple[str, ...]:
        """Column families keyed by entry hash and copied per selected entry."""
        return (
            self.muts,
            self.muts_rev,
            self.my_attestation_for_entry,
            self.consensus_by_entryhash,
        )


@dataclass
class MigrationConfig:
    """Typed configuration for the tool.

    All fields have defaults, so an empty or missing config file is valid.
    """

    # Replication
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    max_key_size: int = MAX_KEY_SIZE
    max_value_size: int = MAX_VALUE_SIZE

    # Chain walk cutoffs
    max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY
    max_chain_entries: int = DEFAULT_MAX_CHAIN_ENTRIES

    # Storage
    max_open_files: int = DEFAULT_MAX_OPEN_FILES
    schema_version: int = CURRENT_SCHEMA_VERSION
    column_families: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in (
            "batch_size",
            "max_retries",
            "max_key_size",
            "max_value_size",
            "max_consecutive_empty",
            "max_chain_entries",
            "max_open_files",
            "schema_version",
        ):
            value = getattr(self, name)
            # bool is an int subclass
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        if not isinstance(self.retry_delay, (int, float)) or isinstance(
            self.retry_delay, bool
        ):
            raise ConfigError(f"retry_delay must be a number, got {self.retry_delay!r}")
        if not isinstance(self.column_families, dict):
            raise ConfigError("column_families must be a mapping of role to name")

        for name in (
            "batch_size",
            "max_consecutive_empty",
            "max_chain_entries",
            "max_open_files",
        ):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1")
        if self.max_retries < 0:
            raise ConfigError("max_retries must not be negative")

    @property
    def layout(self) -> StoreLayout:
        return StoreLayout.from_overrides(self.column_families, self.schema_version)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """Create a MigrationConfig from a raw config dictionary."""
        return cls(
            batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
            max_retries=data.get("max_retries", DEFAULT_MAX_RETRIES),
            retry_delay=data.get("retry_delay", DEFAULT_RETRY_DELAY),
            max_key_size=data.get("max_key_size", MAX_KEY_SIZE),
            max_value_size=data.get("max_value_size", MAX_VALUE_SIZE),
            max_consecutive_empty=data.get(
                "max_consecutive_empty", DEFAULT_MAX_CONSECUTIVE_EMPTY
            ),
            max_chain_entries=data.get("max_chain_entries", DEFAULT_MAX_CHAIN_ENTRIES),
            max_open_files=data.get("max_open_files", DEFAULT_MAX_OPEN_FILES),
            schema_version=data.get("schema_version", CURRENT_SCHEMA_VERSION),
            column_families=data.get("column_families") or {},
        )


def load_config(config_path: Path) -> MigrationConfig:
    """
    Load configuration from YAML file and apply default values.

    If the file doesn't exist or cannot be parsed, a warning is logged and
    default settings are used. Values that parse but are invalid raise
    ConfigError.

    Args:
        config_path: Path to the config YAML file

    Returns:
        MigrationConfig with all necessary defaults applied
    """
    raw: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded_config = yaml.safe_load(f)
                # Handle None result from empty file
                if loaded_config is not None:
                    raw = loaded_config
            log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
        except (yaml.YAMLError, OSError) as e:
            log_with_context(
                logging.WARNING, f"Failed to load config file {config_path}: {e}"
            )
    else:
        log_with_context(
            logging.DEBUG,
            f"Config file {config_path} not found, using default settings",
        )

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    return MigrationConfig.from_dict(raw)


def create_default_config(output_path: Path) -> bool:
    """
    Create a default configuration file with recommended settings.

    The function will not overwrite an existing configuration file.

    Args:
        output_path: Path where the default config should be saved

    Returns:
        True if the config file was created successfully, False otherwise
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING,
            f"Config file {output_path} already exists, not overwriting",
        )
        return False

    default_config = {
        # Replication
        "batch_size": DEFAULT_BATCH_SIZE,
        "max_retries": DEFAULT_MAX_RETRIES,
        "retry_delay": DEFAULT_RETRY_DELAY,
        # Chain walk cutoffs
        "max_consecutive_empty": DEFAULT_MAX_CONSECUTIVE_EMPTY,
        "max_chain_entries": DEFAULT_MAX_CHAIN_ENTRIES,
        # Storage
        "max_open_files": DEFAULT_MAX_OPEN_FILES,
        "schema_version": CURRENT_SCHEMA_VERSION,
        "column_families": {"entry": DEFAULT_COLUMN_FAMILIES["entry"]},
    }

    try:
        with open(output_path, "w") as f:
            yaml.safe_dump(default_config, f, default_flow_style=False)
        log_with_context(logging.INFO, f"Created default config file at {output_path}")
        return True
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to create default config file: {e}")
        return False

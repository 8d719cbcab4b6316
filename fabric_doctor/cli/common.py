"""Shared CLI infrastructure: option decorators, error handlers, and the CLI group."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import click

import fabric_doctor
from fabric_doctor.constants import DEFAULT_COLUMN_FAMILIES
from fabric_doctor.core.config import MigrationConfig, load_config
from fabric_doctor.exceptions import (
    BatchWriteError,
    FabricDoctorError,
    VerificationMismatch,
)
from fabric_doctor.storage.rocks import OpenMode, RocksDatabase, open_database
from fabric_doctor.utils.logging import log_with_context

# Create logger instance
logger = logging.getLogger("fabric_doctor")


# ---------------------------------------------------------------------------
# Shared option decorator
# ---------------------------------------------------------------------------


def common_options(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator that adds options shared across all subcommands.

    Args:
        f: The Click command function to decorate.

    Returns:
        The decorated function with common options attached.
    """
    f = click.option(
        "--db_path",
        required=True,
        type=click.Path(path_type=Path),
        help="Path to the RocksDB database to read",
    )(f)
    f = click.option(
        "--config",
        default="config.yaml",
        show_default=True,
        type=click.Path(path_type=Path),
        help="Path to config YAML",
    )(f)
    f = click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Enable verbose console logging (shows DEBUG level messages)",
    )(f)
    return f


def store_option(f: Callable[..., None]) -> Callable[..., None]:
    """Adds ``--store``, the column family a command reads."""
    return click.option(
        "--store",
        default="contractstate",
        show_default=True,
        help="Column family to read",
    )(f)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=fabric_doctor.__version__, prog_name="fabric-doctor")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Inspect and migrate chain databases.

    Args:
        ctx: The Click context (injected by ``@click.pass_context``).
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def open_source(db_path: Path, config: MigrationConfig) -> RocksDatabase:
    """Open a database read-only with the configured schema."""
    return open_database(
        db_path,
        OpenMode.READ_ONLY,
        schema=config.layout.schema,
        max_open_files=config.max_open_files,
    )


def load_settings(config_path: Path) -> MigrationConfig:
    return load_config(Path(config_path))


def resolve_store(config: MigrationConfig, store: str) -> str:
    """Map a role (``entry``, ``contractstate``...) to its column family name.

    Anything that isn't a known role is taken as a column family name.
    """
    if store in DEFAULT_COLUMN_FAMILIES:
        return config.column_families.get(store, DEFAULT_COLUMN_FAMILIES[store])
    return store


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_exception(e: Exception) -> None:
    """Handle different types of exceptions.

    Args:
        e: The exception to handle.
    """
    if isinstance(e, VerificationMismatch):
        log_with_context(logging.ERROR, str(e), store=e.store)
        log_with_context(
            logging.INFO,
            "Records already written to the target were kept. "
            "Re-running the migration is safe.",
        )
    elif isinstance(e, BatchWriteError):
        log_with_context(logging.ERROR, str(e))
        log_with_context(
            logging.INFO,
            "Check free disk space and open file limits (max_open_files), then re-run.",
        )
    elif isinstance(e, FabricDoctorError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, FileNotFoundError):
        log_with_context(logging.ERROR, f"File not found: {e}")
        log_with_context(
            logging.INFO,
            "Please check that all required files exist and paths are correct.",
        )
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Interrupted by user.")
        log_with_context(
            logging.INFO, "Records already written to the target were kept."
        )
    else:
        log_with_context(logging.ERROR, f"Command failed: {e}", exc_info=True)

"""CLI command handler for the migrate workflow."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from types import SimpleNamespace

import click

from fabric_doctor.cli.common import cli, common_options, handle_exception, load_settings
from fabric_doctor.cli.report import (
    create_output_directory,
    generate_report,
    print_migration_summary,
)
from fabric_doctor.core.migrator import (
    FabricMigrator,
    MigrationMode,
    count_existing_records,
)
from fabric_doctor.utils.logging import log_with_context, setup_logger


# ---------------------------------------------------------------------------
# migrate subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@click.option(
    "--target",
    type=click.Path(path_type=Path),
    default=None,
    help="Path of the database to migrate into (created if missing)",
)
@click.option(
    "--weak",
    is_flag=True,
    default=False,
    help="Only copy contractstate and sysconf, skip the chain",
)
@click.option(
    "--dry_run",
    is_flag=True,
    default=False,
    help="Run the whole migration into memory without writing a target",
)
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    default=False,
    help="Don't ask for confirmation when the target already holds data",
)
@click.option(
    "--output_dir",
    default=None,
    help="Directory for the log file and report (default: migration_logs/run_<timestamp>)",
)
def migrate(
    db_path: Path,
    config: Path,
    verbose: bool,
    target: Path | None,
    weak: bool,
    dry_run: bool,
    yes: bool,
    output_dir: str | None,
) -> None:
    """Migrate state and the recent chain from DB_PATH into a new database.

    Args:
        db_path: Source database, opened read-only.
        config: Path to config YAML.
        verbose: Enable verbose console logging.
        target: Target database path.
        weak: Only copy the state stores.
        dry_run: Write into memory instead of the target.
        yes: Skip the confirmation prompt.
        output_dir: Where the log file and report go.
    """
    if target is None and not dry_run:
        raise click.UsageError("--target is required unless --dry_run is given")

    args = SimpleNamespace(
        db_path=db_path,
        target=target,
        config=config,
        verbose=verbose,
        mode=MigrationMode.WEAK if weak else MigrationMode.FULL,
        dry_run=dry_run,
        yes=yes,
    )

    # Create output directory early so all operations are logged to file
    output_dir = output_dir or create_output_directory()
    setup_logger(args.verbose, output_dir)
    log_startup_info(args)
    log_with_context(logging.INFO, f"Output directory: {output_dir}")

    migrator = None
    try:
        settings = load_settings(args.config)

        if not args.dry_run and not args.yes:
            existing = count_existing_records(args.target, settings)
            if existing and not click.confirm(
                f"Target {args.target} already holds {existing} contractstate "
                "records. Continue and merge into it?",
                default=False,
            ):
                log_with_context(logging.INFO, "Migration cancelled")
                return

        migrator = FabricMigrator(
            args.db_path,
            args.target,
            settings,
            mode=args.mode,
            dry_run=args.dry_run,
        )
        migrator.migrate()
    except Exception as e:
        handle_exception(e)
        sys.exit(1)
    finally:
        if migrator is not None:
            report_file = generate_report(migrator, output_dir)
            print_migration_summary(migrator, report_file)


def log_startup_info(args: SimpleNamespace) -> None:
    """Log the settings a migration run starts with."""
    log_with_context(logging.INFO, "Starting fabric migration")
    log_with_context(logging.INFO, f"Source: {args.db_path}")
    log_with_context(
        logging.INFO,
        f"Target: {'(memory, dry run)' if args.dry_run else args.target}",
    )
    log_with_context(logging.INFO, f"Mode: {args.mode.value}")
    log_with_context(logging.INFO, f"Config: {args.config}")

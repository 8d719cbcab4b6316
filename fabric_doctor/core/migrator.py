"""
Main migrator class for the fabric inspection and migration tool
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from fabric_doctor.chain.walker import (
    ChainEntry,
    ChainWalker,
    MigrationSet,
    find_window,
    height_index_key,
    slot_index_key,
)
from fabric_doctor.codec import encode_safe, integer
from fabric_doctor.constants import ROOTED_HEIGHT_KEY
from fabric_doctor.core.config import MigrationConfig
from fabric_doctor.core.replicator import Replicator, count_records
from fabric_doctor.core.state import CopyResult, MigrationState
from fabric_doctor.exceptions import FabricDoctorError
from fabric_doctor.storage.base import Database, Record
from fabric_doctor.storage.memory import MemoryDatabase
from fabric_doctor.storage.rocks import OpenMode, open_database
from fabric_doctor.utils.logging import log_with_context


class MigrationMode(Enum):
    """FULL migrates state and chain; WEAK only the two state stores."""

    FULL = "full"
    WEAK = "weak"


STEP_OPEN = "open"
STEP_CONTRACTSTATE = "contractstate"
STEP_SYSCONF = "sysconf"
STEP_WINDOW = "window"
STEP_CHAIN = "chain"
STEP_ROOTED_HEIGHT = "rooted_height"
STEP_DEPENDENTS = "dependents"


class _EntryStream:
    """Buffers walked entries and their index records, flushing in batches."""

    def __init__(self, migrator: FabricMigrator):
        self.migrator = migrator
        layout = migrator.layout
        self.stores = (layout.entry, layout.entry_by_height, layout.entry_by_slot)
        self.height_index = migrator.source.column_family(layout.entry_by_height)
        self.slot_index = migrator.source.column_family(layout.entry_by_slot)
        self.pending: dict[str, list[Record]] = {name: [] for name in self.stores}
        self.missing_index = 0
        self.seen: set[bytes] = set()

    def __call__(self, entry: ChainEntry) -> None:
        if entry.hash in self.seen:
            return
        self.seen.add(entry.hash)

        entry_store, height_store, slot_store = self.stores
        self.pending[entry_store].append((entry.hash, entry.entry_bytes))
        for store, index, key in (
            (height_store, self.height_index, height_index_key(entry.height, entry.hash)),
            (slot_store, self.slot_index, slot_index_key(entry.slot, entry.hash)),
        ):
            value = index.get(key)
            if value is None:
                self.missing_index += 1
                log_with_context(
                    logging.DEBUG,
                    f"No index record for entry {entry.hash.hex()}",
                    store=store,
                    height=entry.height,
                )
                continue
            self.pending[store].append((key, value))

        if len(self.pending[entry_store]) >= self.migrator.config.batch_size:
            self.flush()

    def flush(self) -> None:
        for store, records in self.pending.items():
            if records:
                result = self.migrator.replicator.put_records(
                    self.migrator.target, records, store
                )
                self.migrator.state.record_copy(store, result)
                self.pending[store] = []


class FabricMigrator:
    """Migrates a chain database's state and recent chain into a new database."""

    def __init__(
        self,
        source_path: Path,
        target_path: Optional[Path],
        config: Optional[MigrationConfig] = None,
        mode: MigrationMode = MigrationMode.FULL,
        dry_run: bool = False,
        show_progress: bool = True,
    ):
        """Initialize the migrator with the required parameters."""
        self.source_path = Path(source_path)
        self.target_path = Path(target_path) if target_path else None
        self.config = config or MigrationConfig()
        self.layout = self.config.layout
        self.mode = mode
        self.dry_run = dry_run
        self.replicator = Replicator.from_config(self.config, show_progress)
        self.state = MigrationState()

        self.source: Optional[Database] = None
        self.target: Optional[Database] = None
        self.migration_set: Optional[MigrationSet] = None

        if not dry_run and self.target_path is None:
            raise FabricDoctorError("A target path is required unless running dry")

    @property
    def required_stores(self) -> list[str]:
        layout = self.layout
        stores = [layout.contractstate, layout.sysconf]
        if self.mode is MigrationMode.FULL:
            stores += [
                layout.entry,
                layout.entry_by_height,
                layout.entry_by_slot,
                *layout.dependent_stores,
                layout.consensus,
            ]
        return stores

    def migrate(self) -> MigrationState:
        """
        Run the migration steps in order.

        Any FabricDoctorError stops the run; whatever was already written to
        the target stays there and the error is recorded on the state before
        being re-raised.
        """
        log_with_context(
            logging.INFO,
            f"Starting {self.mode.value} migration of {self.source_path}"
            + (" (dry run)" if self.dry_run else f" into {self.target_path}"),
        )
        try:
            self._open_databases()
            self._copy_and_verify(self.layout.contractstate, STEP_CONTRACTSTATE)
            self._copy_and_verify(self.layout.sysconf, STEP_SYSCONF)

            if self.mode is MigrationMode.FULL:
                window = find_window(self.source, self.layout)
                self.state.window = window
                self.state.completed_steps.append(STEP_WINDOW)

                self._migrate_chain()
                self._write_rooted_height()
                self._copy_dependents()

            log_with_context(
                logging.INFO,
                f"Migration finished: {self.state.total_copied} records copied, "
                f"{self.state.total_skipped} skipped",
            )
        except FabricDoctorError as e:
            self.state.errors.append(str(e))
            log_with_context(logging.ERROR, f"Migration failed: {e}")
            raise
        finally:
            self.state.finish()
            self.close()

        return self.state

    def close(self) -> None:
        # A dry-run target is kept so its contents can be inspected
        if self.source is not None:
            self.source.close()
            self.source = None
        if self.target is not None and not self.dry_run:
            self.target.close()
            self.target = None

    # -- steps --------------------------------------------------------------

    def _open_databases(self) -> None:
        self.source = open_database(
            self.source_path,
            OpenMode.READ_ONLY,
            schema=self.layout.schema,
            max_open_files=self.config.max_open_files,
        )
        for name in self.required_stores:
            self.source.column_family(name)

        if self.dry_run:
            self.target = MemoryDatabase(self.layout.schema)
        else:
            self.target = open_database(
                self.target_path,
                OpenMode.READ_WRITE,
                schema=self.layout.schema,
                max_open_files=self.config.max_open_files,
            )
        self.state.completed_steps.append(STEP_OPEN)

    def _copy_and_verify(self, name: str, step: str) -> None:
        started = time.time()
        before = count_records(self.target.column_family(name))
        result = self.replicator.copy_all(self.source, self.target, name)
        self.state.record_copy(name, result)

        store = self.state.store(name)
        store.verified = self.replicator.verify(
            self.source, self.target, name, result, before
        )
        store.duration = time.time() - started
        self.state.completed_steps.append(step)

    def _migrate_chain(self) -> None:
        walker = ChainWalker(
            self.source,
            self.layout,
            max_consecutive_empty=self.config.max_consecutive_empty,
            max_chain_entries=self.config.max_chain_entries,
        )
        stream = _EntryStream(self)
        self.migration_set = walker.walk(self.state.window, on_entry=stream)
        stream.flush()

        self.state.phase_reports = list(self.migration_set.reports)
        self.state.entries_selected = len(stream.seen)
        self.state.dependent_hashes = len(self.migration_set.dependent_hashes)
        if stream.missing_index:
            log_with_context(
                logging.WARNING,
                f"{stream.missing_index} index records were missing for walked entries",
            )
        self.state.completed_steps.append(STEP_CHAIN)

    def _write_rooted_height(self) -> None:
        rooted_height = self.state.window.rooted_height
        result = self.replicator.put_records(
            self.target,
            [(ROOTED_HEIGHT_KEY, encode_safe(integer(rooted_height)))],
            self.layout.sysconf,
        )
        self.state.record_copy(self.layout.sysconf, CopyResult(copied=result.copied))
        log_with_context(
            logging.INFO,
            f"Wrote rooted_height={rooted_height}",
            store=self.layout.sysconf,
        )
        self.state.completed_steps.append(STEP_ROOTED_HEIGHT)

    def _copy_dependents(self) -> None:
        hashes = self.migration_set.dependent_hashes
        for name in self.layout.dependent_stores:
            started = time.time()
            result = self.replicator.copy_selected(self.source, self.target, hashes, name)
            self.state.record_copy(name, result)
            self.state.store(name).duration = time.time() - started

        started = time.time()
        name = self.layout.consensus
        result = self.replicator.copy_prefixed(self.source, self.target, hashes, name)
        self.state.record_copy(name, result)
        self.state.store(name).duration = time.time() - started
        self.state.completed_steps.append(STEP_DEPENDENTS)


def count_existing_records(target_path: Path, config: MigrationConfig) -> int:
    """
    Count contractstate records already in a migration target.

    Returns 0 when the target doesn't exist yet or has no contractstate store.
    """
    target_path = Path(target_path)
    if not target_path.exists():
        return 0
    layout = config.layout
    with open_database(
        target_path,
        OpenMode.READ_ONLY,
        schema=layout.schema,
        max_open_files=config.max_open_files,
    ) as db:
        if not db.has(layout.contractstate):
            return 0
        return count_records(db.column_family(layout.contractstate))

"""
Column family replication.

Copies records from a source column family into the same-named column family
of a target database, in batches. Records over the storage engine's size
ceilings are skipped with a warning, failed batches are retried, and a copy
can be verified afterwards by comparing the target's row count delta with
the number of keys the copy created.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Sequence

from tqdm import tqdm

from fabric_doctor.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    MAX_KEY_SIZE,
    MAX_VALUE_SIZE,
)
from fabric_doctor.core.config import MigrationConfig
from fabric_doctor.core.state import CopyResult
from fabric_doctor.exceptions import (
    BatchWriteError,
    RecordTooLarge,
    VerificationMismatch,
)
from fabric_doctor.storage.base import ColumnFamily, Database, Record
from fabric_doctor.utils.logging import log_with_context


def count_records(cf: ColumnFamily) -> int:
    """Count the records in a column family with a full scan."""
    return cf.count()


class Replicator:
    """Batched, retrying record copier."""

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_key_size: int = MAX_KEY_SIZE,
        max_value_size: int = MAX_VALUE_SIZE,
        show_progress: bool = True,
    ):
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_key_size = max_key_size
        self.max_value_size = max_value_size
        self.show_progress = show_progress

    @classmethod
    def from_config(
        cls, config: MigrationConfig, show_progress: bool = True
    ) -> Replicator:
        return cls(
            batch_size=config.batch_size,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            max_key_size=config.max_key_size,
            max_value_size=config.max_value_size,
            show_progress=show_progress,
        )

    # -- public copies ------------------------------------------------------

    def copy_all(self, source: Database, target: Database, name: str) -> CopyResult:
        """Stream every record of ``name`` from source to target."""
        log_with_context(logging.INFO, "Copying all records", store=name)
        records = source.column_family(name).iterate()
        return self._copy(records, target.column_family(name), name)

    def copy_selected(
        self,
        source: Database,
        target: Database,
        keys: Iterable[bytes],
        name: str,
    ) -> CopyResult:
        """
        Copy the records stored under ``keys``.

        Keys absent from the source are counted in ``not_found``; dependent
        records are optional per entry so absence is not an error.
        """
        source_cf = source.column_family(name)
        missing = CopyResult()

        def lookups():
            for key in keys:
                value = source_cf.get(key)
                if value is None:
                    missing.not_found += 1
                    continue
                yield key, value

        copied = self._copy(lookups(), target.column_family(name), name)
        result = copied + missing
        log_with_context(
            logging.INFO,
            f"Copied {result.copied} selected records, {result.not_found} not found",
            store=name,
        )
        return result

    def copy_prefixed(
        self,
        source: Database,
        target: Database,
        prefixes: Iterable[bytes],
        name: str,
    ) -> CopyResult:
        """
        Copy every record whose key starts with one of ``prefixes``.

        A prefix that matches nothing counts once in ``not_found``.
        """
        source_cf = source.column_family(name)
        missing = CopyResult()

        def scans():
            for prefix in dict.fromkeys(prefixes):
                matched = False
                for record in source_cf.iterate(prefix=prefix):
                    matched = True
                    yield record
                if not matched:
                    missing.not_found += 1

        copied = self._copy(scans(), target.column_family(name), name)
        result = copied + missing
        log_with_context(
            logging.INFO,
            f"Copied {result.copied} prefixed records, "
            f"{result.not_found} prefixes had no records",
            store=name,
        )
        return result

    def put_records(
        self, target: Database, items: Iterable[Record], name: str
    ) -> CopyResult:
        """Write already fetched records. Re-writing an existing key is harmless."""
        return self._copy(items, target.column_family(name), name, progress=False)

    # -- verification -------------------------------------------------------

    def verify(
        self,
        source: Database,
        target: Database,
        name: str,
        result: CopyResult,
        target_before: int,
    ) -> bool:
        """
        Check a full copy of ``name`` against both databases.

        Every source record must have been read (copied or skipped as
        oversized), and the target must have grown by exactly the number
        of keys the copy created.

        Raises:
            VerificationMismatch: If either count differs
        """
        source_count = count_records(source.column_family(name))
        target_after = count_records(target.column_family(name))
        actual = target_after - target_before

        read = result.copied + result.skipped
        if read != source_count:
            raise VerificationMismatch(
                store=name,
                expected=source_count,
                actual=read,
                source_count=source_count,
                target_before=target_before,
                target_after=target_after,
                check="records read from source",
            )
        if actual != result.created:
            raise VerificationMismatch(
                store=name,
                expected=result.created,
                actual=actual,
                source_count=source_count,
                target_before=target_before,
                target_after=target_after,
            )

        log_with_context(
            logging.INFO,
            f"Verified: {actual} new records (source={source_count}, "
            f"target={target_after})",
            store=name,
        )
        return True

    # -- internals ----------------------------------------------------------

    def _check_size(self, key: bytes, value: bytes) -> None:
        if len(key) > self.max_key_size:
            raise RecordTooLarge(
                f"Key {key[:16].hex()}... is {len(key)} bytes "
                f"(limit {self.max_key_size})"
            )
        if len(value) > self.max_value_size:
            raise RecordTooLarge(
                f"Value for key {key[:16].hex()} is {len(value)} bytes "
                f"(limit {self.max_value_size})"
            )

    def _copy(
        self,
        records: Iterable[Record],
        target_cf: ColumnFamily,
        name: str,
        progress: bool = True,
    ) -> CopyResult:
        result = CopyResult()
        batch: list[Record] = []

        pbar = tqdm(
            records,
            desc=f"Copying {name}",
            unit=" records",
            disable=not (progress and self.show_progress),
        )
        for key, value in pbar:
            try:
                self._check_size(key, value)
            except RecordTooLarge as e:
                result.skipped += 1
                log_with_context(logging.WARNING, f"Skipping record: {e}", store=name)
                continue
            batch.append((key, value))
            if len(batch) >= self.batch_size:
                self._flush(target_cf, batch, result, name)
                batch = []
        pbar.close()

        if batch:
            self._flush(target_cf, batch, result, name)

        if result.skipped:
            log_with_context(
                logging.WARNING,
                f"Skipped {result.skipped} records over the size limits",
                store=name,
            )
        return result

    def _flush(
        self,
        target_cf: ColumnFamily,
        batch: Sequence[Record],
        result: CopyResult,
        name: str,
    ) -> None:
        created = len({key for key, _ in batch if target_cf.get(key) is None})
        self._write_with_retry(target_cf, batch, name)
        result.copied += len(batch)
        result.created += created

    def _write_with_retry(
        self, target_cf: ColumnFamily, batch: Sequence[Record], name: str
    ) -> None:
        for attempt in range(self.max_retries + 1):
            try:
                target_cf.put_batch(batch)
                return
            except Exception as e:  # engine errors surface as bare Exception
                if attempt < self.max_retries:
                    log_with_context(
                        logging.WARNING,
                        f"Batch write of {len(batch)} records failed: {e}. "
                        f"Retrying in {self.retry_delay:.1f} seconds...",
                        store=name,
                    )
                    time.sleep(self.retry_delay)
                else:
                    log_with_context(
                        logging.ERROR,
                        f"Max retries reached. Last error: {e}",
                        store=name,
                    )
                    raise BatchWriteError(
                        f"Failed to write batch of {len(batch)} records to "
                        f"{name} after {self.max_retries + 1} attempts: {e}"
                    ) from e

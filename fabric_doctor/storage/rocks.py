"""
RocksDB backend built on rocksdict.

Databases are always opened in raw mode so keys and values are plain bytes.
The source of a migration is opened read-only; the target is opened
read-write and any column family named by the schema is created if missing.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from rocksdict import AccessType, Options, Rdict, WriteBatch

from fabric_doctor.constants import DEFAULT_MAX_OPEN_FILES
from fabric_doctor.exceptions import StorageError
from fabric_doctor.storage.base import ColumnFamily, Database, Record
from fabric_doctor.utils.logging import log_with_context


class OpenMode(Enum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


def _options(max_open_files: int, create: bool = False) -> Options:
    opts = Options(raw_mode=True)
    opts.set_max_open_files(max_open_files)
    if create:
        opts.create_if_missing(True)
        opts.create_missing_column_families(True)
    return opts


class RocksColumnFamily(ColumnFamily):
    def __init__(self, db: RocksDatabase, name: str):
        self.name = name
        self._db = db
        self._view = db._rdict.get_column_family(name)
        self._handle = db._rdict.get_column_family_handle(name)

    def get(self, key: bytes) -> bytes | None:
        return self._view.get(key)

    def put_batch(self, items: Iterable[Record]) -> None:
        if self._db.read_only:
            raise StorageError(f"Cannot write to '{self.name}': database is read-only")
        batch = WriteBatch(raw_mode=True)
        for key, value in items:
            batch.put(key, value, self._handle)
        self._db._rdict.write(batch)

    def iterate(
        self,
        start: bytes | None = None,
        prefix: bytes | None = None,
        reverse: bool = False,
    ) -> Iterator[Record]:
        if start is None and prefix is not None and not reverse:
            start = prefix
        if start is None:
            items = self._view.items(backwards=reverse)
        else:
            items = self._view.items(backwards=reverse, from_key=start)
        for key, value in items:
            if prefix is not None and not key.startswith(prefix):
                if reverse and key > prefix:
                    continue
                break
            yield key, value


class RocksDatabase(Database):
    """A RocksDB instance with all of its column families open."""

    def __init__(self, rdict: Rdict, path: Path, names: Sequence[str], read_only: bool):
        self._rdict = rdict
        self.path = path
        self.read_only = read_only
        self._names = list(names)
        self._families: dict[str, RocksColumnFamily] = {}

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def _column_family(self, name: str) -> RocksColumnFamily | None:
        if name not in self._names:
            return None
        if name not in self._families:
            self._families[name] = RocksColumnFamily(self, name)
        return self._families[name]

    def close(self) -> None:
        self._families.clear()
        self._rdict.close()


def list_column_families(path: Path, fallback: Sequence[str] = ()) -> list[str]:
    """
    List the column families stored at ``path``.

    When RocksDB cannot list them (no manifest yet, or an unreadable one)
    the ``fallback`` names are returned instead.
    """
    try:
        return list(Rdict.list_cf(str(path), Options(raw_mode=True)))
    except Exception as e:  # rocksdict raises bare Exception for engine errors
        log_with_context(
            logging.DEBUG,
            f"Could not list column families at {path} ({e}), using known schema",
        )
        return list(fallback)


def open_database(
    path: Path,
    mode: OpenMode = OpenMode.READ_ONLY,
    schema: Sequence[str] = (),
    max_open_files: int = DEFAULT_MAX_OPEN_FILES,
) -> RocksDatabase:
    """
    Open a RocksDB database with every column family it contains.

    Args:
        path: Database directory
        mode: READ_ONLY for a migration source, READ_WRITE for a target
        schema: Column families expected to exist; created in READ_WRITE mode
        max_open_files: File handle ceiling handed to RocksDB

    Raises:
        StorageError: If a read-only database does not exist or cannot be opened
    """
    path = Path(path)
    read_only = mode is OpenMode.READ_ONLY

    if read_only and not path.exists():
        raise StorageError(f"Database not found at {path}")

    names = list_column_families(path, fallback=schema) if path.exists() else []
    if not read_only:
        for name in schema:
            if name not in names:
                names.append(name)
    if "default" not in names:
        names.insert(0, "default")

    opts = _options(max_open_files, create=not read_only)
    column_families = {name: _options(max_open_files) for name in names}
    access = AccessType.read_only() if read_only else AccessType.read_write()

    try:
        rdict = Rdict(
            str(path),
            options=opts,
            column_families=column_families,
            access_type=access,
        )
    except Exception as e:  # rocksdict raises bare Exception for engine errors
        raise StorageError(f"Failed to open database at {path}: {e}") from e

    log_with_context(
        logging.INFO,
        f"Opened {path} {mode.value} with {len(names)} column families",
    )
    return RocksDatabase(rdict, path, names, read_only)

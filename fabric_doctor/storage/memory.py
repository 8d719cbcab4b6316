"""In-memory storage backend.

Implements the same interface as the RocksDB backend with a sorted key list
per column family. The migrator writes into one of these in dry-run mode,
so a full migration can be rehearsed without touching a target directory.
"""

from __future__ import annotations

import bisect
from typing import Iterable, Iterator

from fabric_doctor.storage.base import ColumnFamily, Database, Record


class MemoryColumnFamily(ColumnFamily):
    def __init__(self, name: str, records: dict[bytes, bytes] | None = None):
        self.name = name
        self._data: dict[bytes, bytes] = {}
        self._keys: list[bytes] = []
        if records:
            self.put_batch(records.items())

    def get(self, key: bytes) -> bytes | None:
        return self._data.get(bytes(key))

    def put_batch(self, items: Iterable[Record]) -> None:
        # Materialize first so a bad item leaves the family untouched
        staged = [(bytes(k), bytes(v)) for k, v in items]
        for key, value in staged:
            if key not in self._data:
                bisect.insort(self._keys, key)
            self._data[key] = value

    def iterate(
        self,
        start: bytes | None = None,
        prefix: bytes | None = None,
        reverse: bool = False,
    ) -> Iterator[Record]:
        # Snapshot so writes during iteration don't shift positions
        keys = list(self._keys)
        if reverse:
            if start is not None:
                keys = keys[: bisect.bisect_right(keys, start)]
            keys.reverse()
        else:
            if start is None:
                start = prefix
            if start is not None:
                keys = keys[bisect.bisect_left(keys, start) :]
        for key in keys:
            if prefix is not None and not key.startswith(prefix):
                if reverse and key > prefix:
                    continue
                break
            yield key, self._data[key]

    def count(self) -> int:
        return len(self._keys)


class MemoryDatabase(Database):
    """A dictionary of in-memory column families."""

    def __init__(self, names: Iterable[str] = (), read_only: bool = False):
        self.read_only = read_only
        self._families: dict[str, MemoryColumnFamily] = {}
        for name in names:
            self.create_column_family(name)

    @property
    def names(self) -> list[str]:
        return list(self._families)

    def _column_family(self, name: str) -> MemoryColumnFamily | None:
        return self._families.get(name)

    def create_column_family(self, name: str) -> MemoryColumnFamily:
        if name not in self._families:
            self._families[name] = MemoryColumnFamily(name)
        return self._families[name]

"""
Storage engine interface.

A database is a set of independently iterable column families. Backends
implement ``ColumnFamily`` and ``Database``; everything else in the tool only
talks to these two classes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Iterator

from fabric_doctor.exceptions import MissingStoreError

Record = tuple[bytes, bytes]


class ColumnFamily(ABC):
    """A named, ordered key-value partition."""

    name: str

    @abstractmethod
    def get(self, key: bytes) -> bytes | None:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def put_batch(self, items: Iterable[Record]) -> None:
        """Atomically write all ``items``."""

    @abstractmethod
    def iterate(
        self,
        start: bytes | None = None,
        prefix: bytes | None = None,
        reverse: bool = False,
    ) -> Iterator[Record]:
        """
        Iterate records in key order.

        Args:
            start: First key to visit (last key when ``reverse``)
            prefix: Only visit keys starting with this prefix
            reverse: Iterate in descending key order
        """

    def count(self) -> int:
        return sum(1 for _ in self.iterate())

    def is_empty(self) -> bool:
        return next(iter(self.iterate()), None) is None


class Database(ABC):
    """A storage engine instance grouping named column families."""

    read_only: bool = False

    @property
    @abstractmethod
    def names(self) -> list[str]:
        """Names of the column families present in this database."""

    @abstractmethod
    def _column_family(self, name: str) -> ColumnFamily | None:
        """Return the column family ``name`` or None if absent."""

    def column_family(self, name: str) -> ColumnFamily:
        """
        Return the column family ``name``.

        Raises:
            MissingStoreError: If the database has no such column family
        """
        cf = self._column_family(name)
        if cf is None:
            raise MissingStoreError(
                f"Column family '{name}' not found (available: {', '.join(self.names)})"
            )
        return cf

    def has(self, name: str) -> bool:
        return self._column_family(name) is not None

    def close(self) -> None:
        pass

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

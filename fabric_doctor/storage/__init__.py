"""
Storage backends for chain databases.
"""

from fabric_doctor.storage.base import ColumnFamily, Database
from fabric_doctor.storage.memory import MemoryColumnFamily, MemoryDatabase
from fabric_doctor.storage.rocks import OpenMode, RocksDatabase, open_database

__all__ = [
    "ColumnFamily",
    "Database",
    "MemoryColumnFamily",
    "MemoryDatabase",
    "OpenMode",
    "RocksDatabase",
    "open_database",
]

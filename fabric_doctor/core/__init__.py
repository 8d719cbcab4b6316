"""Core migration logic including configuration, replication and orchestration."""

__all__ = [
    "config",
    "migrator",
    "replicator",
    "state",
]

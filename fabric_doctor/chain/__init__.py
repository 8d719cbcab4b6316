"""Chain entry metadata and the walker that selects entries to migrate."""

__all__ = [
    "metadata",
    "walker",
]

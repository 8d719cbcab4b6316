"""Custom exception hierarchy for the fabric inspection and migration tool."""

from __future__ import annotations


class FabricDoctorError(Exception):
    """Base exception for all fabric-doctor errors."""


class ConfigError(FabricDoctorError):
    """Raised when configuration is invalid or missing."""


class DecodeError(FabricDoctorError):
    """Raised when a byte string is not a well-formed external term."""


class EncodeError(FabricDoctorError):
    """Raised when a term cannot be represented in the external term format."""


class StorageError(FabricDoctorError):
    """Raised when a database cannot be opened or accessed."""


class MissingStoreError(StorageError):
    """Raised when an expected column family is absent from a database."""


class RecordTooLarge(FabricDoctorError):
    """Raised when a record exceeds the storage engine's key or value ceiling."""


class BatchWriteError(StorageError):
    """Raised when a write batch keeps failing after all retries."""


class VerificationMismatch(FabricDoctorError):
    """Raised when post-copy row counts do not match what was copied."""

    def __init__(
        self,
        store: str,
        expected: int,
        actual: int,
        source_count: int,
        target_before: int,
        target_after: int,
        check: str = "new records",
    ) -> None:
        self.store = store
        self.expected = expected
        self.actual = actual
        self.source_count = source_count
        self.target_before = target_before
        self.target_after = target_after
        self.check = check
        super().__init__(
            f"Verification failed for {store}: expected {expected} {check}, "
            f"found {actual} (source={source_count}, "
            f"target before={target_before}, target after={target_after})"
        )


class WalkTerminated(FabricDoctorError):
    """Raised inside a chain walk phase when it cannot continue."""

    def __init__(self, reason: str, height: int | None = None) -> None:
        self.reason = reason
        self.height = height
        super().__init__(reason if height is None else f"{reason} (height {height})")


class ChainStateError(FabricDoctorError):
    """Raised when the chain tip records needed for a migration are missing."""

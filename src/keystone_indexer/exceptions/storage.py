"""Storage exceptions: the SQLite store behind checkpoints and projections."""

from pathlib import Path

from .base import ErrorCode, KeystoneIndexerError


class StorageError(KeystoneIndexerError):
    """Base class for storage-related errors."""

    pass


class StorageUnavailableError(StorageError):
    """Raised when the database cannot be opened or migrated.

    Fatal at startup: the indexer cannot run without durable checkpoints.
    """

    code = ErrorCode.KI300

    def __init__(self, db_path: Path, reason: str):
        super().__init__(
            f"Cannot open indexer database: {db_path}",
            details={"db_path": str(db_path), "reason": reason},
        )
        self.db_path = db_path
        self.reason = reason


class StorageWriteError(StorageError):
    """Raised when a projection or checkpoint write fails."""

    code = ErrorCode.KI301

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Storage write failed during {operation}",
            details={"operation": operation, "reason": reason},
        )
        self.operation = operation
        self.reason = reason

"""Exception hierarchy for Keystone Indexer."""

from .base import ErrorCode, KeystoneIndexerError
from .config import ConfigurationError, InvalidConfigError
from .ingest import (
    EventDecodeError,
    SourceError,
    SourceResponseError,
    SourceUnavailableError,
)
from .storage import StorageError, StorageUnavailableError, StorageWriteError

__all__ = [
    "ErrorCode",
    "KeystoneIndexerError",
    "SourceError",
    "SourceUnavailableError",
    "SourceResponseError",
    "EventDecodeError",
    "StorageError",
    "StorageUnavailableError",
    "StorageWriteError",
    "ConfigurationError",
    "InvalidConfigError",
]

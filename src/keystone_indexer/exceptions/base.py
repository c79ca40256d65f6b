"""Base exception and error codes for Keystone Indexer.

Error Code Convention:
    KI1xx - Event source errors (transient, retried)
    KI2xx - Event decoding errors (dropped per event)
    KI3xx - Storage errors
    KI4xx - Configuration errors
"""

from enum import Enum
from typing import Dict, Optional


class ErrorCode(Enum):
    """Structured error codes for observability and debugging."""

    KI100 = "KI100"  # Event source unreachable / timed out
    KI101 = "KI101"  # Event source returned an error or malformed body
    KI200 = "KI200"  # Topic or value could not be decoded
    KI300 = "KI300"  # Storage could not be opened or migrated
    KI301 = "KI301"  # Storage write failed
    KI400 = "KI400"  # Invalid configuration


class KeystoneIndexerError(Exception):
    """Base exception for all Keystone Indexer errors."""

    code: Optional[ErrorCode] = None

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        prefix = f"[{self.code.value}] " if self.code is not None else ""
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{prefix}{self.message} ({details_str})"
        return f"{prefix}{self.message}"

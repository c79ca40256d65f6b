"""Ingestion exceptions: event source failures and undecodable events."""

from typing import Any, Optional

from .base import ErrorCode, KeystoneIndexerError


class SourceError(KeystoneIndexerError):
    """Base class for failures talking to the ledger's event source.

    Every ``SourceError`` is considered transient: the poller retries it
    with backoff and then defers the contract to the next cycle.
    """

    code = ErrorCode.KI100


class SourceUnavailableError(SourceError):
    """Raised when the event source cannot be reached or times out."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Event source unavailable: {url}",
            details={"url": url, "reason": reason},
        )
        self.url = url
        self.reason = reason


class SourceResponseError(SourceError):
    """Raised when the event source answers with an error or a malformed body."""

    code = ErrorCode.KI101

    def __init__(self, method: str, reason: str, rpc_code: Optional[int] = None):
        details = {"method": method, "reason": reason}
        if rpc_code is not None:
            details["rpc_code"] = str(rpc_code)
        super().__init__(f"Event source rejected {method}", details=details)
        self.method = method
        self.reason = reason
        self.rpc_code = rpc_code


class EventDecodeError(KeystoneIndexerError):
    """Raised when a raw event's topics or value have an unexpected shape."""

    code = ErrorCode.KI200

    def __init__(self, reason: str, value: Any = None):
        details = {"reason": reason}
        if value is not None:
            details["value"] = repr(value)[:200]
        super().__init__(f"Cannot decode event: {reason}", details=details)
        self.reason = reason
        self.value = value

"""Configuration exceptions."""

from typing import Any

from .base import ErrorCode, KeystoneIndexerError


class ConfigurationError(KeystoneIndexerError):
    """Base class for configuration-related errors."""

    code = ErrorCode.KI400


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration for {key}: {value}",
            details={"key": key, "value": str(value), "reason": reason},
        )
        self.key = key
        self.value = value
        self.reason = reason

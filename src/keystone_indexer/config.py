"""Configuration loading and management for Keystone Indexer.

Configuration sources are merged in priority order:
    1. Defaults (defined in IndexerConfig)
    2. Project config (./keystone-indexer.toml)
    3. Explicit config file (--config)
    4. Environment variables (KEYSTONE_* prefix)
    5. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(poll_interval=2.0)
    >>> config.poll_interval
    2.0
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError

Verbosity = Literal["quiet", "normal", "verbose"]

PROJECT_CONFIG_NAME = "keystone-indexer.toml"
ENV_PREFIX = "KEYSTONE_"


@dataclass(frozen=True)
class IndexerConfig:
    """Configuration for the indexer process and its read surfaces.

    Attributes:
        Event source:
            rpc_url: Soroban JSON-RPC endpoint
            request_timeout: Per-request HTTP timeout in seconds
            page_size: Maximum events requested per fetch

        Storage:
            db_path: SQLite database file

        Polling:
            contract_id: Optional contract registered at startup
            poll_interval: Seconds to sleep between cycles

        Fetch retry:
            fetch_attempts: Total fetch attempts per contract per cycle
            backoff_base: Delay before the first retry (seconds)
            backoff_multiplier: Growth factor applied to each further retry
            backoff_max: Upper bound on a single retry delay (seconds)

        Queries:
            expiring_window_hours: Window used for "expiring soon" counts

        Output:
            verbosity: Logging verbosity level
    """

    rpc_url: str = "http://127.0.0.1:8000/soroban/rpc"
    request_timeout: float = 30.0
    page_size: int = 1000

    db_path: str = "./indexer.db"

    contract_id: Optional[str] = None
    poll_interval: float = 5.0

    fetch_attempts: int = 3
    backoff_base: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max: float = 10.0

    expiring_window_hours: int = 24

    verbosity: Verbosity = "normal"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.rpc_url.startswith(("http://", "https://")):
            raise InvalidConfigError("rpc_url", self.rpc_url, "must be an http(s) URL")
        if self.request_timeout <= 0:
            raise InvalidConfigError("request_timeout", self.request_timeout, "must be positive")
        if not 1 <= self.page_size <= 10000:
            raise InvalidConfigError("page_size", self.page_size, "must be between 1 and 10000")
        if not self.db_path:
            raise InvalidConfigError("db_path", self.db_path, "must not be empty")
        if self.poll_interval <= 0:
            raise InvalidConfigError("poll_interval", self.poll_interval, "must be positive")
        if self.fetch_attempts < 1:
            raise InvalidConfigError("fetch_attempts", self.fetch_attempts, "must be at least 1")
        if self.backoff_base < 0:
            raise InvalidConfigError("backoff_base", self.backoff_base, "must be non-negative")
        if self.backoff_multiplier < 1:
            raise InvalidConfigError(
                "backoff_multiplier", self.backoff_multiplier, "must be at least 1"
            )
        if self.backoff_max < self.backoff_base:
            raise InvalidConfigError(
                "backoff_max", self.backoff_max, "must not be smaller than backoff_base"
            )
        if self.expiring_window_hours < 1:
            raise InvalidConfigError(
                "expiring_window_hours", self.expiring_window_hours, "must be at least 1"
            )
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise InvalidConfigError("verbosity", self.verbosity, "must be quiet/normal/verbose")

    @property
    def expiring_window_seconds(self) -> int:
        """Get the expiring-soon window in seconds."""
        return self.expiring_window_hours * 3600


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> IndexerConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored so unset CLI options keep lower-priority values.

    Returns:
        Validated IndexerConfig instance

    Raises:
        ConfigurationError: If a config file is missing or unreadable, or a
            value fails validation.
    """
    merged: dict[str, Any] = {}

    project_config = Path.cwd() / PROJECT_CONFIG_NAME
    if project_config.exists():
        merged.update(_load_toml_file(project_config))

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        merged.update(_load_toml_file(config_file))

    merged.update(_load_env_vars())

    if overrides.pop("verbose", False):
        overrides["verbosity"] = "verbose"
    if overrides.pop("quiet", False):
        overrides["verbosity"] = "quiet"
    merged.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(IndexerConfig)}
    unknown = sorted(set(merged) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    return IndexerConfig(**merged)


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from KEYSTONE_* environment variables.

    ``KEYSTONE_POLL_INTERVAL=2`` maps to ``poll_interval``, and so on for
    every IndexerConfig field.
    """
    type_hints = get_type_hints(IndexerConfig)
    result: dict[str, Any] = {}

    for f in fields(IndexerConfig):
        env_key = f"{ENV_PREFIX}{f.name.upper()}"
        env_value = os.environ.get(env_key)
        if env_value is None:
            continue
        try:
            result[f.name] = _parse_env_value(env_value, type_hints[f.name])
        except ValueError as e:
            raise InvalidConfigError(env_key, env_value, str(e))

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the field's type."""
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none = [t for t in args if t is not type(None)]
        if non_none:
            type_hint = non_none[0]

    if type_hint is int:
        return int(value)
    if type_hint is float:
        return float(value)
    return value


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file, accepting either top-level keys or an ``[indexer]`` table."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Invalid config file '{path}': {e}")

    section = data.get("indexer")
    if isinstance(section, dict):
        return section
    return data

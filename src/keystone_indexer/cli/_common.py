"""Shared CLI helpers."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.markup import escape

from ..config import IndexerConfig, load_config
from ..exceptions import ConfigurationError
from ..persistence.contracts import tracked_contract_ids

console = Console()

NO_DATA = "[yellow]No data yet.[/yellow]"


def resolve_config(ctx: typer.Context, **overrides: Any) -> IndexerConfig:
    """Build config from the global options plus command-specific overrides.

    Exits with status 1 on invalid configuration.
    """
    obj = ctx.obj or {}
    merged = dict(obj.get("overrides", {}))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    config_file: Optional[Path] = obj.get("config_file")
    try:
        return load_config(config_file=config_file, **merged)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def resolve_contract(conn, config: IndexerConfig, explicit: Optional[str]) -> Optional[str]:
    """Pick the contract a listing is about.

    ``--contract`` wins, then the configured ``contract_id``; with neither,
    the only tracked contract is used. Returns ``None`` when nothing is
    tracked yet.
    """
    if explicit:
        return explicit
    if config.contract_id:
        return config.contract_id
    tracked = tracked_contract_ids(conn)
    if not tracked:
        return None
    if len(tracked) > 1:
        console.print(
            f"[red]{len(tracked)} contracts are tracked;[/red] choose one with --contract"
        )
        raise typer.Exit(2)
    return tracked[0]


def format_ts(ts: Optional[int]) -> str:
    """Epoch seconds as ``YYYY-MM-DD HH:MM:SS`` (UTC)."""
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def format_duration(seconds: int) -> str:
    """Compact duration like ``3h 12m`` or ``45s``."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, _ = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m" if hours else f"{minutes}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h"


def print_json(data: Any) -> None:
    """Machine-readable JSON output on stdout."""
    print(json.dumps(data, indent=2))

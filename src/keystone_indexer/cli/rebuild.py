"""``keystone-indexer rebuild``: recompute roles and members from the audit log."""

from typing import Optional

import typer

from ..exceptions import StorageUnavailableError, StorageWriteError
from ..persistence import IndexerDB
from ..projection import StateProjector
from . import app
from ._common import console, escape, resolve_config


@app.command()
def rebuild(
    ctx: typer.Context,
    contract: Optional[str] = typer.Option(
        None, "--contract", help="Only rebuild this contract (default: all)"
    ),
):
    """
    Discard the derived role tables and replay the audit log into them.

    Stop the poller first; the audit log and checkpoints are not touched.
    """
    config = resolve_config(ctx)
    try:
        with IndexerDB(config.db_path) as db:
            replayed = StateProjector(db.conn).rebuild(contract)
    except (StorageUnavailableError, StorageWriteError) as e:
        console.print(f"[red]Rebuild failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    scope = contract or "all contracts"
    console.print(f"[green]Rebuilt[/green] {scope} from {replayed} audit event(s)")

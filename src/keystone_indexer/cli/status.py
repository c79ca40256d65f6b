"""``keystone-indexer status``: how far each contract has been indexed."""

import time
from typing import Optional

import typer
from rich.table import Table

from ..exceptions import StorageUnavailableError
from ..persistence import IndexerDB, IndexQuery
from ..server.serializers import status_to_dict
from . import app
from ._common import NO_DATA, console, format_duration, format_ts, print_json, resolve_config


@app.command()
def status(
    ctx: typer.Context,
    contract: Optional[str] = typer.Option(
        None, "--contract", help="Only this contract (default: all tracked)"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output in machine-readable JSON format"
    ),
):
    """
    Show the checkpoint of each tracked contract and how old it is.

    A contract without a checkpoint has not completed its first cycle.
    """
    config = resolve_config(ctx)
    now = int(time.time())
    try:
        with IndexerDB(config.db_path, read_only=True) as db:
            query = IndexQuery(db.conn)
            ids = [contract] if contract else [c.id for c in query.list_contracts()]
            statuses = [query.get_sync_status(cid) for cid in ids]
    except StorageUnavailableError:
        statuses = []

    if json_output:
        print_json([status_to_dict(s, now=now) for s in statuses])
        return
    if not statuses:
        console.print(NO_DATA)
        return

    table = Table(title="Sync Status")
    table.add_column("Contract", style="bold cyan")
    table.add_column("Checkpoint", justify="right")
    table.add_column("Updated", style="green")
    table.add_column("Age", justify="right")
    for s in statuses:
        if not s.tracked:
            table.add_row(s.contract_id, "[red]not tracked[/red]", "-", "-")
        elif not s.has_data:
            table.add_row(s.contract_id, "[yellow]no data yet[/yellow]", "-", "-")
        else:
            age = status_to_dict(s, now=now)["age_seconds"]
            table.add_row(
                s.contract_id,
                str(s.position),
                format_ts(s.updated_at),
                format_duration(age) if age is not None else "-",
            )
    console.print(table)

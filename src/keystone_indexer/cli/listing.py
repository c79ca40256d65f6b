"""Read-only listings: contracts, roles, members, expiring grants, events, summary."""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.table import Table

from ..config import IndexerConfig
from ..exceptions import StorageUnavailableError
from ..persistence import IndexerDB, IndexQuery
from ..persistence.queries import MemberStatus
from ..server.serializers import (
    contract_to_dict,
    event_to_dict,
    expiring_to_dict,
    member_to_dict,
    role_to_dict,
    summary_to_dict,
)
from . import app
from ._common import (
    NO_DATA,
    console,
    format_duration,
    format_ts,
    print_json,
    resolve_config,
    resolve_contract,
)

CONTRACT_OPTION = typer.Option(
    None, "--contract", help="Contract to query (default: the only tracked one)"
)
JSON_OPTION = typer.Option(False, "--json", help="Output in machine-readable JSON format")


@contextmanager
def _reader(
    ctx: typer.Context, contract: Optional[str]
) -> Iterator[tuple[IndexQuery, str, IndexerConfig]]:
    """Open the database read-only and settle on a contract.

    Prints "No data yet" and exits 0 when there is no database, no tracked
    contract, or no checkpoint for the contract.
    """
    config = resolve_config(ctx)
    db = IndexerDB(config.db_path, read_only=True)
    try:
        db.connect()
    except StorageUnavailableError:
        console.print(NO_DATA)
        raise typer.Exit(0)

    try:
        query = IndexQuery(db.conn)
        contract_id = resolve_contract(db.conn, config, contract)
        if contract_id is None or not query.get_sync_status(contract_id).has_data:
            console.print(NO_DATA)
            raise typer.Exit(0)
        yield query, contract_id, config
    finally:
        db.close()


@app.command()
def contracts(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
):
    """List tracked contracts."""
    config = resolve_config(ctx)
    try:
        with IndexerDB(config.db_path, read_only=True) as db:
            tracked = IndexQuery(db.conn).list_contracts()
    except StorageUnavailableError:
        tracked = []

    if json_output:
        print_json([contract_to_dict(c) for c in tracked])
        return
    if not tracked:
        console.print(NO_DATA)
        return

    table = Table(title="Tracked Contracts")
    table.add_column("Contract", style="bold cyan")
    table.add_column("First seen", style="green")
    for c in tracked:
        table.add_row(c.id, format_ts(c.first_seen))
    console.print(table)


@app.command()
def roles(
    ctx: typer.Context,
    contract: Optional[str] = CONTRACT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    List the roles of a contract with their admin role and member count.

    [bold cyan]Examples:[/bold cyan]

      keystone-indexer roles

      keystone-indexer roles --contract CCONTRACT... --json
    """
    with _reader(ctx, contract) as (query, contract_id, _):
        records = query.list_roles(contract_id)

    if json_output:
        print_json([role_to_dict(r) for r in records])
        return

    table = Table(title=f"Roles · {contract_id}")
    table.add_column("Role", style="bold")
    table.add_column("Admin role", style="cyan")
    table.add_column("Members", justify="right")
    table.add_column("Created", style="green")
    for r in records:
        table.add_row(r.role, r.admin_role or "-", str(r.member_count), format_ts(r.created_at))
    console.print(table)


@app.command()
def members(
    ctx: typer.Context,
    role: str = typer.Argument(..., help="Role name"),
    contract: Optional[str] = CONTRACT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    List the accounts holding ROLE, with expiry and status.

    [bold cyan]Examples:[/bold cyan]

      keystone-indexer members MINTER
    """
    with _reader(ctx, contract) as (query, contract_id, _):
        if not query.role_exists(contract_id, role):
            console.print(f"[red]Role not found:[/red] {role}")
            raise typer.Exit(1)
        records = query.list_members(contract_id, role)

    if json_output:
        print_json([member_to_dict(m) for m in records])
        return
    if not records:
        console.print(f"[dim]{role} has no members.[/dim]")
        return

    table = Table(title=f"Members of {role}")
    table.add_column("Account", style="bold")
    table.add_column("Expiry")
    table.add_column("Status")
    table.add_column("Last updated", style="green")
    for m in records:
        expiry = "never" if m.never_expires else format_ts(m.expiry)
        status = (
            "[red]expired[/red]" if m.status is MemberStatus.EXPIRED else "[green]active[/green]"
        )
        table.add_row(m.account, expiry, status, format_ts(m.last_updated))
    console.print(table)


@app.command()
def expiring(
    ctx: typer.Context,
    hours: Optional[int] = typer.Option(
        None,
        "--hours",
        help="Look-ahead window in hours (default: 24)",
        min=1,
    ),
    contract: Optional[str] = CONTRACT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """List active grants that expire within the window, soonest first."""
    with _reader(ctx, contract) as (query, contract_id, config):
        window = hours if hours is not None else config.expiring_window_hours
        grants = query.list_expiring(contract_id, within_seconds=window * 3600)

    if json_output:
        print_json([expiring_to_dict(g) for g in grants])
        return
    if not grants:
        console.print(f"[green]Nothing expires in the next {window}h.[/green]")
        return

    table = Table(title=f"Expiring within {window}h")
    table.add_column("Role", style="bold")
    table.add_column("Account")
    table.add_column("Expiry", style="yellow")
    table.add_column("In", justify="right")
    for g in grants:
        table.add_row(g.role, g.account, format_ts(g.expiry), format_duration(g.seconds_left))
    console.print(table)


@app.command()
def events(
    ctx: typer.Context,
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of events to list",
        min=1,
        max=1000,
    ),
    contract: Optional[str] = CONTRACT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Show the most recent audit log entries."""
    with _reader(ctx, contract) as (query, contract_id, _):
        records = query.list_recent_events(contract_id, limit=limit)

    if json_output:
        print_json([event_to_dict(e) for e in records])
        return

    table = Table(title="Recent Activity")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Time", style="green")
    table.add_column("Event", style="bold")
    table.add_column("Role")
    table.add_column("Account")
    table.add_column("Ledger", justify="right")
    for e in records:
        table.add_row(
            str(e.id),
            format_ts(e.created_at),
            e.event_type,
            str(e.payload.get("role", "-")),
            str(e.payload.get("account", "-")),
            str(e.ledger) if e.ledger is not None else "-",
        )
    console.print(table)


@app.command()
def summary(
    ctx: typer.Context,
    contract: Optional[str] = CONTRACT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Counts of roles, grants, expiring and expired grants, and audit events."""
    with _reader(ctx, contract) as (query, contract_id, config):
        result = query.get_summary(
            contract_id, now=int(time.time()), window_seconds=config.expiring_window_seconds
        )

    if json_output:
        print_json(summary_to_dict(result))
        return

    table = Table(title=f"Summary · {contract_id}", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Roles", str(result.role_count))
    table.add_row("Grants", str(result.grant_count))
    table.add_row(f"Expiring ({config.expiring_window_hours}h)", str(result.expiring_soon))
    table.add_row("Expired", str(result.expired))
    table.add_row("Audit events", str(result.event_count))
    console.print(table)

"""``keystone-indexer run`` and ``register``: the write side of the CLI."""

import asyncio
from typing import Optional

import typer

from ..config import IndexerConfig
from ..exceptions import StorageUnavailableError, StorageWriteError
from ..ingest import Poller, SorobanEventSource
from ..logging_config import get_logger, setup_logging
from ..persistence import IndexerDB, register_contract, tracked_contract_ids
from . import app
from ._common import console, escape, resolve_config

logger = get_logger(__name__)


@app.command()
def run(
    ctx: typer.Context,
    contract: Optional[str] = typer.Option(
        None,
        "--contract",
        help="Register this contract before polling",
    ),
    once: bool = typer.Option(
        False,
        "--once",
        help="Run a single cycle and exit",
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between cycles (default: 5)",
        min=0.1,
    ),
    log_file: Optional[str] = typer.Option(
        None,
        "--log-file",
        help="Also append logs to this file",
    ),
):
    """
    Poll the ledger and keep the index up to date.

    Runs until interrupted (Ctrl+C / SIGTERM); a stop request lets the
    current cycle finish first.

    [bold cyan]Examples:[/bold cyan]

      keystone-indexer run --contract CCONTRACT...

      keystone-indexer --rpc-url https://soroban-testnet.stellar.org run --once
    """
    config = resolve_config(ctx, contract_id=contract, poll_interval=interval)
    setup_logging(
        verbose=config.verbosity == "verbose",
        quiet=config.verbosity == "quiet",
        log_file=log_file,
    )

    try:
        asyncio.run(_run(config, once))
    except StorageUnavailableError as e:
        console.print(f"[red]Cannot open database:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


async def _run(config: IndexerConfig, once: bool) -> None:
    with IndexerDB(config.db_path) as db:
        if config.contract_id:
            register_contract(db.conn, config.contract_id)
        if not tracked_contract_ids(db.conn):
            logger.warning("No contracts registered; use 'keystone-indexer register <id>'")

        async with SorobanEventSource(config.rpc_url, timeout=config.request_timeout) as source:
            poller = Poller(db.conn, source, config)
            if once:
                results = await poller.run_once()
                failed = [r.contract_id for r in results if not r.ok]
                if failed:
                    logger.warning("Cycle incomplete for: %s", ", ".join(failed))
            else:
                logger.info("Indexing %s from %s", config.db_path, config.rpc_url)
                await poller.run()


@app.command()
def register(
    ctx: typer.Context,
    contract_id: str = typer.Argument(..., help="Contract address to track"),
):
    """
    Start tracking a contract. Registering it again is a no-op.

    [bold cyan]Examples:[/bold cyan]

      keystone-indexer register CCONTRACT...
    """
    config = resolve_config(ctx)

    try:
        with IndexerDB(config.db_path) as db:
            created = register_contract(db.conn, contract_id)
    except (StorageUnavailableError, StorageWriteError) as e:
        console.print(f"[red]Cannot register contract:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if created:
        console.print(f"[green]Registered[/green] {contract_id}")
    else:
        console.print(f"[dim]Already tracked:[/dim] {contract_id}")

"""CLI entry point — registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="keystone-indexer",
    help="Keystone Indexer - RBAC event indexer for Soroban contracts",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db",
        help="SQLite database file (default: ./indexer.db)",
    ),
    rpc_url: Optional[str] = typer.Option(
        None,
        "--rpc-url",
        help="Soroban RPC endpoint",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
):
    """
    Index role-based access control events from Soroban contracts.

    [bold cyan]Examples:[/bold cyan]

      keystone-indexer register CCONTRACT...

      keystone-indexer run

      keystone-indexer roles --json

      keystone-indexer --db ./indexer.db members ADMIN
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config
    ctx.obj["overrides"] = {
        "db_path": db_path,
        "rpc_url": rpc_url,
        "verbose": verbose,
        "quiet": quiet,
    }

    if version:
        console.print(
            f"[bold cyan]Keystone Indexer[/bold cyan] version [green]{__version__}[/green]"
        )
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


# Import subcommands to register them
from .run import run as _run, register as _register  # noqa: F401, E402
from .listing import contracts as _contracts, roles as _roles  # noqa: F401, E402
from .listing import members as _members, expiring as _expiring  # noqa: F401, E402
from .listing import events as _events, summary as _summary  # noqa: F401, E402
from .status import status as _status  # noqa: F401, E402
from .rebuild import rebuild as _rebuild  # noqa: F401, E402
from .serve import serve as _serve  # noqa: F401, E402
